from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from app.services.errors import SubscriptionError
from app.services.store import ISSUES_TABLE, ChangeEvent, IssueStore, SubscriptionHandle

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[str], Awaitable[object]]


class LiveUpdateCoordinator:
    """
    Keeps a dashboard fresh either from the store's change feed or from a slow poll.

    While enabled, bursts of change events collapse into a single refresh that fires once the feed has
    been quiet for ``debounce_seconds``. While disabled, a refresh runs every ``poll_interval_seconds``.
    The refresh callback receives the trigger name ("live" or "poll").
    """

    def __init__(
        self,
        store: IssueStore,
        on_refresh: RefreshCallback,
        *,
        table: str = ISSUES_TABLE,
        debounce_seconds: float = 2.0,
        poll_interval_seconds: float = 300.0,
    ) -> None:
        self._store = store
        self._on_refresh = on_refresh
        self._table = table
        self._debounce_seconds = debounce_seconds
        self._poll_interval_seconds = poll_interval_seconds

        self._loop: asyncio.AbstractEventLoop | None = None
        self._enabled = False
        self._stopped = True
        self._subscription: SubscriptionHandle | None = None
        self._debounce: asyncio.TimerHandle | None = None
        self._poll_task: asyncio.Task | None = None
        self._refresh_tasks: set[asyncio.Task] = set()
        self.last_error: str | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def debounce_pending(self) -> bool:
        return self._debounce is not None

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def start(self, live: bool) -> bool:
        """Enter the initial mode. Returns True when the change feed is active."""
        self._loop = asyncio.get_running_loop()
        self._stopped = False
        if live:
            return self.enable()
        self._start_polling()
        return False

    def enable(self) -> bool:
        if self._enabled:
            return True
        self._loop = asyncio.get_running_loop()
        self._stopped = False
        self._stop_polling()
        try:
            self._subscription = self._store.subscribe(self._table, self._on_change)
        except SubscriptionError as exc:
            logger.exception("Could not subscribe to %s changes; falling back to polling", self._table)
            self.last_error = str(exc)
            self._start_polling()
            return False
        self.last_error = None
        self._enabled = True
        return True

    def disable(self) -> None:
        if self._enabled:
            self._enabled = False
            self._cancel_debounce()
            self._close_subscription()
        self._start_polling()

    def stop(self) -> None:
        """Tear down timers and the subscription. Refreshes already running are left to finish."""
        self._stopped = True
        self._enabled = False
        self._cancel_debounce()
        self._close_subscription()
        self._stop_polling()

    def _on_change(self, change: ChangeEvent) -> None:
        if not self._enabled or self._loop is None:
            return
        logger.debug("Change on %s: %s %s", change.table, change.event_type, change.record_id)
        self._cancel_debounce()
        self._debounce = self._loop.call_later(self._debounce_seconds, self._fire_debounced)

    def _fire_debounced(self) -> None:
        self._debounce = None
        if not self._enabled:
            return
        self._spawn_refresh("live")

    def _spawn_refresh(self, trigger: str) -> None:
        if self._loop is None:
            raise RuntimeError("LiveUpdateCoordinator.start() must run before refreshes are scheduled")
        task = self._loop.create_task(self._run_refresh(trigger))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _run_refresh(self, trigger: str) -> None:
        try:
            await self._on_refresh(trigger)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Error running %s dashboard refresh", trigger)

    def _cancel_debounce(self) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None

    def _close_subscription(self) -> None:
        if self._subscription is None:
            return
        handle, self._subscription = self._subscription, None
        try:
            self._store.unsubscribe(handle)
        except Exception:
            logger.exception("Error closing %s subscription %s", handle.table, handle.id)

    def _start_polling(self) -> None:
        if self._stopped or self.polling or self._loop is None:
            return

        async def _poll() -> None:
            while True:
                await asyncio.sleep(self._poll_interval_seconds)
                self._spawn_refresh("poll")

        self._poll_task = self._loop.create_task(_poll())

    def _stop_polling(self) -> None:
        if self._poll_task:
            self._poll_task.cancel()
            self._poll_task = None
