from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable

from app.schemas.analytics import (
    AnalyticsSnapshot,
    DashboardStatus,
    DateRange,
    IssueRecord,
    LiveModeStatus,
    LiveStats,
)
from app.services import aggregation
from app.services.errors import StoreReadError
from app.services.live_updates import LiveUpdateCoordinator
from app.services.store import IssueFilter, IssueStore

logger = logging.getLogger(__name__)

ReadResult = list[IssueRecord] | BaseException


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _utc_today() -> date:
    return _utcnow().date()


class FetchCoordinator:
    """
    Builds one ``AnalyticsSnapshot`` from seven concurrent store reads.

    Reads fail soft: a failed read leaves its view as ``None`` and adds a line to ``snapshot.error`` while
    the other views are still computed. Failed reads are never retried here.
    """

    def __init__(
        self,
        store: IssueStore,
        *,
        trend_window_days: int = 30,
        recent_limit: int = 10,
        read_timeout: float | None = None,
    ) -> None:
        self._store = store
        self._trend_window = timedelta(days=trend_window_days)
        self._recent_limit = recent_limit
        self._read_timeout = read_timeout

    def plan_reads(self, date_range: DateRange) -> dict[str, IssueFilter]:
        start, end_before = date_range.start_at, date_range.end_before
        in_range = {"created_from": start, "created_before": end_before}
        return {
            "metrics": IssueFilter(view="metrics", **in_range),
            "metrics_previous": IssueFilter(
                view="metrics_previous",
                created_from=start - self._trend_window,
                created_before=start,
            ),
            "categories": IssueFilter(view="categories", **in_range),
            "timeline": IssueFilter(view="timeline", **in_range),
            "departments": IssueFilter(view="departments", **in_range),
            "geographic": IssueFilter(view="geographic", **in_range),
            "recent_issues": IssueFilter(view="recent_issues", newest_first=True, limit=self._recent_limit),
        }

    async def refresh(self, date_range: DateRange) -> AnalyticsSnapshot:
        reads = self.plan_reads(date_range)
        results = await asyncio.gather(
            *(self._read(issue_filter) for issue_filter in reads.values()),
            return_exceptions=True,
        )
        outcome: dict[str, ReadResult] = dict(zip(reads, results))
        errors: list[str] = []

        def build(view: str, builder: Callable[..., Any], *sources: str, **kwargs: Any) -> Any:
            inputs = [outcome[source] for source in sources]
            failures = [result for result in inputs if isinstance(result, BaseException)]
            if failures:
                errors.append(f"{view}: {self._describe(failures[0])}")
                return None
            return builder(*inputs, **kwargs)

        snapshot = AnalyticsSnapshot(
            metrics=build("metrics", aggregation.compute_metrics, "metrics", "metrics_previous"),
            categories=build("categories", aggregation.category_breakdown, "categories"),
            timeline=build("timeline", aggregation.build_timeline, "timeline", date_range=date_range),
            departments=build("departments", aggregation.department_performance, "departments"),
            geographic=build("geographic", aggregation.geographic_breakdown, "geographic"),
            recent_issues=build(
                "recent_issues",
                aggregation.recent_issues_feed,
                "recent_issues",
                limit=self._recent_limit,
            ),
            computed_at=_utcnow(),
            error="; ".join(errors) or None,
        )
        if errors:
            logger.warning("Analytics refresh for %s..%s degraded: %s", date_range.start, date_range.end, snapshot.error)
        else:
            logger.info("Analytics refresh for %s..%s completed", date_range.start, date_range.end)
        return snapshot

    async def live_stats(self) -> LiveStats:
        """Counters for issues created in the last 24 hours. Raises ``StoreReadError`` on failure."""
        now = _utcnow().replace(tzinfo=None)
        records = await self._read(IssueFilter(view="live_stats", created_from=now - timedelta(hours=24)))
        return aggregation.compute_live_stats(records, now)

    async def _read(self, issue_filter: IssueFilter) -> list[IssueRecord]:
        if self._read_timeout is None:
            return await self._store.query(issue_filter)
        try:
            return await asyncio.wait_for(self._store.query(issue_filter), self._read_timeout)
        except asyncio.TimeoutError as exc:
            raise StoreReadError(f"{issue_filter.view} read timed out after {self._read_timeout:g}s") from exc

    @staticmethod
    def _describe(failure: BaseException) -> str:
        if isinstance(failure, StoreReadError):
            return str(failure)
        logger.error("Unexpected error reading issues", exc_info=failure)
        return f"unexpected {type(failure).__name__}"


class DashboardSession:
    """
    Presentation-facing state for one analytics dashboard.

    Owns the fetch coordinator and the live-update coordinator for the session and remembers the selected
    date range, the newest snapshot and whether a refresh is outstanding.
    """

    def __init__(
        self,
        store: IssueStore,
        fetcher: FetchCoordinator,
        *,
        default_range_days: int = 30,
        debounce_seconds: float = 2.0,
        poll_interval_seconds: float = 300.0,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self._fetcher = fetcher
        self._default_range_days = default_range_days
        self._today = today
        # None until a range is chosen; the trailing default then follows the calendar.
        self._date_range: DateRange | None = None
        self._snapshot: AnalyticsSnapshot | None = None
        self._issued = 0
        self._applied = 0
        self._in_flight = 0
        self.live = LiveUpdateCoordinator(
            store,
            self._scheduled_refresh,
            debounce_seconds=debounce_seconds,
            poll_interval_seconds=poll_interval_seconds,
        )

    @property
    def date_range(self) -> DateRange:
        if self._date_range is None:
            return DateRange.trailing(self._default_range_days, today=self._today())
        return self._date_range

    @property
    def snapshot(self) -> AnalyticsSnapshot | None:
        return self._snapshot

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    @property
    def live_enabled(self) -> bool:
        return self.live.enabled

    async def start(self, live: bool) -> AnalyticsSnapshot:
        self.live.start(live)
        return await self.refresh()

    def stop(self) -> None:
        self.live.stop()

    async def refresh(self, date_range: DateRange | None = None) -> AnalyticsSnapshot:
        """Refresh immediately; the debounce and poll schedules are left untouched."""
        if date_range is not None:
            self._date_range = date_range
        self._issued += 1
        ticket = self._issued
        self._in_flight += 1
        try:
            snapshot = await self._fetcher.refresh(self.date_range)
        finally:
            self._in_flight -= 1
        # An older refresh finishing late must not overwrite a newer snapshot.
        if ticket > self._applied:
            self._applied = ticket
            self._snapshot = snapshot
        return snapshot

    def set_live_mode(self, enabled: bool) -> LiveModeStatus:
        if enabled:
            active = self.live.enable()
            detail = None if active else f"Live updates unavailable, polling instead: {self.live.last_error}"
            return LiveModeStatus(enabled=active, detail=detail)
        self.live.disable()
        return LiveModeStatus(enabled=False)

    async def live_stats(self) -> LiveStats:
        return await self._fetcher.live_stats()

    def status(self) -> DashboardStatus:
        return DashboardStatus(
            live_enabled=self.live.enabled,
            loading=self.loading,
            date_range=self.date_range,
            last_computed_at=self._snapshot.computed_at if self._snapshot else None,
            last_error=self._snapshot.error if self._snapshot else None,
        )

    async def _scheduled_refresh(self, trigger: str) -> None:
        snapshot = await self.refresh()
        logger.info("Dashboard refreshed by %s trigger at %s", trigger, snapshot.computed_at.isoformat())
