from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Literal, Protocol

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from app.core.database import SessionLocal
from app.models.entities import Issue
from app.schemas.analytics import IssueRecord
from app.services.errors import StoreReadError, SubscriptionError

logger = logging.getLogger(__name__)

ISSUES_TABLE = Issue.__tablename__
_PENDING_CHANGES_KEY = "pending_issue_changes"

ChangeType = Literal["INSERT", "UPDATE", "DELETE"]


@dataclass(frozen=True)
class IssueFilter:
    """
    Point-in-time read against the issue table.

    ``view`` names the dashboard view the read feeds; it is used for logging and error reporting only.
    """

    view: str
    created_from: datetime | None = None
    created_before: datetime | None = None
    newest_first: bool = False
    limit: int | None = None

    def matches(self, record: IssueRecord) -> bool:
        if self.created_from is not None and record.created_at < self.created_from:
            return False
        if self.created_before is not None and record.created_at >= self.created_before:
            return False
        return True


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: ChangeType
    record_id: str


@dataclass(frozen=True)
class SubscriptionHandle:
    id: int
    table: str


ChangeListener = Callable[[ChangeEvent], None]


class IssueStore(Protocol):
    async def query(self, issue_filter: IssueFilter) -> list[IssueRecord]: ...

    def subscribe(self, table: str, on_change: ChangeListener) -> SubscriptionHandle: ...

    def unsubscribe(self, handle: SubscriptionHandle) -> None: ...


@dataclass
class _Subscriber:
    table: str
    callback: ChangeListener
    loop: asyncio.AbstractEventLoop


class ChangeFeed:
    """
    In-process change notifications for committed writes to the issue table.

    Changes are collected on flush and published only after the transaction commits. Listeners run on the
    event loop they subscribed from, whichever thread performed the commit.
    """

    tables = frozenset({ISSUES_TABLE})

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscribers: dict[int, _Subscriber] = {}

    def install(self, session_factory: sessionmaker) -> None:
        event.listen(session_factory, "after_flush", self._collect)
        event.listen(session_factory, "after_commit", self._publish)
        event.listen(session_factory, "after_rollback", self._discard)

    def add(self, table: str, callback: ChangeListener, loop: asyncio.AbstractEventLoop) -> SubscriptionHandle:
        with self._lock:
            handle = SubscriptionHandle(id=next(self._ids), table=table)
            self._subscribers[handle.id] = _Subscriber(table=table, callback=callback, loop=loop)
        return handle

    def remove(self, handle: SubscriptionHandle) -> None:
        with self._lock:
            self._subscribers.pop(handle.id, None)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def dispatch(self, change: ChangeEvent) -> None:
        with self._lock:
            targets = [sub for sub in self._subscribers.values() if sub.table == change.table]
        for sub in targets:
            if sub.loop.is_closed():
                continue
            try:
                sub.loop.call_soon_threadsafe(sub.callback, change)
            except RuntimeError:
                # Loop closed between the check and the call.
                logger.debug("Dropping %s change for closed event loop", change.table)

    def _collect(self, session: Session, _flush_context) -> None:
        pending: list[ChangeEvent] = session.info.setdefault(_PENDING_CHANGES_KEY, [])
        for event_type, objects in (
            ("INSERT", session.new),
            ("UPDATE", session.dirty),
            ("DELETE", session.deleted),
        ):
            for obj in objects:
                if isinstance(obj, Issue):
                    pending.append(ChangeEvent(table=ISSUES_TABLE, event_type=event_type, record_id=obj.id))

    def _publish(self, session: Session) -> None:
        for change in session.info.pop(_PENDING_CHANGES_KEY, []):
            self.dispatch(change)

    def _discard(self, session: Session) -> None:
        session.info.pop(_PENDING_CHANGES_KEY, None)


change_feed = ChangeFeed()
change_feed.install(SessionLocal)


class SqlAlchemyIssueStore:
    """Issue store client backed by the application database."""

    def __init__(self, session_factory: sessionmaker = SessionLocal, feed: ChangeFeed = change_feed) -> None:
        self._session_factory = session_factory
        self._feed = feed

    async def query(self, issue_filter: IssueFilter) -> list[IssueRecord]:
        try:
            return await asyncio.to_thread(self._query_sync, issue_filter)
        except SQLAlchemyError as exc:
            raise StoreReadError(f"{issue_filter.view} read failed: {exc}") from exc

    def _query_sync(self, issue_filter: IssueFilter) -> list[IssueRecord]:
        with self._session_factory() as db:
            query = db.query(Issue).options(joinedload(Issue.department))
            if issue_filter.created_from is not None:
                query = query.filter(Issue.created_at >= issue_filter.created_from)
            if issue_filter.created_before is not None:
                query = query.filter(Issue.created_at < issue_filter.created_before)
            if issue_filter.newest_first:
                query = query.order_by(Issue.created_at.desc())
            else:
                query = query.order_by(Issue.created_at.asc())
            if issue_filter.limit is not None:
                query = query.limit(issue_filter.limit)
            return [IssueRecord.model_validate(issue) for issue in query.all()]

    def subscribe(self, table: str, on_change: ChangeListener) -> SubscriptionHandle:
        if table not in self._feed.tables:
            raise SubscriptionError(f"No change feed for table {table!r}")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise SubscriptionError("Change feed subscriptions require a running event loop") from exc
        handle = self._feed.add(table, on_change, loop)
        logger.info("Subscribed to %s changes (subscription %s)", table, handle.id)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        self._feed.remove(handle)
        logger.info("Closed %s subscription %s", handle.table, handle.id)
