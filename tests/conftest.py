from __future__ import annotations

import asyncio
import itertools
import os
from datetime import datetime
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient

# Ensure the application uses an isolated SQLite database for tests
os.environ["SQLITE_URL"] = "sqlite:///./test_civic_issues.db"
# Deterministic data and short timers for tests
os.environ.setdefault("SEED_INITIAL_DATA", "0")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "1")
os.environ.setdefault("LIVE_UPDATES_ENABLED", "1")
os.environ.setdefault("LIVE_DEBOUNCE_SECONDS", "0.2")

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from app.main import app  # noqa: E402
from app.core.database import engine  # noqa: E402
from app.core.migrations import run_migrations  # noqa: E402
from app.schemas.analytics import IssueRecord  # noqa: E402
from app.services.errors import StoreReadError, SubscriptionError  # noqa: E402
from app.services.store import ISSUES_TABLE, ChangeEvent, IssueFilter, SubscriptionHandle  # noqa: E402

TEST_DB_PATH = Path("test_civic_issues.db")


def _reset_db_file() -> None:
    engine.dispose()
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()


@pytest.fixture()
def client() -> TestClient:
    _reset_db_file()
    with TestClient(app) as test_client:
        yield test_client
    _reset_db_file()


@pytest.fixture()
def migrated_db() -> None:
    _reset_db_file()
    run_migrations()
    yield
    _reset_db_file()


_ids = itertools.count(1)


def build_issue(**overrides) -> IssueRecord:
    fields = {
        "id": f"issue-{next(_ids)}",
        "title": "Reported issue",
        "status": "submitted",
        "category": "Roads",
        "priority": "medium",
        "address": "",
        "created_at": datetime(2026, 9, 1, 9, 0),
    }
    fields.update(overrides)
    return IssueRecord(**fields)


@pytest.fixture()
def make_issue():
    return build_issue


class FakeIssueStore:
    """In-memory issue store with switchable read and subscription failures."""

    def __init__(self, records=(), *, failing=(), delays=None, subscribe_error: bool = False) -> None:
        self.records = list(records)
        self.failing = set(failing)
        self.delays = dict(delays or {})
        self.subscribe_error = subscribe_error
        self.reads: list[str] = []
        self.listeners: dict[int, object] = {}
        self._handles = itertools.count(1)

    async def query(self, issue_filter: IssueFilter) -> list[IssueRecord]:
        self.reads.append(issue_filter.view)
        delay = self.delays.get(issue_filter.view)
        if delay:
            await asyncio.sleep(delay)
        if issue_filter.view in self.failing:
            raise StoreReadError(f"{issue_filter.view} read failed: connection reset")
        rows = [record for record in self.records if issue_filter.matches(record)]
        rows.sort(key=lambda record: record.created_at, reverse=issue_filter.newest_first)
        if issue_filter.limit is not None:
            rows = rows[: issue_filter.limit]
        return rows

    def subscribe(self, table: str, on_change) -> SubscriptionHandle:
        if self.subscribe_error:
            raise SubscriptionError("realtime channel refused connection")
        handle = SubscriptionHandle(id=next(self._handles), table=table)
        self.listeners[handle.id] = on_change
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        self.listeners.pop(handle.id, None)

    def emit(self, record_id: str = "issue-x", event_type: str = "UPDATE") -> None:
        for listener in list(self.listeners.values()):
            listener(ChangeEvent(table=ISSUES_TABLE, event_type=event_type, record_id=record_id))


@pytest.fixture()
def fake_store_factory():
    return FakeIssueStore
