from __future__ import annotations

import time
from datetime import datetime, timedelta

from fastapi.testclient import TestClient

from app.core.database import SessionLocal
from app.services.issues import get_or_create_department, record_issue


def create_issues(count: int = 3, *, days_ago: int = 1) -> list[str]:
    created_at = datetime.utcnow() - timedelta(days=days_ago)
    ids: list[str] = []
    with SessionLocal() as db:
        department = get_or_create_department(db, "Public Works")
        for index in range(count):
            issue = record_issue(
                db,
                title=f"Pothole {index}",
                category="Roads",
                priority="high",
                address="North Park Road",
                department_id=department.id,
                status="resolved" if index == 0 else "submitted",
                created_at=created_at,
            )
            ids.append(issue.id)
    return ids


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_snapshot_on_empty_store_has_zero_values(client: TestClient) -> None:
    response = client.get("/analytics/snapshot")
    assert response.status_code == 200, response.text
    payload = response.json()

    assert payload["error"] is None
    assert payload["metrics"]["total"] == 0
    assert payload["metrics"]["resolution_rate_percent"] == 0
    assert payload["categories"] == []
    assert payload["departments"] == []
    assert payload["geographic"] == []
    assert payload["recent_issues"] == []
    assert len(payload["timeline"]) == 5
    assert all(bucket["total_count"] == 0 for bucket in payload["timeline"])


def test_manual_refresh_picks_up_new_issues(client: TestClient) -> None:
    client.put("/analytics/live-mode", json={"enabled": False})
    create_issues(3)

    response = client.post("/analytics/refresh")
    assert response.status_code == 200, response.text
    payload = response.json()

    assert payload["metrics"]["total"] == 3
    assert payload["metrics"]["resolved_count"] == 1
    assert payload["categories"] == [{"name": "Roads", "count": 3, "percentage": 100}]
    assert payload["geographic"] == [{"region": "North Zone", "issue_count": 3, "dominant_severity": "high"}]
    assert payload["departments"][0]["department_name"] == "Public Works"
    assert payload["departments"][0]["efficiency_percent"] == 33
    assert len(payload["recent_issues"]) == 3


def test_snapshot_with_new_range_refreshes(client: TestClient) -> None:
    create_issues(2, days_ago=40)
    today = datetime.utcnow().date()

    default = client.get("/analytics/snapshot").json()
    assert default["metrics"]["total"] == 0

    start = today - timedelta(days=59)
    response = client.get("/analytics/snapshot", params={"start": start.isoformat(), "end": today.isoformat()})
    assert response.status_code == 200
    payload = response.json()
    assert payload["metrics"]["total"] == 2
    assert len(payload["timeline"]) == 9

    status = client.get("/analytics/status").json()
    assert status["date_range"] == {"start": start.isoformat(), "end": today.isoformat()}


def test_inverted_range_is_rejected(client: TestClient) -> None:
    response = client.get("/analytics/snapshot", params={"start": "2026-09-10", "end": "2026-09-01"})
    assert response.status_code == 400

    response = client.post("/analytics/refresh", json={"start": "2026-09-10", "end": "2026-09-01"})
    assert response.status_code == 400


def test_partial_range_keeps_current_span(client: TestClient) -> None:
    response = client.post("/analytics/refresh", json={"end": "2026-09-30"})
    assert response.status_code == 200
    status = client.get("/analytics/status").json()
    assert status["date_range"] == {"start": "2026-09-01", "end": "2026-09-30"}


def test_live_mode_toggle_and_status(client: TestClient) -> None:
    status = client.get("/analytics/status").json()
    assert status["live_enabled"] is True
    assert status["loading"] is False
    assert status["last_computed_at"] is not None

    response = client.put("/analytics/live-mode", json={"enabled": False})
    assert response.status_code == 200
    assert response.json() == {"enabled": False, "detail": None}
    assert client.get("/analytics/status").json()["live_enabled"] is False

    response = client.put("/analytics/live-mode", json={"enabled": True})
    assert response.json()["enabled"] is True


def test_committed_issue_triggers_live_refresh(client: TestClient) -> None:
    before = client.get("/analytics/status").json()["last_computed_at"]

    create_issues(1)

    assert wait_for(lambda: client.get("/analytics/status").json()["last_computed_at"] != before)
    snapshot = client.get("/analytics/snapshot").json()
    assert snapshot["metrics"]["total"] == 1


def test_live_stats_reports_last_day(client: TestClient) -> None:
    create_issues(2, days_ago=0)
    create_issues(1, days_ago=3)

    response = client.get("/analytics/live-stats")
    assert response.status_code == 200
    payload = response.json()
    assert payload["total"] == 2
    assert payload["resolved"] == 1
    assert payload["pending"] == 1
    assert payload["high_priority"] == 2
