from __future__ import annotations

from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError

from app.schemas.analytics import (
    AnalyticsSnapshot,
    DashboardStatus,
    DateRange,
    LiveModeStatus,
    LiveModeUpdate,
    LiveStats,
    RefreshRequest,
)
from app.services.analytics import DashboardSession
from app.services.errors import StoreReadError

router = APIRouter()


def get_dashboard(request: Request) -> DashboardSession:
    dashboard: DashboardSession | None = getattr(request.app.state, "dashboard", None)
    if dashboard is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analytics dashboard is not running",
        )
    return dashboard


@router.get("/snapshot", response_model=AnalyticsSnapshot)
async def read_snapshot(
    start: date | None = Query(default=None, description="First day of the range (YYYY-MM-DD)"),
    end: date | None = Query(default=None, description="Last day of the range (YYYY-MM-DD)"),
    dashboard: DashboardSession = Depends(get_dashboard),
) -> AnalyticsSnapshot:
    """
    Latest snapshot. Passing a range different from the current one counts as a date-range change and
    refreshes immediately.
    """

    if start or end:
        date_range = _resolve_range(start, end, dashboard.date_range.days)
        if date_range != dashboard.date_range or dashboard.snapshot is None:
            return await dashboard.refresh(date_range)
    if dashboard.snapshot is None:
        return await dashboard.refresh()
    return dashboard.snapshot


@router.post("/refresh", response_model=AnalyticsSnapshot)
async def refresh_snapshot(
    payload: RefreshRequest | None = None,
    dashboard: DashboardSession = Depends(get_dashboard),
) -> AnalyticsSnapshot:
    date_range = None
    if payload and (payload.start or payload.end):
        date_range = _resolve_range(payload.start, payload.end, dashboard.date_range.days)
    return await dashboard.refresh(date_range)


@router.put("/live-mode", response_model=LiveModeStatus)
async def update_live_mode(
    payload: LiveModeUpdate,
    dashboard: DashboardSession = Depends(get_dashboard),
) -> LiveModeStatus:
    return dashboard.set_live_mode(payload.enabled)


@router.get("/status", response_model=DashboardStatus)
async def read_status(dashboard: DashboardSession = Depends(get_dashboard)) -> DashboardStatus:
    return dashboard.status()


@router.get("/live-stats", response_model=LiveStats)
async def read_live_stats(dashboard: DashboardSession = Depends(get_dashboard)) -> LiveStats:
    try:
        return await dashboard.live_stats()
    except StoreReadError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


def _resolve_range(start: date | None, end: date | None, span_days: int) -> DateRange:
    """
    Fill a missing bound so the range keeps the current span; reject inverted ranges.
    """

    if start and not end:
        end = start + timedelta(days=span_days - 1)
    elif end and not start:
        start = end - timedelta(days=span_days - 1)
    try:
        return DateRange(start=start, end=end)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start date must be on or before end date",
        ) from exc
