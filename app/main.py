from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.migrations import run_migrations
from app.routers import analytics
from app.seeds.seed_data import seed_initial_data
from app.services.analytics import DashboardSession, FetchCoordinator
from app.services.store import SqlAlchemyIssueStore

logger = logging.getLogger("civic_analytics")
logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Civic Issue Analytics API", version="0.1.0")

cors_origins = settings.cors_allow_origins or ["*"]
allow_credentials = "*" not in cors_origins
if "*" in cors_origins:
    logger.warning("CORS_ALLOW_ORIGINS includes '*'; do not use this in production")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_origin_regex=settings.cors_allow_origin_regex,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    return response


@app.on_event("startup")
async def startup_event() -> None:
    if settings.run_migrations_on_startup:
        run_migrations()
    if settings.seed_initial_data:
        seed_initial_data()
    await _start_dashboard()


@app.on_event("shutdown")
def shutdown_event() -> None:
    _stop_dashboard()


app.include_router(analytics.router, prefix="/analytics", tags=["analytics"])


async def _start_dashboard() -> None:
    if getattr(app.state, "dashboard", None):
        return

    store = SqlAlchemyIssueStore()
    fetcher = FetchCoordinator(
        store,
        trend_window_days=settings.trend_window_days,
        recent_limit=settings.recent_issues_limit,
        read_timeout=settings.read_timeout,
    )
    dashboard = DashboardSession(
        store,
        fetcher,
        default_range_days=settings.default_range_days,
        debounce_seconds=settings.live_debounce_seconds,
        poll_interval_seconds=settings.poll_interval_seconds,
    )
    app.state.dashboard = dashboard
    snapshot = await dashboard.start(live=settings.live_updates_enabled)
    logger.info(
        "Analytics dashboard started (live=%s, range=%s..%s)",
        dashboard.live_enabled,
        dashboard.date_range.start,
        dashboard.date_range.end,
    )
    if snapshot.error:
        logger.warning("Initial analytics snapshot is incomplete: %s", snapshot.error)


def _stop_dashboard() -> None:
    dashboard = getattr(app.state, "dashboard", None)
    if dashboard:
        dashboard.stop()
        app.state.dashboard = None


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "ok"}
