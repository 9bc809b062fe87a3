from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Literal

from pydantic import BaseModel, Field, model_validator

ChangeType = Literal["increase", "decrease", "neutral"]
Severity = Literal["high", "medium", "low"]


class DateRange(BaseModel):
    """Inclusive calendar range selected on the dashboard."""

    start: date
    end: date

    @model_validator(mode="after")
    def validate_order(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError("start date must be on or before end date")
        return self

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.start, time.min)

    @property
    def end_before(self) -> datetime:
        """Exclusive upper bound: midnight after the last day."""
        return datetime.combine(self.end + timedelta(days=1), time.min)

    @classmethod
    def trailing(cls, days: int, *, today: date | None = None) -> "DateRange":
        end = today or datetime.now(timezone.utc).date()
        return cls(start=end - timedelta(days=days - 1), end=end)


class IssueRecord(BaseModel):
    id: str
    title: str = ""
    status: str
    category: str | None = None
    priority: str = "medium"
    address: str | None = None
    department_id: str | None = None
    department_name: str | None = None
    created_at: datetime
    resolved_at: datetime | None = None

    class Config:
        from_attributes = True
        frozen = True


class Metric(BaseModel):
    title: str
    value: float
    display_value: str
    change: float
    change_type: ChangeType
    description: str


class MetricsSummary(BaseModel):
    total: int
    resolved_count: int
    pending_count: int
    in_progress_count: int
    resolution_rate_percent: float
    average_resolution_days: float
    headlines: list[Metric] = Field(default_factory=list)


class CategorySlice(BaseModel):
    name: str
    count: int
    percentage: int


class TimelineBucket(BaseModel):
    week_start: date
    week_end: date
    total_count: int
    resolved_count: int
    pending_count: int


class DepartmentStat(BaseModel):
    department_name: str
    total_count: int
    resolved_count: int
    efficiency_percent: int


class GeoRegionStat(BaseModel):
    region: str
    issue_count: int
    dominant_severity: Severity


class RecentIssue(BaseModel):
    id: str
    title: str
    category: str
    status: str
    priority: str
    created_at: datetime
    department_name: str


class LiveStats(BaseModel):
    """Rolling 24-hour counters shown next to the live indicator."""

    total: int
    resolved: int
    pending: int
    high_priority: int
    last_updated: datetime


class AnalyticsSnapshot(BaseModel):
    metrics: MetricsSummary | None = None
    categories: list[CategorySlice] | None = None
    timeline: list[TimelineBucket] | None = None
    departments: list[DepartmentStat] | None = None
    geographic: list[GeoRegionStat] | None = None
    recent_issues: list[RecentIssue] | None = None
    computed_at: datetime
    error: str | None = None


class RefreshRequest(BaseModel):
    start: date | None = None
    end: date | None = None


class LiveModeUpdate(BaseModel):
    enabled: bool


class LiveModeStatus(BaseModel):
    enabled: bool
    detail: str | None = None


class DashboardStatus(BaseModel):
    live_enabled: bool
    loading: bool
    date_range: DateRange
    last_computed_at: datetime | None
    last_error: str | None
