from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Sequence

from app.models.entities import IssuePriority, IssueStatus
from app.schemas.analytics import (
    CategorySlice,
    ChangeType,
    DateRange,
    DepartmentStat,
    GeoRegionStat,
    IssueRecord,
    LiveStats,
    Metric,
    MetricsSummary,
    RecentIssue,
    TimelineBucket,
)

PENDING_STATUSES = frozenset({IssueStatus.submitted.value, IssueStatus.in_review.value})
UNCATEGORIZED = "Others"
UNASSIGNED = "Unassigned"
OTHER_REGION = "Other Areas"

# Scanned in order; the first token found in the address wins.
REGION_TOKENS: tuple[tuple[str, str], ...] = (
    ("north", "North Zone"),
    ("south", "South Zone"),
    ("east", "East Zone"),
    ("west", "West Zone"),
    ("central", "Central Zone"),
)

# Tie-break order for the dominant severity of a region.
SEVERITY_ORDER: tuple[str, ...] = (
    IssuePriority.high.value,
    IssuePriority.medium.value,
    IssuePriority.low.value,
)

BUCKET_DAYS = 7


@dataclass(frozen=True)
class _Headline:
    total: int
    resolved: int
    pending: int
    in_progress: int
    resolution_rate: float
    average_resolution_days: float

    @property
    def active(self) -> int:
        return self.pending + self.in_progress


def _rate(part: int, total: int, digits: int | None = 1) -> float:
    if not total:
        return 0.0
    return round((part / total) * 100, digits)


def _percent_change(current: float, previous: float) -> float:
    if previous > 0:
        return round((current - previous) / previous * 100, 1)
    return 0.0


def _change_type(change: float) -> ChangeType:
    if change > 0:
        return "increase"
    if change < 0:
        return "decrease"
    return "neutral"


def _is_pending(record: IssueRecord) -> bool:
    return record.status in PENDING_STATUSES


def _is_resolved(record: IssueRecord) -> bool:
    return record.status == IssueStatus.resolved.value


def average_resolution_days(records: Iterable[IssueRecord]) -> float:
    """Mean days between creation and resolution over records that carry a resolution time."""
    durations = [
        (record.resolved_at - record.created_at).total_seconds() / 86400
        for record in records
        if record.resolved_at is not None
    ]
    if not durations:
        return 0.0
    return round(sum(durations) / len(durations), 1)


def _headline(records: Sequence[IssueRecord]) -> _Headline:
    statuses = Counter(record.status for record in records)
    total = len(records)
    resolved = statuses[IssueStatus.resolved.value]
    return _Headline(
        total=total,
        resolved=resolved,
        pending=sum(statuses[status] for status in PENDING_STATUSES),
        in_progress=statuses[IssueStatus.in_progress.value],
        resolution_rate=_rate(resolved, total),
        average_resolution_days=average_resolution_days(records),
    )


def _metric(title: str, value: float, previous: float, display: str, description: str) -> Metric:
    change = _percent_change(value, previous)
    return Metric(
        title=title,
        value=value,
        display_value=display,
        change=change,
        change_type=_change_type(change),
        description=description,
    )


def compute_metrics(current: Sequence[IssueRecord], previous: Sequence[IssueRecord]) -> MetricsSummary:
    """
    Headline counters for the selected range, each compared against the reference window that precedes it.
    """

    now = _headline(current)
    before = _headline(previous)
    headlines = [
        _metric("Total Issues", now.total, before.total, f"{now.total:,}", "vs previous period"),
        _metric(
            "Resolution Rate",
            now.resolution_rate,
            before.resolution_rate,
            f"{now.resolution_rate}%",
            "issues resolved",
        ),
        _metric(
            "Avg Response Time",
            now.average_resolution_days,
            before.average_resolution_days,
            f"{now.average_resolution_days} days",
            "from report to resolution",
        ),
        _metric("Active Issues", now.active, before.active, f"{now.active:,}", "pending & in progress"),
    ]
    return MetricsSummary(
        total=now.total,
        resolved_count=now.resolved,
        pending_count=now.pending,
        in_progress_count=now.in_progress,
        resolution_rate_percent=now.resolution_rate,
        average_resolution_days=now.average_resolution_days,
        headlines=headlines,
    )


def category_breakdown(records: Sequence[IssueRecord]) -> list[CategorySlice]:
    counts: Counter[str] = Counter()
    for record in records:
        counts[(record.category or "").strip() or UNCATEGORIZED] += 1

    total = len(records)
    # Counter keeps first-seen order and sorted() is stable, so equal counts keep source order.
    ordered = sorted(counts.items(), key=lambda item: -item[1])
    return [
        CategorySlice(name=name, count=count, percentage=int(_rate(count, total, None)))
        for name, count in ordered
    ]


def timeline_buckets(date_range: DateRange) -> list[tuple[date, date]]:
    """Split the range into 7-day windows starting at ``start``; the last window is clamped to ``end``."""
    buckets: list[tuple[date, date]] = []
    cursor = date_range.start
    while cursor <= date_range.end:
        bucket_end = min(cursor + timedelta(days=BUCKET_DAYS - 1), date_range.end)
        buckets.append((cursor, bucket_end))
        cursor = bucket_end + timedelta(days=1)
    return buckets


def build_timeline(records: Iterable[IssueRecord], date_range: DateRange) -> list[TimelineBucket]:
    windows = timeline_buckets(date_range)
    totals = [0] * len(windows)
    resolved = [0] * len(windows)
    pending = [0] * len(windows)

    for record in records:
        created = record.created_at.date()
        if created < date_range.start or created > date_range.end:
            continue
        index = (created - date_range.start).days // BUCKET_DAYS
        totals[index] += 1
        if _is_resolved(record):
            resolved[index] += 1
        elif _is_pending(record):
            pending[index] += 1

    return [
        TimelineBucket(
            week_start=start,
            week_end=end,
            total_count=totals[index],
            resolved_count=resolved[index],
            pending_count=pending[index],
        )
        for index, (start, end) in enumerate(windows)
    ]


def department_performance(records: Iterable[IssueRecord]) -> list[DepartmentStat]:
    totals: Counter[str] = Counter()
    resolved: Counter[str] = Counter()
    for record in records:
        name = record.department_name if record.department_id and record.department_name else UNASSIGNED
        totals[name] += 1
        if _is_resolved(record):
            resolved[name] += 1

    stats = [
        DepartmentStat(
            department_name=name,
            total_count=total,
            resolved_count=resolved[name],
            efficiency_percent=int(_rate(resolved[name], total, None)),
        )
        for name, total in totals.items()
    ]
    stats.sort(key=lambda stat: (-stat.efficiency_percent, -stat.total_count))
    return stats


def classify_region(address: str | None) -> str:
    """
    Map a free-text address to a coarse zone using ``REGION_TOKENS``.

    Matching is a case-insensitive substring search, so "Northgate" lands in the North Zone.
    """

    lowered = (address or "").lower()
    for token, region in REGION_TOKENS:
        if token in lowered:
            return region
    return OTHER_REGION


def _severity_bucket(priority: str | None) -> str:
    if priority in (IssuePriority.high.value, IssuePriority.medium.value):
        return priority
    return IssuePriority.low.value


def dominant_severity(tally: Counter[str]) -> str:
    # max() keeps the first maximum, so SEVERITY_ORDER settles ties.
    return max(SEVERITY_ORDER, key=lambda severity: tally[severity])


def geographic_breakdown(records: Iterable[IssueRecord]) -> list[GeoRegionStat]:
    regions: dict[str, Counter[str]] = {}
    for record in records:
        tally = regions.setdefault(classify_region(record.address), Counter())
        tally[_severity_bucket(record.priority)] += 1

    stats = [
        GeoRegionStat(
            region=region,
            issue_count=sum(tally.values()),
            dominant_severity=dominant_severity(tally),
        )
        for region, tally in regions.items()
    ]
    stats.sort(key=lambda stat: -stat.issue_count)
    return stats


def recent_issues_feed(records: Iterable[IssueRecord], limit: int = 10) -> list[RecentIssue]:
    newest = sorted(records, key=lambda record: record.created_at, reverse=True)[:limit]
    return [
        RecentIssue(
            id=record.id,
            title=record.title,
            category=(record.category or "").strip() or UNCATEGORIZED,
            status=record.status,
            priority=record.priority,
            created_at=record.created_at,
            department_name=record.department_name or UNASSIGNED,
        )
        for record in newest
    ]


def compute_live_stats(records: Iterable[IssueRecord], now: datetime) -> LiveStats:
    since = now - timedelta(hours=24)
    window = [record for record in records if record.created_at >= since]
    return LiveStats(
        total=len(window),
        resolved=sum(1 for record in window if _is_resolved(record)),
        pending=sum(1 for record in window if _is_pending(record)),
        high_priority=sum(1 for record in window if record.priority == IssuePriority.high.value),
        last_updated=now,
    )
