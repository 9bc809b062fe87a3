from __future__ import annotations

from datetime import datetime, timedelta

from app.core.database import SessionLocal
from app.models.entities import Issue, IssuePriority, IssueStatus
from app.services.issues import get_or_create_department, record_issue

DEFAULT_DEPARTMENTS = [
    "Public Works",
    "Sanitation",
    "Electrical",
    "Water Supply",
    "Traffic Police",
]

# (title, category, priority, address, department, status, days ago, days to resolve)
SAMPLE_ISSUES = [
    ("Pothole near bus stop", "Roads", "high", "North Park Road, Ward 4", "Public Works", "resolved", 2, 1),
    ("Garbage not collected", "Sanitation", "medium", "South Market Lane", "Sanitation", "in_progress", 3, None),
    ("Streetlight flickering", "Electricity", "low", "12 East Avenue", "Electrical", "submitted", 4, None),
    ("Water main leak", "Water", "high", "West End Colony", "Water Supply", "assigned", 6, None),
    ("Broken signal at junction", "Traffic", "high", "Central Square", "Traffic Police", "resolved", 9, 2),
    ("Overflowing drain", "Sanitation", "medium", "North Gate Road", "Sanitation", "in_review", 11, None),
    ("Fallen tree on footpath", None, "medium", "Lake View Road", None, "submitted", 13, None),
    ("Damaged road divider", "Roads", "low", "South Bypass", "Public Works", "resolved", 17, 5),
    ("Low water pressure", "Water", "medium", "East Hill Street", "Water Supply", "closed", 22, None),
    ("Illegal dumping", "Sanitation", "high", "Industrial Area Phase 2", None, "submitted", 27, None),
    ("Sinkhole on main road", "Roads", "high", "North Avenue", "Public Works", "resolved", 38, 3),
    ("Noise from construction", "Others", "low", "West Park", None, "closed", 45, None),
]


def seed_initial_data() -> None:
    db = SessionLocal()
    try:
        departments = {name: get_or_create_department(db, name) for name in DEFAULT_DEPARTMENTS}
        db.commit()

        if db.query(Issue.id).first() is not None:
            return

        now = datetime.utcnow()
        for title, category, priority, address, department, status, days_ago, resolve_days in SAMPLE_ISSUES:
            created_at = now - timedelta(days=days_ago)
            record_issue(
                db,
                title=title,
                category=category,
                priority=IssuePriority(priority).value,
                address=address,
                department_id=departments[department].id if department else None,
                status=IssueStatus(status).value,
                created_at=created_at,
                resolved_at=created_at + timedelta(days=resolve_days) if resolve_days is not None else None,
                commit=False,
            )
        db.commit()
    finally:
        db.close()
