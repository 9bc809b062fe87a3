from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from app.models.entities import Department, Issue, IssuePriority, IssueStatus


def get_or_create_department(db: Session, name: str) -> Department:
    department = db.query(Department).filter(Department.name == name).first()
    if department:
        return department
    department = Department(name=name)
    db.add(department)
    db.flush()
    return department


def record_issue(
    db: Session,
    *,
    title: str,
    description: str | None = None,
    category: str | None = None,
    priority: str = IssuePriority.medium.value,
    address: str | None = None,
    department_id: str | None = None,
    status: str = IssueStatus.submitted.value,
    created_at: datetime | None = None,
    resolved_at: datetime | None = None,
    commit: bool = True,
) -> Issue:
    """
    Persist an issue coming from the intake flow.

    ``resolved_at`` is only kept for resolved issues; resolving without a timestamp stamps the current time.
    """

    status = IssueStatus(status).value
    priority = IssuePriority(priority).value
    created = created_at or datetime.utcnow()
    if status == IssueStatus.resolved.value:
        resolved_at = resolved_at or datetime.utcnow()
    else:
        resolved_at = None
    issue = Issue(
        title=title,
        description=description,
        category=category,
        priority=priority,
        address=address,
        department_id=department_id,
        status=status,
        created_at=created,
        resolved_at=resolved_at,
    )
    db.add(issue)
    if commit:
        db.commit()
        db.refresh(issue)
    else:
        db.flush()
    return issue


def update_issue_status(db: Session, issue_id: str, status: str, *, at: datetime | None = None) -> Issue:
    status = IssueStatus(status).value
    issue = db.get(Issue, issue_id)
    if issue is None:
        raise LookupError(f"Issue {issue_id} not found")
    issue.status = status
    if status == IssueStatus.resolved.value:
        issue.resolved_at = at or datetime.utcnow()
    else:
        issue.resolved_at = None
    db.commit()
    db.refresh(issue)
    return issue
