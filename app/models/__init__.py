from .entities import (
    Department,
    Issue,
    IssuePriority,
    IssueStatus,
)

__all__ = [
    "Department",
    "Issue",
    "IssuePriority",
    "IssueStatus",
]
