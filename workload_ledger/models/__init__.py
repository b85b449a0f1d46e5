"""ORM model package."""

from workload_ledger.models.entities import (
    AdminNotice,
    Initiative,
    InitiativeStatus,
    Milestone,
    Notification,
    NotificationPriority,
    NotificationType,
    Project,
    ProjectAssignment,
    ProjectStatus,
    User,
    UserRole,
)

__all__ = [
    "AdminNotice",
    "Initiative",
    "InitiativeStatus",
    "Milestone",
    "Notification",
    "NotificationPriority",
    "NotificationType",
    "Project",
    "ProjectAssignment",
    "ProjectStatus",
    "User",
    "UserRole",
]
