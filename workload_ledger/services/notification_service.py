"""Persisted notification feed on top of the pure rule engine."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workload_ledger.core.auth import PROJECT_WIDE_VIEW_ROLES
from workload_ledger.core.config import get_settings
from workload_ledger.core.errors import NotFound, UnknownEmployee
from workload_ledger.models.entities import AdminNotice, Notification, Project, User, UserRole
from workload_ledger.repositories.workload_repository import WorkloadRepository
from workload_ledger.services.capacity_calculator import CapacityCalculator
from workload_ledger.services.notification_rules import (
    FeedEvaluation,
    FeedNotification,
    FeedSnapshot,
    RuleThresholds,
    as_naive_utc,
    evaluate_notifications,
)

logger = logging.getLogger(__name__)


class AlertDispatcher(Protocol):
    def dispatch(self, recipient: User, notification: FeedNotification) -> None: ...


class LoggingAlertDispatcher:
    """Default dispatcher: surfaced alerts go to the application log."""

    def dispatch(self, recipient: User, notification: FeedNotification) -> None:
        logger.warning(
            "Alert for %s: %s - %s",
            recipient.email,
            notification.title,
            notification.message,
            extra={"recipient_id": recipient.id, "notification_key": notification.key},
        )


class NotificationService:
    def __init__(
        self,
        db: Session,
        *,
        dispatcher: AlertDispatcher | None = None,
        thresholds: RuleThresholds | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.db = db
        self.repo = WorkloadRepository(db)
        self.calculator = CapacityCalculator(db, self.repo)
        self.dispatcher = dispatcher or LoggingAlertDispatcher()
        self.thresholds = thresholds or RuleThresholds.from_settings(get_settings())
        self.clock = clock

    # ---------- Snapshot ----------
    def _visible_projects(self, recipient: User) -> list[Project]:
        if recipient.role in PROJECT_WIDE_VIEW_ROLES:
            return self.repo.list_projects()

        # Ownership grants visibility for any role.
        visible: dict[UUID, Project] = {}
        for project in self.repo.list_projects_for_manager(recipient.id):
            visible[project.id] = project
        for project in self.repo.list_projects_for_member(recipient.id):
            visible.setdefault(project.id, project)
        return list(visible.values())

    def build_snapshot(self, recipient: User) -> FeedSnapshot:
        if recipient.role is UserRole.ADMIN:
            return FeedSnapshot(recipient=recipient, admin_notices=self.repo.list_admin_notices())

        projects = self._visible_projects(recipient)
        project_ids = [project.id for project in projects]
        return FeedSnapshot(
            recipient=recipient,
            projects=projects,
            milestones_by_project=self.repo.list_milestones_for_projects(project_ids),
            assignment_counts=self.repo.assignment_counts_for_projects(project_ids),
            initiatives=self.repo.list_initiatives_for_user(recipient.id),
            workload=self.calculator.compute_for_user(recipient),
        )

    @staticmethod
    def to_feed(row: Notification) -> FeedNotification:
        return FeedNotification(
            key=row.key,
            rule=row.rule,
            type=row.type,
            priority=row.priority,
            title=row.title,
            message=row.message,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            read=row.read,
            created_at=as_naive_utc(row.created_at),
        )

    def _require_recipient(self, recipient_id: UUID) -> User:
        recipient = self.repo.get_user(recipient_id)
        if recipient is None:
            raise UnknownEmployee(recipient_id)
        return recipient

    # ---------- Evaluation ----------
    def evaluate_for_user(self, recipient_id: UUID, *, now: datetime | None = None) -> list[FeedNotification]:
        """Re-evaluate one recipient's feed and persist the difference."""

        recipient = self._require_recipient(recipient_id)
        now = now or self.clock()
        previous = [self.to_feed(row) for row in self.repo.list_notifications(recipient.id)]
        evaluation = evaluate_notifications(
            self.build_snapshot(recipient),
            previous,
            now=now,
            thresholds=self.thresholds,
        )

        try:
            self._persist(recipient, evaluation)
            self.db.commit()
        except IntegrityError:
            # Another scan for this recipient stored the same keys first.
            self.db.rollback()
            logger.info(
                "Concurrent feed evaluation for %s; returning stored feed",
                recipient.id,
                extra={"recipient_id": recipient.id},
            )
            return self.list_notifications(recipient.id)

        for notification in evaluation.surfaced:
            self.dispatcher.dispatch(recipient, notification)

        if evaluation.created or evaluation.dropped_keys:
            logger.info(
                "Feed for %s: %d new, %d cleared, %d surfaced",
                recipient.id,
                len(evaluation.created),
                len(evaluation.dropped_keys),
                len(evaluation.surfaced),
                extra={"recipient_id": recipient.id},
            )
        return evaluation.notifications

    def _persist(self, recipient: User, evaluation: FeedEvaluation) -> None:
        self.repo.delete_notifications(recipient.id, evaluation.dropped_keys)
        for row in evaluation.created:
            self.repo.add_notification(
                Notification(
                    recipient_id=recipient.id,
                    key=row.key,
                    rule=row.rule,
                    type=row.type,
                    priority=row.priority,
                    title=row.title,
                    message=row.message,
                    entity_type=row.entity_type,
                    entity_id=row.entity_id,
                    read=row.read,
                    created_at=row.created_at,
                )
            )

    # ---------- Feed operations ----------
    def list_notifications(self, recipient_id: UUID) -> list[FeedNotification]:
        rows = [self.to_feed(row) for row in self.repo.list_notifications(recipient_id)]
        return sorted(rows, key=lambda row: (row.created_at, row.key), reverse=True)

    def _require_notification(self, recipient_id: UUID, key: str) -> Notification:
        row = self.repo.get_notification(recipient_id, key)
        if row is None:
            raise NotFound("Notification")
        return row

    def mark_read(self, recipient_id: UUID, key: str) -> FeedNotification:
        row = self._require_notification(recipient_id, key)
        row.read = True
        self.db.commit()
        self.db.refresh(row)
        return self.to_feed(row)

    def mark_all_read(self, recipient_id: UUID) -> int:
        rows = [row for row in self.repo.list_notifications(recipient_id) if not row.read]
        for row in rows:
            row.read = True
        self.db.commit()
        return len(rows)

    def delete_notification(self, recipient_id: UUID, key: str) -> None:
        self.repo.delete_notification(self._require_notification(recipient_id, key))
        self.db.commit()

    def post_admin_notice(self, *, title: str, message: str, subject_user_id: UUID | None = None) -> AdminNotice:
        notice = self.repo.add_admin_notice(
            AdminNotice(
                title=title,
                message=message,
                subject_user_id=subject_user_id,
                created_at=self.clock(),
            )
        )
        self.db.commit()
        self.db.refresh(notice)
        return notice

    @staticmethod
    def serialize(notification: FeedNotification) -> dict[str, object]:
        return {
            "key": notification.key,
            "rule": notification.rule,
            "type": notification.type.value,
            "priority": notification.priority.value,
            "title": notification.title,
            "message": notification.message,
            "entity_type": notification.entity_type,
            "entity_id": notification.entity_id,
            "read": notification.read,
            "created_at": notification.created_at.isoformat(),
        }
