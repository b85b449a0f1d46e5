"""Repository helpers for users, projects, initiatives and the notification feed."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from workload_ledger.models.entities import (
    AdminNotice,
    Initiative,
    InitiativeStatus,
    Milestone,
    Notification,
    Project,
    ProjectAssignment,
    ProjectStatus,
    User,
    UserRole,
)

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")


class WorkloadRepository:
    """Persistence operations backing the capacity ledger and rule engine."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Users ----------
    def get_user(self, user_id: UUID) -> User | None:
        return self.db.scalar(select(User).where(User.id == user_id))

    def lock_user(self, user_id: UUID) -> User | None:
        """Load user row under ``SELECT ... FOR UPDATE``.

        Serialises capacity check-and-write for one employee until the
        surrounding transaction ends. Backends without row locks ignore it.
        """

        return self.db.scalar(select(User).where(User.id == user_id).with_for_update())

    def get_user_by_email(self, email: str) -> User | None:
        return self.db.scalar(select(User).where(User.email == email))

    def list_users(self, *, active_only: bool = False, roles: set[UserRole] | None = None) -> list[User]:
        statement = select(User)
        if active_only:
            statement = statement.where(User.active.is_(True))
        if roles:
            statement = statement.where(User.role.in_(roles))
        return self.db.scalars(statement.order_by(User.display_name.asc(), User.email.asc())).all()

    def add_user(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    # ---------- Projects ----------
    def get_project(self, project_id: UUID) -> Project | None:
        return self.db.scalar(select(Project).where(Project.id == project_id))

    def list_projects(self) -> list[Project]:
        return self.db.scalars(select(Project).order_by(Project.created_at.desc(), Project.title.asc())).all()

    def list_projects_for_manager(self, manager_id: UUID) -> list[Project]:
        return self.db.scalars(
            select(Project)
            .where(Project.manager_id == manager_id)
            .order_by(Project.created_at.desc(), Project.title.asc())
        ).all()

    def list_projects_for_member(self, employee_id: UUID) -> list[Project]:
        return self.db.scalars(
            select(Project)
            .join(ProjectAssignment, ProjectAssignment.project_id == Project.id)
            .where(ProjectAssignment.employee_id == employee_id)
            .order_by(Project.created_at.desc(), Project.title.asc())
        ).all()

    def list_active_projects_for_employee(self, employee_id: UUID) -> list[Project]:
        return self.db.scalars(
            select(Project)
            .join(ProjectAssignment, ProjectAssignment.project_id == Project.id)
            .where(
                and_(
                    ProjectAssignment.employee_id == employee_id,
                    Project.status == ProjectStatus.ACTIVE,
                )
            )
            .order_by(Project.title.asc())
        ).all()

    def add_project(self, project: Project) -> Project:
        self.db.add(project)
        self.db.flush()
        return project

    def delete_project(self, project: Project) -> None:
        self.db.execute(delete(ProjectAssignment).where(ProjectAssignment.project_id == project.id))
        self.db.execute(delete(Milestone).where(Milestone.project_id == project.id))
        self.db.delete(project)
        self.db.flush()

    # ---------- Assignments ----------
    def list_assignments_for_project(self, project_id: UUID) -> list[ProjectAssignment]:
        return self.db.scalars(
            select(ProjectAssignment)
            .where(ProjectAssignment.project_id == project_id)
            .order_by(ProjectAssignment.assigned_at.asc(), ProjectAssignment.id.asc())
        ).all()

    def list_active_assignments_for_employee(
        self, employee_id: UUID
    ) -> list[tuple[ProjectAssignment, Project]]:
        rows = self.db.execute(
            select(ProjectAssignment, Project)
            .join(Project, Project.id == ProjectAssignment.project_id)
            .where(
                and_(
                    ProjectAssignment.employee_id == employee_id,
                    Project.status == ProjectStatus.ACTIVE,
                )
            )
            .order_by(Project.title.asc())
        ).all()
        return [(assignment, project) for assignment, project in rows]

    def get_assignment(self, project_id: UUID, employee_id: UUID) -> ProjectAssignment | None:
        return self.db.scalar(
            select(ProjectAssignment).where(
                and_(
                    ProjectAssignment.project_id == project_id,
                    ProjectAssignment.employee_id == employee_id,
                )
            )
        )

    def add_assignment(self, assignment: ProjectAssignment) -> ProjectAssignment:
        self.db.add(assignment)
        self.db.flush()
        return assignment

    def delete_assignment(self, assignment: ProjectAssignment) -> None:
        self.db.delete(assignment)
        self.db.flush()

    def sum_active_project_involvement(self, employee_id: UUID) -> Decimal:
        total = self.db.scalar(
            select(func.coalesce(func.sum(ProjectAssignment.involvement_percentage), ZERO))
            .join(Project, Project.id == ProjectAssignment.project_id)
            .where(
                and_(
                    ProjectAssignment.employee_id == employee_id,
                    Project.status == ProjectStatus.ACTIVE,
                )
            )
        )
        return Decimal(str(total or ZERO)).quantize(Q2)

    def assignment_counts_for_projects(self, project_ids: list[UUID]) -> dict[UUID, int]:
        if not project_ids:
            return {}
        rows = self.db.execute(
            select(ProjectAssignment.project_id, func.count())
            .where(ProjectAssignment.project_id.in_(project_ids))
            .group_by(ProjectAssignment.project_id)
        ).all()
        counts = {project_id: 0 for project_id in project_ids}
        counts.update({project_id: count for project_id, count in rows})
        return counts

    # ---------- Milestones ----------
    def list_milestones(self, project_id: UUID) -> list[Milestone]:
        return self.db.scalars(
            select(Milestone)
            .where(Milestone.project_id == project_id)
            .order_by(Milestone.sequence_no.asc(), Milestone.due_date.asc())
        ).all()

    def list_milestones_for_projects(self, project_ids: list[UUID]) -> dict[UUID, list[Milestone]]:
        grouped: dict[UUID, list[Milestone]] = {project_id: [] for project_id in project_ids}
        if not project_ids:
            return grouped
        rows = self.db.scalars(
            select(Milestone)
            .where(Milestone.project_id.in_(project_ids))
            .order_by(Milestone.project_id.asc(), Milestone.sequence_no.asc(), Milestone.due_date.asc())
        ).all()
        for milestone in rows:
            grouped[milestone.project_id].append(milestone)
        return grouped

    def get_milestone(self, milestone_id: UUID) -> Milestone | None:
        return self.db.scalar(select(Milestone).where(Milestone.id == milestone_id))

    def next_milestone_sequence(self, project_id: UUID) -> int:
        current = self.db.scalar(
            select(func.max(Milestone.sequence_no)).where(Milestone.project_id == project_id)
        )
        return 1 if current is None else current + 1

    def add_milestone(self, milestone: Milestone) -> Milestone:
        self.db.add(milestone)
        self.db.flush()
        return milestone

    # ---------- Initiatives ----------
    def get_initiative(self, initiative_id: UUID) -> Initiative | None:
        return self.db.scalar(select(Initiative).where(Initiative.id == initiative_id))

    def list_initiatives(self) -> list[Initiative]:
        return self.db.scalars(select(Initiative).order_by(Initiative.created_at.desc())).all()

    def list_initiatives_for_user(self, user_id: UUID) -> list[Initiative]:
        return self.db.scalars(
            select(Initiative)
            .where(or_(Initiative.created_by == user_id, Initiative.assigned_to == user_id))
            .order_by(Initiative.created_at.desc())
        ).all()

    def list_active_initiatives_for_employee(self, employee_id: UUID) -> list[Initiative]:
        return self.db.scalars(
            select(Initiative)
            .where(
                and_(
                    Initiative.assigned_to == employee_id,
                    Initiative.status == InitiativeStatus.ACTIVE,
                )
            )
            .order_by(Initiative.created_at.asc())
        ).all()

    def sum_active_initiative_workload(self, employee_id: UUID, *, exclude_id: UUID | None = None) -> Decimal:
        conditions = [
            Initiative.assigned_to == employee_id,
            Initiative.status == InitiativeStatus.ACTIVE,
        ]
        if exclude_id is not None:
            conditions.append(Initiative.id != exclude_id)
        total = self.db.scalar(
            select(func.coalesce(func.sum(Initiative.workload_percentage), ZERO)).where(and_(*conditions))
        )
        return Decimal(str(total or ZERO)).quantize(Q2)

    def add_initiative(self, initiative: Initiative) -> Initiative:
        self.db.add(initiative)
        self.db.flush()
        return initiative

    # ---------- Notifications ----------
    def list_notifications(self, recipient_id: UUID) -> list[Notification]:
        return self.db.scalars(
            select(Notification)
            .where(Notification.recipient_id == recipient_id)
            .order_by(Notification.created_at.desc(), Notification.key.asc())
        ).all()

    def get_notification(self, recipient_id: UUID, key: str) -> Notification | None:
        return self.db.scalar(
            select(Notification).where(
                and_(Notification.recipient_id == recipient_id, Notification.key == key)
            )
        )

    def add_notification(self, notification: Notification) -> Notification:
        self.db.add(notification)
        self.db.flush()
        return notification

    def delete_notifications(self, recipient_id: UUID, keys: list[str]) -> None:
        if not keys:
            return
        self.db.execute(
            delete(Notification).where(
                and_(Notification.recipient_id == recipient_id, Notification.key.in_(keys))
            )
        )
        self.db.flush()

    def delete_notification(self, notification: Notification) -> None:
        self.db.delete(notification)
        self.db.flush()

    # ---------- Administrative notices ----------
    def list_admin_notices(self) -> list[AdminNotice]:
        return self.db.scalars(select(AdminNotice).order_by(AdminNotice.created_at.desc())).all()

    def add_admin_notice(self, notice: AdminNotice) -> AdminNotice:
        self.db.add(notice)
        self.db.flush()
        return notice
