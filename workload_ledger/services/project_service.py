"""Application service for project lifecycle and milestones."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from workload_ledger.core.auth import (
    MANAGER_ROLES,
    PROJECT_WIDE_VIEW_ROLES,
    RequestUserContext,
    can_assign_projects,
    can_delete_project,
    can_edit_project,
    can_view_project,
    has_role,
)
from workload_ledger.core.errors import ConcurrentModification, NotFound
from workload_ledger.models.entities import Milestone, Project, ProjectStatus
from workload_ledger.repositories.workload_repository import WorkloadRepository
from workload_ledger.services.assignment_service import AssignmentValidator
from workload_ledger.services.mutation_ledger import MutationLedger

Q2 = Decimal("0.01")


def _optional_q2(value: Decimal | None) -> Decimal | None:
    return None if value is None else Decimal(value).quantize(Q2)


@dataclass(slots=True)
class ProjectCreateData:
    title: str
    description: str | None = None
    status: ProjectStatus = ProjectStatus.PENDING
    manager_id: UUID | None = None
    budget_amount: Decimal | None = None
    budget_currency: str | None = None
    estimated_hours: Decimal | None = None
    actual_hours: Decimal | None = None


@dataclass(slots=True)
class ProjectUpdateData:
    title: str | None = None
    description: str | None = None
    status: ProjectStatus | None = None
    manager_id: UUID | None = None
    budget_amount: Decimal | None = None
    budget_currency: str | None = None
    estimated_hours: Decimal | None = None
    actual_hours: Decimal | None = None


@dataclass(slots=True)
class MilestoneCreateData:
    title: str
    due_date: date


class ProjectService:
    """Project CRUD; every write to an existing project goes through the ledger."""

    def __init__(self, db: Session, *, clock: Callable[[], datetime] = datetime.utcnow) -> None:
        self.db = db
        self.repo = WorkloadRepository(db)
        self.ledger = MutationLedger(db, self.repo, clock=clock)
        self.clock = clock

    # ---------- Scope + RBAC ----------
    def _get_project_or_404(self, project_id: UUID) -> Project:
        project = self.repo.get_project(project_id)
        if project is None:
            raise NotFound("Project")
        return project

    def _is_member(self, project: Project, user_id: UUID) -> bool:
        return self.repo.get_assignment(project.id, user_id) is not None

    def ensure_can_view(self, *, context: RequestUserContext, project_id: UUID) -> Project:
        project = self._get_project_or_404(project_id)
        if not can_view_project(context, project, is_member=self._is_member(project, context.user_id)):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions to view this project.",
            )
        return project

    def ensure_can_edit(self, *, context: RequestUserContext, project_id: UUID) -> Project:
        project = self._get_project_or_404(project_id)
        if not can_edit_project(context, project):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions to edit this project.",
            )
        return project

    def ensure_can_manage_assignments(self, *, context: RequestUserContext, project_id: UUID) -> Project:
        project = self._get_project_or_404(project_id)
        if not can_assign_projects(context) or not can_edit_project(context, project):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions to manage assignments on this project.",
            )
        return project

    # ---------- Serialization ----------
    @staticmethod
    def serialize_milestone(milestone: Milestone) -> dict[str, object]:
        return {
            "id": str(milestone.id),
            "project_id": str(milestone.project_id),
            "title": milestone.title,
            "due_date": milestone.due_date.isoformat(),
            "completed": milestone.completed,
            "completed_at": milestone.completed_at.isoformat() if milestone.completed_at else None,
            "sequence_no": milestone.sequence_no,
        }

    def serialize_project(self, project: Project) -> dict[str, object]:
        return {
            "id": str(project.id),
            "title": project.title,
            "description": project.description,
            "status": project.status.value,
            "manager_id": str(project.manager_id),
            "budget_amount": str(project.budget_amount) if project.budget_amount is not None else None,
            "budget_currency": project.budget_currency,
            "estimated_hours": str(project.estimated_hours) if project.estimated_hours is not None else None,
            "actual_hours": str(project.actual_hours) if project.actual_hours is not None else None,
            "version": project.version,
            "created_at": project.created_at.isoformat(),
            "updated_at": project.updated_at.isoformat(),
            "assignments": [
                AssignmentValidator.serialize_assignment(row)
                for row in self.repo.list_assignments_for_project(project.id)
            ],
            "milestones": [self.serialize_milestone(row) for row in self.repo.list_milestones(project.id)],
        }

    # ---------- Project CRUD ----------
    def list_projects(self, *, context: RequestUserContext) -> list[Project]:
        if has_role(context, PROJECT_WIDE_VIEW_ROLES):
            return self.repo.list_projects()

        visible: dict[UUID, Project] = {}
        for project in self.repo.list_projects_for_manager(context.user_id):
            visible[project.id] = project
        for project in self.repo.list_projects_for_member(context.user_id):
            visible.setdefault(project.id, project)
        return sorted(visible.values(), key=lambda row: (row.created_at, row.title), reverse=True)

    def create_project(self, *, context: RequestUserContext, data: ProjectCreateData) -> Project:
        if not has_role(context, MANAGER_ROLES):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only manager-class users can create projects.",
            )

        manager_id = data.manager_id or context.user_id
        if self.repo.get_user(manager_id) is None:
            raise NotFound("Manager")

        now = self.clock()
        project = Project(
            title=data.title.strip(),
            description=data.description.strip() if data.description else None,
            status=data.status,
            manager_id=manager_id,
            budget_amount=_optional_q2(data.budget_amount),
            budget_currency=data.budget_currency.upper() if data.budget_currency else None,
            estimated_hours=_optional_q2(data.estimated_hours),
            actual_hours=_optional_q2(data.actual_hours),
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_project(project)
        self.db.commit()
        self.db.refresh(project)
        return project

    def get_project(self, *, context: RequestUserContext, project_id: UUID) -> Project:
        return self.ensure_can_view(context=context, project_id=project_id)

    def update_project(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        data: ProjectUpdateData,
    ) -> Project:
        self.ensure_can_edit(context=context, project_id=project_id)
        if data.manager_id is not None and self.repo.get_user(data.manager_id) is None:
            raise NotFound("Manager")

        def mutate(project: Project) -> None:
            if data.title is not None:
                project.title = data.title.strip()
            if data.description is not None:
                project.description = data.description.strip() or None
            if data.status is not None:
                project.status = data.status
            if data.manager_id is not None:
                project.manager_id = data.manager_id
            if data.budget_amount is not None:
                project.budget_amount = _optional_q2(data.budget_amount)
            if data.budget_currency is not None:
                project.budget_currency = data.budget_currency.upper()
            if data.estimated_hours is not None:
                project.estimated_hours = _optional_q2(data.estimated_hours)
            if data.actual_hours is not None:
                project.actual_hours = _optional_q2(data.actual_hours)

        return self.ledger.apply_project_mutation(project_id, mutate)

    def delete_project(self, *, context: RequestUserContext, project_id: UUID) -> None:
        project = self._get_project_or_404(project_id)
        if not can_delete_project(context, project):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions to delete this project.",
            )

        expected_version = project.version
        try:
            self.repo.delete_project(project)
            self.db.commit()
        except StaleDataError as exc:
            self.db.rollback()
            raise ConcurrentModification(project_id=project_id, expected_version=expected_version) from exc

    # ---------- Milestones ----------
    def add_milestone(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        data: MilestoneCreateData,
    ) -> Milestone:
        self.ensure_can_edit(context=context, project_id=project_id)
        created: list[Milestone] = []

        def mutate(project: Project) -> None:
            created.clear()
            created.append(
                self.repo.add_milestone(
                    Milestone(
                        project_id=project.id,
                        title=data.title.strip(),
                        due_date=data.due_date,
                        completed=False,
                        sequence_no=self.repo.next_milestone_sequence(project.id),
                    )
                )
            )

        self.ledger.apply_project_mutation(project_id, mutate)
        milestone = created[0]
        self.db.refresh(milestone)
        return milestone

    def complete_milestone(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        milestone_id: UUID,
    ) -> Milestone:
        self.ensure_can_edit(context=context, project_id=project_id)

        def mutate(project: Project) -> None:
            milestone = self.repo.get_milestone(milestone_id)
            if milestone is None or milestone.project_id != project.id:
                raise NotFound("Milestone")
            if milestone.completed:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Milestone is already completed.",
                )
            milestone.completed = True
            milestone.completed_at = self.clock()

        self.ledger.apply_project_mutation(project_id, mutate)
        milestone = self.repo.get_milestone(milestone_id)
        if milestone is None:
            raise NotFound("Milestone")
        return milestone
