"""Project lifecycle, milestone and assignment endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from workload_ledger.core.auth import RequestUserContext, get_current_user_context
from workload_ledger.db.dependencies import get_db_session
from workload_ledger.models.entities import ProjectStatus
from workload_ledger.services.assignment_service import (
    AssignmentCreateData,
    AssignmentUpdateData,
    AssignmentValidator,
)
from workload_ledger.services.project_service import (
    MilestoneCreateData,
    ProjectCreateData,
    ProjectService,
    ProjectUpdateData,
)

router = APIRouter(tags=["projects"])


class ProjectCreatePayload(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=4000)
    status: ProjectStatus = ProjectStatus.PENDING
    manager_id: UUID | None = None
    budget_amount: Decimal | None = Field(default=None, ge=0)
    budget_currency: str | None = Field(default=None, min_length=3, max_length=3)
    estimated_hours: Decimal | None = Field(default=None, ge=0)
    actual_hours: Decimal | None = Field(default=None, ge=0)


class ProjectUpdatePayload(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=4000)
    status: ProjectStatus | None = None
    manager_id: UUID | None = None
    budget_amount: Decimal | None = Field(default=None, ge=0)
    budget_currency: str | None = Field(default=None, min_length=3, max_length=3)
    estimated_hours: Decimal | None = Field(default=None, ge=0)
    actual_hours: Decimal | None = Field(default=None, ge=0)


class MilestoneCreatePayload(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    due_date: date


class AssignmentCreatePayload(BaseModel):
    employee_id: UUID
    involvement_percentage: Decimal = Field(ge=0, le=100)
    role: str = Field(default="", max_length=255)


class AssignmentUpdatePayload(BaseModel):
    involvement_percentage: Decimal = Field(ge=0, le=100)
    role: str | None = Field(default=None, max_length=255)


def _project_service(db: Session) -> ProjectService:
    return ProjectService(db)


@router.get("/projects")
def list_projects(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _project_service(db)
    items = service.list_projects(context=context)
    return {"items": [service.serialize_project(project) for project in items]}


@router.post("/projects", status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    project = service.create_project(
        context=context,
        data=ProjectCreateData(
            title=payload.title,
            description=payload.description,
            status=payload.status,
            manager_id=payload.manager_id,
            budget_amount=payload.budget_amount,
            budget_currency=payload.budget_currency,
            estimated_hours=payload.estimated_hours,
            actual_hours=payload.actual_hours,
        ),
    )
    return service.serialize_project(project)


@router.get("/projects/{project_id}")
def get_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    project = service.get_project(context=context, project_id=project_id)
    return service.serialize_project(project)


@router.patch("/projects/{project_id}")
def update_project(
    project_id: UUID,
    payload: ProjectUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    project = service.update_project(
        context=context,
        project_id=project_id,
        data=ProjectUpdateData(
            title=payload.title,
            description=payload.description,
            status=payload.status,
            manager_id=payload.manager_id,
            budget_amount=payload.budget_amount,
            budget_currency=payload.budget_currency,
            estimated_hours=payload.estimated_hours,
            actual_hours=payload.actual_hours,
        ),
    )
    return service.serialize_project(project)


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    service = _project_service(db)
    service.delete_project(context=context, project_id=project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/projects/{project_id}/milestones", status_code=status.HTTP_201_CREATED)
def add_milestone(
    project_id: UUID,
    payload: MilestoneCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    milestone = service.add_milestone(
        context=context,
        project_id=project_id,
        data=MilestoneCreateData(title=payload.title, due_date=payload.due_date),
    )
    return service.serialize_milestone(milestone)


@router.post("/projects/{project_id}/milestones/{milestone_id}/complete")
def complete_milestone(
    project_id: UUID,
    milestone_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    milestone = service.complete_milestone(context=context, project_id=project_id, milestone_id=milestone_id)
    return service.serialize_milestone(milestone)


@router.get("/projects/{project_id}/assignments")
def list_project_assignments(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    _project_service(db).ensure_can_view(context=context, project_id=project_id)
    items = AssignmentValidator(db).list_assignments(project_id)
    return {"items": [AssignmentValidator.serialize_assignment(row) for row in items]}


@router.post("/projects/{project_id}/assignments", status_code=status.HTTP_201_CREATED)
def assign_employee(
    project_id: UUID,
    payload: AssignmentCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    _project_service(db).ensure_can_manage_assignments(context=context, project_id=project_id)
    assignment = AssignmentValidator(db).assign(
        project_id=project_id,
        data=AssignmentCreateData(
            employee_id=payload.employee_id,
            involvement_percentage=payload.involvement_percentage,
            role=payload.role,
        ),
    )
    return AssignmentValidator.serialize_assignment(assignment)


@router.patch("/projects/{project_id}/assignments/{employee_id}")
def update_assignment(
    project_id: UUID,
    employee_id: UUID,
    payload: AssignmentUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    _project_service(db).ensure_can_manage_assignments(context=context, project_id=project_id)
    assignment = AssignmentValidator(db).update_involvement(
        project_id=project_id,
        employee_id=employee_id,
        data=AssignmentUpdateData(
            involvement_percentage=payload.involvement_percentage,
            role=payload.role,
        ),
    )
    return AssignmentValidator.serialize_assignment(assignment)


@router.delete("/projects/{project_id}/assignments/{employee_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_assignment(
    project_id: UUID,
    employee_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _project_service(db).ensure_can_manage_assignments(context=context, project_id=project_id)
    AssignmentValidator(db).remove(project_id=project_id, employee_id=employee_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
