"""Over & Beyond initiative endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from workload_ledger.core.auth import RequestUserContext, get_current_user_context
from workload_ledger.db.dependencies import get_db_session
from workload_ledger.models.entities import InitiativeStatus
from workload_ledger.services.initiative_service import (
    InitiativeCreateData,
    InitiativeService,
    InitiativeUpdateData,
)

router = APIRouter(prefix="/initiatives", tags=["initiatives"])


class InitiativeCreatePayload(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=4000)
    assigned_to: UUID | None = None
    status: InitiativeStatus = InitiativeStatus.PENDING
    workload_percentage: Decimal = Field(ge=0, le=100)
    estimated_hours: Decimal = Field(default=Decimal("0"), ge=0)
    due_date: date | None = None


class InitiativeUpdatePayload(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=4000)
    # Explicit null unassigns; omitting the field keeps the assignee.
    assigned_to: UUID | None = None
    status: InitiativeStatus | None = None
    workload_percentage: Decimal | None = Field(default=None, ge=0, le=100)
    estimated_hours: Decimal | None = Field(default=None, ge=0)
    actual_hours: Decimal | None = Field(default=None, ge=0)
    due_date: date | None = None


@router.get("")
def list_initiatives(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = InitiativeService(db)
    items = service.list_initiatives(context=context)
    return {"items": [service.serialize_initiative(row) for row in items]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_initiative(
    payload: InitiativeCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = InitiativeService(db)
    initiative = service.create_initiative(
        context=context,
        data=InitiativeCreateData(
            title=payload.title,
            description=payload.description,
            assigned_to=payload.assigned_to,
            status=payload.status,
            workload_percentage=payload.workload_percentage,
            estimated_hours=payload.estimated_hours,
            due_date=payload.due_date,
        ),
    )
    return service.serialize_initiative(initiative)


@router.get("/{initiative_id}")
def get_initiative(
    initiative_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = InitiativeService(db)
    return service.serialize_initiative(service.get_initiative(context=context, initiative_id=initiative_id))


@router.patch("/{initiative_id}")
def update_initiative(
    initiative_id: UUID,
    payload: InitiativeUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    changes = payload.model_dump(exclude={"assigned_to"})
    if "assigned_to" in payload.model_fields_set:
        changes["assigned_to"] = payload.assigned_to

    service = InitiativeService(db)
    initiative = service.update_initiative(
        context=context,
        initiative_id=initiative_id,
        data=InitiativeUpdateData(**changes),
    )
    return service.serialize_initiative(initiative)
