"""User provisioning and capacity administration endpoints."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from workload_ledger.core.auth import RequestUserContext, get_current_user_context, require_roles
from workload_ledger.db.dependencies import get_db_session
from workload_ledger.models.entities import UserRole
from workload_ledger.services.user_service import CapacityUpdateData, UserCreateData, UserService

router = APIRouter(prefix="/users", tags=["users"])


class UserCreatePayload(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    display_name: str = Field(min_length=1, max_length=255)
    role: UserRole = UserRole.EMPLOYEE
    workload_cap: Decimal | None = Field(default=None, ge=0, le=100)
    over_beyond_cap: Decimal | None = Field(default=None, ge=0, le=100)


class CapacityUpdatePayload(BaseModel):
    workload_cap: Decimal | None = Field(default=None, ge=0, le=100)
    over_beyond_cap: Decimal | None = Field(default=None, ge=0, le=100)


@router.get("")
def list_users(
    active_only: bool = Query(default=False),
    _: RequestUserContext = Depends(
        require_roles(UserRole.ADMIN, UserRole.PROGRAM_MANAGER, UserRole.RD_MANAGER, UserRole.MANAGER)
    ),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = UserService(db)
    return {"items": [service.serialize_user(user) for user in service.list_users(active_only=active_only)]}


@router.post("", status_code=status.HTTP_201_CREATED)
def provision_user(
    payload: UserCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UserService(db)
    user = service.provision_user(
        context=context,
        data=UserCreateData(
            email=payload.email,
            display_name=payload.display_name,
            role=payload.role,
            workload_cap=payload.workload_cap,
            over_beyond_cap=payload.over_beyond_cap,
        ),
    )
    return service.serialize_user(user)


@router.patch("/{user_id}/capacity")
def update_capacity(
    user_id: UUID,
    payload: CapacityUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UserService(db)
    user = service.update_capacity(
        context=context,
        user_id=user_id,
        data=CapacityUpdateData(workload_cap=payload.workload_cap, over_beyond_cap=payload.over_beyond_cap),
    )
    return service.serialize_user(user)


@router.post("/{user_id}/deactivate")
def deactivate_user(
    user_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UserService(db)
    return service.serialize_user(service.deactivate(context=context, user_id=user_id))
