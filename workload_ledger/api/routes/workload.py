"""Workload snapshot endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from workload_ledger.core.auth import (
    RequestUserContext,
    can_view_workload,
    get_current_user_context,
    require_roles,
)
from workload_ledger.db.dependencies import get_db_session
from workload_ledger.models.entities import UserRole
from workload_ledger.services.capacity_calculator import CapacityCalculator

router = APIRouter(tags=["workload"])


@router.get("/employees/{employee_id}/workload")
def get_employee_workload(
    employee_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    if not can_view_workload(context, employee_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions to view this workload.",
        )

    calculator = CapacityCalculator(db)
    snapshot = calculator.compute_workload(employee_id)
    return {
        **calculator.serialize_snapshot(snapshot),
        "warnings": calculator.workload_warnings(snapshot),
    }


@router.get("/workload/summary")
def get_workload_summary(
    _: RequestUserContext = Depends(
        require_roles(UserRole.ADMIN, UserRole.PROGRAM_MANAGER, UserRole.RD_MANAGER, UserRole.MANAGER)
    ),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    calculator = CapacityCalculator(db)
    return calculator.serialize_summary(calculator.summarize())
