"""Over & Beyond initiative lifecycle with secondary-pool cap enforcement."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from workload_ledger.core.auth import MANAGER_ROLES, RequestUserContext, has_role
from workload_ledger.core.errors import CapacityExceeded, NotFound, UnknownEmployee
from workload_ledger.models.entities import Initiative, InitiativeStatus
from workload_ledger.repositories.workload_repository import WorkloadRepository
from workload_ledger.services.assignment_service import normalize_percentage

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")

_UNSET = object()


@dataclass(slots=True)
class InitiativeCreateData:
    title: str
    workload_percentage: Decimal
    estimated_hours: Decimal
    description: str | None = None
    assigned_to: UUID | None = None
    status: InitiativeStatus = InitiativeStatus.PENDING
    due_date: date | None = None


@dataclass(slots=True)
class InitiativeUpdateData:
    title: str | None = None
    description: str | None = None
    assigned_to: UUID | None | object = _UNSET
    status: InitiativeStatus | None = None
    workload_percentage: Decimal | None = None
    estimated_hours: Decimal | None = None
    actual_hours: Decimal | None = None
    due_date: date | None = None


class InitiativeService:
    """Initiatives feed only the Over & Beyond pool of their assignee.

    An initiative that ends up ``active`` and assigned must fit into the
    assignee's remaining ``over_beyond_cap``; other statuses do not occupy
    the pool and are accepted without a check.
    """

    def __init__(self, db: Session, *, clock: Callable[[], datetime] = datetime.utcnow) -> None:
        self.db = db
        self.repo = WorkloadRepository(db)
        self.clock = clock

    def _ensure_fits_over_beyond_pool(
        self,
        *,
        assignee_id: UUID,
        workload_percentage: Decimal,
        exclude_id: UUID | None,
    ) -> None:
        assignee = self.repo.lock_user(assignee_id)
        if assignee is None or not assignee.active:
            raise UnknownEmployee(assignee_id)

        committed = self.repo.sum_active_initiative_workload(assignee_id, exclude_id=exclude_id)
        cap = Decimal(assignee.over_beyond_cap)
        if committed + workload_percentage > cap:
            available = max(ZERO, cap - committed).quantize(Q2)
            logger.info(
                "Rejected initiative load %s%% for employee %s: %s%% Over & Beyond available",
                workload_percentage,
                assignee_id,
                available,
                extra={"employee_id": assignee_id},
            )
            raise CapacityExceeded(available=available, pool="over_beyond")

    def _ensure_can_touch(self, context: RequestUserContext, initiative: Initiative) -> None:
        if has_role(context, MANAGER_ROLES):
            return
        if context.user_id in (initiative.created_by, initiative.assigned_to):
            return
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions for this initiative.",
        )

    def list_initiatives(self, *, context: RequestUserContext) -> list[Initiative]:
        if has_role(context, MANAGER_ROLES):
            return self.repo.list_initiatives()
        return self.repo.list_initiatives_for_user(context.user_id)

    def get_initiative(self, *, context: RequestUserContext, initiative_id: UUID) -> Initiative:
        initiative = self.repo.get_initiative(initiative_id)
        if initiative is None:
            raise NotFound("Initiative")
        self._ensure_can_touch(context, initiative)
        return initiative

    def create_initiative(self, *, context: RequestUserContext, data: InitiativeCreateData) -> Initiative:
        workload = normalize_percentage(data.workload_percentage, field="workload_percentage")
        if data.assigned_to is not None:
            if data.assigned_to != context.user_id and not has_role(context, MANAGER_ROLES):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Only manager-class users can assign initiatives to others.",
                )
            if data.status is InitiativeStatus.ACTIVE:
                self._ensure_fits_over_beyond_pool(
                    assignee_id=data.assigned_to,
                    workload_percentage=workload,
                    exclude_id=None,
                )
            elif self.repo.get_user(data.assigned_to) is None:
                raise UnknownEmployee(data.assigned_to)

        now = self.clock()
        initiative = Initiative(
            title=data.title.strip(),
            description=data.description.strip() if data.description else None,
            created_by=context.user_id,
            assigned_to=data.assigned_to,
            status=data.status,
            workload_percentage=workload,
            estimated_hours=Decimal(data.estimated_hours).quantize(Q2),
            due_date=data.due_date,
            completed_at=now if data.status is InitiativeStatus.COMPLETED else None,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_initiative(initiative)
        self.db.commit()
        self.db.refresh(initiative)
        return initiative

    def update_initiative(
        self,
        *,
        context: RequestUserContext,
        initiative_id: UUID,
        data: InitiativeUpdateData,
    ) -> Initiative:
        initiative = self.get_initiative(context=context, initiative_id=initiative_id)

        assigned_to = initiative.assigned_to if data.assigned_to is _UNSET else data.assigned_to
        target_status = data.status or initiative.status
        workload = (
            normalize_percentage(data.workload_percentage, field="workload_percentage")
            if data.workload_percentage is not None
            else initiative.workload_percentage
        )

        try:
            if assigned_to is not None and target_status is InitiativeStatus.ACTIVE:
                self._ensure_fits_over_beyond_pool(
                    assignee_id=assigned_to,
                    workload_percentage=workload,
                    exclude_id=initiative.id,
                )
            elif assigned_to is not None and self.repo.get_user(assigned_to) is None:
                raise UnknownEmployee(assigned_to)

            if data.title is not None:
                initiative.title = data.title.strip()
            if data.description is not None:
                initiative.description = data.description.strip() or None
            if data.estimated_hours is not None:
                initiative.estimated_hours = Decimal(data.estimated_hours).quantize(Q2)
            if data.actual_hours is not None:
                initiative.actual_hours = Decimal(data.actual_hours).quantize(Q2)
            if data.due_date is not None:
                initiative.due_date = data.due_date

            now = self.clock()
            if target_status is InitiativeStatus.COMPLETED and initiative.status is not InitiativeStatus.COMPLETED:
                initiative.completed_at = now
            initiative.assigned_to = assigned_to
            initiative.status = target_status
            initiative.workload_percentage = workload
            initiative.updated_at = now
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(initiative)
        return initiative

    @staticmethod
    def serialize_initiative(initiative: Initiative) -> dict[str, object]:
        return {
            "id": str(initiative.id),
            "title": initiative.title,
            "description": initiative.description,
            "created_by": str(initiative.created_by),
            "assigned_to": str(initiative.assigned_to) if initiative.assigned_to else None,
            "status": initiative.status.value,
            "workload_percentage": str(initiative.workload_percentage),
            "estimated_hours": str(initiative.estimated_hours),
            "actual_hours": str(initiative.actual_hours) if initiative.actual_hours is not None else None,
            "due_date": initiative.due_date.isoformat() if initiative.due_date else None,
            "completed_at": initiative.completed_at.isoformat() if initiative.completed_at else None,
            "created_at": initiative.created_at.isoformat(),
            "updated_at": initiative.updated_at.isoformat(),
        }
