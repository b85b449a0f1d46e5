"""Workload capacity calculation.

An employee's time is split into two independently capped pools:

- the project pool, filled by assignments on ``active`` projects and bounded
  by ``User.workload_cap``;
- the Over & Beyond pool, filled by ``active`` initiatives and bounded by
  ``User.over_beyond_cap``.

Over & Beyond work never reduces ``available_capacity``. The sum of both
pools is only compared against the soft workload limit by the notification
rules. Snapshots are recomputed on every call and never cached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from workload_ledger.core.config import get_settings
from workload_ledger.core.errors import UnknownEmployee
from workload_ledger.models.entities import User, UserRole
from workload_ledger.repositories.workload_repository import WorkloadRepository

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")
HUNDRED = Decimal("100")

SUMMARY_ROLES = {UserRole.EMPLOYEE, UserRole.MANAGER, UserRole.RD_MANAGER}


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


@dataclass(slots=True, frozen=True)
class WorkloadSnapshot:
    employee_id: UUID
    project_workload: Decimal
    over_beyond_workload: Decimal
    total_workload: Decimal
    available_capacity: Decimal
    over_beyond_available: Decimal
    workload_cap: Decimal
    over_beyond_cap: Decimal

    @property
    def is_overloaded(self) -> bool:
        return self.total_workload > self.workload_cap or self.over_beyond_workload > self.over_beyond_cap


@dataclass(slots=True, frozen=True)
class WorkloadSummary:
    total_employees: int
    overloaded_employees: int
    average_workload: Decimal
    total_project_workload: Decimal
    total_initiative_workload: Decimal
    capacity_utilization: Decimal


def build_snapshot(user: User, *, project_workload: Decimal, over_beyond_workload: Decimal) -> WorkloadSnapshot:
    workload_cap = _q2(Decimal(user.workload_cap))
    over_beyond_cap = _q2(Decimal(user.over_beyond_cap))
    project_workload = _q2(project_workload)
    over_beyond_workload = _q2(over_beyond_workload)
    return WorkloadSnapshot(
        employee_id=user.id,
        project_workload=project_workload,
        over_beyond_workload=over_beyond_workload,
        total_workload=project_workload + over_beyond_workload,
        available_capacity=max(ZERO, workload_cap - project_workload),
        over_beyond_available=max(ZERO, over_beyond_cap - over_beyond_workload),
        workload_cap=workload_cap,
        over_beyond_cap=over_beyond_cap,
    )


class CapacityCalculator:
    """Derives workload snapshots from the current persisted state."""

    def __init__(self, db: Session, repo: WorkloadRepository | None = None) -> None:
        self.db = db
        self.repo = repo or WorkloadRepository(db)
        self.settings = get_settings()

    def compute_workload(self, employee_id: UUID) -> WorkloadSnapshot:
        user = self.repo.get_user(employee_id)
        if user is None:
            raise UnknownEmployee(employee_id)
        return self.compute_for_user(user)

    def compute_for_user(self, user: User) -> WorkloadSnapshot:
        return build_snapshot(
            user,
            project_workload=self.repo.sum_active_project_involvement(user.id),
            over_beyond_workload=self.repo.sum_active_initiative_workload(user.id),
        )

    def workload_warnings(self, snapshot: WorkloadSnapshot) -> list[str]:
        warnings: list[str] = []
        if snapshot.total_workload > snapshot.workload_cap:
            warnings.append(
                f"Total workload ({snapshot.total_workload:.1f}%) exceeds capacity ({snapshot.workload_cap:.0f}%)"
            )
        if snapshot.over_beyond_workload > snapshot.over_beyond_cap:
            warnings.append(
                f"Over & Beyond workload ({snapshot.over_beyond_workload:.1f}%) exceeds capacity "
                f"({snapshot.over_beyond_cap:.0f}%)"
            )

        threshold = Decimal(self.settings.high_involvement_threshold)
        for assignment, project in self.repo.list_active_assignments_for_employee(snapshot.employee_id):
            if assignment.involvement_percentage > threshold:
                warnings.append(
                    f"High involvement ({assignment.involvement_percentage:.0f}%) in project: {project.title}"
                )
        return warnings

    def summarize(self) -> WorkloadSummary:
        users = self.repo.list_users(active_only=True, roles=SUMMARY_ROLES)
        snapshots = [self.compute_for_user(user) for user in users]
        if not snapshots:
            return WorkloadSummary(
                total_employees=0,
                overloaded_employees=0,
                average_workload=ZERO,
                total_project_workload=ZERO,
                total_initiative_workload=ZERO,
                capacity_utilization=ZERO,
            )

        total_project = sum((row.project_workload for row in snapshots), ZERO)
        total_initiative = sum((row.over_beyond_workload for row in snapshots), ZERO)
        total_capacity = sum((row.workload_cap for row in snapshots), ZERO)
        average = sum((row.total_workload for row in snapshots), ZERO) / Decimal(len(snapshots))
        utilization = total_project / total_capacity * HUNDRED if total_capacity > ZERO else ZERO

        summary = WorkloadSummary(
            total_employees=len(snapshots),
            overloaded_employees=sum(1 for row in snapshots if row.is_overloaded),
            average_workload=_q2(average),
            total_project_workload=_q2(total_project),
            total_initiative_workload=_q2(total_initiative),
            capacity_utilization=_q2(utilization),
        )
        logger.debug(
            "Workload summary computed for %d employees (%d overloaded)",
            summary.total_employees,
            summary.overloaded_employees,
        )
        return summary

    @staticmethod
    def serialize_snapshot(snapshot: WorkloadSnapshot) -> dict[str, object]:
        return {
            "employee_id": str(snapshot.employee_id),
            "project_workload": str(snapshot.project_workload),
            "over_beyond_workload": str(snapshot.over_beyond_workload),
            "total_workload": str(snapshot.total_workload),
            "available_capacity": str(snapshot.available_capacity),
            "over_beyond_available": str(snapshot.over_beyond_available),
            "workload_cap": str(snapshot.workload_cap),
            "over_beyond_cap": str(snapshot.over_beyond_cap),
            "is_overloaded": snapshot.is_overloaded,
        }

    @staticmethod
    def serialize_summary(summary: WorkloadSummary) -> dict[str, object]:
        return {
            "total_employees": summary.total_employees,
            "overloaded_employees": summary.overloaded_employees,
            "average_workload": str(summary.average_workload),
            "total_project_workload": str(summary.total_project_workload),
            "total_initiative_workload": str(summary.total_initiative_workload),
            "capacity_utilization": str(summary.capacity_utilization),
        }
