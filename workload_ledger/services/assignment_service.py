"""Capacity-gated project assignment operations."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workload_ledger.core.errors import CapacityExceeded, DuplicateAssignment, NotFound, UnknownEmployee
from workload_ledger.models.entities import Project, ProjectAssignment, ProjectStatus, User
from workload_ledger.repositories.workload_repository import WorkloadRepository
from workload_ledger.services.capacity_calculator import CapacityCalculator, WorkloadSnapshot
from workload_ledger.services.mutation_ledger import MutationLedger

logger = logging.getLogger(__name__)

Q2 = Decimal("0.01")
MIN_PERCENTAGE = Decimal("0")
MAX_PERCENTAGE = Decimal("100")


def normalize_percentage(value: Decimal | int | float, *, field: str = "involvement_percentage") -> Decimal:
    percentage = Decimal(str(value))
    if not percentage.is_finite() or percentage < MIN_PERCENTAGE or percentage > MAX_PERCENTAGE:
        raise HTTPException(
            status_code=422,
            detail=f"{field} must be between 0 and 100.",
        )
    return percentage.quantize(Q2)


@dataclass(slots=True)
class AssignmentCreateData:
    employee_id: UUID
    involvement_percentage: Decimal
    role: str = ""


@dataclass(slots=True)
class AssignmentUpdateData:
    involvement_percentage: Decimal
    role: str | None = None


class AssignmentValidator:
    """Gate for creating, resizing and removing project assignments.

    Capacity is enforced hard against ``available_capacity`` of the project
    pool only. Aggregate workload above 100% (project + Over & Beyond) is not
    rejected here; the notification rules report it.

    The check and the write run inside one ledger transaction after the
    employee row is locked, so concurrent commitments for one employee cannot
    both pass against the same stale snapshot.
    """

    def __init__(
        self,
        db: Session,
        *,
        ledger: MutationLedger | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.db = db
        self.repo = WorkloadRepository(db)
        self.calculator = CapacityCalculator(db, self.repo)
        self.ledger = ledger or MutationLedger(db, self.repo, clock=clock)
        self.clock = clock

    def _lock_employee(self, employee_id: UUID) -> User:
        employee = self.repo.lock_user(employee_id)
        if employee is None or not employee.active:
            raise UnknownEmployee(employee_id)
        return employee

    def _require_assignment(self, project_id: UUID, employee_id: UUID) -> ProjectAssignment:
        assignment = self.repo.get_assignment(project_id, employee_id)
        if assignment is None:
            raise NotFound("Assignment")
        return assignment

    @staticmethod
    def _reject_if_over_capacity(
        snapshot: WorkloadSnapshot,
        *,
        requested: Decimal,
        available: Decimal,
        project_id: UUID,
    ) -> None:
        if requested > available:
            logger.info(
                "Rejected %s%% for employee %s on project %s: only %s%% available",
                requested,
                snapshot.employee_id,
                project_id,
                available,
                extra={"employee_id": snapshot.employee_id, "project_id": project_id},
            )
            raise CapacityExceeded(available=available)

    def assign(self, *, project_id: UUID, data: AssignmentCreateData) -> ProjectAssignment:
        percentage = normalize_percentage(data.involvement_percentage)
        role = data.role.strip()

        def mutate(project: Project) -> None:
            if self.repo.get_assignment(project.id, data.employee_id) is not None:
                raise DuplicateAssignment(project_id=project.id, employee_id=data.employee_id)

            employee = self._lock_employee(data.employee_id)
            snapshot = self.calculator.compute_for_user(employee)
            self._reject_if_over_capacity(
                snapshot,
                requested=percentage,
                available=snapshot.available_capacity,
                project_id=project.id,
            )

            try:
                self.repo.add_assignment(
                    ProjectAssignment(
                        project_id=project.id,
                        employee_id=employee.id,
                        role=role,
                        involvement_percentage=percentage,
                        assigned_at=self.clock(),
                    )
                )
            except IntegrityError as exc:
                raise DuplicateAssignment(project_id=project.id, employee_id=data.employee_id) from exc

        self.ledger.apply_project_mutation(project_id, mutate)
        logger.info(
            "Assigned employee %s to project %s at %s%%",
            data.employee_id,
            project_id,
            percentage,
            extra={"employee_id": data.employee_id, "project_id": project_id},
        )
        return self._require_assignment(project_id, data.employee_id)

    def update_involvement(
        self,
        *,
        project_id: UUID,
        employee_id: UUID,
        data: AssignmentUpdateData,
    ) -> ProjectAssignment:
        percentage = normalize_percentage(data.involvement_percentage)

        def mutate(project: Project) -> None:
            assignment = self._require_assignment(project.id, employee_id)
            employee = self._lock_employee(employee_id)
            snapshot = self.calculator.compute_for_user(employee)

            # The current share is being replaced, so it is handed back before
            # comparing. It only occupies the pool while the project is active.
            effective_available = snapshot.available_capacity
            if project.status is ProjectStatus.ACTIVE:
                effective_available += assignment.involvement_percentage
            self._reject_if_over_capacity(
                snapshot,
                requested=percentage,
                available=effective_available,
                project_id=project.id,
            )

            assignment.involvement_percentage = percentage
            if data.role is not None:
                assignment.role = data.role.strip()

        self.ledger.apply_project_mutation(project_id, mutate)
        logger.info(
            "Updated employee %s on project %s to %s%%",
            employee_id,
            project_id,
            percentage,
            extra={"employee_id": employee_id, "project_id": project_id},
        )
        return self._require_assignment(project_id, employee_id)

    def remove(self, *, project_id: UUID, employee_id: UUID) -> None:
        def mutate(project: Project) -> None:
            self.repo.delete_assignment(self._require_assignment(project.id, employee_id))

        self.ledger.apply_project_mutation(project_id, mutate)
        logger.info(
            "Removed employee %s from project %s",
            employee_id,
            project_id,
            extra={"employee_id": employee_id, "project_id": project_id},
        )

    def list_assignments(self, project_id: UUID) -> list[ProjectAssignment]:
        if self.repo.get_project(project_id) is None:
            raise NotFound("Project")
        return self.repo.list_assignments_for_project(project_id)

    @staticmethod
    def serialize_assignment(assignment: ProjectAssignment) -> dict[str, object]:
        return {
            "id": str(assignment.id),
            "project_id": str(assignment.project_id),
            "employee_id": str(assignment.employee_id),
            "role": assignment.role,
            "involvement_percentage": str(assignment.involvement_percentage),
            "assigned_at": assignment.assigned_at.isoformat(),
        }
