from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Session

from workload_ledger.core.errors import CapacityExceeded, DuplicateAssignment, NotFound, UnknownEmployee
from workload_ledger.models.entities import ProjectStatus, User, UserRole
from workload_ledger.services.assignment_service import (
    AssignmentCreateData,
    AssignmentUpdateData,
    AssignmentValidator,
)
from workload_ledger.services.capacity_calculator import CapacityCalculator


def _headers(user: User) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


def test_assignment_is_rejected_beyond_available_capacity(
    client: TestClient, db_session: Session, make_user, make_project, seed_assignment
) -> None:
    manager = make_user(role=UserRole.MANAGER)
    employee = make_user()
    seed_assignment(make_project(manager), employee, "70")
    target = make_project(manager, title="Target")

    rejected = client.post(
        f"/api/v1/projects/{target.id}/assignments",
        headers=_headers(manager),
        json={"employee_id": str(employee.id), "involvement_percentage": "40", "role": "Developer"},
    )
    assert rejected.status_code == 422
    detail = rejected.json()["detail"]
    assert detail["error"] == "capacity_exceeded"
    assert detail["available"] == "30.00"
    assert detail["pool"] == "project"

    accepted = client.post(
        f"/api/v1/projects/{target.id}/assignments",
        headers=_headers(manager),
        json={"employee_id": str(employee.id), "involvement_percentage": "30", "role": "Developer"},
    )
    assert accepted.status_code == 201
    assert accepted.json()["involvement_percentage"] == "30.00"

    workload = client.get(f"/api/v1/employees/{employee.id}/workload", headers=_headers(employee))
    assert workload.status_code == 200
    assert workload.json()["project_workload"] == "100.00"
    assert workload.json()["available_capacity"] == "0.00"

    project = client.get(f"/api/v1/projects/{target.id}", headers=_headers(manager))
    assert project.json()["version"] == 2


def test_rejected_assignment_leaves_project_untouched(
    db_session: Session, make_user, make_project, seed_assignment
) -> None:
    manager = make_user(role=UserRole.MANAGER)
    employee = make_user()
    seed_assignment(make_project(manager), employee, "90")
    target = make_project(manager)

    with pytest.raises(CapacityExceeded) as exc_info:
        AssignmentValidator(db_session).assign(
            project_id=target.id,
            data=AssignmentCreateData(employee_id=employee.id, involvement_percentage=Decimal("20")),
        )

    assert exc_info.value.available == Decimal("10.00")
    db_session.refresh(target)
    assert target.version == 1
    assert AssignmentValidator(db_session).list_assignments(target.id) == []


def test_duplicate_assignment_is_rejected(db_session: Session, make_user, make_project) -> None:
    manager = make_user(role=UserRole.MANAGER)
    employee = make_user()
    project = make_project(manager)
    validator = AssignmentValidator(db_session)
    data = AssignmentCreateData(employee_id=employee.id, involvement_percentage=Decimal("10"))

    validator.assign(project_id=project.id, data=data)
    with pytest.raises(DuplicateAssignment):
        validator.assign(project_id=project.id, data=data)

    assert len(validator.list_assignments(project.id)) == 1


def test_unknown_or_inactive_employee_is_rejected(db_session: Session, make_user, make_project) -> None:
    manager = make_user(role=UserRole.MANAGER)
    inactive = make_user(active=False)
    project = make_project(manager)
    validator = AssignmentValidator(db_session)

    with pytest.raises(UnknownEmployee):
        validator.assign(
            project_id=project.id,
            data=AssignmentCreateData(employee_id=uuid.uuid4(), involvement_percentage=Decimal("10")),
        )
    with pytest.raises(UnknownEmployee):
        validator.assign(
            project_id=project.id,
            data=AssignmentCreateData(employee_id=inactive.id, involvement_percentage=Decimal("10")),
        )


def test_assignment_to_missing_project_is_not_found(db_session: Session, make_user) -> None:
    employee = make_user()

    with pytest.raises(NotFound):
        AssignmentValidator(db_session).assign(
            project_id=uuid.uuid4(),
            data=AssignmentCreateData(employee_id=employee.id, involvement_percentage=Decimal("10")),
        )


def test_update_hands_back_current_share_before_checking(
    db_session: Session, make_user, make_project, seed_assignment
) -> None:
    manager = make_user(role=UserRole.MANAGER)
    employee = make_user()
    seed_assignment(make_project(manager), employee, "50")
    project = make_project(manager)
    seed_assignment(project, employee, "30")
    validator = AssignmentValidator(db_session)

    updated = validator.update_involvement(
        project_id=project.id,
        employee_id=employee.id,
        data=AssignmentUpdateData(involvement_percentage=Decimal("50"), role="Lead"),
    )

    assert updated.involvement_percentage == Decimal("50.00")
    assert updated.role == "Lead"
    assert CapacityCalculator(db_session).compute_workload(employee.id).project_workload == Decimal("100.00")

    with pytest.raises(CapacityExceeded) as exc_info:
        validator.update_involvement(
            project_id=project.id,
            employee_id=employee.id,
            data=AssignmentUpdateData(involvement_percentage=Decimal("51")),
        )
    assert exc_info.value.available == Decimal("50.00")


def test_update_on_inactive_project_does_not_double_count(
    db_session: Session, make_user, make_project, seed_assignment
) -> None:
    manager = make_user(role=UserRole.MANAGER)
    employee = make_user()
    seed_assignment(make_project(manager), employee, "80")
    pending = make_project(manager, status=ProjectStatus.PENDING)
    seed_assignment(pending, employee, "10")
    validator = AssignmentValidator(db_session)

    with pytest.raises(CapacityExceeded):
        validator.update_involvement(
            project_id=pending.id,
            employee_id=employee.id,
            data=AssignmentUpdateData(involvement_percentage=Decimal("25")),
        )

    updated = validator.update_involvement(
        project_id=pending.id,
        employee_id=employee.id,
        data=AssignmentUpdateData(involvement_percentage=Decimal("20")),
    )
    assert updated.involvement_percentage == Decimal("20.00")


def test_removal_frees_capacity_and_bumps_version(
    client: TestClient, db_session: Session, make_user, make_project
) -> None:
    manager = make_user(role=UserRole.MANAGER)
    employee = make_user()
    project = make_project(manager)

    created = client.post(
        f"/api/v1/projects/{project.id}/assignments",
        headers=_headers(manager),
        json={"employee_id": str(employee.id), "involvement_percentage": 60},
    )
    assert created.status_code == 201

    removed = client.delete(f"/api/v1/projects/{project.id}/assignments/{employee.id}", headers=_headers(manager))
    assert removed.status_code == 204

    missing = client.delete(f"/api/v1/projects/{project.id}/assignments/{employee.id}", headers=_headers(manager))
    assert missing.status_code == 404
    assert missing.json()["detail"]["error"] == "not_found"

    snapshot = CapacityCalculator(db_session).compute_workload(employee.id)
    assert snapshot.available_capacity == Decimal("100.00")
    db_session.refresh(project)
    assert project.version == 3


def test_assignment_endpoints_require_manager_of_project(
    client: TestClient, make_user, make_project
) -> None:
    owner = make_user(role=UserRole.MANAGER)
    other_manager = make_user(role=UserRole.MANAGER)
    employee = make_user()
    project = make_project(owner)
    payload = {"employee_id": str(employee.id), "involvement_percentage": 10}

    as_employee = client.post(f"/api/v1/projects/{project.id}/assignments", headers=_headers(employee), json=payload)
    assert as_employee.status_code == 403

    as_other = client.post(f"/api/v1/projects/{project.id}/assignments", headers=_headers(other_manager), json=payload)
    assert as_other.status_code == 403

    out_of_range = client.post(
        f"/api/v1/projects/{project.id}/assignments",
        headers=_headers(owner),
        json={"employee_id": str(employee.id), "involvement_percentage": 120},
    )
    assert out_of_range.status_code == 422


def _record_scalar_statements(db: Session, monkeypatch) -> list[str]:
    issued: list[str] = []
    original = db.scalar

    def recording_scalar(statement, *args, **kwargs):
        issued.append(str(statement.compile(dialect=postgresql.dialect())))
        return original(statement, *args, **kwargs)

    monkeypatch.setattr(db, "scalar", recording_scalar)
    return issued


def _lock_precedes_capacity_read(issued: list[str]) -> bool:
    lock_at = next(i for i, sql in enumerate(issued) if "FROM users" in sql and sql.endswith("FOR UPDATE"))
    sum_at = next(i for i, sql in enumerate(issued) if "sum(project_assignments.involvement_percentage)" in sql)
    return lock_at < sum_at


def test_capacity_checks_lock_the_employee_row_first(
    db_session: Session, make_user, make_project, monkeypatch
) -> None:
    manager = make_user(role=UserRole.MANAGER)
    employee = make_user()
    project = make_project(manager)
    validator = AssignmentValidator(db_session)

    issued = _record_scalar_statements(db_session, monkeypatch)
    validator.assign(
        project_id=project.id,
        data=AssignmentCreateData(employee_id=employee.id, involvement_percentage=Decimal("30")),
    )
    assert _lock_precedes_capacity_read(issued)

    issued.clear()
    validator.update_involvement(
        project_id=project.id,
        employee_id=employee.id,
        data=AssignmentUpdateData(involvement_percentage=Decimal("50")),
    )
    assert _lock_precedes_capacity_read(issued)


def test_capacity_error_maps_to_unprocessable() -> None:
    error = CapacityExceeded(available=Decimal("5.00"))

    assert error.status_code == 422
    assert error.detail["available"] == "5.00"
