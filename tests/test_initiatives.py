from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from workload_ledger.models.entities import User, UserRole
from workload_ledger.services.capacity_calculator import CapacityCalculator


def _headers(user: User) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


def _create(client: TestClient, actor: User, **payload: object):
    body = {"title": "Brown bag session", "workload_percentage": "5", "estimated_hours": "4", **payload}
    return client.post("/api/v1/initiatives", headers=_headers(actor), json=body)


def test_active_initiatives_are_capped_by_over_beyond_pool(
    client: TestClient, db_session: Session, make_user
) -> None:
    employee = make_user()

    first = _create(client, employee, assigned_to=str(employee.id), status="active", workload_percentage="15")
    assert first.status_code == 201
    assert first.json()["workload_percentage"] == "15.00"

    rejected = _create(client, employee, assigned_to=str(employee.id), status="active", workload_percentage="10")
    assert rejected.status_code == 422
    detail = rejected.json()["detail"]
    assert detail["error"] == "capacity_exceeded"
    assert detail["pool"] == "over_beyond"
    assert detail["available"] == "5.00"

    snapshot = CapacityCalculator(db_session).compute_workload(employee.id)
    assert snapshot.over_beyond_workload == Decimal("15.00")
    assert snapshot.available_capacity == Decimal("100.00")


def test_pending_initiative_is_checked_when_activated(client: TestClient, make_user) -> None:
    employee = make_user(over_beyond_cap="10")

    pending = _create(client, employee, assigned_to=str(employee.id), status="pending", workload_percentage="25")
    assert pending.status_code == 201
    initiative_id = pending.json()["id"]

    activate = client.patch(
        f"/api/v1/initiatives/{initiative_id}",
        headers=_headers(employee),
        json={"status": "active"},
    )
    assert activate.status_code == 422
    assert activate.json()["detail"]["available"] == "10.00"

    resized = client.patch(
        f"/api/v1/initiatives/{initiative_id}",
        headers=_headers(employee),
        json={"status": "active", "workload_percentage": "10"},
    )
    assert resized.status_code == 200
    assert resized.json()["status"] == "active"

    # Resizing an active initiative replaces its own share instead of adding to it.
    same_size = client.patch(
        f"/api/v1/initiatives/{initiative_id}",
        headers=_headers(employee),
        json={"workload_percentage": "10", "title": "Renamed"},
    )
    assert same_size.status_code == 200
    assert same_size.json()["title"] == "Renamed"


def test_completion_sets_timestamp_and_frees_pool(client: TestClient, db_session: Session, make_user) -> None:
    employee = make_user()
    created = _create(client, employee, assigned_to=str(employee.id), status="active", workload_percentage="20")
    initiative_id = created.json()["id"]
    assert created.json()["completed_at"] is None

    completed = client.patch(
        f"/api/v1/initiatives/{initiative_id}",
        headers=_headers(employee),
        json={"status": "completed", "actual_hours": "6.5"},
    )

    assert completed.status_code == 200
    assert completed.json()["completed_at"] is not None
    assert completed.json()["actual_hours"] == "6.50"
    snapshot = CapacityCalculator(db_session).compute_workload(employee.id)
    assert snapshot.over_beyond_available == Decimal("20.00")


def test_assignee_changes(client: TestClient, make_user) -> None:
    manager = make_user(role=UserRole.MANAGER)
    employee = make_user()
    colleague = make_user()

    by_employee = _create(client, employee, assigned_to=str(colleague.id))
    assert by_employee.status_code == 403

    by_manager = _create(client, manager, assigned_to=str(employee.id), status="active")
    assert by_manager.status_code == 201
    initiative_id = by_manager.json()["id"]

    listed = client.get("/api/v1/initiatives", headers=_headers(employee)).json()["items"]
    assert [row["id"] for row in listed] == [initiative_id]
    assert client.get("/api/v1/initiatives", headers=_headers(colleague)).json()["items"] == []
    assert client.get(f"/api/v1/initiatives/{initiative_id}", headers=_headers(colleague)).status_code == 403

    untouched = client.patch(
        f"/api/v1/initiatives/{initiative_id}",
        headers=_headers(manager),
        json={"description": "Monthly"},
    )
    assert untouched.json()["assigned_to"] == str(employee.id)

    unassigned = client.patch(
        f"/api/v1/initiatives/{initiative_id}",
        headers=_headers(manager),
        json={"assigned_to": None},
    )
    assert unassigned.status_code == 200
    assert unassigned.json()["assigned_to"] is None


def test_unknown_assignee_is_rejected(client: TestClient, make_user) -> None:
    manager = make_user(role=UserRole.MANAGER)

    response = _create(
        client,
        manager,
        assigned_to="00000000-0000-0000-0000-000000000001",
        status="active",
    )

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "unknown_employee"
