from __future__ import annotations

from fastapi.testclient import TestClient

from workload_ledger.models.entities import User, UserRole


def _headers(user: User) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


def test_admin_provisions_user_with_default_caps(client: TestClient, make_user) -> None:
    admin = make_user(role=UserRole.ADMIN)

    response = client.post(
        "/api/v1/users",
        headers=_headers(admin),
        json={"email": "  Dana.Dev@Test.Local ", "display_name": "Dana Dev"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "dana.dev@test.local"
    assert body["role"] == "employee"
    assert body["workload_cap"] == "100.00"
    assert body["over_beyond_cap"] == "20.00"
    assert body["active"] is True

    duplicate = client.post(
        "/api/v1/users",
        headers=_headers(admin),
        json={"email": "dana.dev@test.local", "display_name": "Dana Again"},
    )
    assert duplicate.status_code == 409


def test_only_admin_manages_users(client: TestClient, make_user) -> None:
    manager = make_user(role=UserRole.MANAGER)
    employee = make_user()

    provision = client.post(
        "/api/v1/users",
        headers=_headers(manager),
        json={"email": "someone@test.local", "display_name": "Someone"},
    )
    assert provision.status_code == 403
    capacity = client.patch(
        f"/api/v1/users/{employee.id}/capacity",
        headers=_headers(manager),
        json={"workload_cap": "50"},
    )
    assert capacity.status_code == 403

    assert client.get("/api/v1/users", headers=_headers(employee)).status_code == 403
    listed = client.get("/api/v1/users", headers=_headers(manager))
    assert listed.status_code == 200
    assert {row["id"] for row in listed.json()["items"]} == {str(manager.id), str(employee.id)}


def test_capacity_update_keeps_existing_commitments(
    client: TestClient, make_user, make_project, seed_assignment
) -> None:
    admin = make_user(role=UserRole.ADMIN)
    employee = make_user()
    seed_assignment(make_project(admin), employee, "80")

    response = client.patch(
        f"/api/v1/users/{employee.id}/capacity",
        headers=_headers(admin),
        json={"workload_cap": "60", "over_beyond_cap": "5"},
    )

    assert response.status_code == 200
    assert response.json()["workload_cap"] == "60.00"
    assert response.json()["over_beyond_cap"] == "5.00"

    workload = client.get(f"/api/v1/employees/{employee.id}/workload", headers=_headers(employee)).json()
    assert workload["project_workload"] == "80.00"
    assert workload["available_capacity"] == "0.00"
    assert workload["warnings"]


def test_deactivated_user_loses_access(client: TestClient, make_user) -> None:
    admin = make_user(role=UserRole.ADMIN)
    employee = make_user()

    assert client.get("/api/v1/me", headers=_headers(employee)).status_code == 200

    response = client.post(f"/api/v1/users/{employee.id}/deactivate", headers=_headers(admin))
    assert response.status_code == 200
    assert response.json()["active"] is False

    assert client.get("/api/v1/me", headers=_headers(employee)).status_code == 401
    assert client.post(f"/api/v1/users/{admin.id}/deactivate", headers=_headers(admin)).status_code == 409


def test_workload_visibility(client: TestClient, make_user) -> None:
    employee = make_user()
    colleague = make_user()
    rd_manager = make_user(role=UserRole.RD_MANAGER)

    own = client.get(f"/api/v1/employees/{employee.id}/workload", headers=_headers(employee))
    assert own.status_code == 200
    assert own.json()["total_workload"] == "0.00"

    peer = client.get(f"/api/v1/employees/{employee.id}/workload", headers=_headers(colleague))
    assert peer.status_code == 403

    assert client.get(f"/api/v1/employees/{employee.id}/workload", headers=_headers(rd_manager)).status_code == 200
    assert client.get("/api/v1/workload/summary", headers=_headers(rd_manager)).status_code == 200
    assert client.get("/api/v1/workload/summary", headers=_headers(employee)).status_code == 403
