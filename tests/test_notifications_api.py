from __future__ import annotations

import threading
from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from workload_ledger.models.entities import Milestone, Notification, User, UserRole
from workload_ledger.services.notification_rules import FeedNotification
from workload_ledger.services.notification_scanner import NotificationScanner
from workload_ledger.services.notification_service import NotificationService


def _headers(user: User) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


class RecordingDispatcher:
    def __init__(self) -> None:
        self.sent: list[tuple[User, FeedNotification]] = []

    def dispatch(self, recipient: User, notification: FeedNotification) -> None:
        self.sent.append((recipient, notification))


def _overloaded_employee(make_user, make_project, seed_assignment, seed_initiative) -> User:
    manager = make_user(role=UserRole.MANAGER)
    employee = make_user()
    seed_assignment(make_project(manager), employee, "90")
    seed_initiative(employee, "15")
    return employee


def test_feed_lifecycle_over_http(
    client: TestClient, make_user, make_project, seed_assignment, seed_initiative
) -> None:
    employee = _overloaded_employee(make_user, make_project, seed_assignment, seed_initiative)

    empty = client.get("/api/v1/me/notifications", headers=_headers(employee))
    assert empty.json() == {"items": [], "unread": 0}

    evaluated = client.post("/api/v1/me/notifications:evaluate", headers=_headers(employee))
    assert evaluated.status_code == 200
    items = evaluated.json()["items"]
    assert [item["rule"] for item in items] == ["workload-exceeded"]
    assert items[0]["priority"] == "critical"
    assert "105.0%" in items[0]["message"]
    key = items[0]["key"]

    repeated = client.post("/api/v1/me/notifications:evaluate", headers=_headers(employee))
    assert repeated.json()["items"] == items

    marked = client.post(f"/api/v1/me/notifications/{key}/read", headers=_headers(employee))
    assert marked.status_code == 200
    assert marked.json()["read"] is True

    after_read = client.post("/api/v1/me/notifications:evaluate", headers=_headers(employee))
    assert after_read.json() == {"items": [marked.json()], "unread": 0}

    deleted = client.delete(f"/api/v1/me/notifications/{key}", headers=_headers(employee))
    assert deleted.status_code == 204

    missing = client.post(f"/api/v1/me/notifications/{key}/read", headers=_headers(employee))
    assert missing.status_code == 404

    # Deleting history while the condition still holds materialises a fresh alert.
    fresh = client.post("/api/v1/me/notifications:evaluate", headers=_headers(employee))
    assert fresh.json()["unread"] == 1
    assert fresh.json()["items"][0]["key"] == key


def test_mark_all_read(client: TestClient, db_session: Session, make_user, make_project) -> None:
    manager = make_user(role=UserRole.MANAGER)
    project = make_project(manager)
    today = datetime.utcnow().date()
    for offset in (-2, 3):
        db_session.add(
            Milestone(
                project_id=project.id,
                title=f"M{offset}",
                due_date=today + timedelta(days=offset),
                completed=False,
            )
        )
    db_session.commit()

    evaluated = client.post("/api/v1/me/notifications:evaluate", headers=_headers(manager))
    assert {item["rule"] for item in evaluated.json()["items"]} == {
        "overdue-milestone",
        "upcoming-milestone",
        "unresourced-project",
    }

    updated = client.post("/api/v1/me/notifications/read-all", headers=_headers(manager))
    assert updated.json() == {"updated": 3}
    assert client.get("/api/v1/me/notifications", headers=_headers(manager)).json()["unread"] == 0


def test_owned_projects_feed_alerts_for_any_role(
    client: TestClient, db_session: Session, make_user, make_project, seed_assignment
) -> None:
    rd_manager = make_user(role=UserRole.RD_MANAGER)
    project = make_project(rd_manager, title="Lab refit")
    seed_assignment(project, make_user(), "20")
    db_session.add(
        Milestone(
            project_id=project.id,
            title="Bench install",
            due_date=datetime.utcnow().date() - timedelta(days=3),
            completed=False,
        )
    )
    db_session.commit()

    listed = client.get("/api/v1/projects", headers=_headers(rd_manager)).json()["items"]
    assert [row["title"] for row in listed] == ["Lab refit"]

    feed = NotificationService(db_session).evaluate_for_user(rd_manager.id)

    assert [row.rule for row in feed] == ["overdue-milestone"]
    assert feed[0].entity_id == str(project.id)


def test_surfaced_alerts_dispatch_once(
    db_session: Session, make_user, make_project, seed_assignment, seed_initiative
) -> None:
    employee = _overloaded_employee(make_user, make_project, seed_assignment, seed_initiative)
    dispatcher = RecordingDispatcher()
    service = NotificationService(db_session, dispatcher=dispatcher)

    service.evaluate_for_user(employee.id)
    service.evaluate_for_user(employee.id)

    assert [row.rule for _, row in dispatcher.sent] == ["workload-exceeded"]
    assert dispatcher.sent[0][0].id == employee.id


def test_concurrent_evaluation_returns_stored_feed_without_dispatch(
    db_session: Session, make_user, make_project, seed_assignment, seed_initiative, monkeypatch
) -> None:
    employee = _overloaded_employee(make_user, make_project, seed_assignment, seed_initiative)
    NotificationService(db_session).evaluate_for_user(employee.id)

    dispatcher = RecordingDispatcher()
    stale = NotificationService(db_session, dispatcher=dispatcher)
    original = stale.repo.list_notifications
    reads: list[object] = []

    def first_read_is_stale(recipient_id):
        # The first read misses the feed another scan has just stored.
        reads.append(recipient_id)
        return [] if len(reads) == 1 else original(recipient_id)

    monkeypatch.setattr(stale.repo, "list_notifications", first_read_is_stale)
    feed = stale.evaluate_for_user(employee.id)

    assert dispatcher.sent == []
    assert [row.rule for row in feed] == ["workload-exceeded"]
    stored = NotificationService(db_session).list_notifications(employee.id)
    assert [row.rule for row in stored] == ["workload-exceeded"]
    assert db_session.query(Notification).count() == 1


def test_admin_feed_shows_provisioning_notices(client: TestClient, make_user) -> None:
    admin = make_user(role=UserRole.ADMIN)

    provisioned = client.post(
        "/api/v1/users",
        headers=_headers(admin),
        json={"email": "New.Hire@Test.Local", "display_name": "New Hire"},
    )
    assert provisioned.status_code == 201

    posted = client.post(
        "/api/v1/admin/notices",
        headers=_headers(admin),
        json={"title": "Maintenance", "message": "Database upgrade tonight"},
    )
    assert posted.status_code == 201

    feed = client.post("/api/v1/me/notifications:evaluate", headers=_headers(admin)).json()
    assert {item["title"] for item in feed["items"]} == {"New User Provisioned", "Maintenance"}
    assert all(item["rule"] == "admin-notice" for item in feed["items"])

    employee_feed = client.post(
        "/api/v1/me/notifications:evaluate",
        headers={"X-User-Id": provisioned.json()["id"]},
    ).json()
    assert employee_feed["items"] == []


def test_admin_notices_require_admin(client: TestClient, make_user) -> None:
    manager = make_user(role=UserRole.MANAGER)

    response = client.post(
        "/api/v1/admin/notices",
        headers=_headers(manager),
        json={"title": "Nope", "message": "Not allowed"},
    )

    assert response.status_code == 403


def test_scanner_pass_evaluates_every_active_user(
    engine: Engine, db_session: Session, make_user, make_project, seed_assignment, seed_initiative
) -> None:
    employee = _overloaded_employee(make_user, make_project, seed_assignment, seed_initiative)
    make_user(active=False)
    scanner = NotificationScanner(
        sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True),
        interval_seconds=60,
    )

    result = scanner.run_once()

    assert result == {"evaluated": 2, "failed": 0}
    db_session.expire_all()
    stored = NotificationService(db_session).list_notifications(employee.id)
    assert [row.rule for row in stored] == ["workload-exceeded"]


def test_scanner_keeps_going_after_a_failing_user(engine: Engine, make_user) -> None:
    broken = make_user()
    make_user()

    class FlakyService(NotificationService):
        def evaluate_for_user(self, recipient_id, *, now=None):
            if recipient_id == broken.id:
                raise RuntimeError("boom")
            return super().evaluate_for_user(recipient_id, now=now)

    scanner = NotificationScanner(
        sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True),
        interval_seconds=60,
        service_factory=FlakyService,
    )

    assert scanner.run_once() == {"evaluated": 1, "failed": 1}


def test_scanner_thread_starts_and_stops() -> None:
    class CountingScanner(NotificationScanner):
        def __init__(self) -> None:
            super().__init__(lambda: None, interval_seconds=60)
            self.passed = threading.Event()

        def run_once(self) -> dict[str, int]:
            self.passed.set()
            return {"evaluated": 0, "failed": 0}

    scanner = CountingScanner()
    scanner.start()
    try:
        assert scanner.passed.wait(timeout=2) is True
        assert scanner.running is True
    finally:
        scanner.stop()

    assert scanner.running is False
