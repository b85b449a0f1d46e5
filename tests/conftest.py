from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import datetime
from decimal import Decimal
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from workload_ledger.db.base import Base
from workload_ledger.db.dependencies import get_db_session
import workload_ledger.models.entities  # noqa: F401
from workload_ledger.main import create_app
from workload_ledger.models.entities import (
    AdminNotice,
    Initiative,
    InitiativeStatus,
    Milestone,
    Notification,
    Project,
    ProjectAssignment,
    ProjectStatus,
    User,
    UserRole,
)

TEST_TABLES = [
    User.__table__,
    Project.__table__,
    ProjectAssignment.__table__,
    Milestone.__table__,
    Initiative.__table__,
    Notification.__table__,
    AdminNotice.__table__,
]


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine, tables=TEST_TABLES)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    def _make_user(
        *,
        role: UserRole = UserRole.EMPLOYEE,
        email: str | None = None,
        display_name: str | None = None,
        workload_cap: str = "100",
        over_beyond_cap: str = "20",
        active: bool = True,
    ) -> User:
        now = datetime.utcnow()
        suffix = uuid.uuid4().hex[:8]
        user = User(
            email=email or f"{role.value}.{suffix}@test.local",
            display_name=display_name or f"{role.value.replace('_', ' ').title()} {suffix}",
            role=role,
            workload_cap=Decimal(workload_cap),
            over_beyond_cap=Decimal(over_beyond_cap),
            active=active,
            created_at=now,
            updated_at=now,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def make_project(db_session: Session) -> Callable[..., Project]:
    def _make_project(
        manager: User,
        *,
        title: str | None = None,
        status: ProjectStatus = ProjectStatus.ACTIVE,
        estimated_hours: str | None = None,
        actual_hours: str | None = None,
        budget_amount: str | None = None,
    ) -> Project:
        now = datetime.utcnow()
        project = Project(
            title=title or f"Project {uuid.uuid4().hex[:6]}",
            status=status,
            manager_id=manager.id,
            estimated_hours=Decimal(estimated_hours) if estimated_hours else None,
            actual_hours=Decimal(actual_hours) if actual_hours else None,
            budget_amount=Decimal(budget_amount) if budget_amount else None,
            budget_currency="EUR" if budget_amount else None,
            version=1,
            created_at=now,
            updated_at=now,
        )
        db_session.add(project)
        db_session.commit()
        db_session.refresh(project)
        return project

    return _make_project


@pytest.fixture()
def seed_assignment(db_session: Session) -> Callable[..., ProjectAssignment]:
    """Insert an assignment row directly, bypassing the capacity gate."""

    def _seed_assignment(project: Project, employee: User, percentage: str) -> ProjectAssignment:
        assignment = ProjectAssignment(
            project_id=project.id,
            employee_id=employee.id,
            role="",
            involvement_percentage=Decimal(percentage),
            assigned_at=datetime.utcnow(),
        )
        db_session.add(assignment)
        db_session.commit()
        db_session.refresh(assignment)
        return assignment

    return _seed_assignment


@pytest.fixture()
def seed_initiative(db_session: Session) -> Callable[..., Initiative]:
    def _seed_initiative(
        assignee: User,
        percentage: str,
        *,
        status: InitiativeStatus = InitiativeStatus.ACTIVE,
        title: str = "Mentoring",
    ) -> Initiative:
        now = datetime.utcnow()
        initiative = Initiative(
            title=title,
            created_by=assignee.id,
            assigned_to=assignee.id,
            status=status,
            workload_percentage=Decimal(percentage),
            estimated_hours=Decimal("0"),
            created_at=now,
            updated_at=now,
        )
        db_session.add(initiative)
        db_session.commit()
        db_session.refresh(initiative)
        return initiative

    return _seed_initiative