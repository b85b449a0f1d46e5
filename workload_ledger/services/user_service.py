"""Account provisioning and capacity settings."""

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

from workload_ledger.core.auth import RequestUserContext, can_manage_users
from workload_ledger.core.config import get_settings
from workload_ledger.core.errors import UnknownEmployee
from workload_ledger.models.entities import AdminNotice, User, UserRole
from workload_ledger.repositories.workload_repository import WorkloadRepository
from workload_ledger.services.assignment_service import normalize_percentage

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UserCreateData:
    email: str
    display_name: str
    role: UserRole = UserRole.EMPLOYEE
    workload_cap: Decimal | None = None
    over_beyond_cap: Decimal | None = None


@dataclass(slots=True)
class CapacityUpdateData:
    workload_cap: Decimal | None = None
    over_beyond_cap: Decimal | None = None


class UserService:
    def __init__(self, db: Session, *, clock: Callable[[], datetime] = datetime.utcnow) -> None:
        self.db = db
        self.repo = WorkloadRepository(db)
        self.settings = get_settings()
        self.clock = clock

    def _ensure_admin(self, context: RequestUserContext) -> None:
        if not can_manage_users(context):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only administrators can manage users.",
            )

    def _require_user(self, user_id: UUID) -> User:
        user = self.repo.get_user(user_id)
        if user is None:
            raise UnknownEmployee(user_id)
        return user

    def list_users(self, *, active_only: bool = False) -> list[User]:
        return self.repo.list_users(active_only=active_only)

    def provision_user(self, *, context: RequestUserContext, data: UserCreateData) -> User:
        self._ensure_admin(context)
        email = data.email.strip().lower()
        if self.repo.get_user_by_email(email) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User with this email already exists.",
            )

        workload_cap = (
            normalize_percentage(data.workload_cap, field="workload_cap")
            if data.workload_cap is not None
            else normalize_percentage(self.settings.default_workload_cap, field="workload_cap")
        )
        over_beyond_cap = (
            normalize_percentage(data.over_beyond_cap, field="over_beyond_cap")
            if data.over_beyond_cap is not None
            else normalize_percentage(self.settings.default_over_beyond_cap, field="over_beyond_cap")
        )

        now = self.clock()
        user = User(
            email=email,
            display_name=data.display_name.strip(),
            role=data.role,
            workload_cap=workload_cap,
            over_beyond_cap=over_beyond_cap,
            active=True,
            created_at=now,
            updated_at=now,
        )
        try:
            self.repo.add_user(user)
            self.repo.add_admin_notice(
                AdminNotice(
                    title="New User Provisioned",
                    message=f"{user.display_name} ({user.email}) joined as {user.role.value}",
                    subject_user_id=user.id,
                    created_at=now,
                )
            )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User with this email already exists.",
            ) from exc

        self.db.refresh(user)
        logger.info("Provisioned user %s as %s", user.email, user.role.value, extra={"employee_id": user.id})
        return user

    def update_capacity(
        self,
        *,
        context: RequestUserContext,
        user_id: UUID,
        data: CapacityUpdateData,
    ) -> User:
        """Change caps; existing commitments above a lowered cap are kept."""

        self._ensure_admin(context)
        user = self._require_user(user_id)
        if data.workload_cap is not None:
            user.workload_cap = normalize_percentage(data.workload_cap, field="workload_cap")
        if data.over_beyond_cap is not None:
            user.over_beyond_cap = normalize_percentage(data.over_beyond_cap, field="over_beyond_cap")
        user.updated_at = self.clock()
        self.db.commit()
        self.db.refresh(user)
        return user

    def deactivate(self, *, context: RequestUserContext, user_id: UUID) -> User:
        self._ensure_admin(context)
        user = self._require_user(user_id)
        if user.id == context.user_id:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Administrators cannot deactivate themselves.",
            )
        user.active = False
        user.updated_at = self.clock()
        self.db.commit()
        self.db.refresh(user)
        logger.info("Deactivated user %s", user.email, extra={"employee_id": user.id})
        return user

    @staticmethod
    def serialize_user(user: User) -> dict[str, object]:
        return {
            "id": str(user.id),
            "email": user.email,
            "display_name": user.display_name,
            "role": user.role.value,
            "workload_cap": str(user.workload_cap),
            "over_beyond_cap": str(user.over_beyond_cap),
            "active": user.active,
            "created_at": user.created_at.isoformat(),
            "updated_at": user.updated_at.isoformat(),
        }
