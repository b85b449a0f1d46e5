"""Request identity extraction and role permission helpers.

Authentication itself happens upstream; the proxy forwards the resolved user
id in ``X-User-Id``. Roles only decide which operations a caller may perform;
the capacity ledger treats every user the same.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from workload_ledger.db.dependencies import get_db_session
from workload_ledger.models.entities import Project, User, UserRole

MANAGER_ROLES = {UserRole.ADMIN, UserRole.PROGRAM_MANAGER, UserRole.MANAGER}
PROJECT_WIDE_VIEW_ROLES = {UserRole.ADMIN, UserRole.PROGRAM_MANAGER}


@dataclass(frozen=True)
class RequestUserContext:
    """Authenticated request actor resolved from headers and DB state."""

    user_id: UUID
    email: str
    display_name: str
    role: UserRole
    active: bool

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


def _parse_user_id(x_user_id: str | None) -> UUID:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity header. Expected X-User-Id.",
        )
    try:
        return UUID(x_user_id.strip())
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed X-User-Id header.",
        ) from exc


def get_current_user_context(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db_session),
) -> RequestUserContext:
    """Resolve the current request user from the trusted identity header."""

    user_id = _parse_user_id(x_user_id)
    user = db.scalar(select(User).where(User.id == user_id))
    if user is None or not user.active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown or deactivated user.",
        )

    return RequestUserContext(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
        active=user.active,
    )


def has_role(context: RequestUserContext, allowed_roles: set[UserRole]) -> bool:
    """Check whether user holds one of the allowed roles."""

    return context.role in allowed_roles


def can_manage_users(context: RequestUserContext) -> bool:
    return context.is_admin


def can_assign_projects(context: RequestUserContext) -> bool:
    return has_role(context, MANAGER_ROLES)


def can_edit_project(context: RequestUserContext, project: Project) -> bool:
    return has_role(context, PROJECT_WIDE_VIEW_ROLES) or project.manager_id == context.user_id


def can_delete_project(context: RequestUserContext, project: Project) -> bool:
    if context.is_admin:
        return True
    return context.role is UserRole.PROGRAM_MANAGER and project.manager_id == context.user_id


def can_view_project(context: RequestUserContext, project: Project, *, is_member: bool) -> bool:
    if has_role(context, PROJECT_WIDE_VIEW_ROLES) or project.manager_id == context.user_id:
        return True
    return is_member


def can_view_workload(context: RequestUserContext, employee_id: UUID) -> bool:
    return context.user_id == employee_id or has_role(context, MANAGER_ROLES | {UserRole.RD_MANAGER})


def require_roles(*roles: UserRole):
    """Dependency factory requiring at least one provided role."""

    allowed = set(roles)

    def dependency(context: RequestUserContext = Depends(get_current_user_context)) -> RequestUserContext:
        if not has_role(context, allowed):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role permissions for this operation.",
            )
        return context

    return dependency
