"""Caller notification feed endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from workload_ledger.core.auth import RequestUserContext, get_current_user_context, require_roles
from workload_ledger.db.dependencies import get_db_session
from workload_ledger.models.entities import UserRole
from workload_ledger.services.notification_service import NotificationService

router = APIRouter(tags=["notifications"])


class AdminNoticePayload(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1, max_length=2000)
    subject_user_id: UUID | None = None


def _feed_response(service: NotificationService, rows: list) -> dict[str, object]:
    return {
        "items": [service.serialize(row) for row in rows],
        "unread": sum(1 for row in rows if not row.read),
    }


@router.get("/me/notifications")
def list_notifications(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = NotificationService(db)
    return _feed_response(service, service.list_notifications(context.user_id))


@router.post("/me/notifications:evaluate")
def evaluate_notifications(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = NotificationService(db)
    return _feed_response(service, service.evaluate_for_user(context.user_id))


@router.post("/me/notifications/read-all")
def mark_all_read(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, int]:
    return {"updated": NotificationService(db).mark_all_read(context.user_id)}


@router.post("/me/notifications/{key}/read")
def mark_read(
    key: str,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = NotificationService(db)
    return service.serialize(service.mark_read(context.user_id, key))


@router.delete("/me/notifications/{key}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    key: str,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    NotificationService(db).delete_notification(context.user_id, key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/admin/notices", status_code=status.HTTP_201_CREATED)
def post_admin_notice(
    payload: AdminNoticePayload,
    _: RequestUserContext = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    notice = NotificationService(db).post_admin_notice(
        title=payload.title.strip(),
        message=payload.message.strip(),
        subject_user_id=payload.subject_user_id,
    )
    return {
        "id": str(notice.id),
        "title": notice.title,
        "message": notice.message,
        "subject_user_id": str(notice.subject_user_id) if notice.subject_user_id else None,
        "created_at": notice.created_at.isoformat(),
    }
