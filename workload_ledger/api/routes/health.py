"""Liveness and readiness probes."""

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workload_ledger.db.dependencies import get_db_session

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    """Simple liveness endpoint."""

    return {"status": "ok"}


@router.get("/health/ready")
def readiness(request: Request, response: Response, db: Session = Depends(get_db_session)) -> dict[str, object]:
    """Report whether the ledger database answers and the feed scanner runs."""

    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        database = "unavailable"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    scanner = getattr(request.app.state, "notification_scanner", None)
    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "notification_scanner": "running" if scanner is not None and scanner.running else "stopped",
    }
