"""Ledger error taxonomy.

Every error is recoverable by the caller: re-fetch state and retry, or show
the message. They are ``HTTPException`` subclasses so services can raise them
directly, and the response ``detail`` carries a discriminating ``error`` code.
"""

from __future__ import annotations

from decimal import Decimal

from fastapi import HTTPException, status


class LedgerError(HTTPException):
    """Base class for workload ledger domain errors."""

    error_code = "ledger_error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **extra: object) -> None:
        self.message = message
        self.extra = extra
        super().__init__(
            status_code=self.http_status,
            detail={"error": self.error_code, "message": message, **extra},
        )

    def __str__(self) -> str:
        return self.message


class DuplicateAssignment(LedgerError):
    error_code = "duplicate_assignment"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, *, project_id: object, employee_id: object) -> None:
        super().__init__(
            "Employee is already assigned to this project.",
            project_id=str(project_id),
            employee_id=str(employee_id),
        )


class CapacityExceeded(LedgerError):
    error_code = "capacity_exceeded"
    # Literal: the named 422 constant differs across Starlette releases.
    http_status = 422

    def __init__(self, *, available: Decimal, pool: str = "project") -> None:
        self.available = available
        self.pool = pool
        if pool == "over_beyond":
            message = f"Employee only has {available}% Over & Beyond capacity available."
        else:
            message = f"Employee only has {available}% available capacity."
        super().__init__(message, available=str(available), pool=pool)


class NotFound(LedgerError):
    error_code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str) -> None:
        self.entity = entity
        super().__init__(f"{entity} not found.", entity=entity)


class ConcurrentModification(LedgerError):
    """Stored version moved on between read and write; safe to retry."""

    error_code = "concurrent_modification"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, *, project_id: object, expected_version: int) -> None:
        self.expected_version = expected_version
        super().__init__(
            "Project was modified concurrently. Reload and retry.",
            project_id=str(project_id),
            expected_version=expected_version,
            retryable=True,
        )


class UnknownEmployee(LedgerError):
    error_code = "unknown_employee"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, employee_id: object) -> None:
        super().__init__("Employee not found or inactive.", employee_id=str(employee_id))
