from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

if TYPE_CHECKING:
    from leaveflow.services.compliance import ComplianceIssue, ComplianceResult


class ErrorReason(BaseModel):
    """A single machine-readable reason attached to an error."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    code: str
    detail: str | None = None
    status_code: int
    retryable: bool = False
    reasons: list[ErrorReason] = []
    warnings: list[ErrorReason] = []


class AppError(Exception):
    """Base application exception."""

    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed input, unknown leave type or a non-positive day count."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


class InsufficientBalanceError(AppError):
    """The balance cannot cover the requested days."""

    code = "INSUFFICIENT_BALANCE"

    def __init__(self, leave_type: str, available: float, requested: float) -> None:
        self.leave_type = leave_type
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient {leave_type} leave balance. Available: {available:g} days, Requested: {requested:g} days",
            status_code=status.HTTP_409_CONFLICT,
        )


class ComplianceError(AppError):
    """One or more compliance checks failed; carries every reason at once."""

    code = "COMPLIANCE_FAILED"

    def __init__(self, result: ComplianceResult) -> None:
        self.issues: list[ComplianceIssue] = list(result.errors)
        self.warnings: list[ComplianceIssue] = list(result.warnings)
        summary = "; ".join(issue.message for issue in self.issues)
        super().__init__(
            f"Compliance check failed: {summary}",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @property
    def codes(self) -> list[str]:
        return [issue.code for issue in self.issues]


class ConflictError(AppError):
    """A concurrent writer won the race and internal retries were exhausted."""

    code = "CONFLICT"
    retryable = True

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


class StateError(AppError):
    """Illegal state transition for the request or approval step."""

    code = "INVALID_STATE"

    def __init__(self, message: str, status_code: int = status.HTTP_409_CONFLICT) -> None:
        super().__init__(message, status_code=status_code)


class SelfApprovalForbiddenError(StateError):
    """The requester tried to act as an approver on their own request."""

    code = "SEGREGATION_OF_DUTIES_VIOLATION"

    def __init__(self, message: str = "Approvers cannot act on their own leave requests") -> None:
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN)


class PermissionDeniedError(AppError):
    """The actor lacks authority for the requested action."""

    code = "PERMISSION_DENIED"

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    """Referenced request, balance or staff member does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, identifier: object) -> None:
        super().__init__(f"{entity} '{identifier}' not found", status_code=status.HTTP_404_NOT_FOUND)


class StaleVersionError(Exception):
    """A single conditional write lost its race. Retried, never surfaced."""


def _reasons(issues: list[ComplianceIssue]) -> list[ErrorReason]:
    return [ErrorReason(code=issue.code, message=issue.message) for issue in issues]


async def _app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    reasons: list[ErrorReason] = []
    warnings: list[ErrorReason] = []
    if isinstance(exc, ComplianceError):
        reasons = _reasons(exc.issues)
        warnings = _reasons(exc.warnings)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            code=exc.code,
            detail=exc.message,
            status_code=exc.status_code,
            retryable=exc.retryable,
            reasons=reasons,
            warnings=warnings,
        ).model_dump(),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    reasons = [
        ErrorReason(code=ValidationError.code, message=f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}")
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error="ValidationError",
            code=ValidationError.code,
            detail="Request validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            reasons=reasons,
        ).model_dump(),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, _app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)  # type: ignore[arg-type]
