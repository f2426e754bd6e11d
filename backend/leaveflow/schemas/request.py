# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Self

from pydantic import BaseModel, Field, field_validator, model_validator

from leaveflow.exceptions import ValidationError
from leaveflow.models.enums import ClearanceStatus, LeaveType, RequestStatus, Role, StepStatus
from leaveflow.services.policy import parse_leave_type

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class SubmitRequestPayload(BaseModel):
    """Request body for submitting a new leave request."""

    leave_type: LeaveType
    start_date: date
    end_date: date
    days: float | None = Field(default=None, gt=0)
    reason: str | None = Field(default=None, max_length=1000)
    declaration_accepted: bool = False
    acting_officer_id: str | None = Field(default=None, max_length=64)
    external_clearance_status: ClearanceStatus | None = None
    external_clearance_reference: str | None = Field(default=None, max_length=255)

    @field_validator("leave_type", mode="before")
    @classmethod
    def _parse_leave_type(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        try:
            return parse_leave_type(value)
        except ValidationError as exc:
            raise ValueError(exc.message) from exc

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must not be before start_date"
            raise ValueError(msg)
        return self

    @property
    def requested_days(self) -> float:
        """Explicit day count, or the inclusive calendar-day span."""
        if self.days is not None:
            return self.days
        return float((self.end_date - self.start_date).days + 1)


class DecisionPayload(BaseModel):
    """Request body for approve/reject actions."""

    comments: str | None = Field(default=None, max_length=1000)


class DelegatePayload(BaseModel):
    """Request body for delegating an approval level."""

    to_approver_id: str = Field(min_length=1, max_length=64)


class ClearancePayload(BaseModel):
    """Request body for recording a PSC/OHCS clearance outcome."""

    status: ClearanceStatus
    reference: str | None = Field(default=None, max_length=255)


class EscalationRunPayload(BaseModel):
    """Request body for triggering an escalation pass."""

    as_of: date | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ApprovalStepResponse(BaseModel):
    """One level of an approval chain."""

    level: int
    required_role: Role
    assigned_approver_id: str | None
    status: StepStatus
    decided_by: str | None
    decided_at: datetime | None
    comments: str | None
    delegated_from: str | None
    escalated_at: datetime | None = None


class ComplianceIssueResponse(BaseModel):
    code: str
    message: str


class RequestResponse(BaseModel):
    """Response schema for a single leave request."""

    id: uuid.UUID
    staff_id: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    days: float
    reason: str | None
    status: RequestStatus
    current_level: int | None
    total_levels: int
    version: int
    declaration_accepted: bool
    acting_officer_id: str | None
    external_clearance_status: ClearanceStatus | None
    external_clearance_reference: str | None
    balance_deducted: bool
    balance_restored: bool
    decided_at: datetime | None
    decided_by: str | None
    cancelled_by: str | None
    created_at: datetime
    chain: list[ApprovalStepResponse]
    warnings: list[ComplianceIssueResponse] = []


class RequestListResponse(BaseModel):
    """List of leave requests."""

    items: list[RequestResponse]
    total: int


class EscalationRunResponse(BaseModel):
    """Summary of a stale-step escalation pass."""

    as_of: date
    examined: int
    escalated: int
    unescalated: int
    errors: int


class ComplianceReportResponse(BaseModel):
    """Result of re-running the compliance gate on a stored request."""

    request_id: uuid.UUID
    compliant: bool
    errors: list[ComplianceIssueResponse]
    warnings: list[ComplianceIssueResponse]
