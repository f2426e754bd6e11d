# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime

import sqlalchemy as sa
from sqlmodel import Field

from leaveflow.models.base import TimestampMixin, UpdatedAtMixin, UUIDBase
from leaveflow.models.enums import RequestStatus, StepStatus


class LeaveRequest(UUIDBase, TimestampMixin, UpdatedAtMixin, table=True):
    """A staff member's leave request and the cursor into its approval chain."""

    __tablename__ = "leave_request"
    __table_args__ = (
        sa.Index("ix_leave_request_staff_status", "staff_id", "status"),
        sa.CheckConstraint("days > 0", name="ck_leave_request_days_positive"),
    )

    staff_id: str = Field(max_length=64, index=True)
    leave_type: str = Field(max_length=50)
    start_date: date
    end_date: date
    days: float
    reason: str | None = None
    status: str = Field(
        default=RequestStatus.PENDING, max_length=50, index=True, sa_column_kwargs={"server_default": "PENDING"}
    )
    # Lowest pending level; None once the request is terminal.
    current_level: int | None = Field(default=1)
    total_levels: int
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
    declaration_accepted: bool = False
    acting_officer_id: str | None = Field(default=None, max_length=64)
    external_clearance_status: str | None = Field(default=None, max_length=50)
    external_clearance_reference: str | None = Field(default=None, max_length=255)
    balance_deducted: bool = False
    balance_restored: bool = False
    decided_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    decided_by: str | None = Field(default=None, max_length=64)
    cancelled_by: str | None = Field(default=None, max_length=64)


class ApprovalStep(UUIDBase, UpdatedAtMixin, table=True):
    """One level of a request's approval chain."""

    __tablename__ = "approval_step"
    __table_args__ = (sa.UniqueConstraint("request_id", "level", name="uq_approval_step_request_level"),)

    request_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_request.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    level: int
    required_role: str = Field(max_length=50)
    assigned_approver_id: str | None = Field(default=None, max_length=64)
    status: str = Field(default=StepStatus.PENDING, max_length=50, sa_column_kwargs={"server_default": "PENDING"})
    decided_by: str | None = Field(default=None, max_length=64)
    decided_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    comments: str | None = None
    delegated_from: str | None = Field(default=None, max_length=64)
    delegated_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    escalated_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
