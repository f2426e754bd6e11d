# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel

from leaveflow.models.enums import BalanceChangeReason, LeaveType

# ---------------------------------------------------------------------------
# Balance response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    """Every entitlement counter of one staff member."""

    staff_id: str
    annual: float
    sick: float
    maternity: float
    paternity: float
    compassionate: float
    study: float
    training: float
    special_service: float
    version: int
    updated_at: datetime | None


class LeaveTypeBalanceResponse(BaseModel):
    """Balance available for a single leave type."""

    staff_id: str
    leave_type: LeaveType
    counter: str | None  # None for balance-exempt leave types
    balance: float


# ---------------------------------------------------------------------------
# History response schemas
# ---------------------------------------------------------------------------


class HistoryEntryResponse(BaseModel):
    """A single balance history entry."""

    id: uuid.UUID
    leave_type: LeaveType
    counter: str
    delta: float
    balance_before: float
    balance_after: float
    reason: BalanceChangeReason
    source_id: str | None
    created_at: datetime


class HistoryListResponse(BaseModel):
    """Balance history for a staff member, oldest first."""

    items: list[HistoryEntryResponse]
    total: int
