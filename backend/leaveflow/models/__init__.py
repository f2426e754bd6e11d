from sqlmodel import SQLModel

from leaveflow.models.balance import BALANCE_COUNTERS, LeaveBalance
from leaveflow.models.base import TimestampMixin, UpdatedAtMixin, UUIDBase
from leaveflow.models.enums import (
    BalanceChangeReason,
    ClearanceStatus,
    DutyStation,
    LeaveType,
    OutboxEventType,
    RequestStatus,
    Role,
    StepStatus,
)
from leaveflow.models.history import BalanceHistoryEntry
from leaveflow.models.outbox import OutboxEvent
from leaveflow.models.request import ApprovalStep, LeaveRequest

__all__ = [
    "BALANCE_COUNTERS",
    "ApprovalStep",
    "BalanceChangeReason",
    "BalanceHistoryEntry",
    "ClearanceStatus",
    "DutyStation",
    "LeaveBalance",
    "LeaveRequest",
    "LeaveType",
    "OutboxEvent",
    "OutboxEventType",
    "RequestStatus",
    "Role",
    "SQLModel",
    "StepStatus",
    "TimestampMixin",
    "UUIDBase",
    "UpdatedAtMixin",
]
