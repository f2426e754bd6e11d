from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field

from leaveflow.models.base import UUIDBase, now_utc


class BalanceHistoryEntry(UUIDBase, table=True):
    """Append-only record of every balance-affecting event."""

    __tablename__ = "leave_balance_history"
    __table_args__ = (
        sa.Index("ix_history_staff_type", "staff_id", "leave_type"),
        sa.UniqueConstraint("source_id", "reason", name="uq_history_source_reason"),
    )

    staff_id: str = Field(max_length=64, index=True)
    leave_type: str = Field(max_length=50)
    counter: str = Field(max_length=50)
    delta: float
    balance_before: float
    balance_after: float
    reason: str = Field(max_length=50)
    source_id: str | None = Field(default=None, max_length=255)
    created_at: datetime = Field(
        default_factory=now_utc,
        index=True,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
