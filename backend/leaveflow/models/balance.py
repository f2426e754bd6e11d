from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from leaveflow.models.base import now_utc

# Named entitlement counters held on every balance record.
BALANCE_COUNTERS: tuple[str, ...] = (
    "annual",
    "sick",
    "maternity",
    "paternity",
    "compassionate",
    "study",
    "training",
    "special_service",
)


class LeaveBalance(SQLModel, table=True):
    """Per-staff entitlement counters guarded by an optimistic version."""

    __tablename__ = "leave_balance"
    __table_args__ = tuple(
        sa.CheckConstraint(f"{counter} >= 0", name=f"ck_leave_balance_{counter}_non_negative")
        for counter in BALANCE_COUNTERS
    )

    staff_id: str = Field(primary_key=True, max_length=64)
    annual: float = Field(default=0, sa_column_kwargs={"server_default": "0"})
    sick: float = Field(default=0, sa_column_kwargs={"server_default": "0"})
    maternity: float = Field(default=0, sa_column_kwargs={"server_default": "0"})
    paternity: float = Field(default=0, sa_column_kwargs={"server_default": "0"})
    compassionate: float = Field(default=0, sa_column_kwargs={"server_default": "0"})
    study: float = Field(default=0, sa_column_kwargs={"server_default": "0"})
    training: float = Field(default=0, sa_column_kwargs={"server_default": "0"})
    special_service: float = Field(default=0, sa_column_kwargs={"server_default": "0"})
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now()},
    )
