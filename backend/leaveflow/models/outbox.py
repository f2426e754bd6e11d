# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leaveflow.models.base import UUIDBase, now_utc


class OutboxEvent(UUIDBase, table=True):
    """Event recorded in the same transaction as a workflow transition."""

    __tablename__ = "outbox_event"
    __table_args__ = (sa.Index("ix_outbox_pending", "dispatched_at", "created_at"),)

    event_type: str = Field(max_length=50)
    request_id: uuid.UUID | None = Field(default=None, index=True)
    staff_id: str = Field(max_length=64)
    actor_id: str | None = Field(default=None, max_length=64)
    payload: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    attempts: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    created_at: datetime = Field(
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
    dispatched_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
