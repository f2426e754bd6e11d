"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

BALANCE_COUNTERS = (
    "annual",
    "sick",
    "maternity",
    "paternity",
    "compassionate",
    "study",
    "training",
    "special_service",
)


def upgrade() -> None:
    op.create_table(
        "leave_request",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("staff_id", sa.String(length=64), nullable=False),
        sa.Column("leave_type", sa.String(length=50), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("days", sa.Float(), nullable=False),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("status", sa.String(length=50), server_default="PENDING", nullable=False),
        sa.Column("current_level", sa.Integer(), nullable=True),
        sa.Column("total_levels", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        sa.Column("declaration_accepted", sa.Boolean(), nullable=False),
        sa.Column("acting_officer_id", sa.String(length=64), nullable=True),
        sa.Column("external_clearance_status", sa.String(length=50), nullable=True),
        sa.Column("external_clearance_reference", sa.String(length=255), nullable=True),
        sa.Column("balance_deducted", sa.Boolean(), nullable=False),
        sa.Column("balance_restored", sa.Boolean(), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_by", sa.String(length=64), nullable=True),
        sa.Column("cancelled_by", sa.String(length=64), nullable=True),
        sa.CheckConstraint("days > 0", name="ck_leave_request_days_positive"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_leave_request_staff_id", "leave_request", ["staff_id"])
    op.create_index("ix_leave_request_status", "leave_request", ["status"])
    op.create_index("ix_leave_request_staff_status", "leave_request", ["staff_id", "status"])

    op.create_table(
        "approval_step",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("required_role", sa.String(length=50), nullable=False),
        sa.Column("assigned_approver_id", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=50), server_default="PENDING", nullable=False),
        sa.Column("decided_by", sa.String(length=64), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("comments", sa.String(), nullable=True),
        sa.Column("delegated_from", sa.String(length=64), nullable=True),
        sa.Column("delegated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["request_id"], ["leave_request.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("request_id", "level", name="uq_approval_step_request_level"),
    )
    op.create_index("ix_approval_step_request_id", "approval_step", ["request_id"])

    op.create_table(
        "leave_balance",
        sa.Column("staff_id", sa.String(length=64), nullable=False),
        *(sa.Column(counter, sa.Float(), server_default="0", nullable=False) for counter in BALANCE_COUNTERS),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *(
            sa.CheckConstraint(f"{counter} >= 0", name=f"ck_leave_balance_{counter}_non_negative")
            for counter in BALANCE_COUNTERS
        ),
        sa.PrimaryKeyConstraint("staff_id"),
    )

    op.create_table(
        "leave_balance_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("staff_id", sa.String(length=64), nullable=False),
        sa.Column("leave_type", sa.String(length=50), nullable=False),
        sa.Column("counter", sa.String(length=50), nullable=False),
        sa.Column("delta", sa.Float(), nullable=False),
        sa.Column("balance_before", sa.Float(), nullable=False),
        sa.Column("balance_after", sa.Float(), nullable=False),
        sa.Column("reason", sa.String(length=50), nullable=False),
        sa.Column("source_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_id", "reason", name="uq_history_source_reason"),
    )
    op.create_index("ix_leave_balance_history_staff_id", "leave_balance_history", ["staff_id"])
    op.create_index("ix_leave_balance_history_created_at", "leave_balance_history", ["created_at"])
    op.create_index("ix_history_staff_type", "leave_balance_history", ["staff_id", "leave_type"])

    op.create_table(
        "outbox_event",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("request_id", sa.Uuid(), nullable=True),
        sa.Column("staff_id", sa.String(length=64), nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_outbox_event_request_id", "outbox_event", ["request_id"])
    op.create_index("ix_outbox_pending", "outbox_event", ["dispatched_at", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_outbox_pending", table_name="outbox_event")
    op.drop_index("ix_outbox_event_request_id", table_name="outbox_event")
    op.drop_table("outbox_event")
    op.drop_index("ix_history_staff_type", table_name="leave_balance_history")
    op.drop_index("ix_leave_balance_history_created_at", table_name="leave_balance_history")
    op.drop_index("ix_leave_balance_history_staff_id", table_name="leave_balance_history")
    op.drop_table("leave_balance_history")
    op.drop_table("leave_balance")
    op.drop_index("ix_approval_step_request_id", table_name="approval_step")
    op.drop_table("approval_step")
    op.drop_index("ix_leave_request_staff_status", table_name="leave_request")
    op.drop_index("ix_leave_request_status", table_name="leave_request")
    op.drop_index("ix_leave_request_staff_id", table_name="leave_request")
    op.drop_table("leave_request")
