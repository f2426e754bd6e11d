# ruff: noqa: B008
from __future__ import annotations

from fastapi import APIRouter, Query

from leaveflow.api.deps import ActorDep, CoreDep
from leaveflow.models.balance import LeaveBalance
from leaveflow.models.enums import BalanceChangeReason, LeaveType
from leaveflow.models.history import BalanceHistoryEntry
from leaveflow.schemas.balance import (
    BalanceResponse,
    HistoryEntryResponse,
    HistoryListResponse,
    LeaveTypeBalanceResponse,
)
from leaveflow.services.policy import counter_for, parse_leave_type

staff_balance_router = APIRouter(prefix="/staff/{staff_id}", tags=["balances"])


def _build_balance_response(balance: LeaveBalance) -> BalanceResponse:
    return BalanceResponse(
        staff_id=balance.staff_id,
        annual=balance.annual,
        sick=balance.sick,
        maternity=balance.maternity,
        paternity=balance.paternity,
        compassionate=balance.compassionate,
        study=balance.study,
        training=balance.training,
        special_service=balance.special_service,
        version=balance.version,
        updated_at=balance.updated_at,
    )


def _build_history_response(entry: BalanceHistoryEntry) -> HistoryEntryResponse:
    return HistoryEntryResponse(
        id=entry.id,
        leave_type=LeaveType(entry.leave_type),
        counter=entry.counter,
        delta=entry.delta,
        balance_before=entry.balance_before,
        balance_after=entry.balance_after,
        reason=BalanceChangeReason(entry.reason),
        source_id=entry.source_id,
        created_at=entry.created_at,
    )


@staff_balance_router.get("/balances", response_model=BalanceResponse)
async def get_staff_balances(
    staff_id: str,
    core: CoreDep,
    _actor: ActorDep,
) -> BalanceResponse:
    """Get every entitlement counter of a staff member."""
    return _build_balance_response(await core.ledger.get_balances(staff_id))


@staff_balance_router.get("/balances/{leave_type}", response_model=LeaveTypeBalanceResponse)
async def get_staff_balance(
    staff_id: str,
    leave_type: str,
    core: CoreDep,
    _actor: ActorDep,
) -> LeaveTypeBalanceResponse:
    """Get the balance available for one leave type (legacy names accepted)."""
    parsed = parse_leave_type(leave_type)
    return LeaveTypeBalanceResponse(
        staff_id=staff_id,
        leave_type=parsed,
        counter=counter_for(parsed),
        balance=await core.ledger.get_balance(staff_id, parsed),
    )


@staff_balance_router.get("/history", response_model=HistoryListResponse)
async def get_staff_history(
    staff_id: str,
    core: CoreDep,
    _actor: ActorDep,
    leave_type: str | None = Query(default=None),
) -> HistoryListResponse:
    """Get the balance history of a staff member, oldest first."""
    entries = await core.ledger.get_history(staff_id, leave_type)
    items = [_build_history_response(entry) for entry in entries]
    return HistoryListResponse(items=items, total=len(items))
