"""Tests for monthly accrual."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

import pytest

from leaveflow.exceptions import NotFoundError
from leaveflow.models.enums import BalanceChangeReason, LeaveType
from leaveflow.services.accrual import accrual_period, is_accrual_date, source_key
from leaveflow.services.policy import LeavePolicy

if TYPE_CHECKING:
    from httpx import AsyncClient

    from leaveflow.container import LeaveCore
    from leaveflow.services.policy import InMemoryPolicyStore

ACTIVE_STAFF = 5
FEBRUARY = date(2025, 2, 1)
MARCH = date(2025, 3, 1)


@pytest.fixture
def accruing_annual(policies: InMemoryPolicyStore) -> InMemoryPolicyStore:
    policies.seed(
        LeavePolicy(
            leave_type=LeaveType.ANNUAL,
            max_days_per_request=21,
            carryover_allowed=True,
            max_carryover=5,
            monthly_accrual_days=1.75,
            max_balance=30,
        )
    )
    return policies


def test_period_helpers() -> None:
    assert accrual_period(date(2025, 2, 14)) == "2025-02"
    assert source_key("2025-02", "STAFF-002", LeaveType.ANNUAL) == "accrual:2025-02:STAFF-002:ANNUAL"
    assert is_accrual_date(FEBRUARY)
    assert not is_accrual_date(date(2025, 2, 2))


async def test_default_policies_accrue_nothing(core: LeaveCore) -> None:
    result = await core.accrual.run(FEBRUARY)

    assert result.accrued == 0
    with pytest.raises(NotFoundError):
        await core.ledger.get_balances("STAFF-002")


@pytest.mark.usefixtures("accruing_annual")
async def test_monthly_credit_for_every_active_staff(core: LeaveCore) -> None:
    result = await core.accrual.run(FEBRUARY)

    assert result.period == "2025-02"
    assert (result.processed, result.accrued, result.skipped, result.errors) == (ACTIVE_STAFF, ACTIVE_STAFF, 0, 0)
    assert await core.ledger.get_balance("STAFF-002", LeaveType.ANNUAL) == 1.75
    with pytest.raises(NotFoundError):
        await core.ledger.get_balances("GONE-001")

    entry = (await core.ledger.get_history("STAFF-002", LeaveType.ANNUAL))[-1]
    assert entry.reason == BalanceChangeReason.ACCRUAL
    assert entry.source_id == "accrual:2025-02:STAFF-002:ANNUAL"
    assert entry.delta == 1.75


@pytest.mark.usefixtures("accruing_annual")
async def test_rerunning_a_period_is_a_noop(core: LeaveCore) -> None:
    await core.accrual.run(FEBRUARY)

    rerun = await core.accrual.run(date(2025, 2, 1))

    assert (rerun.accrued, rerun.skipped) == (0, ACTIVE_STAFF)
    assert await core.ledger.get_balance("STAFF-002", LeaveType.ANNUAL) == 1.75
    assert len(await core.ledger.get_history("STAFF-002", LeaveType.ANNUAL)) == 1

    await core.accrual.run(MARCH)
    assert await core.ledger.get_balance("STAFF-002", LeaveType.ANNUAL) == 3.5
    assert await core.ledger.replay("STAFF-002", LeaveType.ANNUAL) == 3.5


@pytest.mark.usefixtures("accruing_annual")
async def test_accrual_stops_at_max_balance(core: LeaveCore) -> None:
    await core.ledger.set_balance("STAFF-002", LeaveType.ANNUAL, 29.5, reason=BalanceChangeReason.ALLOCATION)

    await core.accrual.run(FEBRUARY)
    assert await core.ledger.get_balance("STAFF-002", LeaveType.ANNUAL) == 30

    await core.accrual.run(MARCH)
    assert await core.ledger.get_balance("STAFF-002", LeaveType.ANNUAL) == 30
    assert await core.ledger.replay("STAFF-002", LeaveType.ANNUAL) == 30


async def test_shared_counter_accrues_once(core: LeaveCore, policies: InMemoryPolicyStore) -> None:
    for leave_type in (LeaveType.STUDY, LeaveType.STUDY_WITH_PAY):
        policies.seed(LeavePolicy(leave_type=leave_type, requires_external_clearance=True, monthly_accrual_days=1))

    result = await core.accrual.run(FEBRUARY)

    assert result.accrued == ACTIVE_STAFF
    assert await core.ledger.get_balance("STAFF-002", LeaveType.STUDY_WITH_PAY) == 1


@pytest.mark.usefixtures("accruing_annual")
async def test_accrual_route_requires_administrator(async_client: AsyncClient, core: LeaveCore) -> None:
    denied = await async_client.post(
        "/accruals",
        json={"accrual_date": "2025-02-01"},
        headers={"X-Staff-Id": "SUP-002", "X-Role": "SUPERVISOR"},
    )
    assert denied.status_code == 403

    response = await async_client.post(
        "/accruals",
        json={"accrual_date": "2025-02-01"},
        headers={"X-Staff-Id": "HR-001", "X-Role": "HR"},
    )
    assert response.status_code == 200
    assert response.json()["period"] == "2025-02"
    assert response.json()["accrued"] == ACTIVE_STAFF
    assert await core.ledger.get_balance("STAFF-002", LeaveType.ANNUAL) == 1.75
