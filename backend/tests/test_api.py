"""HTTP surface tests: routes, identity headers and the error envelope."""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any

from leaveflow.models.enums import BalanceChangeReason, LeaveType

if TYPE_CHECKING:
    from httpx import AsyncClient

    from leaveflow.container import LeaveCore

REQUESTER = {"X-Staff-Id": "STAFF-002"}
SUPERVISOR = {"X-Staff-Id": "SUP-002", "X-Role": "SUPERVISOR"}
DIRECTOR = {"X-Staff-Id": "DIRX-001", "X-Role": "director"}
HR = {"X-Staff-Id": "HR-001", "X-Role": "HR"}
AUDITOR = {"X-Staff-Id": "AUD-001", "X-Role": "internal auditor"}


def _body(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "leave_type": "Annual",
        "start_date": "2025-03-03",
        "end_date": "2025-03-07",
        "declaration_accepted": True,
    }
    body.update(overrides)
    return body


async def _allocate(core: LeaveCore, amount: float) -> None:
    await core.ledger.set_balance("STAFF-002", LeaveType.ANNUAL, amount, reason=BalanceChangeReason.ALLOCATION)


async def _submit(client: AsyncClient, **overrides: Any) -> dict[str, Any]:
    response = await client.post("/requests", json=_body(**overrides), headers=REQUESTER)
    assert response.status_code == 201, response.text
    return response.json()


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


async def test_submit_and_read_back(async_client: AsyncClient, core: LeaveCore) -> None:
    await _allocate(core, 12)
    created = await _submit(async_client)

    assert created["staff_id"] == "STAFF-002"
    assert created["leave_type"] == "ANNUAL"
    assert created["status"] == "PENDING"
    assert created["current_level"] == 1
    assert created["days"] == 5

    fetched = await async_client.get(f"/requests/{created['id']}", headers=REQUESTER)
    assert fetched.status_code == 200
    assert fetched.json()["id"] == created["id"]

    chain = await async_client.get(f"/requests/{created['id']}/chain", headers=REQUESTER)
    assert [step["required_role"] for step in chain.json()] == ["SUPERVISOR", "DIRECTOR", "HR_OFFICER"]


async def test_full_approval_over_http(async_client: AsyncClient, core: LeaveCore) -> None:
    await _allocate(core, 12)
    created = await _submit(async_client)
    base = f"/requests/{created['id']}/levels"

    assert (await async_client.post(f"{base}/1/approve", headers=SUPERVISOR)).status_code == 200
    assert (await async_client.post(f"{base}/2/approve", json={"comments": "ok"}, headers=DIRECTOR)).status_code == 200
    final = await async_client.post(f"{base}/3/approve", headers=HR)

    assert final.status_code == 200
    assert final.json()["status"] == "APPROVED"
    assert final.json()["chain"][1]["comments"] == "ok"

    balance = await async_client.get("/staff/STAFF-002/balances/Annual", headers=REQUESTER)
    assert balance.json() == {"staff_id": "STAFF-002", "leave_type": "ANNUAL", "counter": "annual", "balance": 7.0}

    report = await async_client.get(f"/requests/{created['id']}/compliance", headers=AUDITOR)
    assert report.status_code == 200
    assert report.json()["compliant"] is True


async def test_reject_delegate_and_cancel_routes(async_client: AsyncClient, core: LeaveCore) -> None:
    await _allocate(core, 20)
    first = await _submit(async_client)
    second = await _submit(async_client, start_date="2025-06-02", end_date="2025-06-03")

    delegated = await async_client.post(
        f"/requests/{first['id']}/levels/1/delegate",
        json={"to_approver_id": "SUP-009"},
        headers=SUPERVISOR,
    )
    assert delegated.json()["chain"][0]["assigned_approver_id"] == "SUP-009"

    rejected = await async_client.post(
        f"/requests/{first['id']}/levels/1/reject",
        json={"comments": "unscheduled workload conflict"},
        headers={"X-Staff-Id": "SUP-009"},
    )
    assert rejected.json()["status"] == "REJECTED"

    cancelled = await async_client.post(f"/requests/{second['id']}/cancel", headers=REQUESTER)
    assert cancelled.json()["status"] == "CANCELLED"

    listing = await async_client.get("/requests", params={"staff_id": "STAFF-002"}, headers=HR)
    assert listing.json()["total"] == 2
    pending = await async_client.get("/requests", params={"status": "PENDING"}, headers=HR)
    assert pending.json()["total"] == 0


async def test_clearance_route(async_client: AsyncClient, core: LeaveCore) -> None:
    await core.ledger.set_balance("STAFF-002", LeaveType.STUDY, 20, reason=BalanceChangeReason.ALLOCATION)
    created = await _submit(async_client, leave_type="Study", external_clearance_status="PENDING")
    url = f"/requests/{created['id']}/clearance"
    body = {"status": "APPROVED", "reference": "PSC/2025/114"}

    denied = await async_client.post(url, json=body, headers=SUPERVISOR)
    assert denied.status_code == 403
    assert denied.json()["code"] == "PERMISSION_DENIED"

    response = await async_client.post(url, json=body, headers={"X-Staff-Id": "CD-001", "X-Role": "chief director"})
    assert response.status_code == 200
    assert response.json()["external_clearance_status"] == "APPROVED"
    assert response.json()["external_clearance_reference"] == "PSC/2025/114"


async def test_escalation_route_requires_administrator(async_client: AsyncClient, core: LeaveCore) -> None:
    await _allocate(core, 12)
    created = await _submit(async_client)

    denied = await async_client.post("/requests/escalations", headers=SUPERVISOR)
    assert denied.status_code == 403

    as_of = (date.today() + timedelta(days=21)).isoformat()
    response = await async_client.post("/requests/escalations", json={"as_of": as_of}, headers=HR)
    assert response.status_code == 200
    assert response.json()["escalated"] == 1

    chain = await async_client.get(f"/requests/{created['id']}/chain", headers=HR)
    assert chain.json()[0]["required_role"] == "DIRECTOR"
    assert chain.json()[0]["escalated_at"] is not None


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


async def test_compliance_failure_lists_every_reason(async_client: AsyncClient, core: LeaveCore) -> None:
    await _allocate(core, 10)
    response = await async_client.post(
        "/requests",
        json=_body(end_date="2025-03-17", declaration_accepted=False),
        headers=REQUESTER,
    )

    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "COMPLIANCE_FAILED"
    assert data["retryable"] is False
    assert {reason["code"] for reason in data["reasons"]} == {"INSUFFICIENT_BALANCE", "DECLARATION_REQUIRED"}
    assert data["warnings"] == []


async def test_self_approval_is_forbidden(async_client: AsyncClient, core: LeaveCore) -> None:
    await _allocate(core, 12)
    created = await _submit(async_client)

    response = await async_client.post(
        f"/requests/{created['id']}/levels/1/approve",
        headers={"X-Staff-Id": "STAFF-002", "X-Role": "SUPERVISOR"},
    )
    assert response.status_code == 403
    assert response.json()["code"] == "SEGREGATION_OF_DUTIES_VIOLATION"


async def test_out_of_order_approval_is_a_state_error(async_client: AsyncClient, core: LeaveCore) -> None:
    await _allocate(core, 12)
    created = await _submit(async_client)

    response = await async_client.post(f"/requests/{created['id']}/levels/2/approve", headers=DIRECTOR)
    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_STATE"


async def test_unknown_request_is_404(async_client: AsyncClient) -> None:
    response = await async_client.get(f"/requests/{uuid.uuid4()}", headers=REQUESTER)
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


async def test_missing_identity_header_is_rejected(async_client: AsyncClient) -> None:
    response = await async_client.get("/requests")
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


async def test_unknown_role_is_rejected(async_client: AsyncClient) -> None:
    response = await async_client.get("/requests", headers={"X-Staff-Id": "X", "X-Role": "janitor"})
    assert response.status_code == 422
    assert "janitor" in response.json()["detail"]


async def test_unknown_leave_type_is_rejected(async_client: AsyncClient) -> None:
    response = await async_client.post("/requests", json=_body(leave_type="Sabbatical"), headers=REQUESTER)
    assert response.status_code == 422
    assert response.json()["reasons"]


async def test_auditor_is_read_only(async_client: AsyncClient, core: LeaveCore) -> None:
    await _allocate(core, 12)
    created = await _submit(async_client)

    response = await async_client.post(f"/requests/{created['id']}/cancel", headers=AUDITOR)
    assert response.status_code == 403
    assert response.json()["code"] == "PERMISSION_DENIED"

    assert (await async_client.get(f"/requests/{created['id']}", headers=AUDITOR)).status_code == 200


# ---------------------------------------------------------------------------
# Balances and year-end
# ---------------------------------------------------------------------------


async def test_balance_and_history_routes(async_client: AsyncClient, core: LeaveCore) -> None:
    missing = await async_client.get("/staff/STAFF-002/balances", headers=REQUESTER)
    assert missing.status_code == 404

    await _allocate(core, 12)
    await core.ledger.deduct("STAFF-002", LeaveType.ANNUAL, 2)

    balances = await async_client.get("/staff/STAFF-002/balances", headers=REQUESTER)
    assert balances.status_code == 200
    assert balances.json()["annual"] == 10
    assert balances.json()["version"] == 2

    history = await async_client.get("/staff/STAFF-002/history", params={"leave_type": "Annual"}, headers=REQUESTER)
    assert history.json()["total"] == 2
    assert [item["reason"] for item in history.json()["items"]] == ["allocation", "deduction"]

    unpaid = await async_client.get("/staff/STAFF-002/balances/Unpaid", headers=REQUESTER)
    assert unpaid.json()["counter"] is None
    assert unpaid.json()["balance"] == 0


async def test_year_end_requires_administrator(async_client: AsyncClient, core: LeaveCore) -> None:
    await _allocate(core, 8)

    denied = await async_client.post("/year-end", json={"effective_date": "2026-01-01"}, headers=SUPERVISOR)
    assert denied.status_code == 403

    response = await async_client.post("/year-end", json={"effective_date": "2026-01-01"}, headers=HR)
    assert response.status_code == 200
    data = response.json()
    assert data["closing_year"] == 2025
    assert data["forfeited"] == 1
    assert data["details"][0]["new_balance"] == 5
