# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Path, Query, status

from leaveflow.api.deps import ActorDep, AdminDep, CoreDep, WriterDep
from leaveflow.models.enums import RequestStatus
from leaveflow.schemas.request import (
    ApprovalStepResponse,
    ClearancePayload,
    ComplianceReportResponse,
    DecisionPayload,
    DelegatePayload,
    EscalationRunPayload,
    EscalationRunResponse,
    RequestListResponse,
    RequestResponse,
    SubmitRequestPayload,
)

requests_router = APIRouter(prefix="/requests", tags=["requests"])


@requests_router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    payload: SubmitRequestPayload,
    core: CoreDep,
    actor: WriterDep,
) -> RequestResponse:
    """Submit a new leave request for the calling staff member."""
    return await core.engine.submit(actor.staff_id, payload)


@requests_router.get("", response_model=RequestListResponse)
async def list_requests(
    core: CoreDep,
    _actor: ActorDep,
    staff_id: str | None = Query(default=None, max_length=64),
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
) -> RequestListResponse:
    """List leave requests, newest first, with optional filters."""
    return await core.engine.list_requests(staff_id=staff_id, status=status_filter)


@requests_router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: uuid.UUID,
    core: CoreDep,
    _actor: ActorDep,
) -> RequestResponse:
    """Get a single leave request with its approval chain."""
    return await core.engine.get_request(request_id)


@requests_router.get("/{request_id}/chain", response_model=list[ApprovalStepResponse])
async def get_approval_chain(
    request_id: uuid.UUID,
    core: CoreDep,
    _actor: ActorDep,
) -> list[ApprovalStepResponse]:
    """Get the ordered approval chain of a request."""
    return await core.engine.get_approval_chain(request_id)


@requests_router.get("/{request_id}/compliance", response_model=ComplianceReportResponse)
async def check_compliance(
    request_id: uuid.UUID,
    core: CoreDep,
    _actor: ActorDep,
) -> ComplianceReportResponse:
    """Re-run the compliance checks against the stored request."""
    return await core.engine.check_compliance(request_id)


@requests_router.post("/{request_id}/levels/{level}/approve", response_model=RequestResponse)
async def approve_level(
    request_id: uuid.UUID,
    core: CoreDep,
    actor: WriterDep,
    level: int = Path(ge=1),
    payload: DecisionPayload | None = None,
) -> RequestResponse:
    """Approve the current level of a request."""
    comments = payload.comments if payload else None
    return await core.engine.approve(request_id, level, actor, comments)


@requests_router.post("/{request_id}/levels/{level}/reject", response_model=RequestResponse)
async def reject_level(
    request_id: uuid.UUID,
    core: CoreDep,
    actor: WriterDep,
    level: int = Path(ge=1),
    payload: DecisionPayload | None = None,
) -> RequestResponse:
    """Reject the current level of a request, closing it."""
    comments = payload.comments if payload else None
    return await core.engine.reject(request_id, level, actor, comments)


@requests_router.post("/{request_id}/levels/{level}/delegate", response_model=RequestResponse)
async def delegate_level(
    request_id: uuid.UUID,
    payload: DelegatePayload,
    core: CoreDep,
    actor: WriterDep,
    level: int = Path(ge=1),
) -> RequestResponse:
    """Hand a pending level to another approver."""
    return await core.engine.delegate(request_id, level, actor, payload.to_approver_id)


@requests_router.post("/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    core: CoreDep,
    actor: WriterDep,
) -> RequestResponse:
    """Cancel a pending or approved request."""
    return await core.engine.cancel(request_id, actor)


@requests_router.post("/{request_id}/clearance", response_model=RequestResponse)
async def record_external_clearance(
    request_id: uuid.UUID,
    payload: ClearancePayload,
    core: CoreDep,
    actor: WriterDep,
) -> RequestResponse:
    """Record the PSC/OHCS clearance outcome (chief director or HR director)."""
    return await core.engine.record_external_clearance(request_id, actor, payload.status, payload.reference)


@requests_router.post("/escalations", response_model=EscalationRunResponse)
async def escalate_stale_steps(
    core: CoreDep,
    _admin: AdminDep,
    payload: EscalationRunPayload | None = None,
) -> EscalationRunResponse:
    """Escalate approval steps pending too long to the next authority (admin only)."""
    result = await core.engine.escalate_stale_steps(payload.as_of if payload else None)
    return EscalationRunResponse(
        as_of=result.as_of,
        examined=result.examined,
        escalated=result.escalated,
        unescalated=result.unescalated,
        errors=result.errors,
    )
