# ruff: noqa: TC003
"""Approval workflow engine.

Drives a leave request through its approval chain. The request row carries
an explicit ``current_level`` cursor and a ``version``; every transition is
a conditional write on that version, retried through the optimistic-lock
combinator. Terminal transitions that touch the balance do so in the same
transaction through the ledger's single-attempt primitives.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlmodel import col

from leaveflow.exceptions import (
    ComplianceError,
    NotFoundError,
    PermissionDeniedError,
    SelfApprovalForbiddenError,
    StaleVersionError,
    StateError,
)
from leaveflow.models.base import now_utc
from leaveflow.models.enums import (
    ClearanceStatus,
    LeaveType,
    OutboxEventType,
    RequestStatus,
    Role,
    StepStatus,
)
from leaveflow.models.request import ApprovalStep, LeaveRequest
from leaveflow.schemas.request import (
    ApprovalStepResponse,
    ComplianceIssueResponse,
    ComplianceReportResponse,
    RequestListResponse,
    RequestResponse,
)
from leaveflow.services.compliance import ChainStep, ComplianceStage, ComplianceSubject
from leaveflow.services.locking import LockPolicy, with_optimistic_lock
from leaveflow.services.outbox import write_outbox_event
from leaveflow.services.roles import (
    ESCALATION_TARGETS,
    VALIDATING_ROLES,
    can_record_clearance,
    is_administrative_role,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from leaveflow.schemas.auth import ActorContext
    from leaveflow.schemas.request import SubmitRequestPayload
    from leaveflow.services.compliance import ComplianceGate, ComplianceIssue
    from leaveflow.services.detector import ConflictDetector, ConflictFlag
    from leaveflow.services.directory import OrganizationDirectory, StaffContext
    from leaveflow.services.ledger import Ledger
    from leaveflow.services.outbox import OutboxDispatcher
    from leaveflow.services.routing import WorkflowRouter

logger = logging.getLogger(__name__)

# Step statuses an approver may still act on.
ACTIONABLE_STEP_STATUSES = (StepStatus.PENDING.value, StepStatus.DELEGATED.value)

# Statuses that block a new request for overlapping dates.
_ACTIVE_STATUSES = (RequestStatus.PENDING.value, RequestStatus.APPROVED.value)


@dataclass
class _RequestSnapshot:
    """A request and its chain as read before a conditional write."""

    request: LeaveRequest
    steps: list[ApprovalStep]

    def step(self, level: int) -> ApprovalStep:
        for step in self.steps:
            if step.level == level:
                return step
        raise StateError(f"Request {self.request.id} has no approval level {level}")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_step_response(step: ApprovalStep) -> ApprovalStepResponse:
    """Map an approval step model to its response schema."""
    return ApprovalStepResponse(
        level=step.level,
        required_role=Role(step.required_role),
        assigned_approver_id=step.assigned_approver_id,
        status=StepStatus(step.status),
        decided_by=step.decided_by,
        decided_at=step.decided_at,
        comments=step.comments,
        delegated_from=step.delegated_from,
        escalated_at=step.escalated_at,
    )


def _build_request_response(
    request: LeaveRequest,
    steps: Sequence[ApprovalStep],
    warnings: Sequence[ComplianceIssue] = (),
) -> RequestResponse:
    """Map a request model and its chain to the response schema."""
    return RequestResponse(
        id=request.id,
        staff_id=request.staff_id,
        leave_type=LeaveType(request.leave_type),
        start_date=request.start_date,
        end_date=request.end_date,
        days=request.days,
        reason=request.reason,
        status=RequestStatus(request.status),
        current_level=request.current_level,
        total_levels=request.total_levels,
        version=request.version,
        declaration_accepted=request.declaration_accepted,
        acting_officer_id=request.acting_officer_id,
        external_clearance_status=(
            ClearanceStatus(request.external_clearance_status) if request.external_clearance_status else None
        ),
        external_clearance_reference=request.external_clearance_reference,
        balance_deducted=request.balance_deducted,
        balance_restored=request.balance_restored,
        decided_at=request.decided_at,
        decided_by=request.decided_by,
        cancelled_by=request.cancelled_by,
        created_at=request.created_at,
        chain=[_build_step_response(step) for step in sorted(steps, key=lambda s: s.level)],
        warnings=[ComplianceIssueResponse(code=w.code, message=w.message) for w in warnings],
    )


def _chain_view(steps: Sequence[ApprovalStep]) -> list[ChainStep]:
    return [
        ChainStep(
            level=step.level,
            required_role=Role(step.required_role),
            assigned_approver_id=step.assigned_approver_id,
            status=StepStatus(step.status),
            decided_by=step.decided_by,
        )
        for step in steps
    ]


def _guard_not_requester(request: LeaveRequest, actor_id: str) -> None:
    if actor_id == request.staff_id:
        raise SelfApprovalForbiddenError()


def _guard_pending(request: LeaveRequest) -> None:
    if request.status != RequestStatus.PENDING:
        raise StateError(f"Request {request.id} is {request.status}, not PENDING")


def _guard_authority(step: ApprovalStep, actor: ActorContext, action: str) -> None:
    """A bound step answers to its approver only; an open step to its role."""
    if step.assigned_approver_id is not None:
        if actor.staff_id != step.assigned_approver_id:
            raise PermissionDeniedError(
                f"Level {step.level} is assigned to {step.assigned_approver_id}; {actor.staff_id} cannot {action} it"
            )
    elif actor.role != step.required_role:
        raise PermissionDeniedError(f"Level {step.level} requires role {step.required_role} to {action}")


def _current_step(snapshot: _RequestSnapshot, level: int) -> ApprovalStep:
    """Return the step at ``level`` if it is the request's lowest pending level."""
    request = snapshot.request
    step = snapshot.step(level)
    if request.current_level != level:
        raise StateError(f"Level {level} is not the current approval level (current: {request.current_level})")
    for earlier in snapshot.steps:
        if earlier.level < level and earlier.status != StepStatus.APPROVED:
            raise StateError(f"Level {earlier.level} must be approved before level {level}")
    if step.status not in ACTIONABLE_STEP_STATUSES:
        raise StateError(f"Level {level} is already {step.status}")
    return step


async def _update_request(session: AsyncSession, request: LeaveRequest, changes: dict[str, Any]) -> None:
    """Conditional write on the request version; bumps it on success."""
    result = await session.execute(
        update(LeaveRequest)
        .where(col(LeaveRequest.id) == request.id, col(LeaveRequest.version) == request.version)
        .values(**changes, version=request.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:  # type: ignore[attr-defined]
        raise StaleVersionError(f"leave_request {request.id} moved past version {request.version}")


async def _update_step(session: AsyncSession, step: ApprovalStep, changes: dict[str, Any]) -> None:
    """Write a step only while it is still actionable and bound as read."""
    approver = col(ApprovalStep.assigned_approver_id)
    result = await session.execute(
        update(ApprovalStep)
        .where(
            col(ApprovalStep.id) == step.id,
            col(ApprovalStep.status).in_(ACTIONABLE_STEP_STATUSES),
            approver.is_(None) if step.assigned_approver_id is None else approver == step.assigned_approver_id,
        )
        .values(**changes)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:  # type: ignore[attr-defined]
        raise StaleVersionError(f"approval_step {step.id} changed concurrently")


async def _skip_remaining_steps(session: AsyncSession, request_id: uuid.UUID, after_level: int) -> None:
    await session.execute(
        update(ApprovalStep)
        .where(
            col(ApprovalStep.request_id) == request_id,
            col(ApprovalStep.level) > after_level,
            col(ApprovalStep.status).in_(ACTIONABLE_STEP_STATUSES),
        )
        .values(status=StepStatus.SKIPPED.value)
        .execution_options(synchronize_session=False)
    )


def working_days_between(start: date, end: date) -> int:
    """Weekdays after ``start`` up to and including ``end``."""
    days = 0
    current = start + timedelta(days=1)
    while current <= end:
        if current.weekday() < 5:
            days += 1
        current += timedelta(days=1)
    return days


def _as_date(moment: datetime | None) -> date | None:
    return moment.date() if moment is not None else None


def _pending_since(snapshot: _RequestSnapshot, step: ApprovalStep) -> date:
    """Day the step last changed hands: reached, delegated or escalated."""
    if step.level == 1:
        reached = _as_date(snapshot.request.created_at)
    else:
        reached = _as_date(snapshot.step(step.level - 1).decided_at)
    candidates = [d for d in (reached, _as_date(step.delegated_at), _as_date(step.escalated_at)) if d is not None]
    return max(candidates) if candidates else date.today()


def _escalation_target(snapshot: _RequestSnapshot, step: ApprovalStep) -> Role | None:
    """Next authority for a stale step, or None when it already sits at the top.

    HR validation stays within HR so the chain keeps its validating level.
    Other levels move to the next higher non-validating role in the chain,
    falling back to the fixed escalation ladder.
    """
    current = Role(step.required_role)
    if current in VALIDATING_ROLES:
        return ESCALATION_TARGETS.get(current)
    for later in snapshot.steps:
        if later.level <= step.level:
            continue
        role = Role(later.required_role)
        if role not in VALIDATING_ROLES and role != current:
            return role
    return ESCALATION_TARGETS.get(current)


@dataclass
class EscalationRunResult:
    """Result of one stale-step escalation pass."""

    as_of: date
    examined: int = 0
    escalated: int = 0
    unescalated: int = 0
    errors: int = 0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


class ApprovalEngine:
    """Sequential multi-level approval state machine."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        ledger: Ledger,
        router: WorkflowRouter,
        gate: ComplianceGate,
        directory: OrganizationDirectory,
        detector: ConflictDetector,
        dispatcher: OutboxDispatcher,
        lock_policy: LockPolicy | None = None,
        escalation_working_days: int = 10,
    ) -> None:
        self._session_factory = session_factory
        self._ledger = ledger
        self._router = router
        self._gate = gate
        self._directory = directory
        self._detector = detector
        self._dispatcher = dispatcher
        self._lock_policy = lock_policy or LockPolicy()
        self._escalation_working_days = escalation_working_days

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    async def get_request(self, request_id: uuid.UUID) -> RequestResponse:
        snapshot = await self._load(request_id)
        return _build_request_response(snapshot.request, snapshot.steps)

    async def get_approval_chain(self, request_id: uuid.UUID) -> list[ApprovalStepResponse]:
        snapshot = await self._load(request_id)
        return [_build_step_response(step) for step in snapshot.steps]

    async def list_requests(
        self,
        *,
        staff_id: str | None = None,
        status: RequestStatus | None = None,
    ) -> RequestListResponse:
        query = select(LeaveRequest)
        if staff_id is not None:
            query = query.where(col(LeaveRequest.staff_id) == staff_id)
        if status is not None:
            query = query.where(col(LeaveRequest.status) == status.value)
        query = query.order_by(col(LeaveRequest.created_at).desc())

        async with self._session_factory() as session:
            requests = list((await session.execute(query)).scalars().all())
            steps_by_request: dict[uuid.UUID, list[ApprovalStep]] = {r.id: [] for r in requests}
            if requests:
                steps = await session.execute(
                    select(ApprovalStep)
                    .where(col(ApprovalStep.request_id).in_(list(steps_by_request)))
                    .order_by(col(ApprovalStep.level))
                )
                for step in steps.scalars().all():
                    steps_by_request[step.request_id].append(step)

        items = [_build_request_response(r, steps_by_request[r.id]) for r in requests]
        return RequestListResponse(items=items, total=len(items))

    async def check_compliance(self, request_id: uuid.UUID) -> ComplianceReportResponse:
        """Re-run the gate against the stored request and chain."""
        snapshot = await self._load(request_id)
        staff = await self._get_staff(snapshot.request.staff_id)
        result = await self._gate.check(self._subject(staff, snapshot), ComplianceStage.AUDIT)
        return ComplianceReportResponse(
            request_id=request_id,
            compliant=result.compliant,
            errors=[ComplianceIssueResponse(code=e.code, message=e.message) for e in result.errors],
            warnings=[ComplianceIssueResponse(code=w.code, message=w.message) for w in result.warnings],
        )

    async def detect_conflicts(self, request_id: uuid.UUID) -> list[ConflictFlag]:
        snapshot = await self._load(request_id)
        return self._detector.inspect(request_id, snapshot.steps)

    # -----------------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------------

    async def submit(self, staff_id: str, payload: SubmitRequestPayload) -> RequestResponse:
        """Validate, route and persist a new request in PENDING at level 1.

        1. Resolve the staff member's organizational context.
        2. Build the approval chain.
        3. Run the compliance gate; any error rejects the submission whole.
        4. Reject overlaps with the staff member's pending or approved requests.
        5. Persist the request, its chain and a REQUEST_SUBMITTED event.
        """
        staff = await self._get_staff(staff_id)
        days = payload.requested_days
        chain = self._router.build_chain(staff, payload.leave_type, days)

        subject = ComplianceSubject(
            staff=staff,
            leave_type=payload.leave_type,
            days=days,
            chain=[
                ChainStep(level=t.level, required_role=t.required_role, assigned_approver_id=t.assigned_approver_id)
                for t in chain
            ],
            declaration_accepted=payload.declaration_accepted,
            acting_officer_id=payload.acting_officer_id or staff.acting_officer_id,
            external_clearance_status=payload.external_clearance_status,
            external_clearance_reference=payload.external_clearance_reference,
        )
        result = await self._gate.check(subject, ComplianceStage.SUBMISSION)
        if not result.compliant:
            raise ComplianceError(result)

        async with self._session_factory() as session:
            overlap = await session.execute(
                select(col(LeaveRequest.id))
                .where(
                    col(LeaveRequest.staff_id) == staff_id,
                    col(LeaveRequest.status).in_(_ACTIVE_STATUSES),
                    col(LeaveRequest.start_date) <= payload.end_date,
                    col(LeaveRequest.end_date) >= payload.start_date,
                )
                .limit(1)
            )
            if overlap.first() is not None:
                raise StateError("Request overlaps with an existing pending or approved request")

            request = LeaveRequest(
                staff_id=staff_id,
                leave_type=payload.leave_type.value,
                start_date=payload.start_date,
                end_date=payload.end_date,
                days=days,
                reason=payload.reason,
                current_level=1,
                total_levels=len(chain),
                declaration_accepted=payload.declaration_accepted,
                acting_officer_id=subject.acting_officer_id,
                external_clearance_status=(
                    payload.external_clearance_status.value if payload.external_clearance_status else None
                ),
                external_clearance_reference=payload.external_clearance_reference,
            )
            session.add(request)
            await session.flush()
            steps = [
                ApprovalStep(
                    request_id=request.id,
                    level=template.level,
                    required_role=template.required_role.value,
                    assigned_approver_id=template.assigned_approver_id,
                )
                for template in chain
            ]
            session.add_all(steps)
            write_outbox_event(
                session,
                event_type=OutboxEventType.REQUEST_SUBMITTED,
                request=request,
                actor_id=staff_id,
            )
            await session.commit()

        logger.info(
            "Request %s submitted by staff=%s type=%s days=%g levels=%d",
            request.id,
            staff_id,
            request.leave_type,
            days,
            len(chain),
        )
        await self._dispatch(request.id)
        return _build_request_response(request, steps, warnings=result.warnings)

    async def approve(
        self,
        request_id: uuid.UUID,
        level: int,
        actor: ActorContext,
        comments: str | None = None,
    ) -> RequestResponse:
        """Approve the current level; the final level deducts the balance.

        1. Refuse the requester, whatever their role.
        2. Require PENDING, ``level == current_level`` and earlier levels approved.
        3. Require the bound approver, or the step's role when unbound.
        4. On the final level, re-run the gate in final-approval mode.
        5. Write request and step conditionally; deduct in the same transaction.
        """

        async def attempt_write(snapshot: _RequestSnapshot) -> None:
            request = snapshot.request
            _guard_not_requester(request, actor.staff_id)
            _guard_pending(request)
            step = _current_step(snapshot, level)
            _guard_authority(step, actor, "approve")

            is_final = level == request.total_levels
            if is_final:
                staff = await self._get_staff(request.staff_id)
                result = await self._gate.check(
                    self._subject(staff, snapshot, approving_level=level),
                    ComplianceStage.FINAL_APPROVAL,
                )
                if not result.compliant:
                    raise ComplianceError(result)

            now = now_utc()
            if is_final:
                changes: dict[str, Any] = {
                    "status": RequestStatus.APPROVED.value,
                    "current_level": None,
                    "decided_at": now,
                    "decided_by": actor.staff_id,
                    "balance_deducted": True,
                }
            else:
                changes = {"current_level": level + 1}

            async with self._session_factory() as session:
                await _update_request(session, request, changes)
                await _update_step(
                    session,
                    step,
                    {
                        "status": StepStatus.APPROVED.value,
                        "decided_by": actor.staff_id,
                        "decided_at": now,
                        "comments": comments,
                    },
                )
                if is_final:
                    await self._ledger.apply_deduction(
                        session,
                        request.staff_id,
                        LeaveType(request.leave_type),
                        request.days,
                        source_id=str(request.id),
                    )
                write_outbox_event(
                    session,
                    event_type=OutboxEventType.REQUEST_APPROVED if is_final else OutboxEventType.STEP_APPROVED,
                    request=request,
                    actor_id=actor.staff_id,
                    extra={**changes, "version": request.version + 1, "level": level},
                )
                await session.commit()

            logger.info("Request %s level %d approved by %s", request.id, level, actor.staff_id)

        await self._transition(request_id, attempt_write, f"approve level {level} of request {request_id}")
        await self._dispatch(request_id)
        await self._flag_conflicts(request_id)
        return await self.get_request(request_id)

    async def reject(
        self,
        request_id: uuid.UUID,
        level: int,
        actor: ActorContext,
        comments: str | None = None,
    ) -> RequestResponse:
        """Reject the current level, skip the rest and close the request.

        No deduction has happened before final approval, so the ledger is
        never touched.
        """

        async def attempt_write(snapshot: _RequestSnapshot) -> None:
            request = snapshot.request
            _guard_not_requester(request, actor.staff_id)
            _guard_pending(request)
            step = _current_step(snapshot, level)
            _guard_authority(step, actor, "reject")

            now = now_utc()
            changes: dict[str, Any] = {
                "status": RequestStatus.REJECTED.value,
                "current_level": None,
                "decided_at": now,
                "decided_by": actor.staff_id,
            }
            async with self._session_factory() as session:
                await _update_request(session, request, changes)
                await _update_step(
                    session,
                    step,
                    {
                        "status": StepStatus.REJECTED.value,
                        "decided_by": actor.staff_id,
                        "decided_at": now,
                        "comments": comments,
                    },
                )
                await _skip_remaining_steps(session, request.id, level)
                write_outbox_event(
                    session,
                    event_type=OutboxEventType.REQUEST_REJECTED,
                    request=request,
                    actor_id=actor.staff_id,
                    extra={**changes, "version": request.version + 1, "level": level, "comments": comments},
                )
                await session.commit()

            logger.info("Request %s rejected at level %d by %s", request.id, level, actor.staff_id)

        await self._transition(request_id, attempt_write, f"reject level {level} of request {request_id}")
        await self._dispatch(request_id)
        await self._flag_conflicts(request_id)
        return await self.get_request(request_id)

    async def delegate(
        self,
        request_id: uuid.UUID,
        level: int,
        actor: ActorContext,
        to_approver_id: str,
    ) -> RequestResponse:
        """Rebind a pending level to another approver; its status stays PENDING."""
        if to_approver_id == actor.staff_id:
            raise StateError("An approver cannot delegate to themselves")

        async def attempt_write(snapshot: _RequestSnapshot) -> None:
            request = snapshot.request
            if request.staff_id in (actor.staff_id, to_approver_id):
                raise SelfApprovalForbiddenError("A request cannot be delegated to or by its requester")
            _guard_pending(request)
            step = snapshot.step(level)
            if request.current_level is None or level < request.current_level:
                raise StateError(f"Level {level} is no longer pending")
            if step.status not in ACTIONABLE_STEP_STATUSES:
                raise StateError(f"Level {level} is already {step.status}")
            _guard_authority(step, actor, "delegate")

            now = now_utc()
            async with self._session_factory() as session:
                await _update_request(session, request, {})
                await _update_step(
                    session,
                    step,
                    {
                        "assigned_approver_id": to_approver_id,
                        "delegated_from": actor.staff_id,
                        "delegated_at": now,
                    },
                )
                write_outbox_event(
                    session,
                    event_type=OutboxEventType.STEP_DELEGATED,
                    request=request,
                    actor_id=actor.staff_id,
                    extra={"version": request.version + 1, "level": level, "to_approver_id": to_approver_id},
                )
                await session.commit()

            logger.info("Request %s level %d delegated %s -> %s", request.id, level, actor.staff_id, to_approver_id)

        await self._transition(request_id, attempt_write, f"delegate level {level} of request {request_id}")
        await self._dispatch(request_id)
        return await self.get_request(request_id)

    async def cancel(self, request_id: uuid.UUID, actor: ActorContext) -> RequestResponse:
        """Cancel a pending or approved request.

        Pending requests may be cancelled by the requester or an administrator;
        approved ones by an administrator only, restoring the deducted days
        once. Cancelling a cancelled request is a no-op.
        """

        async def attempt_write(snapshot: _RequestSnapshot) -> None:
            request = snapshot.request
            if request.status == RequestStatus.CANCELLED:
                return
            if request.status == RequestStatus.REJECTED:
                raise StateError(f"Request {request.id} was rejected and cannot be cancelled")

            administrator = is_administrative_role(actor.role)
            if request.status == RequestStatus.PENDING and not (administrator or actor.staff_id == request.staff_id):
                raise PermissionDeniedError("Only the requester or an administrator may cancel a pending request")
            if request.status == RequestStatus.APPROVED and not administrator:
                raise PermissionDeniedError("Only an administrator may cancel an approved request")

            restore = request.balance_deducted and not request.balance_restored
            changes: dict[str, Any] = {
                "status": RequestStatus.CANCELLED.value,
                "current_level": None,
                "cancelled_by": actor.staff_id,
            }
            if restore:
                changes["balance_restored"] = True

            async with self._session_factory() as session:
                await _update_request(session, request, changes)
                await _skip_remaining_steps(session, request.id, 0)
                if restore:
                    await self._ledger.apply_restoration(
                        session,
                        request.staff_id,
                        LeaveType(request.leave_type),
                        request.days,
                        source_id=str(request.id),
                    )
                write_outbox_event(
                    session,
                    event_type=OutboxEventType.REQUEST_CANCELLED,
                    request=request,
                    actor_id=actor.staff_id,
                    extra={**changes, "version": request.version + 1},
                )
                await session.commit()

            logger.info("Request %s cancelled by %s (restored=%s)", request.id, actor.staff_id, restore)

        await self._transition(request_id, attempt_write, f"cancel request {request_id}")
        await self._dispatch(request_id)
        return await self.get_request(request_id)

    async def record_external_clearance(
        self,
        request_id: uuid.UUID,
        actor: ActorContext,
        status: ClearanceStatus,
        reference: str | None = None,
    ) -> RequestResponse:
        """Record the PSC/OHCS clearance outcome on a pending request.

        Only the chief director or HR director may record it, never for their
        own request. A missing ``reference`` keeps the one already stored.
        Final approval reads the recorded status.
        """
        if not can_record_clearance(actor.role):
            raise PermissionDeniedError("Only the chief director or HR director may record external clearance")

        async def attempt_write(snapshot: _RequestSnapshot) -> None:
            request = snapshot.request
            _guard_not_requester(request, actor.staff_id)
            _guard_pending(request)

            changes: dict[str, Any] = {
                "external_clearance_status": status.value,
                "external_clearance_reference": (
                    reference if reference is not None else request.external_clearance_reference
                ),
            }
            async with self._session_factory() as session:
                await _update_request(session, request, changes)
                write_outbox_event(
                    session,
                    event_type=OutboxEventType.EXTERNAL_CLEARANCE_RECORDED,
                    request=request,
                    actor_id=actor.staff_id,
                    extra={**changes, "version": request.version + 1},
                )
                await session.commit()

            logger.info("Request %s external clearance %s recorded by %s", request.id, status.value, actor.staff_id)

        await self._transition(request_id, attempt_write, f"record clearance on request {request_id}")
        await self._dispatch(request_id)
        return await self.get_request(request_id)

    async def escalate_stale_steps(self, as_of: date | None = None) -> EscalationRunResult:
        """Move every current step left untouched too long to the next authority.

        A step is stale once ``escalation_working_days`` weekdays have passed
        since it was reached, delegated or last escalated. Escalation unbinds
        the step and raises its required role; the step stays PENDING, so the
        cursor and sequencing rules are unchanged. Failures are logged and
        counted per request.
        """
        if as_of is None:
            as_of = date.today()
        result = EscalationRunResult(as_of=as_of)

        async with self._session_factory() as session:
            pending = await session.execute(
                select(col(LeaveRequest.id))
                .where(col(LeaveRequest.status) == RequestStatus.PENDING.value)
                .order_by(col(LeaveRequest.created_at))
            )
            request_ids = list(pending.scalars().all())

        for request_id in request_ids:
            result.examined += 1
            try:
                escalated = await self._escalate_request(request_id, as_of)
            except Exception:
                logger.exception("Escalation failed for request %s", request_id)
                result.errors += 1
                continue
            if escalated is True:
                result.escalated += 1
            elif escalated is False:
                result.unescalated += 1

        logger.info(
            "Escalation pass for %s: examined=%d escalated=%d unescalated=%d errors=%d",
            as_of,
            result.examined,
            result.escalated,
            result.unescalated,
            result.errors,
        )
        return result

    async def _escalate_request(self, request_id: uuid.UUID, as_of: date) -> bool | None:
        """True if escalated, False if stale with no higher authority, None if not stale."""
        outcome: bool | None = None

        async def attempt_write(snapshot: _RequestSnapshot) -> None:
            nonlocal outcome
            outcome = None
            request = snapshot.request
            if request.status != RequestStatus.PENDING or request.current_level is None:
                return
            step = snapshot.step(request.current_level)
            if step.status not in ACTIONABLE_STEP_STATUSES:
                return
            waited = working_days_between(_pending_since(snapshot, step), as_of)
            if waited < self._escalation_working_days:
                return

            target = _escalation_target(snapshot, step)
            if target is None:
                logger.warning(
                    "Request %s level %d pending %d working days with no higher authority",
                    request.id,
                    step.level,
                    waited,
                )
                outcome = False
                return

            async with self._session_factory() as session:
                await _update_request(session, request, {})
                await _update_step(
                    session,
                    step,
                    {"required_role": target.value, "assigned_approver_id": None, "escalated_at": now_utc()},
                )
                write_outbox_event(
                    session,
                    event_type=OutboxEventType.STEP_ESCALATED,
                    request=request,
                    actor_id=None,
                    extra={
                        "version": request.version + 1,
                        "level": step.level,
                        "from_role": step.required_role,
                        "from_approver_id": step.assigned_approver_id,
                        "to_role": target.value,
                        "working_days_pending": waited,
                    },
                )
                await session.commit()

            logger.info(
                "Request %s level %d escalated %s -> %s after %d working days",
                request.id,
                step.level,
                step.required_role,
                target.value,
                waited,
            )
            outcome = True

        await self._transition(request_id, attempt_write, f"escalate request {request_id}")
        if outcome:
            await self._dispatch(request_id)
        return outcome

    # -----------------------------------------------------------------------
    # Plumbing
    # -----------------------------------------------------------------------

    async def _load(self, request_id: uuid.UUID) -> _RequestSnapshot:
        async with self._session_factory() as session:
            request = await session.get(LeaveRequest, request_id)
            if request is None:
                raise NotFoundError("Leave request", request_id)
            steps = await session.execute(
                select(ApprovalStep).where(col(ApprovalStep.request_id) == request_id).order_by(col(ApprovalStep.level))
            )
            return _RequestSnapshot(request=request, steps=list(steps.scalars().all()))

    async def _transition(
        self,
        request_id: uuid.UUID,
        attempt_write: Callable[[_RequestSnapshot], Awaitable[None]],
        operation: str,
    ) -> None:
        await with_optimistic_lock(
            lambda: self._load(request_id),
            attempt_write,
            policy=self._lock_policy,
            operation=operation,
        )

    async def _get_staff(self, staff_id: str) -> StaffContext:
        staff = await self._directory.get_staff(staff_id)
        if staff is None:
            raise NotFoundError("Staff", staff_id)
        return staff

    def _subject(
        self,
        staff: StaffContext,
        snapshot: _RequestSnapshot,
        approving_level: int | None = None,
    ) -> ComplianceSubject:
        request = snapshot.request
        return ComplianceSubject(
            staff=staff,
            leave_type=LeaveType(request.leave_type),
            days=request.days,
            chain=_chain_view(snapshot.steps),
            declaration_accepted=request.declaration_accepted,
            acting_officer_id=request.acting_officer_id,
            external_clearance_status=(
                ClearanceStatus(request.external_clearance_status) if request.external_clearance_status else None
            ),
            external_clearance_reference=request.external_clearance_reference,
            status=RequestStatus(request.status),
            balance_deducted=request.balance_deducted,
            approving_level=approving_level,
        )

    async def _dispatch(self, request_id: uuid.UUID) -> None:
        """Deliver outbox events; failures here never reach the caller."""
        try:
            await self._dispatcher.dispatch_pending(request_id=request_id)
        except Exception:
            logger.exception("Outbox dispatch failed after transition on request %s", request_id)

    async def _flag_conflicts(self, request_id: uuid.UUID) -> None:
        for flag in await self.detect_conflicts(request_id):
            logger.warning(
                "Request %s: levels %d and %d were acted on %.3fs apart; flagged for manual audit",
                flag.request_id,
                flag.first_level,
                flag.second_level,
                flag.interval_seconds,
            )
