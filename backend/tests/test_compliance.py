"""Tests for the compliance gate."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from leaveflow.models.enums import BalanceChangeReason, ClearanceStatus, LeaveType, RequestStatus, Role, StepStatus
from leaveflow.services.compliance import (
    ACTING_OFFICER_REQUIRED,
    BELOW_MINIMUM_APPROVAL_LEVELS,
    DECLARATION_REQUIRED,
    EXCEEDS_POLICY_MAXIMUM,
    EXTERNAL_CLEARANCE_PENDING,
    EXTERNAL_CLEARANCE_REFERENCE_MISSING,
    EXTERNAL_CLEARANCE_REQUIRED,
    INSUFFICIENT_BALANCE,
    SEGREGATION_OF_DUTIES_VIOLATION,
    SEQUENTIAL_APPROVAL_VIOLATION,
    VALIDATION_STEP_MISSING,
    VALIDATION_STEP_NOT_APPROVED,
    ChainStep,
    ComplianceStage,
    ComplianceSubject,
)
from leaveflow.services.directory import StaffContext

if TYPE_CHECKING:
    from leaveflow.container import LeaveCore

STAFF = StaffContext(staff_id="STAFF-002", directorate="Finance & Administration Directorate", supervisor_id="SUP-002")

CHAIN = [
    ChainStep(level=1, required_role=Role.SUPERVISOR, assigned_approver_id="SUP-002"),
    ChainStep(level=2, required_role=Role.DIRECTOR),
    ChainStep(level=3, required_role=Role.HR_OFFICER),
]


def _subject(**overrides: Any) -> ComplianceSubject:
    values: dict[str, Any] = {
        "staff": STAFF,
        "leave_type": LeaveType.ANNUAL,
        "days": 5,
        "chain": CHAIN,
        "declaration_accepted": True,
    }
    values.update(overrides)
    return ComplianceSubject(**values)


def _codes(issues: list[Any]) -> set[str]:
    return {issue.code for issue in issues}


async def _allocate(core: LeaveCore, amount: float, leave_type: LeaveType = LeaveType.ANNUAL) -> None:
    await core.ledger.set_balance(STAFF.staff_id, leave_type, amount, reason=BalanceChangeReason.ALLOCATION)


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


async def test_compliant_submission(core: LeaveCore) -> None:
    await _allocate(core, 10)
    result = await core.gate.check(_subject(), ComplianceStage.SUBMISSION)
    assert result.compliant
    assert result.errors == []
    assert result.warnings == []


async def test_insufficient_balance(core: LeaveCore) -> None:
    await _allocate(core, 10)
    result = await core.gate.check(_subject(days=15), ComplianceStage.SUBMISSION)
    assert not result.compliant
    assert _codes(result.errors) == {INSUFFICIENT_BALANCE}
    assert "Available: 10 days" in result.errors[0].message


async def test_all_failures_are_reported_together(core: LeaveCore) -> None:
    await _allocate(core, 30)
    chain = [ChainStep(level=1, required_role=Role.SUPERVISOR, assigned_approver_id=STAFF.staff_id)]
    result = await core.gate.check(
        _subject(days=25, chain=chain, declaration_accepted=False),
        ComplianceStage.SUBMISSION,
    )
    assert _codes(result.errors) == {
        EXCEEDS_POLICY_MAXIMUM,
        SEGREGATION_OF_DUTIES_VIOLATION,
        VALIDATION_STEP_MISSING,
        DECLARATION_REQUIRED,
    }


async def test_exempt_leave_type_skips_balance(core: LeaveCore) -> None:
    result = await core.gate.check(_subject(leave_type=LeaveType.UNPAID, days=60), ComplianceStage.SUBMISSION)
    assert result.compliant


async def test_acting_officer_required_for_critical_positions(core: LeaveCore) -> None:
    await _allocate(core, 10)
    head = StaffContext(staff_id="STAFF-002", unit="Legal Unit", position="Unit Head")

    missing = await core.gate.check(_subject(staff=head), ComplianceStage.SUBMISSION)
    assert _codes(missing.errors) == {ACTING_OFFICER_REQUIRED}

    self_acting = await core.gate.check(_subject(staff=head, acting_officer_id="STAFF-002"), ComplianceStage.SUBMISSION)
    assert _codes(self_acting.errors) == {ACTING_OFFICER_REQUIRED}

    assigned = await core.gate.check(_subject(staff=head, acting_officer_id="STAFF-009"), ComplianceStage.SUBMISSION)
    assert assigned.compliant


async def test_minimum_approval_levels(core: LeaveCore) -> None:
    await _allocate(core, 10, LeaveType.STUDY)
    chain = [ChainStep(level=1, required_role=Role.HR_OFFICER)]
    result = await core.gate.check(
        _subject(
            leave_type=LeaveType.STUDY,
            chain=chain,
            external_clearance_status=ClearanceStatus.APPROVED,
            external_clearance_reference="SCH-2025-001",
        ),
        ComplianceStage.SUBMISSION,
    )
    assert _codes(result.errors) == {BELOW_MINIMUM_APPROVAL_LEVELS}


# ---------------------------------------------------------------------------
# External clearance
# ---------------------------------------------------------------------------


async def test_pending_clearance_is_a_warning_at_submission(core: LeaveCore) -> None:
    await _allocate(core, 10, LeaveType.STUDY)
    result = await core.gate.check(
        _subject(leave_type=LeaveType.STUDY_WITH_PAY, external_clearance_status=ClearanceStatus.PENDING),
        ComplianceStage.SUBMISSION,
    )
    assert result.compliant
    assert _codes(result.warnings) == {EXTERNAL_CLEARANCE_PENDING}


async def test_rejected_clearance_is_an_error(core: LeaveCore) -> None:
    await _allocate(core, 10, LeaveType.STUDY)
    result = await core.gate.check(
        _subject(leave_type=LeaveType.STUDY, external_clearance_status=ClearanceStatus.REJECTED),
        ComplianceStage.SUBMISSION,
    )
    assert _codes(result.errors) == {EXTERNAL_CLEARANCE_REQUIRED}


async def test_unapproved_clearance_blocks_final_approval(core: LeaveCore) -> None:
    await _allocate(core, 10, LeaveType.STUDY)
    chain = [
        ChainStep(level=1, required_role=Role.SUPERVISOR, status=StepStatus.APPROVED, decided_by="SUP-002"),
        ChainStep(level=2, required_role=Role.HR_OFFICER),
    ]
    result = await core.gate.check(
        _subject(leave_type=LeaveType.STUDY, chain=chain, approving_level=2),
        ComplianceStage.FINAL_APPROVAL,
    )
    assert _codes(result.errors) == {EXTERNAL_CLEARANCE_REQUIRED}


async def test_missing_reference_on_approved_clearance_is_a_warning(core: LeaveCore) -> None:
    await _allocate(core, 10, LeaveType.STUDY)
    result = await core.gate.check(
        _subject(leave_type=LeaveType.STUDY, external_clearance_status=ClearanceStatus.APPROVED),
        ComplianceStage.SUBMISSION,
    )
    assert result.compliant
    assert _codes(result.warnings) == {EXTERNAL_CLEARANCE_REFERENCE_MISSING}


# ---------------------------------------------------------------------------
# Final approval and audit
# ---------------------------------------------------------------------------


async def test_final_approval_accepts_validating_level_being_approved(core: LeaveCore) -> None:
    await _allocate(core, 10)
    chain = [
        ChainStep(level=1, required_role=Role.SUPERVISOR, status=StepStatus.APPROVED, decided_by="SUP-002"),
        ChainStep(level=2, required_role=Role.DIRECTOR, status=StepStatus.APPROVED, decided_by="DIR-9"),
        ChainStep(level=3, required_role=Role.HR_OFFICER),
    ]
    result = await core.gate.check(_subject(chain=chain, approving_level=3), ComplianceStage.FINAL_APPROVAL)
    assert result.compliant


async def test_final_approval_requires_validating_step_approved(core: LeaveCore) -> None:
    await _allocate(core, 10)
    chain = [
        ChainStep(level=1, required_role=Role.HR_OFFICER),
        ChainStep(level=2, required_role=Role.CHIEF_DIRECTOR),
    ]
    result = await core.gate.check(_subject(chain=chain, approving_level=2), ComplianceStage.FINAL_APPROVAL)
    assert VALIDATION_STEP_NOT_APPROVED in _codes(result.errors)


async def test_final_approval_ignores_per_request_maximum(core: LeaveCore) -> None:
    await _allocate(core, 30)
    chain = [
        ChainStep(level=1, required_role=Role.SUPERVISOR, status=StepStatus.APPROVED, decided_by="SUP-002"),
        ChainStep(level=2, required_role=Role.HR_OFFICER),
    ]
    result = await core.gate.check(_subject(days=25, chain=chain, approving_level=2), ComplianceStage.FINAL_APPROVAL)
    assert result.compliant


async def test_audit_detects_out_of_order_approval(core: LeaveCore) -> None:
    await _allocate(core, 10)
    chain = [
        ChainStep(level=1, required_role=Role.SUPERVISOR, assigned_approver_id="SUP-002"),
        ChainStep(level=2, required_role=Role.DIRECTOR, status=StepStatus.APPROVED, decided_by="DIR-9"),
        ChainStep(level=3, required_role=Role.HR_OFFICER),
    ]
    result = await core.gate.check(_subject(chain=chain), ComplianceStage.AUDIT)
    assert _codes(result.errors) == {SEQUENTIAL_APPROVAL_VIOLATION}


async def test_audit_of_approved_request_skips_balance(core: LeaveCore) -> None:
    approved = [
        ChainStep(level=step.level, required_role=step.required_role, status=StepStatus.APPROVED, decided_by="X")
        for step in CHAIN
    ]
    result = await core.gate.check(
        _subject(chain=approved, status=RequestStatus.APPROVED, balance_deducted=True),
        ComplianceStage.AUDIT,
    )
    assert result.compliant


async def test_decided_by_requester_is_a_segregation_violation(core: LeaveCore) -> None:
    await _allocate(core, 10)
    chain = [
        ChainStep(level=1, required_role=Role.SUPERVISOR, status=StepStatus.APPROVED, decided_by=STAFF.staff_id),
        ChainStep(level=2, required_role=Role.HR_OFFICER),
    ]
    result = await core.gate.check(_subject(chain=chain), ComplianceStage.AUDIT)
    assert _codes(result.errors) == {SEGREGATION_OF_DUTIES_VIOLATION}
