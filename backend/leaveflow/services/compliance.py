"""Compliance gate.

Evaluates a request against policy and segregation-of-duties rules and
returns every failure at once. The gate never writes; callers decide what
to do with the result.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from leaveflow.models.enums import ClearanceStatus, LeaveType, RequestStatus, Role, StepStatus
from leaveflow.services.directory import UnitRegistry, requires_acting_officer
from leaveflow.services.policy import counter_for
from leaveflow.services.roles import VALIDATING_ROLES

if TYPE_CHECKING:
    from collections.abc import Sequence

    from leaveflow.services.directory import StaffContext
    from leaveflow.services.ledger import Ledger
    from leaveflow.services.policy import PolicyStore

logger = logging.getLogger(__name__)


class ComplianceStage(enum.StrEnum):
    """Point in the workflow the gate is evaluated at."""

    SUBMISSION = "SUBMISSION"
    FINAL_APPROVAL = "FINAL_APPROVAL"
    AUDIT = "AUDIT"


# Machine codes carried by compliance issues.
INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
EXCEEDS_POLICY_MAXIMUM = "EXCEEDS_POLICY_MAXIMUM"
BELOW_MINIMUM_APPROVAL_LEVELS = "BELOW_MINIMUM_APPROVAL_LEVELS"
ACTING_OFFICER_REQUIRED = "ACTING_OFFICER_REQUIRED"
SEGREGATION_OF_DUTIES_VIOLATION = "SEGREGATION_OF_DUTIES_VIOLATION"
VALIDATION_STEP_MISSING = "VALIDATION_STEP_MISSING"
VALIDATION_STEP_NOT_APPROVED = "VALIDATION_STEP_NOT_APPROVED"
EXTERNAL_CLEARANCE_REQUIRED = "EXTERNAL_CLEARANCE_REQUIRED"
EXTERNAL_CLEARANCE_PENDING = "EXTERNAL_CLEARANCE_PENDING"
EXTERNAL_CLEARANCE_REFERENCE_MISSING = "EXTERNAL_CLEARANCE_REFERENCE_MISSING"
DECLARATION_REQUIRED = "DECLARATION_REQUIRED"
SEQUENTIAL_APPROVAL_VIOLATION = "SEQUENTIAL_APPROVAL_VIOLATION"


@dataclass(frozen=True)
class ComplianceIssue:
    code: str
    message: str


@dataclass
class ComplianceResult:
    """Accumulated errors and warnings; compliant iff there are no errors."""

    errors: list[ComplianceIssue] = field(default_factory=list)
    warnings: list[ComplianceIssue] = field(default_factory=list)

    @property
    def compliant(self) -> bool:
        return not self.errors

    def error(self, code: str, message: str) -> None:
        self.errors.append(ComplianceIssue(code, message))

    def warn(self, code: str, message: str) -> None:
        self.warnings.append(ComplianceIssue(code, message))


@dataclass(frozen=True)
class ChainStep:
    """Gate's view of one approval level, computed or persisted."""

    level: int
    required_role: Role
    assigned_approver_id: str | None = None
    status: StepStatus = StepStatus.PENDING
    decided_by: str | None = None


@dataclass(frozen=True)
class ComplianceSubject:
    """Everything the gate needs to know about a request."""

    staff: StaffContext
    leave_type: LeaveType
    days: float
    chain: Sequence[ChainStep]
    declaration_accepted: bool = False
    acting_officer_id: str | None = None
    external_clearance_status: ClearanceStatus | None = None
    external_clearance_reference: str | None = None
    status: RequestStatus = RequestStatus.PENDING
    balance_deducted: bool = False
    # Level being approved right now when evaluated at final approval.
    approving_level: int | None = None


class ComplianceGate:
    """Runs every check and reports all failures together."""

    def __init__(self, ledger: Ledger, policies: PolicyStore, units: UnitRegistry | None = None) -> None:
        self._ledger = ledger
        self._policies = policies
        self._units = units or UnitRegistry()

    async def check(self, subject: ComplianceSubject, stage: ComplianceStage) -> ComplianceResult:
        result = ComplianceResult()
        policy = await self._policies.get_policy(subject.leave_type)

        await self._check_balance(subject, policy.balance_exempt, result)
        limit = policy.max_days_per_request
        if stage != ComplianceStage.FINAL_APPROVAL and limit is not None and subject.days > limit:
            result.error(
                EXCEEDS_POLICY_MAXIMUM,
                f"{subject.leave_type.value} leave is limited to {limit:g} days per request, "
                f"requested {subject.days:g}",
            )
        if len(subject.chain) < policy.min_approval_levels:
            result.error(
                BELOW_MINIMUM_APPROVAL_LEVELS,
                f"{subject.leave_type.value} leave needs at least {policy.min_approval_levels} approval levels, "
                f"chain has {len(subject.chain)}",
            )
        self._check_acting_officer(subject, result)
        self._check_segregation(subject, result)
        self._check_validation_step(subject, stage, result)
        if policy.requires_external_clearance:
            self._check_external_clearance(subject, stage, result)
        if not subject.declaration_accepted:
            result.error(DECLARATION_REQUIRED, "Declaration must be accepted before the request can be submitted")
        self._check_sequence(subject, result)

        if not result.compliant:
            logger.info(
                "Compliance %s failed for staff=%s type=%s: %s",
                stage.value,
                subject.staff.staff_id,
                subject.leave_type.value,
                [issue.code for issue in result.errors],
            )
        return result

    # -----------------------------------------------------------------------
    # Individual rules
    # -----------------------------------------------------------------------

    async def _check_balance(self, subject: ComplianceSubject, exempt: bool, result: ComplianceResult) -> None:
        if exempt or subject.balance_deducted or counter_for(subject.leave_type) is None:
            return
        if subject.status in (RequestStatus.APPROVED, RequestStatus.CANCELLED, RequestStatus.REJECTED):
            return
        check = await self._ledger.validate(subject.staff.staff_id, subject.leave_type, subject.days)
        if not check.sufficient:
            result.error(
                INSUFFICIENT_BALANCE,
                f"Insufficient {subject.leave_type.value} leave balance. "
                f"Available: {check.current:g} days, Required: {subject.days:g} days",
            )

    def _check_acting_officer(self, subject: ComplianceSubject, result: ComplianceResult) -> None:
        if not requires_acting_officer(subject.staff, self._units):
            return
        acting = subject.acting_officer_id or subject.staff.acting_officer_id
        if not acting:
            result.error(ACTING_OFFICER_REQUIRED, "An acting officer must be assigned for this position")
        elif acting == subject.staff.staff_id:
            result.error(ACTING_OFFICER_REQUIRED, "Staff cannot act for themselves")

    @staticmethod
    def _check_segregation(subject: ComplianceSubject, result: ComplianceResult) -> None:
        requester = subject.staff.staff_id
        for step in subject.chain:
            if requester in (step.assigned_approver_id, step.decided_by):
                result.error(
                    SEGREGATION_OF_DUTIES_VIOLATION,
                    f"Approver cannot approve their own leave request (level {step.level})",
                )

    @staticmethod
    def _check_validation_step(subject: ComplianceSubject, stage: ComplianceStage, result: ComplianceResult) -> None:
        validating = [step for step in subject.chain if step.required_role in VALIDATING_ROLES]
        if not validating:
            result.error(VALIDATION_STEP_MISSING, "HR validation step is mandatory in every approval chain")
            return
        must_be_approved = stage == ComplianceStage.FINAL_APPROVAL or (
            stage == ComplianceStage.AUDIT and subject.status == RequestStatus.APPROVED
        )
        if not must_be_approved:
            return
        for step in validating:
            if step.status != StepStatus.APPROVED and step.level != subject.approving_level:
                result.error(
                    VALIDATION_STEP_NOT_APPROVED,
                    f"HR validation at level {step.level} is mandatory before final approval",
                )

    @staticmethod
    def _check_external_clearance(subject: ComplianceSubject, stage: ComplianceStage, result: ComplianceResult) -> None:
        status = subject.external_clearance_status
        final = stage == ComplianceStage.FINAL_APPROVAL or (
            stage == ComplianceStage.AUDIT and subject.status == RequestStatus.APPROVED
        )
        if status == ClearanceStatus.REJECTED or (final and status != ClearanceStatus.APPROVED):
            result.error(
                EXTERNAL_CLEARANCE_REQUIRED,
                "External clearance is required and must be approved before final approval",
            )
        elif status != ClearanceStatus.APPROVED:
            result.warn(EXTERNAL_CLEARANCE_PENDING, "External clearance is required but not yet approved")
        elif not subject.external_clearance_reference:
            result.warn(
                EXTERNAL_CLEARANCE_REFERENCE_MISSING,
                "External clearance approved but reference number not recorded",
            )

    @staticmethod
    def _check_sequence(subject: ComplianceSubject, result: ComplianceResult) -> None:
        earlier_incomplete: int | None = None
        for step in sorted(subject.chain, key=lambda s: s.level):
            if step.status == StepStatus.APPROVED and earlier_incomplete is not None:
                result.error(
                    SEQUENTIAL_APPROVAL_VIOLATION,
                    f"Approval level {step.level} was approved before level {earlier_incomplete} was completed",
                )
            elif step.status != StepStatus.APPROVED and earlier_incomplete is None:
                earlier_incomplete = step.level
