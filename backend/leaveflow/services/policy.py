from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from leaveflow.exceptions import ValidationError
from leaveflow.models.enums import LeaveType

# Balance counter consumed by each leave type. Types absent from the map
# are balance-exempt.
LEAVE_TYPE_COUNTERS: dict[LeaveType, str] = {
    LeaveType.ANNUAL: "annual",
    LeaveType.SICK: "sick",
    LeaveType.MATERNITY: "maternity",
    LeaveType.PATERNITY: "paternity",
    LeaveType.COMPASSIONATE: "compassionate",
    LeaveType.STUDY: "study",
    LeaveType.STUDY_WITH_PAY: "study",
    LeaveType.STUDY_WITHOUT_PAY: "study",
    LeaveType.TRAINING: "training",
    LeaveType.SPECIAL_SERVICE: "special_service",
}

# Leave types whose counters roll over at year end.
CARRY_ELIGIBLE_TYPES: tuple[LeaveType, ...] = (
    LeaveType.ANNUAL,
    LeaveType.SICK,
    LeaveType.SPECIAL_SERVICE,
    LeaveType.TRAINING,
    LeaveType.STUDY,
)


def _squash(raw: str) -> str:
    return re.sub(r"[^a-z]", "", raw.lower())


_LEAVE_TYPE_LOOKUP: dict[str, LeaveType] = {_squash(t.value): t for t in LeaveType}


def parse_leave_type(raw: str | LeaveType) -> LeaveType:
    """Accept canonical names and legacy spellings such as ``"Special Service"``."""
    if isinstance(raw, LeaveType):
        return raw
    leave_type = _LEAVE_TYPE_LOOKUP.get(_squash(raw))
    if leave_type is None:
        raise ValidationError(f"Unknown leave type '{raw}'")
    return leave_type


def counter_for(leave_type: LeaveType) -> str | None:
    """Return the balance counter for a leave type, or None if exempt."""
    return LEAVE_TYPE_COUNTERS.get(leave_type)


def is_balance_exempt(leave_type: LeaveType) -> bool:
    return leave_type not in LEAVE_TYPE_COUNTERS


class LeavePolicy(BaseModel):
    """Per-leave-type limits read by the compliance gate and the year-end and accrual batches."""

    leave_type: LeaveType
    max_days_per_request: float | None = Field(default=None, gt=0)
    carryover_allowed: bool = False
    max_carryover: float = Field(default=0, ge=0)
    min_approval_levels: int = Field(default=1, ge=1)
    requires_external_clearance: bool = False
    balance_exempt: bool = False
    # Days credited on the first of each month; 0 means the entitlement is allocated, not accrued.
    monthly_accrual_days: float = Field(default=0, ge=0)
    # Accrual never lifts the counter above this amount.
    max_balance: float | None = Field(default=None, gt=0)


def default_policies() -> list[LeavePolicy]:
    """Statutory public-service defaults."""
    return [
        LeavePolicy(leave_type=LeaveType.ANNUAL, max_days_per_request=21, carryover_allowed=True, max_carryover=5),
        LeavePolicy(leave_type=LeaveType.SICK, max_days_per_request=12),
        LeavePolicy(leave_type=LeaveType.MATERNITY, max_days_per_request=84),
        LeavePolicy(leave_type=LeaveType.PATERNITY, max_days_per_request=5),
        LeavePolicy(leave_type=LeaveType.COMPASSIONATE, max_days_per_request=5),
        LeavePolicy(leave_type=LeaveType.STUDY, requires_external_clearance=True, min_approval_levels=2),
        LeavePolicy(leave_type=LeaveType.STUDY_WITH_PAY, requires_external_clearance=True, min_approval_levels=2),
        LeavePolicy(leave_type=LeaveType.STUDY_WITHOUT_PAY, requires_external_clearance=True, min_approval_levels=2),
        LeavePolicy(leave_type=LeaveType.TRAINING),
        LeavePolicy(leave_type=LeaveType.SPECIAL_SERVICE),
        LeavePolicy(leave_type=LeaveType.UNPAID, balance_exempt=True),
    ]


@runtime_checkable
class PolicyStore(Protocol):
    """Interface for the policy configuration store."""

    async def get_policy(self, leave_type: LeaveType) -> LeavePolicy:
        """Return the policy for a leave type."""
        ...


class InMemoryPolicyStore:
    """In-memory policy store seeded with statutory defaults."""

    def __init__(self, policies: list[LeavePolicy] | None = None) -> None:
        self._policies: dict[LeaveType, LeavePolicy] = {}
        for policy in default_policies() if policies is None else policies:
            self.seed(policy)

    def seed(self, policy: LeavePolicy) -> None:
        """Replace the policy for its leave type."""
        self._policies[policy.leave_type] = policy

    async def get_policy(self, leave_type: LeaveType) -> LeavePolicy:
        """Return the policy for a leave type, falling back to an unrestricted one."""
        policy = self._policies.get(leave_type)
        if policy is None:
            return LeavePolicy(leave_type=leave_type, balance_exempt=is_balance_exempt(leave_type))
        return policy
