"""Monthly accrual: credit each active staff member's accruing counters.

Runs on the first of a month. Every (period, staff, type) credit is keyed
by a source id, so re-running a period never credits twice. Leave types
sharing a counter accrue once, under the first type that accrues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from leaveflow.models.enums import LeaveType
from leaveflow.services.policy import counter_for

if TYPE_CHECKING:
    from leaveflow.services.directory import OrganizationDirectory
    from leaveflow.services.ledger import Ledger
    from leaveflow.services.policy import LeavePolicy, PolicyStore

logger = logging.getLogger(__name__)


@dataclass
class AccrualRunResult:
    """Summary of a monthly accrual run."""

    accrual_date: date
    period: str
    processed: int = 0
    accrued: int = 0
    skipped: int = 0
    errors: int = 0


def accrual_period(accrual_date: date) -> str:
    return f"{accrual_date.year:04d}-{accrual_date.month:02d}"


def source_key(period: str, staff_id: str, leave_type: LeaveType) -> str:
    return f"accrual:{period}:{staff_id}:{leave_type.value}"


def is_accrual_date(target_date: date) -> bool:
    return target_date.day == 1


class AccrualProcessor:
    """Batch entry point for monthly accrual."""

    def __init__(self, ledger: Ledger, directory: OrganizationDirectory, policies: PolicyStore) -> None:
        self._ledger = ledger
        self._directory = directory
        self._policies = policies

    async def _accruing_policies(self) -> list[LeavePolicy]:
        policies: list[LeavePolicy] = []
        counters: set[str] = set()
        for leave_type in LeaveType:
            counter = counter_for(leave_type)
            if counter is None or counter in counters:
                continue
            policy = await self._policies.get_policy(leave_type)
            if policy.balance_exempt or policy.monthly_accrual_days <= 0:
                continue
            counters.add(counter)
            policies.append(policy)
        return policies

    async def run(self, accrual_date: date | None = None) -> AccrualRunResult:
        """Credit one month's accrual to every active staff member."""
        if accrual_date is None:
            accrual_date = date.today()
        period = accrual_period(accrual_date)
        result = AccrualRunResult(accrual_date=accrual_date, period=period)

        policies = await self._accruing_policies()
        if not policies:
            logger.info("Accrual %s: no leave type accrues", period)
            return result

        for staff in await self._directory.list_active_staff():
            result.processed += 1
            for policy in policies:
                try:
                    outcome = await self._ledger.accrue(
                        staff.staff_id,
                        policy.leave_type,
                        policy.monthly_accrual_days,
                        source_id=source_key(period, staff.staff_id, policy.leave_type),
                        max_balance=policy.max_balance,
                    )
                except Exception:
                    logger.exception(
                        "Accrual failed for staff=%s type=%s period=%s",
                        staff.staff_id,
                        policy.leave_type.value,
                        period,
                    )
                    result.errors += 1
                    continue
                if outcome.applied:
                    result.accrued += 1
                else:
                    result.skipped += 1

        logger.info(
            "Accrual %s complete: processed=%d accrued=%d skipped=%d errors=%d",
            period,
            result.processed,
            result.accrued,
            result.skipped,
            result.errors,
        )
        return result
