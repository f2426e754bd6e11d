"""Year-end carry-forward and forfeiture.

For every active staff member and every carry-eligible counter with a
positive balance, keep ``min(balance, max_carryover)`` when the policy
allows carry-over and forfeit the rest. Each (year, staff, type) is keyed
by a source id so a re-run is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING

from leaveflow.exceptions import NotFoundError
from leaveflow.services.policy import CARRY_ELIGIBLE_TYPES, counter_for

if TYPE_CHECKING:
    from leaveflow.models.enums import LeaveType
    from leaveflow.services.directory import OrganizationDirectory
    from leaveflow.services.ledger import Ledger
    from leaveflow.services.policy import PolicyStore

logger = logging.getLogger(__name__)


@dataclass
class YearEndRunResult:
    """Result of a year-end processing run."""

    effective_date: date
    closing_year: int
    staff_processed: int = 0
    carried_forward: int = 0
    forfeited: int = 0
    skipped: int = 0
    errors: int = 0
    details: list[dict[str, object]] = field(default_factory=list)


def closing_year_for(effective_date: date) -> int:
    """The year that ends the day before ``effective_date``."""
    return (effective_date - timedelta(days=1)).year


def source_key(closing_year: int, staff_id: str, leave_type: LeaveType) -> str:
    return f"year-end:{closing_year}:{staff_id}:{leave_type.value}"


class YearEndProcessor:
    """Batch entry point for carry-forward and forfeiture."""

    def __init__(self, ledger: Ledger, directory: OrganizationDirectory, policies: PolicyStore) -> None:
        self._ledger = ledger
        self._directory = directory
        self._policies = policies

    async def run(self, effective_date: date | None = None) -> YearEndRunResult:
        """Process every active staff member; failures are logged and counted per staff."""
        if effective_date is None:
            effective_date = date.today()
        closing_year = closing_year_for(effective_date)
        result = YearEndRunResult(effective_date=effective_date, closing_year=closing_year)

        for staff in await self._directory.list_active_staff():
            try:
                await self._process_staff(staff.staff_id, closing_year, result)
            except Exception:
                logger.exception("Year-end processing failed for staff=%s year=%d", staff.staff_id, closing_year)
                result.errors += 1
                continue
            result.staff_processed += 1

        logger.info(
            "Year-end %d complete: staff=%d carried=%d forfeited=%d skipped=%d errors=%d",
            closing_year,
            result.staff_processed,
            result.carried_forward,
            result.forfeited,
            result.skipped,
            result.errors,
        )
        return result

    async def _process_staff(self, staff_id: str, closing_year: int, result: YearEndRunResult) -> None:
        """Carry or forfeit each eligible counter of one staff member.

        1. Skip staff without a balance record
        2. Skip counters with nothing to carry
        3. cap = max_carryover if the policy allows carry-over, else 0
        4. Trim the counter to the cap under the year's source key; the
           ledger records a forfeiture or a zero-delta carry-forward marker
        """
        try:
            balance = await self._ledger.get_balances(staff_id)
        except NotFoundError:
            logger.info("Year-end %d: no balance record for staff=%s", closing_year, staff_id)
            result.skipped += 1
            return

        for leave_type in CARRY_ELIGIBLE_TYPES:
            counter = counter_for(leave_type)
            if counter is None:
                continue
            current = float(getattr(balance, counter))
            if current <= 0:
                continue

            policy = await self._policies.get_policy(leave_type)
            cap = policy.max_carryover if policy.carryover_allowed else 0.0
            outcome = await self._ledger.cap_balance(
                staff_id,
                leave_type,
                cap,
                source_id=source_key(closing_year, staff_id, leave_type),
            )
            if not outcome.applied:
                result.skipped += 1
                continue

            if outcome.new_balance < current:
                result.forfeited += 1
            else:
                result.carried_forward += 1
            result.details.append(
                {
                    "staff_id": staff_id,
                    "leave_type": leave_type.value,
                    "balance_before": current,
                    "carried_forward": outcome.new_balance,
                    "forfeited": round(current - outcome.new_balance, 2),
                    "new_balance": outcome.new_balance,
                }
            )
