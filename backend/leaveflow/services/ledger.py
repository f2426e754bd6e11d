"""Entitlement ledger: per-staff balance counters under optimistic concurrency.

Every mutation reads ``(amount, version)``, computes the new amount and
issues ``UPDATE ... WHERE version = :read_version``. A write that touches no
row lost its race and raises ``StaleVersionError``; the public operations
retry through ``with_optimistic_lock`` while the ``apply_*`` variants make a
single attempt inside a caller-owned session so the engine can commit the
balance change together with the request transition.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leaveflow.exceptions import InsufficientBalanceError, NotFoundError, StaleVersionError, ValidationError
from leaveflow.models.balance import LeaveBalance
from leaveflow.models.base import now_utc
from leaveflow.models.enums import BalanceChangeReason, LeaveType
from leaveflow.models.history import BalanceHistoryEntry
from leaveflow.services.locking import LockPolicy, with_optimistic_lock
from leaveflow.services.policy import counter_for, parse_leave_type

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceCheck:
    """Result of a read-only sufficiency check."""

    sufficient: bool
    current: float


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of a ledger mutation.

    ``applied`` is False for balance-exempt leave types and for a
    ``source_id`` whose change was already recorded.
    """

    staff_id: str
    leave_type: LeaveType
    new_balance: float
    applied: bool = True
    entry_id: uuid.UUID | None = None


@dataclass(frozen=True)
class _BalanceSnapshot:
    exists: bool
    amount: float
    version: int
    already_recorded: bool


def _round(amount: float) -> float:
    return round(amount, 2)


def _validate_days(days: float) -> float:
    if isinstance(days, bool) or not isinstance(days, (int, float)) or not math.isfinite(days) or days <= 0:
        raise ValidationError(f"Day count must be a positive number, got {days!r}")
    return float(days)


class Ledger:
    """Owns balance records and their append-only history."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        lock_policy: LockPolicy | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._lock_policy = lock_policy or LockPolicy()

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def get_balance(self, staff_id: str, leave_type: LeaveType | str) -> float:
        """Current amount of the counter a leave type draws from (0 if none)."""
        counter = counter_for(parse_leave_type(leave_type))
        if counter is None:
            return 0.0
        async with self._session_factory() as session:
            snapshot = await self._read(session, staff_id, counter)
        return snapshot.amount

    async def get_balances(self, staff_id: str) -> LeaveBalance:
        """Full balance record for a staff member."""
        async with self._session_factory() as session:
            balance = await session.get(LeaveBalance, staff_id)
        if balance is None:
            raise NotFoundError("Balance", staff_id)
        return balance

    async def validate(self, staff_id: str, leave_type: LeaveType | str, requested_days: float) -> BalanceCheck:
        """Read-only check; balance-exempt types always report sufficient."""
        leave_type = parse_leave_type(leave_type)
        requested_days = _validate_days(requested_days)
        counter = counter_for(leave_type)
        if counter is None:
            return BalanceCheck(sufficient=True, current=0.0)
        current = await self.get_balance(staff_id, leave_type)
        return BalanceCheck(sufficient=current >= requested_days, current=current)

    async def get_history(
        self,
        staff_id: str,
        leave_type: LeaveType | str | None = None,
    ) -> list[BalanceHistoryEntry]:
        """History entries oldest first, optionally limited to one leave type's counter."""
        query = select(BalanceHistoryEntry).where(col(BalanceHistoryEntry.staff_id) == staff_id)
        if leave_type is not None:
            counter = counter_for(parse_leave_type(leave_type))
            if counter is None:
                return []
            query = query.where(col(BalanceHistoryEntry.counter) == counter)
        query = query.order_by(col(BalanceHistoryEntry.created_at))
        async with self._session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def replay(self, staff_id: str, leave_type: LeaveType | str) -> float:
        """Sum of history deltas for a counter; must equal the stored balance."""
        counter = counter_for(parse_leave_type(leave_type))
        if counter is None:
            return 0.0
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.coalesce(func.sum(BalanceHistoryEntry.delta), 0.0)).where(
                    col(BalanceHistoryEntry.staff_id) == staff_id,
                    col(BalanceHistoryEntry.counter) == counter,
                )
            )
            return _round(float(result.scalar_one()))

    # -----------------------------------------------------------------------
    # Retried mutations
    # -----------------------------------------------------------------------

    async def deduct(
        self,
        staff_id: str,
        leave_type: LeaveType | str,
        days: float,
        *,
        source_id: str | None = None,
    ) -> LedgerResult:
        """Consume ``days``; raises ``InsufficientBalanceError`` if the counter is short."""
        leave_type = parse_leave_type(leave_type)
        days = _validate_days(days)
        return await self._mutate(
            staff_id,
            leave_type,
            lambda amount: self._checked_deduction(leave_type, amount, days),
            reason=BalanceChangeReason.DEDUCTION,
            source_id=source_id,
        )

    async def restore(
        self,
        staff_id: str,
        leave_type: LeaveType | str,
        days: float,
        *,
        source_id: str | None = None,
    ) -> LedgerResult:
        """Give back ``days``, creating the balance record on first touch."""
        leave_type = parse_leave_type(leave_type)
        days = _validate_days(days)
        return await self._mutate(
            staff_id,
            leave_type,
            lambda amount: amount + days,
            reason=BalanceChangeReason.RESTORATION,
            source_id=source_id,
        )

    async def accrue(
        self,
        staff_id: str,
        leave_type: LeaveType | str,
        days: float,
        *,
        source_id: str,
        max_balance: float | None = None,
    ) -> LedgerResult:
        """Credit one period's accrual, keyed by ``source_id`` so a re-run is a no-op.

        ``max_balance`` caps the counter as re-read on each attempt; a counter
        already at the cap records a zero-delta entry for the period.
        """
        leave_type = parse_leave_type(leave_type)
        days = _validate_days(days)

        def compute(amount: float) -> float:
            if max_balance is None:
                return amount + days
            return max(amount, min(amount + days, max_balance))

        return await self._mutate(
            staff_id,
            leave_type,
            compute,
            reason=BalanceChangeReason.ACCRUAL,
            source_id=source_id,
        )

    async def set_balance(
        self,
        staff_id: str,
        leave_type: LeaveType | str,
        new_amount: float,
        *,
        reason: BalanceChangeReason,
        source_id: str | None = None,
    ) -> LedgerResult:
        """Version-guarded overwrite used to allocate opening entitlements."""
        leave_type = parse_leave_type(leave_type)
        if isinstance(new_amount, bool) or not math.isfinite(new_amount) or new_amount < 0:
            raise ValidationError(f"Balance must be a non-negative number, got {new_amount!r}")
        target = float(new_amount)
        return await self._mutate(staff_id, leave_type, lambda _amount: target, reason=reason, source_id=source_id)

    async def cap_balance(
        self,
        staff_id: str,
        leave_type: LeaveType | str,
        cap: float,
        *,
        source_id: str,
    ) -> LedgerResult:
        """Trim a counter to ``cap`` as one year-end change keyed by ``source_id``.

        The cap is applied to the amount read inside each attempt, so a
        deduction that lands between the batch's read and its write is never
        overwritten. An amount at or below the cap records a zero-delta
        carry-forward entry instead of a forfeiture.
        """
        leave_type = parse_leave_type(leave_type)
        if isinstance(cap, bool) or not math.isfinite(cap) or cap < 0:
            raise ValidationError(f"Carry-over cap must be a non-negative number, got {cap!r}")
        counter = counter_for(leave_type)
        if counter is None:
            return LedgerResult(staff_id=staff_id, leave_type=leave_type, new_balance=0.0, applied=False)
        year_end_reasons = (BalanceChangeReason.YEAR_END_FORFEITURE, BalanceChangeReason.YEAR_END_CARRY_FORWARD)

        async def read() -> _BalanceSnapshot:
            async with self._session_factory() as session:
                return await self._read(session, staff_id, counter, source_id, year_end_reasons)

        async def attempt_write(snapshot: _BalanceSnapshot) -> LedgerResult:
            reason = (
                BalanceChangeReason.YEAR_END_FORFEITURE
                if snapshot.amount > cap
                else BalanceChangeReason.YEAR_END_CARRY_FORWARD
            )
            async with self._session_factory() as session:
                result = await self._write(
                    session,
                    snapshot,
                    staff_id=staff_id,
                    leave_type=leave_type,
                    counter=counter,
                    compute=lambda amount: min(amount, cap),
                    reason=reason,
                    source_id=source_id,
                )
                await session.commit()
            return result

        return await with_optimistic_lock(
            read,
            attempt_write,
            policy=self._lock_policy,
            operation=f"year-end cap of {leave_type.value} for {staff_id}",
        )

    # -----------------------------------------------------------------------
    # Single-attempt mutations inside a caller-owned transaction
    # -----------------------------------------------------------------------

    async def apply_deduction(
        self,
        session: AsyncSession,
        staff_id: str,
        leave_type: LeaveType,
        days: float,
        *,
        source_id: str | None = None,
    ) -> LedgerResult:
        """Deduct within ``session``; raises ``StaleVersionError`` on a lost race."""
        days = _validate_days(days)
        counter = counter_for(leave_type)
        if counter is None:
            return LedgerResult(staff_id=staff_id, leave_type=leave_type, new_balance=0.0, applied=False)
        snapshot = await self._read(session, staff_id, counter, source_id, (BalanceChangeReason.DEDUCTION,))
        return await self._write(
            session,
            snapshot,
            staff_id=staff_id,
            leave_type=leave_type,
            counter=counter,
            compute=lambda amount: self._checked_deduction(leave_type, amount, days),
            reason=BalanceChangeReason.DEDUCTION,
            source_id=source_id,
        )

    async def apply_restoration(
        self,
        session: AsyncSession,
        staff_id: str,
        leave_type: LeaveType,
        days: float,
        *,
        source_id: str | None = None,
    ) -> LedgerResult:
        """Restore within ``session``; raises ``StaleVersionError`` on a lost race."""
        days = _validate_days(days)
        counter = counter_for(leave_type)
        if counter is None:
            return LedgerResult(staff_id=staff_id, leave_type=leave_type, new_balance=0.0, applied=False)
        snapshot = await self._read(session, staff_id, counter, source_id, (BalanceChangeReason.RESTORATION,))
        return await self._write(
            session,
            snapshot,
            staff_id=staff_id,
            leave_type=leave_type,
            counter=counter,
            compute=lambda amount: amount + days,
            reason=BalanceChangeReason.RESTORATION,
            source_id=source_id,
        )

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _checked_deduction(leave_type: LeaveType, amount: float, days: float) -> float:
        if amount < days:
            raise InsufficientBalanceError(leave_type.value, available=amount, requested=days)
        return amount - days

    async def _mutate(
        self,
        staff_id: str,
        leave_type: LeaveType,
        compute: Callable[[float], float],
        *,
        reason: BalanceChangeReason,
        source_id: str | None,
    ) -> LedgerResult:
        counter = counter_for(leave_type)
        if counter is None:
            return LedgerResult(staff_id=staff_id, leave_type=leave_type, new_balance=0.0, applied=False)

        async def read() -> _BalanceSnapshot:
            async with self._session_factory() as session:
                return await self._read(session, staff_id, counter, source_id, (reason,))

        async def attempt_write(snapshot: _BalanceSnapshot) -> LedgerResult:
            async with self._session_factory() as session:
                result = await self._write(
                    session,
                    snapshot,
                    staff_id=staff_id,
                    leave_type=leave_type,
                    counter=counter,
                    compute=compute,
                    reason=reason,
                    source_id=source_id,
                )
                await session.commit()
            return result

        return await with_optimistic_lock(
            read,
            attempt_write,
            policy=self._lock_policy,
            operation=f"{reason.value} of {leave_type.value} for {staff_id}",
        )

    async def _read(
        self,
        session: AsyncSession,
        staff_id: str,
        counter: str,
        source_id: str | None = None,
        reasons: tuple[BalanceChangeReason, ...] = (),
    ) -> _BalanceSnapshot:
        row = (
            await session.execute(
                select(col(LeaveBalance.version), getattr(LeaveBalance, counter)).where(
                    col(LeaveBalance.staff_id) == staff_id
                )
            )
        ).first()

        already_recorded = False
        if source_id is not None and reasons:
            existing = await session.execute(
                select(col(BalanceHistoryEntry.id))
                .where(
                    col(BalanceHistoryEntry.source_id) == source_id,
                    col(BalanceHistoryEntry.reason).in_([r.value for r in reasons]),
                )
                .limit(1)
            )
            already_recorded = existing.first() is not None

        if row is None:
            return _BalanceSnapshot(exists=False, amount=0.0, version=0, already_recorded=already_recorded)
        return _BalanceSnapshot(
            exists=True,
            amount=float(row[1]),
            version=int(row[0]),
            already_recorded=already_recorded,
        )

    async def _write(
        self,
        session: AsyncSession,
        snapshot: _BalanceSnapshot,
        *,
        staff_id: str,
        leave_type: LeaveType,
        counter: str,
        compute: Callable[[float], float],
        reason: BalanceChangeReason,
        source_id: str | None,
    ) -> LedgerResult:
        """Conditionally write the new amount and append one history entry.

        1. Skip if this source already produced a change of this kind
        2. Compute the new amount (may raise a domain error)
        3. UPDATE guarded by the read version, or INSERT on first touch
        4. Append the history entry; a duplicate source counts as a lost race
        """
        if snapshot.already_recorded:
            logger.info("Skipping %s for staff=%s source=%s: already recorded", reason.value, staff_id, source_id)
            return LedgerResult(staff_id=staff_id, leave_type=leave_type, new_balance=snapshot.amount, applied=False)

        new_amount = _round(compute(snapshot.amount))

        if snapshot.exists:
            result = await session.execute(
                update(LeaveBalance)
                .where(
                    col(LeaveBalance.staff_id) == staff_id,
                    col(LeaveBalance.version) == snapshot.version,
                )
                .values({counter: new_amount, "version": snapshot.version + 1, "updated_at": now_utc()})
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:  # type: ignore[attr-defined]
                raise StaleVersionError(f"leave_balance {staff_id} moved past version {snapshot.version}")
        else:
            session.add(LeaveBalance(staff_id=staff_id, **{counter: new_amount}))

        entry = BalanceHistoryEntry(
            staff_id=staff_id,
            leave_type=leave_type.value,
            counter=counter,
            delta=_round(new_amount - snapshot.amount),
            balance_before=snapshot.amount,
            balance_after=new_amount,
            reason=reason.value,
            source_id=source_id,
        )
        session.add(entry)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise StaleVersionError(f"concurrent {reason.value} for staff {staff_id}") from exc

        logger.info(
            "%s %s for staff=%s: %.2f -> %.2f",
            reason.value,
            leave_type.value,
            staff_id,
            snapshot.amount,
            new_amount,
        )
        return LedgerResult(
            staff_id=staff_id,
            leave_type=leave_type,
            new_balance=new_amount,
            entry_id=entry.id,
        )
