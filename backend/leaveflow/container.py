"""Wiring of the leave core's collaborators.

The API and the worker share one ``LeaveCore``. Like the other pluggable
services it is a module-level singleton that tests replace with ``set_core``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from leaveflow.config import Settings, get_settings
from leaveflow.services.accrual import AccrualProcessor
from leaveflow.services.compliance import ComplianceGate
from leaveflow.services.detector import ConflictDetector
from leaveflow.services.directory import InMemoryOrganizationDirectory, OrganizationDirectory, UnitRegistry
from leaveflow.services.engine import ApprovalEngine
from leaveflow.services.ledger import Ledger
from leaveflow.services.locking import LockPolicy
from leaveflow.services.outbox import LoggingNotificationSink, NotificationSink, OutboxDispatcher
from leaveflow.services.policy import InMemoryPolicyStore, PolicyStore
from leaveflow.services.routing import WorkflowRouter
from leaveflow.services.year_end import YearEndProcessor

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


@dataclass
class LeaveCore:
    """Everything a caller needs to drive requests and balances."""

    session_factory: async_sessionmaker[AsyncSession]
    directory: OrganizationDirectory
    policies: PolicyStore
    units: UnitRegistry
    ledger: Ledger
    router: WorkflowRouter
    gate: ComplianceGate
    detector: ConflictDetector
    dispatcher: OutboxDispatcher
    engine: ApprovalEngine
    year_end: YearEndProcessor
    accrual: AccrualProcessor


def build_core(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings | None = None,
    *,
    directory: OrganizationDirectory | None = None,
    policies: PolicyStore | None = None,
    units: UnitRegistry | None = None,
    sinks: Sequence[NotificationSink] | None = None,
    lock_policy: LockPolicy | None = None,
) -> LeaveCore:
    """Assemble the core from settings; any collaborator may be supplied instead."""
    settings = settings or get_settings()
    directory = directory if directory is not None else InMemoryOrganizationDirectory()
    policies = policies if policies is not None else InMemoryPolicyStore()
    units = units or UnitRegistry()
    lock_policy = lock_policy or LockPolicy.from_settings(settings)

    ledger = Ledger(session_factory, lock_policy=lock_policy)
    router = WorkflowRouter(units)
    gate = ComplianceGate(ledger, policies, units)
    detector = ConflictDetector(settings.conflict_window_seconds)
    dispatcher = OutboxDispatcher(
        session_factory,
        sinks if sinks is not None else [LoggingNotificationSink()],
        batch_size=settings.outbox_batch_size,
    )
    engine = ApprovalEngine(
        session_factory,
        ledger=ledger,
        router=router,
        gate=gate,
        directory=directory,
        detector=detector,
        dispatcher=dispatcher,
        lock_policy=lock_policy,
        escalation_working_days=settings.escalation_working_days,
    )
    return LeaveCore(
        session_factory=session_factory,
        directory=directory,
        policies=policies,
        units=units,
        ledger=ledger,
        router=router,
        gate=gate,
        detector=detector,
        dispatcher=dispatcher,
        engine=engine,
        year_end=YearEndProcessor(ledger, directory, policies),
        accrual=AccrualProcessor(ledger, directory, policies),
    )


_core: LeaveCore | None = None


def get_core() -> LeaveCore:
    """Return the active core, building the default one on first call."""
    global _core
    if _core is None:
        from leaveflow.db import get_session_factory

        _core = build_core(get_session_factory())
    return _core


def set_core(core: LeaveCore | None) -> None:
    """Replace the active core (e.g. in tests); ``None`` resets to the default."""
    global _core
    _core = core
