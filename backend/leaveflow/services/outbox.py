"""Transactional outbox and notification sinks.

Workflow transitions append an ``OutboxEvent`` in the same transaction as
the state change. ``OutboxDispatcher`` delivers committed events to the
configured sinks afterwards; a sink failure is logged and the event stays
pending for the next run, so notification problems never surface as
transition failures.
"""

from __future__ import annotations

import enum
import logging
import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sqlalchemy import func, select, update
from sqlmodel import col

from leaveflow.models.base import now_utc
from leaveflow.models.outbox import OutboxEvent

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from sqlmodel import SQLModel

    from leaveflow.models.enums import OutboxEventType
    from leaveflow.models.request import LeaveRequest

logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


def model_to_event_dict(model: SQLModel) -> dict[str, Any]:
    """Serialize a SQLModel instance to a JSON-safe dict for an event payload."""
    return {key: _json_safe(value) for key, value in model.model_dump().items()}


def write_outbox_event(
    session: AsyncSession,
    *,
    event_type: OutboxEventType,
    request: LeaveRequest,
    actor_id: str | None,
    extra: dict[str, Any] | None = None,
) -> OutboxEvent:
    """Append an event within the caller's transaction.

    ``extra`` overrides payload fields, so a transition can report the
    post-write state of a request loaded before the write.
    """
    payload = model_to_event_dict(request)
    if extra:
        payload.update({key: _json_safe(value) for key, value in extra.items()})
    event = OutboxEvent(
        event_type=event_type.value,
        request_id=request.id,
        staff_id=request.staff_id,
        actor_id=actor_id,
        payload=payload,
    )
    session.add(event)
    return event


async def count_pending(session: AsyncSession) -> int:
    """Number of committed events not yet delivered to every sink."""
    result = await session.execute(
        select(func.count()).select_from(OutboxEvent).where(col(OutboxEvent.dispatched_at).is_(None))
    )
    return int(result.scalar_one())


@runtime_checkable
class NotificationSink(Protocol):
    """Interface for notification and audit consumers."""

    async def send(self, event: OutboxEvent) -> None:
        """Deliver one event. Raising leaves the event pending."""
        ...


class InMemoryNotificationSink:
    """Collects delivered events. Used in development and tests."""

    def __init__(self) -> None:
        self.events: list[OutboxEvent] = []

    async def send(self, event: OutboxEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.event_type for event in self.events]


class LoggingNotificationSink:
    """Writes each event to the application log."""

    async def send(self, event: OutboxEvent) -> None:
        logger.info(
            "Leave event %s request=%s staff=%s actor=%s",
            event.event_type,
            event.request_id,
            event.staff_id,
            event.actor_id,
        )


class OutboxDispatcher:
    """Delivers committed, undispatched events to every sink.

    Pending events are read in one short transaction and delivered with no
    session open; each outcome is then recorded in its own short
    transaction, so sink I/O never holds a database lock.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sinks: Sequence[NotificationSink],
        *,
        batch_size: int = 100,
    ) -> None:
        self._session_factory = session_factory
        self._sinks = list(sinks)
        self._batch_size = batch_size

    async def dispatch_pending(self, *, request_id: uuid.UUID | None = None) -> int:
        """Deliver pending events oldest first, optionally for one request only.

        Returns how many were dispatched.
        """
        query = select(OutboxEvent).where(col(OutboxEvent.dispatched_at).is_(None))
        if request_id is not None:
            query = query.where(col(OutboxEvent.request_id) == request_id)
        query = query.order_by(col(OutboxEvent.created_at)).limit(self._batch_size)

        async with self._session_factory() as session:
            events = list((await session.execute(query)).scalars().all())

        dispatched = 0
        for event in events:
            event.attempts += 1
            try:
                for sink in self._sinks:
                    await sink.send(event)
            except Exception:
                logger.exception(
                    "Outbox delivery failed for event=%s type=%s (attempt %d)",
                    event.id,
                    event.event_type,
                    event.attempts,
                )
                await self._record_attempt(event, delivered=False)
                continue
            await self._record_attempt(event, delivered=True)
            dispatched += 1
        return dispatched

    async def drain(self) -> int:
        """Dispatch batches until a pass delivers nothing. Returns the total."""
        total = 0
        while True:
            dispatched = await self.dispatch_pending()
            if dispatched == 0:
                return total
            total += dispatched

    async def pending_count(self) -> int:
        async with self._session_factory() as session:
            return await count_pending(session)

    async def _record_attempt(self, event: OutboxEvent, *, delivered: bool) -> None:
        values: dict[str, Any] = {"attempts": event.attempts}
        if delivered:
            event.dispatched_at = now_utc()
            values["dispatched_at"] = event.dispatched_at
        async with self._session_factory() as session:
            await session.execute(
                update(OutboxEvent)
                .where(col(OutboxEvent.id) == event.id, col(OutboxEvent.dispatched_at).is_(None))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
