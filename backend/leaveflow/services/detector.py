from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from leaveflow.models.request import ApprovalStep


@dataclass(frozen=True)
class ConflictFlag:
    """Two step mutations on one chain that happened implausibly close together."""

    request_id: uuid.UUID
    first_level: int
    second_level: int
    interval_seconds: float


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored in UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class ConflictDetector:
    """Flags chains whose steps were acted on within ``window_seconds`` of each other.

    Read-only. The engine logs the flags for manual audit; nothing is blocked.
    """

    def __init__(self, window_seconds: float = 5.0) -> None:
        self.window_seconds = window_seconds

    def inspect(self, request_id: uuid.UUID, steps: Sequence[ApprovalStep]) -> list[ConflictFlag]:
        mutations: list[tuple[datetime, int]] = []
        for step in steps:
            if step.decided_at is not None:
                mutations.append((_aware(step.decided_at), step.level))
            if step.delegated_at is not None:
                mutations.append((_aware(step.delegated_at), step.level))
        mutations.sort()

        flags = []
        for (earlier, first_level), (later, second_level) in zip(mutations, mutations[1:], strict=False):
            if first_level == second_level:
                continue
            interval = (later - earlier).total_seconds()
            if interval < self.window_seconds:
                flags.append(
                    ConflictFlag(
                        request_id=request_id,
                        first_level=first_level,
                        second_level=second_level,
                        interval_seconds=interval,
                    )
                )
        return flags
