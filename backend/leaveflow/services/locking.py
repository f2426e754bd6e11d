"""Optimistic-lock-with-retry combinator.

A write is attempted against a snapshot taken by ``read``. When the
conditional write finds the version has moved on it raises
``StaleVersionError``; the combinator re-reads and tries again with
exponential backoff until ``max_retries`` is exhausted, then surfaces a
retryable ``ConflictError``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from leaveflow.exceptions import ConflictError, StaleVersionError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from leaveflow.config import Settings

logger = logging.getLogger(__name__)

S = TypeVar("S")
T = TypeVar("T")


@dataclass(frozen=True)
class ExponentialBackoff:
    """Delay in seconds before retry ``n`` (1-based): base * factor**(n-1), capped."""

    base: float = 0.1
    factor: float = 2.0
    cap: float = 0.4

    def delay(self, retry: int) -> float:
        return min(self.base * self.factor ** (retry - 1), self.cap)


async def _no_sleep(_seconds: float) -> None:
    return None


@dataclass(frozen=True)
class LockPolicy:
    """Retry ceiling, backoff strategy and the sleep used between attempts."""

    max_retries: int = 3
    backoff: ExponentialBackoff = field(default_factory=ExponentialBackoff)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> LockPolicy:
        return cls(
            max_retries=settings.lock_max_retries,
            backoff=ExponentialBackoff(
                base=settings.lock_backoff_base_ms / 1000,
                cap=settings.lock_backoff_cap_ms / 1000,
            ),
            sleep=sleep,
        )

    @classmethod
    def immediate(cls, max_retries: int = 3) -> LockPolicy:
        """Policy that retries without waiting. Used by tests."""
        return cls(max_retries=max_retries, sleep=_no_sleep)

    def total_wait(self) -> float:
        """Upper bound of time spent sleeping before giving up."""
        return sum(self.backoff.delay(n) for n in range(1, self.max_retries + 1))


async def with_optimistic_lock(
    read: Callable[[], Awaitable[S]],
    attempt_write: Callable[[S], Awaitable[T]],
    *,
    policy: LockPolicy,
    operation: str = "write",
) -> T:
    """Run ``attempt_write(read())`` until it stops losing version races.

    Only ``StaleVersionError`` triggers a retry. Domain errors raised by
    ``read`` or ``attempt_write`` propagate on the attempt they occur.
    """
    attempts = policy.max_retries + 1
    for attempt in range(1, attempts + 1):
        snapshot = await read()
        try:
            return await attempt_write(snapshot)
        except StaleVersionError:
            if attempt == attempts:
                break
            delay = policy.backoff.delay(attempt)
            logger.debug("%s lost a version race (attempt %d/%d), retrying in %.3fs", operation, attempt, attempts, delay)
            await policy.sleep(delay)

    logger.warning("%s gave up after %d attempts", operation, attempts)
    raise ConflictError(f"Concurrent modification detected during {operation}; please retry")
