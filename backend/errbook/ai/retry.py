from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from errbook.domain.errors import AIServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 6.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt_number: int) -> float:
        """Backoff before the attempt following ``attempt_number``."""
        return min(self.max_delay_seconds, self.base_delay_seconds * attempt_number)


@dataclass
class RetryState:
    max_attempts: int
    attempt_number: int = 1
    last_error: AIServiceError | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempt_number >= self.max_attempts


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy | None = None,
    sleep: Sleep = asyncio.sleep,
    label: str = "ai call",
) -> T:
    """Run ``operation`` until it succeeds or fails with a non-retryable error.

    ``operation`` must raise ``AIServiceError``; only its ``kind`` decides
    whether another attempt is made. The last classified error is re-raised
    unchanged once attempts run out.
    """
    policy = policy or RetryPolicy()
    state = RetryState(max_attempts=policy.max_attempts)

    while True:
        try:
            return await operation()
        except AIServiceError as exc:
            state.last_error = exc
            if not exc.retryable:
                logger.error("%s failed with %s on attempt %d; not retrying", label, exc.kind.value, state.attempt_number)
                raise
            if state.exhausted:
                logger.error("%s failed with %s after %d attempts", label, exc.kind.value, state.attempt_number)
                raise

            delay = policy.delay_for(state.attempt_number)
            logger.warning(
                "%s attempt %d/%d failed with %s; retrying in %.1fs",
                label,
                state.attempt_number,
                state.max_attempts,
                exc.kind.value,
                delay,
            )
            await sleep(delay)
            state.attempt_number += 1
