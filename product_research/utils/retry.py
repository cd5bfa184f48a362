"""
Retry policy for outbound calls.

Wraps tenacity so every client shares the same backoff rules: a fixed attempt
budget, exponential delays (base, base*2, base*4 ...) and retries only on
:class:`~product_research.utils.errors.TransientError`.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from product_research.utils.errors import TransientError
from product_research.utils.logger import get_logger

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff shape."""

    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 60.0

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.http_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
        )

    def delays(self) -> list[float]:
        """Delays slept between attempts (one fewer than the attempt budget)."""
        return [
            min(self.base_delay * (2 ** n), self.max_delay)
            for n in range(self.max_attempts - 1)
        ]


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        "Transient failure, backing off",
        attempt=retry_state.attempt_number,
        wait_seconds=round(wait, 2),
        error=str(exc),
    )


def build_retrying(
    policy: RetryPolicy,
    sleep: Optional[SleepFunc] = None,
) -> AsyncRetrying:
    """
    Create a tenacity ``AsyncRetrying`` for ``policy``.

    Args:
        policy: Attempt budget and backoff shape.
        sleep: Awaitable sleep used between attempts (injectable for tests).

    Returns:
        Configured retrying controller. Exhaustion raises ``tenacity.RetryError``.
    """
    return AsyncRetrying(
        sleep=sleep or asyncio.sleep,
        retry=retry_if_exception_type(TransientError),
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(
            multiplier=policy.base_delay,
            min=0,
            max=policy.max_delay,
        ),
        before_sleep=_log_retry,
        reraise=False,
    )
