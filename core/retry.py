"""
Retry policy for code registration.

Only the registration call is retried. Printer delivery is a single
attempt (resubmitting to a jammed printer without a person looking at it
is not safe), so nothing else in the package uses this module.

Backoff:
    attempt 1 -> call
    attempt 2 -> wait base * 2^0, call
    attempt 3 -> wait base * 2^1, call
    ...
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .exceptions import RegistrationError


T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff."""

    max_attempts: int = 3
    base_delay: float = 1.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    def delay_before(self, attempt: int) -> float:
        """Delay after failed attempt ``attempt`` (1-based): base * 2^(attempt-1)."""
        return self.base_delay * (2 ** (attempt - 1))


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: SleepFunc = asyncio.sleep,
    logger: Optional[logging.Logger] = None,
) -> T:
    """
    Run ``operation`` under ``policy``.

    Only RegistrationError is caught. Errors whose kind is not retryable
    are re-raised at once; otherwise the last error is re-raised when the
    attempt budget runs out.

    Args:
        operation: Zero-argument coroutine factory (called once per attempt)
        policy: Attempt budget and backoff
        sleep: Awaitable sleep (injected by tests to observe delays)
        logger: Logger for retry notices

    Returns:
        The first successful result
    """
    log = logger or logging.getLogger(__name__)
    last_error: Optional[RegistrationError] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except RegistrationError as e:
            last_error = e

            if not e.kind.retryable:
                log.warning(f"Registration failed ({e.kind.value}), not retrying: {e.detail}")
                raise

            if attempt < policy.max_attempts:
                delay = policy.delay_before(attempt)
                log.info(
                    f"Registration attempt {attempt}/{policy.max_attempts} failed "
                    f"({e.kind.value}); retrying in {delay:.1f}s"
                )
                await sleep(delay)

    log.error(f"Registration failed after {policy.max_attempts} attempts: {last_error}")
    raise last_error
