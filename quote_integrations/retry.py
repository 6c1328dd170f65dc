"""Bounded retry with exponential backoff.

Each failed attempt is classified as transient or fatal. Transient failures
sleep ``min(base * 2 ** (attempt - 1), cap)`` before the next attempt; fatal
ones end the call straight away. There is no sleep after the final attempt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from .clock import Clock
from .errors import ErrorClass, IntegrationError, classify
from .models.result import AttemptOutcome, RequestAttempt

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 10.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_s < 0 or self.max_delay_s < 0:
            raise ValueError("backoff delays must not be negative")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        return min(self.base_delay_s * (2 ** (attempt - 1)), self.max_delay_s)


class RetriesExhausted(IntegrationError):
    """Every attempt failed with a transient error."""

    def __init__(self, label: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"{label}: all {attempts} attempts failed (last error: {last_error})"
        )
        self.attempts = attempts
        self.last_error = last_error


async def _attempt(
    operation: Callable[[], Awaitable[T]],
    attempt: int,
    policy: RetryPolicy,
) -> RequestAttempt[T]:
    try:
        value = await operation()
    except Exception as exc:
        if classify(exc) is ErrorClass.FATAL:
            return RequestAttempt(attempt, AttemptOutcome.FATAL, error=exc)
        return RequestAttempt(
            attempt,
            AttemptOutcome.RETRY,
            delay_s=policy.delay_for(attempt),
            error=exc,
        )
    return RequestAttempt(attempt, AttemptOutcome.SUCCESS, value=value)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    clock: Clock,
    label: str = "request",
) -> T:
    """Run ``operation`` until it succeeds, fails fatally or runs out of tries.

    Raises:
        The original exception for fatal failures.
        RetriesExhausted: If every attempt failed transiently.
    """
    last: RequestAttempt[T] | None = None
    for attempt in range(1, policy.max_attempts + 1):
        last = await _attempt(operation, attempt, policy)
        if last.outcome is AttemptOutcome.SUCCESS:
            if attempt > 1:
                logger.info("%s succeeded on attempt %d", label, attempt)
            return last.value  # type: ignore[return-value]
        if last.outcome is AttemptOutcome.FATAL:
            logger.warning(
                "%s failed (attempt %d/%d), not retrying: %s",
                label,
                attempt,
                policy.max_attempts,
                last.error,
            )
            raise last.error  # type: ignore[misc]
        logger.warning(
            "%s failed (attempt %d/%d): %s",
            label,
            attempt,
            policy.max_attempts,
            last.error,
        )
        if attempt < policy.max_attempts:
            logger.info("%s retrying in %.2fs", label, last.delay_s)
            await clock.sleep(last.delay_s)

    assert last is not None and last.error is not None
    raise RetriesExhausted(label, policy.max_attempts, last.error) from last.error


__all__ = ["RetryPolicy", "RetriesExhausted", "call_with_retry"]
