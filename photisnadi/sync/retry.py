"""Retry executor for remote operations.

Wraps an async operation with a per-attempt timeout, bounded retry and
exponential backoff with jitter.  Failures are not raised: the caller gets a
``RetryResult`` that either holds the value or a classified ``SyncError``.

Delay schedule (defaults)::

    attempt 1 fails -> wait 1.0s
    attempt 2 fails -> wait min(1.0 * 2.0 + 0.1 * 1, 10.0) = 2.1s
    attempt 3 fails -> SyncError

Usage::

    result = await execute_with_retry(
        lambda: remote.fetch_rows("tasks", user_id),
        "Fetch remote tasks",
    )
    if not result.ok:
        logger.error("Fetch failed: %s", result.error)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger("photisnadi.sync.retry")

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry/backoff parameters.

    Attributes:
        max_attempts:       Total attempts, including the first one.
        timeout:            Per-attempt timeout in seconds.
        initial_delay:      Wait after the first failed attempt, in seconds.
        max_delay:          Upper bound for any wait, in seconds.
        backoff_multiplier: Factor applied to the previous wait.
        jitter_step:        Seconds added per attempt number on each recompute.
    """

    max_attempts: int = 3
    timeout: float = 30.0
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    jitter_step: float = 0.1

    def next_delay(self, delay: float, attempt: int) -> float:
        """Return the wait that follows ``delay`` after failed attempt ``attempt``."""
        return min(delay * self.backoff_multiplier + self.jitter_step * attempt, self.max_delay)


class SyncError(Exception):
    """Classified synchronization failure raised or returned after retries run out.

    Attributes:
        operation: Human-readable operation name (e.g. "Fetch remote tasks").
        attempts:  Number of attempts made.
        timed_out: True if the final attempt hit the per-attempt timeout.
        cause:     The exception raised by the final attempt.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        attempts: int = 0,
        timed_out: bool = False,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.attempts = attempts
        self.timed_out = timed_out
        self.cause = cause
        self.__cause__ = cause


@dataclass
class RetryResult(Generic[T]):
    """Outcome of ``execute_with_retry``: a value or a ``SyncError``."""

    operation: str
    attempts: int
    value: T | None = None
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, or raise the classified failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
    policy: RetryPolicy | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
) -> RetryResult[T]:
    """Run ``operation`` until it succeeds or the attempts run out.

    Args:
        operation:      Zero-argument callable returning a fresh awaitable per attempt.
        operation_name: Name used in log entries and in the failure.
        policy:         Retry parameters (defaults to ``RetryPolicy()``).
        sleep:          Backoff sleep; injectable for tests.

    Returns:
        RetryResult with ``value`` on the first success, or ``error`` set to a
        ``SyncError`` carrying the last cause.
    """
    p = policy or RetryPolicy()
    delay = p.initial_delay
    attempt = 0

    while True:
        attempt += 1
        logger.debug("Attempting %s (attempt %d/%d)", operation_name, attempt, p.max_attempts)
        try:
            value = await asyncio.wait_for(operation(), timeout=p.timeout)
            return RetryResult(operation=operation_name, attempts=attempt, value=value)
        except asyncio.TimeoutError as exc:
            logger.warning("%s timed out on attempt %d", operation_name, attempt)
            if attempt >= p.max_attempts:
                return _exhausted(operation_name, attempt, exc, timed_out=True)
        except Exception as exc:
            logger.warning("%s failed on attempt %d: %s", operation_name, attempt, exc)
            if attempt >= p.max_attempts:
                return _exhausted(operation_name, attempt, exc, timed_out=False)

        await sleep(delay)
        delay = p.next_delay(delay, attempt)


def _exhausted(
    operation_name: str, attempts: int, cause: BaseException, *, timed_out: bool
) -> RetryResult:
    verb = "timed out" if timed_out else "failed"
    error = SyncError(
        f"Operation {verb} after {attempts} attempts: {operation_name}",
        operation=operation_name,
        attempts=attempts,
        timed_out=timed_out,
        cause=cause,
    )
    logger.error("%s", error)
    return RetryResult(operation=operation_name, attempts=attempts, error=error)
