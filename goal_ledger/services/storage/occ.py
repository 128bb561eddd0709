"""
Bounded retry on version conflicts.

A read-derive-write closure is re-run from scratch when its write loses a
compare-and-swap race. The closure must re-read everything it depends on;
version numbers never survive from one attempt to the next.

Only ConflictError is retried. Anything else (not found, validation,
timeouts) propagates on the first occurrence.
"""

from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
    wait_none,
    wait_random_exponential,
)
from tenacity.wait import wait_base

from goal_ledger.services.storage.interface import ConflictError

R = TypeVar("R")


def conflict_backoff(min_seconds: float, max_seconds: float) -> wait_base:
    """
    Jittered exponential wait so colliding writers spread out.

    Every wait falls within [min_seconds, max_seconds]: a fixed floor plus
    jitter that grows per attempt up to the rest of the window.
    """
    if max_seconds <= 0:
        return wait_none()
    return wait_fixed(min_seconds) + wait_random_exponential(
        multiplier=min_seconds or 0.01,
        max=max_seconds - min_seconds,
    )


async def retry_on_conflict(
    operation: Callable[[], Awaitable[R]],
    *,
    max_attempts: int = 3,
    wait: Optional[wait_base] = None,
    on_conflict: Optional[Callable[[int, ConflictError], None]] = None,
) -> R:
    """
    Run operation, re-running it while it raises ConflictError.

    Args:
        operation: Zero-argument coroutine function doing one full
            read-derive-write pass
        max_attempts: Total attempts, including the first
        wait: tenacity wait strategy between attempts (none by default)
        on_conflict: Called with (attempt_number, error) before each retry

    Returns:
        Whatever the first successful attempt returns

    Raises:
        ConflictError: The last conflict, once max_attempts is exhausted
    """

    def before_sleep(retry_state: RetryCallState) -> None:
        if on_conflict is not None:
            on_conflict(retry_state.attempt_number, retry_state.outcome.exception())

    retrying = AsyncRetrying(
        retry=retry_if_exception_type(ConflictError),
        stop=stop_after_attempt(max_attempts),
        wait=wait or wait_none(),
        before_sleep=before_sleep,
        reraise=True,
    )
    return await retrying(operation)
