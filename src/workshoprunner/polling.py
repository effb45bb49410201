"""
Bounded polling for slow external state.

Cloud resources take minutes to appear or disappear. Step actions wait on
them with ``wait_until``, which gives up after a fixed time budget instead of
blocking forever.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

__all__ = ["WaitTimeoutError", "wait_until"]

T = TypeVar("T")


class WaitTimeoutError(Exception):
    """Raised when a bounded wait runs out of time."""

    def __init__(self, description: str, timeout: float, attempts: int):
        self.description = description
        self.timeout = timeout
        self.attempts = attempts
        super().__init__(
            f"Timed out after {timeout:g}s waiting for {description} ({attempts} attempts)"
        )


def wait_until(
    predicate: Callable[[], Optional[T]],
    timeout: float,
    interval: float = 5.0,
    description: str = "condition",
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """
    Call ``predicate`` until it returns a truthy value.

    The predicate is always called at least once. Sleeps never overshoot the
    deadline.

    Args:
        predicate: Zero-argument callable; a truthy return ends the wait
        timeout: Total time budget in seconds
        interval: Delay between attempts
        description: Used in log and error messages
        sleep: Sleep function (injectable for tests)
        clock: Monotonic clock (injectable for tests)

    Returns:
        The predicate's truthy value

    Raises:
        WaitTimeoutError: if the budget elapses first
    """
    if timeout <= 0:
        raise ValueError("timeout must be positive")

    deadline = clock() + timeout
    attempts = 0
    logger.info("Waiting for %s (timeout %gs)...", description, timeout)

    while True:
        attempts += 1
        value = predicate()
        if value:
            logger.debug("%s ready after %d attempt(s)", description, attempts)
            return value

        remaining = deadline - clock()
        if remaining <= 0:
            raise WaitTimeoutError(description, timeout, attempts)
        sleep(min(interval, remaining))
