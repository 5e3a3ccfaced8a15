"""Bounded poll-with-backoff used instead of fixed sleeps."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


class Clock(Protocol):
    """Time source that the poller sleeps against."""

    def monotonic(self) -> float:
        ...

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool:
        """Sleep, returning True if woken early by ``cancel``."""
        ...


class SystemClock:
    """Real wall clock. Sleeps are interruptible through an Event."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool:
        if cancel is None:
            time.sleep(seconds)
            return False
        return cancel.wait(seconds)


@dataclass(frozen=True)
class Backoff:
    """Poll schedule: ``max_attempts`` checks, delay grows by ``factor``.

    Attributes:
        max_attempts: Number of condition checks.
        interval: Delay before the second check.
        factor: Multiplier applied to the delay after each check.
        max_interval: Upper bound on a single delay.
    """

    max_attempts: int = 5
    interval: float = 1.0
    factor: float = 1.5
    max_interval: float = 10.0

    def delays(self) -> list[float]:
        """Delays between consecutive checks."""
        result = []
        delay = self.interval
        for _ in range(self.max_attempts - 1):
            result.append(min(delay, self.max_interval))
            delay *= self.factor
        return result


class PollCancelledError(Exception):
    """The poll was cancelled before the condition held."""

    pass


def poll_until(
    condition: Callable[[], bool],
    backoff: Backoff,
    clock: Clock | None = None,
    cancel: threading.Event | None = None,
) -> bool:
    """Check ``condition`` until it holds or the attempts run out.

    The first check happens immediately.

    Args:
        condition: Callable returning True when done. Exceptions propagate.
        backoff: Poll schedule.
        clock: Time source (SystemClock by default).
        cancel: Event that aborts the wait when set.

    Returns:
        True if the condition held, False if attempts were exhausted.

    Raises:
        PollCancelledError: If ``cancel`` was set during a wait.
    """
    clock = clock or SystemClock()
    if condition():
        return True

    for delay in backoff.delays():
        if clock.sleep(delay, cancel):
            raise PollCancelledError("poll cancelled")
        if condition():
            return True

    return False
