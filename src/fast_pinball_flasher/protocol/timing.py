"""
Time source and deadline-bounded polling.

Every wait in the flasher is a poll loop: read with a short timeout, check
the accumulated text, sleep a fixed interval, stop at a deadline. Keeping the
clock injectable lets tests simulate elapsed time without real waiting.
"""

import time
from dataclasses import dataclass
from typing import Callable


class Clock:
    """Wall-clock time source backed by the ``time`` module."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


SYSTEM_CLOCK = Clock()


@dataclass
class PollResult:
    """Outcome of one deadline-bounded poll."""
    matched: bool
    text: str
    elapsed: float


def poll_for(
    read: Callable[[], str],
    predicate: Callable[[str], bool],
    timeout: float,
    interval: float,
    clock: Clock = SYSTEM_CLOCK,
) -> PollResult:
    """
    Accumulate text from ``read`` until ``predicate`` holds or time runs out.

    Args:
        read: Returns whatever text is available now (may be empty)
        predicate: Checked against all text accumulated so far
        timeout: Deadline in seconds, measured from the first read
        interval: Sleep between reads in seconds
        clock: Time source

    Returns:
        PollResult with the accumulated text. Expiry is not an error; the
        caller decides whether to warn and continue.
    """
    start = clock.monotonic()
    accumulated = ""
    while True:
        chunk = read()
        if chunk:
            accumulated += chunk
            if predicate(accumulated):
                return PollResult(True, accumulated, clock.monotonic() - start)
        elapsed = clock.monotonic() - start
        if elapsed >= timeout:
            return PollResult(False, accumulated, elapsed)
        clock.sleep(interval)
