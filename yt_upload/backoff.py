"""
Backoff Scheduler
=================

Retry timing for the resumable upload client.

Features:
- Initial retry delay of 1 second
- Doubles (+ random jitter) after every transient failure
- Capped at one minute
- Waits are interruptible through a shared CancelToken
"""

import logging
import random
import threading
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

MIN_INTERVAL_MS = 1000  # Start at one second
MAX_INTERVAL_MS = 60 * 1000  # Don't wait longer than a minute
JITTER_MS = 1000

T = TypeVar("T")


class CancelToken:
    """Shared cancellation flag checked before every network action and timer."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep for `seconds` or until cancelled. Returns True if cancelled."""
        return self._event.wait(timeout=max(seconds, 0))


@dataclass
class BackoffState:
    """Current retry delay, always within [min_interval_ms, max_interval_ms]."""
    current_interval_ms: int = MIN_INTERVAL_MS
    min_interval_ms: int = MIN_INTERVAL_MS
    max_interval_ms: int = MAX_INTERVAL_MS


class BackoffScheduler:
    """
    Run an action after the current backoff delay.

    The scheduler never retries on its own: the caller invokes `schedule`
    again after each further failure, and `reset` after each success.

    Usage:
        scheduler = BackoffScheduler()
        response = scheduler.schedule(probe)
    """

    def __init__(
        self,
        state: Optional[BackoffState] = None,
        cancel_token: Optional[CancelToken] = None,
        wait: Optional[Callable[[float], bool]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.state = state or BackoffState()
        self.cancel_token = cancel_token or CancelToken()
        # wait(seconds) -> True when cancelled
        self._wait = wait or self.cancel_token.wait
        self._rng = rng or random.Random()

    def schedule(self, action: Callable[[], T]) -> Optional[T]:
        """
        Wait the current interval, then invoke `action` and return its result.

        The interval is advanced before the action runs, so an action that
        calls `reset()` leaves the scheduler at the minimum.

        Returns:
            The action's result, or None if cancelled before it could run
        """
        delay_ms = self.state.current_interval_ms
        self.state.current_interval_ms = self._next_interval()
        logger.debug(f"Retrying in {delay_ms} ms (next interval {self.state.current_interval_ms} ms)")

        if self.cancel_token.cancelled or self._wait(delay_ms / 1000.0):
            logger.debug("Scheduled retry cancelled")
            return None
        if self.cancel_token.cancelled:
            return None
        return action()

    def reset(self) -> None:
        """Reset the delay (e.g. after a successful request)."""
        self.state.current_interval_ms = self.state.min_interval_ms

    def _next_interval(self) -> int:
        interval = self.state.current_interval_ms * 2 + self._rng.randrange(0, JITTER_MS)
        return max(self.state.min_interval_ms, min(interval, self.state.max_interval_ms))
