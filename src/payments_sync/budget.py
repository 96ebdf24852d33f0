"""Wall-clock budget for a single fetch call."""

import logging
import threading
import time
from datetime import timedelta
from typing import Callable, Optional

from .errors import FetchCancelledError

logger = logging.getLogger(__name__)


class TimeBudgetGuard:
    """Deadline plus cancellation check for long-running scan loops.

    The deadline is the caller's execution ceiling minus a safety margin,
    measured from construction. ``check()`` is called once per loop
    iteration, before any work that would have to be persisted.

    Example:
        guard = TimeBudgetGuard(timedelta(minutes=10), timedelta(seconds=30))
        while guard.check():
            ...  # one page of work
    """

    def __init__(
        self,
        ceiling: timedelta,
        margin: timedelta = timedelta(0),
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        budget = (ceiling - margin).total_seconds()
        if budget <= 0:
            raise ValueError("Time budget must be positive: ceiling must exceed margin")
        self._clock = clock
        self._cancel_event = cancel_event
        self.deadline = clock() + budget

    @property
    def remaining(self) -> float:
        """Seconds left before the deadline, never negative."""
        return max(0.0, self.deadline - self._clock())

    @property
    def cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    def expired(self) -> bool:
        return self._clock() >= self.deadline

    def check(self) -> bool:
        """Return True while there is budget left for another iteration.

        Raises:
            FetchCancelledError: If the caller cancelled the call.
        """
        if self.cancelled:
            raise FetchCancelledError("Fetch cancelled by caller")
        if self.expired():
            logger.warning("Time budget exhausted, yielding back to caller")
            return False
        return True
