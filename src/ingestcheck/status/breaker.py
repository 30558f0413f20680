"""Consecutive-failure breaker for archive status lookups.

Counts status provider failures in a row.  Any coherent response resets the
count; once *max_failures* failures happen back to back the breaker trips
to OPEN and the batch stops querying the provider for the rest of the run.

There is no cooldown or HALF_OPEN probing: a tripped breaker lives for one
reconciliation run, and the scheduler retries the whole job step later.
"""

from __future__ import annotations

import logging
from enum import Enum

from ingestcheck.constants import MAX_CONSECUTIVE_FAILURES

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Breaker states."""

    CLOSED = "closed"
    OPEN = "open"


class ConsecutiveFailureBreaker:
    """Trips after *max_failures* consecutive provider failures.

    Usage::

        breaker = ConsecutiveFailureBreaker(3)
        breaker.record_failure("lookup timed out")
        if breaker.tripped:
            ...
    """

    def __init__(self, max_failures: int = MAX_CONSECUTIVE_FAILURES) -> None:
        if max_failures < 1:
            raise ValueError(f"max_failures must be at least 1, got {max_failures}")
        self._max_failures = max_failures
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0

    # ------------------------------------------------------------------
    # Public recording methods
    # ------------------------------------------------------------------

    def record_success(self) -> None:
        """Record a coherent provider response; resets the failure count."""
        if self._consecutive_failures:
            logger.debug(
                "Status lookup succeeded after %d consecutive failure(s); counter reset",
                self._consecutive_failures,
            )
        self._consecutive_failures = 0

    def record_failure(self, message: str = "") -> CircuitState:
        """Record a provider failure and return the resulting state."""
        self._consecutive_failures += 1

        if self._consecutive_failures >= self._max_failures:
            if self._state == CircuitState.CLOSED:
                self._state = CircuitState.OPEN
                logger.error(
                    "Status lookup failed %d times in a row; breaker OPEN (%s)",
                    self._consecutive_failures,
                    message,
                )
        else:
            logger.warning(
                "Status lookup failure %d of %d: %s",
                self._consecutive_failures,
                self._max_failures,
                message,
            )
        return self._state

    # ------------------------------------------------------------------
    # State properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def tripped(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def max_failures(self) -> int:
        return self._max_failures
