"""
Consecutive-fault circuit breaker shared by every cycle an orchestrator drives.

The breaker has two states. It is CLOSED while the consecutive fault counter is
below the threshold and OPEN once the counter reaches it. Successes reset the
counter only while CLOSED; the only way out of OPEN is ``reset()``. There is no
timed half-open probe.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..observability.logging import get_logger
from ..observability.metrics import counter

logger = get_logger(__name__)


class HealthStatus(Enum):
    """Operator-facing health derived from the breaker counter."""

    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class HealthReport:
    """Point-in-time view of the breaker."""

    consecutive_errors: int
    max_consecutive_errors: int
    execution_breaker_open: bool
    status: HealthStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "consecutive_errors": self.consecutive_errors,
            "max_consecutive_errors": self.max_consecutive_errors,
            "execution_breaker_open": self.execution_breaker_open,
            "status": self.status.value,
        }


@dataclass
class CircuitBreaker:
    """Counts consecutive stage faults; opens at ``threshold``."""

    threshold: int = 5
    failures: int = field(default=0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self):
        if self.threshold <= 0:
            raise ValueError("threshold must be positive")

    @property
    def is_open(self) -> bool:
        return self.failures >= self.threshold

    def success(self) -> bool:
        """Record a stage success. Returns True if the counter was reset."""
        with self._lock:
            if self.failures == 0 or self.failures >= self.threshold:
                return False
            self.failures = 0
        logger.info("Consecutive fault counter reset after success")
        return True

    def failure(self) -> int:
        """Record a stage fault and return the new consecutive count."""
        with self._lock:
            self.failures += 1
            count = self.failures
        counter("circuit_breaker_failures_total").add(1)

        if count == self.threshold:
            counter("circuit_breaker_opened_total").add(1)
            logger.error(
                f"Circuit breaker opened after {count} consecutive faults",
                consecutive_errors=count,
            )
        return count

    def reset(self) -> None:
        """Close the breaker. This is the only transition out of OPEN."""
        with self._lock:
            previous = self.failures
            self.failures = 0
        logger.info("Circuit breaker reset", previous_errors=previous)

    def health(self) -> HealthReport:
        """Derive the health report. Has no side effects."""
        count = self.failures
        if count == 0:
            status = HealthStatus.HEALTHY
        elif count < self.threshold:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.CRITICAL

        return HealthReport(
            consecutive_errors=count,
            max_consecutive_errors=self.threshold,
            execution_breaker_open=count >= self.threshold,
            status=status,
        )
