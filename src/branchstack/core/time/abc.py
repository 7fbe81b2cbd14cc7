"""Time operations abstraction for testing.

Covers sleeping, wall-clock timestamps and a monotonic clock so polling loops
and log timestamps can be driven deterministically in tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime


class Time(ABC):
    """Abstract time operations for dependency injection."""

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Sleep for specified number of seconds.

        Args:
            seconds: Number of seconds to sleep
        """
        ...

    @abstractmethod
    def now(self) -> datetime:
        """Current wall-clock time (timezone-aware, UTC)."""
        ...

    @abstractmethod
    def monotonic(self) -> float:
        """Seconds from an arbitrary fixed point, never going backwards."""
        ...
