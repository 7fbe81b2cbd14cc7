"""Fake Time implementation for testing.

FakeTime tracks sleep() calls without actually sleeping. Its clocks advance
by exactly the slept amount, so polling deadlines are deterministic.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from branchstack.core.time.abc import Time

DEFAULT_START = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)


class FakeTime(Time):
    """Fake implementation that tracks calls without sleeping.

    This class has NO public setup methods. All state is provided via constructor
    or captured during execution.
    """

    def __init__(
        self,
        start: datetime = DEFAULT_START,
        on_sleep: Callable[[int], None] | None = None,
    ) -> None:
        """Create FakeTime.

        Args:
            start: Wall-clock time reported before any sleep
            on_sleep: Called with the 1-based sleep count after each sleep,
                letting tests change external state while "time passes"
        """
        self._start = start
        self._elapsed = 0.0
        self._on_sleep = on_sleep
        self._sleep_calls: list[float] = []

    @property
    def sleep_calls(self) -> list[float]:
        """Read-only access to tracked sleep calls for test assertions."""
        return self._sleep_calls

    def sleep(self, seconds: float) -> None:
        self._sleep_calls.append(seconds)
        self._elapsed += seconds
        if self._on_sleep is not None:
            self._on_sleep(len(self._sleep_calls))

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def monotonic(self) -> float:
        return self._elapsed
