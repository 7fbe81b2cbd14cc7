"""Bounded, cancellable polling for external state changes."""

import logging
from collections.abc import Callable
from enum import Enum

from branchstack.core.cancellation import CancelToken
from branchstack.core.time.abc import Time

logger = logging.getLogger(__name__)


class PollOutcome(Enum):
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


def poll_until(
    predicate: Callable[[], bool],
    *,
    interval: float,
    timeout: float,
    time: Time,
    cancel: CancelToken | None = None,
) -> PollOutcome:
    """Evaluate predicate every interval seconds until it holds.

    The predicate is checked immediately, then after each sleep. Cancellation
    is checked before every evaluation. The loop stops once timeout seconds
    have elapsed without a match.

    Args:
        predicate: Condition to wait for; must not block
        interval: Seconds between evaluations
        timeout: Maximum total seconds to wait
        time: Clock used for sleeping and measuring elapsed time
        cancel: Optional token that aborts the wait early

    Returns:
        MATCHED, TIMED_OUT or CANCELLED
    """
    deadline = time.monotonic() + timeout
    attempts = 0
    while True:
        if cancel is not None and cancel.is_cancelled:
            logger.debug("Poll cancelled after %d attempts", attempts)
            return PollOutcome.CANCELLED

        attempts += 1
        if predicate():
            logger.debug("Poll matched after %d attempts", attempts)
            return PollOutcome.MATCHED

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.debug("Poll timed out after %d attempts", attempts)
            return PollOutcome.TIMED_OUT

        time.sleep(min(interval, remaining))
