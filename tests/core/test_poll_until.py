"""Tests for poll_until."""

from branchstack.core.cancellation import CancelToken
from branchstack.core.polling import PollOutcome, poll_until
from tests.fakes.time import FakeTime


def test_matches_immediately_without_sleeping() -> None:
    time = FakeTime()

    outcome = poll_until(lambda: True, interval=5.0, timeout=30.0, time=time)

    assert outcome == PollOutcome.MATCHED
    assert time.sleep_calls == []


def test_matches_after_state_changes() -> None:
    state = {"ready": False}

    def on_sleep(count: int) -> None:
        if count == 2:
            state["ready"] = True

    time = FakeTime(on_sleep=on_sleep)

    outcome = poll_until(lambda: state["ready"], interval=5.0, timeout=30.0, time=time)

    assert outcome == PollOutcome.MATCHED
    assert time.sleep_calls == [5.0, 5.0]


def test_times_out_with_final_partial_sleep() -> None:
    time = FakeTime()

    outcome = poll_until(lambda: False, interval=4.0, timeout=10.0, time=time)

    assert outcome == PollOutcome.TIMED_OUT
    assert time.sleep_calls == [4.0, 4.0, 2.0]


def test_cancelled_before_first_check() -> None:
    cancel = CancelToken()
    cancel.cancel()
    calls: list[int] = []

    outcome = poll_until(
        lambda: calls.append(1) is None, interval=1.0, timeout=5.0, time=FakeTime(), cancel=cancel
    )

    assert outcome == PollOutcome.CANCELLED
    assert calls == []


def test_cancelled_while_waiting() -> None:
    cancel = CancelToken()
    time = FakeTime(on_sleep=lambda count: cancel.cancel())

    outcome = poll_until(lambda: False, interval=1.0, timeout=60.0, time=time, cancel=cancel)

    assert outcome == PollOutcome.CANCELLED
    assert time.sleep_calls == [1.0]
