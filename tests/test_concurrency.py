"""
Tests for concurrency.py - deadline race and cancellation.
"""

import threading
import time

import pytest

from zkfuzz.concurrency import (CancellationToken, DeadlineExpired, ExecutionCancelled,
                                _ResultSlot, run_with_deadline)


class TestCancellationToken:
    def test_initially_not_cancelled(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled
        with pytest.raises(ExecutionCancelled):
            token.raise_if_cancelled()


class TestRunWithDeadline:
    def test_returns_value(self):
        assert run_with_deadline(lambda token: 42, 1.0) == 42

    def test_reraises_worker_error(self):
        def boom(token):
            raise ZeroDivisionError("nope")

        with pytest.raises(ZeroDivisionError):
            run_with_deadline(boom, 1.0)

    def test_deadline_expires(self):
        seen = {}

        def spin(token):
            seen["token"] = token
            while not token.cancelled:
                time.sleep(0.005)
            return "late"

        start = time.monotonic()
        with pytest.raises(DeadlineExpired) as exc:
            run_with_deadline(spin, 0.1)
        assert time.monotonic() - start < 2.0
        assert exc.value.timeout_s == 0.1
        assert seen["token"].cancelled

    def test_worker_is_daemon(self):
        names = []

        def record(token):
            names.append(threading.current_thread().daemon)
            return None

        run_with_deadline(record, 1.0, name="probe")
        assert names == [True]


class TestResultSlot:
    def test_deliver_then_wait(self):
        slot = _ResultSlot()
        assert slot.deliver(value=5)
        assert slot.wait(0.1) == (True, 5, None)

    def test_late_result_discarded(self):
        slot = _ResultSlot()
        finished, value, error = slot.wait(0.01)
        assert not finished
        assert not slot.deliver(value="late")
        assert slot.discarded

    def test_second_delivery_ignored(self):
        slot = _ResultSlot()
        slot.deliver(value=1)
        assert not slot.deliver(value=2)
        assert slot.wait(0.1)[1] == 1
