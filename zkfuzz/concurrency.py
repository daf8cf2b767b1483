"""
Deadline race for in-process execution.

The work runs in a daemon worker thread; the caller waits on a completion
event with a timeout. Once the deadline fires the slot is sealed, so a worker
that finishes late can never hand its result back.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional, Tuple

logger = logging.getLogger("zkfuzz.concurrency")


class ExecutionCancelled(Exception):
    """Raised inside a worker that noticed its token was cancelled."""
    pass


class CancellationToken:
    """Cooperative cancellation flag handed to program code."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise ExecutionCancelled("execution cancelled")


class DeadlineExpired(Exception):
    """The worker did not finish before the deadline."""

    def __init__(self, timeout_s: float):
        self.timeout_s = timeout_s
        super().__init__(f"deadline of {timeout_s:.3f}s expired")


class _ResultSlot:
    """One-shot hand-off between a worker and the caller waiting on it."""

    def __init__(self):
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._sealed = False
        self._value = None
        self._error: Optional[BaseException] = None
        self.discarded = False

    def deliver(self, value=None, error: Optional[BaseException] = None) -> bool:
        with self._lock:
            if self._sealed:
                self.discarded = True
                return False
            self._value = value
            self._error = error
            self._sealed = True
        self._done.set()
        return True

    def wait(self, timeout_s: float) -> Tuple[bool, Any, Optional[BaseException]]:
        finished = self._done.wait(timeout_s)
        with self._lock:
            if not finished and not self._sealed:
                # Deadline won the race; anything delivered from now on is stale.
                self._sealed = True
                return False, None, None
            return True, self._value, self._error


def run_with_deadline(func: Callable[[CancellationToken], Any], timeout_s: float,
                      name: str = "zkfuzz-worker") -> Any:
    """
    Run func(token) in a worker thread and wait at most timeout_s for it.

    Returns:
        Whatever func returned

    Raises:
        DeadlineExpired: the deadline elapsed first (token is cancelled and the
            worker abandoned)
        Exception: whatever func raised, re-raised in the caller
    """
    token = CancellationToken()
    slot = _ResultSlot()

    def _worker():
        try:
            value = func(token)
        except BaseException as e:
            delivered = slot.deliver(error=e)
        else:
            delivered = slot.deliver(value=value)
        if not delivered:
            logger.debug(f"{name}: late result discarded after deadline")

    worker = threading.Thread(target=_worker, name=name, daemon=True)
    start = time.monotonic()
    worker.start()

    finished, value, error = slot.wait(timeout_s)
    if not finished:
        token.cancel()
        logger.debug(f"{name}: deadline {timeout_s:.3f}s hit after "
                     f"{time.monotonic() - start:.3f}s, worker abandoned")
        raise DeadlineExpired(timeout_s)
    if error is not None:
        raise error
    return value
