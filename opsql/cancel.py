from __future__ import annotations

import threading
import time
from typing import Optional

from .errors import RunCancelledError


class CancelToken:
    """
    Cooperative cancellation for a single run.

    The token is checked before every database call; it never interrupts a
    statement that is already running.

    Usage:
        token = CancelToken.with_timeout(30)
        runner.execute(operations, cancel=token)

        # from another thread
        token.cancel("shutting down")
    """

    def __init__(self, deadline: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._reason = "run cancelled"
        # time.monotonic() value after which the token counts as cancelled
        self.deadline = deadline

    @classmethod
    def with_timeout(cls, timeout_s: Optional[float]) -> "CancelToken":
        if timeout_s is None:
            return cls()
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        return cls(deadline=time.monotonic() + timeout_s)

    def cancel(self, reason: str = "run cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def raise_if_cancelled(self) -> None:
        """
        Raises:
            RunCancelledError: If cancel() was called or the deadline passed
        """
        if self._event.is_set():
            raise RunCancelledError(self._reason)
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise RunCancelledError("run deadline exceeded")


def check(cancel: Optional[CancelToken]) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()
