"""Cooperative cancellation shared by the extractor and the scorer.

One token is created per request. The page fetch caps its timeout with
``remaining()`` and every retry backoff waits on the token instead of
``time.sleep`` so a cancelled request stops between model attempts.
"""

import threading
import time


class CancelToken:
    """Cancellation flag with an optional absolute deadline."""

    def __init__(self, timeout: float | None = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False

    def remaining(self) -> float | None:
        """Seconds until the deadline, ``None`` when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``. Returns False if cancelled before or during the wait."""
        if self.cancelled:
            return False
        wait_for = max(0.0, seconds)
        remaining = self.remaining()
        if remaining is not None and remaining < wait_for:
            self._event.wait(remaining)
            self._event.set()
            return False
        self._event.wait(wait_for)
        return not self.cancelled
