"""
Cooperative cancellation for blocking calls.
"""

import threading
from datetime import timedelta

from jobstore.clock import to_seconds
from jobstore.errors import OperationCancelled


class CancellationToken:
    """
    Thread-safe cancellation signal.

    Blocking loops wait on the token instead of sleeping so that a
    ``cancel()`` from another thread (or a signal handler) unblocks them
    immediately.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: timedelta | float) -> bool:
        """
        Sleep for up to ``timeout``.

        Returns:
            True if cancellation was requested before or during the wait.
        """
        return self._event.wait(max(0.0, to_seconds(timeout)))

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation was cancelled")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"
