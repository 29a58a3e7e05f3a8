"""
Cooperative cancellation for background processing runs.
"""

import threading


class RunCancelled(Exception):
    """Raised inside a run when its cancellation token has been triggered."""


class CancellationToken:
    """
    Thread-safe cancellation flag checked by a run between batches.

    Usage:
        token = CancellationToken()
        # worker thread
        token.raise_if_cancelled()
        # controlling thread
        token.cancel()
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled()
