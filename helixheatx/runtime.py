"""
HelixHeatX - Cooperative Cancellation

A CancelToken is passed down into the dense sampling loops and the
rasteriser. Long loops call check() every batch.
"""

import threading
from typing import Optional

from .errors import BuildCancelled


class CancelToken:
    """Thread-safe cancellation flag."""

    def __init__(self):
        self._event = threading.Event()
        self._reason = ""

    def cancel(self, reason: str = "cancelled"):
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self):
        if self._event.is_set():
            raise BuildCancelled(self._reason)


def check_cancel(token: Optional[CancelToken]):
    """No-op when no token was supplied."""
    if token is not None:
        token.check()
