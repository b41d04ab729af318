"""
Cancellation token shared by every probe of a scan.
"""

import threading
from typing import Optional


class CancellationToken:
    """
    Thread-safe cancel flag.

    A fresh token never cancels. cancel() may be called from any thread,
    including signal handlers; probes check the flag before starting I/O and
    return their degraded value once it is set.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


def is_cancelled(token: Optional[CancellationToken]) -> bool:
    return token is not None and token.cancelled
