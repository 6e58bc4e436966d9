"""Cooperative cancellation for long-running scans."""

from __future__ import annotations

import threading
import time
from typing import Optional

from schema_scout.errors import ScanCancelledError


class CancellationToken:
    """
    Cancellation flag with an optional deadline.

    Stages call check() at their progress boundaries; it raises
    ScanCancelledError once cancel() was called or the deadline passed.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout else None
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("scan timeout exceeded")
            return True
        return False

    def check(self) -> None:
        if self.cancelled:
            raise ScanCancelledError(self.reason or "cancelled")
