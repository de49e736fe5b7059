"""Process-wide abort flag shared by every component that issues statements."""

from __future__ import annotations

import threading
from typing import Optional

from loguru import logger

from csvgraph.storage.errors import AbortedError


class AbortSignal:
    """Set-once, never-cleared flag.

    ``set`` is idempotent: only the first reason is kept. Reads and writes go through
    a ``threading.Event`` plus a lock, so the flag stays consistent if file loads are
    ever run from worker threads.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None

    def set(self, reason: str) -> bool:
        """Set the flag. Returns True only for the call that actually set it."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
        logger.error(f"Abort signal raised: {reason}")
        return True

    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        with self._lock:
            return self._reason

    def check(self) -> None:
        """Raise ``AbortedError`` if the flag is set."""
        if self._event.is_set():
            raise AbortedError(f"Loading terminated due to previous errors: {self.reason}")
