"""Record counters with interval-based progress logging."""

from __future__ import annotations

import threading
import time

from loguru import logger


class ProgressCounter:
    """Monotonic counter for one file or one whole run.

    Logging happens each time the count crosses a multiple of ``interval`` and when
    the total is reached. An interval of 0 disables logging; counts are still kept.
    """

    def __init__(self, name: str, unit: str, total: int = 0, interval: int = 0) -> None:
        self.name = name
        self.unit = unit
        self.total = max(0, total)
        self.interval = max(0, interval)
        self.processed = 0
        self.loaded = 0
        self.start = time.time()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.interval > 0

    def update(self, *, processed: int = 0, loaded: int = 0) -> None:
        if processed < 0 or loaded < 0:
            raise ValueError("Progress counters never decrease")
        with self._lock:
            before = self.processed
            self.processed += processed
            self.loaded += loaded
            if not self.enabled:
                return
            crossed = self.processed // self.interval > before // self.interval
            finished = self.total > 0 and self.processed >= self.total > before
            if crossed or finished:
                self._log()

    def _log(self) -> None:
        elapsed = max(time.time() - self.start, 1e-6)
        rate = self.processed / elapsed
        if self.total:
            percent = min(self.processed / self.total, 1.0) * 100
            logger.info(
                "Progress: {:.1f}% ({}/{}) {} {} processed, {} loaded, {:.0f} rec/s",
                percent,
                self.processed,
                self.total,
                self.name,
                self.unit,
                self.loaded,
                rate,
            )
        else:
            logger.info(
                "Progress: {} {} {} processed, {} loaded, {:.0f} rec/s",
                self.processed,
                self.name,
                self.unit,
                self.loaded,
                rate,
            )
