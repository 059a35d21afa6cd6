"""Periodic expiry sweep for the session registry."""

import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Run ``registry.sweep()`` every *interval* seconds on a daemon thread.

    The loop checks a stop event between ticks, so ``stop()`` returns as soon
    as the current tick (if any) finishes.  A tick that raises is logged and
    the loop carries on with the next one.
    """

    def __init__(self, registry, interval: float = 30.0):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._registry = registry
        self.interval = float(interval)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ticks = 0

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name="headcount-sweeper", daemon=True,
        )
        self._thread.start()
        logger.info("session sweeper started (interval=%.1fs)", self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("session sweeper still running after %.2fs", timeout)
                return
            self._thread = None
            logger.info("session sweeper stopped after %d tick(s)", self.ticks)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> int:
        """Run one sweep pass; return the number of sessions removed (0 on failure)."""
        self.ticks += 1
        try:
            return self._registry.sweep()
        except Exception:
            logger.exception("session sweep failed; retrying next tick")
            return 0

    def _run(self) -> None:
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(self.interval)
