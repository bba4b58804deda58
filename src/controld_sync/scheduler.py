"""Periodic refresh task."""

import logging
import threading
from typing import Callable, Optional

from .config import DEFAULT_REFRESH_INTERVAL

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Runs a callback every `interval` seconds on a background thread."""

    def __init__(
        self,
        callback: Callable[[], None],
        interval: float = DEFAULT_REFRESH_INTERVAL,
        name: str = "controld-refresh",
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            callback: Function run on every tick
            interval: Seconds between ticks (must be positive)
            name: Thread name

        Raises:
            ValueError: If interval is not positive
        """
        if interval <= 0:
            raise ValueError(f"Refresh interval must be positive, got: {interval}")

        self.callback = callback
        self.interval = interval
        self.name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Arm the timer. The first tick fires one interval from now."""
        if self._thread is not None:
            logger.debug("Refresh scheduler already started")
            return

        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.debug(f"Refresh scheduler started ({self.interval}s interval)")

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Cancel the timer and wait for an in-flight tick to finish.

        Returns:
            True if this call cancelled a running timer, False if it was
            never started or already stopped
        """
        if self._thread is None or self._stop_event.is_set():
            return False

        self._stop_event.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)
        logger.debug("Refresh scheduler stopped")
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until stop() is called. Returns True if it was."""
        return self._stop_event.wait(timeout)

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Refresh tick failed: {e}", exc_info=True)
