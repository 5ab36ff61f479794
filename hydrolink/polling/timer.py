# hydrolink/polling/timer.py
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional


class PollTimer(threading.Thread):
    """Thread that calls `tick` every `interval_s` seconds until stopped."""

    def __init__(
        self,
        interval_s: float,
        tick: Callable[[], object],
        *,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(name="sensor-poll", daemon=True)
        self.interval_s = float(interval_s)
        self._tick = tick
        self._log = logger or logging.getLogger(__name__)
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval_s):
            try:
                self._tick()
            except Exception:
                self._log.exception("POLL_TICK_EXCEPTION interval_s=%.1f", self.interval_s)

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()
