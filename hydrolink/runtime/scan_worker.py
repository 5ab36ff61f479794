# hydrolink/runtime/scan_worker.py
from __future__ import annotations

import threading
from typing import Callable

SCAN_TIMEOUT = "timeout"
SCAN_CANCELLED = "cancelled"


class ScanWorker(threading.Thread):
    """Thread that waits out a scan window and reports how it ended."""

    def __init__(self, timeout_s: float, on_finished: Callable[["ScanWorker", str], None]):
        super().__init__(name="ble-scan", daemon=True)
        self.timeout_s = float(timeout_s)
        self._on_finished = on_finished
        self._stop_event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()

    def run(self) -> None:
        cancelled = self._stop_event.wait(self.timeout_s)
        self._on_finished(self, SCAN_CANCELLED if cancelled else SCAN_TIMEOUT)

    def stop(self) -> None:
        self._stop_event.set()
