# hydrolink/api/breaker.py
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_OPEN_S = 30.0


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker for the sensor API.

    After `failure_threshold` failures in a row, calls are refused for
    `open_s` seconds. Once that window passes the next call is let through as
    a trial: success closes the breaker, another failure opens it again.
    """

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        open_s: float = DEFAULT_OPEN_S,
        *,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {failure_threshold}")
        self.failure_threshold = int(failure_threshold)
        self.open_s = float(open_s)
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._failures = 0
        self._opened_at: Optional[float] = None

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def is_open(self) -> bool:
        return self.retry_after() > 0.0

    def retry_after(self) -> float:
        """Seconds until calls are allowed again; 0.0 when the breaker lets calls through."""
        with self._lock:
            if self._opened_at is None:
                return 0.0
            return max(0.0, self._opened_at + self.open_s - self._clock())

    def record_success(self) -> None:
        with self._lock:
            was_open = self._opened_at is not None
            self._failures = 0
            self._opened_at = None
        if was_open:
            self._log.info("API_CIRCUIT_CLOSED")

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._failures < self.failure_threshold:
                return
            self._opened_at = self._clock()
            failures = self._failures
        self._log.warning("API_CIRCUIT_OPEN failures=%d open_s=%.1f", failures, self.open_s)
