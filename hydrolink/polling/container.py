# hydrolink/polling/container.py
from __future__ import annotations

import concurrent.futures
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from hydrolink.alerts.evaluator import AlertEvaluator
from hydrolink.core.errors import SensorDataError
from hydrolink.interfaces.sensor_api import SensorApi
from hydrolink.model.remote import LatestReading, PollingSnapshot, SensorHealth
from hydrolink.model.sensor import readings_from_values
from hydrolink.runtime.events import Observers
from .timer import PollTimer

DEFAULT_INTERVAL_MS = 10_000
GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


class PollingStateContainer:
    """
    Periodically fetches the latest reading and sensor health from the remote
    API and keeps the last complete result as an immutable snapshot.

    Refreshes are single-flight: a refresh requested while another one runs is
    dropped (refresh() returns False) rather than queued.
    """

    def __init__(
        self,
        api: SensorApi,
        *,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        alerts: Optional[AlertEvaluator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")

        self._api = api
        self._interval_ms = int(interval_ms)
        self._alerts = alerts
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._log = logger or logging.getLogger(__name__)

        self._snapshot = PollingSnapshot()
        self._gate = threading.Lock()
        self._timer_lock = threading.Lock()
        self._timer: Optional[PollTimer] = None
        self._pool = concurrent.futures.ThreadPoolExecutor(max_workers=2, thread_name_prefix="sensor-api")
        self._closed = False

        self._updated: Observers[PollingSnapshot] = Observers("data_updated", logger=self._log)
        self._errors: Observers[str] = Observers("polling_error", logger=self._log)

    # ---------------- state ----------------
    @property
    def snapshot(self) -> PollingSnapshot:
        return self._snapshot

    @property
    def latest(self) -> Optional[LatestReading]:
        return self._snapshot.latest

    @property
    def health(self) -> Tuple[SensorHealth, ...]:
        return self._snapshot.health

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._snapshot.updated_at

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def is_polling(self) -> bool:
        with self._timer_lock:
            return self._timer is not None

    @property
    def is_refreshing(self) -> bool:
        return self._gate.locked()

    def subscribe_updates(self, cb: Callable[[PollingSnapshot], None]) -> Callable[[], None]:
        return self._updated.subscribe(cb)

    def subscribe_errors(self, cb: Callable[[str], None]) -> Callable[[], None]:
        return self._errors.subscribe(cb)

    # ---------------- control ----------------
    def start_polling(self) -> None:
        with self._timer_lock:
            if self._closed:
                self._log.warning("POLLING_START_AFTER_CLOSE")
                return
            if self._timer is not None:
                return
            timer = PollTimer(self._interval_ms / 1000.0, self.refresh, logger=self._log)
            self._timer = timer
            timer.start()

        self._log.info("POLLING_STARTED interval_ms=%d", self._interval_ms)
        self.refresh()

    def stop_polling(self) -> None:
        with self._timer_lock:
            timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.stop()
        self._log.info("POLLING_STOPPED")

    def refresh(self) -> bool:
        """
        Fetch latest reading and sensor health concurrently and swap in a new
        snapshot. Returns False without issuing requests when a refresh is
        already in flight or the container is closed.
        """
        if self._closed:
            return False
        if not self._gate.acquire(blocking=False):
            self._log.debug("REFRESH_SKIPPED in_flight=1")
            return False

        try:
            latest, health = self._fetch()
            snapshot = PollingSnapshot(latest=latest, health=tuple(health), updated_at=self._clock())
            self._snapshot = snapshot
            self._log.debug(
                "REFRESH_OK device_id=%s sensors=%d online=%d",
                latest.device_id if latest else None,
                len(snapshot.health),
                snapshot.online_count,
            )
            self._updated.emit(snapshot)
            self._evaluate(latest)
            return True
        except SensorDataError as e:
            self._log.warning("REFRESH_FAILED err=%s", e.message)
            self._errors.emit(e.message)
            return True
        except Exception:
            self._log.exception("REFRESH_UNEXPECTED_ERROR")
            self._errors.emit(GENERIC_ERROR_MESSAGE)
            return True
        finally:
            self._gate.release()

    def close(self) -> None:
        with self._timer_lock:
            if self._closed:
                return
            self._closed = True
        self.stop_polling()
        self._pool.shutdown(wait=False)
        self._updated.clear()
        self._errors.clear()

    def __enter__(self) -> "PollingStateContainer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- internals ----------------
    def _fetch(self) -> Tuple[Optional[LatestReading], List[SensorHealth]]:
        latest_fut = self._pool.submit(self._api.get_latest_reading)
        health_fut = self._pool.submit(self._api.get_sensor_health)
        # both requests finish before either result is looked at
        concurrent.futures.wait([latest_fut, health_fut])
        return latest_fut.result(), list(health_fut.result() or [])

    def _evaluate(self, latest: Optional[LatestReading]) -> None:
        if self._alerts is None or latest is None or not latest.device_id:
            return
        readings = readings_from_values(
            dict(latest.readings.values),
            device_id=latest.device_id,
            timestamp=latest.timestamp or self._clock(),
            source="api",
        )
        try:
            self._alerts.evaluate(readings)
        except Exception:
            self._log.exception("ALERT_EVALUATION_FAILED device_id=%s", latest.device_id)
