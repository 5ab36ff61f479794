# hydrolink/api/client.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, TypeVar

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from hydrolink.api.breaker import CircuitBreaker
from hydrolink.core.errors import SensorDataError
from hydrolink.model.remote import (
    AggregatedReading,
    AggregationInterval,
    DeviceInfo,
    LatestReading,
    RemoteReadings,
    SensorHealth,
)

T = TypeVar("T")

DEFAULT_TIMEOUT_S = 30.0

# retried by the transport adapter; waits grow 2s, 4s, 8s
RETRY_TOTAL = 3
RETRY_BACKOFF_FACTOR = 2.0
TRANSIENT_STATUSES = (408, 429, 500, 502, 503, 504)


def build_http_session(
    *,
    retries: int = RETRY_TOTAL,
    backoff_factor: float = RETRY_BACKOFF_FACTOR,
) -> requests.Session:
    """requests session asking for JSON and retrying idempotent GETs on transient failures."""
    session = requests.Session()
    session.headers["Accept"] = "application/json"

    retry = Retry(
        total=retries,
        backoff_factor=backoff_factor,
        status_forcelist=TRANSIENT_STATUSES,
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class SensorApiClient:
    """
    Blocking client for the remote sensor API.

    Every failure (HTTP status, network, timeout, malformed body) is raised as
    SensorDataError carrying an operator-readable message. Transient failures
    are retried by the owned requests session; repeated failures open a
    circuit breaker that refuses calls without touching the network.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        session: Optional[requests.Session] = None,
        breaker: Optional[CircuitBreaker] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(timeout_s)
        self._http = session or build_http_session()
        self._owns_session = session is None
        self._log = logger or logging.getLogger(__name__)
        self._breaker = breaker or CircuitBreaker(logger=self._log)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def close(self) -> None:
        if self._owns_session:
            self._http.close()

    def __enter__(self) -> "SensorApiClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- endpoints ----------------
    def get_latest_reading(self) -> Optional[LatestReading]:
        data = self._get_json("/latest", failure="Unable to retrieve latest sensor data")
        if data is None:
            return None
        return self._convert(lambda: LatestReading.from_json(data), "Unable to retrieve latest sensor data")

    def get_history(self, device_id: str, hours: int = 24) -> List[RemoteReadings]:
        failure = f"Unable to retrieve history for device {device_id}"
        data = self._get_json("/history", params={"hours": int(hours)}, failure=failure)
        return self._convert_list(data, RemoteReadings.from_json, failure)

    def get_aggregated(
        self,
        device_id: str,
        interval: AggregationInterval,
        start: datetime,
        end: datetime,
    ) -> List[AggregatedReading]:
        failure = f"Unable to retrieve aggregated data for device {device_id}."
        params = {
            "interval": AggregationInterval(interval).value,
            "start": start.isoformat(),
            "end": end.isoformat(),
        }
        data = self._get_json(f"/aggregated/{device_id}", params=params, failure=failure)
        return self._convert_list(data, AggregatedReading.from_json, failure)

    def get_sensor_health(self) -> List[SensorHealth]:
        failure = "Unable to retrieve sensor health status"
        data = self._get_json("/health", failure=failure)
        return self._convert_list(data, SensorHealth.from_json, failure)

    def get_devices(self) -> List[DeviceInfo]:
        failure = "Unable to retrieve device list"
        data = self._get_json("/devices", failure=failure)
        return self._convert_list(data, DeviceInfo.from_json, failure)

    # ---------------- internals ----------------
    def _get_json(self, path: str, *, failure: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        wait_s = self._breaker.retry_after()
        if wait_s > 0.0:
            self._log.warning("API_CIRCUIT_REJECTED url=%s retry_in_s=%.1f", url, wait_s)
            raise SensorDataError(
                failure,
                hint=f"Sensor API is failing repeatedly; calls paused for another {wait_s:.0f}s.",
                details={"url": url, "circuit": "open"},
            )

        try:
            response = self._http.get(url, params=params, timeout=self.timeout_s)
        except requests.Timeout as e:
            self._breaker.record_failure()
            self._log.error("API_TIMEOUT url=%s timeout_s=%.1f", url, self.timeout_s)
            raise SensorDataError(
                "Request timed out",
                hint=f"No answer from {self.base_url} within {self.timeout_s:.1f}s.",
                details={"url": url},
            ) from e
        except requests.RequestException as e:
            self._breaker.record_failure()
            self._log.error("API_REQUEST_FAILED url=%s err=%s", url, e)
            raise SensorDataError(failure, hint=str(e), details={"url": url}) from e

        # 4xx other than 408/429 means the server is up and answering
        if response.status_code in TRANSIENT_STATUSES or response.status_code >= 500:
            self._breaker.record_failure()
        else:
            self._breaker.record_success()

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            self._log.error("API_HTTP_ERROR url=%s status=%s", url, response.status_code)
            raise SensorDataError(failure, hint=str(e), details={"url": url, "status": response.status_code}) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            self._log.error("API_BAD_JSON url=%s err=%s", url, e)
            raise SensorDataError(failure, hint="Response body is not valid JSON.", details={"url": url}) from e

    def _convert(self, fn: Callable[[], T], failure: str) -> T:
        try:
            return fn()
        except (TypeError, ValueError) as e:
            self._log.error("API_BAD_PAYLOAD err=%s", e)
            raise SensorDataError(failure, hint=f"Unexpected response shape: {e}") from e

    def _convert_list(self, data: Any, parse: Callable[[Any], T], failure: str) -> List[T]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise SensorDataError(failure, hint=f"Expected a JSON array, got {type(data).__name__}.")
        return self._convert(lambda: [parse(item) for item in data], failure)
