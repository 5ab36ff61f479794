from __future__ import annotations

from datetime import datetime, timezone

import pytest
import requests

from hydrolink.api.breaker import CircuitBreaker
from hydrolink.api.client import SensorApiClient, build_http_session
from hydrolink.core.errors import SensorDataError
from hydrolink.model.remote import AggregationInterval
from hydrolink.model.sensor import SensorKind


class FakeResponse:
    def __init__(self, payload=None, status=200, content=None):
        self._payload = payload
        self.status_code = status
        self.content = b"x" if content is None else content

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeHttp:
    def __init__(self):
        self.calls = []
        self.responses = {}
        self.error = None
        self.closed = False

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        if self.error is not None:
            raise self.error
        return self.responses[url]

    def close(self):
        self.closed = True


BASE = "http://api.test/sensors"


@pytest.fixture()
def http():
    return FakeHttp()


@pytest.fixture()
def client(http):
    return SensorApiClient(BASE + "/", timeout_s=3.0, session=http)


def test_latest_reading(client, http):
    http.responses[f"{BASE}/latest"] = FakeResponse(
        {"deviceId": "d1", "timestamp": "2024-05-01T12:00:00Z", "readings": {"ph": 6.2}, "status": "ok"}
    )

    r = client.get_latest_reading()

    assert r.device_id == "d1"
    assert r.readings.get(SensorKind.PH) == 6.2
    assert http.calls == [(f"{BASE}/latest", None, 3.0)]


def test_latest_reading_empty_body_is_none(client, http):
    http.responses[f"{BASE}/latest"] = FakeResponse(None, content=b"")
    assert client.get_latest_reading() is None


def test_history_passes_hours(client, http):
    http.responses[f"{BASE}/history"] = FakeResponse([{"ph": 6.0}, {"ph": 6.1}])

    rows = client.get_history("d1", hours=12)

    assert [r.get(SensorKind.PH) for r in rows] == [6.0, 6.1]
    assert http.calls[0][1] == {"hours": 12}


def test_aggregated_query(client, http):
    http.responses[f"{BASE}/aggregated/d1"] = FakeResponse(
        [{"sensorId": "ph", "bucketTime": "2024-05-01T00:00:00Z", "avgValue": 6.0,
          "minValue": 5.9, "maxValue": 6.1, "readingCount": 60}]
    )
    start = datetime(2024, 5, 1, tzinfo=timezone.utc)
    end = datetime(2024, 5, 2, tzinfo=timezone.utc)

    rows = client.get_aggregated("d1", AggregationInterval.HOUR, start, end)

    assert rows[0].reading_count == 60
    assert http.calls[0][1] == {
        "interval": "Hour",
        "start": "2024-05-01T00:00:00+00:00",
        "end": "2024-05-02T00:00:00+00:00",
    }


def test_health_and_devices(client, http):
    http.responses[f"{BASE}/health"] = FakeResponse([{"sensorId": "ph", "isOnline": True, "status": "Online"}])
    http.responses[f"{BASE}/devices"] = FakeResponse(None, content=b"")

    assert client.get_sensor_health()[0].is_online is True
    assert client.get_devices() == []


def test_http_error_maps_to_sensor_data_error(client, http):
    http.responses[f"{BASE}/history"] = FakeResponse(status=500)

    with pytest.raises(SensorDataError) as ei:
        client.get_history("d1")

    assert ei.value.message == "Unable to retrieve history for device d1"


def test_timeout_message(client, http):
    http.error = requests.Timeout("read timed out")

    with pytest.raises(SensorDataError) as ei:
        client.get_latest_reading()

    assert ei.value.message == "Request timed out"


@pytest.mark.parametrize(
    "call, message",
    [
        (lambda c: c.get_sensor_health(), "Unable to retrieve sensor health status"),
        (lambda c: c.get_devices(), "Unable to retrieve device list"),
        (lambda c: c.get_latest_reading(), "Unable to retrieve latest sensor data"),
    ],
)
def test_connection_error_messages(client, http, call, message):
    http.error = requests.ConnectionError("refused")

    with pytest.raises(SensorDataError) as ei:
        call(client)

    assert ei.value.message == message


def test_bad_json_and_bad_shape(client, http):
    http.responses[f"{BASE}/health"] = FakeResponse(ValueError("not json"))
    with pytest.raises(SensorDataError):
        client.get_sensor_health()

    http.responses[f"{BASE}/devices"] = FakeResponse({"not": "a list"})
    with pytest.raises(SensorDataError) as ei:
        client.get_devices()
    assert ei.value.message == "Unable to retrieve device list"


def test_injected_session_not_closed(client, http):
    client.close()
    assert http.closed is False


def test_owned_session_asks_for_json_and_retries_transient_failures():
    session = build_http_session()

    assert session.headers["Accept"] == "application/json"
    retry = session.get_adapter("http://api.test/sensors/latest").max_retries
    assert retry.total == 3
    assert retry.backoff_factor == 2.0
    assert {408, 429, 500, 502, 503, 504} <= set(retry.status_forcelist)
    assert "GET" in retry.allowed_methods
    assert session.get_adapter("https://api.test/").max_retries.total == 3


def test_default_client_uses_retrying_session():
    c = SensorApiClient(BASE)
    try:
        assert c.timeout_s == 30.0
        assert c._http.headers["Accept"] == "application/json"
        assert c._http.get_adapter(BASE).max_retries.total == 3
    finally:
        c.close()


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_repeated_failures_open_the_circuit(http):
    clock = Clock()
    c = SensorApiClient(BASE, session=http, breaker=CircuitBreaker(5, 30.0, clock=clock))
    http.error = requests.ConnectionError("refused")

    for _ in range(5):
        with pytest.raises(SensorDataError):
            c.get_devices()
    assert len(http.calls) == 5

    with pytest.raises(SensorDataError) as ei:
        c.get_devices()
    assert ei.value.message == "Unable to retrieve device list"
    assert ei.value.details["circuit"] == "open"
    assert len(http.calls) == 5

    clock.now += 31.0
    http.error = None
    http.responses[f"{BASE}/devices"] = FakeResponse([])

    assert c.get_devices() == []
    assert c.breaker.is_open is False
    assert c.breaker.failures == 0


def test_failed_trial_call_reopens_the_circuit(http):
    clock = Clock()
    c = SensorApiClient(BASE, session=http, breaker=CircuitBreaker(2, 30.0, clock=clock))
    http.responses[f"{BASE}/health"] = FakeResponse(status=503)

    for _ in range(2):
        with pytest.raises(SensorDataError):
            c.get_sensor_health()
    assert c.breaker.is_open

    clock.now += 30.5
    with pytest.raises(SensorDataError):
        c.get_sensor_health()

    assert len(http.calls) == 3
    assert c.breaker.retry_after() == pytest.approx(30.0)


def test_client_errors_do_not_count_toward_the_circuit(http):
    c = SensorApiClient(BASE, session=http, breaker=CircuitBreaker(2, 30.0))
    http.responses[f"{BASE}/history"] = FakeResponse(status=404)

    for _ in range(3):
        with pytest.raises(SensorDataError):
            c.get_history("d1")

    assert c.breaker.failures == 0
    assert len(http.calls) == 3
