from __future__ import annotations

import threading
import time
from datetime import datetime, timezone

import pytest

from hydrolink.alerts.evaluator import AlertEvaluator
from hydrolink.core.errors import SensorDataError
from hydrolink.model.remote import LatestReading, RemoteReadings, SensorHealth
from hydrolink.model.sensor import SensorKind
from hydrolink.polling.container import GENERIC_ERROR_MESSAGE, PollingStateContainer

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_latest(ph=6.0):
    return LatestReading(
        device_id="dev-1",
        timestamp=T0,
        readings=RemoteReadings(values={SensorKind.PH: ph, SensorKind.TDS: 900.0}),
        status="ok",
    )


class FakeApi:
    def __init__(self):
        self.latest = make_latest()
        self.health = [SensorHealth("ph-1", "PH", "Online", True, last_value=6.0)]
        self.latest_error = None
        self.health_error = None
        self.gate = None
        self.latest_calls = 0
        self.health_calls = 0
        self._lock = threading.Lock()

    def get_latest_reading(self):
        with self._lock:
            self.latest_calls += 1
        if self.gate is not None:
            self.gate.wait(2.0)
        if self.latest_error is not None:
            raise self.latest_error
        return self.latest

    def get_sensor_health(self):
        with self._lock:
            self.health_calls += 1
        if self.health_error is not None:
            raise self.health_error
        return self.health


class FakeAlertStorage:
    def __init__(self):
        self.alerts = []

    def get_thresholds(self):
        return None

    def save_alert(self, alert):
        self.alerts.append(alert)


@pytest.fixture()
def api():
    return FakeApi()


def test_refresh_replaces_snapshot_and_notifies(api):
    with PollingStateContainer(api, clock=lambda: T0) as c:
        updates = []
        c.subscribe_updates(updates.append)

        assert c.refresh() is True

        snap = c.snapshot
        assert snap.latest is api.latest
        assert snap.health == tuple(api.health)
        assert snap.updated_at == T0
        assert c.last_updated == T0
        assert updates == [snap]


def test_concurrent_refresh_is_single_flight(api):
    api.gate = threading.Event()
    with PollingStateContainer(api) as c:
        results = []
        t = threading.Thread(target=lambda: results.append(c.refresh()))
        t.start()

        deadline = time.time() + 1.0
        while api.latest_calls == 0 and time.time() < deadline:
            time.sleep(0.005)

        assert c.is_refreshing
        assert c.refresh() is False  # gate held by the first refresh

        api.gate.set()
        t.join(timeout=2.0)

        assert results == [True]
        assert api.latest_calls == 1
        assert api.health_calls == 1
        assert not c.is_refreshing


def test_sensor_data_error_keeps_previous_snapshot(api):
    with PollingStateContainer(api) as c:
        c.refresh()
        before = c.snapshot
        errors = []
        c.subscribe_errors(errors.append)

        api.health_error = SensorDataError("Unable to retrieve sensor health status")
        c.refresh()

        assert errors == ["Unable to retrieve sensor health status"]
        assert c.snapshot is before
        assert not c.is_refreshing


def test_unexpected_error_uses_generic_message(api):
    api.latest_error = KeyError("boom")
    with PollingStateContainer(api) as c:
        errors = []
        c.subscribe_errors(errors.append)

        c.refresh()

        assert errors == [GENERIC_ERROR_MESSAGE]
        assert c.snapshot.latest is None
        # gate released: next refresh runs
        api.latest_error = None
        assert c.refresh() is True
        assert c.latest is api.latest


def test_start_polling_refreshes_immediately_and_stop_is_idempotent(api):
    with PollingStateContainer(api, interval_ms=20) as c:
        c.start_polling()
        c.start_polling()
        assert c.is_polling
        assert api.latest_calls >= 1

        deadline = time.time() + 1.0
        while api.latest_calls < 3 and time.time() < deadline:
            time.sleep(0.01)

        c.stop_polling()
        c.stop_polling()
        assert not c.is_polling
        assert api.latest_calls >= 3


def test_refresh_evaluates_alerts(api):
    storage = FakeAlertStorage()
    api.latest = make_latest(ph=4.9)

    with PollingStateContainer(api, alerts=AlertEvaluator(storage)) as c:
        c.refresh()

    assert [a.message for a in storage.alerts] == ["pH out of range: 4.90"]
    assert storage.alerts[0].device_id == "dev-1"


def test_closed_container_does_not_refresh(api):
    c = PollingStateContainer(api)
    c.close()
    c.close()

    assert c.refresh() is False
    c.start_polling()
    assert not c.is_polling
    assert api.latest_calls == 0


def test_interval_must_be_positive(api):
    with pytest.raises(ValueError):
        PollingStateContainer(api, interval_ms=0)
