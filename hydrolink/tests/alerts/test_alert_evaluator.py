from __future__ import annotations

from datetime import datetime, timezone

import pytest

from hydrolink.alerts.evaluator import AlertEvaluator, check_reading
from hydrolink.model.alert import Severity, ThresholdSettings
from hydrolink.model.sensor import SensorKind, StoredReading

T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)


def reading(kind, value):
    return StoredReading(device_id="dev-1", kind=kind, value=value, timestamp=T0)


class FakeStorage:
    def __init__(self, thresholds=None):
        self.thresholds = thresholds
        self.alerts = []
        self.fail_thresholds = False
        self.fail_save = False

    def get_thresholds(self):
        if self.fail_thresholds:
            raise OSError("settings unreadable")
        return self.thresholds

    def save_alert(self, alert):
        if self.fail_save:
            raise OSError("disk full")
        self.alerts.append(alert)


def test_ph_below_min_alerts():
    alert = check_reading(reading(SensorKind.PH, 4.9), ThresholdSettings())

    assert alert is not None
    assert alert.message == "pH out of range: 4.90"
    assert alert.severity is Severity.WARNING
    assert (alert.min_value, alert.max_value) == (5.5, 6.5)


def test_ph_in_range_no_alert():
    assert check_reading(reading(SensorKind.PH, 6.0), ThresholdSettings()) is None


@pytest.mark.parametrize(
    "kind, value, message",
    [
        (SensorKind.TDS, 1250.0, "TDS out of range: 1250.00"),
        (SensorKind.WATER_TEMPERATURE, 17.5, "Water temperature out of range: 17.50"),
        (SensorKind.WATER_LEVEL, 9.0, "Water level low: 9.00"),
    ],
)
def test_breach_messages(kind, value, message):
    alert = check_reading(reading(kind, value), ThresholdSettings())
    assert alert is not None and alert.message == message


def test_bounds_are_inclusive_and_level_has_no_max():
    t = ThresholdSettings()
    assert check_reading(reading(SensorKind.PH, 5.5), t) is None
    assert check_reading(reading(SensorKind.PH, 6.5), t) is None
    assert check_reading(reading(SensorKind.WATER_LEVEL, 10_000.0), t) is None


def test_unchecked_kinds_are_skipped():
    assert check_reading(reading(SensorKind.HUMIDITY, 999.0), ThresholdSettings()) is None


def test_evaluator_uses_stored_thresholds_and_saves():
    storage = FakeStorage(thresholds={"ph_min": 6.2})
    ev = AlertEvaluator(storage)

    out = ev.evaluate([reading(SensorKind.PH, 6.0), reading(SensorKind.TDS, 1000.0)])

    assert [a.kind for a in out] == [SensorKind.PH]
    assert storage.alerts == out


def test_evaluator_falls_back_to_defaults(caplog):
    storage = FakeStorage()
    storage.fail_thresholds = True

    out = AlertEvaluator(storage).evaluate([reading(SensorKind.PH, 6.0)])

    assert out == []
    assert any("THRESHOLDS_LOAD_FAILED" in r.getMessage() for r in caplog.records)


def test_evaluator_does_not_deduplicate():
    storage = FakeStorage()
    ev = AlertEvaluator(storage)

    ev.evaluate([reading(SensorKind.PH, 4.9)])
    ev.evaluate([reading(SensorKind.PH, 4.9)])

    assert len(storage.alerts) == 2


def test_save_failure_is_logged_and_alert_still_returned(caplog):
    storage = FakeStorage()
    storage.fail_save = True

    out = AlertEvaluator(storage).evaluate([reading(SensorKind.PH, 4.9)])

    assert len(out) == 1
    assert any("ALERT_PERSIST_FAILED" in r.getMessage() for r in caplog.records)


def test_fixed_thresholds_without_storage():
    ev = AlertEvaluator(thresholds=ThresholdSettings(ph_min=4.0))
    assert ev.evaluate([reading(SensorKind.PH, 4.9)]) == []
