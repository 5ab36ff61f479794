from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from hydrolink.model.remote import (
    AggregatedReading,
    DeviceInfo,
    LatestReading,
    PollingSnapshot,
    SensorHealth,
    parse_datetime,
    parse_timespan,
)
from hydrolink.model.sensor import SensorKind


def test_latest_reading_is_case_insensitive():
    data = {
        "DeviceId": "dev-1",
        "TIMESTAMP": "2024-05-01T12:00:00Z",
        "readings": {"PH": 6.1, "waterTemp": 21.5, "Tds": 900, "lightIntensity": None},
        "Status": "ok",
    }

    r = LatestReading.from_json(data)

    assert r.device_id == "dev-1"
    assert r.timestamp == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert r.readings.get(SensorKind.PH) == 6.1
    assert r.readings.get(SensorKind.WATER_TEMPERATURE) == 21.5
    assert r.readings.get(SensorKind.TDS) == 900.0
    assert r.readings.get(SensorKind.LIGHT_INTENSITY) is None
    assert r.status == "ok"


def test_sensor_health_parses_timespan_and_offline():
    h = SensorHealth.from_json(
        {
            "sensorId": "ph-1",
            "sensorType": "PH",
            "status": "Offline",
            "isOnline": False,
            "lastReading": "2024-05-01T11:59:00.1234567+00:00",
            "lastValue": 6.3,
            "timeSinceLastReading": "00:01:30.5",
            "errorMessage": "no data",
        }
    )

    assert h.is_online is False
    assert h.last_reading == datetime(2024, 5, 1, 11, 59, 0, 123456, tzinfo=timezone.utc)
    assert h.time_since_last_reading == timedelta(minutes=1, seconds=30, microseconds=500000)
    assert h.error_message == "no data"


def test_aggregated_and_device_info():
    a = AggregatedReading.from_json(
        {"sensorId": "t-1", "bucketTime": "2024-05-01T00:00:00", "avgValue": 20.5,
         "minValue": 19, "maxValue": 22, "readingCount": 60}
    )
    assert a.reading_count == 60
    assert a.min_value == 19.0

    d = DeviceInfo.from_json({"id": "x", "name": "Tank", "type": "PH", "isActive": True, "minValue": 5.5})
    assert d.is_active is True
    assert d.min_value == 5.5
    assert d.location_name is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("01:02:03", timedelta(hours=1, minutes=2, seconds=3)),
        ("2.00:00:10", timedelta(days=2, seconds=10)),
        ("-00:00:05", timedelta(seconds=-5)),
        (90, timedelta(seconds=90)),
    ],
)
def test_parse_timespan(text, expected):
    assert parse_timespan(text) == expected


def test_parse_timespan_rejects_garbage():
    with pytest.raises(ValueError):
        parse_timespan("soon")


def test_parse_datetime_empty():
    assert parse_datetime(None) is None
    assert parse_datetime("") is None


def test_non_object_payload_rejected():
    with pytest.raises(ValueError):
        LatestReading.from_json([1, 2])


def test_snapshot_online_count():
    online = SensorHealth("a", "PH", "Online", True)
    offline = SensorHealth("b", "TDS", "Offline", False)

    snap = PollingSnapshot(health=(online, offline, online))

    assert snap.online_count == 2
    assert PollingSnapshot().latest is None
