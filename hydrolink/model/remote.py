# hydrolink/model/remote.py
"""
Typed views of the remote sensor API payloads.

The API serializes property names in camelCase but clients must match them
case-insensitively; enums travel as strings, timestamps as ISO-8601 and
durations as .NET-style "[d.]hh:mm:ss[.fffffff]" strings.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .sensor import SensorKind


class AggregationInterval(str, Enum):
    MINUTE = "Minute"
    HOUR = "Hour"
    DAY = "Day"
    WEEK = "Week"
    MONTH = "Month"


# JSON property (lower-cased) -> sensor kind
READING_FIELDS: Dict[str, SensorKind] = {
    "ph": SensorKind.PH,
    "watertemp": SensorKind.WATER_TEMPERATURE,
    "airtemp": SensorKind.AIR_TEMPERATURE,
    "humidity": SensorKind.HUMIDITY,
    "tds": SensorKind.TDS,
    "ec": SensorKind.ELECTRICAL_CONDUCTIVITY,
    "waterlevel": SensorKind.WATER_LEVEL,
    "lightintensity": SensorKind.LIGHT_INTENSITY,
    "dissolvedoxygen": SensorKind.DISSOLVED_OXYGEN,
}

_TIMESPAN_RE = re.compile(r"^(-)?(?:(\d+)\.)?(\d+):(\d{2}):(\d{2})(?:\.(\d+))?$")


# ---------------------------------------------------------------------
# field helpers
# ---------------------------------------------------------------------
def _ci(data: Any) -> Dict[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"Expected JSON object, got {type(data).__name__}")
    return {str(k).lower(): v for k, v in data.items()}


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("Expected number, got bool")
    return float(value)


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # .NET emits 7 fractional digits; fromisoformat accepts at most 6
    m = re.match(r"^(.*T\d{2}:\d{2}:\d{2})\.(\d+)(.*)$", text)
    if m:
        text = f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}{m.group(3)}"
    return datetime.fromisoformat(text)


def parse_timespan(value: Any) -> Optional[timedelta]:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=float(value))

    m = _TIMESPAN_RE.match(str(value).strip())
    if not m:
        raise ValueError(f"Invalid timespan '{value}'")

    neg, days, hours, minutes, seconds, frac = m.groups()
    micros = int((frac or "0")[:6].ljust(6, "0"))
    td = timedelta(
        days=int(days or 0),
        hours=int(hours),
        minutes=int(minutes),
        seconds=int(seconds),
        microseconds=micros,
    )
    return -td if neg else td


# ---------------------------------------------------------------------
# payload models
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RemoteReadings:
    values: Mapping[SensorKind, Optional[float]] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Any) -> "RemoteReadings":
        d = _ci(data)
        return cls(values={kind: _opt_float(d.get(key)) for key, kind in READING_FIELDS.items()})

    def get(self, kind: SensorKind) -> Optional[float]:
        return self.values.get(kind)


@dataclass(frozen=True)
class LatestReading:
    device_id: str
    timestamp: Optional[datetime]
    readings: RemoteReadings
    status: str = ""

    @classmethod
    def from_json(cls, data: Any) -> "LatestReading":
        d = _ci(data)
        return cls(
            device_id=str(d.get("deviceid") or ""),
            timestamp=parse_datetime(d.get("timestamp")),
            readings=RemoteReadings.from_json(d.get("readings") or {}),
            status=str(d.get("status") or ""),
        )


@dataclass(frozen=True)
class SensorHealth:
    sensor_id: str
    sensor_type: str
    status: str
    is_online: bool
    last_reading: Optional[datetime] = None
    last_value: Optional[float] = None
    time_since_last_reading: Optional[timedelta] = None
    error_message: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "SensorHealth":
        d = _ci(data)
        return cls(
            sensor_id=str(d.get("sensorid") or ""),
            sensor_type=str(d.get("sensortype") or ""),
            status=str(d.get("status") or ""),
            is_online=bool(d.get("isonline", False)),
            last_reading=parse_datetime(d.get("lastreading")),
            last_value=_opt_float(d.get("lastvalue")),
            time_since_last_reading=parse_timespan(d.get("timesincelastreading")),
            error_message=d.get("errormessage"),
        )


@dataclass(frozen=True)
class AggregatedReading:
    sensor_id: str
    bucket_time: Optional[datetime]
    avg_value: float
    min_value: float
    max_value: float
    reading_count: int

    @classmethod
    def from_json(cls, data: Any) -> "AggregatedReading":
        d = _ci(data)
        return cls(
            sensor_id=str(d.get("sensorid") or ""),
            bucket_time=parse_datetime(d.get("buckettime")),
            avg_value=float(d.get("avgvalue") or 0.0),
            min_value=float(d.get("minvalue") or 0.0),
            max_value=float(d.get("maxvalue") or 0.0),
            reading_count=int(d.get("readingcount") or 0),
        )


@dataclass(frozen=True)
class DeviceInfo:
    id: str
    name: str
    type: str
    unit: str = ""
    location_id: Optional[str] = None
    location_name: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    calibration_offset: Optional[float] = None
    last_calibration: Optional[datetime] = None
    is_active: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_json(cls, data: Any) -> "DeviceInfo":
        d = _ci(data)
        return cls(
            id=str(d.get("id") or ""),
            name=str(d.get("name") or ""),
            type=str(d.get("type") or ""),
            unit=str(d.get("unit") or ""),
            location_id=d.get("locationid"),
            location_name=d.get("locationname"),
            min_value=_opt_float(d.get("minvalue")),
            max_value=_opt_float(d.get("maxvalue")),
            calibration_offset=_opt_float(d.get("calibrationoffset")),
            last_calibration=parse_datetime(d.get("lastcalibration")),
            is_active=bool(d.get("isactive", False)),
            created_at=parse_datetime(d.get("createdat")),
        )


@dataclass(frozen=True)
class PollingSnapshot:
    """
    Last-known remote state. Built whole and swapped in one assignment.
    """
    latest: Optional[LatestReading] = None
    health: Tuple[SensorHealth, ...] = ()
    updated_at: Optional[datetime] = None

    @property
    def online_count(self) -> int:
        return sum(1 for h in self.health if h.is_online)
