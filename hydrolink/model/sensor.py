# hydrolink/model/sensor.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple


class SensorKind(str, Enum):
    PH = "ph"
    WATER_TEMPERATURE = "water_temperature"
    AIR_TEMPERATURE = "air_temperature"
    HUMIDITY = "humidity"
    TDS = "tds"
    ELECTRICAL_CONDUCTIVITY = "ec"
    WATER_LEVEL = "water_level"
    LIGHT_INTENSITY = "light_intensity"
    DISSOLVED_OXYGEN = "dissolved_oxygen"


@dataclass(frozen=True)
class SensorPacket:
    """
    One decoded telemetry notification.

    values only holds the sensor kinds that were present in the payload;
    a kind missing from the payload (or unparseable) is simply absent.
    """
    device_id: Optional[str]
    captured_at: datetime
    raw: str
    values: Mapping[SensorKind, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, kind: SensorKind) -> Optional[float]:
        return self.values.get(kind)

    def present(self) -> Iterator[Tuple[SensorKind, float]]:
        """Yield (kind, value) for every recognized field, in SensorKind order."""
        for kind in SensorKind:
            if kind in self.values:
                yield kind, self.values[kind]

    @property
    def is_empty(self) -> bool:
        return not self.values

    @property
    def ph(self) -> Optional[float]:
        return self.values.get(SensorKind.PH)

    @property
    def water_temperature(self) -> Optional[float]:
        return self.values.get(SensorKind.WATER_TEMPERATURE)

    @property
    def air_temperature(self) -> Optional[float]:
        return self.values.get(SensorKind.AIR_TEMPERATURE)

    @property
    def humidity(self) -> Optional[float]:
        return self.values.get(SensorKind.HUMIDITY)

    @property
    def tds(self) -> Optional[float]:
        return self.values.get(SensorKind.TDS)

    @property
    def electrical_conductivity(self) -> Optional[float]:
        return self.values.get(SensorKind.ELECTRICAL_CONDUCTIVITY)

    @property
    def water_level(self) -> Optional[float]:
        return self.values.get(SensorKind.WATER_LEVEL)

    @property
    def light_intensity(self) -> Optional[float]:
        return self.values.get(SensorKind.LIGHT_INTENSITY)

    @property
    def dissolved_oxygen(self) -> Optional[float]:
        return self.values.get(SensorKind.DISSOLVED_OXYGEN)

    def as_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "captured_at": self.captured_at.isoformat(),
            "values": {k.value: v for k, v in self.present()},
        }


@dataclass(frozen=True)
class StoredReading:
    """A single per-sensor value as handed to storage."""
    device_id: str
    kind: SensorKind
    value: float
    timestamp: datetime
    source: str = "ble"

    def as_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "kind": self.kind.value,
            "value": self.value,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
        }


def readings_from_packet(packet: SensorPacket, *, device_id: str, source: str = "ble") -> List[StoredReading]:
    return [
        StoredReading(device_id=device_id, kind=kind, value=value, timestamp=packet.captured_at, source=source)
        for kind, value in packet.present()
    ]


def readings_from_values(
    values: Dict[SensorKind, float],
    *,
    device_id: str,
    timestamp: datetime,
    source: str,
) -> List[StoredReading]:
    return [
        StoredReading(device_id=device_id, kind=kind, value=float(values[kind]), timestamp=timestamp, source=source)
        for kind in SensorKind
        if values.get(kind) is not None
    ]
