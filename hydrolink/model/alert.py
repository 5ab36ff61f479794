# hydrolink/model/alert.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .sensor import SensorKind


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ThresholdSettings:
    """
    Acceptable ranges per sensor kind.

    Storage keys match the field names (e.g. "ph_min"); missing keys keep the defaults.
    """
    ph_min: float = 5.5
    ph_max: float = 6.5
    tds_min: float = 800.0
    tds_max: float = 1200.0
    water_temp_min: float = 18.0
    water_temp_max: float = 24.0
    water_level_min: float = 10.0

    @classmethod
    def from_mapping(cls, data: Optional[dict]) -> "ThresholdSettings":
        defaults = cls()
        if not data:
            return defaults

        kwargs = {}
        for name in defaults.__dataclass_fields__:
            value = data.get(name)
            if value is None:
                continue
            kwargs[name] = float(value)
        return cls(**kwargs)


@dataclass(frozen=True)
class AlertRecord:
    device_id: str
    kind: SensorKind
    value: float
    min_value: Optional[float]
    max_value: Optional[float]
    message: str
    severity: Severity = Severity.WARNING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "kind": self.kind.value,
            "value": self.value,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "message": self.message,
            "severity": self.severity.value,
            "created_at": self.created_at.isoformat(),
        }
