# hydrolink/model/device.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class DeviceHandle:
    """
    A peripheral seen during discovery.

    Ephemeral: only valid for the scan that produced it.
    """
    device_id: str
    name: str
    rssi: Optional[int] = None
    connectable: bool = True


@dataclass(frozen=True)
class DosingEvent:
    device_id: str
    duration_ms: int
    volume_ml: float
    ph_before: Optional[float]
    tds_before: Optional[float]
    timestamp: datetime

    def as_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "duration_ms": self.duration_ms,
            "volume_ml": self.volume_ml,
            "ph_before": self.ph_before,
            "tds_before": self.tds_before,
            "timestamp": self.timestamp.isoformat(),
        }


def estimate_dose_volume_ml(duration_ms: int, flow_rate_ml_per_min: float) -> float:
    """Pump output is linear in run time: (duration_ms / 60000) * flow rate."""
    return (float(duration_ms) / 60000.0) * float(flow_rate_ml_per_min)
