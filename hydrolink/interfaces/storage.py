# hydrolink/interfaces/storage.py
from __future__ import annotations

from typing import Mapping, Optional, Protocol, Sequence

from hydrolink.model.alert import AlertRecord
from hydrolink.model.device import DosingEvent
from hydrolink.model.sensor import SensorKind, StoredReading


class Storage(Protocol):
    """
    Persistence collaborator used by the session, the polling container and
    the alert evaluator. Implementations may block; callers keep it off the
    telemetry path.
    """
    def get_default_device_id(self) -> Optional[str]: ...
    def get_thresholds(self) -> Optional[Mapping[str, float]]: ...
    def save_readings(self, readings: Sequence[StoredReading]) -> None: ...
    def save_alert(self, alert: AlertRecord) -> None: ...
    def save_dosing_event(self, event: DosingEvent) -> None: ...
    def get_latest_reading(self, device_id: str, kind: SensorKind) -> Optional[StoredReading]: ...
