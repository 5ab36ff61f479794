# hydrolink/interfaces/sensor_api.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from hydrolink.model.remote import (
    AggregatedReading,
    AggregationInterval,
    DeviceInfo,
    LatestReading,
    RemoteReadings,
    SensorHealth,
)


class SensorApi(Protocol):
    """Remote sensor API. Failures are raised as SensorDataError."""
    def get_latest_reading(self) -> Optional[LatestReading]: ...
    def get_history(self, device_id: str, hours: int = 24) -> List[RemoteReadings]: ...
    def get_aggregated(
        self,
        device_id: str,
        interval: AggregationInterval,
        start: datetime,
        end: datetime,
    ) -> List[AggregatedReading]: ...
    def get_sensor_health(self) -> List[SensorHealth]: ...
    def get_devices(self) -> List[DeviceInfo]: ...
