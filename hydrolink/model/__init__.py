from .sensor import SensorKind, SensorPacket, StoredReading
from .command import CommandKind, CommandEnvelope
from .device import DeviceHandle, DosingEvent
from .alert import AlertRecord, Severity, ThresholdSettings
from .remote import (
    AggregatedReading,
    AggregationInterval,
    DeviceInfo,
    LatestReading,
    PollingSnapshot,
    RemoteReadings,
    SensorHealth,
)

__all__ = ["SensorKind", "SensorPacket", "StoredReading",
           "CommandKind", "CommandEnvelope",
           "DeviceHandle", "DosingEvent",
           "AlertRecord", "Severity", "ThresholdSettings",
           "AggregatedReading", "AggregationInterval", "DeviceInfo",
           "LatestReading", "PollingSnapshot", "RemoteReadings", "SensorHealth"]
