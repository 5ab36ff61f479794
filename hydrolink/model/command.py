# hydrolink/model/command.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class CommandKind(Enum):
    SET_WATER_PUMP = "SetWaterPump"
    SET_AIR_PUMP = "SetAirPump"
    DOSE_NUTRIENTS = "DoseNutrients"
    SET_LIGHT_SCHEDULE = "SetLightSchedule"
    CALIBRATE = "Calibrate"
    REBOOT = "Reboot"
    GET_STATUS = "GetStatus"

    @property
    def wire_name(self) -> str:
        # firmware matches on the lower-cased command name
        return self.value.lower()


@dataclass(frozen=True)
class CommandEnvelope:
    kind: CommandKind
    params: Optional[Mapping[str, Any]] = None

    @classmethod
    def set_water_pump(cls, on: bool) -> "CommandEnvelope":
        return cls(CommandKind.SET_WATER_PUMP, {"state": bool(on)})

    @classmethod
    def set_air_pump(cls, on: bool) -> "CommandEnvelope":
        return cls(CommandKind.SET_AIR_PUMP, {"state": bool(on)})

    @classmethod
    def dose_nutrients(cls, duration_ms: int) -> "CommandEnvelope":
        return cls(CommandKind.DOSE_NUTRIENTS, {"duration_ms": int(duration_ms)})

    @classmethod
    def set_light_schedule(cls, on_hour: int, off_hour: int) -> "CommandEnvelope":
        for name, hour in (("on_hour", on_hour), ("off_hour", off_hour)):
            if not 0 <= int(hour) <= 23:
                raise ValueError(f"{name} must be within 0..23, got {hour}")
        return cls(CommandKind.SET_LIGHT_SCHEDULE, {"on_hour": int(on_hour), "off_hour": int(off_hour)})

    @classmethod
    def calibrate(cls, sensor: str) -> "CommandEnvelope":
        return cls(CommandKind.CALIBRATE, {"sensor": str(sensor)})

    @classmethod
    def reboot(cls) -> "CommandEnvelope":
        return cls(CommandKind.REBOOT)

    @classmethod
    def get_status(cls) -> "CommandEnvelope":
        return cls(CommandKind.GET_STATUS)
