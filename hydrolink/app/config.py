# hydrolink/app/config.py
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

import yaml

from hydrolink.core.errors import ConfigError
from hydrolink.protocol.gatt import (
    COMMAND_CHAR_SHORT_UUID,
    DATA_CHAR_SHORT_UUID,
    SERVICE_SHORT_UUID,
    GattProfile,
)

C = TypeVar("C")


@dataclass(frozen=True)
class DeviceConfig:
    service_uuid16: int = SERVICE_SHORT_UUID
    data_char_uuid16: int = DATA_CHAR_SHORT_UUID
    command_char_uuid16: int = COMMAND_CHAR_SHORT_UUID
    scan_timeout_s: float = 30.0
    connect_timeout_s: float = 20.0
    pump_flow_rate_ml_per_min: float = 100.0

    def gatt_profile(self) -> GattProfile:
        return GattProfile.from_short(self.service_uuid16, self.data_char_uuid16, self.command_char_uuid16)


@dataclass(frozen=True)
class ApiConfig:
    base_url: str = "http://localhost:5000/api/sensors"
    timeout_s: float = 30.0


@dataclass(frozen=True)
class PollingConfig:
    interval_ms: int = 10_000


@dataclass(frozen=True)
class StorageConfig:
    data_dir: str = "data"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass(frozen=True)
class HydroLinkConfig:
    device: DeviceConfig = field(default_factory=DeviceConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS: Dict[str, type] = {
    "device": DeviceConfig,
    "api": ApiConfig,
    "polling": PollingConfig,
    "storage": StorageConfig,
    "logging": LoggingConfig,
}


def _section(name: str, cls: Type[C], raw: Any) -> C:
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigError(
            f"Config section '{name}' must be a mapping.",
            hint=f"Write '{name}:' followed by indented key: value pairs.",
        )

    known = {f.name: f for f in fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(raw) - set(known))
    if unknown:
        raise ConfigError(
            f"Unknown key(s) in '{name}': {', '.join(map(str, unknown))}",
            hint=f"Valid keys: {', '.join(known)}",
        )

    defaults = cls()
    values: Dict[str, Any] = {}
    for key, value in raw.items():
        default = getattr(defaults, key)
        values[key] = _coerce(f"{name}.{key}", value, default)
    return cls(**values)


def _coerce(path: str, value: Any, default: Any) -> Any:
    if value is None or default is None:
        return value if value is None else str(value)
    try:
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise TypeError("expected true/false")
            return value
        if isinstance(default, int):
            if isinstance(value, str):
                return int(value, 0)  # allows 0x00FF
            if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
                raise TypeError("expected an integer")
            return int(value)
        if isinstance(default, float):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError("expected a number")
            return float(value)
        if isinstance(default, str):
            if not isinstance(value, str):
                raise TypeError("expected a string")
            return value
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"Invalid value for '{path}': {value!r}",
            hint=str(e),
            details={"key": path},
        ) from e
    return value


def config_from_mapping(data: Optional[Dict[str, Any]]) -> HydroLinkConfig:
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping.", hint="Top-level keys: " + ", ".join(_SECTIONS))

    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ConfigError(
            f"Unknown config section(s): {', '.join(map(str, unknown))}",
            hint="Top-level keys: " + ", ".join(_SECTIONS),
        )

    cfg = HydroLinkConfig(**{name: _section(name, cls, data.get(name)) for name, cls in _SECTIONS.items()})
    if cfg.polling.interval_ms <= 0:
        raise ConfigError("polling.interval_ms must be positive.", details={"value": cfg.polling.interval_ms})
    try:
        cfg.device.gatt_profile()
    except ValueError as e:
        raise ConfigError("Invalid GATT UUID in 'device' section.", hint=str(e)) from e
    return cfg


def load_config(path: Optional[str | Path]) -> HydroLinkConfig:
    """Load YAML config; a None path gives the built-in defaults."""
    if path is None:
        return HydroLinkConfig()

    full_path = Path(path)
    if not full_path.exists():
        raise ConfigError(f"Config file not found: {full_path}", hint="Pass --config with an existing YAML file.")

    try:
        with open(full_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {full_path}", hint=str(e)) from e

    return config_from_mapping(data)
