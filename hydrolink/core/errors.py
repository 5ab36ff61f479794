# hydrolink/core/errors.py
from __future__ import annotations


class HydroLinkError(Exception):
    """
    Base class for all expected operational errors in HydroLink.
    """

    #: Stable machine-readable identifier (for CLI exit mapping, UI messages, etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Configuration errors (no radio / network access yet)
# ---------------------------------------------------------------------------

class ConfigError(HydroLinkError):
    """
    Configuration file is missing, unreadable or has invalid values.
    """
    code = "config_error"


# ---------------------------------------------------------------------------
# Wireless link errors
# ---------------------------------------------------------------------------

class DeviceConnectError(HydroLinkError):
    """
    Connection to the controller could not be established.

    Examples:
      - peripheral out of range / not advertising
      - GATT service or characteristic missing
      - notification subscription rejected
      - connect cancelled by the caller
    """
    code = "device_connect_error"


class TelemetryDecodeError(HydroLinkError):
    """
    A telemetry notification could not be turned into text.

    Partial garbage inside valid text never raises; only undecodable bytes do.
    """
    code = "telemetry_decode_error"


# ---------------------------------------------------------------------------
# Remote sensor API errors
# ---------------------------------------------------------------------------

class SensorDataError(HydroLinkError):
    """
    The remote sensor API could not deliver the requested data.

    Examples:
      - HTTP error status
      - request timeout
      - response body is not the expected JSON
    """
    code = "sensor_data_error"
