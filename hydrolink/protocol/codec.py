# hydrolink/protocol/codec.py
from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Union

from hydrolink.core.errors import TelemetryDecodeError
from hydrolink.model.command import CommandEnvelope
from hydrolink.model.sensor import SensorKind, SensorPacket

_log = logging.getLogger(__name__)

# Telemetry key (upper-cased) -> sensor kind
TELEMETRY_KEYS: Dict[str, SensorKind] = {
    "T": SensorKind.WATER_TEMPERATURE,
    "WT": SensorKind.WATER_TEMPERATURE,
    "AT": SensorKind.AIR_TEMPERATURE,
    "H": SensorKind.HUMIDITY,
    "PH": SensorKind.PH,
    "TDS": SensorKind.TDS,
    "EC": SensorKind.ELECTRICAL_CONDUCTIVITY,
    "LVL": SensorKind.WATER_LEVEL,
    "LUX": SensorKind.LIGHT_INTENSITY,
    "DO": SensorKind.DISSOLVED_OXYGEN,
}

TOKEN_SEPARATOR = ","
KEY_VALUE_SEPARATOR = ":"


def encode_command(envelope: CommandEnvelope) -> bytes:
    """
    Serialize a command to the controller's wire format:
    compact UTF-8 JSON {"cmd": <lower-cased name>, "params": <object or null>}.
    """
    params = dict(envelope.params) if envelope.params is not None else None
    doc = {"cmd": envelope.kind.wire_name, "params": params}
    return json.dumps(doc, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def parse_telemetry_text(text: str) -> Dict[SensorKind, float]:
    """
    Best-effort parse of "KEY:VALUE,KEY:VALUE,..." text.

    Tokens that do not split into exactly one key and one value, unknown keys,
    and values that are not finite numbers are skipped. Never raises.
    """
    values: Dict[SensorKind, float] = {}

    for token in text.split(TOKEN_SEPARATOR):
        parts = token.split(KEY_VALUE_SEPARATOR)
        if len(parts) != 2:
            continue

        kind = TELEMETRY_KEYS.get(parts[0].strip().upper())
        if kind is None:
            continue

        raw_value = parts[1]
        # float() takes digit-group underscores ("1_000"), the firmware never sends them
        if "_" in raw_value:
            continue
        try:
            value = float(raw_value)
        except ValueError:
            continue
        if not math.isfinite(value):
            continue

        # later duplicates win, as the firmware resends the freshest value last
        values[kind] = value

    return values


def decode_telemetry(
    raw: Union[bytes, bytearray],
    *,
    device_id: Optional[str] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> SensorPacket:
    """
    Decode one notification payload into a SensorPacket.

    Raises TelemetryDecodeError only when the bytes are not UTF-8 text;
    anything unrecognized inside valid text is dropped silently.
    """
    try:
        text = bytes(raw).decode("utf-8")
    except UnicodeDecodeError as e:
        raise TelemetryDecodeError(
            "Telemetry payload is not valid UTF-8.",
            hint=str(e),
            details={"len": len(raw), "hex": bytes(raw[:32]).hex()},
        ) from None

    now = clock() if clock is not None else datetime.now(timezone.utc)
    values = parse_telemetry_text(text)

    if not values:
        _log.debug("TELEMETRY_NO_FIELDS raw=%r", text)

    return SensorPacket(device_id=device_id, captured_at=now, raw=text, values=values)
