# protocol/__init__.py

from .codec import decode_telemetry, encode_command, parse_telemetry_text, TELEMETRY_KEYS
from .gatt import GattProfile, DEFAULT_PROFILE, expand_uuid16

__all__ = [
    "decode_telemetry", "encode_command", "parse_telemetry_text", "TELEMETRY_KEYS",
    "GattProfile", "DEFAULT_PROFILE", "expand_uuid16",
]
