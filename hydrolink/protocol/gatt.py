# hydrolink/protocol/gatt.py
from __future__ import annotations

from dataclasses import dataclass

BLUETOOTH_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"

SERVICE_SHORT_UUID = 0x00FF
DATA_CHAR_SHORT_UUID = 0xFF01     # notify: telemetry from controller
COMMAND_CHAR_SHORT_UUID = 0xFF02  # write: commands to controller


def expand_uuid16(short: int) -> str:
    """Expand a 16-bit SIG short UUID with the Bluetooth base UUID."""
    short = int(short)
    if not 0 <= short <= 0xFFFF:
        raise ValueError(f"16-bit UUID out of range: {short:#x}")
    return f"0000{short:04x}{BLUETOOTH_BASE_UUID_SUFFIX}"


@dataclass(frozen=True)
class GattProfile:
    """Identifiers of the controller's single GATT service."""
    service_uuid: str
    data_char_uuid: str
    command_char_uuid: str

    @classmethod
    def from_short(
        cls,
        service: int = SERVICE_SHORT_UUID,
        data: int = DATA_CHAR_SHORT_UUID,
        command: int = COMMAND_CHAR_SHORT_UUID,
    ) -> "GattProfile":
        return cls(
            service_uuid=expand_uuid16(service),
            data_char_uuid=expand_uuid16(data),
            command_char_uuid=expand_uuid16(command),
        )


DEFAULT_PROFILE = GattProfile.from_short()
