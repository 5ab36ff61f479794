# hydrolink/runtime/state.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class SessionStatus:
    """
    A snapshot of the link session, safe to share across threads.
    """
    state: ConnectionState
    device_id: Optional[str] = None
    device_name: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED
