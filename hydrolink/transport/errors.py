# hydrolink/transport/errors.py
from __future__ import annotations

class TransportError(Exception):
    """Base class for radio transport failures."""

class AdapterUnavailableError(TransportError):
    pass

class TransportTimeoutError(TransportError):
    pass

class DeviceUnreachableError(TransportError):
    pass

class GattNotFoundError(TransportError):
    """Requested service or characteristic is not exposed by the peripheral."""
