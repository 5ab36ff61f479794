# hydrolink/transport/base.py
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from hydrolink.model.device import DeviceHandle

ValueCallback = Callable[[bytes], None]
DeviceCallback = Callable[[DeviceHandle], None]
PeripheralCallback = Callable[["Peripheral"], None]


@dataclass(frozen=True)
class ConnectOptions:
    auto_connect: bool = False
    force_native_transport: bool = True


@dataclass(frozen=True)
class Peripheral:
    """A connected device as seen by the transport. `native` is the backend object."""
    device_id: str
    name: str
    native: Any = None


@dataclass(frozen=True)
class GattService:
    peripheral: Peripheral
    uuid: str
    native: Any = None


@dataclass(frozen=True)
class GattCharacteristic:
    service: GattService
    uuid: str
    native: Any = None


class RadioTransport(ABC):
    """
    Abstract short-range radio interface (BLE via bleak, test fakes, etc.).

    Contract:
      - open()/close() acquire and release the adapter; open() raises
        AdapterUnavailableError when there is no usable adapter.
      - start_scan() returns once discovery is running; each advertisement is
        delivered through on_device_discovered until stop_scan() or timeout_s.
      - connect() blocks until the link is up, the cancel event is set, or it fails.
      - get_service()/get_characteristic() raise GattNotFoundError when missing.
      - subscribe() delivers raw notification payloads to on_value on a
        transport-owned thread; callbacks must not block.
      - every failure is raised as a TransportError subclass.

    Event hooks are plain attributes, assigned by the owner of the transport.
    """

    on_device_discovered: Optional[DeviceCallback] = None
    on_device_connected: Optional[PeripheralCallback] = None
    on_device_disconnected: Optional[PeripheralCallback] = None

    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    @abstractmethod
    def start_scan(self, service_uuids: Sequence[str], timeout_s: float) -> None: ...

    @abstractmethod
    def stop_scan(self) -> None: ...

    @abstractmethod
    def connect(
        self,
        device_id: str,
        options: ConnectOptions,
        cancel: Optional[threading.Event] = None,
    ) -> Peripheral: ...

    @abstractmethod
    def disconnect(self, peripheral: Peripheral) -> None: ...

    @abstractmethod
    def get_service(self, peripheral: Peripheral, uuid: str) -> GattService: ...

    @abstractmethod
    def get_characteristic(self, service: GattService, uuid: str) -> GattCharacteristic: ...

    @abstractmethod
    def write(self, characteristic: GattCharacteristic, data: bytes) -> None: ...

    @abstractmethod
    def subscribe(self, characteristic: GattCharacteristic, on_value: ValueCallback) -> None: ...

    @abstractmethod
    def unsubscribe(self, characteristic: GattCharacteristic) -> None: ...

    def __enter__(self) -> "RadioTransport":
        self.open()
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.close()
