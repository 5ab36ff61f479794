# hydrolink/transport/bleak_transport.py
from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Awaitable, Dict, Optional, Sequence, Type

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from hydrolink.model.device import DeviceHandle
from .base import (
    ConnectOptions,
    GattCharacteristic,
    GattService,
    Peripheral,
    RadioTransport,
    ValueCallback,
)
from .errors import (
    AdapterUnavailableError,
    DeviceUnreachableError,
    GattNotFoundError,
    TransportError,
    TransportTimeoutError,
)


class BleakTransport(RadioTransport):
    """
    BLE transport implemented via bleak.

    bleak is asyncio-only; this class owns a private event loop running in a
    daemon thread and exposes the blocking RadioTransport contract on top of it.
    Discovery and notification callbacks run on that loop thread.
    """

    def __init__(
        self,
        *,
        op_timeout_s: float = 10.0,
        connect_timeout_s: float = 20.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.op_timeout_s = float(op_timeout_s)
        self.connect_timeout_s = float(connect_timeout_s)
        self._log = logger or logging.getLogger(__name__)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

        # loop-thread state
        self._scanner: Optional[BleakScanner] = None
        self._scan_timer: Optional[asyncio.TimerHandle] = None
        self._seen: Dict[str, BLEDevice] = {}
        self._clients: Dict[str, BleakClient] = {}

    # ---------------- lifecycle ----------------
    def open(self) -> None:
        """Start the loop thread and check a BLE adapter answers (one short scanner start/stop)."""
        with self._lock:
            if self._loop is not None:
                return
            loop = asyncio.new_event_loop()
            thread = threading.Thread(target=self._run_loop, args=(loop,), name="bleak-loop", daemon=True)
            thread.start()
            self._loop = loop
            self._thread = thread
        self._log.debug("BLEAK_LOOP_STARTED")

        try:
            self._run(self._check_adapter(), self.op_timeout_s, "adapter check", error_cls=AdapterUnavailableError)
        except TransportError as e:
            self._log.error("BLE_ADAPTER_UNAVAILABLE err=%s", e)
            self._stop_loop()
            if isinstance(e, AdapterUnavailableError):
                raise
            raise AdapterUnavailableError(f"adapter check failed: {e}") from e

    def close(self) -> None:
        if self._loop is None:
            return

        try:
            self.stop_scan()
        except TransportError:
            self._log.exception("BLEAK_STOP_SCAN_ON_CLOSE_FAILED")

        for device_id in list(self._clients.keys()):
            try:
                self._run(self._disconnect(device_id), self.op_timeout_s, "disconnect")
            except TransportError:
                self._log.exception("BLEAK_DISCONNECT_ON_CLOSE_FAILED device_id=%s", device_id)

        self._stop_loop()

    def _stop_loop(self) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = None
            self._thread = None
        if loop is None:
            return

        loop.call_soon_threadsafe(loop.stop)
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self._log.debug("BLEAK_LOOP_STOPPED")

    @staticmethod
    async def _check_adapter() -> None:
        scanner = BleakScanner()
        await scanner.start()
        await scanner.stop()

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            loop.close()

    # ---------------- bridge ----------------
    def _run(
        self,
        coro: Awaitable[Any],
        timeout_s: Optional[float],
        label: str,
        *,
        error_cls: Type[TransportError] = TransportError,
        cancel: Optional[threading.Event] = None,
    ) -> Any:
        loop = self._loop
        if loop is None:
            coro.close()  # type: ignore[attr-defined]
            raise TransportError(f"{label} while transport not open")

        fut = asyncio.run_coroutine_threadsafe(self._with_timeout(coro, timeout_s, label), loop)
        try:
            while True:
                done, _ = concurrent.futures.wait([fut], timeout=0.1)
                if done:
                    break
                if cancel is not None and cancel.is_set():
                    fut.cancel()
                    raise TransportError(f"{label} cancelled")
            return fut.result()
        except concurrent.futures.CancelledError:
            raise TransportError(f"{label} cancelled") from None
        except asyncio.TimeoutError as e:
            raise TransportTimeoutError(str(e)) from None
        except BleakError as e:
            raise error_cls(f"{label} failed: {e}") from None
        except (OSError, RuntimeError) as e:
            raise error_cls(f"{label} failed: {e}") from None

    @staticmethod
    async def _with_timeout(awaitable: Awaitable[Any], timeout_s: Optional[float], label: str) -> Any:
        if timeout_s is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout_s)
        except asyncio.TimeoutError:
            raise asyncio.TimeoutError(f"{label} timed out after {timeout_s:.1f}s") from None

    # ---------------- scanning ----------------
    def start_scan(self, service_uuids: Sequence[str], timeout_s: float) -> None:
        self._run(
            self._start_scan(list(service_uuids), float(timeout_s)),
            self.op_timeout_s,
            "start_scan",
            error_cls=AdapterUnavailableError,
        )

    def stop_scan(self) -> None:
        if self._loop is None:
            return
        self._run(self._stop_scan(), self.op_timeout_s, "stop_scan")

    async def _start_scan(self, service_uuids: list, timeout_s: float) -> None:
        if self._scanner is not None:
            return
        scanner = BleakScanner(
            detection_callback=self._on_detection,
            service_uuids=service_uuids or None,
        )
        await scanner.start()
        self._scanner = scanner
        self._seen.clear()

        loop = asyncio.get_running_loop()
        self._scan_timer = loop.call_later(timeout_s, lambda: asyncio.ensure_future(self._stop_scan()))
        self._log.info("BLE_SCAN_STARTED filter=%s timeout_s=%.1f", service_uuids, timeout_s)

    async def _stop_scan(self) -> None:
        if self._scan_timer is not None:
            self._scan_timer.cancel()
            self._scan_timer = None

        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        await scanner.stop()
        self._log.info("BLE_SCAN_STOPPED seen=%d", len(self._seen))

    def _on_detection(self, device: BLEDevice, adv: AdvertisementData) -> None:
        self._seen[device.address] = device
        handle = DeviceHandle(
            device_id=device.address,
            name=device.name or adv.local_name or "Unknown",
            rssi=adv.rssi,
            connectable=True,
        )
        cb = self.on_device_discovered
        if cb is not None:
            try:
                cb(handle)
            except Exception:
                self._log.exception("DEVICE_DISCOVERED_CALLBACK_ERROR")

    # ---------------- connection ----------------
    def connect(
        self,
        device_id: str,
        options: ConnectOptions,
        cancel: Optional[threading.Event] = None,
    ) -> Peripheral:
        # bleak never auto-reconnects and always talks BLE; the options are
        # recorded for diagnostics only.
        self._log.debug(
            "BLE_CONNECT device_id=%s auto_connect=%s force_native=%s",
            device_id,
            options.auto_connect,
            options.force_native_transport,
        )
        client = self._run(
            self._connect(device_id),
            self.connect_timeout_s,
            "connect",
            error_cls=DeviceUnreachableError,
            cancel=cancel,
        )
        peripheral = Peripheral(device_id=device_id, name=self._name_for(device_id), native=client)

        cb = self.on_device_connected
        if cb is not None:
            try:
                cb(peripheral)
            except Exception:
                self._log.exception("DEVICE_CONNECTED_CALLBACK_ERROR")
        return peripheral

    async def _connect(self, device_id: str) -> BleakClient:
        target: Any = self._seen.get(device_id, device_id)
        client = BleakClient(target, disconnected_callback=self._on_client_disconnected)
        await client.connect()
        self._clients[device_id] = client
        return client

    def disconnect(self, peripheral: Peripheral) -> None:
        self._run(self._disconnect(peripheral.device_id), self.op_timeout_s, "disconnect")

    async def _disconnect(self, device_id: str) -> None:
        client = self._clients.pop(device_id, None)
        if client is None:
            return
        await client.disconnect()

    def _on_client_disconnected(self, client: BleakClient) -> None:
        device_id = next((k for k, c in self._clients.items() if c is client), None)
        if device_id is None:
            # explicit disconnect already forgot this client
            return
        self._clients.pop(device_id, None)
        self._log.warning("BLE_LINK_LOST device_id=%s", device_id)

        cb = self.on_device_disconnected
        if cb is not None:
            try:
                cb(Peripheral(device_id=device_id, name=self._name_for(device_id), native=client))
            except Exception:
                self._log.exception("DEVICE_DISCONNECTED_CALLBACK_ERROR")

    def _name_for(self, device_id: str) -> str:
        dev = self._seen.get(device_id)
        return (dev.name if dev is not None else None) or device_id

    # ---------------- GATT ----------------
    def get_service(self, peripheral: Peripheral, uuid: str) -> GattService:
        client: BleakClient = peripheral.native
        svc = client.services.get_service(uuid)
        if svc is None:
            available = ", ".join(s.uuid for s in client.services)
            raise GattNotFoundError(f"Service {uuid} not found (available: {available or 'none'})")
        return GattService(peripheral=peripheral, uuid=uuid, native=svc)

    def get_characteristic(self, service: GattService, uuid: str) -> GattCharacteristic:
        ch = service.native.get_characteristic(uuid)
        if ch is None:
            raise GattNotFoundError(f"Characteristic {uuid} not found in service {service.uuid}")
        return GattCharacteristic(service=service, uuid=uuid, native=ch)

    def write(self, characteristic: GattCharacteristic, data: bytes) -> None:
        client: BleakClient = characteristic.service.peripheral.native
        self._run(
            client.write_gatt_char(characteristic.native, bytes(data), response=True),
            self.op_timeout_s,
            "write",
            error_cls=DeviceUnreachableError,
        )

    def subscribe(self, characteristic: GattCharacteristic, on_value: ValueCallback) -> None:
        client: BleakClient = characteristic.service.peripheral.native

        def _handler(_sender: Any, data: bytearray) -> None:
            try:
                on_value(bytes(data))
            except Exception:
                self._log.exception("NOTIFY_CALLBACK_ERROR char=%s", characteristic.uuid)

        self._run(client.start_notify(characteristic.native, _handler), self.op_timeout_s, "subscribe")

    def unsubscribe(self, characteristic: GattCharacteristic) -> None:
        client: BleakClient = characteristic.service.peripheral.native
        self._run(client.stop_notify(characteristic.native), self.op_timeout_s, "unsubscribe")
