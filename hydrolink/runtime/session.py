# hydrolink/runtime/session.py
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from hydrolink.alerts.evaluator import AlertEvaluator
from hydrolink.core.errors import DeviceConnectError, TelemetryDecodeError
from hydrolink.interfaces.storage import Storage
from hydrolink.model.command import CommandEnvelope
from hydrolink.model.device import DeviceHandle, DosingEvent, estimate_dose_volume_ml
from hydrolink.model.sensor import SensorKind, SensorPacket, readings_from_packet
from hydrolink.protocol.codec import decode_telemetry, encode_command
from hydrolink.protocol.gatt import DEFAULT_PROFILE, GattProfile
from hydrolink.runtime.events import Observers
from hydrolink.runtime.executor import ExecutorClosedError, SerialExecutor
from hydrolink.runtime.scan_worker import ScanWorker
from hydrolink.runtime.state import ConnectionState, SessionStatus
from hydrolink.transport.base import (
    ConnectOptions,
    GattCharacteristic,
    Peripheral,
    RadioTransport,
)
from hydrolink.transport.errors import TransportError

DEFAULT_SCAN_TIMEOUT_S = 30.0
DEFAULT_PUMP_FLOW_RATE_ML_PER_MIN = 100.0

# the controller is always reached over a fresh, direct BLE link
CONNECT_OPTIONS = ConnectOptions(auto_connect=False, force_native_transport=True)

_SESSION_CLOSED = object()


class ConnectionSession:
    """
    Single-device BLE session: discovery, connection, GATT binding, commands
    and telemetry.

    All state transitions run on one session thread; public methods hand their
    work to it and wait. Transport callbacks (notifications included) are
    queued to it without waiting, so every listener runs on the session thread
    and may call back into the session. Telemetry persistence and alert
    evaluation run on a second FIFO worker so slow storage never holds up
    notifications.

    After close(), commands return False, scan and disconnect calls do nothing
    and initialize/connect raise DeviceConnectError.
    """

    def __init__(
        self,
        transport: RadioTransport,
        *,
        storage: Optional[Storage] = None,
        alerts: Optional[AlertEvaluator] = None,
        profile: GattProfile = DEFAULT_PROFILE,
        scan_timeout_s: float = DEFAULT_SCAN_TIMEOUT_S,
        pump_flow_rate_ml_per_min: float = DEFAULT_PUMP_FLOW_RATE_ML_PER_MIN,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._transport = transport
        self._storage = storage
        self._alerts = alerts
        self._profile = profile
        self._scan_timeout_s = float(scan_timeout_s)
        self._flow_rate = float(pump_flow_rate_ml_per_min)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._log = logger or logging.getLogger(__name__)

        self._actor = SerialExecutor("ble-session", logger=self._log)
        self._persist = SerialExecutor("ble-persist", logger=self._log)

        self._devices: Observers[DeviceHandle] = Observers("device_discovered", logger=self._log)
        self._sensor_data: Observers[SensorPacket] = Observers("sensor_data", logger=self._log)
        self._state_changes: Observers[ConnectionState] = Observers("connection_state", logger=self._log)
        self._errors: Observers[str] = Observers("error", logger=self._log)

        # owned by the session thread
        self._state = ConnectionState.DISCONNECTED
        self._peripheral: Optional[Peripheral] = None
        self._data_char: Optional[GattCharacteristic] = None
        self._command_char: Optional[GattCharacteristic] = None
        self._scan_worker: Optional[ScanWorker] = None
        self._last_error: Optional[str] = None

        self._initialized = False
        self._closed = False
        self._close_lock = threading.Lock()

    # ---------------- state ----------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def connected_device_id(self) -> Optional[str]:
        p = self._peripheral
        return p.device_id if p is not None else None

    @property
    def connected_device_name(self) -> Optional[str]:
        p = self._peripheral
        return p.name if p is not None else None

    def status(self) -> SessionStatus:
        p = self._peripheral
        return SessionStatus(
            state=self._state,
            device_id=p.device_id if p else None,
            device_name=p.name if p else None,
            last_error=self._last_error,
        )

    # ---------------- subscriptions ----------------
    def subscribe_devices(self, cb: Callable[[DeviceHandle], None]) -> Callable[[], None]:
        return self._devices.subscribe(cb)

    def subscribe_sensor_data(self, cb: Callable[[SensorPacket], None]) -> Callable[[], None]:
        return self._sensor_data.subscribe(cb)

    def subscribe_state(self, cb: Callable[[ConnectionState], None]) -> Callable[[], None]:
        return self._state_changes.subscribe(cb)

    def subscribe_errors(self, cb: Callable[[str], None]) -> Callable[[], None]:
        return self._errors.subscribe(cb)

    # ---------------- lifecycle ----------------
    def initialize(self) -> None:
        """
        Open the radio, bind transport events and try the remembered device.

        Raises DeviceConnectError when the adapter cannot be opened or the
        session is already closed; a failed auto-connect is logged and ignored.
        """
        bound = self._call_if_open(self._bind_transport)
        if bound is _SESSION_CLOSED:
            raise self._closed_error("Bluetooth session is closed.")
        if not bound:
            return

        default_id = None
        if self._storage is not None:
            try:
                default_id = self._storage.get_default_device_id()
            except Exception:
                self._log.exception("DEFAULT_DEVICE_LOOKUP_FAILED")

        if not default_id:
            return

        self._log.info("AUTO_CONNECT device_id=%s", default_id)
        try:
            self.connect(default_id)
        except DeviceConnectError as e:
            self._log.warning("AUTO_CONNECT_FAILED device_id=%s err=%s", default_id, e.message)

    def close(self) -> None:
        """Cancel scanning, drop the link, release the radio. Safe to call repeatedly."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        self._log.info("SESSION_CLOSE")
        try:
            self._actor.call(self._shutdown)
        except Exception:
            self._log.exception("SESSION_SHUTDOWN_ERROR")
        finally:
            self._actor.close()
            self._persist.close()

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued session work and telemetry persistence to finish."""
        return self._actor.drain(timeout) and self._persist.drain(timeout)

    def __enter__(self) -> "ConnectionSession":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- scanning ----------------
    def start_scan(self, timeout_s: Optional[float] = None) -> None:
        timeout = self._scan_timeout_s if timeout_s is None else float(timeout_s)
        if self._call_if_open(self._start_scan, timeout) is _SESSION_CLOSED:
            self._log.debug("SCAN_SKIPPED state=closed")
            self._set_error("Scan not started: session is closed")

    def stop_scan(self) -> None:
        self._call_if_open(self._stop_scan)

    def wait_for_scan(self, timeout: Optional[float] = None) -> bool:
        """Block until the current scan window ends. True if no scan is running afterwards."""
        worker = self._scan_worker
        if worker is not None:
            worker.join(timeout)
        self._actor.drain(timeout)
        return self._state is not ConnectionState.SCANNING

    # ---------------- connection ----------------
    def connect(self, device_id: str, cancel: Optional[threading.Event] = None) -> None:
        device_id = str(device_id)
        if self._call_if_open(self._connect, device_id, cancel or threading.Event()) is _SESSION_CLOSED:
            raise self._closed_error("Connection failed: session is closed", device_id=device_id)

    def disconnect(self) -> None:
        self._call_if_open(self._disconnect)

    # ---------------- commands ----------------
    def send_command(self, envelope: CommandEnvelope) -> bool:
        """
        Best-effort command write. Returns False (never raises) when the link
        is down, the session is closed or the write fails; the reason goes to
        the error channel.
        """
        sent = self._call_if_open(self._send_command, envelope)
        if sent is _SESSION_CLOSED:
            self._log.debug("COMMAND_SKIPPED cmd=%s state=closed", envelope.kind.wire_name)
            self._set_error("Not connected")
            return False
        return sent

    def set_water_pump(self, on: bool) -> bool:
        return self.send_command(CommandEnvelope.set_water_pump(on))

    def set_air_pump(self, on: bool) -> bool:
        return self.send_command(CommandEnvelope.set_air_pump(on))

    def request_status(self) -> bool:
        return self.send_command(CommandEnvelope.get_status())

    def set_light_schedule(self, on_hour: int, off_hour: int) -> bool:
        return self.send_command(CommandEnvelope.set_light_schedule(on_hour, off_hour))

    def calibrate(self, sensor: str) -> bool:
        return self.send_command(CommandEnvelope.calibrate(sensor))

    def reboot(self) -> bool:
        return self.send_command(CommandEnvelope.reboot())

    def dose_nutrients(self, duration_ms: int) -> bool:
        duration_ms = int(duration_ms)
        if duration_ms <= 0:
            raise ValueError(f"duration_ms must be positive, got {duration_ms}")

        device_id = self.connected_device_id
        ok = self.send_command(CommandEnvelope.dose_nutrients(duration_ms))
        if ok and device_id and self._storage is not None:
            self._persist.post(self._record_dose, device_id, duration_ms, self._clock())
        return ok

    def _call_if_open(self, fn: Callable[..., object], *args: object) -> object:
        if self._closed:
            return _SESSION_CLOSED
        try:
            return self._actor.call(fn, *args)
        except ExecutorClosedError:
            # close() won the race after the check above
            return _SESSION_CLOSED

    def _closed_error(self, message: str, **details: object) -> DeviceConnectError:
        self._log.debug("SESSION_CALL_AFTER_CLOSE msg=%s", message)
        return DeviceConnectError(
            message,
            hint="The session was closed; create a new one to reconnect.",
            details=dict(details),
        )

    # =====================================================================
    # session-thread internals
    # =====================================================================
    def _bind_transport(self) -> bool:
        if self._initialized:
            return False

        try:
            self._transport.open()
        except TransportError as e:
            self._set_error(f"Bluetooth unavailable: {e}")
            raise DeviceConnectError(
                "Bluetooth adapter unavailable.",
                hint=str(e),
                details={"transport": type(self._transport).__name__},
            ) from e

        self._transport.on_device_discovered = self._on_device_discovered
        self._transport.on_device_connected = self._on_device_connected
        self._transport.on_device_disconnected = self._on_device_disconnected
        self._initialized = True
        self._log.info("SESSION_INITIALIZED transport=%s", type(self._transport).__name__)
        return True

    def _shutdown(self) -> None:
        if self._scan_worker is not None:
            self._stop_scan()
        self._disconnect()

        if self._initialized:
            self._safe_step("close_transport", self._transport.close)
            self._transport.on_device_discovered = None
            self._transport.on_device_connected = None
            self._transport.on_device_disconnected = None
            self._initialized = False

    def _set_state(self, new: ConnectionState) -> None:
        old = self._state
        if new is old:
            return
        self._state = new
        self._log.info("SESSION_STATE %s -> %s", old.value, new.value)
        self._state_changes.emit(new)

    def _set_error(self, message: str) -> None:
        self._last_error = message
        self._errors.emit(message)

    def _safe_step(self, step: str, fn: Callable[[], None]) -> bool:
        try:
            fn()
            return True
        except Exception as e:
            self._log.warning("CLEANUP_STEP_FAILED step=%s err=%s", step, e)
            return False

    # ---------------- scanning ----------------
    def _start_scan(self, timeout_s: float) -> None:
        if self._state is ConnectionState.SCANNING:
            return
        if self._state is not ConnectionState.DISCONNECTED:
            self._set_error(f"Scan not started: session is {self._state.value}")
            return

        self._set_state(ConnectionState.SCANNING)
        try:
            self._transport.start_scan([self._profile.service_uuid], timeout_s)
        except TransportError as e:
            self._log.warning("SCAN_START_FAILED err=%s", e)
            self._set_state(ConnectionState.DISCONNECTED)
            self._set_error(f"Scan failed: {e}")
            return

        worker = ScanWorker(timeout_s, self._on_scan_worker_done)
        self._scan_worker = worker
        worker.start()
        self._log.info("SCAN_STARTED timeout_s=%.1f", timeout_s)

    def _stop_scan(self) -> None:
        worker = self._scan_worker
        if worker is None:
            return
        worker.stop()
        self._end_scan("stopped")

    def _on_scan_worker_done(self, worker: ScanWorker, reason: str) -> None:
        # scan-worker thread
        self._actor.post(self._finish_scan, worker, reason)

    def _finish_scan(self, worker: ScanWorker, reason: str) -> None:
        if self._scan_worker is not worker:
            return
        self._end_scan(reason)

    def _end_scan(self, reason: str) -> None:
        self._scan_worker = None
        try:
            self._transport.stop_scan()
        except TransportError as e:
            self._set_error(f"Scan stop failed: {e}")
        if self._state is ConnectionState.SCANNING:
            self._set_state(ConnectionState.DISCONNECTED)
        self._log.info("SCAN_FINISHED reason=%s", reason)

    def _on_device_discovered(self, handle: DeviceHandle) -> None:
        # transport thread
        self._actor.post(self._emit_discovered, handle)

    def _emit_discovered(self, handle: DeviceHandle) -> None:
        if self._state is not ConnectionState.SCANNING:
            return
        self._log.debug("DEVICE_DISCOVERED id=%s name=%s rssi=%s", handle.device_id, handle.name, handle.rssi)
        self._devices.emit(handle)

    # ---------------- connection ----------------
    def _connect(self, device_id: str, cancel: threading.Event) -> None:
        if self._state is ConnectionState.CONNECTED:
            if self.connected_device_id == device_id:
                return
            self._disconnect()

        self._stop_scan()
        self._set_state(ConnectionState.CONNECTING)
        self._log.info("CONNECTING device_id=%s", device_id)

        peripheral: Optional[Peripheral] = None
        try:
            peripheral = self._transport.connect(device_id, CONNECT_OPTIONS, cancel)
            self._check_cancel(cancel)

            service = self._transport.get_service(peripheral, self._profile.service_uuid)
            data_char = self._transport.get_characteristic(service, self._profile.data_char_uuid)
            command_char = self._transport.get_characteristic(service, self._profile.command_char_uuid)
            self._check_cancel(cancel)

            self._transport.subscribe(data_char, self._on_notification)
        except Exception as e:
            if peripheral is not None:
                self._safe_step("disconnect_after_failed_connect", lambda: self._transport.disconnect(peripheral))
            self._set_state(ConnectionState.DISCONNECTED)

            message = f"Connection failed: {e}"
            self._log.warning("CONNECT_FAILED device_id=%s err=%s", device_id, e)
            self._set_error(message)
            raise DeviceConnectError(
                message,
                hint="Check the controller is powered, advertising and in range.",
                details={"device_id": device_id, "cause": type(e).__name__},
            ) from e

        self._peripheral = peripheral
        self._data_char = data_char
        self._command_char = command_char
        self._last_error = None
        self._set_state(ConnectionState.CONNECTED)
        self._log.info("CONNECTED device_id=%s name=%s", peripheral.device_id, peripheral.name)

    @staticmethod
    def _check_cancel(cancel: threading.Event) -> None:
        if cancel.is_set():
            raise TransportError("connect cancelled")

    def _disconnect(self) -> None:
        peripheral = self._peripheral
        if peripheral is None:
            return

        data_char = self._data_char
        if data_char is not None:
            self._safe_step("unsubscribe", lambda: self._transport.unsubscribe(data_char))
        self._safe_step("disconnect", lambda: self._transport.disconnect(peripheral))

        self._clear_link()
        self._log.info("DISCONNECTED device_id=%s", peripheral.device_id)

    def _clear_link(self) -> None:
        self._peripheral = None
        self._data_char = None
        self._command_char = None
        self._set_state(ConnectionState.DISCONNECTED)

    def _on_device_connected(self, peripheral: Peripheral) -> None:
        # transport thread
        self._log.debug("TRANSPORT_CONNECTED device_id=%s", peripheral.device_id)

    def _on_device_disconnected(self, peripheral: Peripheral) -> None:
        # transport thread
        self._actor.post(self._handle_link_lost, peripheral)

    def _handle_link_lost(self, peripheral: Peripheral) -> None:
        current = self._peripheral
        if current is None or current.device_id != peripheral.device_id:
            return
        self._log.warning("LINK_LOST device_id=%s", peripheral.device_id)
        self._clear_link()

    # ---------------- commands ----------------
    def _send_command(self, envelope: CommandEnvelope) -> bool:
        command_char = self._command_char
        if self._state is not ConnectionState.CONNECTED or command_char is None:
            self._log.debug("COMMAND_SKIPPED cmd=%s state=%s", envelope.kind.wire_name, self._state.value)
            self._set_error("Not connected")
            return False

        raw = encode_command(envelope)
        try:
            self._transport.write(command_char, raw)
        except TransportError as e:
            self._log.warning("COMMAND_WRITE_FAILED cmd=%s err=%s", envelope.kind.wire_name, e)
            self._set_error(f"Command {envelope.kind.wire_name} failed: {e}")
            return False

        self._log.info("COMMAND_SENT cmd=%s len=%d", envelope.kind.wire_name, len(raw))
        return True

    # =====================================================================
    # telemetry path (transport thread -> session thread -> persistence worker)
    # =====================================================================
    def _on_notification(self, raw: bytes) -> None:
        # transport thread; listeners must not run here, they may write back
        self._actor.post(self._handle_notification, bytes(raw))

    def _handle_notification(self, raw: bytes) -> None:
        device_id = self.connected_device_id
        try:
            packet = decode_telemetry(raw, device_id=device_id, clock=self._clock)
        except TelemetryDecodeError as e:
            self._log.warning("TELEMETRY_DECODE_FAILED err=%s hint=%s", e.message, e.hint)
            self._set_error(f"Parse error: {e.message}")
            return

        if packet.is_empty:
            return

        self._sensor_data.emit(packet)

        if device_id and (self._storage is not None or self._alerts is not None):
            self._persist.post(self._persist_packet, packet, device_id)

    def _persist_packet(self, packet: SensorPacket, device_id: str) -> None:
        readings = readings_from_packet(packet, device_id=device_id)

        if self._storage is not None:
            try:
                self._storage.save_readings(readings)
            except Exception:
                self._log.exception("READINGS_PERSIST_FAILED device_id=%s count=%d", device_id, len(readings))

        if self._alerts is not None:
            try:
                self._alerts.evaluate(readings)
            except Exception:
                self._log.exception("ALERT_EVALUATION_FAILED device_id=%s", device_id)

    def _record_dose(self, device_id: str, duration_ms: int, timestamp: datetime) -> None:
        storage = self._storage
        if storage is None:
            return

        try:
            ph = storage.get_latest_reading(device_id, SensorKind.PH)
            tds = storage.get_latest_reading(device_id, SensorKind.TDS)
            event = DosingEvent(
                device_id=device_id,
                duration_ms=duration_ms,
                volume_ml=estimate_dose_volume_ml(duration_ms, self._flow_rate),
                ph_before=ph.value if ph is not None else None,
                tds_before=tds.value if tds is not None else None,
                timestamp=timestamp,
            )
            storage.save_dosing_event(event)
            self._log.info("DOSE_RECORDED device_id=%s duration_ms=%d volume_ml=%.1f", device_id, duration_ms, event.volume_ml)
        except Exception:
            self._log.exception("DOSE_PERSIST_FAILED device_id=%s", device_id)
