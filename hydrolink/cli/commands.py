# hydrolink/cli/commands.py
from __future__ import annotations

import argparse
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from hydrolink.app.config import HydroLinkConfig
from hydrolink.app.controller import HydroLinkController
from hydrolink.core.errors import ConfigError
from hydrolink.model.device import DeviceHandle
from hydrolink.model.remote import AggregationInterval, PollingSnapshot
from hydrolink.model.sensor import SensorPacket
from hydrolink.runtime.session import ConnectionSession
from hydrolink.runtime.state import ConnectionState


# ---------------- printing ----------------

def print_device(handle: DeviceHandle) -> None:
    rssi = handle.rssi if handle.rssi is not None else "-"
    print(f"DEVICE id={handle.device_id} name={handle.name} rssi={rssi}")


def print_packet(packet: SensorPacket) -> None:
    values = " ".join(f"{kind.value}={value:g}" for kind, value in packet.present())
    print(f"DATA {packet.captured_at:%H:%M:%S} {values}")


def print_state(state: ConnectionState) -> None:
    print(f"STATE {state.value}")


def print_error(message: str) -> None:
    print(f"ERROR: {message}")


def print_snapshot(snapshot: PollingSnapshot) -> None:
    latest = snapshot.latest
    if latest is None:
        print("LATEST (none)")
    else:
        values = " ".join(
            f"{kind.value}={value:g}" for kind, value in latest.readings.values.items() if value is not None
        )
        ts = latest.timestamp.isoformat() if latest.timestamp else "-"
        print(f"LATEST device={latest.device_id} ts={ts} status={latest.status or '-'} {values}".rstrip())

    print(f"HEALTH online={snapshot.online_count}/{len(snapshot.health)}")
    for h in snapshot.health:
        last = f"{h.last_value:g}" if h.last_value is not None else "-"
        err = f" err={h.error_message}" if h.error_message else ""
        print(f"  - {h.sensor_id} type={h.sensor_type} status={h.status} online={h.is_online} last={last}{err}")


def _wait(secs: Optional[float]) -> None:
    t0 = time.monotonic()
    try:
        while secs is None or time.monotonic() - t0 < secs:
            time.sleep(0.2)
    except KeyboardInterrupt:
        print()


def _resolve_device(controller: HydroLinkController, device: Optional[str]) -> str:
    device_id = device or controller.storage.get_default_device_id()
    if not device_id:
        raise ConfigError(
            "No device id given and no default device stored.",
            hint="Run 'hydrolink scan', then pass --device <id> (add --set-default to remember it).",
        )
    return device_id


def _attach_output(session: ConnectionSession) -> None:
    session.subscribe_state(print_state)
    session.subscribe_errors(print_error)


# ---------------- BLE commands ----------------

def cmd_scan(args: argparse.Namespace, cfg: HydroLinkConfig) -> int:
    with HydroLinkController(cfg) as controller:
        session = controller.session
        session.subscribe_devices(print_device)
        session.subscribe_errors(print_error)

        secs = cfg.device.scan_timeout_s if args.secs is None else args.secs
        print(f"Scanning {secs:.0f}s for service {cfg.device.gatt_profile().service_uuid} ...")
        session.start_scan(secs)
        try:
            session.wait_for_scan(secs + 5.0)
        except KeyboardInterrupt:
            session.stop_scan()
        return 0


def cmd_monitor(args: argparse.Namespace, cfg: HydroLinkConfig) -> int:
    with HydroLinkController(cfg) as controller:
        session = controller.session
        _attach_output(session)
        session.subscribe_sensor_data(print_packet)

        device_id = _resolve_device(controller, args.device)
        session.connect(device_id)
        if args.set_default:
            controller.storage.set_default_device_id(device_id)

        print(f"Connected: {session.connected_device_name} ({device_id})")
        _wait(args.secs)
        session.drain(timeout=2.0)
        return 0


def cmd_send(args: argparse.Namespace, cfg: HydroLinkConfig) -> int:
    with HydroLinkController(cfg) as controller:
        session = controller.session
        _attach_output(session)
        session.connect(_resolve_device(controller, args.device))

        action = args.action
        if action == "water-pump":
            ok = session.set_water_pump(args.state)
        elif action == "air-pump":
            ok = session.set_air_pump(args.state)
        elif action == "dose":
            ok = session.dose_nutrients(args.duration_ms)
        elif action == "lights":
            ok = session.set_light_schedule(args.on_hour, args.off_hour)
        elif action == "calibrate":
            ok = session.calibrate(args.sensor)
        elif action == "reboot":
            ok = session.reboot()
        elif action == "status":
            ok = session.request_status()
        else:
            return 2

        session.drain(timeout=2.0)
        print(f"SENT {action}" if ok else f"FAILED {action}")
        return 0 if ok else 1


# ---------------- sensor API commands ----------------

def cmd_poll(args: argparse.Namespace, cfg: HydroLinkConfig) -> int:
    controller = HydroLinkController(cfg)
    controller.start(ble=False)
    try:
        polling = controller.polling
        polling.subscribe_updates(print_snapshot)
        polling.subscribe_errors(print_error)

        if args.once:
            polling.refresh()
            return 0

        print(f"Polling every {polling.interval_ms} ms")
        polling.start_polling()
        _wait(args.secs)
        polling.stop_polling()
        return 0
    finally:
        controller.stop()


def cmd_devices(args: argparse.Namespace, cfg: HydroLinkConfig) -> int:
    controller = HydroLinkController(cfg)
    controller.start(ble=False)
    try:
        devices = controller.api.get_devices()
        if not devices:
            print("Devices: (none)")
            return 0
        print("Devices:")
        for d in devices:
            where = d.location_name or "-"
            active = "active" if d.is_active else "inactive"
            print(f"  - id={d.id} name={d.name} type={d.type} unit={d.unit or '-'} location={where} {active}")
        return 0
    finally:
        controller.stop()


def cmd_history(args: argparse.Namespace, cfg: HydroLinkConfig) -> int:
    controller = HydroLinkController(cfg)
    controller.start(ble=False)
    try:
        rows = controller.api.get_history(args.device, hours=args.hours)
        print(f"History device={args.device} hours={args.hours} rows={len(rows)}")
        for r in rows:
            print("  " + " ".join(f"{k.value}={v:g}" for k, v in r.values.items() if v is not None))
        return 0
    finally:
        controller.stop()


def cmd_aggregated(args: argparse.Namespace, cfg: HydroLinkConfig) -> int:
    controller = HydroLinkController(cfg)
    controller.start(ble=False)
    try:
        end = datetime.now(timezone.utc)
        start = end - timedelta(hours=args.hours)
        rows = controller.api.get_aggregated(args.device, AggregationInterval(args.interval), start, end)
        print(f"Aggregated device={args.device} interval={args.interval} buckets={len(rows)}")
        for r in rows:
            ts = r.bucket_time.isoformat() if r.bucket_time else "-"
            print(
                f"  {ts} sensor={r.sensor_id} avg={r.avg_value:g} min={r.min_value:g} "
                f"max={r.max_value:g} n={r.reading_count}"
            )
        return 0
    finally:
        controller.stop()
