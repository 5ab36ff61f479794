from __future__ import annotations

from dataclasses import replace

import hydrolink.app.controller as controller_mod
from hydrolink.app.config import HydroLinkConfig, StorageConfig
from hydrolink.app.controller import HydroLinkController
from hydrolink.model.remote import LatestReading, RemoteReadings
from hydrolink.model.sensor import SensorKind
from hydrolink.runtime.state import ConnectionState
from hydrolink.transport.base import GattCharacteristic, GattService, Peripheral, RadioTransport


class FakeTransport(RadioTransport):
    def __init__(self):
        self.opened = 0
        self.closed = 0
        self.on_value = None

    def open(self):
        self.opened += 1

    def close(self):
        self.closed += 1

    def start_scan(self, service_uuids, timeout_s):
        pass

    def stop_scan(self):
        pass

    def connect(self, device_id, options, cancel=None):
        return Peripheral(device_id=device_id, name="HydroCtl")

    def disconnect(self, peripheral):
        pass

    def get_service(self, peripheral, uuid):
        return GattService(peripheral=peripheral, uuid=uuid)

    def get_characteristic(self, service, uuid):
        return GattCharacteristic(service=service, uuid=uuid)

    def write(self, characteristic, data):
        pass

    def subscribe(self, characteristic, on_value):
        self.on_value = on_value

    def unsubscribe(self, characteristic):
        pass


class FakeApi:
    def get_latest_reading(self):
        return LatestReading("dev-1", None, RemoteReadings({SensorKind.TDS: 1500.0}), "ok")

    def get_sensor_health(self):
        return []


def make_config(tmp_path):
    return replace(HydroLinkConfig(), storage=StorageConfig(data_dir=str(tmp_path)))


def test_start_auto_connects_to_stored_default(tmp_path):
    transport = FakeTransport()
    ctrl = HydroLinkController(make_config(tmp_path), transport=transport, api=FakeApi())
    ctrl.storage.set_default_device_id("AA:BB")

    with ctrl:
        assert ctrl.session.state is ConnectionState.CONNECTED
        assert ctrl.session.connected_device_id == "AA:BB"

    assert transport.closed == 1
    assert ctrl.session.state is ConnectionState.DISCONNECTED


def test_ble_telemetry_and_polling_share_storage(tmp_path):
    transport = FakeTransport()
    with HydroLinkController(make_config(tmp_path), transport=transport, api=FakeApi()) as ctrl:
        ctrl.session.connect("AA:BB")
        transport.on_value(b"PH:6.0,LVL:5")
        ctrl.session.drain(timeout=1.0)

        assert ctrl.polling.refresh() is True

        latest = ctrl.storage.get_latest_reading("AA:BB", SensorKind.WATER_LEVEL)
        assert latest is not None and latest.value == 5.0

    alerts = (tmp_path / "alerts.jsonl").read_text(encoding="utf-8")
    assert "Water level low: 5.00" in alerts
    assert "TDS out of range: 1500.00" in alerts


def test_start_without_ble_leaves_transport_closed(tmp_path):
    transport = FakeTransport()
    ctrl = HydroLinkController(make_config(tmp_path), transport=transport, api=FakeApi())
    ctrl.start(ble=False)
    ctrl.stop()

    assert transport.opened == 0
    assert transport.closed == 0


def test_http_only_use_never_builds_the_radio(monkeypatch, tmp_path):
    built = []
    monkeypatch.setattr(controller_mod, "BleakTransport", lambda **kw: built.append(kw))

    ctrl = HydroLinkController(make_config(tmp_path), api=FakeApi())
    ctrl.start(ble=False)
    assert ctrl.polling.refresh() is True
    ctrl.stop()

    assert built == []
    assert ctrl.has_session is False


def test_session_built_on_first_access(tmp_path):
    transport = FakeTransport()
    ctrl = HydroLinkController(make_config(tmp_path), transport=transport, api=FakeApi())
    assert ctrl.has_session is False

    session = ctrl.session

    assert ctrl.session is session
    assert ctrl.has_session is True
    ctrl.stop()
    assert transport.closed == 0  # never initialized, nothing to release
