from __future__ import annotations

import pytest

from hydrolink.app.config import HydroLinkConfig, config_from_mapping, load_config
from hydrolink.core.errors import ConfigError


def write(tmp_path, text):
    p = tmp_path / "hydrolink.yml"
    p.write_text(text, encoding="utf-8")
    return p


def test_none_path_gives_defaults():
    cfg = load_config(None)
    assert cfg == HydroLinkConfig()
    assert cfg.polling.interval_ms == 10_000
    assert cfg.device.gatt_profile().service_uuid == "000000ff-0000-1000-8000-00805f9b34fb"


def test_partial_yaml_keeps_defaults(tmp_path):
    p = write(
        tmp_path,
        """
device:
  command_char_uuid16: 0xFF05
  pump_flow_rate_ml_per_min: 80
api:
  base_url: http://10.0.0.5/api/sensors
polling:
  interval_ms: 5000
logging:
  file: logs/app.log
""",
    )

    cfg = load_config(p)

    assert cfg.device.command_char_uuid16 == 0xFF05
    assert cfg.device.pump_flow_rate_ml_per_min == 80.0
    assert cfg.device.scan_timeout_s == 30.0
    assert cfg.api.base_url == "http://10.0.0.5/api/sensors"
    assert cfg.api.timeout_s == 30.0
    assert cfg.polling.interval_ms == 5000
    assert cfg.logging.file == "logs/app.log"
    assert cfg.device.gatt_profile().command_char_uuid.startswith("0000ff05-")


def test_empty_file_is_defaults(tmp_path):
    assert load_config(write(tmp_path, "")) == HydroLinkConfig()


def test_hex_string_uuid_accepted():
    cfg = config_from_mapping({"device": {"service_uuid16": "0x00FE"}})
    assert cfg.device.service_uuid16 == 0xFE


@pytest.mark.parametrize(
    "data",
    [
        {"device": {"scan_timeout_s": "soon"}},
        {"polling": {"interval_ms": 1.5}},
        {"polling": {"interval_ms": 0}},
        {"api": {"base_url": 42}},
        {"api": "http://x"},
        {"mqtt": {}},
        {"device": {"bogus": 1}},
        {"device": {"service_uuid16": 0x1FFFF}},
        ["not", "a", "mapping"],
    ],
)
def test_invalid_config_raises(data):
    with pytest.raises(ConfigError):
        config_from_mapping(data)  # type: ignore[arg-type]


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError) as ei:
        load_config(tmp_path / "nope.yml")
    assert ei.value.hint


def test_bad_yaml(tmp_path):
    with pytest.raises(ConfigError):
        load_config(write(tmp_path, "device: [unclosed"))
