from __future__ import annotations

import pytest

from hydrolink.protocol.gatt import DEFAULT_PROFILE, GattProfile, expand_uuid16


def test_default_profile_uuids():
    assert DEFAULT_PROFILE.service_uuid == "000000ff-0000-1000-8000-00805f9b34fb"
    assert DEFAULT_PROFILE.data_char_uuid == "0000ff01-0000-1000-8000-00805f9b34fb"
    assert DEFAULT_PROFILE.command_char_uuid == "0000ff02-0000-1000-8000-00805f9b34fb"


def test_from_short_custom():
    p = GattProfile.from_short(0x180D, 0x2A37, 0x2A39)
    assert p.service_uuid.startswith("0000180d-")
    assert p.data_char_uuid.startswith("00002a37-")


@pytest.mark.parametrize("bad", [-1, 0x10000])
def test_expand_rejects_out_of_range(bad):
    with pytest.raises(ValueError):
        expand_uuid16(bad)
