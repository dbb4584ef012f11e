"""Device info decoding and the property catalogue."""

from __future__ import annotations

import pytest

from devicehub.provisioning.errors import DecodeError
from devicehub.provisioning.properties import (
    DeviceInfo,
    coerce_property,
    describe_properties,
)


def test_describe_keeps_known_keys_in_device_order():
    info = DeviceInfo(
        mac_address="24:6F:28:AA:00:01",
        device_type="SensorNode",
        properties={"totalLitres": 1000, "firmware": "1.4.2", "cloudNodeMAC": "AA:BB:CC:DD:EE:FF"},
    )

    described = describe_properties(info)

    assert [p.name for p in described] == ["totalLitres", "cloudNodeMAC"]
    assert described[0].label == "Tank Capacity"
    assert described[0].kind == "number"
    assert described[0].unit == "litres"
    assert described[1].kind == "string"
    assert described[1].unit is None
    # Raw map is untouched
    assert info.properties["firmware"] == "1.4.2"


def test_missing_fields_default_to_empty():
    info = DeviceInfo.from_payload(b"{}")
    assert info.mac_address == ""
    assert info.device_type == ""
    assert info.properties == {}


@pytest.mark.parametrize("payload", [b"[1, 2]", b'{"properties": [1]}', b"not json"])
def test_bad_payloads(payload):
    with pytest.raises(DecodeError):
        DeviceInfo.from_payload(payload)


def test_coerce_property():
    assert coerce_property("refreshRate", "30") == 30
    assert coerce_property("maxDistance", "180.5") == 180.5
    assert coerce_property("cloudNodeMAC", "AA:BB") == "AA:BB"
    assert coerce_property("somethingElse", "7") == "7"
    with pytest.raises(ValueError):
        coerce_property("refreshRate", "fast")
