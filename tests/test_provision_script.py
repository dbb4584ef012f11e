"""Helpers of the provisioning CLI: property parsing and the caller-side retry."""

from __future__ import annotations

import argparse
import json

import pytest

from devicehub.provisioning.errors import ReadFailed
from devicehub.provisioning.transport import DEVICE_INFO_CHAR_UUID
from devicehub.scripts.provision_device import (
    parse_property_args,
    pick_by_address,
    positive_int,
    read_info_with_retry,
)


def test_parse_property_args():
    assert parse_property_args(["refreshRate=30", "cloudNodeMAC=AA:BB:CC:DD:EE:FF"]) == {
        "refreshRate": 30,
        "cloudNodeMAC": "AA:BB:CC:DD:EE:FF",
    }
    assert parse_property_args(None) == {}
    with pytest.raises(ValueError):
        parse_property_args(["refreshRate"])


@pytest.mark.asyncio
async def test_pick_by_address(transport):
    peripheral = await transport.scan(pick_by_address("24:6f:28:aa:00:02"))
    assert peripheral.id == "24:6F:28:AA:00:02"


@pytest.mark.asyncio
async def test_info_read_is_retried(transport, gatt):
    gatt.values[DEVICE_INFO_CHAR_UUID] = json.dumps({"macAddress": "M", "deviceType": "CloudNode"}).encode()
    session = await transport.connect(await transport.scan(lambda ps: ps[0]))

    original = transport.read_device_info
    calls = []

    async def flaky(s):
        calls.append(s)
        if len(calls) == 1:
            raise ReadFailed("not ready")
        return await original(s)

    transport.read_device_info = flaky
    info = await read_info_with_retry(transport, session, retries=3, delay=0)

    assert info.device_type == "CloudNode"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_info_read_gives_up(transport, gatt):
    gatt.read_errors[DEVICE_INFO_CHAR_UUID] = OSError("gatt busy")
    session = await transport.connect(await transport.scan(lambda ps: ps[0]))
    with pytest.raises(ReadFailed):
        await read_info_with_retry(transport, session, retries=2, delay=0)
    assert gatt.reads.count(DEVICE_INFO_CHAR_UUID) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("retries", [0, -1])
async def test_info_read_needs_at_least_one_attempt(transport, gatt, retries):
    session = await transport.connect(await transport.scan(lambda ps: ps[0]))
    with pytest.raises(ValueError):
        await read_info_with_retry(transport, session, retries=retries, delay=0)
    assert DEVICE_INFO_CHAR_UUID not in gatt.reads


def test_info_retries_flag_must_be_positive():
    assert positive_int("2") == 2
    with pytest.raises(argparse.ArgumentTypeError):
        positive_int("0")
