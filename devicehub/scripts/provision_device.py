#!/usr/bin/env python3
"""
DeviceHub Provisioning Tool

Provisions WiFi credentials and device properties to an ESP32 over BLE,
registers it with the API and, optionally, assigns it to a cloud node and
writes the cloud node's MAC back to the sensor.

Usage:
    python -m devicehub.scripts.provision_device --list
    python -m devicehub.scripts.provision_device --ssid "MyNetwork" --password "MyPassword" \\
        --name "Tank 1" --set refreshRate=30 --cloud-node <cloud-node-id>
"""

import argparse
import asyncio
import logging
import sys

import httpx

from devicehub.client import ApiError, DeviceHubClient, DEFAULT_API_URL
from devicehub.provisioning.errors import ProvisioningError, UserCancelled
from devicehub.provisioning.properties import coerce_property, describe_properties
from devicehub.provisioning.transport import ProvisioningTransport

logger = logging.getLogger("devicehub.provision")


def pick_interactively(peripherals):
    """Stand-in for the browser's device picker."""
    if not peripherals:
        print("No BLE devices found.")
        return None
    for i, p in enumerate(peripherals):
        print(f"  [{i}] {p.name} ({p.id})")
    choice = input("Select device (empty to cancel): ").strip()
    if not choice:
        return None
    try:
        return peripherals[int(choice)]
    except (ValueError, IndexError):
        print(f"Invalid selection: {choice}")
        return None


def pick_by_address(address):
    def choose(peripherals):
        for p in peripherals:
            if p.id.lower() == address.lower():
                return p
        print(f"Device {address} not found.")
        return None
    return choose


def positive_int(value):
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def parse_property_args(pairs):
    """Turn ['refreshRate=30', ...] into {'refreshRate': 30, ...}."""
    props = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise ValueError(f"Expected key=value, got {pair!r}")
        key, raw = pair.split("=", 1)
        props[key.strip()] = coerce_property(key.strip(), raw.strip())
    return props


async def list_peripherals(transport):
    def show(peripherals):
        if not peripherals:
            print("No BLE devices found.")
            return None
        print("Available BLE devices:")
        for p in peripherals:
            print(f"  {p.id} - {p.name}")
        return None

    try:
        await transport.scan(show)
    except UserCancelled:
        pass


async def read_info_with_retry(transport, session, retries, delay):
    """Device info reads right after connect are flaky; retry on a fixed delay."""
    if retries < 1:
        raise ValueError(f"retries must be at least 1, got {retries}")
    for attempt in range(1, retries + 1):
        try:
            return await transport.read_device_info(session)
        except ProvisioningError as e:
            if attempt == retries:
                raise
            logger.debug("Device info attempt %d failed", attempt, exc_info=True)
            print(f"[INFO] Device info read failed ({e}), retrying in {delay:.1f}s...")
            await asyncio.sleep(delay)


async def provision(args):
    transport = ProvisioningTransport(operation_timeout=args.timeout)

    if args.list:
        await list_peripherals(transport)
        return True

    chooser = pick_by_address(args.address) if args.address else pick_interactively
    peripheral = await transport.scan(chooser)
    print(f"[BLE] Connecting to {peripheral.name} ({peripheral.id})...")

    async with await transport.connect(peripheral) as session:
        await asyncio.sleep(args.settle)
        info = await read_info_with_retry(transport, session, args.info_retries, args.settle)
        print(f"[BLE] MAC: {info.mac_address}  Type: {info.device_type}")
        for prop in describe_properties(info):
            unit = f" {prop.unit}" if prop.unit else ""
            print(f"      {prop.label}: {prop.value}{unit}")

        if args.ssid:
            print(f"[WIFI] Sending credentials for {args.ssid}...")
            await transport.write_wifi_credentials(session, args.ssid, args.password or "")
            await asyncio.sleep(args.status_delay)
            status = await transport.read_status(session)
            print(f"[WIFI] Device status: {status}")

        updates = parse_property_args(args.set)
        if updates:
            ack = await transport.update_properties(session, updates)
            print(f"[PROPS] Device replied: {ack}")

        if args.no_register:
            return True

        async with DeviceHubClient(args.api) as api:
            device = await api.register_device(
                device_name=args.name or peripheral.name,
                bluetooth_id=peripheral.id,
                device_type=args.device_type or info.device_type or "ESP32",
                mac_address=info.mac_address or None,
            )
            print(f"[API] Registered {device['name']} as {device['id']}")

            if args.cloud_node:
                mac = await api.assign_sensor(device["id"], args.cloud_node)
                print(f"[API] Assigned to cloud node {args.cloud_node} ({mac})")
                # The registry does not reach the sensor; tell it ourselves
                ack = await transport.update_properties(session, {"cloudNodeMAC": mac})
                print(f"[PROPS] Device replied: {ack}")

    print("\nProvisioning complete.")
    return True


def main():
    parser = argparse.ArgumentParser(description="DeviceHub BLE Provisioning")
    parser.add_argument('--list', action='store_true', help='List nearby BLE devices')
    parser.add_argument('-a', '--address', help='BLE address to connect to (prompt if omitted)')
    parser.add_argument('--ssid', help='WiFi SSID')
    parser.add_argument('--password', help='WiFi password')
    parser.add_argument('--name', help='Device name to register (defaults to BLE name)')
    parser.add_argument('--device-type', help='SensorNode or CloudNode (defaults to what the device reports)')
    parser.add_argument('--set', action='append', metavar='KEY=VALUE', help='Property to write, repeatable')
    parser.add_argument('--cloud-node', help='Cloud node id to assign this sensor to')
    parser.add_argument('--no-register', action='store_true', help='Only talk to the device, skip the API')
    parser.add_argument('--api', default=DEFAULT_API_URL, help=f'API URL (default: {DEFAULT_API_URL})')
    parser.add_argument('--settle', type=float, default=1.0, help='Delay before reading device info')
    parser.add_argument('--info-retries', type=positive_int, default=3, help='Attempts for the first device info read')
    parser.add_argument('--status-delay', type=float, default=2.0, help='Delay before reading WiFi status')
    parser.add_argument('--timeout', type=float, default=10.0, help='Per-operation BLE timeout in seconds')
    parser.add_argument('-v', '--verbose', action='store_true')

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    try:
        ok = asyncio.run(provision(args))
    except UserCancelled:
        print("Cancelled.")
        ok = False
    except ProvisioningError as e:
        print(f"\n[ERROR] {e}")
        ok = False
    except ApiError as e:
        print(f"\n[ERROR] API request failed: {e.message}")
        ok = False
    except httpx.HTTPError as e:
        print(f"\n[ERROR] Could not reach API: {e}")
        ok = False
    except ValueError as e:
        print(f"\n[ERROR] {e}")
        ok = False

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
