#!/usr/bin/env python3
"""
DeviceHub Mock Sensor

Simulates a provisioned tank-level SensorNode: registers itself (unless an
existing id is given) and pushes readings to the sensor-data endpoint.

Usage:
    python -m devicehub.scripts.mock_sensor --name "Mock Tank" --interval 5
    python -m devicehub.scripts.mock_sensor --device-id <id> --count 10
"""

import argparse
import asyncio
import random

from devicehub.client import ApiError, DeviceHubClient, DEFAULT_API_URL


class MockSensor:
    def __init__(self, api, device_id, min_distance=20.0, max_distance=180.0, total_litres=1000.0):
        self.api = api
        self.device_id = device_id
        self.min_distance = min_distance
        self.max_distance = max_distance
        self.total_litres = total_litres
        self.distance = (min_distance + max_distance) / 2

    def reading(self):
        """Drift the water level and convert it to litres like the firmware does."""
        self.distance += random.uniform(-2.0, 2.0)
        self.distance = max(self.min_distance, min(self.max_distance, self.distance))
        fill = (self.max_distance - self.distance) / (self.max_distance - self.min_distance)
        return {
            "distance": round(self.distance, 1),
            "litres": round(fill * self.total_litres, 1),
            "percentage": round(fill * 100, 1),
        }

    async def push(self):
        data = self.reading()
        try:
            await self.api.post_sensor_data(self.device_id, data)
            print(f"[DATA] {data}")
        except ApiError as e:
            print(f"Failed to push reading: {e.message}")


async def run(args):
    async with DeviceHubClient(args.api) as api:
        device_id = args.device_id
        if not device_id:
            device = await api.register_device(
                device_name=args.name,
                bluetooth_id=f"mock-{random.randint(0, 0xFFFF):04x}",
                device_type="SensorNode",
            )
            device_id = device["id"]
        print(f"\n[INIT] Mock sensor {device_id}")
        print(f"       API: {args.api}\n")

        sensor = MockSensor(api, device_id)
        sent = 0
        while args.count is None or sent < args.count:
            await sensor.push()
            sent += 1
            await asyncio.sleep(args.interval)


def main():
    parser = argparse.ArgumentParser(description="DeviceHub Mock Sensor")
    parser.add_argument('--api', default=DEFAULT_API_URL, help=f'API URL (default: {DEFAULT_API_URL})')
    parser.add_argument('--device-id', help='Existing device id (registers a new one if omitted)')
    parser.add_argument('--name', default='Mock Tank Sensor', help='Name used when registering')
    parser.add_argument('--interval', type=float, default=5.0, help='Seconds between readings')
    parser.add_argument('--count', type=int, help='Stop after this many readings')
    args = parser.parse_args()

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    main()
