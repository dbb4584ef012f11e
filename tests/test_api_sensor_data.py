"""Sensor data endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest


async def register(client, name):
    response = await client.post("/api/devices/register", json={"deviceName": name, "bluetoothId": f"bt-{name}"})
    return response.json()["device"]


@pytest.mark.asyncio
async def test_post_reading_marks_device_online(api_client):
    device = await register(api_client, "Tank")

    response = await api_client.post(
        "/api/devices/sensor-data", json={"deviceId": device["id"], "data": {"litres": 750.5, "distance": 42}}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["deviceName"] == "Tank"
    assert body["data"]["data"] == {"litres": 750.5, "distance": 42}

    stored = (await api_client.get(f"/api/devices/{device['id']}")).json()
    assert stored["status"] == "Online"


@pytest.mark.asyncio
async def test_post_reading_for_unknown_device(api_client):
    response = await api_client.post("/api/devices/sensor-data", json={"deviceId": "nope", "data": {}})
    assert response.status_code == 404
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_readings_by_device_with_limit(api_client):
    a = await register(api_client, "A")
    b = await register(api_client, "B")
    for i in range(3):
        await api_client.post("/api/devices/sensor-data", json={"deviceId": a["id"], "data": {"i": i}})
    await api_client.post("/api/devices/sensor-data", json={"deviceId": b["id"], "data": {"i": 9}})

    everything = (await api_client.get("/api/devices/sensor-data")).json()
    assert len(everything) == 4

    limited = (await api_client.get(f"/api/devices/sensor-data/device/{a['id']}", params={"limit": 2})).json()
    assert [r["data"]["i"] for r in limited] == [2, 1]

    unlimited = (await api_client.get(f"/api/devices/sensor-data/device/{a['id']}")).json()
    assert len(unlimited) == 3


@pytest.mark.asyncio
async def test_readings_in_range(api_client):
    device = await register(api_client, "A")
    await api_client.post("/api/devices/sensor-data", json={"deviceId": device["id"], "data": {"i": 1}})

    now = datetime.now(timezone.utc)
    params = {
        "startTime": (now - timedelta(minutes=5)).isoformat(),
        "endTime": (now + timedelta(minutes=5)).isoformat(),
    }
    response = await api_client.get("/api/devices/sensor-data/range", params=params)
    assert response.status_code == 200
    assert len(response.json()) == 1

    later = {
        "startTime": (now + timedelta(hours=1)).isoformat(),
        "endTime": (now + timedelta(hours=2)).isoformat(),
    }
    assert (await api_client.get("/api/devices/sensor-data/range", params=later)).json() == []
