"""
Async client for the DeviceHub REST API.

Used by the provisioning CLI and the mock sensor.  The base URL comes from
``DEVICEHUB_API_URL`` unless one is passed in.
"""

import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

DEFAULT_API_URL = os.getenv("DEVICEHUB_API_URL", "http://localhost:8000/api")


class ApiError(Exception):
    def __init__(self, status_code: int, message: str, code: Optional[str] = None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.code = code


class DeviceHubClient:

    def __init__(self, api_url: str = DEFAULT_API_URL, timeout: float = 5.0, transport=None):
        self.api_url = api_url.rstrip("/")
        self.client = httpx.AsyncClient(base_url=self.api_url, timeout=timeout, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self.client.request(method, path, **kwargs)
        if response.is_success:
            return response.json()
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        raise ApiError(response.status_code, body.get("message") or response.reason_phrase, body.get("code"))

    # --- Devices -------------------------------------------------------

    async def list_devices(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/devices")

    async def get_device(self, device_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/devices/{device_id}")

    async def register_device(
        self,
        device_name: str,
        bluetooth_id: str,
        device_type: str,
        mac_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Register a device and return the stored record."""
        payload = {
            "deviceName": device_name,
            "bluetoothId": bluetooth_id,
            "deviceType": device_type,
            "macAddress": mac_address,
        }
        result = await self._request("POST", "/devices/register", json=payload)
        return result["device"]

    async def update_status(self, device_id: str, status: str) -> str:
        result = await self._request("PUT", f"/devices/{device_id}/status", json=status)
        return result["message"]

    async def update_metadata(self, device_id: str, metadata: Dict[str, str]) -> Dict[str, Any]:
        return await self._request("PUT", f"/devices/{device_id}/metadata", json=metadata)

    async def update_device_type(self, device_id: str, device_type: str) -> Dict[str, Any]:
        return await self._request("PUT", f"/devices/{device_id}/type", json={"deviceType": device_type})

    async def delete_device(self, device_id: str) -> str:
        result = await self._request("DELETE", f"/devices/{device_id}")
        return result["message"]

    async def assign_sensor(self, sensor_id: str, cloud_node_id: str) -> str:
        """Assign in the registry; returns the MAC the sensor must be told about."""
        payload = {"sensorId": sensor_id, "cloudNodeId": cloud_node_id}
        result = await self._request("POST", "/devices/assign-sensor", json=payload)
        return result["cloudNodeMacAddress"]

    async def list_cloud_nodes(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/devices/cloud-nodes")

    async def sensors_for_cloud_node(self, cloud_node_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/devices/cloud-nodes/{cloud_node_id}/sensors")

    # --- Sensor data ---------------------------------------------------

    async def post_sensor_data(self, device_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._request("POST", "/devices/sensor-data", json={"deviceId": device_id, "data": data})
        return result["data"]

    async def sensor_data(self, device_id: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        if device_id is None:
            return await self._request("GET", "/devices/sensor-data")
        params = {"limit": limit} if limit else None
        return await self._request("GET", f"/devices/sensor-data/device/{device_id}", params=params)

    async def sensor_data_in_range(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        params = {"startTime": start.isoformat(), "endTime": end.isoformat()}
        return await self._request("GET", "/devices/sensor-data/range", params=params)
