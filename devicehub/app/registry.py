"""
Device registry.

Owns device and sensor data records and keeps the assignment graph
consistent: a sensor's ``cloud_node_id`` always points at a CloudNode whose
``assigned_sensor_ids`` lists that sensor.  Nothing here talks to hardware;
propagating a cloud node MAC to the physical sensor is the caller's job.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from devicehub.app.errors import NotFound, PreconditionFailed
from devicehub.app.models import (
    Device,
    DeviceStatus,
    SensorData,
    SENSOR_NODE,
    CLOUD_NODE,
    DEFAULT_DEVICE_TYPE,
    CLOUD_NODE_MAC_KEY,
    new_id,
    utcnow,
)
from devicehub.app.store import DeviceStore

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DeviceRegistry:

    def __init__(self, store: DeviceStore):
        self.store = store

    async def _require(self, device_id: str, lock: bool = False, what: str = "Device") -> Device:
        device = await self.store.get_device(device_id, lock=lock)
        if device is None:
            raise NotFound(f"{what} not found")
        return device

    # --- Devices -----------------------------------------------------------

    async def list_devices(self) -> List[Device]:
        return await self.store.list_devices()

    async def get_device(self, device_id: str) -> Device:
        return await self._require(device_id)

    async def register_device(
        self,
        device_name: str,
        bluetooth_id: str = "",
        device_type: str = DEFAULT_DEVICE_TYPE,
        mac_address: Optional[str] = None,
    ) -> Device:
        """Create a device record in the Provisioning state."""
        if not device_name or not device_name.strip():
            raise PreconditionFailed("Device name is required")

        now = utcnow()
        device = Device(
            id=new_id(),
            name=device_name,
            device_type=device_type or DEFAULT_DEVICE_TYPE,
            bluetooth_id=bluetooth_id or "",
            mac_address=mac_address or None,
            registered_at=now,
            last_seen=now,
            status=DeviceStatus.PROVISIONING.value,
            device_metadata={},
            cloud_node_id=None,
            assigned_sensor_ids=[],
        )
        await self.store.add(device)
        await self.store.commit()
        logger.info("Registered %s device %s (%s)", device.device_type, device.name, device.id)
        return device

    async def update_status(self, device_id: str, status: DeviceStatus) -> Device:
        device = await self._require(device_id)
        device.status = DeviceStatus(status).value
        device.last_seen = utcnow()
        await self.store.commit()
        return device

    async def update_metadata(self, device_id: str, metadata: Dict[str, str]) -> Device:
        """Merge ``metadata`` into the device's map, overwriting by key."""
        device = await self._require(device_id)
        for key, value in metadata.items():
            device.device_metadata[key] = value
        device.last_seen = utcnow()
        await self.store.commit()
        return device

    async def update_device_type(self, device_id: str, device_type: str) -> Device:
        """
        Re-type a device and repair the assignment graph.

        Becoming a CloudNode (from SensorNode or any other non-cloud type)
        detaches the device from the cloud node it reported to.
        CloudNode -> SensorNode releases every sensor that reported to it.
        Any other change only touches ``device_type``.
        """
        device = await self._require(device_id, lock=True)
        old_type = device.device_type
        device.device_type = device_type
        device.last_seen = utcnow()

        if old_type != CLOUD_NODE and device_type == CLOUD_NODE:
            old_cloud_node_id = device.cloud_node_id
            device.cloud_node_id = None
            if old_cloud_node_id:
                old_cloud_node = await self.store.get_device(old_cloud_node_id, lock=True)
                if old_cloud_node is not None and device_id in old_cloud_node.assigned_sensor_ids:
                    old_cloud_node.assigned_sensor_ids.remove(device_id)

        elif old_type == CLOUD_NODE and device_type == SENSOR_NODE:
            for sensor in await self.store.list_by_cloud_node(device_id):
                self._detach(sensor)
            device.assigned_sensor_ids.clear()

        await self.store.commit()
        logger.info("Device %s type changed %s -> %s", device_id, old_type, device_type)
        return device

    async def assign_sensor_to_cloud_node(self, sensor_id: str, cloud_node_id: str) -> str:
        """
        Point a sensor at a cloud node and return the cloud node's MAC.

        Re-assigning the same pair is idempotent.  Moving a sensor to a new
        cloud node removes it from the previous one.
        """
        sensor = await self._require(sensor_id, lock=True, what="Sensor")
        cloud_node = await self._require(cloud_node_id, lock=True, what="Cloud node")

        if sensor_id == cloud_node_id:
            raise PreconditionFailed("A device cannot be assigned to itself")
        if cloud_node.device_type != CLOUD_NODE:
            raise PreconditionFailed("Target device is not a cloud node")
        if sensor.device_type == CLOUD_NODE:
            raise PreconditionFailed("A cloud node cannot be assigned to another cloud node")
        if not cloud_node.mac_address:
            raise PreconditionFailed("Cloud node does not have a MAC address")

        previous_id = sensor.cloud_node_id
        if previous_id and previous_id != cloud_node_id:
            previous = await self.store.get_device(previous_id, lock=True)
            if previous is not None and sensor_id in previous.assigned_sensor_ids:
                previous.assigned_sensor_ids.remove(sensor_id)

        sensor.cloud_node_id = cloud_node_id
        sensor.device_metadata[CLOUD_NODE_MAC_KEY] = cloud_node.mac_address
        sensor.last_seen = utcnow()

        if sensor_id not in cloud_node.assigned_sensor_ids:
            cloud_node.assigned_sensor_ids.append(sensor_id)

        await self.store.commit()
        logger.info("Assigned sensor %s to cloud node %s (%s)", sensor_id, cloud_node_id, cloud_node.mac_address)
        return cloud_node.mac_address

    async def list_by_type(self, device_type: str) -> List[Device]:
        return await self.store.list_by_type(device_type)

    async def list_cloud_nodes(self) -> List[Device]:
        return await self.store.list_by_type(CLOUD_NODE)

    async def sensors_for_cloud_node(self, cloud_node_id: str) -> List[Device]:
        return await self.store.list_by_cloud_node(cloud_node_id)

    async def delete_device(self, device_id: str) -> None:
        """Delete a device, its readings, and its edges in the assignment graph."""
        device = await self._require(device_id, lock=True)

        for sensor in await self.store.list_by_cloud_node(device_id):
            self._detach(sensor)

        if device.cloud_node_id:
            cloud_node = await self.store.get_device(device.cloud_node_id, lock=True)
            if cloud_node is not None and device_id in cloud_node.assigned_sensor_ids:
                cloud_node.assigned_sensor_ids.remove(device_id)

        await self.store.delete_device(device)
        await self.store.commit()
        logger.info("Deleted device %s", device_id)

    @staticmethod
    def _detach(sensor: Device) -> None:
        sensor.cloud_node_id = None
        sensor.device_metadata.pop(CLOUD_NODE_MAC_KEY, None)

    # --- Sensor data -------------------------------------------------------

    async def save_sensor_data(self, device_id: str, data: Dict[str, Any]) -> SensorData:
        """Store a reading and mark its device Online."""
        device = await self._require(device_id)
        now = utcnow()
        reading = SensorData(
            id=new_id(),
            device_id=device.id,
            device_name=device.name,
            received_at=now,
            data=dict(data),
        )
        await self.store.add(reading)
        device.last_seen = now
        device.status = DeviceStatus.ONLINE.value
        await self.store.commit()
        return reading

    async def list_sensor_data(self) -> List[SensorData]:
        return await self.store.list_sensor_data()

    async def sensor_data_for_device(self, device_id: str, limit: Optional[int] = None) -> List[SensorData]:
        return await self.store.list_sensor_data(device_id=device_id, limit=limit)

    async def sensor_data_in_range(self, start: datetime, end: datetime) -> List[SensorData]:
        return await self.store.list_sensor_data(start=_as_utc(start), end=_as_utc(end))
