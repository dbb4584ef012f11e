"""
Persistence port for the device registry.

``DeviceStore`` is what ``DeviceRegistry`` talks to.  Two backends ship:

* ``InMemoryDeviceStore`` keeps ORM instances in plain dicts/lists and is
  used by the test-suite and by the mock tooling.
* ``SqlDeviceStore`` wraps an ``AsyncSession`` and is what the API uses.

Both hand out live ``Device`` objects; the registry mutates them in place
and calls ``commit()`` once per operation.
"""

import abc
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from devicehub.app.models import Device, SensorData


class DeviceStore(abc.ABC):

    @abc.abstractmethod
    async def get_device(self, device_id: str, lock: bool = False) -> Optional[Device]:
        """Return the device or None. ``lock`` asks for a row lock until commit."""

    @abc.abstractmethod
    async def list_devices(self) -> List[Device]:
        ...

    @abc.abstractmethod
    async def list_by_type(self, device_type: str) -> List[Device]:
        ...

    @abc.abstractmethod
    async def list_by_cloud_node(self, cloud_node_id: str) -> List[Device]:
        ...

    @abc.abstractmethod
    async def add(self, obj) -> None:
        """Stage a new Device or SensorData."""

    @abc.abstractmethod
    async def delete_device(self, device: Device) -> None:
        """Remove a device together with its sensor data."""

    @abc.abstractmethod
    async def list_sensor_data(
        self,
        device_id: Optional[str] = None,
        limit: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[SensorData]:
        """Readings matching the filters, newest first."""

    @abc.abstractmethod
    async def commit(self) -> None:
        ...


class InMemoryDeviceStore(DeviceStore):

    def __init__(self):
        self.devices = {}
        self.readings = []

    async def get_device(self, device_id, lock=False):
        return self.devices.get(device_id)

    async def list_devices(self):
        return list(self.devices.values())

    async def list_by_type(self, device_type):
        return [d for d in self.devices.values() if d.device_type == device_type]

    async def list_by_cloud_node(self, cloud_node_id):
        return [d for d in self.devices.values() if d.cloud_node_id == cloud_node_id]

    async def add(self, obj):
        if isinstance(obj, Device):
            self.devices[obj.id] = obj
        elif isinstance(obj, SensorData):
            self.readings.append(obj)
        else:
            raise TypeError(f"Cannot store {type(obj).__name__}")

    async def delete_device(self, device):
        self.devices.pop(device.id, None)
        self.readings = [r for r in self.readings if r.device_id != device.id]

    async def list_sensor_data(self, device_id=None, limit=None, start=None, end=None):
        rows = [
            r for r in self.readings
            if (device_id is None or r.device_id == device_id)
            and (start is None or r.received_at >= start)
            and (end is None or r.received_at <= end)
        ]
        # Reverse first so equal timestamps still come out newest first
        rows = sorted(reversed(rows), key=lambda r: r.received_at, reverse=True)
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def commit(self):
        pass


class SqlDeviceStore(DeviceStore):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_device(self, device_id, lock=False):
        if not lock:
            return await self.session.get(Device, device_id)
        stmt = (
            select(Device)
            .where(Device.id == device_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_devices(self):
        result = await self.session.execute(select(Device).order_by(Device.registered_at))
        return list(result.scalars().all())

    async def list_by_type(self, device_type):
        stmt = select(Device).where(Device.device_type == device_type).order_by(Device.registered_at)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_cloud_node(self, cloud_node_id):
        stmt = select(Device).where(Device.cloud_node_id == cloud_node_id).order_by(Device.registered_at)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add(self, obj):
        self.session.add(obj)
        # Flush so defaults and FK checks happen inside the operation
        await self.session.flush()

    async def delete_device(self, device):
        await self.session.execute(delete(SensorData).where(SensorData.device_id == device.id))
        await self.session.delete(device)

    async def list_sensor_data(self, device_id=None, limit=None, start=None, end=None):
        stmt = select(SensorData)
        if device_id is not None:
            stmt = stmt.where(SensorData.device_id == device_id)
        if start is not None:
            stmt = stmt.where(SensorData.received_at >= start)
        if end is not None:
            stmt = stmt.where(SensorData.received_at <= end)
        stmt = stmt.order_by(SensorData.received_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def commit(self):
        await self.session.commit()
