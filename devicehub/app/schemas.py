from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional, Dict, Any, List

from devicehub.app.models import DEFAULT_DEVICE_TYPE


class CamelModel(BaseModel):
    """Wire models speak camelCase JSON but accept snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DeviceOut(CamelModel):
    id: str
    name: str
    device_type: str
    bluetooth_id: str
    ip_address: Optional[str] = None
    mac_address: Optional[str] = None
    registered_at: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    status: str
    metadata: Dict[str, str] = {}
    cloud_node_id: Optional[str] = None
    assigned_sensor_ids: List[str] = []

    @classmethod
    def from_device(cls, device):
        return cls(
            id=device.id,
            name=device.name,
            device_type=device.device_type,
            bluetooth_id=device.bluetooth_id,
            ip_address=device.ip_address,
            mac_address=device.mac_address,
            registered_at=device.registered_at,
            last_seen=device.last_seen,
            status=device.status,
            metadata=dict(device.device_metadata or {}),
            cloud_node_id=device.cloud_node_id,
            assigned_sensor_ids=list(device.assigned_sensor_ids or []),
        )


class ProvisioningRequest(CamelModel):
    device_name: str = ""
    bluetooth_id: str = ""
    device_type: str = DEFAULT_DEVICE_TYPE
    mac_address: Optional[str] = None


class ProvisioningResponse(CamelModel):
    success: bool
    message: str
    device: Optional[DeviceOut] = None


class AssignSensorRequest(CamelModel):
    sensor_id: str
    cloud_node_id: str


class AssignSensorResponse(CamelModel):
    message: str
    cloud_node_mac_address: str


class UpdateDeviceTypeRequest(CamelModel):
    device_type: str


class MessageResponse(BaseModel):
    message: str


class SensorDataRequest(CamelModel):
    device_id: str
    data: Dict[str, Any] = {}


class SensorDataOut(CamelModel):
    id: str
    device_id: str
    device_name: str
    received_at: datetime
    data: Dict[str, Any] = {}

    @classmethod
    def from_reading(cls, reading):
        return cls(
            id=reading.id,
            device_id=reading.device_id,
            device_name=reading.device_name,
            received_at=reading.received_at,
            data=dict(reading.data or {}),
        )


class SensorDataResponse(CamelModel):
    success: bool
    message: str
    data: Optional[SensorDataOut] = None
