import enum
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.mutable import MutableDict, MutableList
from devicehub.app.database import Base

SENSOR_NODE = "SensorNode"
CLOUD_NODE = "CloudNode"
DEFAULT_DEVICE_TYPE = "ESP32"

# Metadata key holding the MAC of the cloud node a sensor reports to
CLOUD_NODE_MAC_KEY = "cloudNodeMAC"


# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
# One instance per column: as_mutable() matches columns by type identity.
def json_type():
    return JSON().with_variant(JSONB(), "postgresql")


def utcnow():
    return datetime.now(timezone.utc)


def new_id():
    return str(uuid.uuid4())


class DeviceStatus(str, enum.Enum):
    OFFLINE = "Offline"
    ONLINE = "Online"
    PROVISIONING = "Provisioning"
    ERROR = "Error"


class Device(Base):
    __tablename__ = "devices"
    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(128), nullable=False, default="")
    device_type = Column(String(32), nullable=False, default=DEFAULT_DEVICE_TYPE, index=True)
    bluetooth_id = Column(String(128), nullable=False, default="")
    ip_address = Column(String(64))
    mac_address = Column(String(32))
    registered_at = Column(DateTime(timezone=True), default=utcnow)
    last_seen = Column(DateTime(timezone=True), default=utcnow)
    status = Column(String(16), nullable=False, default=DeviceStatus.OFFLINE.value)
    # "metadata" is reserved on declarative classes
    device_metadata = Column("metadata", MutableDict.as_mutable(json_type()), nullable=False, default=dict)
    cloud_node_id = Column(String(64), index=True)
    assigned_sensor_ids = Column(MutableList.as_mutable(json_type()), nullable=False, default=list)

    def __repr__(self):
        return f"<Device {self.id} {self.name!r} {self.device_type}>"


class SensorData(Base):
    __tablename__ = "sensor_data"
    id = Column(String(64), primary_key=True, default=new_id)
    device_id = Column(String(64), ForeignKey("devices.id", ondelete="CASCADE"), nullable=False, index=True)
    device_name = Column(String(128), nullable=False, default="")
    received_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    data = Column(json_type(), nullable=False, default=dict)
