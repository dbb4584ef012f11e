"""Shared test fixtures: in-memory registry, SQLite store, API client, fake BLE stack."""

from __future__ import annotations

import asyncio
import os

# Keep the module-level engine away from Postgres during tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.pool import StaticPool

from devicehub.app.api.deps import get_registry
from devicehub.app.database import Base
from devicehub.app.main import app
from devicehub.app.registry import DeviceRegistry
from devicehub.app.store import InMemoryDeviceStore
from devicehub.provisioning.transport import (
    PROPERTIES_CHAR_UUID,
    PROVISIONING_SERVICE_UUID,
    ProvisioningTransport,
)


# ----------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------
@pytest.fixture
def store() -> InMemoryDeviceStore:
    return InMemoryDeviceStore()


@pytest.fixture
def registry(store) -> DeviceRegistry:
    return DeviceRegistry(store)


@pytest_asyncio.fixture
async def sql_sessionmaker():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def api_client(store):
    """HTTP client against the ASGI app, backed by the in-memory store."""
    app.dependency_overrides[get_registry] = lambda: DeviceRegistry(store)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# ----------------------------------------------------------------------
# BLE fakes
# ----------------------------------------------------------------------
class FakeBLEDevice:
    def __init__(self, address, name):
        self.address = address
        self.name = name


class FakeService:
    def __init__(self, uuid):
        self.uuid = uuid


class FakeGattClient:
    """Mimics the slice of ``BleakClient`` the transport uses."""

    def __init__(self):
        self.target = None
        self.disconnected_callback = None
        self.is_connected = False
        self.connect_error = None
        self.connect_delay = 0.0
        self.values = {}
        self.read_errors = {}
        self.write_errors = {}
        self.read_delay = 0.0
        self.writes = []
        self.reads = []
        self.properties_ack = "OK"
        self.services = [FakeService(PROVISIONING_SERVICE_UUID)]

    async def connect(self):
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        self.is_connected = True
        return True

    async def disconnect(self):
        self.drop()
        return True

    def drop(self):
        """Peripheral-side disconnect: fire the callback like bleak does."""
        was_connected = self.is_connected
        self.is_connected = False
        if was_connected and self.disconnected_callback is not None:
            self.disconnected_callback(self)

    async def read_gatt_char(self, uuid):
        self.reads.append(uuid)
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        if uuid in self.read_errors:
            raise self.read_errors[uuid]
        if uuid == PROPERTIES_CHAR_UUID:
            return bytearray(self.properties_ack.encode("utf-8"))
        return bytearray(self.values.get(uuid, b""))

    async def write_gatt_char(self, uuid, data, response=False):
        if uuid in self.write_errors:
            raise self.write_errors[uuid]
        self.writes.append((uuid, bytes(data)))


@pytest.fixture
def gatt() -> FakeGattClient:
    return FakeGattClient()


@pytest.fixture
def ble_devices():
    return [FakeBLEDevice("24:6F:28:AA:00:01", "ESP32-Tank"), FakeBLEDevice("24:6F:28:AA:00:02", None)]


@pytest.fixture
def transport(gatt, ble_devices) -> ProvisioningTransport:
    def client_factory(target, disconnected_callback=None):
        gatt.target = target
        gatt.disconnected_callback = disconnected_callback
        return gatt

    async def discover(timeout=None):
        return ble_devices

    return ProvisioningTransport(
        client_factory=client_factory,
        discover=discover,
        operation_timeout=1.0,
        properties_settle_delay=0,
    )
