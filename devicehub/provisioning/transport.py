"""
BLE provisioning transport for ESP32 nodes, built on bleak.

The peripheral exposes one GATT service with five characteristics:

    ff01  WiFi SSID        write   UTF-8
    ff02  WiFi password    write   UTF-8
    ff03  status           read    UTF-8 (opaque, interpreted by the caller)
    ff04  device info      read    UTF-8 JSON
    ff05  properties       read/write UTF-8 JSON, read returns an ack string

``connect()`` hands back a :class:`ProvisioningSession` which every other
call takes explicitly.  A transport tracks at most one live session.  There
is no retry anywhere in here; settle delays and retries around the first
device-info read belong to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from devicehub.provisioning.errors import (
    AlreadyConnected,
    ConnectionFailed,
    NotConnected,
    OperationTimeout,
    ReadFailed,
    Unavailable,
    UserCancelled,
    WriteFailed,
)
from devicehub.provisioning.properties import DeviceInfo, decode_text, encode_properties

logger = logging.getLogger(__name__)

PROVISIONING_SERVICE_UUID = "0000ff00-0000-1000-8000-00805f9b34fb"
WIFI_SSID_CHAR_UUID = "0000ff01-0000-1000-8000-00805f9b34fb"
WIFI_PASSWORD_CHAR_UUID = "0000ff02-0000-1000-8000-00805f9b34fb"
STATUS_CHAR_UUID = "0000ff03-0000-1000-8000-00805f9b34fb"
DEVICE_INFO_CHAR_UUID = "0000ff04-0000-1000-8000-00805f9b34fb"
PROPERTIES_CHAR_UUID = "0000ff05-0000-1000-8000-00805f9b34fb"

DEFAULT_SCAN_TIMEOUT = 5.0
DEFAULT_OPERATION_TIMEOUT = 10.0
DEFAULT_PROPERTIES_SETTLE_DELAY = 0.5

# Errors bleak and the OS stack surface for a failed GATT round trip
TRANSPORT_ERRORS = (BleakError, OSError)


@dataclass
class Peripheral:
    """A discovered device, not yet connected."""
    id: str
    name: str
    device: Any = None

    @classmethod
    def from_ble_device(cls, device) -> "Peripheral":
        return cls(id=device.address, name=device.name or "Unknown Device", device=device)


class ProvisioningSession:
    """One GATT connection to one peripheral."""

    def __init__(self, transport: "ProvisioningTransport", peripheral: Peripheral):
        self.transport = transport
        self.peripheral = peripheral
        self.client = None
        self.info: Optional[DeviceInfo] = None
        self._open = False

    @property
    def is_connected(self) -> bool:
        return self._open and self.client is not None and self.client.is_connected

    def _close(self):
        self._open = False
        self.info = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.transport.disconnect(self)

    def __repr__(self):
        state = "connected" if self.is_connected else "closed"
        return f"<ProvisioningSession {self.peripheral.name} ({self.peripheral.id}) {state}>"


class ProvisioningTransport:
    """
    Sequential request/response driver for the provisioning service.

    Parameters
    ----------
    client_factory : callable
        Builds a GATT client for a peripheral.  Defaults to ``BleakClient``;
        tests inject fakes with the same ``connect / disconnect /
        read_gatt_char / write_gatt_char`` surface.
    discover : coroutine function
        Returns discovered devices.  Defaults to ``BleakScanner.discover``.
    operation_timeout : float
        Upper bound in seconds for every GATT operation.
    """

    def __init__(
        self,
        client_factory: Callable = BleakClient,
        discover: Callable = BleakScanner.discover,
        scan_timeout: float = DEFAULT_SCAN_TIMEOUT,
        operation_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        properties_settle_delay: float = DEFAULT_PROPERTIES_SETTLE_DELAY,
    ):
        self.client_factory = client_factory
        self.discover = discover
        self.scan_timeout = scan_timeout
        self.operation_timeout = operation_timeout
        self.properties_settle_delay = properties_settle_delay
        self._session: Optional[ProvisioningSession] = None
        self._connecting: Optional[ProvisioningSession] = None

    @property
    def session(self) -> Optional[ProvisioningSession]:
        return self._session

    # ------------------------------------------------------------------
    # Discovery and connection
    # ------------------------------------------------------------------
    async def scan(self, choose: Callable[[Sequence[Peripheral]], Optional[Peripheral]]) -> Peripheral:
        """
        Discover nearby peripherals and let ``choose`` pick one.

        ``choose`` plays the role of the platform device picker: it gets the
        discovered peripherals and returns one of them, or None to cancel.
        Nothing is connected here.
        """
        try:
            devices = await self.discover(timeout=self.scan_timeout)
        except TRANSPORT_ERRORS as e:
            raise Unavailable(f"Bluetooth is not available: {e}") from e

        peripherals = [Peripheral.from_ble_device(d) for d in devices]
        logger.debug("Discovered %d peripheral(s)", len(peripherals))

        chosen = choose(peripherals)
        if chosen is None:
            raise UserCancelled("No device selected")
        return chosen

    async def connect(self, peripheral: Peripheral) -> ProvisioningSession:
        if self._connecting is not None:
            raise AlreadyConnected(f"Already connecting to {self._connecting.peripheral.name}")
        if self._session is not None and self._session.is_connected:
            raise AlreadyConnected(f"Already connected to {self._session.peripheral.name}")

        session = ProvisioningSession(self, peripheral)

        def on_disconnect(_client):
            self._handle_disconnect(session)

        target = peripheral.device if peripheral.device is not None else peripheral.id
        # Claimed before the first await so overlapping calls are refused
        self._connecting = session
        try:
            client = self.client_factory(target, disconnected_callback=on_disconnect)
            session.client = client
            await self._bounded(client.connect(), "connect")
        except (OperationTimeout,) + TRANSPORT_ERRORS as e:
            raise ConnectionFailed(f"Failed to connect to {peripheral.name}: {e}") from e
        finally:
            self._connecting = None

        session._open = True
        self._session = session
        logger.info("Connected to %s (%s)", peripheral.name, peripheral.id)
        return session

    async def disconnect(self, session: Optional[ProvisioningSession] = None) -> None:
        """Tear down the session. Calling it with nothing connected is a no-op."""
        session = session or self._session
        if session is None or not session._open:
            return
        try:
            await self._bounded(session.client.disconnect(), "disconnect")
        except (OperationTimeout,) + TRANSPORT_ERRORS as e:
            logger.warning("Disconnect from %s did not complete cleanly: %s", session.peripheral.name, e)
        self._handle_disconnect(session)

    def _handle_disconnect(self, session: ProvisioningSession) -> None:
        if session._open:
            logger.info("Device %s disconnected", session.peripheral.name)
        session._close()
        if self._session is session:
            self._session = None

    # ------------------------------------------------------------------
    # Characteristic operations
    # ------------------------------------------------------------------
    async def read_device_info(self, session: ProvisioningSession) -> DeviceInfo:
        """Read and decode the device-info characteristic.

        ``session.info`` is only replaced when decoding succeeds.
        """
        raw = await self._read(session, DEVICE_INFO_CHAR_UUID, "device info")
        logger.debug("Raw device info received: %r", bytes(raw))
        info = DeviceInfo.from_payload(raw)
        session.info = info
        return info

    async def write_wifi_credentials(self, session: ProvisioningSession, ssid: str, password: str) -> None:
        # SSID must land before the password; a failed SSID write stops here
        await self._write(session, WIFI_SSID_CHAR_UUID, ssid.encode("utf-8"), "WiFi SSID")
        await self._write(session, WIFI_PASSWORD_CHAR_UUID, password.encode("utf-8"), "WiFi password")
        logger.info("WiFi credentials sent to %s (ssid=%s)", session.peripheral.name, ssid)

    async def read_status(self, session: ProvisioningSession) -> str:
        raw = await self._read(session, STATUS_CHAR_UUID, "status")
        return decode_text(raw)

    async def update_properties(self, session: ProvisioningSession, properties: Dict[str, Any]) -> str:
        """Write ``properties`` as JSON, wait for the device to apply them, return its ack."""
        try:
            payload = encode_properties(properties)
        except (TypeError, ValueError) as e:
            raise WriteFailed(f"Properties are not JSON serializable: {e}") from e

        await self._write(session, PROPERTIES_CHAR_UUID, payload, "properties")
        logger.info("Properties sent to %s: %s", session.peripheral.name, payload.decode("utf-8"))

        await asyncio.sleep(self.properties_settle_delay)
        raw = await self._read(session, PROPERTIES_CHAR_UUID, "properties acknowledgement")
        return decode_text(raw)

    async def list_services(self, session: ProvisioningSession) -> List[str]:
        """Service UUIDs the peripheral exposes. Debug aid."""
        self._require(session)
        uuids = [service.uuid for service in session.client.services]
        logger.debug("Available services: %s", uuids)
        return uuids

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require(self, session: Optional[ProvisioningSession]) -> None:
        if session is None or session is not self._session or not session.is_connected:
            raise NotConnected("No device connected")

    async def _bounded(self, awaitable, action: str):
        try:
            return await asyncio.wait_for(awaitable, self.operation_timeout)
        except asyncio.TimeoutError as e:
            raise OperationTimeout(f"{action} timed out after {self.operation_timeout:.1f}s") from e

    async def _write(self, session: ProvisioningSession, char_uuid: str, data: bytes, what: str) -> None:
        self._require(session)
        try:
            await self._bounded(session.client.write_gatt_char(char_uuid, data, response=True), f"write {what}")
        except TRANSPORT_ERRORS as e:
            raise WriteFailed(f"Failed to write {what}: {e}") from e

    async def _read(self, session: ProvisioningSession, char_uuid: str, what: str) -> bytes:
        self._require(session)
        try:
            return await self._bounded(session.client.read_gatt_char(char_uuid), f"read {what}")
        except TRANSPORT_ERRORS as e:
            raise ReadFailed(f"Failed to read {what}: {e}") from e
