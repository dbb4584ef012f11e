"""
Device info payloads and the catalogue of configurable properties.

The device-info characteristic returns UTF-8 JSON::

    {"macAddress": "AA:BB:CC:DD:EE:FF",
     "deviceType": "SensorNode",
     "properties": {"minDistance": 20, "maxDistance": 180, ...}}

``DeviceInfo.properties`` keeps every key the peripheral reports.  Only
``describe_properties`` filters, down to the keys listed in
``KNOWN_PROPERTIES``, because those are the only ones we know how to label.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from devicehub.provisioning.errors import DecodeError

# Bump when KNOWN_PROPERTIES changes shape or meaning
PROPERTY_SCHEMA_VERSION = 1

NUMBER = "number"
STRING = "string"


@dataclass(frozen=True)
class PropertySpec:
    label: str
    kind: str
    unit: Optional[str] = None


KNOWN_PROPERTIES: Dict[str, PropertySpec] = {
    "minDistance": PropertySpec("Minimum Distance (Full)", NUMBER, "cm"),
    "maxDistance": PropertySpec("Maximum Distance (Empty)", NUMBER, "cm"),
    "refreshRate": PropertySpec("Refresh Rate", NUMBER, "seconds"),
    "totalLitres": PropertySpec("Tank Capacity", NUMBER, "litres"),
    "cloudNodeMAC": PropertySpec("Cloud Node MAC Address", STRING),
}


@dataclass
class DeviceInfo:
    mac_address: str
    device_type: str
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, raw: bytes) -> "DeviceInfo":
        text = decode_text(raw)
        try:
            doc = json.loads(text)
        except ValueError as e:
            raise DecodeError(f"Device info is not valid JSON: {e}") from e
        if not isinstance(doc, dict):
            raise DecodeError("Device info must be a JSON object")

        properties = doc.get("properties") or {}
        if not isinstance(properties, dict):
            raise DecodeError("Device info 'properties' must be a JSON object")

        return cls(
            mac_address=str(doc.get("macAddress") or ""),
            device_type=str(doc.get("deviceType") or ""),
            properties=properties,
        )


@dataclass
class DeviceProperty:
    name: str
    label: str
    kind: str
    value: Any
    unit: Optional[str] = None


def describe_properties(info: DeviceInfo) -> List[DeviceProperty]:
    """Labelled view of the known properties, in the order the device sent them."""
    described = []
    for name, value in info.properties.items():
        spec = KNOWN_PROPERTIES.get(name)
        if spec is None:
            continue
        described.append(DeviceProperty(name=name, label=spec.label, kind=spec.kind, value=value, unit=spec.unit))
    return described


def coerce_property(name: str, raw: str) -> Any:
    """Parse an operator-typed value according to the property's kind."""
    spec = KNOWN_PROPERTIES.get(name)
    if spec is None or spec.kind == STRING:
        return raw
    try:
        return int(raw)
    except ValueError:
        return float(raw)


def decode_text(raw: bytes) -> str:
    try:
        return bytes(raw).decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Characteristic value is not UTF-8: {e}") from e


def encode_properties(properties: Dict[str, Any]) -> bytes:
    return json.dumps(properties, separators=(",", ":")).encode("utf-8")
