"""
DeviceHub API - Device Endpoints

Device registry CRUD and the sensor/cloud-node assignment graph.
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from devicehub.app.api.deps import get_registry
from devicehub.app.errors import NotFound, RegistryError
from devicehub.app.models import DeviceStatus
from devicehub.app.registry import DeviceRegistry
from devicehub.app.schemas import (
    AssignSensorRequest,
    AssignSensorResponse,
    DeviceOut,
    MessageResponse,
    ProvisioningRequest,
    ProvisioningResponse,
    UpdateDeviceTypeRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/devices", tags=["devices"])


def error_response(status_code: int, exc: RegistryError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@router.get("", response_model=List[DeviceOut])
async def get_devices(registry: DeviceRegistry = Depends(get_registry)):
    """Get all registered devices."""
    return [DeviceOut.from_device(d) for d in await registry.list_devices()]


@router.post("/register", response_model=ProvisioningResponse)
async def register_device(data: ProvisioningRequest, registry: DeviceRegistry = Depends(get_registry)):
    """Register a device that has just been provisioned over BLE."""
    logger.info("Registering device: %s", data.device_name)
    try:
        device = await registry.register_device(
            device_name=data.device_name,
            bluetooth_id=data.bluetooth_id,
            device_type=data.device_type,
            mac_address=data.mac_address,
        )
    except RegistryError as e:
        logger.warning("Failed to register device: %s", e.message)
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": f"Failed to register device: {e.message}", "code": e.code},
        )
    return ProvisioningResponse(success=True, message="Device registered successfully", device=DeviceOut.from_device(device))


@router.post("/assign-sensor", response_model=AssignSensorResponse)
async def assign_sensor(data: AssignSensorRequest, registry: DeviceRegistry = Depends(get_registry)):
    """Assign a sensor to a cloud node; the caller writes the returned MAC to the sensor."""
    logger.info("Assigning sensor %s to cloud node %s", data.sensor_id, data.cloud_node_id)
    try:
        mac = await registry.assign_sensor_to_cloud_node(data.sensor_id, data.cloud_node_id)
    except RegistryError as e:
        logger.warning("Failed to assign sensor %s: %s", data.sensor_id, e.message)
        return error_response(400, e)
    return AssignSensorResponse(message="Sensor assigned to cloud node successfully", cloud_node_mac_address=mac)


@router.get("/cloud-nodes", response_model=List[DeviceOut])
async def get_cloud_nodes(registry: DeviceRegistry = Depends(get_registry)):
    return [DeviceOut.from_device(d) for d in await registry.list_cloud_nodes()]


@router.get("/cloud-nodes/{cloud_node_id}/sensors", response_model=List[DeviceOut])
async def get_sensors_for_cloud_node(cloud_node_id: str, registry: DeviceRegistry = Depends(get_registry)):
    return [DeviceOut.from_device(d) for d in await registry.sensors_for_cloud_node(cloud_node_id)]


@router.get("/{device_id}", response_model=DeviceOut)
async def get_device(device_id: str, registry: DeviceRegistry = Depends(get_registry)):
    try:
        device = await registry.get_device(device_id)
    except NotFound as e:
        return error_response(404, e)
    return DeviceOut.from_device(device)


@router.put("/{device_id}/status", response_model=MessageResponse)
async def update_device_status(
    device_id: str,
    status: DeviceStatus = Body(...),
    registry: DeviceRegistry = Depends(get_registry),
):
    try:
        await registry.update_status(device_id, status)
    except NotFound as e:
        return error_response(404, e)
    return {"message": "Device status updated"}


@router.put("/{device_id}/metadata", response_model=DeviceOut)
async def update_device_metadata(
    device_id: str,
    metadata: Dict[str, str] = Body(...),
    registry: DeviceRegistry = Depends(get_registry),
):
    try:
        device = await registry.update_metadata(device_id, metadata)
    except NotFound as e:
        return error_response(404, e)
    return DeviceOut.from_device(device)


@router.put("/{device_id}/type", response_model=DeviceOut)
async def update_device_type(
    device_id: str,
    data: UpdateDeviceTypeRequest,
    registry: DeviceRegistry = Depends(get_registry),
):
    try:
        device = await registry.update_device_type(device_id, data.device_type)
    except NotFound as e:
        return error_response(404, e)
    return DeviceOut.from_device(device)


@router.delete("/{device_id}", response_model=MessageResponse)
async def delete_device(device_id: str, registry: DeviceRegistry = Depends(get_registry)):
    try:
        await registry.delete_device(device_id)
    except NotFound as e:
        return error_response(404, e)
    return {"message": "Device deleted successfully"}
