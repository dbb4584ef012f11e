"""
DeviceHub API - Sensor Data Endpoints

Telemetry readings reported by provisioned devices.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from devicehub.app.api.deps import get_registry
from devicehub.app.errors import NotFound
from devicehub.app.registry import DeviceRegistry
from devicehub.app.schemas import SensorDataOut, SensorDataRequest, SensorDataResponse

router = APIRouter(prefix="/devices/sensor-data", tags=["sensor-data"])


@router.post("", response_model=SensorDataResponse)
async def create_sensor_data(data: SensorDataRequest, registry: DeviceRegistry = Depends(get_registry)):
    """Store a reading from a device."""
    try:
        reading = await registry.save_sensor_data(data.device_id, data.data)
    except NotFound as e:
        return JSONResponse(status_code=404, content={"success": False, **e.to_dict()})
    return SensorDataResponse(success=True, message="Sensor data saved", data=SensorDataOut.from_reading(reading))


@router.get("", response_model=List[SensorDataOut])
async def get_all_sensor_data(registry: DeviceRegistry = Depends(get_registry)):
    return [SensorDataOut.from_reading(r) for r in await registry.list_sensor_data()]


@router.get("/device/{device_id}", response_model=List[SensorDataOut])
async def get_sensor_data_for_device(
    device_id: str,
    limit: Optional[int] = Query(None, ge=1),
    registry: DeviceRegistry = Depends(get_registry),
):
    """Readings for one device, newest first."""
    readings = await registry.sensor_data_for_device(device_id, limit=limit)
    return [SensorDataOut.from_reading(r) for r in readings]


@router.get("/range", response_model=List[SensorDataOut])
async def get_sensor_data_in_range(
    start_time: datetime = Query(..., alias="startTime"),
    end_time: datetime = Query(..., alias="endTime"),
    registry: DeviceRegistry = Depends(get_registry),
):
    readings = await registry.sensor_data_in_range(start_time, end_time)
    return [SensorDataOut.from_reading(r) for r in readings]
