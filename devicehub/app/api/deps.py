from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from devicehub.app.database import get_session
from devicehub.app.registry import DeviceRegistry
from devicehub.app.store import SqlDeviceStore


async def get_registry(session: AsyncSession = Depends(get_session)) -> DeviceRegistry:
    """One registry per request, bound to the request's database session."""
    return DeviceRegistry(SqlDeviceStore(session))
