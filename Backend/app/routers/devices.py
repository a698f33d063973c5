import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.device import DeviceRegister, DeviceResponse
from app.services import device_service

router = APIRouter(prefix="/devices", tags=["devices"])


@router.post("/register", response_model=DeviceResponse, status_code=201)
async def register_device(
    data: DeviceRegister,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Register a push token. Re-registering a known token refreshes it."""
    return await device_service.register_device(db, user.id, data.token, data.platform)


@router.get("", response_model=list[DeviceResponse])
async def list_devices(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await device_service.get_user_devices(db, user.id)


@router.delete("/{device_id}", status_code=204)
async def unregister_device(
    device_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await device_service.unregister_device(db, user.id, device_id)
