import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import NotFound
from app.models.device import Device

logger = logging.getLogger(__name__)


async def get_user_devices(db: AsyncSession, user_id: uuid.UUID) -> list[Device]:
    """A user's devices, most recently registered first."""
    result = await db.execute(
        select(Device)
        .where(Device.user_id == user_id)
        .order_by(Device.last_registered_at.desc())
    )
    return list(result.scalars().all())


async def register_device(
    db: AsyncSession, user_id: uuid.UUID, token: str, platform: str
) -> Device:
    """Register a push token for the user.

    A token already on file moves to the caller, since it now belongs to
    whoever is signed in on that device. Past the per-user cap, the
    registrations not refreshed for the longest are dropped.
    """
    now = datetime.now(timezone.utc)
    result = await db.execute(select(Device).where(Device.token == token))
    device = result.scalar_one_or_none()

    if device is None:
        device = Device(user_id=user_id, token=token, platform=platform)
        db.add(device)
    elif device.user_id != user_id:
        logger.info("Device %s moved from user %s to %s", device.id, device.user_id, user_id)
        device.user_id = user_id
    device.platform = platform
    device.last_registered_at = now
    await db.flush()

    devices = await get_user_devices(db, user_id)
    stale = [d.id for d in devices[settings.DEVICE_LIMIT_PER_USER:]]
    if stale:
        await db.execute(delete(Device).where(Device.id.in_(stale)))
        logger.info("Dropped %d stale device(s) for user %s", len(stale), user_id)

    await db.refresh(device)
    return device


async def unregister_device(
    db: AsyncSession, user_id: uuid.UUID, device_id: uuid.UUID
) -> None:
    result = await db.execute(
        delete(Device).where(Device.id == device_id, Device.user_id == user_id)
    )
    if result.rowcount != 1:
        raise NotFound("Device not found")
