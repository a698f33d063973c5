import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.message import MessageCreate, MessageResponse, ReadReceipt
from app.services import message_service

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/{connection_id}", response_model=MessageResponse, status_code=201)
async def send_message(
    connection_id: uuid.UUID,
    data: MessageCreate,
    req: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await message_service.send_message(
        db,
        user.id,
        connection_id,
        data.content,
        data.message_type,
        apns_client=getattr(req.app.state, "apns_client", None),
    )


@router.get("/{connection_id}", response_model=list[MessageResponse])
async def list_messages(
    connection_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await message_service.list_messages(db, user.id, connection_id)


@router.put("/read/{connection_id}", response_model=ReadReceipt)
async def mark_read(
    connection_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Mark every message from the other party as read."""
    count = await message_service.mark_read(db, user.id, connection_id)
    return ReadReceipt(connection_id=connection_id, marked_read=count)
