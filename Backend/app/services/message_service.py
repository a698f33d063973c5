import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import Forbidden, InvalidState, NotFound, ValidationError
from app.models.connection import ACCEPTED, Connection
from app.models.message import LOCATION, MEETING_REQUEST, MESSAGE_TYPES, TEXT, Message
from app.models.user import User
from app.services.notification_service import MESSAGE_RECEIVED, notify

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 80


def _preview(message_type: str, content: str) -> str:
    if message_type == LOCATION:
        return "shared a location"
    if message_type == MEETING_REQUEST:
        return "wants to plan a meeting"
    if len(content) > PREVIEW_LENGTH:
        return content[: PREVIEW_LENGTH - 3] + "..."
    return content


async def _get_connection_for_party(
    db: AsyncSession, user_id: uuid.UUID, connection_id: uuid.UUID
) -> Connection:
    connection = await db.get(Connection, connection_id)
    if connection is None:
        raise NotFound("Connection not found")
    if not connection.has_party(user_id):
        raise Forbidden("Not authorized")
    return connection


async def send_message(
    db: AsyncSession,
    user_id: uuid.UUID,
    connection_id: uuid.UUID,
    content: str,
    message_type: str = TEXT,
    apns_client=None,
) -> Message:
    """Post a message on an active connection and notify the other party."""
    content = (content or "").strip()
    if not content:
        raise ValidationError("Message content is required")
    if message_type not in MESSAGE_TYPES:
        raise ValidationError(f"Unknown message type: {message_type}")

    connection = await _get_connection_for_party(db, user_id, connection_id)
    if connection.status != ACCEPTED:
        raise InvalidState("Cannot send message: connection is not active")

    message = Message(
        connection_id=connection_id,
        sender_id=user_id,
        message_type=message_type,
        content=content,
    )
    db.add(message)
    await db.flush()
    await db.refresh(message, ["sender", "is_read", "created_at"])
    logger.info("Message %s sent on connection %s", message.id, connection_id)

    other = connection.recipient_id if connection.requester_id == user_id else connection.requester_id
    sender = await db.get(User, user_id)
    await notify(
        db,
        MESSAGE_RECEIVED,
        other,
        {
            "from_username": sender.username if sender else "Someone",
            "preview": _preview(message_type, content),
        },
        apns_client,
    )
    return message


async def list_messages(
    db: AsyncSession, user_id: uuid.UUID, connection_id: uuid.UUID
) -> list[Message]:
    """The conversation on a connection, oldest first.

    History stays readable to both parties whatever the connection status.
    """
    await _get_connection_for_party(db, user_id, connection_id)
    result = await db.execute(
        select(Message)
        .where(Message.connection_id == connection_id)
        .order_by(Message.created_at.asc())
    )
    return list(result.scalars().all())


async def mark_read(
    db: AsyncSession, user_id: uuid.UUID, connection_id: uuid.UUID
) -> int:
    """Mark the other party's unread messages as read. Returns how many changed."""
    await _get_connection_for_party(db, user_id, connection_id)
    result = await db.execute(
        update(Message)
        .where(
            Message.connection_id == connection_id,
            Message.sender_id != user_id,
            Message.is_read == False,  # noqa: E712
        )
        .values(is_read=True)
    )
    return result.rowcount
