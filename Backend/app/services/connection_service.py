import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import AlreadyExists, Forbidden, InvalidState, NotFound, RateLimited, ValidationError
from app.models.connection import ACCEPTED, BLOCKED, CONNECTION_STATUSES, PENDING, REJECTED, Connection
from app.models.user import User
from app.services.notification_service import CONNECTION_ACCEPTED, CONNECTION_REQUESTED, notify

logger = logging.getLogger(__name__)


# --- Store ---


async def find_by_id(db: AsyncSession, connection_id: uuid.UUID) -> Connection | None:
    return await db.get(Connection, connection_id)


async def find_between(
    db: AsyncSession, user_a: uuid.UUID, user_b: uuid.UUID
) -> Connection | None:
    """Find a connection between two users, whichever of them requested it."""
    result = await db.execute(
        select(Connection).where(
            or_(
                and_(Connection.requester_id == user_a, Connection.recipient_id == user_b),
                and_(Connection.requester_id == user_b, Connection.recipient_id == user_a),
            )
        )
    )
    return result.scalars().first()


async def create_connection(
    db: AsyncSession, requester_id: uuid.UUID, recipient_id: uuid.UUID
) -> Connection:
    """Insert a pending connection. The pair constraint rejects a concurrent duplicate."""
    pair_low, pair_high = (min(requester_id, recipient_id), max(requester_id, recipient_id))
    connection = Connection(
        requester_id=requester_id,
        recipient_id=recipient_id,
        pair_low=pair_low,
        pair_high=pair_high,
        status=PENDING,
    )
    db.add(connection)
    try:
        await db.flush()
    except IntegrityError:
        raise AlreadyExists("Connection already exists")
    await db.refresh(connection, ["requester", "recipient", "status", "created_at", "updated_at"])
    return connection


async def find_for_user(
    db: AsyncSession, user_id: uuid.UUID, status: str | None = None
) -> list[Connection]:
    query = select(Connection).where(
        or_(
            Connection.requester_id == user_id,
            Connection.recipient_id == user_id,
        )
    )
    if status is not None:
        query = query.where(Connection.status == status)
    query = query.order_by(Connection.created_at.desc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_status(
    db: AsyncSession,
    connection_id: uuid.UUID,
    new_status: str,
    expected: tuple[str, ...],
) -> bool:
    """Compare-and-set the status in one statement. Returns False if nothing matched."""
    if new_status not in CONNECTION_STATUSES:
        raise ValueError(f"Unknown connection status: {new_status}")
    result = await db.execute(
        update(Connection)
        .where(Connection.id == connection_id, Connection.status.in_(expected))
        .values(status=new_status, updated_at=datetime.now(timezone.utc))
    )
    return result.rowcount == 1


# --- Lifecycle ---


async def _check_request_quota(user_id: uuid.UUID, redis_client) -> str | None:
    if redis_client is None:
        return None
    today_key = f"connection_requests:{user_id}:{datetime.now(timezone.utc).date()}"
    count = await redis_client.get(today_key)
    limit = settings.CONNECTION_REQUEST_DAILY_LIMIT
    if count and int(count) >= limit:
        raise RateLimited(f"Daily connection request limit reached ({limit}/day)")
    return today_key


async def request_connection(
    db: AsyncSession,
    user_id: uuid.UUID,
    target_id: uuid.UUID,
    redis_client=None,
    apns_client=None,
) -> Connection:
    """Send a connection request to another user."""
    if target_id == user_id:
        raise ValidationError("Cannot connect with yourself")

    today_key = await _check_request_quota(user_id, redis_client)

    target = await db.get(User, target_id)
    if target is None:
        raise NotFound("User not found")

    if await find_between(db, user_id, target_id) is not None:
        raise AlreadyExists("Connection already exists")

    connection = await create_connection(db, user_id, target_id)
    logger.info("Connection %s requested by %s to %s", connection.id, user_id, target_id)

    if today_key is not None:
        await redis_client.incr(today_key)
        await redis_client.expire(today_key, 86400)

    requester = await db.get(User, user_id)
    await notify(
        db,
        CONNECTION_REQUESTED,
        target_id,
        {"from_username": requester.username if requester else "Someone"},
        apns_client,
    )
    return connection


async def _transition(
    db: AsyncSession,
    user_id: uuid.UUID,
    connection_id: uuid.UUID,
    new_status: str,
    expected: tuple[str, ...],
    recipient_only: bool,
) -> Connection:
    connection = await find_by_id(db, connection_id)
    if connection is None:
        raise NotFound("Connection not found")

    if recipient_only:
        if connection.recipient_id != user_id:
            raise Forbidden("Not authorized")
    elif not connection.has_party(user_id):
        raise Forbidden("Not authorized")

    if connection.status not in expected:
        raise InvalidState(f"Connection is already {connection.status}")

    if not await update_status(db, connection_id, new_status, expected):
        # Lost a race with another writer
        await db.refresh(connection)
        raise InvalidState(f"Connection is already {connection.status}")

    await db.refresh(connection)
    logger.info("Connection %s is now %s (by %s)", connection_id, new_status, user_id)
    return connection


async def accept_connection(
    db: AsyncSession, user_id: uuid.UUID, connection_id: uuid.UUID, apns_client=None
) -> Connection:
    """Accept a pending request. Only the recipient may accept."""
    connection = await _transition(
        db, user_id, connection_id, ACCEPTED, (PENDING,), recipient_only=True
    )
    recipient = await db.get(User, user_id)
    await notify(
        db,
        CONNECTION_ACCEPTED,
        connection.requester_id,
        {"from_username": recipient.username if recipient else "Someone"},
        apns_client,
    )
    return connection


async def reject_connection(
    db: AsyncSession, user_id: uuid.UUID, connection_id: uuid.UUID
) -> Connection:
    """Reject a pending request. Only the recipient may reject."""
    return await _transition(
        db, user_id, connection_id, REJECTED, (PENDING,), recipient_only=True
    )


async def block_connection(
    db: AsyncSession, user_id: uuid.UUID, connection_id: uuid.UUID
) -> Connection:
    """Block a connection from any status. Either party may block."""
    return await _transition(
        db,
        user_id,
        connection_id,
        BLOCKED,
        (PENDING, ACCEPTED, REJECTED),
        recipient_only=False,
    )


async def list_connections(db: AsyncSession, user_id: uuid.UUID) -> list[Connection]:
    return await find_for_user(db, user_id)


async def list_active_connections(db: AsyncSession, user_id: uuid.UUID) -> list[Connection]:
    return await find_for_user(db, user_id, status=ACCEPTED)
