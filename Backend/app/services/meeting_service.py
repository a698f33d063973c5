import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    AlreadyAccepted,
    Forbidden,
    InvalidOperation,
    InvalidState,
    NotFound,
    ValidationError,
)
from app.models.connection import ACCEPTED as CONNECTION_ACCEPTED
from app.models.connection import Connection
from app.models.meeting import (
    ACCEPTED,
    CANCELED,
    COMPLETED,
    MEETING_STATUSES,
    PROPOSED,
    TERMINAL_STATUSES,
    Meeting,
    MeetingAcceptance,
)
from app.models.user import User
from app.services.notification_service import (
    MEETING_ACCEPTED,
    MEETING_CANCELED,
    MEETING_CONFIRMED,
    MEETING_PROPOSED,
    notify,
)

logger = logging.getLogger(__name__)


def _other_party(connection: Connection, user_id: uuid.UUID) -> uuid.UUID:
    return connection.recipient_id if connection.requester_id == user_id else connection.requester_id


async def _username(db: AsyncSession, user_id: uuid.UUID) -> str:
    user = await db.get(User, user_id)
    return user.username if user else "Someone"


async def _get_for_party(
    db: AsyncSession, user_id: uuid.UUID, meeting_id: uuid.UUID
) -> tuple[Meeting, Connection]:
    """Load a meeting and its connection, requiring the caller to be a connection party."""
    meeting = await db.get(Meeting, meeting_id)
    if meeting is None:
        raise NotFound("Meeting not found")

    connection = await db.get(Connection, meeting.connection_id)
    if connection is None or not connection.has_party(user_id):
        raise Forbidden("Not authorized")
    return meeting, connection


async def _set_status(
    db: AsyncSession,
    meeting_id: uuid.UUID,
    new_status: str,
    expected: tuple[str, ...] | None = None,
) -> bool:
    """Set the status in one conditional statement. ``expected=None`` means unconditionally."""
    if new_status not in MEETING_STATUSES:
        raise ValueError(f"Unknown meeting status: {new_status}")
    stmt = update(Meeting).where(Meeting.id == meeting_id)
    if expected is not None:
        stmt = stmt.where(Meeting.status.in_(expected))
    result = await db.execute(
        stmt.values(status=new_status, updated_at=datetime.now(timezone.utc))
    )
    return result.rowcount == 1


async def all_parties_accepted(
    db: AsyncSession, meeting: Meeting, connection: Connection
) -> bool:
    """Completion predicate, evaluated against the persisted acceptance rows.

    Every connection party must be in the effective acceptance set: the
    explicit acceptances plus the proposer.
    """
    result = await db.execute(
        select(MeetingAcceptance.user_id).where(MeetingAcceptance.meeting_id == meeting.id)
    )
    effective = set(result.scalars().all()) | {meeting.proposed_by}
    required = set(connection.parties)
    return required <= effective


async def propose_meeting(
    db: AsyncSession,
    user_id: uuid.UUID,
    connection_id: uuid.UUID,
    date_time: datetime,
    location: str,
    details: str | None = None,
    apns_client=None,
) -> Meeting:
    """Propose a meeting on an active connection."""
    location = (location or "").strip()
    if not location:
        raise ValidationError("Location is required")
    if date_time is None:
        raise ValidationError("Date and time are required")

    connection = await db.get(Connection, connection_id)
    if connection is None:
        raise NotFound("Connection not found")

    if not connection.has_party(user_id):
        raise Forbidden("Not authorized")

    if connection.status != CONNECTION_ACCEPTED:
        raise InvalidState("Cannot propose meeting: connection is not active")

    meeting = Meeting(
        connection_id=connection_id,
        proposed_by=user_id,
        date_time=date_time,
        location=location,
        details=details,
        status=PROPOSED,
        accepted_by=[],
    )
    db.add(meeting)
    await db.flush()
    await db.refresh(meeting)
    logger.info("Meeting %s proposed by %s on connection %s", meeting.id, user_id, connection_id)

    await notify(
        db,
        MEETING_PROPOSED,
        _other_party(connection, user_id),
        {"from_username": await _username(db, user_id), "location": location},
        apns_client,
    )
    return meeting


async def accept_meeting(
    db: AsyncSession, user_id: uuid.UUID, meeting_id: uuid.UUID, apns_client=None
) -> Meeting:
    """Record the caller's acceptance and confirm the meeting once every party is in.

    The proposer counts as accepted and cannot accept explicitly.
    """
    meeting, connection = await _get_for_party(db, user_id, meeting_id)

    if meeting.proposed_by == user_id:
        raise InvalidOperation("You cannot accept your own meeting proposal")

    if meeting.has_accepted(user_id):
        raise AlreadyAccepted("You have already accepted this meeting")

    if meeting.status in TERMINAL_STATUSES:
        raise InvalidState(f"Meeting is already {meeting.status}")

    now = datetime.now(timezone.utc)
    db.add(MeetingAcceptance(meeting_id=meeting.id, user_id=user_id, accepted_at=now))
    try:
        await db.flush()
    except IntegrityError:
        # A concurrent request from the same user got there first
        raise AlreadyAccepted("You have already accepted this meeting")

    confirmed = False
    if await all_parties_accepted(db, meeting, connection):
        confirmed = await _set_status(db, meeting.id, ACCEPTED, expected=(PROPOSED,))
    else:
        await db.execute(
            update(Meeting).where(Meeting.id == meeting.id).values(updated_at=now)
        )

    await db.refresh(meeting)
    logger.info(
        "Meeting %s accepted by %s (status=%s)", meeting.id, user_id, meeting.status
    )

    payload = {
        "from_username": await _username(db, user_id),
        "location": meeting.location,
        "date_time": meeting.date_time.isoformat(),
    }
    await notify(db, MEETING_ACCEPTED, meeting.proposed_by, payload, apns_client)
    if confirmed:
        for party in connection.parties:
            await notify(db, MEETING_CONFIRMED, party, payload, apns_client)
    return meeting


async def cancel_meeting(
    db: AsyncSession, user_id: uuid.UUID, meeting_id: uuid.UUID, apns_client=None
) -> Meeting:
    """Cancel a meeting that is not yet completed or canceled. Either party may cancel."""
    meeting, connection = await _get_for_party(db, user_id, meeting_id)

    if meeting.status in TERMINAL_STATUSES:
        raise InvalidState(f"Meeting is already {meeting.status}")

    if not await _set_status(db, meeting.id, CANCELED, expected=(PROPOSED, ACCEPTED)):
        await db.refresh(meeting)
        raise InvalidState(f"Meeting is already {meeting.status}")

    await db.refresh(meeting)
    logger.info("Meeting %s canceled by %s", meeting.id, user_id)

    await notify(
        db,
        MEETING_CANCELED,
        _other_party(connection, user_id),
        {"from_username": await _username(db, user_id), "location": meeting.location},
        apns_client,
    )
    return meeting


async def complete_meeting(
    db: AsyncSession, user_id: uuid.UUID, meeting_id: uuid.UUID
) -> Meeting:
    """Mark a meeting as completed, whatever its current status."""
    meeting, _ = await _get_for_party(db, user_id, meeting_id)

    await _set_status(db, meeting.id, COMPLETED)
    await db.refresh(meeting)
    logger.info("Meeting %s completed by %s", meeting.id, user_id)
    return meeting


async def list_meetings_for_connection(
    db: AsyncSession, user_id: uuid.UUID, connection_id: uuid.UUID
) -> list[Meeting]:
    connection = await db.get(Connection, connection_id)
    if connection is None:
        raise NotFound("Connection not found")

    if not connection.has_party(user_id):
        raise Forbidden("Not authorized")

    result = await db.execute(
        select(Meeting)
        .where(Meeting.connection_id == connection_id)
        .order_by(Meeting.date_time.asc())
    )
    return list(result.scalars().all())


async def list_meetings_for_user(db: AsyncSession, user_id: uuid.UUID) -> list[Meeting]:
    """All meetings across the user's active connections, soonest first."""
    active_ids = select(Connection.id).where(
        or_(
            Connection.requester_id == user_id,
            Connection.recipient_id == user_id,
        ),
        Connection.status == CONNECTION_ACCEPTED,
    )
    result = await db.execute(
        select(Meeting)
        .where(Meeting.connection_id.in_(active_ids))
        .order_by(Meeting.date_time.asc())
    )
    return list(result.scalars().all())
