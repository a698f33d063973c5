import uuid

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import AlreadyExists, Forbidden, InvalidState, NotFound, ValidationError
from app.models.connection import ACCEPTED as CONNECTION_ACCEPTED
from app.models.connection import Connection
from app.models.meeting import COMPLETED, Meeting
from app.models.review import Review
from app.models.user import User


async def _has_completed_meeting(
    db: AsyncSession, user_a: uuid.UUID, user_b: uuid.UUID
) -> bool:
    connection_ids = select(Connection.id).where(
        or_(
            and_(Connection.requester_id == user_a, Connection.recipient_id == user_b),
            and_(Connection.requester_id == user_b, Connection.recipient_id == user_a),
        ),
        Connection.status == CONNECTION_ACCEPTED,
    )
    result = await db.execute(
        select(Meeting.id).where(
            Meeting.connection_id.in_(connection_ids),
            Meeting.status == COMPLETED,
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def create_review(
    db: AsyncSession,
    user_id: uuid.UUID,
    reviewed_id: uuid.UUID,
    rating: int,
    feedback: str | None = None,
    meeting_id: uuid.UUID | None = None,
    is_public: bool = True,
) -> Review:
    """Review another user. Requires a completed meeting between the two of them."""
    if reviewed_id == user_id:
        raise ValidationError("Cannot review yourself")

    if await db.get(User, reviewed_id) is None:
        raise NotFound("User not found")

    if meeting_id is not None:
        meeting = await db.get(Meeting, meeting_id)
        if meeting is None:
            raise NotFound("Meeting not found")
        if meeting.status != COMPLETED:
            raise InvalidState("Cannot review: meeting is not completed")

        connection = await db.get(Connection, meeting.connection_id)
        if connection is None or not (
            connection.has_party(user_id) and connection.has_party(reviewed_id)
        ):
            raise Forbidden("Not authorized to review this user")
    elif not await _has_completed_meeting(db, user_id, reviewed_id):
        raise InvalidState("Cannot review: no completed meeting with this user")

    existing = await db.execute(
        select(Review).where(
            Review.reviewer_id == user_id,
            Review.reviewed_id == reviewed_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise AlreadyExists("You have already reviewed this user")

    review = Review(
        reviewer_id=user_id,
        reviewed_id=reviewed_id,
        meeting_id=meeting_id,
        rating=rating,
        feedback=feedback,
        is_public=is_public,
    )
    db.add(review)
    try:
        await db.flush()
    except IntegrityError:
        # A concurrent request for the same pair got there first
        raise AlreadyExists("You have already reviewed this user")
    await db.refresh(review)
    return review


async def get_public_reviews(db: AsyncSession, reviewed_id: uuid.UUID) -> list[Review]:
    result = await db.execute(
        select(Review)
        .where(Review.reviewed_id == reviewed_id, Review.is_public == True)  # noqa: E712
        .order_by(Review.created_at.desc())
    )
    return list(result.scalars().all())


async def get_written_reviews(db: AsyncSession, user_id: uuid.UUID) -> list[Review]:
    result = await db.execute(
        select(Review)
        .where(Review.reviewer_id == user_id)
        .order_by(Review.created_at.desc())
    )
    return list(result.scalars().all())


async def get_rating_summary(db: AsyncSession, reviewed_id: uuid.UUID) -> dict:
    """Average rating and review count over all reviews of a user."""
    result = await db.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(
            Review.reviewed_id == reviewed_id
        )
    )
    average, count = result.one()
    return {
        "user_id": reviewed_id,
        "average_rating": round(float(average), 2) if average is not None else None,
        "review_count": count,
    }
