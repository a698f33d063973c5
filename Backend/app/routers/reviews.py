import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.review import RatingSummary, ReviewCreate, ReviewResponse
from app.services import review_service

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.post("/{user_id}", response_model=ReviewResponse, status_code=201)
async def create_review(
    user_id: uuid.UUID,
    data: ReviewCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Review a user you have completed a meeting with."""
    return await review_service.create_review(
        db,
        user.id,
        user_id,
        rating=data.rating,
        feedback=data.feedback,
        meeting_id=data.meeting_id,
        is_public=data.is_public,
    )


@router.get("/mine", response_model=list[ReviewResponse])
async def my_reviews(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await review_service.get_written_reviews(db, user.id)


@router.get("/user/{user_id}", response_model=list[ReviewResponse])
async def user_reviews(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await review_service.get_public_reviews(db, user_id)


@router.get("/user/{user_id}/summary", response_model=RatingSummary)
async def user_rating_summary(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await review_service.get_rating_summary(db, user_id)
