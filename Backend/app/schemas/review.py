import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    feedback: str | None = Field(default=None, max_length=500)
    meeting_id: uuid.UUID | None = None
    is_public: bool = True


class ReviewResponse(BaseModel):
    id: uuid.UUID
    reviewer_id: uuid.UUID
    reviewed_id: uuid.UUID
    meeting_id: uuid.UUID | None
    rating: int
    feedback: str | None
    is_public: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class RatingSummary(BaseModel):
    user_id: uuid.UUID
    average_rating: float | None
    review_count: int
