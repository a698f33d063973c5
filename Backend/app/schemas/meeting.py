import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class MeetingCreate(BaseModel):
    date_time: datetime
    location: str = Field(min_length=1, max_length=255)
    details: str | None = Field(default=None, max_length=2000)


class AcceptanceResponse(BaseModel):
    user_id: uuid.UUID
    accepted_at: datetime

    model_config = {"from_attributes": True}


class MeetingResponse(BaseModel):
    id: uuid.UUID
    connection_id: uuid.UUID
    proposed_by: uuid.UUID
    date_time: datetime
    location: str
    details: str | None
    status: str
    accepted_by: list[AcceptanceResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
