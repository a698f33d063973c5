import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.connection import PartySummary


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    message_type: Literal["text", "location", "meeting_request"] = "text"


class MessageResponse(BaseModel):
    id: uuid.UUID
    connection_id: uuid.UUID
    sender_id: uuid.UUID
    sender: PartySummary
    message_type: str
    content: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ReadReceipt(BaseModel):
    connection_id: uuid.UUID
    marked_read: int
