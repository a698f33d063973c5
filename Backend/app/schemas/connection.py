import uuid
from datetime import datetime

from pydantic import BaseModel


class PartySummary(BaseModel):
    id: uuid.UUID
    username: str
    account_type: str | None

    model_config = {"from_attributes": True}


class ConnectionResponse(BaseModel):
    id: uuid.UUID
    requester_id: uuid.UUID
    recipient_id: uuid.UUID
    requester: PartySummary
    recipient: PartySummary
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
