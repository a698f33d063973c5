import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class DeviceRegister(BaseModel):
    token: str = Field(min_length=1, max_length=255)
    platform: Literal["ios", "web"]


class DeviceResponse(BaseModel):
    id: uuid.UUID
    token: str
    platform: str
    created_at: datetime
    last_registered_at: datetime

    model_config = {"from_attributes": True}
