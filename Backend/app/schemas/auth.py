import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class GoogleLoginRequest(BaseModel):
    identity_token: str


class RefreshRequest(BaseModel):
    refresh_token: str


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    account_type: str | None = Field(default=None, pattern=r"^(Couple|Bull)$")


class EmailLoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(BaseModel):
    id: uuid.UUID
    username: str
    email: str
    account_type: str | None
    is_verified: bool
    created_at: datetime

    model_config = {"from_attributes": True}
