import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.main import app
from app.models.user import User
from app.services.auth_service import (
    decode_access_token,
    hash_password,
    issue_tokens,
    register_user,
    upsert_google_user,
)


@pytest.mark.asyncio
async def test_issue_tokens():
    user_id = uuid.uuid4()
    tokens = issue_tokens(user_id)
    assert "access_token" in tokens
    assert "refresh_token" in tokens
    assert tokens["token_type"] == "bearer"
    assert tokens["expires_in"] == 3600
    assert tokens["access_token"] != tokens["refresh_token"]


@pytest.mark.asyncio
async def test_decode_access_token_roundtrip():
    user_id = uuid.uuid4()
    tokens = issue_tokens(user_id)
    assert decode_access_token(tokens["access_token"]) == user_id


@pytest.mark.asyncio
async def test_decode_rejects_refresh_token():
    tokens = issue_tokens(uuid.uuid4())
    with pytest.raises(ValueError):
        decode_access_token(tokens["refresh_token"])


@pytest.mark.asyncio
async def test_register_duplicate_username(db_session: AsyncSession, test_user: User):
    with pytest.raises(ValueError):
        await register_user(db_session, "alice", "other@example.com", "SecurePass123!")


@pytest.mark.asyncio
async def test_upsert_google_user_creates_then_reuses(db_session: AsyncSession):
    first = await upsert_google_user(db_session, "google-sub-1", "dana@example.com")
    assert first.username == "dana"
    assert first.auth_provider == "google"

    again = await upsert_google_user(db_session, "google-sub-1", "dana@example.com")
    assert again.id == first.id


@pytest.mark.asyncio
async def test_get_me_authenticated(client):
    response = await client.get("/auth/me")
    assert response.status_code == 200
    data = response.json()
    assert data["email"] == "alice@example.com"
    assert data["username"] == "alice"


@pytest.mark.asyncio
async def test_register_and_login(client):
    response = await client.post(
        "/auth/register",
        json={
            "username": "newuser",
            "email": "newuser@example.com",
            "password": "SecurePass123!",
            "account_type": "Bull",
        },
    )
    assert response.status_code == 200
    assert response.json()["token_type"] == "bearer"

    response = await client.post(
        "/auth/login",
        json={"email": "newuser@example.com", "password": "SecurePass123!"},
    )
    assert response.status_code == 200
    assert "access_token" in response.json()


@pytest.mark.asyncio
async def test_register_duplicate_email(client):
    payload = {"username": "dup", "email": "dup@example.com", "password": "SecurePass123!"}
    await client.post("/auth/register", json=payload)

    payload["username"] = "dup2"
    response = await client.post("/auth/register", json=payload)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_register_weak_password(client):
    response = await client.post(
        "/auth/register",
        json={"username": "weak", "email": "weak@example.com", "password": "short"},
    )
    assert response.status_code == 400
    assert response.json()["kind"] == "validation_error"


@pytest.mark.asyncio
async def test_login_wrong_password(client, db_session: AsyncSession):
    user = User(
        username="erin",
        email="erin@example.com",
        auth_provider="email",
        auth_provider_id="email:erin@example.com",
        password_hash=hash_password("RightPass123!"),
    )
    db_session.add(user)
    await db_session.commit()

    response = await client.post(
        "/auth/login",
        json={"email": "erin@example.com", "password": "WrongPass123!"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_google_login_invalid_token(client):
    with patch(
        "app.services.auth_service.verify_google_token",
        new_callable=AsyncMock,
        side_effect=ValueError("Invalid Google token"),
    ):
        response = await client.post("/auth/google", json={"identity_token": "xxx"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rotates_token(client, test_user):
    tokens = issue_tokens(test_user.id)

    response = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200

    # The old refresh token is revoked after one use
    response = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_bearer_token_resolves_caller(client, test_user):
    # Drop the caller override so the real bearer dependency runs
    app.dependency_overrides.pop(get_current_user)
    assert get_db in app.dependency_overrides

    token = issue_tokens(test_user.id)["access_token"]
    response = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["id"] == str(test_user.id)


@pytest.mark.asyncio
async def test_missing_bearer_token(client):
    app.dependency_overrides.pop(get_current_user)

    response = await client.get("/connections")
    assert response.status_code == 401
