import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.device import Device
from app.models.meeting import Meeting
from app.models.user import User
from app.services import connection_service, meeting_service
from app.services.notification_service import (
    CONNECTION_REQUESTED,
    MEETING_CONFIRMED,
    MEETING_PROPOSED,
    notify,
    send_push_notification,
)


@pytest.fixture
async def ios_device(db_session: AsyncSession, second_user: User) -> Device:
    """An iOS device registered to the second user."""
    device = Device(
        id=uuid.uuid4(),
        user_id=second_user.id,
        token="fake-apns-device-token-abc123",
        platform="ios",
        created_at=datetime.now(timezone.utc),
    )
    db_session.add(device)
    await db_session.commit()
    await db_session.refresh(device)
    return device


@pytest.fixture
async def web_device(db_session: AsyncSession, second_user: User) -> Device:
    """A web registration for the second user (no APNs push)."""
    device = Device(
        id=uuid.uuid4(),
        user_id=second_user.id,
        token="fake-web-token-xyz456",
        platform="web",
        created_at=datetime.now(timezone.utc),
    )
    db_session.add(device)
    await db_session.commit()
    await db_session.refresh(device)
    return device


def _make_apns_client(successful: bool = True) -> MagicMock:
    """Create a mock APNs client that returns configurable responses."""
    mock_client = MagicMock()
    mock_response = MagicMock()
    mock_response.is_successful = successful
    mock_client.send_notification = AsyncMock(return_value=mock_response)
    return mock_client


# ── send_push_notification ────────────────────────────────────────────


@pytest.mark.asyncio
async def test_send_push_no_devices(db_session: AsyncSession, second_user: User):
    apns = _make_apns_client()
    sent = await send_push_notification(
        db_session, second_user.id, "Title", "Body", apns_client=apns
    )
    assert sent == 0
    apns.send_notification.assert_not_called()


@pytest.mark.asyncio
async def test_send_push_no_apns_client(
    db_session: AsyncSession, second_user: User, ios_device: Device
):
    sent = await send_push_notification(
        db_session, second_user.id, "Title", "Body", apns_client=None
    )
    assert sent == 0


@pytest.mark.asyncio
async def test_send_push_ios_device_success(
    db_session: AsyncSession, second_user: User, ios_device: Device
):
    apns = _make_apns_client(successful=True)
    sent = await send_push_notification(
        db_session, second_user.id, "Hello", "World", apns_client=apns
    )
    assert sent == 1

    notification = apns.send_notification.call_args[0][0]
    assert notification.device_token == ios_device.token
    assert notification.message["aps"]["alert"]["title"] == "Hello"
    assert notification.message["aps"]["alert"]["body"] == "World"


@pytest.mark.asyncio
async def test_send_push_skips_web_devices(
    db_session: AsyncSession, second_user: User, web_device: Device
):
    apns = _make_apns_client()
    sent = await send_push_notification(
        db_session, second_user.id, "Hello", "World", apns_client=apns
    )
    assert sent == 0
    apns.send_notification.assert_not_called()


@pytest.mark.asyncio
async def test_send_push_exception_handling(
    db_session: AsyncSession, second_user: User, ios_device: Device
):
    """APNs client raises: should not propagate, return 0."""
    apns = MagicMock()
    apns.send_notification = AsyncMock(side_effect=Exception("Connection lost"))
    sent = await send_push_notification(
        db_session, second_user.id, "Hello", "World", apns_client=apns
    )
    assert sent == 0


# ── notify ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_notify_formats_template(
    db_session: AsyncSession, second_user: User, ios_device: Device
):
    apns = _make_apns_client()
    await notify(
        db_session,
        MEETING_PROPOSED,
        second_user.id,
        {"from_username": "alice", "location": "Cafe Luna"},
        apns_client=apns,
    )
    notification = apns.send_notification.call_args[0][0]
    assert notification.message["aps"]["alert"]["title"] == "New Meeting Proposal"
    assert notification.message["aps"]["alert"]["body"] == "alice proposed meeting at Cafe Luna."


@pytest.mark.asyncio
async def test_notify_swallows_failures(db_session: AsyncSession, second_user: User):
    # Missing payload keys and unknown kinds are logged, not raised
    await notify(db_session, MEETING_PROPOSED, second_user.id, {})
    await notify(db_session, "meeting.unknown", second_user.id, {})


@pytest.mark.asyncio
async def test_notify_emails_connection_request(db_session: AsyncSession, second_user: User):
    with patch(
        "app.services.notification_service.send_connection_request_email",
        new_callable=AsyncMock,
    ) as send:
        await notify(db_session, CONNECTION_REQUESTED, second_user.id, {"from_username": "alice"})
    send.assert_awaited_once_with("bob@example.com", "alice")


@pytest.mark.asyncio
async def test_connection_request_notifies_recipient(
    db_session: AsyncSession, test_user: User, second_user: User, ios_device: Device
):
    apns = _make_apns_client()
    await connection_service.request_connection(
        db_session, test_user.id, second_user.id, apns_client=apns
    )
    notification = apns.send_notification.call_args[0][0]
    assert notification.message["aps"]["alert"]["title"] == "Connection Request"
    assert "alice" in notification.message["aps"]["alert"]["body"]


@pytest.mark.asyncio
async def test_push_failure_does_not_undo_acceptance(
    db_session: AsyncSession, make_connection, make_meeting, test_user: User, second_user: User
):
    connection = await make_connection(test_user, second_user, status="accepted")
    meeting = await make_meeting(connection, second_user)

    with patch(
        "app.services.notification_service.push_to_devices",
        new_callable=AsyncMock,
        side_effect=RuntimeError("APNs down"),
    ):
        accepted = await meeting_service.accept_meeting(db_session, test_user.id, meeting.id)

    assert accepted.status == "accepted"


@pytest.mark.asyncio
async def test_confirmation_emails_both_parties(
    db_session: AsyncSession, make_connection, make_meeting, test_user: User, second_user: User
):
    connection = await make_connection(test_user, second_user, status="accepted")
    meeting = await make_meeting(connection, test_user, location="Rooftop")

    with patch(
        "app.services.notification_service.send_meeting_confirmed_email",
        new_callable=AsyncMock,
    ) as send:
        await meeting_service.accept_meeting(db_session, second_user.id, meeting.id)

    recipients = sorted(call.args[0] for call in send.await_args_list)
    assert recipients == ["alice@example.com", "bob@example.com"]
    assert all(call.args[1] == "Rooftop" for call in send.await_args_list)


@pytest.mark.asyncio
async def test_email_skipped_without_smtp(db_session: AsyncSession, second_user: User):
    from app.services.email_service import send_email

    with patch("app.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as smtp:
        sent = await send_email("bob@example.com", "Subject", "<p>Hi</p>")
    assert sent is False
    smtp.assert_not_called()


@pytest.mark.asyncio
async def test_notify_unknown_event_kind_is_not_sent(db_session: AsyncSession, second_user: User, ios_device: Device):
    apns = _make_apns_client()
    await notify(db_session, MEETING_CONFIRMED + ".bogus", second_user.id, {}, apns_client=apns)
    apns.send_notification.assert_not_called()


def _lookup_failure() -> OperationalError:
    return OperationalError("SELECT devices", {}, Exception("server closed the connection"))


@pytest.mark.asyncio
async def test_failed_device_lookup_keeps_connection_acceptance(
    client, act_as, make_connection, test_user: User, second_user: User
):
    connection = await make_connection(test_user, second_user)

    act_as(second_user)
    with patch(
        "app.services.notification_service.get_user_devices",
        new_callable=AsyncMock,
        side_effect=_lookup_failure(),
    ) as lookup:
        response = await client.put(f"/connections/{connection.id}/accept")
    assert response.status_code == 200
    lookup.assert_awaited()

    response = await client.get("/connections/active")
    assert [c["id"] for c in response.json()] == [str(connection.id)]


@pytest.mark.asyncio
async def test_failed_device_lookup_rolls_back_only_savepoint(
    db_engine, db_session: AsyncSession, make_connection, test_user: User, second_user: User
):
    connection = await make_connection(test_user, second_user, status="accepted")

    with patch(
        "app.services.notification_service.get_user_devices",
        new_callable=AsyncMock,
        side_effect=_lookup_failure(),
    ):
        meeting = await meeting_service.propose_meeting(
            db_session,
            test_user.id,
            connection.id,
            date_time=datetime.now(timezone.utc),
            location="Cafe Luna",
        )
    assert not db_session.in_nested_transaction()
    await db_session.commit()

    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as other:
        stored = await other.scalar(select(Meeting.status).where(Meeting.id == meeting.id))
    assert stored == "proposed"
