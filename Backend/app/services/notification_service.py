import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.device import IOS, Device
from app.models.user import User
from app.services.device_service import get_user_devices
from app.services.email_service import (
    send_connection_request_email,
    send_meeting_confirmed_email,
)

logger = logging.getLogger(__name__)

CONNECTION_REQUESTED = "connection.requested"
CONNECTION_ACCEPTED = "connection.accepted"
MEETING_PROPOSED = "meeting.proposed"
MEETING_ACCEPTED = "meeting.accepted"
MEETING_CONFIRMED = "meeting.confirmed"
MEETING_CANCELED = "meeting.canceled"
MESSAGE_RECEIVED = "message.received"

# event kind -> (title, body template); body is formatted with the payload
PUSH_TEMPLATES = {
    CONNECTION_REQUESTED: ("Connection Request", "{from_username} wants to connect with you!"),
    CONNECTION_ACCEPTED: ("Connection Accepted", "{from_username} accepted your connection request."),
    MEETING_PROPOSED: ("New Meeting Proposal", "{from_username} proposed meeting at {location}."),
    MEETING_ACCEPTED: ("Meeting Accepted", "{from_username} accepted your meeting at {location}."),
    MEETING_CONFIRMED: ("Meeting Confirmed", "Everyone is in. See you at {location}!"),
    MEETING_CANCELED: ("Meeting Canceled", "{from_username} canceled the meeting at {location}."),
    MESSAGE_RECEIVED: ("New Message", "{from_username}: {preview}"),
}

# events that also go out by email
EMAIL_EVENTS = (CONNECTION_REQUESTED, MEETING_CONFIRMED)


async def push_to_devices(
    devices: list[Device],
    title: str,
    body: str,
    apns_client=None,
) -> int:
    """Send an APNs alert to each iOS device. Returns the number delivered."""
    sent = 0

    for device in devices:
        if device.platform != IOS or apns_client is None:
            continue
        try:
            from aioapns import NotificationRequest

            notification = NotificationRequest(
                device_token=device.token,
                message={
                    "aps": {
                        "alert": {"title": title, "body": body},
                        "sound": "default",
                        "badge": 1,
                    }
                },
            )
            response = await apns_client.send_notification(notification)
            if response.is_successful:
                sent += 1
        except Exception:
            # Individual send failures shouldn't break the loop
            logger.exception("Push to device %s failed", device.id)

    return sent


async def send_push_notification(
    db: AsyncSession,
    to_user_id: uuid.UUID,
    title: str,
    body: str,
    apns_client=None,
) -> int:
    """Send push notification to all iOS devices of a user.

    Returns the number of notifications sent. Without an APNs client
    nothing is sent.
    """
    devices = await get_user_devices(db, to_user_id)
    return await push_to_devices(devices, title, body, apns_client)


async def notify(
    db: AsyncSession,
    event_kind: str,
    to_user_id: uuid.UUID,
    payload: dict,
    apns_client=None,
) -> None:
    """Relay a lifecycle event to the other party.

    Best effort: failures are logged and never reach the caller, so the
    state transition that triggered the event stands. The lookups run in
    a savepoint on the caller's session; a failed query only rolls that
    savepoint back and the caller's transaction can still commit.
    """
    try:
        title, template = PUSH_TEMPLATES[event_kind]
        body = template.format(**payload)

        async with db.begin_nested():
            devices = await get_user_devices(db, to_user_id)
            recipient = None
            if event_kind in EMAIL_EVENTS:
                recipient = await db.get(User, to_user_id)

        sent = await push_to_devices(devices, title, body, apns_client)
        logger.info("Event %s for user %s: %d push(es) sent", event_kind, to_user_id, sent)

        if recipient is None:
            return
        if event_kind == CONNECTION_REQUESTED:
            await send_connection_request_email(recipient.email, payload["from_username"])
        elif event_kind == MEETING_CONFIRMED:
            await send_meeting_confirmed_email(
                recipient.email, payload["location"], payload["date_time"]
            )
    except Exception:
        logger.exception("Failed to deliver %s notification to %s", event_kind, to_user_id)
