import logging
from email.message import EmailMessage

import aiosmtplib

from app.config import settings

logger = logging.getLogger(__name__)


async def send_email(to: str, subject: str, body_html: str) -> bool:
    """Send an email via SMTP. Returns True on success."""
    if not settings.SMTP_HOST:
        logger.warning("SMTP not configured, email not sent to %s", to)
        return False

    message = EmailMessage()
    message["From"] = settings.SMTP_FROM_EMAIL
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body_html, subtype="html")

    try:
        await aiosmtplib.send(
            message,
            hostname=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME or None,
            password=settings.SMTP_PASSWORD or None,
            start_tls=True,
        )
        return True
    except Exception:
        logger.exception("Failed to send email to %s", to)
        return False


async def send_connection_request_email(to: str, from_username: str) -> bool:
    link = f"{settings.FRONTEND_URL}/connections"
    html = f"""
    <h2>New connection request</h2>
    <p><strong>{from_username}</strong> would like to connect with you on Rendezvous.</p>
    <p><a href="{link}">Review the request</a></p>
    """
    return await send_email(to, f"{from_username} wants to connect", html)


async def send_meeting_confirmed_email(to: str, location: str, date_time: str) -> bool:
    """Tell a party that every participant accepted the meeting."""
    link = f"{settings.FRONTEND_URL}/meetings"
    html = f"""
    <h2>Your meeting is confirmed</h2>
    <p>Everyone has accepted. See you at <strong>{location}</strong> on {date_time}.</p>
    <p><a href="{link}">View your meetings</a></p>
    """
    return await send_email(to, "Meeting confirmed", html)
