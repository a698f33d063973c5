from app.models.base import Base
from app.models.connection import Connection
from app.models.device import Device
from app.models.meeting import Meeting, MeetingAcceptance
from app.models.message import Message
from app.models.review import Review
from app.models.user import User

__all__ = [
    "Base",
    "Connection",
    "Device",
    "Meeting",
    "MeetingAcceptance",
    "Message",
    "Review",
    "User",
]
