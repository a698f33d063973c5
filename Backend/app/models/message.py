import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

TEXT = "text"
LOCATION = "location"
MEETING_REQUEST = "meeting_request"

MESSAGE_TYPES = (TEXT, LOCATION, MEETING_REQUEST)


class Message(Base):
    __tablename__ = "messages"

    connection_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("connections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    message_type: Mapped[str] = mapped_column(String(20), nullable=False, default=TEXT)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        index=True,
    )

    sender: Mapped["User"] = relationship(lazy="selectin")  # noqa: F821

    __table_args__ = (
        CheckConstraint(
            "message_type IN ('text', 'location', 'meeting_request')",
            name="ck_messages_type",
        ),
    )
