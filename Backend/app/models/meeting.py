import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

PROPOSED = "proposed"
ACCEPTED = "accepted"
COMPLETED = "completed"
CANCELED = "canceled"

MEETING_STATUSES = (PROPOSED, ACCEPTED, COMPLETED, CANCELED)
TERMINAL_STATUSES = (COMPLETED, CANCELED)


class Meeting(Base):
    __tablename__ = "meetings"

    connection_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("connections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    proposed_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    date_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PROPOSED
    )  # proposed, accepted, completed, canceled
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    accepted_by: Mapped[list["MeetingAcceptance"]] = relationship(
        lazy="selectin",
        order_by="MeetingAcceptance.accepted_at",
        cascade="all, delete-orphan",
    )

    def has_accepted(self, user_id: uuid.UUID) -> bool:
        return any(a.user_id == user_id for a in self.accepted_by)

    def effective_acceptors(self) -> set[uuid.UUID]:
        """Explicit acceptances plus the proposer, who is always counted."""
        return {a.user_id for a in self.accepted_by} | {self.proposed_by}


class MeetingAcceptance(Base):
    """One row per (meeting, user): the meeting's acceptance set."""

    __tablename__ = "meeting_acceptances"

    meeting_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    accepted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("meeting_id", "user_id", name="uq_meeting_acceptances_user"),
    )
