import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"
BLOCKED = "blocked"

CONNECTION_STATUSES = (PENDING, ACCEPTED, REJECTED, BLOCKED)


class Connection(Base):
    __tablename__ = "connections"

    requester_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Canonical ordering of the unordered pair: pair_low < pair_high
    pair_low: Mapped[uuid.UUID] = mapped_column(nullable=False)
    pair_high: Mapped[uuid.UUID] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PENDING
    )  # pending, accepted, rejected, blocked
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    requester: Mapped["User"] = relationship(foreign_keys=[requester_id], lazy="selectin")  # noqa: F821
    recipient: Mapped["User"] = relationship(foreign_keys=[recipient_id], lazy="selectin")  # noqa: F821

    __table_args__ = (
        UniqueConstraint("pair_low", "pair_high", name="uq_connections_pair"),
        CheckConstraint("requester_id <> recipient_id", name="ck_connections_distinct_parties"),
        CheckConstraint("pair_low < pair_high", name="ck_connections_canonical_order"),
    )

    @property
    def parties(self) -> tuple[uuid.UUID, uuid.UUID]:
        return (self.requester_id, self.recipient_id)

    def has_party(self, user_id: uuid.UUID) -> bool:
        return user_id in self.parties
