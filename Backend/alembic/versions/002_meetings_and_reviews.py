"""Meetings, meeting acceptances and reviews

Revision ID: 002
Revises: 001
Create Date: 2026-10-16
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Meetings
    op.create_table(
        "meetings",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("connection_id", sa.Uuid(), nullable=False),
        sa.Column("proposed_by", sa.Uuid(), nullable=False),
        sa.Column("date_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="proposed"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_meetings"),
        sa.ForeignKeyConstraint(["connection_id"], ["connections.id"], name="fk_meetings_connection_id_connections", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["proposed_by"], ["users.id"], name="fk_meetings_proposed_by_users", ondelete="CASCADE"),
    )
    op.create_index("ix_meetings_connection_id", "meetings", ["connection_id"])
    op.create_index("ix_meetings_date_time", "meetings", ["date_time"])

    # Meeting acceptances: one row per accepting user
    op.create_table(
        "meeting_acceptances",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("meeting_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_meeting_acceptances"),
        sa.ForeignKeyConstraint(["meeting_id"], ["meetings.id"], name="fk_meeting_acceptances_meeting_id_meetings", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_meeting_acceptances_user_id_users", ondelete="CASCADE"),
        sa.UniqueConstraint("meeting_id", "user_id", name="uq_meeting_acceptances_user"),
    )
    op.create_index("ix_meeting_acceptances_meeting_id", "meeting_acceptances", ["meeting_id"])

    # Reviews
    op.create_table(
        "reviews",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("reviewer_id", sa.Uuid(), nullable=False),
        sa.Column("reviewed_id", sa.Uuid(), nullable=False),
        sa.Column("meeting_id", sa.Uuid(), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("feedback", sa.String(500), nullable=True),
        sa.Column("is_public", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_reviews"),
        sa.ForeignKeyConstraint(["reviewer_id"], ["users.id"], name="fk_reviews_reviewer_id_users", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reviewed_id"], ["users.id"], name="fk_reviews_reviewed_id_users", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["meeting_id"], ["meetings.id"], name="fk_reviews_meeting_id_meetings", ondelete="SET NULL"),
        sa.UniqueConstraint("reviewer_id", "reviewed_id", name="uq_reviews_pair"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
    )
    op.create_index("ix_reviews_reviewer_id", "reviews", ["reviewer_id"])
    op.create_index("ix_reviews_reviewed_id", "reviews", ["reviewed_id"])


def downgrade() -> None:
    op.drop_table("reviews")
    op.drop_table("meeting_acceptances")
    op.drop_table("meetings")
