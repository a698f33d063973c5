"""Messages on connections; device re-registration timestamp

Revision ID: 003
Revises: 002
Create Date: 2026-10-17
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "messages",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("connection_id", sa.Uuid(), nullable=False),
        sa.Column("sender_id", sa.Uuid(), nullable=False),
        sa.Column("message_type", sa.String(20), nullable=False, server_default="text"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_messages"),
        sa.ForeignKeyConstraint(["connection_id"], ["connections.id"], name="fk_messages_connection_id_connections", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], name="fk_messages_sender_id_users", ondelete="CASCADE"),
        sa.CheckConstraint(
            "message_type IN ('text', 'location', 'meeting_request')",
            name="ck_messages_type",
        ),
    )
    op.create_index("ix_messages_connection_id", "messages", ["connection_id"])
    op.create_index("ix_messages_created_at", "messages", ["created_at"])

    op.alter_column(
        "devices",
        "created_at",
        type_=sa.DateTime(timezone=True),
        server_default=sa.func.now(),
    )
    op.add_column(
        "devices",
        sa.Column(
            "last_registered_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_check_constraint("ck_devices_platform", "devices", "platform IN ('ios', 'web')")


def downgrade() -> None:
    op.drop_constraint("ck_devices_platform", "devices", type_="check")
    op.drop_column("devices", "last_registered_at")
    op.alter_column(
        "devices",
        "created_at",
        type_=sa.DateTime(),
        server_default=None,
    )
    op.drop_table("messages")
