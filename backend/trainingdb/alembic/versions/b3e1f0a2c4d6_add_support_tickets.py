"""add support tickets

Revision ID: b3e1f0a2c4d6
Revises: a1c0e5d7f201
Create Date: 2026-10-17 15:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "b3e1f0a2c4d6"
down_revision: Union[str, Sequence[str], None] = "a1c0e5d7f201"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TICKET_STATUSES = ("OPEN", "IN_PROGRESS", "RESOLVED", "CLOSED")
TICKET_CATEGORIES = ("TECHNICAL", "INFO_REQUEST", "REGISTRY", "CERTIFICATES", "BILLING", "OTHER")
TICKET_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")


def _enum(values: Sequence[str], name: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade() -> None:
    op.create_table(
        "tickets",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "client_id",
            sa.String(length=36),
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "opened_by_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "assigned_to_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("category", _enum(TICKET_CATEGORIES, "ticket_category_enum"), nullable=False),
        sa.Column("priority", _enum(TICKET_PRIORITIES, "ticket_priority_enum"), nullable=False),
        sa.Column("status", _enum(TICKET_STATUSES, "ticket_status_enum"), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_tickets_client_id", "tickets", ["client_id"])
    op.create_index("ix_tickets_assigned_to_user_id", "tickets", ["assigned_to_user_id"])
    op.create_index("ix_tickets_status", "tickets", ["status"])
    op.create_index("idx_tickets_client_status", "tickets", ["client_id", "status"])
    op.create_index("idx_tickets_status_updated", "tickets", ["status", "updated_at"])

    op.create_table(
        "ticket_messages",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "ticket_id",
            sa.String(length=36),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "author_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_ticket_messages_ticket_id", "ticket_messages", ["ticket_id"])

    # Notification types are stored as VARCHAR, so the new ticket types
    # need no column change. Only the dangling ticket_id gets its FK.
    with op.batch_alter_table("notifications") as batch_op:
        batch_op.create_foreign_key(
            "fk_notifications_ticket_id",
            "tickets",
            ["ticket_id"],
            ["id"],
            ondelete="CASCADE",
        )
        batch_op.create_index("ix_notifications_ticket_id", ["ticket_id"])


def downgrade() -> None:
    with op.batch_alter_table("notifications") as batch_op:
        batch_op.drop_index("ix_notifications_ticket_id")
        batch_op.drop_constraint("fk_notifications_ticket_id", type_="foreignkey")
    op.drop_table("ticket_messages")
    op.drop_table("tickets")
