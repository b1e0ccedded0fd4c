# backend/trainingdb/apps/tickets/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class TicketCategory(str, enum.Enum):
    TECHNICAL = "TECHNICAL"
    INFO_REQUEST = "INFO_REQUEST"
    REGISTRY = "REGISTRY"
    CERTIFICATES = "CERTIFICATES"
    BILLING = "BILLING"
    OTHER = "OTHER"


class TicketPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class Ticket(Base):
    """
    Support request opened by a client user. `closed_at` is only set while
    the status is CLOSED.
    """

    __tablename__ = "tickets"
    __table_args__ = (
        Index("idx_tickets_client_status", "client_id", "status"),
        Index("idx_tickets_status_updated", "status", "updated_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)

    client_id = Column(
        String(36),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    opened_by_user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_to_user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    subject = Column(String(200), nullable=False)
    category = Column(
        Enum(TicketCategory, name="ticket_category_enum", native_enum=False),
        nullable=False,
        default=TicketCategory.OTHER,
    )
    priority = Column(
        Enum(TicketPriority, name="ticket_priority_enum", native_enum=False),
        nullable=False,
        default=TicketPriority.MEDIUM,
    )
    status = Column(
        Enum(TicketStatus, name="ticket_status_enum", native_enum=False),
        nullable=False,
        default=TicketStatus.OPEN,
        index=True,
    )

    closed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    client = relationship("Client", lazy="joined")
    opened_by = relationship("User", foreign_keys=[opened_by_user_id])
    assigned_to = relationship("User", foreign_keys=[assigned_to_user_id])
    messages = relationship(
        "TicketMessage",
        back_populates="ticket",
        order_by="TicketMessage.created_at",
        lazy="selectin",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Ticket {self.id} {self.status}>"


class TicketMessage(Base):
    __tablename__ = "ticket_messages"

    id = Column(String(36), primary_key=True, default=generate_id)
    ticket_id = Column(
        String(36),
        ForeignKey("tickets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    body = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    ticket = relationship("Ticket", back_populates="messages")
    author = relationship("User")
