from __future__ import annotations

from datetime import datetime, timezone
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    JSON,
    String,
    Text,
    UniqueConstraint,
)

from trainingdb.database import Base
from trainingdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationType(str, enum.Enum):
    COURSE_PUBLISHED = "COURSE_PUBLISHED"
    CERTIFICATES_AVAILABLE = "CERTIFICATES_AVAILABLE"
    DEADLINE_REMINDER = "DEADLINE_REMINDER"
    CERTIFICATE_EXPIRING = "CERTIFICATE_EXPIRING"
    REGISTRY_RECEIVED = "REGISTRY_RECEIVED"
    ATTENDANCE_RECORDED = "ATTENDANCE_RECORDED"
    TICKET_OPENED = "TICKET_OPENED"
    TICKET_REPLY = "TICKET_REPLY"
    TICKET_NEW_MESSAGE = "TICKET_NEW_MESSAGE"
    TICKET_STATUS_CHANGED = "TICKET_STATUS_CHANGED"
    TICKET_CLOSED = "TICKET_CLOSED"


# Types addressed to the back office; untargeted rows of these types are
# visible to every admin.
ADMIN_NOTIFICATION_TYPES = frozenset(
    {
        NotificationType.REGISTRY_RECEIVED,
        NotificationType.ATTENDANCE_RECORDED,
    }
)


class EmailStatus(str, enum.Enum):
    QUEUED = "QUEUED"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED_NO_PROVIDER = "SKIPPED_NO_PROVIDER"


class Notification(Base):
    """
    Fan-out message. Targeting, most specific first: `user_id`, then
    `client_id` (every user of that client), then `is_global`.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_client_created", "client_id", "created_at"),
        Index("ix_notifications_type_edition_created", "type", "course_edition_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    type = Column(
        SAEnum(NotificationType, name="notification_type_enum", native_enum=False),
        nullable=False,
    )
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=True)
    course_edition_id = Column(
        String(36),
        ForeignKey("course_editions.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    ticket_id = Column(
        String(36),
        ForeignKey("tickets.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    is_global = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    def __repr__(self) -> str:
        return f"<Notification id={self.id} type={self.type}>"


class NotificationRead(Base):
    __tablename__ = "notification_reads"
    __table_args__ = (
        UniqueConstraint("notification_id", "user_id", name="uq_notification_reads_notification_user"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    notification_id = Column(
        String(36),
        ForeignKey("notifications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class EmailLog(Base):
    __tablename__ = "email_logs"
    __table_args__ = (
        Index("ix_email_logs_client_created", "client_id", "created_at"),
        Index("ix_email_logs_client_status", "client_id", "status"),
        Index("ix_email_logs_type_edition", "email_type", "course_edition_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=True, index=True)
    course_edition_id = Column(
        String(36),
        ForeignKey("course_editions.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    recipient = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    email_type = Column(String(64), nullable=False, index=True)
    status = Column(
        SAEnum(EmailStatus, name="email_status_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    error = Column(Text, nullable=True)
    context_json = Column(JSON, nullable=True)
    correlation_id = Column(String(128), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<EmailLog id={self.id} recipient={self.recipient} status={self.status}>"
