from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Query, Session

from trainingdb.apps.accounts.models import AccountRole, User
from trainingdb.database import WriteSessionLocal
from trainingdb.errors import NotFoundError

from . import models, providers

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# EMAIL
# ---------------------------------------------------------------------------


def send_email(
    email_type: str,
    recipient: str,
    subject: str,
    body: str,
    correlation_id: Optional[str],
    critical: bool = False,
    *,
    client_id: Optional[str] = None,
    course_edition_id: Optional[str] = None,
    context: Optional[dict] = None,
    db: Optional[Session] = None,
) -> models.EmailLog:
    """
    Send one email and record the attempt in `email_logs`.

    Provider failures are stored on the log row (status FAILED) and only
    re-raised when `critical` is set.
    """
    owns_session = db is None
    db = db or WriteSessionLocal()
    log = models.EmailLog(
        client_id=client_id,
        course_edition_id=course_edition_id,
        recipient=recipient,
        subject=subject,
        email_type=email_type,
        status=models.EmailStatus.QUEUED,
        context_json=context or {},
        correlation_id=correlation_id,
    )
    try:
        db.add(log)
        db.flush()

        provider, configured = providers.get_email_provider()
        if not configured:
            log.status = models.EmailStatus.SKIPPED_NO_PROVIDER
            log.error = "No provider configured"
            db.add(log)
            if owns_session:
                db.commit()
            return log

        try:
            provider.send(
                email_type=email_type,
                recipient=recipient,
                subject=subject,
                body=body,
                correlation_id=correlation_id,
            )
            log.status = models.EmailStatus.SENT
            log.sent_at = _utcnow()
        except Exception as exc:
            log.status = models.EmailStatus.FAILED
            log.error = str(exc)
            logger.warning(
                "Email delivery failed",
                extra={
                    "email_type": email_type,
                    "recipient": recipient,
                    "correlation_id": correlation_id,
                    "error": str(exc),
                },
            )
            if critical:
                db.add(log)
                if owns_session:
                    db.commit()
                raise
        db.add(log)
        if owns_session:
            db.commit()
        return log
    finally:
        if owns_session:
            db.close()


# ---------------------------------------------------------------------------
# NOTIFICATION ROWS
# ---------------------------------------------------------------------------


def create_notification(
    db: Session,
    *,
    type: models.NotificationType,
    title: str,
    message: str,
    user_id: Optional[str] = None,
    client_id: Optional[str] = None,
    course_edition_id: Optional[str] = None,
    ticket_id: Optional[str] = None,
    is_global: bool = False,
    created_at: Optional[datetime] = None,
) -> models.Notification:
    notification = models.Notification(
        type=type,
        title=title,
        message=message,
        user_id=user_id,
        client_id=client_id,
        course_edition_id=course_edition_id,
        ticket_id=ticket_id,
        is_global=is_global,
        created_at=created_at or _utcnow(),
    )
    db.add(notification)
    db.flush()
    return notification


# ---------------------------------------------------------------------------
# RECIPIENT VIEW
# ---------------------------------------------------------------------------


def visibility_filter(user: User):
    """SQL condition selecting the notifications `user` may see."""
    N = models.Notification
    if user.role == AccountRole.ADMIN:
        return or_(
            N.user_id == user.id,
            N.is_global.is_(True),
            and_(
                N.user_id.is_(None),
                N.type.in_(list(models.ADMIN_NOTIFICATION_TYPES)),
            ),
        )
    if not user.client_id:
        return N.user_id == user.id
    return or_(
        N.user_id == user.id,
        N.is_global.is_(True),
        N.client_id == user.client_id,
    )


def _visible_query(db: Session, user: User) -> Query:
    return (
        db.query(models.Notification, models.NotificationRead.read_at)
        .outerjoin(
            models.NotificationRead,
            and_(
                models.NotificationRead.notification_id == models.Notification.id,
                models.NotificationRead.user_id == user.id,
            ),
        )
        .filter(visibility_filter(user))
    )


def list_for_user(
    db: Session,
    *,
    user: User,
    unread_only: bool = False,
    offset: int = 0,
    limit: int = 20,
) -> Tuple[List[Tuple[models.Notification, Optional[datetime]]], int]:
    query = _visible_query(db, user)
    if unread_only:
        query = query.filter(models.NotificationRead.id.is_(None))
    total = query.count()
    rows = (
        query.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def unread_count(db: Session, *, user: User) -> int:
    return (
        _visible_query(db, user)
        .filter(models.NotificationRead.id.is_(None))
        .count()
    )


def mark_read(db: Session, *, user: User, notification_id: str) -> datetime:
    notification = (
        db.query(models.Notification)
        .filter(models.Notification.id == notification_id)
        .filter(visibility_filter(user))
        .first()
    )
    if notification is None:
        raise NotFoundError("Notification not found")

    existing = (
        db.query(models.NotificationRead)
        .filter(
            models.NotificationRead.notification_id == notification_id,
            models.NotificationRead.user_id == user.id,
        )
        .first()
    )
    if existing is not None:
        return existing.read_at

    read = models.NotificationRead(notification_id=notification_id, user_id=user.id)
    db.add(read)
    db.commit()
    db.refresh(read)
    return read.read_at


def mark_all_read(db: Session, *, user: User) -> int:
    unread_ids = [
        notification.id
        for notification, _read_at in _visible_query(db, user)
        .filter(models.NotificationRead.id.is_(None))
        .all()
    ]
    for notification_id in unread_ids:
        db.add(models.NotificationRead(notification_id=notification_id, user_id=user.id))
    db.commit()
    return len(unread_ids)


def already_sent_today(
    db: Session,
    *,
    type: models.NotificationType,
    client_id: str,
    day_start: datetime,
    day_end: datetime,
    course_edition_id: Optional[str] = None,
) -> bool:
    """Once-per-day guard for the scheduled sweeps."""
    N = models.Notification
    query = db.query(N.id).filter(
        N.type == type,
        N.client_id == client_id,
        N.created_at >= day_start,
        N.created_at < day_end,
    )
    if course_edition_id:
        query = query.filter(N.course_edition_id == course_edition_id)
    return query.first() is not None
