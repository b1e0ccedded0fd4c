from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from trainingdb.apps.accounts.models import User
from trainingdb.database import get_db, get_read_db
from trainingdb.errors import ServiceError, raise_http
from trainingdb.security import get_current_active_user, require_admin
from trainingdb.utils.pagination import normalize_page, total_pages

from . import models, schemas, service


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=schemas.NotificationPage)
def list_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    page, limit, offset = normalize_page(page, limit)
    rows, total = service.list_for_user(
        db, user=current_user, unread_only=unread_only, offset=offset, limit=limit
    )
    items = []
    for notification, read_at in rows:
        item = schemas.NotificationItem.model_validate(notification)
        item.read_at = read_at
        items.append(item)
    return schemas.NotificationPage(
        data=items,
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )


@router.get("/unread-count", response_model=schemas.UnreadCount)
def get_unread_count(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return schemas.UnreadCount(unread=service.unread_count(db, user=current_user))


@router.post("/read-all", response_model=schemas.MarkAllReadResult)
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return schemas.MarkAllReadResult(marked=service.mark_all_read(db, user=current_user))


@router.post("/{notification_id}/read", response_model=schemas.MarkReadResult)
def mark_notification_read(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    try:
        read_at = service.mark_read(db, user=current_user, notification_id=notification_id)
    except ServiceError as exc:
        raise_http(exc)
    return schemas.MarkReadResult(id=notification_id, read_at=read_at)


@router.get("/email-logs", response_model=List[schemas.EmailLogRead])
def list_email_logs(
    status: Optional[models.EmailStatus] = None,
    email_type: Optional[str] = Query(None, alias="emailType"),
    recipient: Optional[str] = None,
    client_id: Optional[str] = Query(None, alias="clientId"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    qs = db.query(models.EmailLog)
    if status:
        qs = qs.filter(models.EmailLog.status == status)
    if email_type:
        qs = qs.filter(models.EmailLog.email_type == email_type)
    if recipient:
        qs = qs.filter(models.EmailLog.recipient.ilike(f"%{recipient}%"))
    if client_id:
        qs = qs.filter(models.EmailLog.client_id == client_id)
    if start:
        qs = qs.filter(models.EmailLog.created_at >= start)
    if end:
        qs = qs.filter(models.EmailLog.created_at <= end)
    return qs.order_by(models.EmailLog.created_at.desc()).limit(limit).all()
