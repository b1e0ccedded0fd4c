from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import EmailStatus, NotificationType


class NotificationItem(BaseModel):
    id: str
    type: NotificationType
    title: str
    message: str
    user_id: Optional[str] = None
    client_id: Optional[str] = None
    course_edition_id: Optional[str] = None
    ticket_id: Optional[str] = None
    is_global: bool
    created_at: datetime
    read_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationPage(BaseModel):
    data: List[NotificationItem]
    total: int
    page: int
    limit: int
    total_pages: int = Field(..., serialization_alias="totalPages")


class UnreadCount(BaseModel):
    unread: int


class MarkReadResult(BaseModel):
    id: str
    read_at: datetime


class MarkAllReadResult(BaseModel):
    marked: int


class EmailLogRead(BaseModel):
    id: str
    client_id: Optional[str] = None
    course_edition_id: Optional[str] = None
    created_at: datetime
    sent_at: Optional[datetime] = None
    recipient: str
    subject: str
    email_type: str
    status: EmailStatus
    error: Optional[str] = None
    context_json: Optional[dict] = None
    correlation_id: Optional[str] = None

    class Config:
        from_attributes = True
