# backend/trainingdb/apps/tickets/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .models import TicketCategory, TicketPriority, TicketStatus

MIN_MESSAGE_LENGTH = 10


class TicketCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    category: TicketCategory = TicketCategory.OTHER
    priority: TicketPriority = TicketPriority.MEDIUM
    message: str = Field(..., min_length=MIN_MESSAGE_LENGTH)

    @field_validator("subject", "message", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class TicketMessageCreate(BaseModel):
    message: str = Field(..., min_length=1)

    @field_validator("message", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class TicketUpdate(BaseModel):
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    assigned_to_user_id: Optional[str] = Field(None, alias="assignedToId")

    class Config:
        populate_by_name = True


class TicketMessageRead(BaseModel):
    id: str
    ticket_id: str
    author_user_id: Optional[str] = None
    body: str
    created_at: datetime

    class Config:
        from_attributes = True


class TicketRead(BaseModel):
    id: str
    client_id: str
    opened_by_user_id: Optional[str] = None
    assigned_to_user_id: Optional[str] = None
    subject: str
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus
    closed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TicketDetail(TicketRead):
    messages: List[TicketMessageRead] = Field(default_factory=list)


class TicketPage(BaseModel):
    data: List[TicketRead]
    total: int
    page: int
    limit: int
    total_pages: int = Field(..., serialization_alias="totalPages")
