# backend/trainingdb/apps/tickets/services.py
"""
Support tickets.

Client users open tickets and talk to the back office through messages;
admins triage them (status, priority, assignee). Every change is committed
before the notification fan-out runs.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from trainingdb.apps.accounts.models import AccountRole, Client, User
from trainingdb.apps.notifications import fanout
from trainingdb.errors import ForbiddenError, NotFoundError, ValidationError
from trainingdb.utils.pagination import normalize_page, total_pages

from . import models, schemas

logger = logging.getLogger(__name__)

TicketStatus = models.TicketStatus

# Statuses a new message moves back to OPEN, by author role.
_REOPENED_BY_CLIENT = frozenset({TicketStatus.RESOLVED})
_REOPENED_BY_ADMIN = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _company(ticket: models.Ticket) -> str:
    return ticket.client.company_name if ticket.client is not None else "Client"


def _is_admin(user: User) -> bool:
    return user.role == AccountRole.ADMIN


def open_ticket(
    db: Session,
    *,
    payload: schemas.TicketCreate,
    author: User,
) -> Tuple[models.Ticket, fanout.FanoutResult]:
    if author.role != AccountRole.CLIENT or not author.client_id:
        raise ForbiddenError("Only client users can open tickets")

    ticket = models.Ticket(
        client_id=author.client_id,
        opened_by_user_id=author.id,
        subject=payload.subject,
        category=payload.category,
        priority=payload.priority,
        status=TicketStatus.OPEN,
    )
    ticket.messages.append(models.TicketMessage(author_user_id=author.id, body=payload.message))
    db.add(ticket)
    db.commit()
    db.refresh(ticket)

    logger.info(
        "Ticket opened",
        extra={"ticket_id": ticket.id, "client_id": ticket.client_id, "category": ticket.category.value},
    )
    result = fanout.notify_ticket_opened(db, ticket, company=_company(ticket))
    return ticket, result


def get_ticket(
    db: Session,
    ticket_id: str,
    *,
    scope_client_id: Optional[str] = None,
) -> models.Ticket:
    ticket = db.query(models.Ticket).filter(models.Ticket.id == ticket_id).first()
    if ticket is None:
        raise NotFoundError("Ticket not found")
    if scope_client_id is not None and ticket.client_id != scope_client_id:
        raise ForbiddenError("Ticket belongs to a different client")
    return ticket


def list_tickets(
    db: Session,
    *,
    client_id: Optional[str] = None,
    status: Optional[TicketStatus] = None,
    category: Optional[models.TicketCategory] = None,
    priority: Optional[models.TicketPriority] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> schemas.TicketPage:
    page, limit, offset = normalize_page(page, limit)
    q = db.query(models.Ticket).join(Client, Client.id == models.Ticket.client_id)
    if client_id:
        q = q.filter(models.Ticket.client_id == client_id)
    if status:
        q = q.filter(models.Ticket.status == status)
    if category:
        q = q.filter(models.Ticket.category == category)
    if priority:
        q = q.filter(models.Ticket.priority == priority)
    if search and search.strip():
        term = f"%{search.strip()}%"
        q = q.filter(or_(models.Ticket.subject.ilike(term), Client.company_name.ilike(term)))

    total = q.count()
    rows = (
        q.order_by(models.Ticket.updated_at.desc(), models.Ticket.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return schemas.TicketPage(
        data=[schemas.TicketRead.model_validate(row) for row in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )


def add_message(
    db: Session,
    *,
    ticket: models.Ticket,
    author: User,
    payload: schemas.TicketMessageCreate,
) -> Tuple[models.TicketMessage, fanout.FanoutResult]:
    """
    Append a message. A client message reopens a RESOLVED ticket; an admin
    message reopens a RESOLVED or CLOSED one. Clients cannot write on
    CLOSED tickets.
    """
    admin = _is_admin(author)
    if not admin:
        if not author.client_id or ticket.client_id != author.client_id:
            raise ForbiddenError("Ticket belongs to a different client")
        if ticket.status == TicketStatus.CLOSED:
            raise ForbiddenError("The ticket is closed and no longer accepts messages")

    reopen_from = _REOPENED_BY_ADMIN if admin else _REOPENED_BY_CLIENT
    previous = ticket.status
    message = models.TicketMessage(ticket_id=ticket.id, author_user_id=author.id, body=payload.message)
    db.add(message)
    if previous in reopen_from:
        ticket.status = TicketStatus.OPEN
        ticket.closed_at = None
    ticket.updated_at = _utcnow()
    db.commit()
    db.refresh(message)

    logger.info(
        "Ticket message added",
        extra={
            "ticket_id": ticket.id,
            "author_id": author.id,
            "reopened": previous != ticket.status,
        },
    )
    result = fanout.notify_ticket_message(db, ticket, author=author, company=_company(ticket))
    return message, result


def update_ticket(
    db: Session,
    *,
    ticket: models.Ticket,
    payload: schemas.TicketUpdate,
) -> Tuple[models.Ticket, fanout.FanoutResult]:
    """Admin triage. Only fields present in the payload change."""
    fields = payload.model_fields_set

    if "assigned_to_user_id" in fields:
        assignee_id = (payload.assigned_to_user_id or "").strip() or None
        if assignee_id is not None:
            assignee = db.query(User).filter(User.id == assignee_id).first()
            if assignee is None or not _is_admin(assignee) or not assignee.is_active:
                raise ValidationError(
                    "Tickets can only be assigned to an active admin",
                    details={"field": "assignedToId"},
                )
        ticket.assigned_to_user_id = assignee_id

    if payload.priority is not None:
        ticket.priority = payload.priority

    previous = ticket.status
    if payload.status is not None:
        ticket.status = payload.status
        ticket.closed_at = _utcnow() if payload.status == TicketStatus.CLOSED else None

    db.commit()
    db.refresh(ticket)

    logger.info(
        "Ticket updated",
        extra={
            "ticket_id": ticket.id,
            "status": ticket.status.value,
            "priority": ticket.priority.value,
            "assigned_to": ticket.assigned_to_user_id,
        },
    )
    result = fanout.FanoutResult()
    if ticket.status != previous:
        result = fanout.notify_ticket_status_changed(db, ticket, previous=previous)
    return ticket, result
