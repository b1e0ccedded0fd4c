# backend/trainingdb/apps/tickets/router.py

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from trainingdb.apps.accounts import models as accounts_models
from trainingdb.database import get_db, get_read_db
from trainingdb.errors import ServiceError, raise_http
from trainingdb.security import (
    get_current_active_user,
    require_admin,
    require_client_user,
    tenant_scope,
)

from . import models, schemas, services

router = APIRouter(prefix="/tickets", tags=["tickets"])


def _load_ticket(db: Session, ticket_id: str, current_user: accounts_models.User) -> models.Ticket:
    try:
        return services.get_ticket(db, ticket_id, scope_client_id=tenant_scope(current_user))
    except ServiceError as exc:
        raise_http(exc)


@router.get("", response_model=schemas.TicketPage)
def list_tickets(
    status_filter: Optional[models.TicketStatus] = Query(None, alias="status"),
    category: Optional[models.TicketCategory] = Query(None),
    priority: Optional[models.TicketPriority] = Query(None),
    client_id: Optional[str] = Query(None, alias="clientId"),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    scope = tenant_scope(current_user)
    return services.list_tickets(
        db,
        client_id=scope or client_id,
        status=status_filter,
        category=category,
        priority=priority,
        search=search,
        page=page,
        limit=limit,
    )


@router.post("", response_model=schemas.TicketDetail, status_code=status.HTTP_201_CREATED)
def open_ticket(
    payload: schemas.TicketCreate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_client_user),
):
    try:
        ticket, _ = services.open_ticket(db, payload=payload, author=current_user)
    except ServiceError as exc:
        raise_http(exc)
    return ticket


@router.get("/{ticket_id}", response_model=schemas.TicketDetail)
def get_ticket(
    ticket_id: str,
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    return _load_ticket(db, ticket_id, current_user)


@router.patch("/{ticket_id}", response_model=schemas.TicketRead)
def update_ticket(
    ticket_id: str,
    payload: schemas.TicketUpdate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    ticket = _load_ticket(db, ticket_id, current_user)
    try:
        updated, _ = services.update_ticket(db, ticket=ticket, payload=payload)
    except ServiceError as exc:
        raise_http(exc)
    return updated


@router.post(
    "/{ticket_id}/messages",
    response_model=schemas.TicketMessageRead,
    status_code=status.HTTP_201_CREATED,
)
def add_message(
    ticket_id: str,
    payload: schemas.TicketMessageCreate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    ticket = _load_ticket(db, ticket_id, current_user)
    try:
        message, _ = services.add_message(db, ticket=ticket, author=current_user, payload=payload)
    except ServiceError as exc:
        raise_http(exc)
    return message
