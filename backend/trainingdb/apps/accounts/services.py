from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trainingdb.errors import ConflictError, NotFoundError, ValidationError
from trainingdb.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_access_token,
    verify_password,
)
from . import models, schemas

logger = logging.getLogger(__name__)


def _normalise_email(email: str) -> str:
    return (email or "").strip().lower()


# ---------------------------------------------------------------------------
# AUTHENTICATION
# ---------------------------------------------------------------------------


def authenticate(db: Session, *, email: str, password: str) -> Optional[models.User]:
    """
    Return the active user for the credentials, or None.

    CLIENT users whose tenant has been deactivated cannot log in.
    """
    user = (
        db.query(models.User)
        .filter(models.User.email == _normalise_email(email))
        .first()
    )
    if user is None or not user.is_active:
        logger.info("Login refused", extra={"email": _normalise_email(email)})
        return None
    if not verify_password(password, user.hashed_password):
        logger.info("Login refused", extra={"email": user.email})
        return None
    if user.role == models.AccountRole.CLIENT and (user.client is None or not user.client.is_active):
        logger.info("Login refused for inactive client", extra={"user_id": user.id})
        return None

    user.last_login_at = datetime.now(timezone.utc)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def issue_access_token_for_user(user: models.User) -> Tuple[str, int]:
    """Returns (token_string, expires_in_seconds)."""
    expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": str(user.id),
        "client_id": user.client_id,
        "role": user.role.value if hasattr(user.role, "value") else str(user.role),
    }
    token = create_access_token(data=payload, expires_delta=expires_delta)
    return token, int(expires_delta.total_seconds())


# ---------------------------------------------------------------------------
# EMPLOYEES
# ---------------------------------------------------------------------------


def create_employee(
    db: Session,
    *,
    client_id: str,
    payload: schemas.EmployeeCreate,
) -> models.Employee:
    client = db.query(models.Client).filter(models.Client.id == client_id).first()
    if client is None:
        raise NotFoundError("Client not found")
    if not client.is_active:
        raise ValidationError("Client is not active")

    fiscal_code = payload.fiscal_code.strip().upper()
    existing = (
        db.query(models.Employee.id)
        .filter(
            models.Employee.client_id == client_id,
            models.Employee.fiscal_code == fiscal_code,
        )
        .first()
    )
    if existing is not None:
        raise ConflictError("An employee with this fiscal code already exists for the client")

    data = payload.model_dump(exclude={"client_id"})
    data["fiscal_code"] = fiscal_code
    employee = models.Employee(client_id=client_id, **data)
    db.add(employee)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("An employee with this fiscal code already exists for the client") from exc
    db.refresh(employee)
    return employee


def list_employees(db: Session, *, client_id: str) -> List[models.Employee]:
    return (
        db.query(models.Employee)
        .filter(models.Employee.client_id == client_id)
        .order_by(models.Employee.last_name.asc(), models.Employee.first_name.asc())
        .all()
    )
