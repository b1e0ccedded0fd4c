# backend/trainingdb/apps/accounts/router.py

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from trainingdb.database import get_db
from trainingdb.errors import ServiceError, raise_http
from trainingdb.security import get_current_active_user, tenant_scope
from . import models, schemas, services

auth_router = APIRouter(prefix="/auth", tags=["auth"])
router = APIRouter(prefix="/employees", tags=["employees"])


@auth_router.post(
    "/login",
    response_model=schemas.Token,
    summary="Login with email and password",
)
def login(
    payload: schemas.LoginRequest,
    db: Session = Depends(get_db),
):
    user = services.authenticate(db, email=payload.email, password=payload.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password.",
        )
    token, expires_in = services.issue_access_token_for_user(user)
    return schemas.Token(access_token=token, expires_in=expires_in, user=user)


@auth_router.get(
    "/me",
    response_model=schemas.UserRead,
    summary="Get current logged-in user",
)
def read_current_user(
    current_user: models.User = Depends(get_current_active_user),
):
    return current_user


# ---------------------------------------------------------------------------
# EMPLOYEES
# ---------------------------------------------------------------------------


def _resolve_client_id(current_user: models.User, requested: Optional[str]) -> str:
    scope = tenant_scope(current_user)
    if scope is not None:
        if requested and requested != scope:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Cannot manage employees of another client",
            )
        return scope
    if not requested:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="client_id is required",
        )
    return requested


@router.get("", response_model=List[schemas.EmployeeRead])
def list_employees(
    client_id: Optional[str] = Query(None, alias="clientId"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    resolved = _resolve_client_id(current_user, client_id)
    return services.list_employees(db, client_id=resolved)


@router.post("", response_model=schemas.EmployeeRead, status_code=status.HTTP_201_CREATED)
def create_employee(
    payload: schemas.EmployeeCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    resolved = _resolve_client_id(current_user, payload.client_id)
    try:
        return services.create_employee(db, client_id=resolved, payload=payload)
    except ServiceError as exc:
        raise_http(exc)
