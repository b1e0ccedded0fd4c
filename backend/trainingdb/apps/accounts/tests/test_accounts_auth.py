from __future__ import annotations

import bcrypt
import pytest
from fastapi import HTTPException
from jose import jwt

from trainingdb import security
from trainingdb.apps.accounts import models as account_models
from trainingdb.apps.accounts import router as accounts_router
from trainingdb.apps.accounts import schemas as account_schemas
from trainingdb.apps.accounts import services as account_services
from trainingdb.errors import ConflictError, ValidationError


def _create_client(db, name: str = "Auth Co", *, active: bool = True) -> account_models.Client:
    client = account_models.Client(company_name=name, is_active=active)
    db.add(client)
    db.commit()
    return client


def _create_user(db, email: str, password: str = "Secret123!", client=None) -> account_models.User:
    user = account_models.User(
        email=email,
        full_name="Auth User",
        hashed_password=security.get_password_hash(password),
        role=account_models.AccountRole.CLIENT if client else account_models.AccountRole.ADMIN,
        client_id=client.id if client else None,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


def _employee_payload(**overrides) -> account_schemas.EmployeeCreate:
    values = {
        "first_name": "Anna",
        "last_name": "Riva",
        "fiscal_code": " rvinna90a41f205x ",
    }
    values.update(overrides)
    return account_schemas.EmployeeCreate(**values)


# ---------------------------------------------------------------------------
# PASSWORDS AND TOKENS
# ---------------------------------------------------------------------------


def test_password_hash_round_trip():
    hashed = security.get_password_hash("Secret123!")

    assert hashed.startswith("$argon2")
    assert security.verify_password("Secret123!", hashed) is True
    assert security.verify_password("wrong", hashed) is False
    assert security.verify_password("", hashed) is False


def test_legacy_bcrypt_hash_still_verifies():
    legacy = bcrypt.hashpw(b"Secret123!", bcrypt.gensalt(rounds=4)).decode("utf-8")

    assert security.verify_password("Secret123!", legacy) is True
    assert security.verify_password("nope", legacy) is False
    assert security.verify_password("Secret123!", "plain-text") is False


def test_access_token_carries_role_and_client(db_session):
    client = _create_client(db_session)
    user = _create_user(db_session, "hr@auth.example", client=client)

    token, expires_in = account_services.issue_access_token_for_user(user)
    payload = jwt.decode(token, security.SECRET_KEY, algorithms=[security.JWT_ALGORITHM])

    assert payload["sub"] == user.id
    assert payload["client_id"] == client.id
    assert payload["role"] == "CLIENT"
    assert expires_in == security.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    assert security.get_current_user(token=token, db=db_session).id == user.id


def test_invalid_token_is_rejected(db_session):
    with pytest.raises(HTTPException) as excinfo:
        security.get_current_user(token="not-a-token", db=db_session)
    assert excinfo.value.status_code == 401


# ---------------------------------------------------------------------------
# LOGIN
# ---------------------------------------------------------------------------


def test_authenticate_normalises_email(db_session):
    user = _create_user(db_session, "admin@auth.example")

    found = account_services.authenticate(db_session, email="  Admin@Auth.Example ", password="Secret123!")

    assert found is not None
    assert found.id == user.id
    assert found.last_login_at is not None


def test_authenticate_refuses_wrong_password_and_inactive_client(db_session):
    dormant = _create_client(db_session, "Dormant Co", active=False)
    _create_user(db_session, "admin@auth.example")
    _create_user(db_session, "hr@dormant.example", client=dormant)

    assert account_services.authenticate(db_session, email="admin@auth.example", password="bad") is None
    assert account_services.authenticate(db_session, email="hr@dormant.example", password="Secret123!") is None
    assert account_services.authenticate(db_session, email="nobody@auth.example", password="x") is None


def test_login_endpoint_returns_token(db_session):
    user = _create_user(db_session, "admin@auth.example")

    token = accounts_router.login(
        payload=account_schemas.LoginRequest(email="admin@auth.example", password="Secret123!"),
        db=db_session,
    )

    assert token.token_type == "bearer"
    assert token.user.id == user.id

    with pytest.raises(HTTPException) as excinfo:
        accounts_router.login(
            payload=account_schemas.LoginRequest(email="admin@auth.example", password="wrong"),
            db=db_session,
        )
    assert excinfo.value.status_code == 401


# ---------------------------------------------------------------------------
# ROLE AND TENANT CHECKS
# ---------------------------------------------------------------------------


def test_role_dependencies(db_session):
    client = _create_client(db_session)
    admin = _create_user(db_session, "admin@auth.example")
    client_user = _create_user(db_session, "hr@auth.example", client=client)

    assert security.require_admin(current_user=admin) is admin
    assert security.require_client_user(current_user=client_user) is client_user
    with pytest.raises(HTTPException):
        security.require_admin(current_user=client_user)
    with pytest.raises(HTTPException):
        security.require_client_user(current_user=admin)

    assert security.tenant_scope(admin) is None
    assert security.tenant_scope(client_user) == client.id


def test_client_user_without_client_is_refused(db_session):
    orphan = account_models.User(
        email="orphan@auth.example",
        hashed_password="hash",
        role=account_models.AccountRole.CLIENT,
        is_active=True,
    )

    with pytest.raises(HTTPException) as excinfo:
        security.tenant_scope(orphan)
    assert excinfo.value.status_code == 403


# ---------------------------------------------------------------------------
# EMPLOYEES
# ---------------------------------------------------------------------------


def test_create_employee_upper_cases_fiscal_code(db_session):
    client = _create_client(db_session)

    employee = account_services.create_employee(db_session, client_id=client.id, payload=_employee_payload())

    assert employee.fiscal_code == "RVINNA90A41F205X"
    assert employee.client_id == client.id


def test_duplicate_fiscal_code_within_client_conflicts(db_session):
    client = _create_client(db_session)
    other = _create_client(db_session, "Other Co")
    account_services.create_employee(db_session, client_id=client.id, payload=_employee_payload())

    with pytest.raises(ConflictError):
        account_services.create_employee(
            db_session,
            client_id=client.id,
            payload=_employee_payload(fiscal_code="RVINNA90A41F205X"),
        )

    elsewhere = account_services.create_employee(db_session, client_id=other.id, payload=_employee_payload())
    assert elsewhere.client_id == other.id


def test_inactive_client_cannot_get_employees(db_session):
    dormant = _create_client(db_session, "Dormant Co", active=False)

    with pytest.raises(ValidationError):
        account_services.create_employee(db_session, client_id=dormant.id, payload=_employee_payload())


def test_client_user_cannot_create_employees_for_another_client(db_session):
    client = _create_client(db_session)
    other = _create_client(db_session, "Other Co")
    client_user = _create_user(db_session, "hr@auth.example", client=client)

    with pytest.raises(HTTPException) as excinfo:
        accounts_router.create_employee(
            payload=_employee_payload(client_id=other.id),
            db=db_session,
            current_user=client_user,
        )
    assert excinfo.value.status_code == 403

    created = accounts_router.create_employee(
        payload=_employee_payload(),
        db=db_session,
        current_user=client_user,
    )
    assert created.client_id == client.id


def test_admin_must_name_client_when_listing_employees(db_session):
    admin = _create_user(db_session, "admin@auth.example")

    with pytest.raises(HTTPException) as excinfo:
        accounts_router.list_employees(client_id=None, db=db_session, current_user=admin)
    assert excinfo.value.status_code == 400
