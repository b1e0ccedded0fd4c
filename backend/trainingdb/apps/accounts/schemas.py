# backend/trainingdb/apps/accounts/schemas.py

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .models import AccountRole

# ---------------------------------------------------------------------------
# CLIENTS
# ---------------------------------------------------------------------------


class ClientBase(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=255)
    vat_code: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[EmailStr] = None


class ClientCreate(ClientBase):
    pass


class ClientRead(ClientBase):
    id: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# USERS / AUTH
# ---------------------------------------------------------------------------


class UserRead(BaseModel):
    id: str
    email: EmailStr
    full_name: Optional[str] = None
    role: AccountRole
    client_id: Optional[str] = None
    is_active: bool
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead


# ---------------------------------------------------------------------------
# EMPLOYEES
# ---------------------------------------------------------------------------


class EmployeeBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=128)
    last_name: str = Field(..., min_length=1, max_length=128)
    fiscal_code: str = Field(..., min_length=1, max_length=32)
    birth_date: Optional[date] = None
    birth_place: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator("fiscal_code")
    @classmethod
    def _upper_fiscal_code(cls, value: str) -> str:
        return value.strip().upper()


class EmployeeCreate(EmployeeBase):
    client_id: Optional[str] = Field(
        None,
        description="Admins must name the client; client users always create for their own tenant.",
    )


class EmployeeRead(EmployeeBase):
    id: str
    client_id: str
    created_at: datetime

    class Config:
        from_attributes = True
