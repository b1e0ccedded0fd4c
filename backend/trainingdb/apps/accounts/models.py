# backend/trainingdb/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountRole(str, enum.Enum):
    """Portal roles.

    ADMIN users run the training provider back office and are not bound to a
    client. CLIENT users always belong to exactly one client tenant.
    """

    ADMIN = "ADMIN"
    CLIENT = "CLIENT"


# ---------------------------------------------------------------------------
# CLIENT (TENANT)
# ---------------------------------------------------------------------------


class Client(Base):
    """
    A client company. Editions, registrations, employees and certificates are
    always scoped to one client.
    """

    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_name = Column(String(255), nullable=False, index=True)
    vat_code = Column(String(32), nullable=True, unique=True)

    contact_name = Column(String(255), nullable=True)
    contact_email = Column(
        String(255),
        nullable=True,
        doc="Registered contact used for edition, deadline and certificate emails.",
    )

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    users = relationship("User", back_populates="client", lazy="selectin")
    employees = relationship("Employee", back_populates="client", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Client {self.id} {self.company_name}>"


# ---------------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------------


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_client_role", "client_id", "role"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)

    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=True)
    hashed_password = Column(String(255), nullable=False)

    role = Column(
        Enum(AccountRole, name="account_role_enum", native_enum=False),
        nullable=False,
        default=AccountRole.CLIENT,
    )

    client_id = Column(
        String(36),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        doc="Required for CLIENT users; NULL for ADMIN users.",
    )

    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    client = relationship("Client", back_populates="users", lazy="joined")

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"


# ---------------------------------------------------------------------------
# EMPLOYEES (TRAINEES)
# ---------------------------------------------------------------------------


class Employee(Base):
    """
    A client's employee. Employees do not log in; they are enrolled into
    editions, tracked in the attendance register and receive certificates.
    """

    __tablename__ = "employees"
    __table_args__ = (
        UniqueConstraint("client_id", "fiscal_code", name="uq_employees_client_fiscal_code"),
        Index("idx_employees_client_last_name", "client_id", "last_name"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)

    client_id = Column(
        String(36),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False)
    fiscal_code = Column(
        String(32),
        nullable=False,
        doc="National tax code, upper-cased. Also used to match certificate file names.",
    )

    birth_date = Column(Date, nullable=True)
    birth_place = Column(String(128), nullable=True)
    email = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    client = relationship("Client", back_populates="employees", lazy="joined")

    @property
    def display_name(self) -> str:
        return f"{self.last_name} {self.first_name}".strip()

    @property
    def has_complete_registry(self) -> bool:
        return bool(
            self.first_name
            and self.last_name
            and self.fiscal_code
            and self.birth_date
            and self.birth_place
        )

    def __repr__(self) -> str:
        return f"<Employee {self.id} {self.display_name} client={self.client_id}>"
