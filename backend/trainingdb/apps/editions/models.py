# backend/trainingdb/apps/editions/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class EditionStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CLOSED = "CLOSED"
    ARCHIVED = "ARCHIVED"

    @property
    def rank(self) -> int:
        return _EDITION_STATUS_ORDER.index(self)

    def can_transition_to(self, target: "EditionStatus") -> bool:
        """Forward-only lifecycle; skipping ahead is allowed, staying put is a no-op."""
        return target.rank >= self.rank


_EDITION_STATUS_ORDER = [
    EditionStatus.DRAFT,
    EditionStatus.PUBLISHED,
    EditionStatus.CLOSED,
    EditionStatus.ARCHIVED,
]


class RegistrationStatus(str, enum.Enum):
    INSERTED = "INSERTED"
    CONFIRMED = "CONFIRMED"
    TRAINED = "TRAINED"


# ---------------------------------------------------------------------------
# COURSE CATALOGUE
# ---------------------------------------------------------------------------


class CourseCategory(Base):
    __tablename__ = "course_categories"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(128), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    courses = relationship("Course", back_populates="category", lazy="selectin")


class Course(Base):
    """
    Catalogue entry. A course is not tenant scoped; each client gets its own
    editions of it.
    """

    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=generate_id)
    code = Column(String(64), nullable=True, unique=True)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    duration_hours = Column(Float, nullable=True)
    validity_years = Column(
        Integer,
        nullable=True,
        doc="Used to suggest certificate expiry dates; NULL means no expiry.",
    )

    category_id = Column(
        String(36),
        ForeignKey("course_categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    category = relationship("CourseCategory", back_populates="courses", lazy="joined")
    editions = relationship("CourseEdition", back_populates="course", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Course {self.id} {self.title}>"


# ---------------------------------------------------------------------------
# EDITIONS
# ---------------------------------------------------------------------------


class CourseEdition(Base):
    """
    One run of a course for one client. `edition_number` is sequential within
    (course, client) and is allocated through `EditionCounter`.
    """

    __tablename__ = "course_editions"
    __table_args__ = (
        UniqueConstraint(
            "course_id",
            "client_id",
            "edition_number",
            name="uq_course_editions_course_client_number",
        ),
        Index("idx_course_editions_client_status", "client_id", "status"),
        Index("idx_course_editions_status_deadline", "status", "deadline_registry"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)

    course_id = Column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id = Column(
        String(36),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    edition_number = Column(Integer, nullable=False)

    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    deadline_registry = Column(
        Date,
        nullable=True,
        doc="Last day on which the client can submit the employee registry.",
    )

    status = Column(
        Enum(EditionStatus, name="edition_status_enum", native_enum=False),
        nullable=False,
        default=EditionStatus.DRAFT,
        index=True,
    )

    notes = Column(Text, nullable=True)

    created_by_user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    course = relationship("Course", back_populates="editions", lazy="joined")
    client = relationship("Client", lazy="joined")
    registrations = relationship(
        "CourseRegistration",
        back_populates="edition",
        lazy="selectin",
        passive_deletes=True,
    )
    lessons = relationship(
        "Lesson",
        back_populates="edition",
        lazy="selectin",
        passive_deletes=True,
        order_by="Lesson.date",
    )

    @property
    def is_archived(self) -> bool:
        return self.status == EditionStatus.ARCHIVED

    @property
    def confirmation_phrase(self) -> str:
        title = self.course.title if self.course is not None else ""
        return f"{title} #{self.edition_number}"

    def __repr__(self) -> str:
        return f"<CourseEdition {self.id} #{self.edition_number} status={self.status}>"


class EditionCounter(Base):
    """
    Last allocated edition number per (course, client). Numbers are never
    handed out twice, even after an edition is deleted.
    """

    __tablename__ = "edition_counters"

    course_id = Column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        primary_key=True,
    )
    client_id = Column(
        String(36),
        ForeignKey("clients.id", ondelete="CASCADE"),
        primary_key=True,
    )
    last_number = Column(Integer, nullable=False, default=0)


# ---------------------------------------------------------------------------
# REGISTRATIONS
# ---------------------------------------------------------------------------


class CourseRegistration(Base):
    __tablename__ = "course_registrations"
    __table_args__ = (
        UniqueConstraint(
            "course_edition_id",
            "employee_id",
            name="uq_course_registrations_edition_employee",
        ),
        Index("idx_course_registrations_edition_status", "course_edition_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)

    course_edition_id = Column(
        String(36),
        ForeignKey("course_editions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id = Column(
        String(36),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id = Column(
        String(36),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status = Column(
        Enum(RegistrationStatus, name="registration_status_enum", native_enum=False),
        nullable=False,
        default=RegistrationStatus.INSERTED,
    )

    inserted_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    edition = relationship("CourseEdition", back_populates="registrations")
    employee = relationship("Employee", lazy="joined")

    def __repr__(self) -> str:
        return f"<CourseRegistration edition={self.course_edition_id} employee={self.employee_id} {self.status}>"
