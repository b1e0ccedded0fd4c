# backend/trainingdb/apps/certificates/models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Certificate(Base):
    """
    An issued certificate file for one employee.

    `course_edition_id` is NULL for external certificates (training the client
    obtained elsewhere). When set, the edition, the employee and the
    certificate all belong to the same client.
    """

    __tablename__ = "certificates"
    __table_args__ = (
        Index("idx_certificates_client_expires", "client_id", "expires_at"),
        Index("idx_certificates_employee", "employee_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)

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
    )
    course_edition_id = Column(
        String(36),
        ForeignKey("course_editions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    file_path = Column(
        String(512),
        nullable=False,
        doc="Path relative to CERTIFICATE_STORAGE_DIR.",
    )
    original_filename = Column(String(255), nullable=True)
    file_size_bytes = Column(Integer, nullable=True)

    achieved_at = Column(Date, nullable=False)
    expires_at = Column(Date, nullable=True)

    uploaded_by_user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    uploaded_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    employee = relationship("Employee", lazy="joined")
    edition = relationship("CourseEdition", lazy="joined")

    def __repr__(self) -> str:
        return f"<Certificate {self.id} employee={self.employee_id} edition={self.course_edition_id}>"
