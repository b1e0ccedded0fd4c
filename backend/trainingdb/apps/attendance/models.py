# backend/trainingdb/apps/attendance/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttendanceStatus(str, enum.Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    ABSENT_JUSTIFIED = "ABSENT_JUSTIFIED"


class Attendance(Base):
    """
    Outcome for one employee at one lesson. A missing row means the employee
    is counted as absent.
    """

    __tablename__ = "attendances"
    __table_args__ = (
        UniqueConstraint("lesson_id", "employee_id", name="uq_attendances_lesson_employee"),
        Index("idx_attendances_employee", "employee_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)

    lesson_id = Column(
        String(36),
        ForeignKey("lessons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id = Column(
        String(36),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )

    status = Column(
        Enum(AttendanceStatus, name="attendance_status_enum", native_enum=False),
        nullable=False,
    )
    notes = Column(Text, nullable=True)

    recorded_by_user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    lesson = relationship("Lesson", back_populates="attendances")

    def __repr__(self) -> str:
        return f"<Attendance lesson={self.lesson_id} employee={self.employee_id} {self.status}>"
