# backend/trainingdb/apps/lessons/models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
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


class Lesson(Base):
    """
    One dated session of an edition. Start/end times are "HH:MM" strings;
    `duration_hours` is what the attendance register adds up.
    """

    __tablename__ = "lessons"
    __table_args__ = (
        UniqueConstraint(
            "course_edition_id",
            "date",
            "start_time",
            name="uq_lessons_edition_date_start",
        ),
        Index("idx_lessons_edition_date", "course_edition_id", "date"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)

    course_edition_id = Column(
        String(36),
        ForeignKey("course_editions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=True)
    end_time = Column(String(5), nullable=True)
    duration_hours = Column(Float, nullable=False)

    title = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    edition = relationship("CourseEdition", back_populates="lessons")
    attendances = relationship(
        "Attendance",
        back_populates="lesson",
        lazy="selectin",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Lesson {self.id} {self.date} {self.start_time or ''}>"
