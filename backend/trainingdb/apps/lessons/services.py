from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trainingdb.apps.attendance.models import Attendance, AttendanceStatus
from trainingdb.apps.editions.models import CourseEdition, CourseRegistration
from trainingdb.apps.editions.services import ensure_editable
from trainingdb.errors import ConflictError, NotFoundError, ValidationError
from trainingdb.utils.pagination import normalize_page, total_pages

from . import models, schemas

logger = logging.getLogger(__name__)

_COUNT_KEYS = {
    AttendanceStatus.PRESENT: "present",
    AttendanceStatus.ABSENT: "absent",
    AttendanceStatus.ABSENT_JUSTIFIED: "justified",
}


def _minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def validate_times(start_time: Optional[str], end_time: Optional[str]) -> None:
    if start_time and end_time and _minutes(end_time) <= _minutes(start_time):
        raise ValidationError(
            "End time must be after start time",
            details={"field": "endTime"},
        )


def _ensure_free_slot(
    db: Session,
    *,
    edition_id: str,
    lesson_date: date,
    start_time: Optional[str],
    exclude_id: Optional[str] = None,
) -> None:
    # NULL start times never collide in a unique index, so check explicitly.
    q = db.query(models.Lesson.id).filter(
        models.Lesson.course_edition_id == edition_id,
        models.Lesson.date == lesson_date,
    )
    if start_time is None:
        q = q.filter(models.Lesson.start_time.is_(None))
    else:
        q = q.filter(models.Lesson.start_time == start_time)
    if exclude_id is not None:
        q = q.filter(models.Lesson.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("A lesson already exists for this date and start time")


def get_lesson(db: Session, *, edition: CourseEdition, lesson_id: str) -> models.Lesson:
    lesson = (
        db.query(models.Lesson)
        .filter(
            models.Lesson.id == lesson_id,
            models.Lesson.course_edition_id == edition.id,
        )
        .first()
    )
    if lesson is None:
        raise NotFoundError("Lesson not found")
    return lesson


def add_lesson(db: Session, *, edition: CourseEdition, payload: schemas.LessonCreate) -> models.Lesson:
    ensure_editable(edition)
    validate_times(payload.start_time, payload.end_time)
    _ensure_free_slot(
        db,
        edition_id=edition.id,
        lesson_date=payload.date,
        start_time=payload.start_time,
    )

    lesson = models.Lesson(course_edition_id=edition.id, **payload.model_dump())
    db.add(lesson)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("A lesson already exists for this date and start time") from exc
    db.refresh(lesson)
    return lesson


def update_lesson(
    db: Session,
    *,
    edition: CourseEdition,
    lesson_id: str,
    payload: schemas.LessonUpdate,
) -> models.Lesson:
    ensure_editable(edition)
    lesson = get_lesson(db, edition=edition, lesson_id=lesson_id)
    data = payload.model_dump(exclude_unset=True)
    if "duration_hours" in data and data["duration_hours"] is None:
        raise ValidationError("Duration is required", details={"field": "durationHours"})
    if "date" in data and data["date"] is None:
        raise ValidationError("Date is required", details={"field": "date"})

    start_time = data.get("start_time", lesson.start_time)
    validate_times(start_time, data.get("end_time", lesson.end_time))
    if "date" in data or "start_time" in data:
        _ensure_free_slot(
            db,
            edition_id=edition.id,
            lesson_date=data.get("date", lesson.date),
            start_time=start_time,
            exclude_id=lesson.id,
        )

    for field, value in data.items():
        setattr(lesson, field, value)
    db.add(lesson)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("A lesson already exists for this date and start time") from exc
    db.refresh(lesson)
    return lesson


def delete_lesson(db: Session, *, edition: CourseEdition, lesson_id: str) -> int:
    """Delete a lesson and its attendance rows; returns the attendance rows removed."""
    ensure_editable(edition)
    lesson = get_lesson(db, edition=edition, lesson_id=lesson_id)
    removed = (
        db.query(Attendance)
        .filter(Attendance.lesson_id == lesson.id)
        .delete(synchronize_session=False)
    )
    db.query(models.Lesson).filter(models.Lesson.id == lesson.id).delete(synchronize_session=False)
    db.commit()
    db.expire_all()
    logger.info("Lesson deleted", extra={"lesson_id": lesson_id, "attendances": removed})
    return int(removed)


def attendance_counts(db: Session, lesson_ids) -> Dict[str, schemas.AttendanceCounts]:
    counts: Dict[str, schemas.AttendanceCounts] = {
        lesson_id: schemas.AttendanceCounts() for lesson_id in lesson_ids
    }
    if not counts:
        return counts
    rows = (
        db.query(Attendance.lesson_id, Attendance.status, func.count(Attendance.id))
        .filter(Attendance.lesson_id.in_(list(counts)))
        .group_by(Attendance.lesson_id, Attendance.status)
        .all()
    )
    for lesson_id, status, total in rows:
        setattr(counts[lesson_id], _COUNT_KEYS[status], int(total))
    return counts


def list_lessons(
    db: Session,
    *,
    edition: CourseEdition,
    page: int = 1,
    limit: int = 50,
) -> schemas.LessonPage:
    page, limit, offset = normalize_page(page, limit, default_limit=50, max_limit=200)
    q = db.query(models.Lesson).filter(models.Lesson.course_edition_id == edition.id)
    total = q.count()
    lessons = (
        q.order_by(models.Lesson.date.asc(), models.Lesson.start_time.asc(), models.Lesson.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    counts = attendance_counts(db, [lesson.id for lesson in lessons])
    total_employees = (
        db.query(func.count(CourseRegistration.id))
        .filter(CourseRegistration.course_edition_id == edition.id)
        .scalar()
        or 0
    )
    data = [
        schemas.LessonWithCounts(
            **schemas.LessonRead.model_validate(lesson).model_dump(),
            attendance=counts[lesson.id],
        )
        for lesson in lessons
    ]
    return schemas.LessonPage(
        data=data,
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
        total_employees=int(total_employees),
    )
