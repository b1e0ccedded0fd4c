# backend/trainingdb/apps/attendance/services.py
"""
Attendance recorder and matrix builder.

A batch is validated as a whole against the edition's lessons and
registered employees before anything is written, then applied in a single
transaction: either every entry lands or none does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from trainingdb.apps.accounts.models import Employee, User
from trainingdb.apps.editions.models import CourseEdition, CourseRegistration
from trainingdb.apps.editions.services import ensure_editable
from trainingdb.apps.lessons.models import Lesson
from trainingdb.apps.notifications import fanout
from trainingdb.errors import ConflictError, NotFoundError, ValidationError

from . import aggregator, models, schemas

logger = logging.getLogger(__name__)


@dataclass
class AttendanceMatrix:
    edition: CourseEdition
    lessons: List[Lesson] = field(default_factory=list)
    employees: List[Employee] = field(default_factory=list)
    attendances: List[models.Attendance] = field(default_factory=list)
    stats: List[aggregator.EmployeeAttendanceStats] = field(default_factory=list)
    lookup: Optional[aggregator.StatusLookup] = None
    _stats_by_employee: Dict[str, aggregator.EmployeeAttendanceStats] = field(
        default_factory=dict, init=False, repr=False
    )

    def __post_init__(self) -> None:
        # Built once; exports read every cell through these.
        if self.lookup is None:
            self.lookup = aggregator.lookup_from_records(
                (a.lesson_id, a.employee_id, a.status) for a in self.attendances
            )
        self._stats_by_employee = {item.employee_id: item for item in self.stats}

    @property
    def total_lessons(self) -> int:
        return len(self.lessons)

    @property
    def total_hours(self) -> float:
        return float(sum(lesson.duration_hours or 0 for lesson in self.lessons))

    def status_for(self, lesson_id: str, employee_id: str) -> models.AttendanceStatus:
        return aggregator.resolve_status(self.lookup(lesson_id, employee_id))

    def stats_for(self, employee_id: str) -> Optional[aggregator.EmployeeAttendanceStats]:
        return self._stats_by_employee.get(employee_id)


def _edition_lessons(db: Session, edition_id: str) -> List[Lesson]:
    return (
        db.query(Lesson)
        .filter(Lesson.course_edition_id == edition_id)
        .order_by(Lesson.date.asc(), Lesson.start_time.asc(), Lesson.id.asc())
        .all()
    )


def _registered_employees(db: Session, edition_id: str, client_id: Optional[str]) -> List[Employee]:
    q = (
        db.query(Employee)
        .join(CourseRegistration, CourseRegistration.employee_id == Employee.id)
        .filter(CourseRegistration.course_edition_id == edition_id)
    )
    if client_id is not None:
        q = q.filter(CourseRegistration.client_id == client_id)
    return q.order_by(Employee.last_name.asc(), Employee.first_name.asc(), Employee.id.asc()).all()


def build_attendance_matrix(
    db: Session,
    edition: CourseEdition,
    client_id: Optional[str] = None,
) -> AttendanceMatrix:
    """
    Lessons, registered employees, their attendance rows and per-employee
    stats. `client_id` narrows the employees to one tenant.
    """
    employees = _registered_employees(db, edition.id, client_id)
    if client_id is not None and not employees:
        return AttendanceMatrix(edition=edition)

    lessons = _edition_lessons(db, edition.id)
    lesson_ids = [lesson.id for lesson in lessons]
    employee_ids = [employee.id for employee in employees]
    attendances: List[models.Attendance] = []
    if lesson_ids and employee_ids:
        attendances = (
            db.query(models.Attendance)
            .filter(
                models.Attendance.lesson_id.in_(lesson_ids),
                models.Attendance.employee_id.in_(employee_ids),
            )
            .all()
        )

    lookup = aggregator.lookup_from_records(
        (a.lesson_id, a.employee_id, a.status) for a in attendances
    )
    return AttendanceMatrix(
        edition=edition,
        lessons=lessons,
        employees=employees,
        attendances=attendances,
        stats=aggregator.compute_attendance_stats(lessons, employees, lookup),
        lookup=lookup,
    )


def _validate_batch(
    entries: Sequence[schemas.AttendanceEntry],
    lesson_ids: set,
    employee_ids: set,
) -> List[dict]:
    invalid = []
    for index, entry in enumerate(entries):
        problems = []
        if entry.lesson_id not in lesson_ids:
            problems.append("lesson does not belong to this edition")
        if entry.employee_id not in employee_ids:
            problems.append("employee is not registered to this edition")
        if problems:
            invalid.append(
                {
                    "index": index,
                    "lessonId": entry.lesson_id,
                    "employeeId": entry.employee_id,
                    "errors": problems,
                }
            )
    return invalid


def record_attendance(
    db: Session,
    *,
    edition: CourseEdition,
    entries: Sequence[schemas.AttendanceEntry],
    actor: Optional[User] = None,
    client_id: Optional[str] = None,
) -> Tuple[int, fanout.FanoutResult]:
    """
    Upsert one attendance row per (lesson, employee) in the batch.

    Returns the number of rows written. If an entry repeats a pair, the
    later one wins.
    """
    ensure_editable(edition)
    if not entries:
        raise ValidationError("At least one attendance entry is required")
    if len(entries) > schemas.MAX_ENTRIES_PER_BATCH:
        raise ValidationError(
            f"At most {schemas.MAX_ENTRIES_PER_BATCH} attendance entries per request"
        )

    lesson_ids = {
        lesson_id
        for (lesson_id,) in db.query(Lesson.id).filter(Lesson.course_edition_id == edition.id).all()
    }
    registered = db.query(CourseRegistration.employee_id).filter(
        CourseRegistration.course_edition_id == edition.id
    )
    if client_id is not None:
        registered = registered.filter(CourseRegistration.client_id == client_id)
    employee_ids = {employee_id for (employee_id,) in registered.all()}

    invalid = _validate_batch(entries, lesson_ids, employee_ids)
    if invalid:
        raise ValidationError("Invalid attendance entries", details={"invalid": invalid})

    latest: Dict[Tuple[str, str], schemas.AttendanceEntry] = {}
    for entry in entries:
        latest[(entry.lesson_id, entry.employee_id)] = entry

    touched_lessons = {lesson_id for lesson_id, _ in latest}
    touched_employees = {employee_id for _, employee_id in latest}
    existing: Dict[Tuple[str, str], models.Attendance] = {
        (row.lesson_id, row.employee_id): row
        for row in db.query(models.Attendance)
        .filter(
            models.Attendance.lesson_id.in_(touched_lessons),
            models.Attendance.employee_id.in_(touched_employees),
        )
        .all()
    }

    now = datetime.now(timezone.utc)
    recorder_id = actor.id if actor is not None else None
    try:
        for key, entry in latest.items():
            row = existing.get(key)
            if row is None:
                row = models.Attendance(lesson_id=entry.lesson_id, employee_id=entry.employee_id)
            row.status = entry.status
            row.notes = entry.notes
            row.recorded_by_user_id = recorder_id
            row.recorded_at = now
            db.add(row)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Attendance was changed concurrently, please resubmit") from exc
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Attendance batch failed", extra={"edition_id": edition.id})
        raise

    logger.info(
        "Attendance recorded",
        extra={"edition_id": edition.id, "entries": len(entries), "written": len(latest)},
    )
    return len(latest), fanout.notify_attendance_recorded(db, edition, updated=len(latest))


def update_attendance(
    db: Session,
    *,
    edition: CourseEdition,
    attendance_id: str,
    payload: schemas.AttendanceUpdate,
    actor: Optional[User] = None,
) -> models.Attendance:
    ensure_editable(edition)
    row = (
        db.query(models.Attendance)
        .join(Lesson, Lesson.id == models.Attendance.lesson_id)
        .filter(
            models.Attendance.id == attendance_id,
            Lesson.course_edition_id == edition.id,
        )
        .first()
    )
    if row is None:
        raise NotFoundError("Attendance record not found")

    row.status = payload.status
    row.notes = payload.notes
    row.recorded_by_user_id = actor.id if actor is not None else None
    row.recorded_at = datetime.now(timezone.utc)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row
