# backend/trainingdb/apps/editions/services.py
"""
Edition registry: catalogue, edition lifecycle, numbering and registrations.

Routers call these functions with an open session; domain problems are
raised as `trainingdb.errors.ServiceError` subclasses. Fan-out to
notifications happens after the edition change is committed and its result
is handed back to the caller.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trainingdb.apps.accounts.models import Client, Employee, User
from trainingdb.apps.attendance.models import Attendance
from trainingdb.apps.certificates import storage as certificate_storage
from trainingdb.apps.certificates.models import Certificate
from trainingdb.apps.lessons.models import Lesson
from trainingdb.apps.notifications import fanout
from trainingdb.apps.notifications.models import EmailLog, Notification
from trainingdb.errors import (
    ConflictError,
    CrossTenantError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from trainingdb.utils.pagination import normalize_page, total_pages

from . import models, schemas
from .models import EditionStatus, RegistrationStatus

logger = logging.getLogger(__name__)

MAX_NUMBER_ALLOCATION_ATTEMPTS = 5

EDITION_SORT_FIELDS = {
    "client": Client.company_name,
    "course": models.Course.title,
    "editionNumber": models.CourseEdition.edition_number,
    "startDate": models.CourseEdition.start_date,
    "endDate": models.CourseEdition.end_date,
    "deadlineRegistry": models.CourseEdition.deadline_registry,
    "status": models.CourseEdition.status,
    "createdAt": models.CourseEdition.created_at,
}


# ---------------------------------------------------------------------------
# COURSES
# ---------------------------------------------------------------------------


def create_course(db: Session, *, payload: schemas.CourseCreate) -> models.Course:
    if payload.code:
        clash = db.query(models.Course.id).filter(models.Course.code == payload.code).first()
        if clash is not None:
            raise ConflictError("A course with this code already exists")
    course = models.Course(**payload.model_dump())
    db.add(course)
    db.commit()
    db.refresh(course)
    return course


def list_courses(db: Session, *, include_inactive: bool = False) -> List[models.Course]:
    q = db.query(models.Course)
    if not include_inactive:
        q = q.filter(models.Course.is_active.is_(True))
    return q.order_by(models.Course.title.asc()).all()


# ---------------------------------------------------------------------------
# VALIDATION HELPERS
# ---------------------------------------------------------------------------


def validate_edition_dates(
    start_date: Optional[date],
    end_date: Optional[date],
    deadline_registry: Optional[date],
) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationError(
            "End date must be on or after the start date",
            details={"field": "endDate"},
        )
    if start_date and deadline_registry and deadline_registry >= start_date:
        raise ValidationError(
            "Registry deadline must be before the start date",
            details={"field": "deadlineRegistry"},
        )


def ensure_transition(current: EditionStatus, target: EditionStatus) -> None:
    if not current.can_transition_to(target):
        raise ValidationError(
            f"Cannot move an edition from {current.value} back to {target.value}",
            details={"field": "status"},
        )


def ensure_editable(edition: models.CourseEdition) -> None:
    if edition.is_archived:
        raise ForbiddenError("Archived editions are read-only")


# ---------------------------------------------------------------------------
# NUMBERING
# ---------------------------------------------------------------------------


def allocate_edition_number(db: Session, *, course_id: str, client_id: str) -> int:
    """
    Next edition number for (course, client).

    The counter row is bumped with a single UPDATE so two concurrent
    requests can never read the same value. The first allocation seeds the
    counter from existing editions inside a savepoint; losing that insert
    race sends us back round to the UPDATE.
    """
    key = (
        models.EditionCounter.course_id == course_id,
        models.EditionCounter.client_id == client_id,
    )
    for attempt in range(1, MAX_NUMBER_ALLOCATION_ATTEMPTS + 1):
        bumped = (
            db.query(models.EditionCounter)
            .filter(*key)
            .update(
                {models.EditionCounter.last_number: models.EditionCounter.last_number + 1},
                synchronize_session=False,
            )
        )
        if bumped:
            return db.query(models.EditionCounter.last_number).filter(*key).scalar()

        seed = (
            db.query(func.max(models.CourseEdition.edition_number))
            .filter(
                models.CourseEdition.course_id == course_id,
                models.CourseEdition.client_id == client_id,
            )
            .scalar()
            or 0
        )
        try:
            with db.begin_nested():
                db.add(
                    models.EditionCounter(
                        course_id=course_id,
                        client_id=client_id,
                        last_number=seed + 1,
                    )
                )
            return seed + 1
        except IntegrityError:
            logger.info(
                "Edition counter created concurrently, retrying",
                extra={"course_id": course_id, "client_id": client_id, "attempt": attempt},
            )

    raise ConflictError("Could not allocate an edition number, please retry")


# ---------------------------------------------------------------------------
# EDITIONS
# ---------------------------------------------------------------------------


def get_edition(
    db: Session,
    edition_id: str,
    *,
    course_id: Optional[str] = None,
    scope_client_id: Optional[str] = None,
) -> models.CourseEdition:
    edition = (
        db.query(models.CourseEdition)
        .filter(models.CourseEdition.id == edition_id)
        .first()
    )
    if edition is None or (course_id is not None and edition.course_id != course_id):
        raise NotFoundError("Edition not found")
    if scope_client_id is not None and edition.client_id != scope_client_id:
        raise ForbiddenError("Edition belongs to a different client")
    return edition


def create_edition(
    db: Session,
    *,
    course_id: str,
    payload: schemas.EditionCreate,
    actor: Optional[User] = None,
) -> Tuple[models.CourseEdition, fanout.FanoutResult]:
    course = db.query(models.Course).filter(models.Course.id == course_id).first()
    if course is None:
        raise NotFoundError("Course not found")
    if not course.is_active:
        raise ValidationError("Course is not active")

    client = db.query(Client).filter(Client.id == payload.client_id).first()
    if client is None:
        raise NotFoundError("Client not found")
    if not client.is_active:
        raise ValidationError("Client is not active")

    validate_edition_dates(payload.start_date, payload.end_date, payload.deadline_registry)

    try:
        number = allocate_edition_number(db, course_id=course_id, client_id=client.id)
        edition = models.CourseEdition(
            course_id=course_id,
            client_id=client.id,
            edition_number=number,
            start_date=payload.start_date,
            end_date=payload.end_date,
            deadline_registry=payload.deadline_registry,
            status=payload.status,
            notes=payload.notes,
            created_by_user_id=actor.id if actor is not None else None,
        )
        db.add(edition)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Edition number already taken, please retry") from exc
    db.refresh(edition)

    logger.info(
        "Edition created",
        extra={"edition_id": edition.id, "course_id": course_id, "client_id": client.id, "number": number},
    )

    result = fanout.FanoutResult()
    if edition.status == EditionStatus.PUBLISHED:
        result = fanout.notify_edition_published(db, edition)
    return edition, result


def update_edition(
    db: Session,
    *,
    edition_id: str,
    payload: schemas.EditionUpdate,
    course_id: Optional[str] = None,
) -> Tuple[models.CourseEdition, fanout.FanoutResult]:
    edition = get_edition(db, edition_id, course_id=course_id)
    ensure_editable(edition)

    data = payload.model_dump(exclude_unset=True)
    validate_edition_dates(
        data.get("start_date", edition.start_date),
        data.get("end_date", edition.end_date),
        data.get("deadline_registry", edition.deadline_registry),
    )

    previous = edition.status
    target = data.pop("status", None)
    if target is not None:
        ensure_transition(previous, target)
        edition.status = target

    for field, value in data.items():
        setattr(edition, field, value)

    db.add(edition)
    db.commit()
    db.refresh(edition)

    result = fanout.FanoutResult()
    if previous == EditionStatus.DRAFT and edition.status == EditionStatus.PUBLISHED:
        result = fanout.notify_edition_published(db, edition)
    return edition, result


def publish_edition(
    db: Session,
    *,
    edition_id: str,
    course_id: Optional[str] = None,
) -> Tuple[models.CourseEdition, fanout.FanoutResult]:
    edition = get_edition(db, edition_id, course_id=course_id)
    if edition.status != EditionStatus.DRAFT:
        raise ValidationError(f"Only draft editions can be published (status is {edition.status.value})")
    return update_edition(
        db,
        edition_id=edition.id,
        payload=schemas.EditionUpdate(status=EditionStatus.PUBLISHED),
    )


def _registration_counts():
    return (
        select(
            models.CourseRegistration.course_edition_id.label("edition_id"),
            func.count(models.CourseRegistration.id).label("registrations"),
        )
        .group_by(models.CourseRegistration.course_edition_id)
        .subquery()
    )


def list_editions(
    db: Session,
    *,
    client_id: Optional[str] = None,
    course_id: Optional[str] = None,
    category_id: Optional[str] = None,
    status: Optional[EditionStatus] = None,
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    sort_by: Optional[str] = None,
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> schemas.EditionPage:
    page, limit, offset = normalize_page(page, limit)
    counts = _registration_counts()
    registrations = func.coalesce(counts.c.registrations, 0)

    q = (
        db.query(models.CourseEdition, registrations.label("registrations"))
        .join(models.Course, models.Course.id == models.CourseEdition.course_id)
        .join(Client, Client.id == models.CourseEdition.client_id)
        .outerjoin(counts, counts.c.edition_id == models.CourseEdition.id)
    )

    if client_id:
        q = q.filter(models.CourseEdition.client_id == client_id)
    if course_id:
        q = q.filter(models.CourseEdition.course_id == course_id)
    if category_id:
        q = q.filter(models.Course.category_id == category_id)
    if status:
        q = q.filter(models.CourseEdition.status == status)
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(models.Course.title.ilike(term), Client.company_name.ilike(term)))
    if date_from:
        q = q.filter(models.CourseEdition.start_date >= date_from)
    if date_to:
        q = q.filter(models.CourseEdition.start_date <= date_to)

    total = q.count()

    sort_column = registrations if sort_by == "participants" else EDITION_SORT_FIELDS.get(
        sort_by or "", models.CourseEdition.created_at
    )
    ordering = sort_column.asc() if sort_order == "asc" else sort_column.desc()
    rows = (
        q.order_by(ordering, models.CourseEdition.edition_number.asc(), models.CourseEdition.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )

    items = []
    for edition, count in rows:
        item = schemas.EditionListItem.model_validate(
            {
                **schemas.EditionRead.model_validate(edition).model_dump(),
                "course_title": edition.course.title,
                "client_name": edition.client.company_name,
                "registration_count": int(count or 0),
            }
        )
        items.append(item)

    return schemas.EditionPage(
        data=items,
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )


def edition_dependents(db: Session, edition: models.CourseEdition) -> schemas.EditionDependents:
    lesson_ids = select(Lesson.id).where(Lesson.course_edition_id == edition.id)
    counts = {
        "registrations": db.query(func.count(models.CourseRegistration.id))
        .filter(models.CourseRegistration.course_edition_id == edition.id)
        .scalar(),
        "lessons": db.query(func.count(Lesson.id))
        .filter(Lesson.course_edition_id == edition.id)
        .scalar(),
        "attendances": db.query(func.count(Attendance.id))
        .filter(Attendance.lesson_id.in_(lesson_ids))
        .scalar(),
        "certificates": db.query(func.count(Certificate.id))
        .filter(Certificate.course_edition_id == edition.id)
        .scalar(),
        "notifications": db.query(func.count(Notification.id))
        .filter(Notification.course_edition_id == edition.id)
        .scalar(),
    }
    return schemas.EditionDependents(
        **{key: int(value or 0) for key, value in counts.items()},
        requires_confirmation=bool(counts["certificates"]),
        confirmation_phrase=edition.confirmation_phrase,
    )


def _phrase_matches(expected: str, given: Optional[str]) -> bool:
    return (given or "").strip().lower() == expected.strip().lower()


def delete_edition(
    db: Session,
    *,
    edition_id: str,
    confirmation: Optional[str] = None,
    course_id: Optional[str] = None,
) -> schemas.EditionDeleteResult:
    """
    Delete an edition and everything scoped to it.

    When certificates exist the caller must echo the confirmation phrase
    ("<course title> #<edition number>"). Certificate files are removed after
    the rows are gone; a file that cannot be removed is logged, not raised.
    """
    edition = get_edition(db, edition_id, course_id=course_id)
    dependents = edition_dependents(db, edition)
    if dependents.requires_confirmation and not _phrase_matches(dependents.confirmation_phrase, confirmation):
        raise ValidationError(
            "Confirmation phrase required to delete an edition with certificates",
            details=dependents.model_dump(),
        )

    file_paths = [
        path
        for (path,) in db.query(Certificate.file_path)
        .filter(Certificate.course_edition_id == edition.id)
        .all()
    ]
    lesson_ids = select(Lesson.id).where(Lesson.course_edition_id == edition.id)

    db.query(Attendance).filter(Attendance.lesson_id.in_(lesson_ids)).delete(synchronize_session=False)
    db.query(Lesson).filter(Lesson.course_edition_id == edition.id).delete(synchronize_session=False)
    db.query(models.CourseRegistration).filter(
        models.CourseRegistration.course_edition_id == edition.id
    ).delete(synchronize_session=False)
    db.query(Certificate).filter(Certificate.course_edition_id == edition.id).delete(synchronize_session=False)
    db.query(Notification).filter(Notification.course_edition_id == edition.id).delete(synchronize_session=False)
    db.query(EmailLog).filter(EmailLog.course_edition_id == edition.id).update(
        {EmailLog.course_edition_id: None}, synchronize_session=False
    )
    db.query(models.CourseEdition).filter(models.CourseEdition.id == edition.id).delete(
        synchronize_session=False
    )
    db.commit()
    db.expire_all()

    for path in file_paths:
        certificate_storage.delete_file_quietly(path)

    logger.info(
        "Edition deleted",
        extra={"edition_id": edition_id, **dependents.model_dump(exclude={"confirmation_phrase"})},
    )
    return schemas.EditionDeleteResult(
        registrations=dependents.registrations,
        lessons=dependents.lessons,
        attendances=dependents.attendances,
        certificates=dependents.certificates,
        notifications=dependents.notifications,
    )


# ---------------------------------------------------------------------------
# REGISTRATIONS
# ---------------------------------------------------------------------------


def list_registrations(db: Session, edition: models.CourseEdition) -> List[models.CourseRegistration]:
    return (
        db.query(models.CourseRegistration)
        .join(Employee, Employee.id == models.CourseRegistration.employee_id)
        .filter(models.CourseRegistration.course_edition_id == edition.id)
        .order_by(Employee.last_name.asc(), Employee.first_name.asc())
        .all()
    )


def add_registrations(
    db: Session,
    *,
    edition: models.CourseEdition,
    employee_ids: Iterable[str],
) -> schemas.RegistrationAddResult:
    ensure_editable(edition)

    wanted = list(dict.fromkeys(employee_ids))
    employees: Dict[str, Employee] = {
        e.id: e for e in db.query(Employee).filter(Employee.id.in_(wanted)).all()
    }
    missing = [employee_id for employee_id in wanted if employee_id not in employees]
    if missing:
        raise NotFoundError("Employees not found", details={"employee_ids": missing})
    foreign = [e.id for e in employees.values() if e.client_id != edition.client_id]
    if foreign:
        raise CrossTenantError(
            "Employees belong to a different client than the edition",
            details={"employee_ids": foreign},
        )

    existing = {
        employee_id
        for (employee_id,) in db.query(models.CourseRegistration.employee_id)
        .filter(
            models.CourseRegistration.course_edition_id == edition.id,
            models.CourseRegistration.employee_id.in_(wanted),
        )
        .all()
    }
    added = 0
    for employee_id in wanted:
        if employee_id in existing:
            continue
        db.add(
            models.CourseRegistration(
                course_edition_id=edition.id,
                client_id=edition.client_id,
                employee_id=employee_id,
                status=RegistrationStatus.INSERTED,
            )
        )
        added += 1
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Registration changed concurrently, please retry") from exc
    return schemas.RegistrationAddResult(added=added, skipped=len(wanted) - added)


def remove_registration(
    db: Session,
    *,
    edition: models.CourseEdition,
    registration_id: str,
) -> None:
    ensure_editable(edition)
    registration = (
        db.query(models.CourseRegistration)
        .filter(
            models.CourseRegistration.id == registration_id,
            models.CourseRegistration.course_edition_id == edition.id,
        )
        .first()
    )
    if registration is None:
        raise NotFoundError("Registration not found")

    lesson_ids = select(Lesson.id).where(Lesson.course_edition_id == edition.id)
    db.query(Attendance).filter(
        Attendance.lesson_id.in_(lesson_ids),
        Attendance.employee_id == registration.employee_id,
    ).delete(synchronize_session=False)
    db.delete(registration)
    db.commit()
    db.expire_all()


def submit_registry(
    db: Session,
    *,
    edition_id: str,
    user: User,
    today: Optional[date] = None,
) -> Tuple[int, fanout.FanoutResult]:
    """
    Client action: confirm every INSERTED registration of a published edition
    whose registry deadline has not passed.
    """
    today = today or date.today()
    edition = get_edition(db, edition_id, scope_client_id=user.client_id)
    if edition.status != EditionStatus.PUBLISHED:
        raise ForbiddenError("The registry can only be submitted for published editions")
    if edition.deadline_registry is not None and today > edition.deadline_registry:
        raise ForbiddenError("The registry deadline has passed")

    pending = (
        db.query(models.CourseRegistration)
        .filter(
            models.CourseRegistration.course_edition_id == edition.id,
            models.CourseRegistration.client_id == user.client_id,
            models.CourseRegistration.status == RegistrationStatus.INSERTED,
        )
        .all()
    )
    if not pending:
        raise ValidationError("No employees to submit")

    incomplete = [r.employee_id for r in pending if not r.employee.has_complete_registry]
    if incomplete:
        raise ValidationError(
            "Some employees have incomplete personal data",
            details={"employee_ids": incomplete},
        )

    for registration in pending:
        registration.status = RegistrationStatus.CONFIRMED
        db.add(registration)
    db.commit()

    logger.info(
        "Registry submitted",
        extra={"edition_id": edition.id, "client_id": user.client_id, "confirmed": len(pending)},
    )
    return len(pending), fanout.notify_registry_received(db, edition, confirmed=len(pending))


def mark_trained(
    db: Session,
    *,
    edition: models.CourseEdition,
    employee_ids: Optional[List[str]] = None,
) -> int:
    ensure_editable(edition)
    q = db.query(models.CourseRegistration).filter(
        models.CourseRegistration.course_edition_id == edition.id,
        models.CourseRegistration.status == RegistrationStatus.CONFIRMED,
    )
    if employee_ids:
        q = q.filter(models.CourseRegistration.employee_id.in_(employee_ids))
    registrations = q.all()
    for registration in registrations:
        registration.status = RegistrationStatus.TRAINED
        db.add(registration)
    db.commit()
    return len(registrations)
