from __future__ import annotations

from datetime import date, timedelta
from typing import List

from trainingdb.database import WriteSessionLocal
from trainingdb.security import get_password_hash
from trainingdb.apps.accounts import models as account_models
from trainingdb.apps.accounts import schemas as account_schemas
from trainingdb.apps.accounts import services as account_services
from trainingdb.apps.attendance import models as attendance_models
from trainingdb.apps.attendance import schemas as attendance_schemas
from trainingdb.apps.attendance import services as attendance_services
from trainingdb.apps.editions import models as edition_models
from trainingdb.apps.editions import schemas as edition_schemas
from trainingdb.apps.editions import services as edition_services
from trainingdb.apps.lessons import schemas as lesson_schemas
from trainingdb.apps.lessons import services as lesson_services

DEMO_PASSWORD = "ChangeMe123!"

_FIRST_NAMES = ["Marco", "Maria", "Luca", "Giulia", "Andrea", "Sara"]
_LAST_NAMES = ["Rossi", "Bianchi", "Ferrari", "Romano", "Colombo", "Ricci"]


def _demo_fiscal_code(first_name: str, last_name: str, index: int) -> str:
    # Shape-compatible with real fiscal codes, no checksum.
    month = "ABCDEHLMPRST"[index % 12]
    day = f"{10 + index % 20:02d}"
    prefix = (last_name[:3].ljust(3, "X") + first_name[:3].ljust(3, "X")).upper()
    return f"{prefix}85{month}{day}H{100 + index:03d}Z"


def _get_or_create_admin(db) -> account_models.User:
    email = "admin@training.example"
    user = db.query(account_models.User).filter(account_models.User.email == email).first()
    if user:
        return user
    user = account_models.User(
        email=email,
        full_name="Demo Admin",
        role=account_models.AccountRole.ADMIN,
        hashed_password=get_password_hash(DEMO_PASSWORD),
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _get_or_create_client(db) -> account_models.Client:
    client = (
        db.query(account_models.Client)
        .filter(account_models.Client.vat_code == "01234567890")
        .first()
    )
    if client:
        return client
    client = account_models.Client(
        company_name="Demo Hospital",
        vat_code="01234567890",
        contact_name="Demo Contact",
        contact_email="contact@demo-hospital.example",
        is_active=True,
    )
    db.add(client)
    db.commit()
    db.refresh(client)

    db.add(
        account_models.User(
            email=client.contact_email,
            full_name=client.contact_name,
            role=account_models.AccountRole.CLIENT,
            client_id=client.id,
            hashed_password=get_password_hash(DEMO_PASSWORD),
            is_active=True,
        )
    )
    db.commit()
    return client


def _seed_employees(db, client: account_models.Client) -> List[account_models.Employee]:
    existing = account_services.list_employees(db, client_id=client.id)
    if existing:
        return existing
    employees = []
    for index, (first, last) in enumerate(zip(_FIRST_NAMES, _LAST_NAMES)):
        employees.append(
            account_services.create_employee(
                db,
                client_id=client.id,
                payload=account_schemas.EmployeeCreate(
                    first_name=first,
                    last_name=last,
                    fiscal_code=_demo_fiscal_code(first, last, index),
                    birth_date=date(1985, 1 + index % 12, 10 + index),
                    birth_place="Roma",
                    email=f"{first.lower()}.{last.lower()}@demo-hospital.example",
                ),
            )
        )
    return employees


def _get_or_create_course(db) -> edition_models.Course:
    course = db.query(edition_models.Course).filter(edition_models.Course.code == "SAFETY-GEN-4H").first()
    if course:
        return course
    return edition_services.create_course(
        db,
        payload=edition_schemas.CourseCreate(
            title="General workplace safety (4h)",
            code="SAFETY-GEN-4H",
            description="Baseline safety training for every worker.",
            duration_hours=4,
            validity_years=5,
        ),
    )


def _seed_edition(db, course, client, admin, employees) -> None:
    already = (
        db.query(edition_models.CourseEdition)
        .filter(
            edition_models.CourseEdition.course_id == course.id,
            edition_models.CourseEdition.client_id == client.id,
        )
        .first()
    )
    if already:
        return

    start = date.today() + timedelta(days=14)
    edition, _ = edition_services.create_edition(
        db,
        course_id=course.id,
        payload=edition_schemas.EditionCreate(
            client_id=client.id,
            start_date=start,
            end_date=start + timedelta(days=1),
            deadline_registry=start - timedelta(days=5),
            status=edition_models.EditionStatus.PUBLISHED,
            notes="Demo edition",
        ),
        actor=admin,
    )
    edition_services.add_registrations(db, edition=edition, employee_ids=[e.id for e in employees])

    lessons = [
        lesson_services.add_lesson(
            db,
            edition=edition,
            payload=lesson_schemas.LessonCreate(
                date=start + timedelta(days=offset),
                start_time="09:00",
                end_time="11:00",
                duration_hours=2,
                title=f"Module {offset + 1}",
            ),
        )
        for offset in range(2)
    ]

    entries = []
    for index, employee in enumerate(employees):
        for lesson in lessons:
            status = attendance_models.AttendanceStatus.PRESENT
            if index % 4 == 3 and lesson is lessons[-1]:
                status = attendance_models.AttendanceStatus.ABSENT_JUSTIFIED
            entries.append(
                attendance_schemas.AttendanceEntry(
                    lesson_id=lesson.id,
                    employee_id=employee.id,
                    status=status,
                )
            )
    attendance_services.record_attendance(db, edition=edition, entries=entries, actor=admin)


def main() -> None:
    db = WriteSessionLocal()
    try:
        admin = _get_or_create_admin(db)
        client = _get_or_create_client(db)
        employees = _seed_employees(db, client)
        course = _get_or_create_course(db)
        _seed_edition(db, course, client, admin, employees)
        print(f"Demo data ready. Admin: {admin.email} / {DEMO_PASSWORD}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
