from __future__ import annotations

from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from trainingdb.apps.accounts import models as account_models
from trainingdb.apps.attendance import aggregator
from trainingdb.apps.attendance import exports
from trainingdb.apps.attendance import models as attendance_models
from trainingdb.apps.attendance import router as attendance_router
from trainingdb.apps.attendance import schemas as attendance_schemas
from trainingdb.apps.attendance import services as attendance_services
from trainingdb.apps.editions import models as edition_models
from trainingdb.apps.lessons import models as lesson_models

P = attendance_models.AttendanceStatus.PRESENT
A = attendance_models.AttendanceStatus.ABSENT


def _create_client(db, name: str = "Export Co") -> account_models.Client:
    client = account_models.Client(company_name=name, is_active=True)
    db.add(client)
    db.commit()
    return client


def _create_user(db, client=None, email: str = "viewer@example.com") -> account_models.User:
    user = account_models.User(
        email=email,
        hashed_password="hash",
        role=account_models.AccountRole.CLIENT if client else account_models.AccountRole.ADMIN,
        client_id=client.id if client else None,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


def _create_edition(db, client) -> edition_models.CourseEdition:
    course = edition_models.Course(title="First Aid")
    db.add(course)
    db.commit()
    edition = edition_models.CourseEdition(
        course_id=course.id,
        client_id=client.id,
        edition_number=3,
        status=edition_models.EditionStatus.PUBLISHED,
    )
    db.add(edition)
    db.commit()
    return edition


def _create_employee(db, edition, last_name: str, first_name: str) -> account_models.Employee:
    employee = account_models.Employee(
        client_id=edition.client_id,
        first_name=first_name,
        last_name=last_name,
        fiscal_code=f"FC-{last_name.upper()}",
    )
    db.add(employee)
    db.commit()
    db.add(
        edition_models.CourseRegistration(
            course_edition_id=edition.id,
            client_id=edition.client_id,
            employee_id=employee.id,
        )
    )
    db.commit()
    return employee


def _create_lesson(db, edition, day: int) -> lesson_models.Lesson:
    lesson = lesson_models.Lesson(
        course_edition_id=edition.id,
        date=date(2024, 5, day),
        start_time="09:00",
        end_time="13:00",
        duration_hours=4,
    )
    db.add(lesson)
    db.commit()
    return lesson


def _recorded_matrix(db):
    client = _create_client(db)
    edition = _create_edition(db, client)
    alpha = _create_employee(db, edition, "Alpha", "Anna")
    beta = _create_employee(db, edition, "Beta", "Bruno")
    lessons = [_create_lesson(db, edition, 6), _create_lesson(db, edition, 7)]
    attendance_services.record_attendance(
        db,
        edition=edition,
        entries=[
            attendance_schemas.AttendanceEntry(lesson_id=lessons[0].id, employee_id=alpha.id, status=P),
            attendance_schemas.AttendanceEntry(lesson_id=lessons[1].id, employee_id=alpha.id, status=P),
            attendance_schemas.AttendanceEntry(lesson_id=lessons[0].id, employee_id=beta.id, status=P),
            attendance_schemas.AttendanceEntry(lesson_id=lessons[1].id, employee_id=beta.id, status=A),
        ],
    )
    return client, edition, attendance_services.build_attendance_matrix(db, edition)


def test_csv_export_rows(db_session):
    _client, _edition, matrix = _recorded_matrix(db_session)

    lines = exports.build_csv(matrix).splitlines()

    assert lines[0] == (
        '"Employee","06/05/2024","07/05/2024","Present","Absent","Justified",'
        '"Percentage","Total Hours","Attended Hours"'
    )
    assert lines[1] == '"Alpha Anna","P","P",2,0,0,"100%",8,8'
    assert lines[2] == '"Beta Bruno","P","A",1,1,0,"50%",8,4'
    assert len(lines) == 3


def test_pdf_rows_agree_with_stats(db_session):
    _client, _edition, matrix = _recorded_matrix(db_session)

    rows = exports.pdf_rows(matrix)

    assert rows[0] == ["Employee", "06/05/2024", "07/05/2024", "%", "Hours"]
    assert rows[1] == ["Alpha Anna", "P", "P", "100%", "8/8"]
    assert rows[2] == ["Beta Bruno", "P", "A", "50%", "4/8"]


def test_pdf_export_is_a_pdf(db_session):
    _client, _edition, matrix = _recorded_matrix(db_session)

    content = exports.build_pdf(matrix)

    assert content.startswith(b"%PDF-")


def test_format_hours():
    assert exports.format_hours(8.0) == 8
    assert exports.format_hours(1.5) == 1.5
    assert exports.format_hours(None) == 0


def test_export_endpoint_sets_attachment_headers(db_session):
    _client, edition, _matrix = _recorded_matrix(db_session)
    admin = _create_user(db_session)

    response = attendance_router.export_attendance(
        course_id=edition.course_id,
        edition_id=edition.id,
        export_format="csv",
        db=db_session,
        current_user=admin,
    )

    assert response.media_type == exports.CSV_CONTENT_TYPE
    assert response.headers["content-disposition"] == f'attachment; filename="attendance_{edition.id}.csv"'


def test_export_endpoint_without_employees_is_404(db_session):
    client = _create_client(db_session)
    edition = _create_edition(db_session, client)
    viewer = _create_user(db_session, client)

    with pytest.raises(HTTPException) as excinfo:
        attendance_router.export_attendance(
            course_id=edition.course_id,
            edition_id=edition.id,
            export_format="pdf",
            db=db_session,
            current_user=viewer,
        )

    assert excinfo.value.status_code == 404


def test_large_matrix_builds_its_lookup_once(monkeypatch):
    lessons = [
        SimpleNamespace(id=f"L{i:02d}", date=date(2024, 1, 1) + timedelta(days=i), duration_hours=2)
        for i in range(40)
    ]
    employees = [SimpleNamespace(id=f"E{i:03d}", display_name=f"Employee {i:03d}") for i in range(100)]
    attendances = [
        SimpleNamespace(lesson_id=lesson.id, employee_id=employee.id, status=P)
        for employee in employees
        for lesson in lessons
    ]
    calls = []
    original = aggregator.lookup_from_records

    def counting_lookup(records):
        calls.append(1)
        return original(records)

    monkeypatch.setattr(aggregator, "lookup_from_records", counting_lookup)

    lookup = aggregator.lookup_from_records((a.lesson_id, a.employee_id, a.status) for a in attendances)
    matrix = attendance_services.AttendanceMatrix(
        edition=None,
        lessons=lessons,
        employees=employees,
        attendances=attendances,
        stats=aggregator.compute_attendance_stats(lessons, employees, lookup),
        lookup=lookup,
    )

    content = exports.build_csv(matrix)
    rows = exports.pdf_rows(matrix)

    assert len(calls) == 1
    assert content.count("\n") == 101
    assert all(row[-2:] == ["100%", "80/80"] for row in rows[1:])
    assert matrix.stats_for("E042").attended_hours == 80
