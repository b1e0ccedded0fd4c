from __future__ import annotations

from datetime import datetime, timedelta, timezone

from trainingdb.apps.accounts import models as account_models
from trainingdb.apps.certificates import models as certificate_models
from trainingdb.apps.editions import models as edition_models
from trainingdb.jobs import reminder_runner

NOW = datetime(2030, 5, 1, 8, 0, tzinfo=timezone.utc)


def _seed(db):
    client = account_models.Client(
        company_name="Runner Co",
        contact_email="hr@runner.example",
        is_active=True,
    )
    admin = account_models.User(
        email="admin@runner.example",
        hashed_password="hash",
        role=account_models.AccountRole.ADMIN,
        is_active=True,
    )
    course = edition_models.Course(title="Fire Warden")
    db.add_all([client, admin, course])
    db.commit()

    employee = account_models.Employee(
        client_id=client.id,
        first_name="Sara",
        last_name="Conti",
        fiscal_code="RUNNER0001",
    )
    upcoming = edition_models.CourseEdition(
        course_id=course.id,
        client_id=client.id,
        edition_number=1,
        status=edition_models.EditionStatus.PUBLISHED,
        deadline_registry=NOW.date() + timedelta(days=3),
    )
    expired = edition_models.CourseEdition(
        course_id=course.id,
        client_id=client.id,
        edition_number=2,
        status=edition_models.EditionStatus.PUBLISHED,
        deadline_registry=NOW.date() - timedelta(days=1),
    )
    db.add_all([employee, upcoming, expired])
    db.commit()

    db.add_all(
        [
            edition_models.CourseRegistration(
                course_edition_id=upcoming.id,
                client_id=client.id,
                employee_id=employee.id,
            ),
            certificate_models.Certificate(
                client_id=client.id,
                employee_id=employee.id,
                file_path=f"{client.id}/{employee.id}/cert.pdf",
                achieved_at=NOW.date() - timedelta(days=700),
                expires_at=NOW.date() + timedelta(days=20),
            ),
        ]
    )
    db.commit()
    return client, admin


def test_runner_reports_every_sweep(db_session, outbox):
    client, admin = _seed(db_session)

    summary = reminder_runner.run(now=NOW, session_factory=lambda: db_session)

    assert summary == {
        "deadline_reminders": {"notifications": 1, "emails_sent": 1, "errors": []},
        "expired_deadlines": {"notifications": 0, "emails_sent": 1, "errors": []},
        "certificate_expiry": {"notifications": 1, "emails_sent": 1, "errors": []},
    }
    recipients = sorted(item["recipient"] for item in outbox.sent)
    assert recipients == sorted([client.contact_email, client.contact_email, admin.email])


def test_second_run_same_day_sends_nothing(db_session, outbox):
    _seed(db_session)

    reminder_runner.run(now=NOW, session_factory=lambda: db_session)
    summary = reminder_runner.run(now=NOW + timedelta(hours=2), session_factory=lambda: db_session)

    assert all(section["notifications"] == 0 for section in summary.values())
    assert all(section["emails_sent"] == 0 for section in summary.values())
    assert len(outbox.sent) == 3
