from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.exc import SQLAlchemyError

from trainingdb.apps.accounts import models as account_models
from trainingdb.apps.certificates import models as certificate_models
from trainingdb.apps.certificates import schemas as certificate_schemas
from trainingdb.apps.certificates import services as certificate_services
from trainingdb.apps.certificates import storage as certificate_storage_module
from trainingdb.apps.editions import models as edition_models
from trainingdb.apps.notifications import models as notification_models
from trainingdb.errors import (
    CrossTenantError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"


def _create_client(db, name: str = "Cert Co") -> account_models.Client:
    client = account_models.Client(
        company_name=name,
        contact_email=f"hr@{name.lower().replace(' ', '-')}.example",
        is_active=True,
    )
    db.add(client)
    db.commit()
    return client


def _create_employee(db, client, fiscal_code: str = "RSSMRA80A01H501U", last_name: str = "Rossi") -> account_models.Employee:
    employee = account_models.Employee(
        client_id=client.id,
        first_name="Mario",
        last_name=last_name,
        fiscal_code=fiscal_code,
    )
    db.add(employee)
    db.commit()
    return employee


def _create_edition(db, client, status=edition_models.EditionStatus.CLOSED) -> edition_models.CourseEdition:
    course = edition_models.Course(title="Forklift Operator")
    db.add(course)
    db.commit()
    edition = edition_models.CourseEdition(
        course_id=course.id,
        client_id=client.id,
        edition_number=1,
        status=status,
    )
    db.add(edition)
    db.commit()
    return edition


def _register(db, edition, employee) -> None:
    db.add(
        edition_models.CourseRegistration(
            course_edition_id=edition.id,
            client_id=edition.client_id,
            employee_id=employee.id,
        )
    )
    db.commit()


def _pdf(name: str = "certificate.pdf") -> certificate_services.CertificateFile:
    return certificate_services.CertificateFile(filename=name, content=PDF_BYTES)


def _stored_files(root):
    if not root.exists():
        return []
    return sorted(p.resolve() for p in root.rglob("*") if p.is_file())


# ---------------------------------------------------------------------------
# SINGLE ISSUE
# ---------------------------------------------------------------------------


def test_issue_certificate_stores_file_and_notifies(db_session, certificate_storage, outbox):
    client = _create_client(db_session)
    employee = _create_employee(db_session, client)
    edition = _create_edition(db_session, client)

    certificate, result = certificate_services.issue_certificate(
        db_session,
        employee_id=employee.id,
        file=_pdf(),
        achieved_at=date(2024, 1, 1),
        expires_at=date(2024, 1, 2),
        course_edition_id=edition.id,
    )

    assert certificate.client_id == client.id
    assert certificate.course_edition_id == edition.id
    assert certificate.file_size_bytes == len(PDF_BYTES)
    assert certificate_services.certificate_file(certificate).read_bytes() == PDF_BYTES
    assert result.emails_sent == 1
    assert outbox.sent[0]["recipient"] == client.contact_email
    notification = (
        db_session.query(notification_models.Notification)
        .filter(notification_models.Notification.type == notification_models.NotificationType.CERTIFICATES_AVAILABLE)
        .one()
    )
    assert notification.client_id == client.id
    assert notification.message == "1 certificate available for Forklift Operator (Ed. #1)."


def test_external_certificate_has_no_edition(db_session, certificate_storage):
    client = _create_client(db_session)
    employee = _create_employee(db_session, client)

    certificate, _ = certificate_services.issue_certificate(
        db_session,
        employee_id=employee.id,
        file=_pdf(),
        achieved_at=date(2024, 1, 1),
    )

    assert certificate.course_edition_id is None
    assert certificate.expires_at is None


def test_expiry_equal_to_achievement_is_rejected(db_session, certificate_storage):
    client = _create_client(db_session)
    employee = _create_employee(db_session, client)

    with pytest.raises(ValidationError) as excinfo:
        certificate_services.issue_certificate(
            db_session,
            employee_id=employee.id,
            file=_pdf(),
            achieved_at=date(2024, 1, 1),
            expires_at=date(2024, 1, 1),
        )

    assert excinfo.value.details == {"field": "expiresAt"}
    assert _stored_files(certificate_storage) == []
    assert db_session.query(certificate_models.Certificate).count() == 0


def test_edition_of_another_client_is_rejected(db_session, certificate_storage):
    client = _create_client(db_session)
    other = _create_client(db_session, "Other Co")
    employee = _create_employee(db_session, client)
    foreign_edition = _create_edition(db_session, other)

    with pytest.raises(CrossTenantError):
        certificate_services.issue_certificate(
            db_session,
            employee_id=employee.id,
            file=_pdf(),
            achieved_at=date(2024, 1, 1),
            course_edition_id=foreign_edition.id,
        )
    assert _stored_files(certificate_storage) == []


def test_non_pdf_upload_is_rejected(db_session, certificate_storage):
    client = _create_client(db_session)
    employee = _create_employee(db_session, client)

    with pytest.raises(ValidationError):
        certificate_services.issue_certificate(
            db_session,
            employee_id=employee.id,
            file=certificate_services.CertificateFile(filename="scan.pdf", content=b"GIF89a"),
            achieved_at=date(2024, 1, 1),
        )
    with pytest.raises(ValidationError):
        certificate_services.issue_certificate(
            db_session,
            employee_id=employee.id,
            file=certificate_services.CertificateFile(filename="scan.docx", content=PDF_BYTES),
            achieved_at=date(2024, 1, 1),
        )


def test_unknown_employee_is_not_found(db_session, certificate_storage):
    with pytest.raises(NotFoundError):
        certificate_services.issue_certificate(
            db_session,
            employee_id="missing",
            file=_pdf(),
            achieved_at=date(2024, 1, 1),
        )


def test_failed_insert_removes_stored_file(db_session, certificate_storage, monkeypatch):
    client = _create_client(db_session)
    employee = _create_employee(db_session, client)

    def failing_commit():
        raise SQLAlchemyError("database unavailable")

    monkeypatch.setattr(db_session, "commit", failing_commit)

    with pytest.raises(SQLAlchemyError):
        certificate_services.issue_certificate(
            db_session,
            employee_id=employee.id,
            file=_pdf(),
            achieved_at=date(2024, 1, 1),
        )

    assert _stored_files(certificate_storage) == []


# ---------------------------------------------------------------------------
# BATCH
# ---------------------------------------------------------------------------


def test_batch_matches_files_by_fiscal_code(db_session, certificate_storage, outbox):
    client = _create_client(db_session)
    rossi = _create_employee(db_session, client, "RSSMRA80A01H501U", "Rossi")
    bianchi = _create_employee(db_session, client, "BNCLCU85M10F205Z", "Bianchi")
    edition = _create_edition(db_session, client)
    _register(db_session, edition, rossi)
    _register(db_session, edition, bianchi)

    certificates, result = certificate_services.issue_certificates_batch(
        db_session,
        client_id=client.id,
        files=[_pdf("rssmra80a01h501u_attestato.pdf"), _pdf("BNCLCU85M10F205Z.pdf")],
        achieved_at=date(2024, 2, 1),
        course_edition_id=edition.id,
    )

    assert sorted(c.employee_id for c in certificates) == sorted([rossi.id, bianchi.id])
    assert len(_stored_files(certificate_storage)) == 2
    assert len(result.notification_ids) == 1
    assert len(outbox.sent) == 1
    assert outbox.sent[0]["subject"] == "2 new certificates available"


def test_batch_with_unmatched_file_stores_nothing(db_session, certificate_storage):
    client = _create_client(db_session)
    _create_employee(db_session, client)

    with pytest.raises(ValidationError) as excinfo:
        certificate_services.issue_certificates_batch(
            db_session,
            client_id=client.id,
            files=[_pdf("RSSMRA80A01H501U.pdf"), _pdf("unknown.pdf")],
            achieved_at=date(2024, 2, 1),
        )

    assert excinfo.value.details == {"files": ["unknown.pdf"]}
    assert _stored_files(certificate_storage) == []
    assert db_session.query(certificate_models.Certificate).count() == 0


def test_batch_explicit_association_wins(db_session, certificate_storage):
    client = _create_client(db_session)
    employee = _create_employee(db_session, client)

    certificates, _ = certificate_services.issue_certificates_batch(
        db_session,
        client_id=client.id,
        files=[_pdf("scan-001.pdf")],
        achieved_at=date(2024, 2, 1),
        associations={"scan-001.pdf": employee.id},
    )

    assert [c.employee_id for c in certificates] == [employee.id]
    assert certificates[0].original_filename == "scan-001.pdf"


def test_batch_association_to_other_client_is_unmatched(db_session, certificate_storage):
    client = _create_client(db_session)
    _create_employee(db_session, client)
    other = _create_client(db_session, "Other Co")
    outsider = _create_employee(db_session, other, "VRDGPP70C15L219K", "Verdi")

    with pytest.raises(ValidationError):
        certificate_services.issue_certificates_batch(
            db_session,
            client_id=client.id,
            files=[_pdf("scan-001.pdf")],
            associations={"scan-001.pdf": outsider.id},
        )


def test_match_files_reports_unmatched_names():
    employee = account_models.Employee(id="emp-1", fiscal_code="RSSMRA80A01H501U")

    matched, unmatched = certificate_services.match_files(
        [_pdf("RSSMRA80A01H501U.pdf"), _pdf("nobody.pdf")],
        [employee],
    )

    assert [(item.filename, employee_id) for item, employee_id in matched] == [("RSSMRA80A01H501U.pdf", "emp-1")]
    assert unmatched == ["nobody.pdf"]
    assert certificate_services.fiscal_code_from_filename("x_rssmra80a01h501u.pdf") == "RSSMRA80A01H501U"


# ---------------------------------------------------------------------------
# READ / MUTATE
# ---------------------------------------------------------------------------


def _issued(db, client=None, **kwargs):
    client = client or _create_client(db)
    sequence = db.query(account_models.Employee).count()
    employee = _create_employee(db, client, f"EMP{sequence:05d}", f"Employee{sequence}")
    certificate, _ = certificate_services.issue_certificate(
        db,
        employee_id=employee.id,
        file=_pdf("first.pdf"),
        achieved_at=kwargs.get("achieved_at", date(2024, 1, 1)),
        expires_at=kwargs.get("expires_at"),
    )
    return certificate


def test_replace_file_swaps_and_removes_old(db_session, certificate_storage):
    certificate = _issued(db_session)
    old_path = certificate_storage_module.resolve_path(certificate.file_path)

    replaced = certificate_services.replace_certificate_file(
        db_session,
        certificate=certificate,
        file=certificate_services.CertificateFile(filename="second.pdf", content=PDF_BYTES + b"%v2"),
    )

    assert not old_path.exists()
    assert replaced.original_filename == "second.pdf"
    assert certificate_services.certificate_file(replaced).read_bytes().endswith(b"%v2")
    assert len(_stored_files(certificate_storage)) == 1


def test_replace_keeps_old_file_when_update_fails(db_session, certificate_storage, monkeypatch):
    certificate = _issued(db_session)
    old_path = certificate_storage_module.resolve_path(certificate.file_path)

    def failing_commit():
        raise SQLAlchemyError("database unavailable")

    monkeypatch.setattr(db_session, "commit", failing_commit)

    with pytest.raises(SQLAlchemyError):
        certificate_services.replace_certificate_file(
            db_session,
            certificate=certificate,
            file=certificate_services.CertificateFile(filename="second.pdf", content=PDF_BYTES),
        )

    assert old_path.exists()
    assert _stored_files(certificate_storage) == [old_path]


def test_delete_certificate_removes_file_and_row(db_session, certificate_storage):
    certificate = _issued(db_session)
    path = certificate_storage_module.resolve_path(certificate.file_path)

    certificate_services.delete_certificate(db_session, certificate=certificate)

    assert not path.exists()
    assert db_session.query(certificate_models.Certificate).count() == 0


def test_update_certificate_dates(db_session, certificate_storage):
    certificate = _issued(db_session, expires_at=date(2029, 1, 1))

    with pytest.raises(ValidationError):
        certificate_services.update_certificate(
            db_session,
            certificate=certificate,
            payload=certificate_schemas.CertificateUpdate(expires_at=date(2023, 12, 31)),
        )

    updated = certificate_services.update_certificate(
        db_session,
        certificate=certificate,
        payload=certificate_schemas.CertificateUpdate(clear_expiry=True),
    )
    assert updated.expires_at is None


def test_certificate_of_other_client_is_forbidden(db_session, certificate_storage):
    certificate = _issued(db_session)
    other = _create_client(db_session, "Other Co")

    with pytest.raises(ForbiddenError):
        certificate_services.get_certificate(db_session, certificate.id, scope_client_id=other.id)
    assert certificate_services.get_certificate(db_session, certificate.id).id == certificate.id


def test_list_certificates_expiring_before(db_session, certificate_storage):
    client = _create_client(db_session)
    soon = _issued(db_session, client, expires_at=date(2024, 3, 1))
    _issued(db_session, client, expires_at=date(2026, 3, 1))

    page = certificate_services.list_certificates(
        db_session,
        client_id=client.id,
        expiring_before=date(2024, 6, 30),
        page=1,
        limit=20,
    )

    assert page.total == 1
    assert [item.id for item in page.data] == [soon.id]
