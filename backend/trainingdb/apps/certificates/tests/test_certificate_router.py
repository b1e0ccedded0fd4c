from __future__ import annotations

import inspect
import io
import zipfile
from datetime import date

import pytest
from fastapi import HTTPException
from starlette.datastructures import UploadFile

from trainingdb.apps.accounts import models as account_models
from trainingdb.apps.certificates import router as certificates_router
from trainingdb.apps.certificates import schemas as certificate_schemas
from trainingdb.apps.certificates import services as certificate_services
from trainingdb.apps.certificates import storage as certificate_storage_module
from trainingdb.errors import NotFoundError

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"


def _create_client(db, name: str) -> account_models.Client:
    client = account_models.Client(company_name=name, contact_email=None, is_active=True)
    db.add(client)
    db.commit()
    return client


def _create_user(db, email: str, role, client=None) -> account_models.User:
    user = account_models.User(
        email=email,
        hashed_password="hash",
        role=role,
        client_id=client.id if client is not None else None,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


def _create_employee(db, client, fiscal_code: str, last_name: str) -> account_models.Employee:
    employee = account_models.Employee(
        client_id=client.id,
        first_name="Anna",
        last_name=last_name,
        fiscal_code=fiscal_code,
    )
    db.add(employee)
    db.commit()
    return employee


def _issue(db, employee, filename: str = "attestato.pdf"):
    certificate, _ = certificate_services.issue_certificate(
        db,
        employee_id=employee.id,
        file=certificate_services.CertificateFile(filename=filename, content=PDF_BYTES),
        achieved_at=date(2024, 5, 1),
        expires_at=None,
        course_edition_id=None,
    )
    return certificate


def _upload(filename: str = "upload.pdf") -> UploadFile:
    return UploadFile(file=io.BytesIO(PDF_BYTES), filename=filename)


def _zip_names(content: bytes):
    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        return sorted(archive.namelist())


# ---------------------------------------------------------------------------
# UPLOAD HANDLERS
# ---------------------------------------------------------------------------


def test_upload_handlers_run_in_the_threadpool():
    for handler in (
        certificates_router.issue_certificate,
        certificates_router.issue_certificates_batch,
        certificates_router.replace_certificate_file,
    ):
        assert not inspect.iscoroutinefunction(handler), handler.__name__


def test_issue_certificate_handler_reads_upload(db_session, certificate_storage):
    client = _create_client(db_session, "Upload Co")
    admin = _create_user(db_session, "admin@upload.example", account_models.AccountRole.ADMIN)
    employee = _create_employee(db_session, client, "VRDNNA85M41F205X", "Verdi")

    result = certificates_router.issue_certificate(
        employee_id=employee.id,
        achieved_at=date(2024, 5, 1),
        expires_at=None,
        course_edition_id=None,
        file=_upload("verdi.pdf"),
        db=db_session,
        current_user=admin,
    )

    assert result.certificate.employee_id == employee.id
    assert result.certificate.file_size_bytes == len(PDF_BYTES)
    assert result.certificate.uploaded_by_user_id == admin.id


def test_oversized_upload_is_rejected_before_storage(db_session, certificate_storage, monkeypatch):
    client = _create_client(db_session, "Big Co")
    admin = _create_user(db_session, "admin@big.example", account_models.AccountRole.ADMIN)
    employee = _create_employee(db_session, client, "BNCLRA90A41F205Y", "Bianchi")
    monkeypatch.setattr(certificate_storage_module, "MAX_CERTIFICATE_BYTES", 8)

    with pytest.raises(HTTPException) as excinfo:
        certificates_router.issue_certificate(
            employee_id=employee.id,
            achieved_at=date(2024, 5, 1),
            expires_at=None,
            course_edition_id=None,
            file=_upload(),
            db=db_session,
            current_user=admin,
        )

    assert excinfo.value.status_code == 400
    assert not certificate_storage.exists() or not any(p.is_file() for p in certificate_storage.rglob("*"))


# ---------------------------------------------------------------------------
# ZIP DOWNLOAD
# ---------------------------------------------------------------------------


def test_zip_contains_requested_certificates(db_session, certificate_storage):
    client = _create_client(db_session, "Zip Co")
    first = _issue(db_session, _create_employee(db_session, client, "RSSMRA80A01H501U", "Rossi"))
    second = _issue(db_session, _create_employee(db_session, client, "NRELRA80A41H501V", "Neri"))

    content = certificate_services.build_certificates_zip(db_session, certificate_ids=[first.id, second.id])

    assert _zip_names(content) == ["attestato.pdf", "attestato_2.pdf"]
    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        assert archive.read("attestato.pdf") == PDF_BYTES


def test_zip_skips_other_clients_certificates(db_session, certificate_storage):
    own = _create_client(db_session, "Own Co")
    other = _create_client(db_session, "Other Co")
    mine = _issue(db_session, _create_employee(db_session, own, "RSSMRA80A01H501U", "Rossi"), "mine.pdf")
    theirs = _issue(db_session, _create_employee(db_session, other, "NRELRA80A41H501V", "Neri"), "theirs.pdf")

    content = certificate_services.build_certificates_zip(
        db_session,
        certificate_ids=[mine.id, theirs.id],
        scope_client_id=own.id,
    )

    assert _zip_names(content) == ["mine.pdf"]
    with pytest.raises(NotFoundError):
        certificate_services.build_certificates_zip(
            db_session,
            certificate_ids=[theirs.id],
            scope_client_id=own.id,
        )


def test_zip_without_any_stored_file_is_not_found(db_session, certificate_storage):
    client = _create_client(db_session, "Gone Co")
    certificate = _issue(db_session, _create_employee(db_session, client, "RSSMRA80A01H501U", "Rossi"))
    certificate_storage_module.resolve_path(certificate.file_path).unlink()

    with pytest.raises(NotFoundError):
        certificate_services.build_certificates_zip(db_session, certificate_ids=[certificate.id])
    with pytest.raises(NotFoundError):
        certificate_services.build_certificates_zip(db_session, certificate_ids=["missing"])


def test_zip_route_scopes_client_users(db_session, certificate_storage):
    own = _create_client(db_session, "Route Co")
    other = _create_client(db_session, "Elsewhere Co")
    user = _create_user(db_session, "hr@route.example", account_models.AccountRole.CLIENT, own)
    mine = _issue(db_session, _create_employee(db_session, own, "RSSMRA80A01H501U", "Rossi"), "mine.pdf")
    theirs = _issue(db_session, _create_employee(db_session, other, "NRELRA80A41H501V", "Neri"), "theirs.pdf")

    response = certificates_router.download_certificates_zip(
        payload=certificate_schemas.CertificateZipRequest(certificateIds=[mine.id, theirs.id]),
        db=db_session,
        current_user=user,
    )

    assert response.media_type == "application/zip"
    assert response.headers["content-disposition"].startswith('attachment; filename="certificates_')
    assert _zip_names(response.body) == ["mine.pdf"]

    with pytest.raises(HTTPException) as excinfo:
        certificates_router.download_certificates_zip(
            payload=certificate_schemas.CertificateZipRequest(certificateIds=[theirs.id]),
            db=db_session,
            current_user=user,
        )
    assert excinfo.value.status_code == 404


def test_zip_request_accepts_at_most_one_hundred_ids():
    with pytest.raises(ValueError):
        certificate_schemas.CertificateZipRequest(certificateIds=[])
    with pytest.raises(ValueError):
        certificate_schemas.CertificateZipRequest(certificateIds=[f"id-{n}" for n in range(101)])
