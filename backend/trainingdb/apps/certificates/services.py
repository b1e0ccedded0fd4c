# backend/trainingdb/apps/certificates/services.py
"""
Certificate issuer.

A certificate ties a stored PDF to one employee and, optionally, to one
course edition of the same client. File writes and database writes are not
one transaction, so each operation that stores a file removes it again if
the row cannot be saved.
"""

from __future__ import annotations

import io
import logging
import re
import zipfile
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from trainingdb.apps.accounts.models import Client, Employee, User
from trainingdb.apps.editions.models import CourseEdition, CourseRegistration
from trainingdb.apps.editions.services import ensure_editable
from trainingdb.apps.notifications import fanout
from trainingdb.errors import (
    CrossTenantError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from trainingdb.utils.pagination import normalize_page, total_pages

from . import models, schemas, storage

logger = logging.getLogger(__name__)

FISCAL_CODE_PATTERN = re.compile(r"[A-Z]{6}[0-9]{2}[A-Z][0-9]{2}[A-Z][0-9]{3}[A-Z]", re.IGNORECASE)


@dataclass
class CertificateFile:
    filename: str
    content: bytes


def fiscal_code_from_filename(filename: str) -> Optional[str]:
    match = FISCAL_CODE_PATTERN.search(filename or "")
    return match.group(0).upper() if match else None


def validate_certificate_dates(achieved_at: Optional[date], expires_at: Optional[date]) -> None:
    if achieved_at is None:
        raise ValidationError("Achievement date is required", details={"field": "achievedAt"})
    if expires_at is not None and expires_at <= achieved_at:
        raise ValidationError(
            "Expiry date must be after the achievement date",
            details={"field": "expiresAt"},
        )


def _load_edition(db: Session, course_edition_id: Optional[str]) -> Optional[CourseEdition]:
    if not course_edition_id:
        return None
    edition = db.query(CourseEdition).filter(CourseEdition.id == course_edition_id).first()
    if edition is None:
        raise NotFoundError("Edition not found")
    return edition


def _ensure_certificate_editable(certificate: models.Certificate) -> None:
    if certificate.edition is not None:
        ensure_editable(certificate.edition)


# ---------------------------------------------------------------------------
# ISSUE
# ---------------------------------------------------------------------------


def issue_certificate(
    db: Session,
    *,
    employee_id: str,
    file: CertificateFile,
    achieved_at: date,
    expires_at: Optional[date] = None,
    course_edition_id: Optional[str] = None,
    uploader: Optional[User] = None,
) -> Tuple[models.Certificate, fanout.FanoutResult]:
    employee = db.query(Employee).filter(Employee.id == employee_id).first()
    if employee is None:
        raise NotFoundError("Employee not found")

    edition = _load_edition(db, course_edition_id)
    if edition is not None:
        if edition.client_id != employee.client_id:
            raise CrossTenantError(
                "Employee and edition belong to different clients",
                details={"employeeId": employee.id, "courseEditionId": edition.id},
            )
        ensure_editable(edition)

    validate_certificate_dates(achieved_at, expires_at)
    storage.validate_pdf(file.filename, file.content)

    stored_path = storage.store_file(
        client_id=employee.client_id,
        employee_id=employee.id,
        filename=file.filename,
        content=file.content,
    )
    try:
        certificate = models.Certificate(
            client_id=employee.client_id,
            employee_id=employee.id,
            course_edition_id=edition.id if edition is not None else None,
            file_path=stored_path,
            original_filename=file.filename,
            file_size_bytes=len(file.content),
            achieved_at=achieved_at,
            expires_at=expires_at,
            uploaded_by_user_id=uploader.id if uploader is not None else None,
        )
        db.add(certificate)
        db.commit()
    except Exception:
        db.rollback()
        storage.delete_file_quietly(stored_path)
        raise
    db.refresh(certificate)

    logger.info(
        "Certificate issued",
        extra={"certificate_id": certificate.id, "employee_id": employee.id, "client_id": employee.client_id},
    )
    result = fanout.notify_certificates_uploaded(db, client=employee.client, count=1, edition=edition)
    return certificate, result


def _candidate_employees(db: Session, client_id: str, edition: Optional[CourseEdition]) -> List[Employee]:
    if edition is not None:
        return (
            db.query(Employee)
            .join(CourseRegistration, CourseRegistration.employee_id == Employee.id)
            .filter(
                CourseRegistration.course_edition_id == edition.id,
                CourseRegistration.client_id == client_id,
            )
            .all()
        )
    return db.query(Employee).filter(Employee.client_id == client_id).all()


def match_files(
    files: Sequence[CertificateFile],
    employees: Iterable[Employee],
    associations: Optional[Dict[str, str]] = None,
) -> Tuple[List[Tuple[CertificateFile, str]], List[str]]:
    """
    Pair each file with an employee id.

    An explicit filename -> employee association wins; otherwise a fiscal
    code found in the file name is used. Returns (matched, unmatched names).
    """
    associations = associations or {}
    employees = list(employees)
    by_fiscal_code = {(e.fiscal_code or "").upper(): e.id for e in employees}
    allowed = {e.id for e in employees}

    matched: List[Tuple[CertificateFile, str]] = []
    unmatched: List[str] = []
    for item in files:
        employee_id = associations.get(item.filename)
        if not employee_id:
            code = fiscal_code_from_filename(item.filename)
            employee_id = by_fiscal_code.get(code) if code else None
        if not employee_id or employee_id not in allowed:
            unmatched.append(item.filename)
            continue
        matched.append((item, employee_id))
    return matched, unmatched


def issue_certificates_batch(
    db: Session,
    *,
    client_id: str,
    files: Sequence[CertificateFile],
    achieved_at: Optional[date] = None,
    expires_at: Optional[date] = None,
    course_edition_id: Optional[str] = None,
    associations: Optional[Dict[str, str]] = None,
    uploader: Optional[User] = None,
) -> Tuple[List[models.Certificate], fanout.FanoutResult]:
    """
    Issue one certificate per file. Nothing is stored unless every file is a
    valid PDF and every file matches an employee.
    """
    if not files:
        raise ValidationError("No files uploaded")

    client = db.query(Client).filter(Client.id == client_id).first()
    if client is None:
        raise NotFoundError("Client not found")

    edition = _load_edition(db, course_edition_id)
    if edition is not None:
        if edition.client_id != client.id:
            raise CrossTenantError(
                "Edition belongs to a different client",
                details={"clientId": client.id, "courseEditionId": edition.id},
            )
        ensure_editable(edition)

    achieved_at = achieved_at or date.today()
    validate_certificate_dates(achieved_at, expires_at)
    for item in files:
        storage.validate_pdf(item.filename, item.content)

    employees = _candidate_employees(db, client.id, edition)
    if not employees:
        raise ValidationError("No employees available for the selected client")

    matched, unmatched = match_files(files, employees, associations)
    if unmatched:
        raise ValidationError("Missing employee association", details={"files": unmatched})

    stored: List[str] = []
    certificates: List[models.Certificate] = []
    try:
        for item, employee_id in matched:
            path = storage.store_file(
                client_id=client.id,
                employee_id=employee_id,
                filename=item.filename,
                content=item.content,
            )
            stored.append(path)
            certificate = models.Certificate(
                client_id=client.id,
                employee_id=employee_id,
                course_edition_id=edition.id if edition is not None else None,
                file_path=path,
                original_filename=item.filename,
                file_size_bytes=len(item.content),
                achieved_at=achieved_at,
                expires_at=expires_at,
                uploaded_by_user_id=uploader.id if uploader is not None else None,
            )
            db.add(certificate)
            certificates.append(certificate)
        db.commit()
    except Exception:
        db.rollback()
        for path in stored:
            storage.delete_file_quietly(path)
        raise

    for certificate in certificates:
        db.refresh(certificate)
    logger.info(
        "Certificate batch issued",
        extra={"client_id": client.id, "edition_id": course_edition_id, "count": len(certificates)},
    )
    result = fanout.notify_certificates_uploaded(
        db, client=client, count=len(certificates), edition=edition
    )
    return certificates, result


# ---------------------------------------------------------------------------
# READ / MUTATE
# ---------------------------------------------------------------------------


def get_certificate(
    db: Session,
    certificate_id: str,
    *,
    scope_client_id: Optional[str] = None,
) -> models.Certificate:
    certificate = db.query(models.Certificate).filter(models.Certificate.id == certificate_id).first()
    if certificate is None:
        raise NotFoundError("Certificate not found")
    if scope_client_id is not None and certificate.client_id != scope_client_id:
        raise ForbiddenError("Certificate belongs to a different client")
    return certificate


def list_certificates(
    db: Session,
    *,
    client_id: Optional[str] = None,
    employee_id: Optional[str] = None,
    course_edition_id: Optional[str] = None,
    expiring_before: Optional[date] = None,
    page: int = 1,
    limit: int = 20,
) -> schemas.CertificatePage:
    page, limit, offset = normalize_page(page, limit)
    q = db.query(models.Certificate)
    if client_id:
        q = q.filter(models.Certificate.client_id == client_id)
    if employee_id:
        q = q.filter(models.Certificate.employee_id == employee_id)
    if course_edition_id:
        q = q.filter(models.Certificate.course_edition_id == course_edition_id)
    if expiring_before:
        q = q.filter(
            models.Certificate.expires_at.isnot(None),
            models.Certificate.expires_at <= expiring_before,
        )

    total = q.count()
    rows = (
        q.order_by(models.Certificate.uploaded_at.desc(), models.Certificate.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return schemas.CertificatePage(
        data=[schemas.CertificateRead.model_validate(row) for row in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )


def update_certificate(
    db: Session,
    *,
    certificate: models.Certificate,
    payload: schemas.CertificateUpdate,
) -> models.Certificate:
    _ensure_certificate_editable(certificate)
    achieved_at = payload.achieved_at or certificate.achieved_at
    if payload.clear_expiry:
        expires_at = None
    elif payload.expires_at is not None:
        expires_at = payload.expires_at
    else:
        expires_at = certificate.expires_at
    validate_certificate_dates(achieved_at, expires_at)

    certificate.achieved_at = achieved_at
    certificate.expires_at = expires_at
    db.add(certificate)
    db.commit()
    db.refresh(certificate)
    return certificate


def replace_certificate_file(
    db: Session,
    *,
    certificate: models.Certificate,
    file: CertificateFile,
) -> models.Certificate:
    """
    Store the new file, point the row at it, then drop the old file.
    If the row update fails the new file is removed and the old one stays.
    """
    _ensure_certificate_editable(certificate)
    old_path = certificate.file_path
    new_path = storage.store_file(
        client_id=certificate.client_id,
        employee_id=certificate.employee_id,
        filename=file.filename,
        content=file.content,
    )
    try:
        certificate.file_path = new_path
        certificate.original_filename = file.filename
        certificate.file_size_bytes = len(file.content)
        db.add(certificate)
        db.commit()
    except Exception:
        db.rollback()
        storage.delete_file_quietly(new_path)
        raise

    storage.delete_file_quietly(old_path)
    db.refresh(certificate)
    logger.info(
        "Certificate file replaced",
        extra={"certificate_id": certificate.id, "old_path": old_path, "new_path": new_path},
    )
    return certificate


def delete_certificate(db: Session, *, certificate: models.Certificate) -> None:
    _ensure_certificate_editable(certificate)
    storage.delete_file_quietly(certificate.file_path)
    db.delete(certificate)
    db.commit()
    logger.info("Certificate deleted", extra={"certificate_id": certificate.id})


def certificate_file(certificate: models.Certificate) -> Path:
    path = storage.resolve_path(certificate.file_path)
    if not path.is_file():
        raise NotFoundError("Certificate file not found")
    return path


def download_name(certificate: models.Certificate) -> str:
    if certificate.original_filename:
        return certificate.original_filename
    employee = certificate.employee
    stem = employee.display_name.replace(" ", "_") if employee is not None else certificate.id
    return f"certificate_{stem}.pdf"


# ---------------------------------------------------------------------------
# ZIP DOWNLOAD
# ---------------------------------------------------------------------------


def _unique_entry_name(name: str, taken: set) -> str:
    candidate = name
    stem, dot, suffix = name.rpartition(".")
    counter = 2
    while candidate in taken:
        candidate = f"{stem}_{counter}.{suffix}" if dot else f"{name}_{counter}"
        counter += 1
    taken.add(candidate)
    return candidate


def build_certificates_zip(
    db: Session,
    *,
    certificate_ids: Sequence[str],
    scope_client_id: Optional[str] = None,
) -> bytes:
    """
    Archive the stored PDFs of the requested certificates.

    Client users only reach their own certificates; ids outside the scope
    are skipped like unknown ones. Missing files are left out and logged.
    """
    q = db.query(models.Certificate).filter(models.Certificate.id.in_(list(certificate_ids)))
    if scope_client_id is not None:
        q = q.filter(models.Certificate.client_id == scope_client_id)
    certificates = q.order_by(models.Certificate.uploaded_at, models.Certificate.id).all()
    if not certificates:
        raise NotFoundError("No certificates found")

    taken: set = set()
    buffer = io.BytesIO()
    written = 0
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for certificate in certificates:
            path = storage.resolve_path(certificate.file_path)
            if not path.is_file():
                logger.warning(
                    "Certificate file missing from zip",
                    extra={"certificate_id": certificate.id, "file_path": certificate.file_path},
                )
                continue
            archive.write(path, arcname=_unique_entry_name(download_name(certificate), taken))
            written += 1

    if not written:
        raise NotFoundError("No certificate files available")
    logger.info("Certificates zipped", extra={"requested": len(certificate_ids), "archived": written})
    return buffer.getvalue()
