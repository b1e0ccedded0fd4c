# backend/trainingdb/apps/certificates/router.py

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse, Response
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from trainingdb.apps.accounts import models as accounts_models
from trainingdb.database import get_db, get_read_db
from trainingdb.errors import ServiceError, raise_http
from trainingdb.security import get_current_active_user, require_admin, tenant_scope

from . import schemas, services, storage

router = APIRouter(prefix="/certificates", tags=["certificates"])

_UPLOAD_CHUNK_BYTES = 1024 * 1024
_associations_adapter = TypeAdapter(List[schemas.FileAssociation])


def _read_upload(upload: UploadFile) -> services.CertificateFile:
    chunks = []
    size = 0
    while True:
        chunk = upload.file.read(_UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        size += len(chunk)
        if size > storage.MAX_CERTIFICATE_BYTES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f'File "{upload.filename}" exceeds the 10 MB limit',
            )
        chunks.append(chunk)
    return services.CertificateFile(filename=upload.filename or "certificate.pdf", content=b"".join(chunks))


def _parse_associations(raw: Optional[str]) -> Dict[str, str]:
    if not raw:
        return {}
    try:
        items = _associations_adapter.validate_python(json.loads(raw))
    except (ValueError, PydanticValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid associations")
    return {item.filename: item.employee_id for item in items}


def _load_certificate(db: Session, certificate_id: str, current_user: accounts_models.User):
    try:
        return services.get_certificate(db, certificate_id, scope_client_id=tenant_scope(current_user))
    except ServiceError as exc:
        raise_http(exc)


@router.get("", response_model=schemas.CertificatePage)
def list_certificates(
    client_id: Optional[str] = Query(None, alias="clientId"),
    employee_id: Optional[str] = Query(None, alias="employeeId"),
    course_edition_id: Optional[str] = Query(None, alias="courseEditionId"),
    expiring_before: Optional[date] = Query(None, alias="expiringBefore"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    scope = tenant_scope(current_user)
    return services.list_certificates(
        db,
        client_id=scope or client_id,
        employee_id=employee_id,
        course_edition_id=course_edition_id,
        expiring_before=expiring_before,
        page=page,
        limit=limit,
    )


@router.post("", response_model=schemas.CertificateIssueResult, status_code=status.HTTP_201_CREATED)
def issue_certificate(
    employee_id: str = Form(..., alias="employeeId"),
    achieved_at: date = Form(..., alias="achievedAt"),
    expires_at: Optional[date] = Form(None, alias="expiresAt"),
    course_edition_id: Optional[str] = Form(None, alias="courseEditionId"),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    upload = _read_upload(file)
    try:
        certificate, fanout_result = services.issue_certificate(
            db,
            employee_id=employee_id,
            file=upload,
            achieved_at=achieved_at,
            expires_at=expires_at,
            course_edition_id=course_edition_id or None,
            uploader=current_user,
        )
    except ServiceError as exc:
        raise_http(exc)
    return schemas.CertificateIssueResult(
        certificate=schemas.CertificateRead.model_validate(certificate),
        notification_errors=fanout_result.errors,
    )


@router.post("/batch", response_model=schemas.CertificateBatchResult, status_code=status.HTTP_201_CREATED)
def issue_certificates_batch(
    client_id: str = Form(..., alias="clientId"),
    course_edition_id: Optional[str] = Form(None, alias="courseEditionId"),
    achieved_at: Optional[date] = Form(None, alias="achievedAt"),
    expires_at: Optional[date] = Form(None, alias="expiresAt"),
    associations: Optional[str] = Form(None, description='JSON list of {"filename", "employeeId"}'),
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    uploads = [_read_upload(item) for item in files]
    try:
        certificates, fanout_result = services.issue_certificates_batch(
            db,
            client_id=client_id,
            files=uploads,
            achieved_at=achieved_at,
            expires_at=expires_at,
            course_edition_id=course_edition_id or None,
            associations=_parse_associations(associations),
            uploader=current_user,
        )
    except ServiceError as exc:
        raise_http(exc)
    return schemas.CertificateBatchResult(
        uploaded=len(certificates),
        certificates=[schemas.CertificateRead.model_validate(c) for c in certificates],
        notification_errors=fanout_result.errors,
    )


@router.post("/download-zip")
def download_certificates_zip(
    payload: schemas.CertificateZipRequest,
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    try:
        content = services.build_certificates_zip(
            db,
            certificate_ids=payload.certificate_ids,
            scope_client_id=tenant_scope(current_user),
        )
    except ServiceError as exc:
        raise_http(exc)
    filename = f"certificates_{datetime.now(timezone.utc):%Y%m%d%H%M%S}.zip"
    return Response(
        content=content,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{certificate_id}", response_model=schemas.CertificateRead)
def get_certificate(
    certificate_id: str,
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    return _load_certificate(db, certificate_id, current_user)


@router.patch("/{certificate_id}", response_model=schemas.CertificateRead)
def update_certificate(
    certificate_id: str,
    payload: schemas.CertificateUpdate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    certificate = _load_certificate(db, certificate_id, current_user)
    try:
        return services.update_certificate(db, certificate=certificate, payload=payload)
    except ServiceError as exc:
        raise_http(exc)


@router.put("/{certificate_id}/file", response_model=schemas.CertificateRead)
def replace_certificate_file(
    certificate_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    certificate = _load_certificate(db, certificate_id, current_user)
    upload = _read_upload(file)
    try:
        return services.replace_certificate_file(db, certificate=certificate, file=upload)
    except ServiceError as exc:
        raise_http(exc)


@router.delete("/{certificate_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_certificate(
    certificate_id: str,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    certificate = _load_certificate(db, certificate_id, current_user)
    try:
        services.delete_certificate(db, certificate=certificate)
    except ServiceError as exc:
        raise_http(exc)
    return None


@router.get("/{certificate_id}/download")
def download_certificate(
    certificate_id: str,
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    certificate = _load_certificate(db, certificate_id, current_user)
    try:
        path = services.certificate_file(certificate)
    except ServiceError as exc:
        raise_http(exc)
    return FileResponse(
        path,
        media_type="application/pdf",
        filename=services.download_name(certificate),
    )
