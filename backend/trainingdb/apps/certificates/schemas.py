# backend/trainingdb/apps/certificates/schemas.py

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class CertificateRead(BaseModel):
    id: str
    client_id: str
    employee_id: str
    course_edition_id: Optional[str] = None
    original_filename: Optional[str] = None
    file_size_bytes: Optional[int] = None
    achieved_at: date
    expires_at: Optional[date] = None
    uploaded_by_user_id: Optional[str] = None
    uploaded_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CertificateIssueResult(BaseModel):
    certificate: CertificateRead
    notification_errors: List[str] = Field(default_factory=list)


class CertificateBatchResult(BaseModel):
    ok: bool = True
    uploaded: int
    certificates: List[CertificateRead]
    notification_errors: List[str] = Field(default_factory=list)


class FileAssociation(BaseModel):
    filename: str
    employee_id: str = Field(..., alias="employeeId")

    class Config:
        populate_by_name = True


class CertificateUpdate(BaseModel):
    achieved_at: Optional[date] = Field(None, alias="achievedAt")
    expires_at: Optional[date] = Field(None, alias="expiresAt")
    clear_expiry: bool = Field(False, alias="clearExpiry")

    class Config:
        populate_by_name = True


class CertificatePage(BaseModel):
    data: List[CertificateRead]
    total: int
    page: int
    limit: int
    total_pages: int = Field(..., serialization_alias="totalPages")


class CertificateZipRequest(BaseModel):
    certificate_ids: List[str] = Field(..., alias="certificateIds", min_length=1, max_length=100)

    class Config:
        populate_by_name = True
