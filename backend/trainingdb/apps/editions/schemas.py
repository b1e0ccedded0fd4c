# backend/trainingdb/apps/editions/schemas.py

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import EditionStatus, RegistrationStatus

# ---------------------------------------------------------------------------
# COURSES
# ---------------------------------------------------------------------------


class CourseBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    code: Optional[str] = Field(None, max_length=64)
    description: Optional[str] = None
    duration_hours: Optional[float] = Field(None, gt=0)
    validity_years: Optional[int] = Field(None, ge=1)
    category_id: Optional[str] = None


class CourseCreate(CourseBase):
    pass


class CourseRead(CourseBase):
    id: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# EDITIONS
# ---------------------------------------------------------------------------


class EditionCreate(BaseModel):
    client_id: str = Field(..., alias="clientId")
    start_date: Optional[date] = Field(None, alias="startDate")
    end_date: Optional[date] = Field(None, alias="endDate")
    deadline_registry: Optional[date] = Field(None, alias="deadlineRegistry")
    status: EditionStatus = EditionStatus.DRAFT
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


class EditionUpdate(BaseModel):
    start_date: Optional[date] = Field(None, alias="startDate")
    end_date: Optional[date] = Field(None, alias="endDate")
    deadline_registry: Optional[date] = Field(None, alias="deadlineRegistry")
    status: Optional[EditionStatus] = None
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


class EditionRead(BaseModel):
    id: str
    course_id: str
    client_id: str
    edition_number: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    deadline_registry: Optional[date] = None
    status: EditionStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    notification_errors: List[str] = Field(
        default_factory=list,
        description="Email delivery problems from the publish fan-out; the edition itself was saved.",
    )

    class Config:
        from_attributes = True


class EditionListItem(EditionRead):
    course_title: str
    client_name: str
    registration_count: int = 0


class EditionPage(BaseModel):
    data: List[EditionListItem]
    total: int
    page: int
    limit: int
    total_pages: int = Field(..., serialization_alias="totalPages")


class EditionDependents(BaseModel):
    registrations: int
    lessons: int
    attendances: int
    certificates: int
    notifications: int
    requires_confirmation: bool
    confirmation_phrase: str


class EditionDeleteResult(BaseModel):
    deleted: bool = True
    registrations: int
    lessons: int
    attendances: int
    certificates: int
    notifications: int


# ---------------------------------------------------------------------------
# REGISTRATIONS
# ---------------------------------------------------------------------------


class RegistrationAdd(BaseModel):
    employee_ids: List[str] = Field(..., min_length=1, alias="employeeIds")

    class Config:
        populate_by_name = True


class RegistrationRead(BaseModel):
    id: str
    course_edition_id: str
    client_id: str
    employee_id: str
    status: RegistrationStatus
    inserted_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RegistrationAddResult(BaseModel):
    added: int
    skipped: int


class RegistrySubmitResult(BaseModel):
    confirmed: int
    notification_errors: List[str] = Field(default_factory=list)


class MarkTrainedRequest(BaseModel):
    employee_ids: Optional[List[str]] = Field(None, alias="employeeIds")

    class Config:
        populate_by_name = True


class MarkTrainedResult(BaseModel):
    trained: int
