# backend/trainingdb/apps/attendance/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from trainingdb.apps.accounts.schemas import EmployeeRead
from trainingdb.apps.lessons.schemas import LessonRead

from .models import AttendanceStatus

MAX_ENTRIES_PER_BATCH = 2000


class AttendanceEntry(BaseModel):
    lesson_id: str = Field(..., alias="lessonId")
    employee_id: str = Field(..., alias="employeeId")
    status: AttendanceStatus
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


class AttendanceBatch(BaseModel):
    attendances: List[AttendanceEntry] = Field(..., min_length=1, max_length=MAX_ENTRIES_PER_BATCH)


class AttendanceBatchResult(BaseModel):
    ok: bool = True
    updated: int
    notification_errors: List[str] = Field(default_factory=list)


class AttendanceUpdate(BaseModel):
    status: AttendanceStatus
    notes: Optional[str] = None


class AttendanceRead(BaseModel):
    id: str
    lesson_id: str
    employee_id: str
    status: AttendanceStatus
    notes: Optional[str] = None
    recorded_by_user_id: Optional[str] = None
    recorded_at: datetime

    class Config:
        from_attributes = True


class EmployeeStatsRead(BaseModel):
    employee_id: str
    employee_name: str
    total_lessons: int
    present: int
    absent: int
    justified: int
    percentage: int
    total_hours: float
    attended_hours: float
    below_minimum: bool

    class Config:
        from_attributes = True


class AttendanceMatrixRead(BaseModel):
    lessons: List[LessonRead]
    employees: List[EmployeeRead]
    attendances: List[AttendanceRead]
    stats: List[EmployeeStatsRead]
    total_lessons: int = Field(..., serialization_alias="totalLessons")
    total_hours: float = Field(..., serialization_alias="totalHours")
