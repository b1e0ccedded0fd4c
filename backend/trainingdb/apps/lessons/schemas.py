# backend/trainingdb/apps/lessons/schemas.py

from __future__ import annotations

from datetime import date as date_type
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class LessonBase(BaseModel):
    date: date_type
    start_time: Optional[str] = Field(None, alias="startTime", pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, alias="endTime", pattern=TIME_PATTERN)
    duration_hours: float = Field(..., gt=0, alias="durationHours")
    title: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


class LessonCreate(LessonBase):
    pass


class LessonUpdate(BaseModel):
    date: Optional[date_type] = None
    start_time: Optional[str] = Field(None, alias="startTime", pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, alias="endTime", pattern=TIME_PATTERN)
    duration_hours: Optional[float] = Field(None, gt=0, alias="durationHours")
    title: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


class LessonRead(BaseModel):
    id: str
    course_edition_id: str
    date: date_type
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration_hours: float
    title: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AttendanceCounts(BaseModel):
    present: int = 0
    absent: int = 0
    justified: int = 0


class LessonWithCounts(LessonRead):
    attendance: AttendanceCounts = Field(default_factory=AttendanceCounts)


class LessonPage(BaseModel):
    data: List[LessonWithCounts]
    total: int
    page: int
    limit: int
    total_pages: int = Field(..., serialization_alias="totalPages")
    total_employees: int = Field(..., serialization_alias="totalEmployees")


class LessonDeleteResult(BaseModel):
    deleted: bool = True
    attendances: int
