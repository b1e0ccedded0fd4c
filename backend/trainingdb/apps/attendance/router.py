# backend/trainingdb/apps/attendance/router.py

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from trainingdb.apps.accounts import models as accounts_models
from trainingdb.apps.accounts.schemas import EmployeeRead
from trainingdb.apps.editions.router import load_edition
from trainingdb.apps.lessons.schemas import LessonRead
from trainingdb.database import get_db, get_read_db
from trainingdb.errors import ServiceError, raise_http
from trainingdb.security import get_current_active_user, require_admin, tenant_scope

from . import exports, schemas, services

router = APIRouter(
    prefix="/courses/{course_id}/editions/{edition_id}/attendance",
    tags=["attendance"],
)


def _matrix_read(matrix: services.AttendanceMatrix) -> schemas.AttendanceMatrixRead:
    return schemas.AttendanceMatrixRead(
        lessons=[LessonRead.model_validate(lesson) for lesson in matrix.lessons],
        employees=[EmployeeRead.model_validate(employee) for employee in matrix.employees],
        attendances=[schemas.AttendanceRead.model_validate(row) for row in matrix.attendances],
        stats=[schemas.EmployeeStatsRead(**stat.as_dict()) for stat in matrix.stats],
        total_lessons=matrix.total_lessons,
        total_hours=matrix.total_hours,
    )


@router.get("", response_model=schemas.AttendanceMatrixRead)
def get_attendance_matrix(
    course_id: str,
    edition_id: str,
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    edition = load_edition(db, course_id, edition_id, current_user)
    matrix = services.build_attendance_matrix(db, edition, client_id=tenant_scope(current_user))
    return _matrix_read(matrix)


@router.post("", response_model=schemas.AttendanceBatchResult)
def record_attendance(
    course_id: str,
    edition_id: str,
    payload: schemas.AttendanceBatch,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    edition = load_edition(db, course_id, edition_id, current_user)
    try:
        updated, fanout_result = services.record_attendance(
            db, edition=edition, entries=payload.attendances, actor=current_user
        )
    except ServiceError as exc:
        raise_http(exc)
    return schemas.AttendanceBatchResult(updated=updated, notification_errors=fanout_result.errors)


@router.get("/export")
def export_attendance(
    course_id: str,
    edition_id: str,
    export_format: str = Query("csv", alias="format", pattern="^(csv|pdf)$"),
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
) -> StreamingResponse:
    edition = load_edition(db, course_id, edition_id, current_user)
    matrix = services.build_attendance_matrix(db, edition, client_id=tenant_scope(current_user))
    if not matrix.employees:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No attendance data available")

    if export_format == "pdf":
        content = exports.build_pdf(matrix)
        media_type = exports.PDF_CONTENT_TYPE
    else:
        content = exports.build_csv(matrix).encode("utf-8")
        media_type = exports.CSV_CONTENT_TYPE

    filename = exports.export_filename(edition.id, export_format)
    return StreamingResponse(
        iter([content]),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.patch("/{attendance_id}", response_model=schemas.AttendanceRead)
def update_attendance(
    course_id: str,
    edition_id: str,
    attendance_id: str,
    payload: schemas.AttendanceUpdate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    edition = load_edition(db, course_id, edition_id, current_user)
    try:
        return services.update_attendance(
            db,
            edition=edition,
            attendance_id=attendance_id,
            payload=payload,
            actor=current_user,
        )
    except ServiceError as exc:
        raise_http(exc)
