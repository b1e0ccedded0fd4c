# backend/trainingdb/apps/lessons/router.py

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from trainingdb.apps.accounts import models as accounts_models
from trainingdb.apps.editions.router import load_edition
from trainingdb.database import get_db, get_read_db
from trainingdb.errors import ServiceError, raise_http
from trainingdb.security import get_current_active_user, require_admin

from . import schemas, services

router = APIRouter(
    prefix="/courses/{course_id}/editions/{edition_id}/lessons",
    tags=["lessons"],
)


@router.get("", response_model=schemas.LessonPage)
def list_lessons(
    course_id: str,
    edition_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    edition = load_edition(db, course_id, edition_id, current_user)
    return services.list_lessons(db, edition=edition, page=page, limit=limit)


@router.post("", response_model=schemas.LessonRead, status_code=status.HTTP_201_CREATED)
def add_lesson(
    course_id: str,
    edition_id: str,
    payload: schemas.LessonCreate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    edition = load_edition(db, course_id, edition_id, current_user)
    try:
        return services.add_lesson(db, edition=edition, payload=payload)
    except ServiceError as exc:
        raise_http(exc)


@router.patch("/{lesson_id}", response_model=schemas.LessonRead)
def update_lesson(
    course_id: str,
    edition_id: str,
    lesson_id: str,
    payload: schemas.LessonUpdate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    edition = load_edition(db, course_id, edition_id, current_user)
    try:
        return services.update_lesson(db, edition=edition, lesson_id=lesson_id, payload=payload)
    except ServiceError as exc:
        raise_http(exc)


@router.delete("/{lesson_id}", response_model=schemas.LessonDeleteResult)
def delete_lesson(
    course_id: str,
    edition_id: str,
    lesson_id: str,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    edition = load_edition(db, course_id, edition_id, current_user)
    try:
        removed = services.delete_lesson(db, edition=edition, lesson_id=lesson_id)
    except ServiceError as exc:
        raise_http(exc)
    return schemas.LessonDeleteResult(attendances=removed)
