# backend/trainingdb/apps/editions/router.py

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from trainingdb.apps.accounts import models as accounts_models
from trainingdb.database import get_db, get_read_db
from trainingdb.errors import ServiceError, raise_http
from trainingdb.security import (
    get_current_active_user,
    require_admin,
    require_client_user,
    tenant_scope,
)

from . import models, schemas, services

router = APIRouter(tags=["editions"])


def load_edition(
    db: Session,
    course_id: str,
    edition_id: str,
    current_user: accounts_models.User,
) -> models.CourseEdition:
    try:
        return services.get_edition(
            db,
            edition_id,
            course_id=course_id,
            scope_client_id=tenant_scope(current_user),
        )
    except ServiceError as exc:
        raise_http(exc)


def _edition_read(edition: models.CourseEdition, errors: Optional[List[str]] = None) -> schemas.EditionRead:
    read = schemas.EditionRead.model_validate(edition)
    read.notification_errors = list(errors or [])
    return read


# ---------------------------------------------------------------------------
# COURSES
# ---------------------------------------------------------------------------


@router.get("/courses", response_model=List[schemas.CourseRead])
def list_courses(
    include_inactive: bool = False,
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    return services.list_courses(db, include_inactive=include_inactive)


@router.post("/courses", response_model=schemas.CourseRead, status_code=status.HTTP_201_CREATED)
def create_course(
    payload: schemas.CourseCreate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    try:
        return services.create_course(db, payload=payload)
    except ServiceError as exc:
        raise_http(exc)


# ---------------------------------------------------------------------------
# EDITIONS
# ---------------------------------------------------------------------------


@router.get("/editions", response_model=schemas.EditionPage)
def list_editions(
    client_id: Optional[str] = Query(None, alias="clientId"),
    course_id: Optional[str] = Query(None, alias="courseId"),
    category_id: Optional[str] = Query(None, alias="categoryId"),
    status_filter: Optional[models.EditionStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    # Client users only ever see their own editions, whatever clientId says.
    scope = tenant_scope(current_user)
    return services.list_editions(
        db,
        client_id=scope or client_id,
        course_id=course_id,
        category_id=category_id,
        status=status_filter,
        search=search,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


@router.post(
    "/courses/{course_id}/editions",
    response_model=schemas.EditionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_edition(
    course_id: str,
    payload: schemas.EditionCreate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    try:
        edition, fanout_result = services.create_edition(
            db, course_id=course_id, payload=payload, actor=current_user
        )
    except ServiceError as exc:
        raise_http(exc)
    return _edition_read(edition, fanout_result.errors)


@router.get("/courses/{course_id}/editions/{edition_id}", response_model=schemas.EditionRead)
def get_edition(
    course_id: str,
    edition_id: str,
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    return _edition_read(load_edition(db, course_id, edition_id, current_user))


@router.patch("/courses/{course_id}/editions/{edition_id}", response_model=schemas.EditionRead)
def update_edition(
    course_id: str,
    edition_id: str,
    payload: schemas.EditionUpdate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    try:
        edition, fanout_result = services.update_edition(
            db, edition_id=edition_id, payload=payload, course_id=course_id
        )
    except ServiceError as exc:
        raise_http(exc)
    return _edition_read(edition, fanout_result.errors)


@router.post("/courses/{course_id}/editions/{edition_id}/publish", response_model=schemas.EditionRead)
def publish_edition(
    course_id: str,
    edition_id: str,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    try:
        edition, fanout_result = services.publish_edition(db, edition_id=edition_id, course_id=course_id)
    except ServiceError as exc:
        raise_http(exc)
    return _edition_read(edition, fanout_result.errors)


@router.get(
    "/courses/{course_id}/editions/{edition_id}/dependents",
    response_model=schemas.EditionDependents,
)
def get_edition_dependents(
    course_id: str,
    edition_id: str,
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    edition = load_edition(db, course_id, edition_id, current_user)
    return services.edition_dependents(db, edition)


@router.delete(
    "/courses/{course_id}/editions/{edition_id}",
    response_model=schemas.EditionDeleteResult,
)
def delete_edition(
    course_id: str,
    edition_id: str,
    confirmation: Optional[str] = Query(None, description="Required when certificates exist: '<course title> #<edition number>'"),
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    try:
        return services.delete_edition(
            db, edition_id=edition_id, confirmation=confirmation, course_id=course_id
        )
    except ServiceError as exc:
        raise_http(exc)


# ---------------------------------------------------------------------------
# REGISTRATIONS
# ---------------------------------------------------------------------------


@router.get(
    "/courses/{course_id}/editions/{edition_id}/registrations",
    response_model=List[schemas.RegistrationRead],
)
def list_registrations(
    course_id: str,
    edition_id: str,
    db: Session = Depends(get_read_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    edition = load_edition(db, course_id, edition_id, current_user)
    return services.list_registrations(db, edition)


@router.post(
    "/courses/{course_id}/editions/{edition_id}/registrations",
    response_model=schemas.RegistrationAddResult,
    status_code=status.HTTP_201_CREATED,
)
def add_registrations(
    course_id: str,
    edition_id: str,
    payload: schemas.RegistrationAdd,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    edition = load_edition(db, course_id, edition_id, current_user)
    try:
        return services.add_registrations(db, edition=edition, employee_ids=payload.employee_ids)
    except ServiceError as exc:
        raise_http(exc)


@router.delete(
    "/courses/{course_id}/editions/{edition_id}/registrations/{registration_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def remove_registration(
    course_id: str,
    edition_id: str,
    registration_id: str,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    edition = load_edition(db, course_id, edition_id, current_user)
    try:
        services.remove_registration(db, edition=edition, registration_id=registration_id)
    except ServiceError as exc:
        raise_http(exc)
    return None


@router.post(
    "/courses/{course_id}/editions/{edition_id}/submit",
    response_model=schemas.RegistrySubmitResult,
)
def submit_registry(
    course_id: str,
    edition_id: str,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_client_user),
):
    load_edition(db, course_id, edition_id, current_user)
    try:
        confirmed, fanout_result = services.submit_registry(db, edition_id=edition_id, user=current_user)
    except ServiceError as exc:
        raise_http(exc)
    return schemas.RegistrySubmitResult(confirmed=confirmed, notification_errors=fanout_result.errors)


@router.post(
    "/courses/{course_id}/editions/{edition_id}/mark-trained",
    response_model=schemas.MarkTrainedResult,
)
def mark_trained(
    course_id: str,
    edition_id: str,
    payload: schemas.MarkTrainedRequest,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    edition = load_edition(db, course_id, edition_id, current_user)
    try:
        trained = services.mark_trained(db, edition=edition, employee_ids=payload.employee_ids)
    except ServiceError as exc:
        raise_http(exc)
    return schemas.MarkTrainedResult(trained=trained)
