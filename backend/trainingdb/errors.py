# backend/trainingdb/errors.py
"""
Domain errors raised by the service layer.

Services never import FastAPI; routers translate these into HTTP responses
with `raise_http`. Each class carries the status code it maps to.
"""

from __future__ import annotations

from typing import Any, NoReturn, Optional

from fastapi import HTTPException, status


class ServiceError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class CrossTenantError(ValidationError):
    """Referenced rows exist but belong to different clients."""


class ForbiddenError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


def raise_http(exc: ServiceError) -> NoReturn:
    detail: Any = exc.message
    if exc.details is not None:
        detail = {"error": exc.message, "details": exc.details}
    raise HTTPException(status_code=exc.status_code, detail=detail) from exc
