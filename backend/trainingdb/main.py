# backend/trainingdb/main.py
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .apps.accounts.router import auth_router as accounts_auth_router
from .apps.accounts.router import router as employees_router
from .apps.editions.router import router as editions_router
from .apps.lessons.router import router as lessons_router
from .apps.attendance.router import router as attendance_router
from .apps.certificates.router import router as certificates_router
from .apps.notifications.router import router as notifications_router
from .apps.tickets.router import router as tickets_router


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:3000",
        "http://localhost:3000",
        "http://localhost:5173",
    ]


app = FastAPI(title="Training Portal API", version="1.0.0")
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "Training portal backend is running"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


app.include_router(accounts_auth_router)
app.include_router(employees_router)
app.include_router(editions_router)
app.include_router(lessons_router)
app.include_router(attendance_router)
app.include_router(certificates_router)
app.include_router(notifications_router)
app.include_router(tickets_router)
