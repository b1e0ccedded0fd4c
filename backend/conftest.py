from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.setdefault("NOTIFICATIONS_EMAIL_PROVIDER", "noop")
os.environ.setdefault("ARGON2_TIME_COST", "1")
os.environ.setdefault("ARGON2_MEMORY_COST", "1024")

import trainingdb  # noqa: E402,F401  registers every model on Base.metadata
from trainingdb.database import Base  # noqa: E402
from trainingdb.apps.notifications import providers  # noqa: E402


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def certificate_storage(tmp_path, monkeypatch):
    root = tmp_path / "certificates"
    monkeypatch.setenv("CERTIFICATE_STORAGE_DIR", str(root))
    return root


class RecordingProvider(providers.EmailProvider):
    def __init__(self) -> None:
        self.sent: List[dict] = []
        self.fail_for: set = set()

    def send(self, *, email_type, recipient, subject, body, correlation_id) -> None:
        if recipient in self.fail_for:
            raise RuntimeError("smtp unavailable")
        self.sent.append(
            {
                "email_type": email_type,
                "recipient": recipient,
                "subject": subject,
                "body": body,
                "correlation_id": correlation_id,
            }
        )


@pytest.fixture()
def outbox(monkeypatch):
    provider = RecordingProvider()
    monkeypatch.setattr(providers, "get_email_provider", lambda: (provider, True))
    return provider
