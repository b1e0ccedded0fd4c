from __future__ import annotations

from datetime import datetime, timezone

import pytest

from trainingdb.apps.accounts import models as account_models
from trainingdb.apps.notifications import models as notification_models
from trainingdb.apps.notifications import providers as notification_providers
from trainingdb.apps.notifications import router as notification_router
from trainingdb.apps.notifications import service as notification_service
from trainingdb.errors import NotFoundError

NotificationType = notification_models.NotificationType


def _create_client(db, name: str = "Notify Co") -> account_models.Client:
    client = account_models.Client(company_name=name, contact_email="hr@notify.example", is_active=True)
    db.add(client)
    db.commit()
    return client


def _create_user(db, email: str, client=None) -> account_models.User:
    user = account_models.User(
        email=email,
        full_name="Notify User",
        hashed_password="hash",
        role=account_models.AccountRole.CLIENT if client else account_models.AccountRole.ADMIN,
        client_id=client.id if client else None,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


def _notify(db, type_=NotificationType.COURSE_PUBLISHED, **kwargs) -> notification_models.Notification:
    notification = notification_service.create_notification(
        db,
        type=type_,
        title=kwargs.pop("title", "Title"),
        message=kwargs.pop("message", "Message"),
        **kwargs,
    )
    db.commit()
    return notification


# ---------------------------------------------------------------------------
# EMAIL
# ---------------------------------------------------------------------------


def test_send_email_no_provider_marks_skipped(db_session, monkeypatch):
    client = _create_client(db_session)
    monkeypatch.setattr(
        notification_providers,
        "get_email_provider",
        lambda: (notification_providers.NoopProvider(), False),
    )

    log = notification_service.send_email(
        "COURSE_PUBLISHED",
        "hr@notify.example",
        "New course",
        "body",
        "edition:1:published",
        client_id=client.id,
        db=db_session,
    )
    db_session.commit()

    assert log.status == notification_models.EmailStatus.SKIPPED_NO_PROVIDER
    assert log.error
    assert log.sent_at is None


def test_send_email_provider_success(db_session, outbox):
    client = _create_client(db_session)

    log = notification_service.send_email(
        "COURSE_PUBLISHED",
        "hr@notify.example",
        "New course",
        "body",
        "edition:1:published",
        client_id=client.id,
        db=db_session,
    )
    db_session.commit()

    assert log.status == notification_models.EmailStatus.SENT
    assert log.sent_at is not None
    assert log.error is None
    assert outbox.sent[0]["correlation_id"] == "edition:1:published"


def test_send_email_provider_failure_best_effort(db_session, outbox):
    outbox.fail_for.add("hr@notify.example")

    log = notification_service.send_email(
        "COURSE_PUBLISHED",
        "hr@notify.example",
        "New course",
        "body",
        "edition:1:published",
        db=db_session,
    )
    db_session.commit()

    assert log.status == notification_models.EmailStatus.FAILED
    assert log.error == "smtp unavailable"


def test_send_email_provider_failure_critical_raises(db_session, outbox):
    outbox.fail_for.add("hr@notify.example")

    with pytest.raises(RuntimeError):
        notification_service.send_email(
            "REGISTRY_RECEIVED",
            "hr@notify.example",
            "Registry",
            "body",
            "edition:1:registry",
            critical=True,
            db=db_session,
        )


def test_provider_from_environment(monkeypatch):
    monkeypatch.setenv("NOTIFICATIONS_EMAIL_PROVIDER", "noop")
    provider, configured = notification_providers.get_email_provider()
    assert isinstance(provider, notification_providers.NoopProvider)
    assert configured is False

    monkeypatch.setenv("NOTIFICATIONS_EMAIL_PROVIDER", "smtp")
    monkeypatch.setenv("SMTP_HOST", "mail.example")
    provider, configured = notification_providers.get_email_provider()
    assert isinstance(provider, notification_providers.SmtpProvider)
    assert configured is True

    monkeypatch.setenv("NOTIFICATIONS_EMAIL_PROVIDER", "carrier-pigeon")
    with pytest.raises(ValueError):
        notification_providers.get_email_provider()


# ---------------------------------------------------------------------------
# RECIPIENT VIEW
# ---------------------------------------------------------------------------


def test_client_user_sees_own_client_and_global(db_session):
    client = _create_client(db_session)
    other = _create_client(db_session, "Other Co")
    user = _create_user(db_session, "hr@notify.example", client)
    mine = _notify(db_session, client_id=client.id)
    broadcast = _notify(db_session, is_global=True)
    _notify(db_session, client_id=other.id)
    _notify(db_session, NotificationType.REGISTRY_RECEIVED)

    rows, total = notification_service.list_for_user(db_session, user=user)

    assert total == 2
    assert {n.id for n, _read_at in rows} == {mine.id, broadcast.id}


def test_admin_sees_back_office_notifications(db_session):
    client = _create_client(db_session)
    admin = _create_user(db_session, "admin@notify.example")
    registry = _notify(db_session, NotificationType.REGISTRY_RECEIVED)
    attendance = _notify(db_session, NotificationType.ATTENDANCE_RECORDED)
    direct = _notify(db_session, NotificationType.TICKET_REPLY, user_id=admin.id)
    _notify(db_session, client_id=client.id)

    rows, total = notification_service.list_for_user(db_session, user=admin)

    assert total == 3
    assert {n.id for n, _read_at in rows} == {registry.id, attendance.id, direct.id}


def test_mark_read_is_idempotent(db_session):
    client = _create_client(db_session)
    user = _create_user(db_session, "hr@notify.example", client)
    notification = _notify(db_session, client_id=client.id)
    _notify(db_session, client_id=client.id)

    first = notification_service.mark_read(db_session, user=user, notification_id=notification.id)
    second = notification_service.mark_read(db_session, user=user, notification_id=notification.id)

    assert first == second
    assert notification_service.unread_count(db_session, user=user) == 1
    rows, total = notification_service.list_for_user(db_session, user=user, unread_only=True)
    assert total == 1
    assert rows[0][0].id != notification.id


def test_mark_read_on_invisible_notification_is_not_found(db_session):
    client = _create_client(db_session)
    other = _create_client(db_session, "Other Co")
    user = _create_user(db_session, "hr@notify.example", client)
    hidden = _notify(db_session, client_id=other.id)

    with pytest.raises(NotFoundError):
        notification_service.mark_read(db_session, user=user, notification_id=hidden.id)


def test_mark_all_read_is_per_user(db_session):
    client = _create_client(db_session)
    first = _create_user(db_session, "one@notify.example", client)
    second = _create_user(db_session, "two@notify.example", client)
    for _ in range(3):
        _notify(db_session, client_id=client.id)

    assert notification_service.mark_all_read(db_session, user=first) == 3
    assert notification_service.mark_all_read(db_session, user=first) == 0
    assert notification_service.unread_count(db_session, user=first) == 0
    assert notification_service.unread_count(db_session, user=second) == 3


def test_list_notifications_endpoint_reports_read_state(db_session):
    client = _create_client(db_session)
    user = _create_user(db_session, "hr@notify.example", client)
    older = _notify(db_session, client_id=client.id, created_at=datetime(2030, 1, 1, tzinfo=timezone.utc))
    newer = _notify(db_session, client_id=client.id, created_at=datetime(2030, 1, 2, tzinfo=timezone.utc))
    notification_service.mark_read(db_session, user=user, notification_id=older.id)

    page = notification_router.list_notifications(
        unread_only=False,
        page=1,
        limit=20,
        db=db_session,
        current_user=user,
    )

    assert page.total == 2
    assert [item.id for item in page.data] == [newer.id, older.id]
    assert page.data[0].read_at is None
    assert page.data[1].read_at is not None


def test_admin_sees_global_broadcasts(db_session):
    client = _create_client(db_session)
    admin = _create_user(db_session, "admin@notify.example")
    broadcast = _notify(db_session, is_global=True)
    _notify(db_session, client_id=client.id)

    rows, total = notification_service.list_for_user(db_session, user=admin)

    assert total == 1
    assert rows[0][0].id == broadcast.id
    assert notification_service.unread_count(db_session, user=admin) == 1
