"""
Notification fan-out for portal events.

Every procedure here runs after the triggering change has been committed.
Notification rows are committed before any email is attempted, and email
problems are collected on the returned `FanoutResult` instead of being
raised, so a broken mail provider never undoes the change that caused the
fan-out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from trainingdb.apps.accounts.models import AccountRole, Client, User
from trainingdb.apps.certificates.models import Certificate
from trainingdb.apps.editions.models import (
    CourseEdition,
    CourseRegistration,
    EditionStatus,
    RegistrationStatus,
)
from trainingdb.apps.tickets.models import Ticket, TicketStatus

from . import models, service

logger = logging.getLogger(__name__)

DEADLINE_WINDOW_MIN_DAYS = 3
DEADLINE_WINDOW_MAX_DAYS = 7
CERTIFICATE_EXPIRY_WINDOW_DAYS = 30


@dataclass
class FanoutResult:
    notification_ids: List[str] = field(default_factory=list)
    emails_sent: int = 0
    errors: List[str] = field(default_factory=list)

    def merge(self, other: "FanoutResult") -> "FanoutResult":
        self.notification_ids.extend(other.notification_ids)
        self.emails_sent += other.emails_sent
        self.errors.extend(other.errors)
        return self


def _fmt(value: Optional[date]) -> str:
    return value.strftime("%d/%m/%Y") if value else "-"


def _edition_label(edition: CourseEdition) -> str:
    return f"{edition.course.title} (Ed. #{edition.edition_number})"


def _day_bounds(day: date):
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def _deliver(
    db: Session,
    result: FanoutResult,
    *,
    email_type: str,
    recipient: Optional[str],
    subject: str,
    body: str,
    correlation_id: str,
    client_id: Optional[str] = None,
    course_edition_id: Optional[str] = None,
) -> None:
    if not recipient:
        logger.info(
            "No recipient for email, skipping",
            extra={"email_type": email_type, "client_id": client_id},
        )
        return
    try:
        log = service.send_email(
            email_type,
            recipient,
            subject,
            body,
            correlation_id,
            client_id=client_id,
            course_edition_id=course_edition_id,
            db=db,
        )
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.warning(
            "Email fan-out failed",
            extra={"email_type": email_type, "recipient": recipient, "error": str(exc)},
        )
        result.errors.append(f"{recipient}: {exc}")
        return

    if log.status == models.EmailStatus.FAILED:
        result.errors.append(f"{recipient}: {log.error}")
    elif log.status == models.EmailStatus.SENT:
        result.emails_sent += 1


def _notify(db: Session, result: FanoutResult, **kwargs) -> models.Notification:
    notification = service.create_notification(db, **kwargs)
    db.commit()
    result.notification_ids.append(notification.id)
    return notification


# ---------------------------------------------------------------------------
# EVENT-DRIVEN
# ---------------------------------------------------------------------------


def notify_edition_published(db: Session, edition: CourseEdition) -> FanoutResult:
    result = FanoutResult()
    label = _edition_label(edition)
    _notify(
        db,
        result,
        type=models.NotificationType.COURSE_PUBLISHED,
        title="New course edition available",
        message=(
            f"{label} has been published. Dates {_fmt(edition.start_date)} - {_fmt(edition.end_date)}, "
            f"registry deadline {_fmt(edition.deadline_registry)}."
        ),
        client_id=edition.client_id,
        course_edition_id=edition.id,
    )
    client = edition.client
    _deliver(
        db,
        result,
        email_type="COURSE_PUBLISHED",
        recipient=client.contact_email if client else None,
        subject=f"New course edition: {label}",
        body=(
            f"Dear {(client.contact_name or client.company_name) if client else 'customer'},\n\n"
            f"the course {label} is now open for registrations.\n"
            f"Start date: {_fmt(edition.start_date)}\n"
            f"End date: {_fmt(edition.end_date)}\n"
            f"Registry deadline: {_fmt(edition.deadline_registry)}\n"
        ),
        correlation_id=f"edition:{edition.id}:published",
        client_id=edition.client_id,
        course_edition_id=edition.id,
    )
    return result


def notify_certificates_uploaded(
    db: Session,
    *,
    client: Client,
    count: int,
    edition: Optional[CourseEdition] = None,
) -> FanoutResult:
    result = FanoutResult()
    what = _edition_label(edition) if edition is not None else "external training"
    noun = "certificate" if count == 1 else "certificates"
    _notify(
        db,
        result,
        type=models.NotificationType.CERTIFICATES_AVAILABLE,
        title="Certificates available",
        message=f"{count} {noun} available for {what}.",
        client_id=client.id,
        course_edition_id=edition.id if edition is not None else None,
    )
    _deliver(
        db,
        result,
        email_type="CERTIFICATES_AVAILABLE",
        recipient=client.contact_email,
        subject=f"{count} new {noun} available",
        body=(
            f"Dear {client.contact_name or client.company_name},\n\n"
            f"{count} {noun} for {what} can now be downloaded from the portal.\n"
        ),
        correlation_id=f"certificates:{client.id}:{edition.id if edition is not None else 'external'}",
        client_id=client.id,
        course_edition_id=edition.id if edition is not None else None,
    )
    return result


def _admin_recipients(db: Session) -> List[User]:
    return (
        db.query(User)
        .filter(User.role == AccountRole.ADMIN, User.is_active.is_(True))
        .order_by(User.email.asc())
        .all()
    )


def notify_registry_received(db: Session, edition: CourseEdition, *, confirmed: int) -> FanoutResult:
    result = FanoutResult()
    label = _edition_label(edition)
    company = edition.client.company_name if edition.client else "Client"
    _notify(
        db,
        result,
        type=models.NotificationType.REGISTRY_RECEIVED,
        title="Employee registry received",
        message=f"{company} submitted {confirmed} employees for {label}.",
        course_edition_id=edition.id,
    )
    for admin in _admin_recipients(db):
        _deliver(
            db,
            result,
            email_type="REGISTRY_RECEIVED",
            recipient=admin.email,
            subject=f"Registry received: {label}",
            body=f"{company} submitted the employee registry for {label} ({confirmed} employees).\n",
            correlation_id=f"edition:{edition.id}:registry:{admin.id}",
            course_edition_id=edition.id,
        )
    client = edition.client
    _deliver(
        db,
        result,
        email_type="REGISTRY_CONFIRMATION",
        recipient=client.contact_email if client else None,
        subject=f"Registry received: {label}",
        body=f"We have received the employee registry for {label} ({confirmed} employees). Thank you.\n",
        correlation_id=f"edition:{edition.id}:registry-confirmation",
        client_id=edition.client_id,
        course_edition_id=edition.id,
    )
    return result


def notify_attendance_recorded(db: Session, edition: CourseEdition, *, updated: int) -> FanoutResult:
    """One notification per recording batch, never one per entry."""
    result = FanoutResult()
    _notify(
        db,
        result,
        type=models.NotificationType.ATTENDANCE_RECORDED,
        title="Attendance updated",
        message=f"{updated} attendance entries recorded for {_edition_label(edition)}.",
        course_edition_id=edition.id,
    )
    return result


# ---------------------------------------------------------------------------
# SUPPORT TICKETS
# ---------------------------------------------------------------------------


def _ticket_requester(ticket: Ticket) -> Dict[str, Optional[str]]:
    # Falls back to the whole client once the opener's account is gone.
    if ticket.opened_by_user_id:
        return {"user_id": ticket.opened_by_user_id}
    return {"client_id": ticket.client_id}


def notify_ticket_opened(db: Session, ticket: Ticket, *, company: str) -> FanoutResult:
    result = FanoutResult()
    for admin in _admin_recipients(db):
        _notify(
            db,
            result,
            type=models.NotificationType.TICKET_OPENED,
            title="New support ticket",
            message=f'{company} opened a ticket: "{ticket.subject}"',
            user_id=admin.id,
            ticket_id=ticket.id,
        )
    return result


def notify_ticket_message(db: Session, ticket: Ticket, *, author: User, company: str) -> FanoutResult:
    """
    Client messages go to the assignee, or to every admin while the ticket
    is unassigned. Admin messages go back to whoever opened the ticket.
    """
    result = FanoutResult()
    if author.role == AccountRole.ADMIN:
        _notify(
            db,
            result,
            type=models.NotificationType.TICKET_REPLY,
            title="New reply to your ticket",
            message=f'Support replied to the ticket "{ticket.subject}"',
            ticket_id=ticket.id,
            **_ticket_requester(ticket),
        )
        return result

    if ticket.assigned_to_user_id:
        admin_ids = [ticket.assigned_to_user_id]
    else:
        admin_ids = [admin.id for admin in _admin_recipients(db)]
    for admin_id in admin_ids:
        _notify(
            db,
            result,
            type=models.NotificationType.TICKET_NEW_MESSAGE,
            title="New ticket message",
            message=f'{company} wrote on the ticket "{ticket.subject}"',
            user_id=admin_id,
            ticket_id=ticket.id,
        )
    return result


def notify_ticket_status_changed(db: Session, ticket: Ticket, *, previous: TicketStatus) -> FanoutResult:
    result = FanoutResult()
    closed = ticket.status == TicketStatus.CLOSED
    _notify(
        db,
        result,
        type=(
            models.NotificationType.TICKET_CLOSED
            if closed
            else models.NotificationType.TICKET_STATUS_CHANGED
        ),
        title="Ticket closed" if closed else "Ticket status updated",
        message=f'The ticket "{ticket.subject}" moved from {previous.value} to {ticket.status.value}.',
        ticket_id=ticket.id,
        **_ticket_requester(ticket),
    )
    return result


# ---------------------------------------------------------------------------
# SCHEDULED SWEEPS
# ---------------------------------------------------------------------------


def run_deadline_sweep(db: Session, *, now: Optional[datetime] = None) -> FanoutResult:
    """
    Remind clients of published editions whose registry deadline falls
    between 3 and 7 days from today and that still have registrations
    waiting to be submitted. Each edition is reminded at most once a day.
    """
    now = now or datetime.now(timezone.utc)
    today = now.date()
    day_start, day_end = _day_bounds(today)
    result = FanoutResult()

    pending = (
        db.query(
            CourseRegistration.course_edition_id,
            func.count(CourseRegistration.id).label("pending"),
        )
        .filter(CourseRegistration.status == RegistrationStatus.INSERTED)
        .group_by(CourseRegistration.course_edition_id)
        .subquery()
    )
    rows = (
        db.query(CourseEdition, pending.c.pending)
        .join(pending, pending.c.course_edition_id == CourseEdition.id)
        .join(Client, Client.id == CourseEdition.client_id)
        .filter(
            CourseEdition.status == EditionStatus.PUBLISHED,
            CourseEdition.deadline_registry >= today + timedelta(days=DEADLINE_WINDOW_MIN_DAYS),
            CourseEdition.deadline_registry <= today + timedelta(days=DEADLINE_WINDOW_MAX_DAYS),
            Client.is_active.is_(True),
        )
        .order_by(CourseEdition.deadline_registry.asc())
        .all()
    )

    for edition, pending_count in rows:
        if service.already_sent_today(
            db,
            type=models.NotificationType.DEADLINE_REMINDER,
            client_id=edition.client_id,
            course_edition_id=edition.id,
            day_start=day_start,
            day_end=day_end,
        ):
            continue

        days_left = (edition.deadline_registry - today).days
        label = _edition_label(edition)
        _notify(
            db,
            result,
            type=models.NotificationType.DEADLINE_REMINDER,
            title=f"Registry deadline in {days_left} days",
            message=f"{label} - registry deadline on {_fmt(edition.deadline_registry)}, {pending_count} employees not yet submitted.",
            client_id=edition.client_id,
            course_edition_id=edition.id,
            created_at=now,
        )
        _deliver(
            db,
            result,
            email_type="DEADLINE_REMINDER",
            recipient=edition.client.contact_email,
            subject=f"Registry deadline in {days_left} days: {label}",
            body=(
                f"Dear {edition.client.contact_name or edition.client.company_name},\n\n"
                f"the employee registry for {label} must be submitted by {_fmt(edition.deadline_registry)}.\n"
                f"{pending_count} employees are still waiting to be submitted.\n"
            ),
            correlation_id=f"edition:{edition.id}:deadline:{today.isoformat()}",
            client_id=edition.client_id,
            course_edition_id=edition.id,
        )
    return result


def run_expired_deadline_sweep(db: Session, *, now: Optional[datetime] = None) -> FanoutResult:
    """Tell admins about published editions whose registry deadline was yesterday."""
    now = now or datetime.now(timezone.utc)
    yesterday = now.date() - timedelta(days=1)
    result = FanoutResult()

    editions = (
        db.query(CourseEdition)
        .filter(
            CourseEdition.status == EditionStatus.PUBLISHED,
            CourseEdition.deadline_registry == yesterday,
        )
        .all()
    )
    admins = _admin_recipients(db) if editions else []
    for edition in editions:
        label = _edition_label(edition)
        company = edition.client.company_name if edition.client else "Client"
        for admin in admins:
            correlation_id = f"edition:{edition.id}:deadline-expired:{admin.id}"
            if _email_logged(db, correlation_id):
                continue
            _deliver(
                db,
                result,
                email_type="ADMIN_DEADLINE_EXPIRED",
                recipient=admin.email,
                subject=f"Registry deadline expired: {label}",
                body=(
                    f"The registry deadline for {label} ({company}) expired on {_fmt(yesterday)}.\n"
                    f"{len(edition.registrations)} employees are registered.\n"
                ),
                correlation_id=correlation_id,
                course_edition_id=edition.id,
            )
    return result


def _email_logged(db: Session, correlation_id: str) -> bool:
    return (
        db.query(models.EmailLog.id)
        .filter(
            models.EmailLog.correlation_id == correlation_id,
            models.EmailLog.status == models.EmailStatus.SENT,
        )
        .first()
        is not None
    )


def run_certificate_expiry_sweep(db: Session, *, now: Optional[datetime] = None) -> FanoutResult:
    """
    One notification and one email per client listing every certificate that
    expires within the next 30 days.
    """
    now = now or datetime.now(timezone.utc)
    today = now.date()
    day_start, day_end = _day_bounds(today)
    result = FanoutResult()

    certificates = (
        db.query(Certificate)
        .join(Client, Client.id == Certificate.client_id)
        .filter(
            Certificate.expires_at.isnot(None),
            Certificate.expires_at >= today,
            Certificate.expires_at <= today + timedelta(days=CERTIFICATE_EXPIRY_WINDOW_DAYS),
            Client.is_active.is_(True),
        )
        .order_by(Certificate.client_id.asc(), Certificate.expires_at.asc())
        .all()
    )

    by_client: Dict[str, List[Certificate]] = {}
    for certificate in certificates:
        by_client.setdefault(certificate.client_id, []).append(certificate)

    for client_id, items in by_client.items():
        if service.already_sent_today(
            db,
            type=models.NotificationType.CERTIFICATE_EXPIRING,
            client_id=client_id,
            day_start=day_start,
            day_end=day_end,
        ):
            continue

        client = db.query(Client).filter(Client.id == client_id).one()
        lines = []
        for certificate in items:
            course = (
                certificate.edition.course.title
                if certificate.edition is not None
                else "External certificate"
            )
            lines.append(
                f"- {certificate.employee.display_name}: {course}, expires {_fmt(certificate.expires_at)}"
            )
        _notify(
            db,
            result,
            type=models.NotificationType.CERTIFICATE_EXPIRING,
            title="Certificates expiring soon",
            message=f"{len(items)} certificates expire within {CERTIFICATE_EXPIRY_WINDOW_DAYS} days.",
            client_id=client_id,
            created_at=now,
        )
        _deliver(
            db,
            result,
            email_type="CERTIFICATE_EXPIRING",
            recipient=client.contact_email,
            subject=f"{len(items)} certificates expiring soon",
            body=(
                f"Dear {client.contact_name or client.company_name},\n\n"
                f"the following certificates expire within {CERTIFICATE_EXPIRY_WINDOW_DAYS} days:\n"
                + "\n".join(lines)
                + "\n"
            ),
            correlation_id=f"client:{client_id}:certificates-expiring:{today.isoformat()}",
            client_id=client_id,
        )
    return result
