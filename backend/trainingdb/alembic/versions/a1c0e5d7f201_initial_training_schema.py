"""initial training portal schema

Revision ID: a1c0e5d7f201
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c0e5d7f201"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ACCOUNT_ROLES = ("ADMIN", "CLIENT")
EDITION_STATUSES = ("DRAFT", "PUBLISHED", "CLOSED", "ARCHIVED")
REGISTRATION_STATUSES = ("INSERTED", "CONFIRMED", "TRAINED")
ATTENDANCE_STATUSES = ("PRESENT", "ABSENT", "ABSENT_JUSTIFIED")
NOTIFICATION_TYPES = (
    "COURSE_PUBLISHED",
    "CERTIFICATES_AVAILABLE",
    "DEADLINE_REMINDER",
    "CERTIFICATE_EXPIRING",
    "REGISTRY_RECEIVED",
    "ATTENDANCE_RECORDED",
    "TICKET_OPENED",
    "TICKET_REPLY",
    "TICKET_CLOSED",
)
EMAIL_STATUSES = ("QUEUED", "SENT", "FAILED", "SKIPPED_NO_PROVIDER")


def _enum(values: Sequence[str], name: str) -> sa.Enum:
    # Stored as VARCHAR; no PostgreSQL ENUM types to manage.
    return sa.Enum(*values, name=name, native_enum=False)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # ------------------------------------------------------------------
    # ACCOUNTS
    # ------------------------------------------------------------------
    op.create_table(
        "clients",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("vat_code", sa.String(length=32), nullable=True, unique=True),
        sa.Column("contact_name", sa.String(length=255), nullable=True),
        sa.Column("contact_email", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_clients_company_name", "clients", ["company_name"])
    op.create_index("ix_clients_is_active", "clients", ["is_active"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", _enum(ACCOUNT_ROLES, "account_role_enum"), nullable=False),
        sa.Column(
            "client_id",
            sa.String(length=36),
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_client_id", "users", ["client_id"])
    op.create_index("idx_users_client_role", "users", ["client_id", "role"])

    op.create_table(
        "employees",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "client_id",
            sa.String(length=36),
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("first_name", sa.String(length=128), nullable=False),
        sa.Column("last_name", sa.String(length=128), nullable=False),
        sa.Column("fiscal_code", sa.String(length=32), nullable=False),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("birth_place", sa.String(length=128), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("client_id", "fiscal_code", name="uq_employees_client_fiscal_code"),
    )
    op.create_index("ix_employees_client_id", "employees", ["client_id"])
    op.create_index("idx_employees_client_last_name", "employees", ["client_id", "last_name"])

    # ------------------------------------------------------------------
    # CATALOGUE + EDITIONS
    # ------------------------------------------------------------------
    op.create_table(
        "course_categories",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=True, unique=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration_hours", sa.Float(), nullable=True),
        sa.Column("validity_years", sa.Integer(), nullable=True),
        sa.Column(
            "category_id",
            sa.String(length=36),
            sa.ForeignKey("course_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_courses_title", "courses", ["title"])
    op.create_index("ix_courses_category_id", "courses", ["category_id"])

    op.create_table(
        "course_editions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "course_id",
            sa.String(length=36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "client_id",
            sa.String(length=36),
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("edition_number", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("deadline_registry", sa.Date(), nullable=True),
        sa.Column("status", _enum(EDITION_STATUSES, "edition_status_enum"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_by_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "course_id",
            "client_id",
            "edition_number",
            name="uq_course_editions_course_client_number",
        ),
    )
    op.create_index("ix_course_editions_course_id", "course_editions", ["course_id"])
    op.create_index("ix_course_editions_client_id", "course_editions", ["client_id"])
    op.create_index("ix_course_editions_status", "course_editions", ["status"])
    op.create_index("idx_course_editions_client_status", "course_editions", ["client_id", "status"])
    op.create_index(
        "idx_course_editions_status_deadline",
        "course_editions",
        ["status", "deadline_registry"],
    )

    op.create_table(
        "edition_counters",
        sa.Column(
            "course_id",
            sa.String(length=36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "client_id",
            sa.String(length=36),
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "course_registrations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "course_edition_id",
            sa.String(length=36),
            sa.ForeignKey("course_editions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "client_id",
            sa.String(length=36),
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "employee_id",
            sa.String(length=36),
            sa.ForeignKey("employees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", _enum(REGISTRATION_STATUSES, "registration_status_enum"), nullable=False),
        sa.Column("inserted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "course_edition_id",
            "employee_id",
            name="uq_course_registrations_edition_employee",
        ),
    )
    op.create_index("ix_course_registrations_course_edition_id", "course_registrations", ["course_edition_id"])
    op.create_index("ix_course_registrations_client_id", "course_registrations", ["client_id"])
    op.create_index("ix_course_registrations_employee_id", "course_registrations", ["employee_id"])
    op.create_index(
        "idx_course_registrations_edition_status",
        "course_registrations",
        ["course_edition_id", "status"],
    )

    # ------------------------------------------------------------------
    # LESSONS + ATTENDANCE
    # ------------------------------------------------------------------
    op.create_table(
        "lessons",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "course_edition_id",
            sa.String(length=36),
            sa.ForeignKey("course_editions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=True),
        sa.Column("end_time", sa.String(length=5), nullable=True),
        sa.Column("duration_hours", sa.Float(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "course_edition_id",
            "date",
            "start_time",
            name="uq_lessons_edition_date_start",
        ),
    )
    op.create_index("ix_lessons_course_edition_id", "lessons", ["course_edition_id"])
    op.create_index("idx_lessons_edition_date", "lessons", ["course_edition_id", "date"])

    op.create_table(
        "attendances",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "lesson_id",
            sa.String(length=36),
            sa.ForeignKey("lessons.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "employee_id",
            sa.String(length=36),
            sa.ForeignKey("employees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", _enum(ATTENDANCE_STATUSES, "attendance_status_enum"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "recorded_by_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("lesson_id", "employee_id", name="uq_attendances_lesson_employee"),
    )
    op.create_index("ix_attendances_lesson_id", "attendances", ["lesson_id"])
    op.create_index("idx_attendances_employee", "attendances", ["employee_id"])

    # ------------------------------------------------------------------
    # CERTIFICATES
    # ------------------------------------------------------------------
    op.create_table(
        "certificates",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "client_id",
            sa.String(length=36),
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "employee_id",
            sa.String(length=36),
            sa.ForeignKey("employees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "course_edition_id",
            sa.String(length=36),
            sa.ForeignKey("course_editions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("file_path", sa.String(length=512), nullable=False),
        sa.Column("original_filename", sa.String(length=255), nullable=True),
        sa.Column("file_size_bytes", sa.Integer(), nullable=True),
        sa.Column("achieved_at", sa.Date(), nullable=False),
        sa.Column("expires_at", sa.Date(), nullable=True),
        sa.Column(
            "uploaded_by_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_certificates_client_id", "certificates", ["client_id"])
    op.create_index("ix_certificates_course_edition_id", "certificates", ["course_edition_id"])
    op.create_index("idx_certificates_client_expires", "certificates", ["client_id", "expires_at"])
    op.create_index("idx_certificates_employee", "certificates", ["employee_id"])

    # ------------------------------------------------------------------
    # NOTIFICATIONS + EMAIL LOG
    # ------------------------------------------------------------------
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("type", _enum(NOTIFICATION_TYPES, "notification_type_enum"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "client_id",
            sa.String(length=36),
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "course_edition_id",
            sa.String(length=36),
            sa.ForeignKey("course_editions.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("ticket_id", sa.String(length=36), nullable=True),
        sa.Column("is_global", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_course_edition_id", "notifications", ["course_edition_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])
    op.create_index("ix_notifications_client_created", "notifications", ["client_id", "created_at"])
    op.create_index(
        "ix_notifications_type_edition_created",
        "notifications",
        ["type", "course_edition_id", "created_at"],
    )

    op.create_table(
        "notification_reads",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "notification_id",
            sa.String(length=36),
            sa.ForeignKey("notifications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("notification_id", "user_id", name="uq_notification_reads_notification_user"),
    )
    op.create_index("ix_notification_reads_notification_id", "notification_reads", ["notification_id"])
    op.create_index("ix_notification_reads_user_id", "notification_reads", ["user_id"])

    op.create_table(
        "email_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "client_id",
            sa.String(length=36),
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "course_edition_id",
            sa.String(length=36),
            sa.ForeignKey("course_editions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recipient", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("email_type", sa.String(length=64), nullable=False),
        sa.Column("status", _enum(EMAIL_STATUSES, "email_status_enum"), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("context_json", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=128), nullable=True),
    )
    op.create_index("ix_email_logs_id", "email_logs", ["id"])
    op.create_index("ix_email_logs_client_id", "email_logs", ["client_id"])
    op.create_index("ix_email_logs_created_at", "email_logs", ["created_at"])
    op.create_index("ix_email_logs_email_type", "email_logs", ["email_type"])
    op.create_index("ix_email_logs_status", "email_logs", ["status"])
    op.create_index("ix_email_logs_correlation_id", "email_logs", ["correlation_id"])
    op.create_index("ix_email_logs_client_created", "email_logs", ["client_id", "created_at"])
    op.create_index("ix_email_logs_client_status", "email_logs", ["client_id", "status"])
    op.create_index("ix_email_logs_type_edition", "email_logs", ["email_type", "course_edition_id"])


def downgrade() -> None:
    for table in (
        "email_logs",
        "notification_reads",
        "notifications",
        "certificates",
        "attendances",
        "lessons",
        "course_registrations",
        "edition_counters",
        "course_editions",
        "courses",
        "course_categories",
        "employees",
        "users",
        "clients",
    ):
        op.drop_table(table)
