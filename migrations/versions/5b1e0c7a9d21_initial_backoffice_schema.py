"""initial_backoffice_schema

Create the back-office tables: clients and locations, trainers and
availability, course types and certificates, bookings and candidates,
email templates and queue, open-course venues, sessions, delegates and
capacity alerts.

The app also runs db.create_all() on start-up, so every table is created
only if it does not already exist.

Revision ID: 5b1e0c7a9d21
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5b1e0c7a9d21"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "clients" not in existing_tables:
        op.create_table(
            "clients",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("contact_name", sa.String(length=200), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("telephone", sa.String(length=50), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_clients_name", "clients", ["name"])
        op.create_index("ix_clients_deleted_at", "clients", ["deleted_at"])

    if "client_locations" not in existing_tables:
        op.create_table(
            "client_locations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("client_id", sa.Integer(), nullable=False),
            sa.Column("location_name", sa.String(length=200), nullable=False),
            sa.Column("address1", sa.String(length=200), nullable=True),
            sa.Column("address2", sa.String(length=200), nullable=True),
            sa.Column("town", sa.String(length=100), nullable=True),
            sa.Column("postcode", sa.String(length=20), nullable=True),
            sa.Column("contact_name", sa.String(length=200), nullable=True),
            sa.Column("contact_email", sa.String(length=255), nullable=True),
            sa.Column("contact_telephone", sa.String(length=50), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_client_locations_client_id", "client_locations", ["client_id"])
        op.create_index("ix_client_locations_deleted_at", "client_locations", ["deleted_at"])

    if "trainers" not in existing_tables:
        op.create_table(
            "trainers",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("telephone", sa.String(length=50), nullable=True),
            sa.Column("address1", sa.String(length=200), nullable=True),
            sa.Column("address2", sa.String(length=200), nullable=True),
            sa.Column("town", sa.String(length=100), nullable=True),
            sa.Column("postcode", sa.String(length=20), nullable=True),
            sa.Column("day_rate", sa.Numeric(10, 2), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("suspended", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", name="uq_trainers_user_id"),
        )
        op.create_index("ix_trainers_name", "trainers", ["name"])
        op.create_index("ix_trainers_suspended", "trainers", ["suspended"])

    if "trainer_unavailability" not in existing_tables:
        op.create_table(
            "trainer_unavailability",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("trainer_id", sa.Integer(), nullable=False),
            sa.Column("unavailable_date", sa.Date(), nullable=False),
            sa.Column("reason", sa.String(length=500), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="unavailable"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["trainer_id"], ["trainers.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("trainer_id", "unavailable_date", name="uq_trainer_unavailable_date"),
        )
        op.create_index("ix_trainer_unavailability_trainer_id", "trainer_unavailability", ["trainer_id"])
        op.create_index("ix_trainer_unavailability_unavailable_date", "trainer_unavailability",
                        ["unavailable_date"])

    if "course_types" not in existing_tables:
        op.create_table(
            "course_types",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("code", sa.String(length=20), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("duration_days", sa.Numeric(5, 1), nullable=True),
            sa.Column("duration_unit", sa.String(length=10), nullable=False, server_default="days"),
            sa.Column("certificate_validity_months", sa.Integer(), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("required_fields", sa.JSON(), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code", name="uq_course_types_code"),
        )

    if "certificate_templates" not in existing_tables:
        op.create_table(
            "certificate_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("course_type_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("background_image_url", sa.String(length=1000), nullable=True),
            sa.Column("page_width", sa.Integer(), nullable=False, server_default="1754"),
            sa.Column("page_height", sa.Integer(), nullable=False, server_default="1240"),
            sa.Column("fields_config", sa.JSON(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.ForeignKeyConstraint(["course_type_id"], ["course_types.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_certificate_templates_course_type_id", "certificate_templates",
                        ["course_type_id"])

    if "bookings" not in existing_tables:
        op.create_table(
            "bookings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("trainer_id", sa.Integer(), nullable=True),
            sa.Column("course_type_id", sa.Integer(), nullable=True),
            sa.Column("client_id", sa.Integer(), nullable=True),
            sa.Column("location_id", sa.Integer(), nullable=True),
            sa.Column("booking_date", sa.Date(), nullable=False),
            sa.Column("start_time", sa.Time(), nullable=False),
            sa.Column("num_days", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("location", sa.String(length=500), nullable=True),
            sa.Column("client_name", sa.String(length=200), nullable=True),
            sa.Column("client_contact_name", sa.String(length=200), nullable=True),
            sa.Column("client_email", sa.String(length=255), nullable=True),
            sa.Column("client_telephone", sa.String(length=50), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="confirmed"),
            sa.Column("in_centre", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("course_level_data", sa.JSON(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["trainer_id"], ["trainers.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["course_type_id"], ["course_types.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["location_id"], ["client_locations.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_bookings_trainer_id", "bookings", ["trainer_id"])
        op.create_index("ix_bookings_course_type_id", "bookings", ["course_type_id"])
        op.create_index("ix_bookings_client_id", "bookings", ["client_id"])
        op.create_index("ix_bookings_booking_date", "bookings", ["booking_date"])
        op.create_index("ix_bookings_status", "bookings", ["status"])

    if "booking_candidates" not in existing_tables:
        op.create_table(
            "booking_candidates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("booking_id", sa.Integer(), nullable=False),
            sa.Column("client_id", sa.Integer(), nullable=True),
            sa.Column("candidate_name", sa.String(length=200), nullable=False),
            sa.Column("telephone", sa.String(length=50), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("outstanding_balance", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("passed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("course_data", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_booking_candidates_booking_id", "booking_candidates", ["booking_id"])
        op.create_index("ix_booking_candidates_client_id", "booking_candidates", ["client_id"])

    if "venues" not in existing_tables:
        op.create_table(
            "venues",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("address1", sa.String(length=200), nullable=True),
            sa.Column("address2", sa.String(length=200), nullable=True),
            sa.Column("town", sa.String(length=100), nullable=True),
            sa.Column("postcode", sa.String(length=20), nullable=True),
            sa.Column("contact_name", sa.String(length=200), nullable=True),
            sa.Column("contact_email", sa.String(length=255), nullable=True),
            sa.Column("contact_telephone", sa.String(length=50), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )

    if "open_course_sessions" not in existing_tables:
        op.create_table(
            "open_course_sessions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("course_type_id", sa.Integer(), nullable=True),
            sa.Column("trainer_id", sa.Integer(), nullable=True),
            sa.Column("venue_id", sa.Integer(), nullable=True),
            sa.Column("event_title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("session_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("start_time", sa.Time(), nullable=True),
            sa.Column("end_time", sa.Time(), nullable=True),
            sa.Column("capacity", sa.Integer(), nullable=False, server_default="12"),
            sa.Column("available_spaces", sa.Integer(), nullable=False, server_default="12"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("is_virtual", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("meeting_url", sa.String(length=1000), nullable=True),
            sa.Column("price", sa.Numeric(10, 2), nullable=True),
            sa.Column("currency", sa.String(length=3), nullable=False, server_default="GBP"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("course_level_data", sa.JSON(), nullable=True),
            sa.Column("trainer_declaration_signed", sa.Boolean(), nullable=False,
                      server_default=sa.false()),
            sa.Column("trainer_declaration_signed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("trainer_declaration_signed_by", sa.String(length=200), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["course_type_id"], ["course_types.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["trainer_id"], ["trainers.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["venue_id"], ["venues.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_open_course_sessions_course_type_id", "open_course_sessions",
                        ["course_type_id"])
        op.create_index("ix_open_course_sessions_trainer_id", "open_course_sessions", ["trainer_id"])
        op.create_index("ix_open_course_sessions_venue_id", "open_course_sessions", ["venue_id"])
        op.create_index("ix_open_course_sessions_session_date", "open_course_sessions",
                        ["session_date"])
        op.create_index("ix_open_course_sessions_status", "open_course_sessions", ["status"])

    if "open_course_delegates" not in existing_tables:
        op.create_table(
            "open_course_delegates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("session_id", sa.Integer(), nullable=False),
            sa.Column("delegate_name", sa.String(length=200), nullable=False),
            sa.Column("delegate_email", sa.String(length=255), nullable=True),
            sa.Column("delegate_phone", sa.String(length=50), nullable=True),
            sa.Column("delegate_company", sa.String(length=200), nullable=True),
            sa.Column("booking_source", sa.String(length=20), nullable=False, server_default="admin"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("cancelled", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("cancellation_reason", sa.String(length=500), nullable=True),
            sa.Column("attendance_detail", sa.String(length=20), nullable=True),
            sa.Column("attendance_marked_by", sa.String(length=200), nullable=True),
            sa.Column("attendance_marked_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("licence_number", sa.String(length=30), nullable=True),
            sa.Column("licence_category", sa.String(length=10), nullable=True),
            sa.Column("id_type", sa.String(length=20), nullable=True),
            sa.Column("dvsa_uploaded", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("dvsa_uploaded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("certificate_issued", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("certificate_number", sa.String(length=40), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["session_id"], ["open_course_sessions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_open_course_delegates_session_id", "open_course_delegates", ["session_id"])
        op.create_index("ix_open_course_delegates_cancelled", "open_course_delegates", ["cancelled"])

    if "capacity_alerts" not in existing_tables:
        op.create_table(
            "capacity_alerts",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("session_id", sa.Integer(), nullable=False),
            sa.Column("alert_type", sa.String(length=20), nullable=False),
            sa.Column("threshold_percentage", sa.Integer(), nullable=False),
            sa.Column("triggered_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("acknowledged", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("acknowledged_by", sa.String(length=200), nullable=True),
            sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["session_id"], ["open_course_sessions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_capacity_alerts_session_id", "capacity_alerts", ["session_id"])

    if "certificates" not in existing_tables:
        op.create_table(
            "certificates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("certificate_number", sa.String(length=40), nullable=False),
            sa.Column("course_type_id", sa.Integer(), nullable=False),
            sa.Column("certificate_template_id", sa.Integer(), nullable=True),
            sa.Column("booking_id", sa.Integer(), nullable=True),
            sa.Column("candidate_id", sa.Integer(), nullable=True),
            sa.Column("open_course_session_id", sa.Integer(), nullable=True),
            sa.Column("open_course_delegate_id", sa.Integer(), nullable=True),
            sa.Column("candidate_name", sa.String(length=200), nullable=False),
            sa.Column("candidate_email", sa.String(length=255), nullable=True),
            sa.Column("trainer_id", sa.Integer(), nullable=True),
            sa.Column("trainer_name", sa.String(length=200), nullable=True),
            sa.Column("course_date_start", sa.Date(), nullable=False),
            sa.Column("course_date_end", sa.Date(), nullable=True),
            sa.Column("issue_date", sa.Date(), nullable=False),
            sa.Column("expiry_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="issued"),
            sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("revoked_reason", sa.String(length=500), nullable=True),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("course_specific_data", sa.JSON(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["course_type_id"], ["course_types.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["certificate_template_id"], ["certificate_templates.id"],
                                    ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["candidate_id"], ["booking_candidates.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["open_course_session_id"], ["open_course_sessions.id"],
                                    ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["open_course_delegate_id"], ["open_course_delegates.id"],
                                    ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["trainer_id"], ["trainers.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_certificates_certificate_number", "certificates", ["certificate_number"],
                        unique=True)
        op.create_index("ix_certificates_course_type_id", "certificates", ["course_type_id"])
        op.create_index("ix_certificates_booking_id", "certificates", ["booking_id"])
        op.create_index("ix_certificates_candidate_id", "certificates", ["candidate_id"])
        op.create_index("ix_certificates_open_course_session_id", "certificates",
                        ["open_course_session_id"])
        op.create_index("ix_certificates_open_course_delegate_id", "certificates",
                        ["open_course_delegate_id"])
        op.create_index("ix_certificates_issue_date", "certificates", ["issue_date"])
        op.create_index("ix_certificates_expiry_date", "certificates", ["expiry_date"])
        op.create_index("ix_certificates_status", "certificates", ["status"])

    if "certificate_verification_log" not in existing_tables:
        op.create_table(
            "certificate_verification_log",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("certificate_number", sa.String(length=100), nullable=False),
            sa.Column("certificate_id", sa.Integer(), nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("result", sa.String(length=20), nullable=False),
            sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["certificate_id"], ["certificates.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_certificate_verification_log_certificate_number",
                        "certificate_verification_log", ["certificate_number"])

    if "email_templates" not in existing_tables:
        op.create_table(
            "email_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_key", sa.String(length=100), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("subject_template", sa.String(length=500), nullable=False),
            sa.Column("body_html", sa.Text(), nullable=False),
            sa.Column("body_text", sa.Text(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_core", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_email_templates_template_key", "email_templates", ["template_key"],
                        unique=True)

    if "email_queue" not in existing_tables:
        op.create_table(
            "email_queue",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_email", sa.String(length=255), nullable=False),
            sa.Column("recipient_name", sa.String(length=200), nullable=True),
            sa.Column("subject", sa.String(length=500), nullable=True),
            sa.Column("html_body", sa.Text(), nullable=True),
            sa.Column("text_body", sa.Text(), nullable=True),
            sa.Column("template_key", sa.String(length=100), nullable=True),
            sa.Column("template_data", sa.JSON(), nullable=True),
            sa.Column("attachments", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="5"),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_email_queue_recipient_email", "email_queue", ["recipient_email"])
        op.create_index("ix_email_queue_template_key", "email_queue", ["template_key"])
        op.create_index("ix_email_queue_status", "email_queue", ["status"])


_TABLES_IN_DROP_ORDER = (
    "email_queue",
    "email_templates",
    "certificate_verification_log",
    "certificates",
    "capacity_alerts",
    "open_course_delegates",
    "open_course_sessions",
    "venues",
    "booking_candidates",
    "bookings",
    "certificate_templates",
    "course_types",
    "trainer_unavailability",
    "trainers",
    "client_locations",
    "clients",
)


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in _TABLES_IN_DROP_ORDER:
        if table in existing_tables:
            op.drop_table(table)
