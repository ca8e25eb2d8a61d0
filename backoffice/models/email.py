"""
Training Back-Office
Email domain models.

Models:
    - EmailTemplate: editable subject/body templates with {{placeholder}} fields
    - EmailQueueEntry: an outbound email waiting for (or done with) the queue worker

Queue lifecycle:
    pending → processing → sent
                         ↘ pending (retry with backoff) → … → failed
    pending | failed → cancelled
    failed | cancelled → pending (manual retry)
"""

from datetime import datetime, timezone

from backoffice.models import db
from backoffice.utils.helpers import iso


# ── Constants ────────────────────────────────────────────────────────────────

QUEUE_STATUSES = {"pending", "processing", "sent", "failed", "cancelled"}
RETRYABLE_STATUSES = {"failed", "cancelled"}
CANCELLABLE_STATUSES = {"pending", "failed"}

DEFAULT_PRIORITY = 5
DEFAULT_MAX_ATTEMPTS = 3


class EmailTemplate(db.Model):
    """An editable email template. Core templates are used by the system and cannot be deleted."""

    __tablename__ = "email_templates"

    id = db.Column(db.Integer, primary_key=True)
    template_key = db.Column(db.String(100), nullable=False, unique=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    subject_template = db.Column(db.String(500), nullable=False)
    body_html = db.Column(db.Text, nullable=False)
    body_text = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_core = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "template_key": self.template_key,
            "name": self.name,
            "subject_template": self.subject_template,
            "body_html": self.body_html,
            "body_text": self.body_text,
            "description": self.description,
            "is_core": self.is_core,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<EmailTemplate {self.template_key}>"


class EmailQueueEntry(db.Model):
    """
    An outbound email.

    Either carries a ready subject/html_body, or a template_key plus
    template_data that the worker renders at send time.
    """

    __tablename__ = "email_queue"

    id = db.Column(db.Integer, primary_key=True)
    recipient_email = db.Column(db.String(255), nullable=False, index=True)
    recipient_name = db.Column(db.String(200), nullable=True)
    subject = db.Column(db.String(500), nullable=True)
    html_body = db.Column(db.Text, nullable=True)
    text_body = db.Column(db.Text, nullable=True)
    template_key = db.Column(db.String(100), nullable=True, index=True)
    template_data = db.Column(db.JSON, nullable=True)
    attachments = db.Column(db.JSON, nullable=True, comment="[{url, filename}]")

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    priority = db.Column(db.Integer, nullable=False, default=DEFAULT_PRIORITY,
                         comment="1 = highest")
    attempts = db.Column(db.Integer, nullable=False, default=0)
    max_attempts = db.Column(db.Integer, nullable=False, default=DEFAULT_MAX_ATTEMPTS)
    error_message = db.Column(db.Text, nullable=True)

    scheduled_at = db.Column(db.DateTime(timezone=True), nullable=False,
                             default=lambda: datetime.now(timezone.utc), index=True)
    processing_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_email": self.recipient_email,
            "recipient_name": self.recipient_name,
            "subject": self.subject,
            "html_body": self.html_body,
            "text_body": self.text_body,
            "template_key": self.template_key,
            "template_data": self.template_data or {},
            "attachments": self.attachments or [],
            "status": self.status,
            "priority": self.priority,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "error_message": self.error_message,
            "scheduled_at": iso(self.scheduled_at),
            "processing_started_at": iso(self.processing_started_at),
            "sent_at": iso(self.sent_at),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<EmailQueueEntry {self.id} {self.status} to={self.recipient_email}>"
