"""
Email Template Service.

Templates use ``{{placeholder}}`` fields. Rendering replaces every
placeholder whose key is present in the data (None renders as an empty
string) and leaves unknown placeholders untouched, so a preview makes
missing data obvious.

Core templates are the ones the system itself sends (certificate emails,
trainer booking notifications, ...). They can be edited but not deleted,
and their template_key cannot change.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationError
from backoffice.models import db
from backoffice.models.email import EmailTemplate
from backoffice.utils.helpers import commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")
TEMPLATE_KEY_RE = re.compile(r"^[a-z0-9_]+$")

_EDITABLE_FIELDS = ("name", "subject_template", "body_html", "body_text", "description")


# ═══════════════════════════════════════════════════════════════════════════
#  Core templates (seeded by `flask seed-reference-data`)
# ═══════════════════════════════════════════════════════════════════════════

_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background: #1e293b; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
        <h2 style="margin: 0; font-size: 18px;">{{company_name}}</h2>
    </div>
    <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none;">
        %s
    </div>
</div>
"""

CORE_TEMPLATES: list[dict[str, str]] = [
    {
        "template_key": "send_certificate_candidate",
        "name": "Certificate — candidate copy",
        "subject_template": "Your {{course_name}} certificate ({{certificate_number}})",
        "body_html": _LAYOUT % (
            "<p>Dear {{candidate_name}},</p>"
            "<p>Congratulations on completing <strong>{{course_name}}</strong> on {{course_date}}.</p>"
            "<p>Your certificate number is <strong>{{certificate_number}}</strong>"
            " and it is valid until {{expiry_date}}.</p>"
            "<p>Anyone can verify it at {{verify_url}}.</p>"
        ),
        "description": "Sent when a certificate is emailed to the candidate.",
    },
    {
        "template_key": "insurance_expiry_reminder",
        "name": "Trainer insurance expiry reminder",
        "subject_template": "Your insurance expires on {{expiry_date}}",
        "body_html": _LAYOUT % (
            "<p>Hi {{trainer_name}},</p>"
            "<p>Our records show your insurance expires on <strong>{{expiry_date}}</strong>."
            " Please send us your renewal documents.</p>"
        ),
        "description": "Reminder to a trainer that their insurance is about to expire.",
    },
    {
        "template_key": "trainer_welcome",
        "name": "Trainer welcome",
        "subject_template": "Welcome to {{company_name}}",
        "body_html": _LAYOUT % (
            "<p>Hi {{trainer_name}},</p>"
            "<p>Your trainer account has been created. You can now view your bookings"
            " and manage your availability.</p>"
        ),
        "description": "Sent when a trainer account is created.",
    },
    {
        "template_key": "trainer_new_booking",
        "name": "Trainer — new booking",
        "subject_template": "New booking: {{booking_title}} on {{booking_date}}",
        "body_html": _LAYOUT % (
            "<p>Hi {{trainer_name}},</p>"
            "<p>You have been booked for <strong>{{booking_title}}</strong>.</p>"
            "<p>Date: {{booking_date}} ({{num_days}} day(s)) at {{start_time}}<br>"
            "Client: {{client_name}}<br>Location: {{location}}</p>"
        ),
        "description": "Sent to the trainer when a booking is created.",
    },
    {
        "template_key": "trainer_booking_moved",
        "name": "Trainer — booking moved",
        "subject_template": "Booking moved: {{booking_title}} now on {{booking_date}}",
        "body_html": _LAYOUT % (
            "<p>Hi {{trainer_name}},</p>"
            "<p><strong>{{booking_title}}</strong> has moved from {{previous_date}}"
            " to <strong>{{booking_date}}</strong>.</p>"
            "<p>Client: {{client_name}}<br>Location: {{location}}</p>"
        ),
        "description": "Sent to the trainer when a booking is moved to them or to a new date.",
    },
    {
        "template_key": "trainer_booking_cancelled",
        "name": "Trainer — booking cancelled",
        "subject_template": "Booking cancelled: {{booking_title}} on {{booking_date}}",
        "body_html": _LAYOUT % (
            "<p>Hi {{trainer_name}},</p>"
            "<p><strong>{{booking_title}}</strong> on {{booking_date}} has been cancelled.</p>"
        ),
        "description": "Sent to the trainer when a booking is cancelled.",
    },
    {
        "template_key": "trainer_booking_updated",
        "name": "Trainer — booking updated",
        "subject_template": "Booking updated: {{booking_title}} on {{booking_date}}",
        "body_html": _LAYOUT % (
            "<p>Hi {{trainer_name}},</p>"
            "<p>The details of <strong>{{booking_title}}</strong> have changed:</p>"
            "<p>{{changes_summary}}</p>"
            "<p>Date: {{booking_date}} ({{num_days}} day(s)) at {{start_time}}<br>"
            "Client: {{client_name}}<br>Location: {{location}}</p>"
        ),
        "description": "Sent to the trainer when the date, time, length or place of a booking changes.",
    },
    {
        "template_key": "trainer_provisional_booking",
        "name": "Trainer — provisional booking",
        "subject_template": "Provisionally booked: {{date_range}}",
        "body_html": _LAYOUT % (
            "<p>Hi {{trainer_name}},</p>"
            "<p>You have been provisionally booked for <strong>{{date_range}}</strong>.</p>"
            "<p>{{reason}}</p>"
            "<p>We will confirm the details as soon as the booking is finalised.</p>"
        ),
        "description": "Sent to the trainer when dates are marked provisionally booked.",
    },
    {
        "template_key": "trainer_open_course_assignment",
        "name": "Trainer — open course assignment",
        "subject_template": "Open course: {{event_title}} on {{session_date}}",
        "body_html": _LAYOUT % (
            "<p>Hi {{trainer_name}},</p>"
            "<p>You have been assigned to run <strong>{{event_title}}</strong>.</p>"
            "<p>Date: {{session_date}}, {{start_time}} to {{end_time}}<br>"
            "Venue: {{venue_name}}<br>Delegates booked: {{delegate_count}}</p>"
        ),
        "description": "Sent to the trainer when they are assigned to an open course session.",
    },
]


# ── Rendering ────────────────────────────────────────────────────────────────


def render_text(text: str | None, data: dict[str, Any] | None) -> str:
    """Replace ``{{key}}`` with data[key] for every key present in *data*."""
    if not text:
        return ""
    data = data or {}

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key not in data:
            return match.group(0)
        value = data[key]
        return "" if value is None else str(value)

    return PLACEHOLDER_RE.sub(_sub, text)


def extract_placeholders(*texts: str | None) -> list[str]:
    """Distinct placeholder names across the given texts, in first-seen order."""
    seen: list[str] = []
    for text in texts:
        for key in PLACEHOLDER_RE.findall(text or ""):
            if key not in seen:
                seen.append(key)
    return seen


def render_template(template: EmailTemplate, data: dict[str, Any] | None) -> dict[str, str]:
    return {
        "subject": render_text(template.subject_template, data),
        "html": render_text(template.body_html, data),
        "text": render_text(template.body_text, data) if template.body_text else "",
    }


# ── CRUD ─────────────────────────────────────────────────────────────────────


def template_query():
    return EmailTemplate.query.order_by(EmailTemplate.is_core.desc(), EmailTemplate.name)


def get_template(template_id: int) -> EmailTemplate:
    return get_or_raise(EmailTemplate, template_id)


def find_template(template_key: str) -> EmailTemplate | None:
    return EmailTemplate.query.filter_by(template_key=template_key).first()


def get_template_by_key(template_key: str) -> EmailTemplate:
    template = find_template(template_key)
    if template is None:
        raise NotFoundError(resource="EmailTemplate", resource_id=template_key)
    return template


def create_template(data: dict) -> EmailTemplate:
    """Create a (non-core) template.

    Raises:
        ValidationError: Missing fields or malformed key.
        ConflictError: template_key already in use.
    """
    key = (data.get("template_key") or "").strip()
    missing = [f for f in ("template_key", "name", "subject_template", "body_html")
               if not (data.get(f) or "").strip()]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={f: "required" for f in missing},
        )
    if not TEMPLATE_KEY_RE.match(key):
        raise ValidationError(
            "template_key may only contain lowercase letters, digits and underscores",
            details={"template_key": "invalid"},
        )
    if find_template(key) is not None:
        raise ConflictError("EmailTemplate", "template_key", key)

    template = EmailTemplate(template_key=key, is_core=False)
    for field in _EDITABLE_FIELDS:
        if field in data:
            setattr(template, field, data[field])
    db.session.add(template)
    commit_or_raise("EmailTemplate", "template_key")
    logger.info("Email template created key=%s", key)
    return template


def update_template(template_id: int, data: dict) -> EmailTemplate:
    template = get_template(template_id)
    new_key = data.get("template_key")
    if new_key is not None and new_key != template.template_key:
        if template.is_core:
            raise ValidationError("The key of a core template cannot be changed",
                                  details={"template_key": "immutable"})
        if not TEMPLATE_KEY_RE.match(new_key):
            raise ValidationError(
                "template_key may only contain lowercase letters, digits and underscores",
                details={"template_key": "invalid"},
            )
        if find_template(new_key) is not None:
            raise ConflictError("EmailTemplate", "template_key", new_key)
        template.template_key = new_key

    for field in ("name", "subject_template", "body_html"):
        if field in data and not (data.get(field) or "").strip():
            raise ValidationError(f"{field} cannot be blank", details={field: "required"})
    for field in _EDITABLE_FIELDS:
        if field in data:
            setattr(template, field, data[field])
    commit_or_raise("EmailTemplate", "template_key")
    return template


def delete_template(template_id: int) -> None:
    template = get_template(template_id)
    if template.is_core:
        raise ValidationError("Core templates cannot be deleted")
    db.session.delete(template)
    commit_or_raise("EmailTemplate")
    logger.info("Email template deleted key=%s", template.template_key)


def preview_template(template_id: int, data: dict | None = None) -> dict:
    """Render a template with sample data and report any placeholders left unfilled."""
    template = get_template(template_id)
    rendered = render_template(template, data)
    placeholders = extract_placeholders(
        template.subject_template, template.body_html, template.body_text,
    )
    rendered["placeholders"] = placeholders
    rendered["missing"] = [p for p in placeholders if p not in (data or {})]
    return rendered


def seed_core_templates() -> int:
    """Insert any core template that does not exist yet. Returns the number added."""
    added = 0
    for row in CORE_TEMPLATES:
        if find_template(row["template_key"]) is not None:
            continue
        db.session.add(EmailTemplate(is_core=True, **row))
        added += 1
    commit_or_raise("EmailTemplate", "template_key")
    return added
