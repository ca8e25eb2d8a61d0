"""
Email Queue Service.

Outbound email is never sent inside a request. Callers queue an entry and
the worker (`flask process-email-queue`, run from cron) sends due entries
in priority order.

Worker rules:
  - Due = status pending and scheduled_at <= now; ordered by priority
    (1 first) then scheduled_at.
  - Each entry is claimed (pending -> processing in one conditional UPDATE,
    so overlapping runs never send it twice), rendered from its template (if it has
    a template_key), sent, then marked sent.
  - On failure attempts += 1; at max_attempts the entry is failed, otherwise
    it goes back to pending with backoff 2^attempts × 5 minutes.
  - When MAIL_SERVER is not configured, delivery is logged only (dev/test).

Configuration (env vars):
    MAIL_SERVER, MAIL_PORT, MAIL_USE_TLS, MAIL_USERNAME, MAIL_PASSWORD,
    MAIL_DEFAULT_SENDER, EMAIL_QUEUE_BATCH_SIZE, EMAIL_ATTACHMENT_TIMEOUT
"""

from __future__ import annotations

import html
import logging
import re
import smtplib
from datetime import datetime, timedelta, timezone
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

import requests
from flask import current_app
from sqlalchemy import func, or_

from backoffice.core.exceptions import ConflictError, ValidationError
from backoffice.models import db
from backoffice.models.email import (
    CANCELLABLE_STATUSES, DEFAULT_PRIORITY, QUEUE_STATUSES, RETRYABLE_STATUSES,
    EmailQueueEntry,
)
from backoffice.services.email_template_service import find_template, render_template
from backoffice.utils.helpers import clean_email, commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

BACKOFF_BASE_MINUTES = 5

_TAG_RE = re.compile(r"<[^>]+>")
_BLOCK_RE = re.compile(r"</(p|div|h[1-6]|li|tr)>|<br\s*/?>", re.IGNORECASE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def html_to_text(body: str | None) -> str:
    """Plain-text fallback for an HTML body."""
    if not body:
        return ""
    text = _BLOCK_RE.sub("\n", body)
    text = html.unescape(_TAG_RE.sub("", text))
    lines = [line.strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def backoff_delay(attempts: int) -> timedelta:
    return timedelta(minutes=(2 ** attempts) * BACKOFF_BASE_MINUTES)


# ═══════════════════════════════════════════════════════════════════════════
#  Delivery
# ═══════════════════════════════════════════════════════════════════════════


class EmailSender:
    """
    SMTP delivery for queue entries.

    In development/test mode (no MAIL_SERVER configured), emails are
    logged but not actually sent.
    """

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @classmethod
    def deliver(
        cls,
        *,
        to_email: str,
        to_name: str | None,
        subject: str,
        html_body: str,
        text_body: str,
        attachments: list[dict] | None = None,
    ) -> None:
        """Send one message. Raises when SMTP fails; unreachable attachments are left out."""
        if not cls.is_configured():
            logger.info(
                "Email (dev mode): to=%s subject='%s' attachments=%d",
                to_email, subject, len(attachments or []),
            )
            return

        files = []
        for attachment in attachments or []:
            try:
                files.append(cls._fetch_attachment(attachment))
            except (requests.RequestException, ValueError) as exc:
                # The message still goes out; only the unreachable file is dropped
                logger.warning("Attachment %s skipped for %s: %s",
                               attachment.get("filename") or attachment.get("url"), to_email, exc)
        cls._send_smtp(
            to_email=to_email, to_name=to_name, subject=subject,
            html_body=html_body, text_body=text_body, files=files,
        )

    @staticmethod
    def _fetch_attachment(attachment: dict) -> tuple[str, bytes]:
        """Download an attachment {url, filename}."""
        url = attachment.get("url")
        if not url:
            raise ValueError("Attachment is missing its url")
        filename = attachment.get("filename") or url.rsplit("/", 1)[-1] or "attachment"
        timeout = current_app.config.get("EMAIL_ATTACHMENT_TIMEOUT", 20)
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
        return filename, resp.content

    @staticmethod
    def _send_smtp(*, to_email: str, to_name: str | None, subject: str,
                   html_body: str, text_body: str, files: list[tuple[str, bytes]]) -> None:
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEMultipart("mixed")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email

        body = MIMEMultipart("alternative")
        body.attach(MIMEText(text_body, "plain"))
        body.attach(MIMEText(html_body, "html"))
        msg.attach(body)

        for filename, content in files:
            part = MIMEApplication(content, Name=filename)
            part["Content-Disposition"] = f'attachment; filename="{filename}"'
            msg.attach(part)

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


# ═══════════════════════════════════════════════════════════════════════════
#  Queueing
# ═══════════════════════════════════════════════════════════════════════════


def _parse_priority(value) -> int:
    if value in (None, ""):
        return DEFAULT_PRIORITY
    priority = int(value)
    if not 1 <= priority <= 10:
        raise ValidationError("priority must be between 1 and 10", details={"priority": "invalid"})
    return priority


def _validate_attachments(attachments) -> list[dict]:
    if not attachments:
        return []
    if not isinstance(attachments, list):
        raise ValidationError("attachments must be a list", details={"attachments": "invalid"})
    cleaned = []
    for item in attachments:
        if not isinstance(item, dict) or not item.get("url"):
            raise ValidationError("Each attachment needs a url", details={"attachments": "invalid"})
        cleaned.append({"url": item["url"], "filename": item.get("filename")})
    return cleaned


def queue_email(data: dict) -> EmailQueueEntry:
    """Queue an email.

    Either ``subject`` + ``html_body`` or an existing ``template_key`` must be given.

    Raises:
        ValidationError: No recipient, no content, or unknown template.
    """
    recipient = clean_email(data.get("recipient_email"), field="recipient_email")
    if not recipient:
        raise ValidationError("recipient_email is required", details={"recipient_email": "required"})

    template_key = (data.get("template_key") or "").strip() or None
    has_body = bool((data.get("subject") or "").strip() and (data.get("html_body") or "").strip())
    if not template_key and not has_body:
        raise ValidationError("Either subject and html_body, or template_key, is required")
    if template_key and find_template(template_key) is None:
        raise ValidationError(f"Unknown email template '{template_key}'",
                              details={"template_key": "unknown"})

    scheduled_at = data.get("scheduled_at")
    if isinstance(scheduled_at, str):
        try:
            scheduled_at = datetime.fromisoformat(scheduled_at)
        except ValueError as exc:
            raise ValueError("scheduled_at must be an ISO datetime") from exc

    entry = EmailQueueEntry(
        recipient_email=recipient,
        recipient_name=data.get("recipient_name"),
        subject=data.get("subject"),
        html_body=data.get("html_body"),
        text_body=data.get("text_body"),
        template_key=template_key,
        template_data=data.get("template_data") or {},
        attachments=_validate_attachments(data.get("attachments")),
        priority=_parse_priority(data.get("priority")),
        status="pending",
        scheduled_at=scheduled_at or _utcnow(),
    )
    db.session.add(entry)
    commit_or_raise("EmailQueueEntry")
    logger.info("Email queued id=%s to=%s template=%s", entry.id, recipient, template_key,
                extra={"email_queue_id": entry.id})
    return entry


def queue_notification(
    template_key: str,
    recipient_email: str | None,
    recipient_name: str | None,
    template_data: dict[str, Any],
    priority: int = DEFAULT_PRIORITY,
) -> EmailQueueEntry | None:
    """Queue a system notification if there is a recipient and the template exists.

    Notifications are best-effort: a missing address or template is logged
    and skipped rather than failing the caller's operation.
    """
    if not recipient_email:
        logger.debug("Notification %s skipped: no recipient address", template_key)
        return None
    if find_template(template_key) is None:
        logger.warning("Notification %s skipped: template not found", template_key)
        return None
    return queue_email({
        "recipient_email": recipient_email,
        "recipient_name": recipient_name,
        "template_key": template_key,
        "template_data": template_data,
        "priority": priority,
    })


# ═══════════════════════════════════════════════════════════════════════════
#  Admin: list, stats, retry, cancel
# ═══════════════════════════════════════════════════════════════════════════


def queue_query(
    status: str | None = None,
    template_key: str | None = None,
    search: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
):
    q = EmailQueueEntry.query
    if status:
        if status not in QUEUE_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(sorted(QUEUE_STATUSES))}")
        q = q.filter(EmailQueueEntry.status == status)
    if template_key:
        q = q.filter(EmailQueueEntry.template_key == template_key)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            EmailQueueEntry.recipient_email.ilike(like),
            EmailQueueEntry.recipient_name.ilike(like),
            EmailQueueEntry.subject.ilike(like),
        ))
    if date_from:
        q = q.filter(EmailQueueEntry.created_at >= date_from)
    if date_to:
        q = q.filter(EmailQueueEntry.created_at < date_to)
    return q.order_by(EmailQueueEntry.created_at.desc(), EmailQueueEntry.id.desc())


def get_entry(entry_id: int) -> EmailQueueEntry:
    return get_or_raise(EmailQueueEntry, entry_id)


def queue_stats() -> dict:
    rows = (
        db.session.query(EmailQueueEntry.status, func.count(EmailQueueEntry.id))
        .group_by(EmailQueueEntry.status)
        .all()
    )
    counts = {status: 0 for status in sorted(QUEUE_STATUSES)}
    counts.update({status: count for status, count in rows})
    last_sent = db.session.query(func.max(EmailQueueEntry.sent_at)).scalar()
    return {
        "by_status": counts,
        "total": sum(counts.values()),
        "last_sent_at": last_sent.isoformat() if last_sent else None,
    }


def distinct_template_keys() -> list[str]:
    rows = (
        db.session.query(EmailQueueEntry.template_key)
        .filter(EmailQueueEntry.template_key.isnot(None))
        .distinct()
        .order_by(EmailQueueEntry.template_key)
        .all()
    )
    return [r[0] for r in rows]


def _reset_for_retry(entry: EmailQueueEntry) -> None:
    entry.status = "pending"
    entry.attempts = 0
    entry.error_message = None
    entry.processing_started_at = None
    entry.scheduled_at = _utcnow()


def retry_entry(entry_id: int) -> EmailQueueEntry:
    entry = get_entry(entry_id)
    if entry.status not in RETRYABLE_STATUSES:
        raise ConflictError("EmailQueueEntry", "status", entry.status,
                            message=f"Only failed or cancelled emails can be retried (status is {entry.status})")
    _reset_for_retry(entry)
    commit_or_raise("EmailQueueEntry")
    logger.info("Email %s re-queued", entry_id, extra={"email_queue_id": entry_id})
    return entry


def cancel_entry(entry_id: int) -> EmailQueueEntry:
    entry = get_entry(entry_id)
    if entry.status not in CANCELLABLE_STATUSES:
        raise ConflictError("EmailQueueEntry", "status", entry.status,
                            message=f"Only pending or failed emails can be cancelled (status is {entry.status})")
    entry.status = "cancelled"
    commit_or_raise("EmailQueueEntry")
    logger.info("Email %s cancelled", entry_id, extra={"email_queue_id": entry_id})
    return entry


def bulk_retry(entry_ids: list[int]) -> int:
    """Retry every listed entry that is retryable; returns how many changed."""
    entries = EmailQueueEntry.query.filter(
        EmailQueueEntry.id.in_(entry_ids),
        EmailQueueEntry.status.in_(RETRYABLE_STATUSES),
    ).all()
    for entry in entries:
        _reset_for_retry(entry)
    commit_or_raise("EmailQueueEntry")
    return len(entries)


def bulk_cancel(entry_ids: list[int]) -> int:
    entries = EmailQueueEntry.query.filter(
        EmailQueueEntry.id.in_(entry_ids),
        EmailQueueEntry.status.in_(CANCELLABLE_STATUSES),
    ).all()
    for entry in entries:
        entry.status = "cancelled"
    commit_or_raise("EmailQueueEntry")
    return len(entries)


# ═══════════════════════════════════════════════════════════════════════════
#  Worker
# ═══════════════════════════════════════════════════════════════════════════


def _render_entry(entry: EmailQueueEntry) -> tuple[str, str, str]:
    if entry.template_key:
        template = find_template(entry.template_key)
        if template is None:
            raise LookupError(f"Email template '{entry.template_key}' no longer exists")
        # company_name in the stored data wins over the configured one
        data = {"company_name": current_app.config.get("COMPANY_NAME"), **(entry.template_data or {})}
        rendered = render_template(template, data)
        subject, html_body, text_body = rendered["subject"], rendered["html"], rendered["text"]
    else:
        subject, html_body, text_body = entry.subject or "", entry.html_body or "", entry.text_body or ""
    return subject, html_body, text_body or html_to_text(html_body)


def _claim(entry: EmailQueueEntry) -> bool:
    """Move a pending entry to processing. False if another worker got there first."""
    claimed = (
        EmailQueueEntry.query
        .filter(EmailQueueEntry.id == entry.id, EmailQueueEntry.status == "pending")
        .update({"status": "processing", "processing_started_at": _utcnow()},
                synchronize_session=False)
    )
    db.session.commit()
    if not claimed:
        logger.info("Email %s already claimed by another worker; skipped", entry.id,
                    extra={"email_queue_id": entry.id})
        return False
    db.session.refresh(entry)
    return True


def process_entry(entry: EmailQueueEntry) -> bool | None:
    """Claim and send one entry.

    Returns True when sent, False when the attempt failed and None when
    the entry was no longer pending.
    """
    if not _claim(entry):
        return None

    try:
        subject, html_body, text_body = _render_entry(entry)
        EmailSender.deliver(
            to_email=entry.recipient_email,
            to_name=entry.recipient_name,
            subject=subject,
            html_body=html_body,
            text_body=text_body,
            attachments=entry.attachments,
        )
    except Exception as exc:
        entry.attempts = (entry.attempts or 0) + 1
        entry.error_message = str(exc)[:1000]
        if entry.attempts >= entry.max_attempts:
            entry.status = "failed"
            logger.error("Email %s failed permanently after %d attempts: %s",
                         entry.id, entry.attempts, exc, extra={"email_queue_id": entry.id})
        else:
            entry.status = "pending"
            entry.scheduled_at = _utcnow() + backoff_delay(entry.attempts)
            logger.warning("Email %s attempt %d failed, retrying at %s: %s",
                           entry.id, entry.attempts, entry.scheduled_at, exc,
                           extra={"email_queue_id": entry.id})
        commit_or_raise("EmailQueueEntry")
        return False

    entry.subject = subject
    entry.html_body = html_body
    entry.text_body = text_body
    entry.status = "sent"
    entry.sent_at = _utcnow()
    entry.error_message = None
    commit_or_raise("EmailQueueEntry")
    logger.info("Email %s sent to=%s", entry.id, entry.recipient_email,
                extra={"email_queue_id": entry.id})
    return True


def process_queue(batch_size: int | None = None) -> dict:
    """Send up to *batch_size* due emails. Returns counts of sent/failed."""
    batch_size = batch_size or current_app.config.get("EMAIL_QUEUE_BATCH_SIZE", 10)
    due = (
        EmailQueueEntry.query
        .filter(
            EmailQueueEntry.status == "pending",
            EmailQueueEntry.scheduled_at <= _utcnow(),
        )
        .order_by(EmailQueueEntry.priority, EmailQueueEntry.scheduled_at, EmailQueueEntry.id)
        .limit(batch_size)
        .all()
    )
    result = {"processed": len(due), "sent": 0, "failed": 0, "skipped": 0}
    for entry in due:
        outcome = process_entry(entry)
        if outcome is None:
            result["skipped"] += 1
        elif outcome:
            result["sent"] += 1
        else:
            result["failed"] += 1
    if due:
        logger.info("Email queue batch: %s", result)
    return result
