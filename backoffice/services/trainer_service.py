"""
Trainer Service.

Functions:
    - trainer_query:      ordered list query (suspended hidden by default)
    - get_trainer:        single lookup
    - get_bookable_trainer: lookup that rejects suspended trainers
    - create_trainer / update_trainer
    - suspend_trainer / reinstate_trainer  (trainers are never deleted)
    - reorder_trainers:   assign display_order from an ordered id list
    - notify_trainer:     queue a booking notification unless the trainer opted out
    - send_insurance_reminders: queue reminders for insurance expiring soon
"""

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

from backoffice.core.exceptions import ConflictError, ValidationError
from backoffice.models import db
from backoffice.models.email import DEFAULT_PRIORITY
from backoffice.models.trainer import Trainer
from backoffice.services import email_queue_service
from backoffice.utils.helpers import (
    clean_email, commit_or_raise, get_or_raise, parse_bool, parse_date_input,
)

logger = logging.getLogger(__name__)

_FIELDS = (
    "name", "email", "telephone", "address1", "address2", "town", "postcode",
    "day_rate", "active", "display_order", "user_id", "receive_booking_notifications",
    "insurance_expiry",
)


def trainer_query(include_suspended: bool = False, active: bool | None = None):
    q = Trainer.query
    if not include_suspended:
        q = q.filter(Trainer.suspended.is_(False))
    if active is not None:
        q = q.filter(Trainer.active.is_(active))
    return q.order_by(Trainer.display_order, Trainer.name)


def get_trainer(trainer_id: int) -> Trainer:
    return get_or_raise(Trainer, trainer_id)


def get_bookable_trainer(trainer_id: int) -> Trainer:
    """Fetch a trainer that may take bookings / availability changes."""
    trainer = get_trainer(trainer_id)
    if trainer.suspended:
        raise ValidationError(
            f"Trainer {trainer.name} is suspended.", details={"trainer_id": "suspended"},
        )
    return trainer


def _parse_day_rate(value):
    if value in (None, ""):
        return None
    try:
        rate = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError("day_rate must be a number.", details={"day_rate": "invalid"}) from exc
    if rate < 0:
        raise ValidationError("day_rate cannot be negative.", details={"day_rate": "invalid"})
    return rate


def _check_user_unique(user_id, exclude_id=None):
    if not user_id:
        return
    q = Trainer.query.filter(Trainer.user_id == user_id)
    if exclude_id is not None:
        q = q.filter(Trainer.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(
            "Trainer", "user_id", user_id,
            message="This user is already linked to another trainer",
        )


def _apply(trainer: Trainer, data: dict) -> None:
    for field in _FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "email":
            value = clean_email(value)
        elif field == "day_rate":
            value = _parse_day_rate(value)
        elif field == "display_order":
            value = int(value or 0)
        elif field in ("active", "receive_booking_notifications"):
            value = parse_bool(value, field, default=True)
        elif field == "insurance_expiry":
            value = parse_date_input(value)
            if value != trainer.insurance_expiry:
                trainer.insurance_reminder_sent_at = None
        elif field == "user_id":
            value = str(value).strip() if value not in (None, "") else None
        setattr(trainer, field, value)


def create_trainer(data: dict) -> Trainer:
    """Create a trainer. New trainers are placed after the current last one."""
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Trainer name is required.", details={"name": "required"})
    _check_user_unique(data.get("user_id"))

    trainer = Trainer()
    if "display_order" not in data:
        last = db.session.query(db.func.max(Trainer.display_order)).scalar()
        trainer.display_order = (last + 1) if last is not None else 0
    _apply(trainer, data)
    trainer.name = name
    db.session.add(trainer)
    commit_or_raise("Trainer", "user_id", message="This user is already linked to another trainer")
    logger.info("Trainer created id=%s", trainer.id, extra={"trainer_id": trainer.id})
    email_queue_service.queue_notification(
        "trainer_welcome", trainer.email, trainer.name, {"trainer_name": trainer.name},
    )
    return trainer


def update_trainer(trainer_id: int, data: dict) -> Trainer:
    trainer = get_trainer(trainer_id)
    if "name" in data and not (data.get("name") or "").strip():
        raise ValidationError("Trainer name cannot be blank.", details={"name": "required"})
    if "user_id" in data:
        _check_user_unique(data.get("user_id"), exclude_id=trainer.id)
    _apply(trainer, data)
    commit_or_raise("Trainer", "user_id", message="This user is already linked to another trainer")
    return trainer


def suspend_trainer(trainer_id: int) -> Trainer:
    trainer = get_trainer(trainer_id)
    trainer.suspended = True
    commit_or_raise("Trainer")
    logger.info("Trainer suspended id=%s", trainer_id, extra={"trainer_id": trainer_id})
    return trainer


def reinstate_trainer(trainer_id: int) -> Trainer:
    trainer = get_trainer(trainer_id)
    trainer.suspended = False
    commit_or_raise("Trainer")
    logger.info("Trainer reinstated id=%s", trainer_id, extra={"trainer_id": trainer_id})
    return trainer


def reorder_trainers(trainer_ids: list[int]) -> list[Trainer]:
    """Set display_order to each trainer's position in *trainer_ids*."""
    if len(set(trainer_ids)) != len(trainer_ids):
        raise ValidationError("trainer_ids contains duplicates.")
    trainers = [get_trainer(tid) for tid in trainer_ids]
    for position, trainer in enumerate(trainers):
        trainer.display_order = position
    commit_or_raise("Trainer")
    return trainers


# ── Notifications ────────────────────────────────────────────────────────────


def notify_trainer(
    trainer: Trainer | None,
    template_key: str,
    template_data: dict,
    priority: int = DEFAULT_PRIORITY,
):
    """Queue a booking notification for *trainer*.

    Skipped (None) when there is no trainer or the trainer has switched
    receive_booking_notifications off; a missing address or template is
    handled by queue_notification.
    """
    if trainer is None:
        return None
    if not trainer.receive_booking_notifications:
        logger.info("Notification %s not queued: trainer opted out", template_key,
                    extra={"trainer_id": trainer.id})
        return None
    return email_queue_service.queue_notification(
        template_key, trainer.email, trainer.name,
        {"trainer_name": trainer.name, **template_data}, priority,
    )


def send_insurance_reminders(within_days: int = 30, today: date | None = None) -> int:
    """Queue insurance_expiry_reminder for trainers whose insurance runs out soon.

    Covers active, non-suspended trainers with an email whose insurance
    expires on or before today + *within_days* (already expired included).
    Each expiry date is reminded once; changing it re-arms the reminder.
    Returns the number of emails queued.
    """
    if within_days < 0:
        raise ValidationError("within_days cannot be negative.", details={"within_days": "invalid"})
    today = today or date.today()
    due = (
        Trainer.query
        .filter(
            Trainer.suspended.is_(False),
            Trainer.active.is_(True),
            Trainer.email.isnot(None),
            Trainer.insurance_expiry.isnot(None),
            Trainer.insurance_expiry <= today + timedelta(days=within_days),
            Trainer.insurance_reminder_sent_at.is_(None),
        )
        .order_by(Trainer.insurance_expiry, Trainer.id)
        .all()
    )
    queued = 0
    for trainer in due:
        entry = email_queue_service.queue_notification(
            "insurance_expiry_reminder", trainer.email, trainer.name,
            {"trainer_name": trainer.name,
             "expiry_date": trainer.insurance_expiry.strftime("%d/%m/%Y")},
            priority=3,
        )
        if entry is None:
            continue
        trainer.insurance_reminder_sent_at = datetime.now(timezone.utc)
        queued += 1
    commit_or_raise("Trainer")
    logger.info("Insurance reminders queued: %s of %s due", queued, len(due))
    return queued
