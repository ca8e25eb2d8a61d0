"""
Trainer Availability Service.

One TrainerUnavailability row per trainer per date, status
``unavailable`` or ``provisionally_booked``.

Conflict gate:
    Every write that marks a date (mark, mark range, toggle-on, set status)
    first reads the trainer's non-cancelled bookings overlapping the dates.
    If any exist and the caller has not passed ``confirm=True``, nothing is
    written and AvailabilityConflictError carries the bookings back to the
    caller, who resubmits with confirmation. There is no locking and no
    retry; the (trainer_id, unavailable_date) unique constraint is the only
    guard against concurrent duplicates.

Functions:
    - list_for_trainer / list_for_all_trainers
    - is_trainer_available
    - get_booking_conflicts
    - mark_date / mark_date_range / toggle_date / set_date_status
    - update_record / remove_record / remove_date_range
    - unavailable_dates_for_booking  (used by the booking service for warnings)

Marking dates provisionally_booked (newly, or switching from unavailable)
queues trainer_provisional_booking to the trainer.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from backoffice.core.exceptions import (
    AvailabilityConflictError, ConflictError, NotFoundError, ValidationError,
)
from backoffice.models import db
from backoffice.models.booking import MAX_BOOKING_DAYS, Booking
from backoffice.models.trainer import UNAVAILABILITY_STATUSES, Trainer, TrainerUnavailability
from backoffice.services.trainer_service import get_bookable_trainer, get_trainer, notify_trainer
from backoffice.utils.helpers import commit_or_raise, date_range

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 366

DUPLICATE_DATE_MSG = "This date is already marked"
DUPLICATE_RANGE_MSG = "One or more dates in this range are already marked"


def _validate_status(status: str | None) -> str:
    status = status or "unavailable"
    if status not in UNAVAILABILITY_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(UNAVAILABILITY_STATUSES))}",
            details={"status": "invalid"},
        )
    return status


def _validate_range(start: date, end: date) -> None:
    """Malformed ranges are input errors (400), not business-rule failures."""
    if start > end:
        raise ValueError("Start date must be before end date")
    if (end - start).days + 1 > MAX_RANGE_DAYS:
        raise ValueError(f"Date range cannot exceed {MAX_RANGE_DAYS} days")


def _get_record(trainer_id: int, day: date) -> TrainerUnavailability | None:
    return TrainerUnavailability.query.filter_by(
        trainer_id=trainer_id, unavailable_date=day,
    ).first()


# ── Reads ────────────────────────────────────────────────────────────────────


def list_for_trainer(trainer_id: int, start: date, end: date) -> list[TrainerUnavailability]:
    get_trainer(trainer_id)
    _validate_range(start, end)
    return (
        TrainerUnavailability.query
        .filter(
            TrainerUnavailability.trainer_id == trainer_id,
            TrainerUnavailability.unavailable_date >= start,
            TrainerUnavailability.unavailable_date <= end,
        )
        .order_by(TrainerUnavailability.unavailable_date)
        .all()
    )


def list_for_all_trainers(
    start: date, end: date, include_suspended: bool = False,
) -> list[TrainerUnavailability]:
    """Unavailability of every trainer for the scheduling grid; suspended ones only on request."""
    _validate_range(start, end)
    q = (
        TrainerUnavailability.query
        .join(Trainer, Trainer.id == TrainerUnavailability.trainer_id)
        .filter(
            TrainerUnavailability.unavailable_date >= start,
            TrainerUnavailability.unavailable_date <= end,
        )
    )
    if not include_suspended:
        q = q.filter(Trainer.suspended.is_(False))
    return (
        q.order_by(Trainer.display_order, Trainer.name, TrainerUnavailability.unavailable_date)
        .all()
    )


def is_trainer_available(trainer_id: int, day: date) -> bool:
    get_trainer(trainer_id)
    return _get_record(trainer_id, day) is None


def get_booking_conflicts(
    trainer_id: int, start: date, end: date, exclude_booking_id: int | None = None,
) -> list[Booking]:
    """Non-cancelled bookings of the trainer whose day span overlaps [start, end]."""
    # A booking starting up to MAX_BOOKING_DAYS-1 days before `start` may still run into it
    earliest_start = start - timedelta(days=MAX_BOOKING_DAYS - 1)
    q = Booking.query.filter(
        Booking.trainer_id == trainer_id,
        Booking.status != "cancelled",
        Booking.booking_date >= earliest_start,
        Booking.booking_date <= end,
    )
    if exclude_booking_id is not None:
        q = q.filter(Booking.id != exclude_booking_id)
    candidates = q.order_by(Booking.booking_date, Booking.start_time).all()
    return [b for b in candidates if b.end_date >= start]


def unavailable_dates_for_booking(trainer_id: int, start: date, end: date) -> list[dict]:
    """Availability warnings for a booking span: marked dates inside it."""
    rows = (
        TrainerUnavailability.query
        .filter(
            TrainerUnavailability.trainer_id == trainer_id,
            TrainerUnavailability.unavailable_date >= start,
            TrainerUnavailability.unavailable_date <= end,
        )
        .order_by(TrainerUnavailability.unavailable_date)
        .all()
    )
    return [
        {"date": r.unavailable_date.isoformat(), "status": r.status, "reason": r.reason}
        for r in rows
    ]


# ── Conflict gate ────────────────────────────────────────────────────────────


def _gate(trainer_id: int, start: date, end: date, confirm: bool) -> list[Booking]:
    """Raise AvailabilityConflictError unless there are no conflicts or the caller confirmed."""
    conflicts = get_booking_conflicts(trainer_id, start, end)
    if conflicts and not confirm:
        logger.info(
            "Availability change blocked pending confirmation: trainer=%s %s..%s conflicts=%d",
            trainer_id, start, end, len(conflicts), extra={"trainer_id": trainer_id},
        )
        raise AvailabilityConflictError([b.to_dict() for b in conflicts])
    if conflicts:
        logger.warning(
            "Trainer %s marked unavailable over %d existing booking(s) (confirmed)",
            trainer_id, len(conflicts), extra={"trainer_id": trainer_id},
        )
    return conflicts


# ── Writes ───────────────────────────────────────────────────────────────────


def _notify_provisional(trainer: Trainer, start: date, end: date, reason: str | None) -> None:
    date_range_text = start.strftime("%d/%m/%Y")
    if end != start:
        date_range_text += f" to {end.strftime('%d/%m/%Y')}"
    notify_trainer(trainer, "trainer_provisional_booking",
                   {"date_range": date_range_text, "reason": reason or ""}, priority=4)



def mark_date(
    trainer_id: int,
    day: date,
    status: str | None = None,
    reason: str | None = None,
    confirm: bool = False,
) -> TrainerUnavailability:
    """Mark a single date.

    Raises:
        AvailabilityConflictError: Bookings exist on that date and confirm is False.
        ConflictError: The date is already marked.
    """
    trainer = get_bookable_trainer(trainer_id)
    status = _validate_status(status)
    if _get_record(trainer_id, day) is not None:
        raise ConflictError("TrainerUnavailability", "unavailable_date", day.isoformat(),
                            message=DUPLICATE_DATE_MSG)
    _gate(trainer_id, day, day, confirm)

    record = TrainerUnavailability(
        trainer_id=trainer_id, unavailable_date=day, status=status, reason=reason,
    )
    db.session.add(record)
    commit_or_raise("TrainerUnavailability", "unavailable_date", message=DUPLICATE_DATE_MSG)
    logger.info("Trainer %s marked %s on %s", trainer_id, status, day,
                extra={"trainer_id": trainer_id})
    if status == "provisionally_booked":
        _notify_provisional(trainer, day, day, reason)
    return record


def mark_date_range(
    trainer_id: int,
    start: date,
    end: date,
    status: str | None = None,
    reason: str | None = None,
    confirm: bool = False,
) -> list[TrainerUnavailability]:
    """Mark every date in [start, end]. All-or-nothing.

    Raises:
        ValueError: start after end, or range too long.
        AvailabilityConflictError: Bookings overlap the range and confirm is False.
        ConflictError: Any date in the range is already marked.
    """
    trainer = get_bookable_trainer(trainer_id)
    status = _validate_status(status)
    _validate_range(start, end)

    existing = TrainerUnavailability.query.filter(
        TrainerUnavailability.trainer_id == trainer_id,
        TrainerUnavailability.unavailable_date >= start,
        TrainerUnavailability.unavailable_date <= end,
    ).count()
    if existing:
        raise ConflictError("TrainerUnavailability", "unavailable_date",
                            f"{start.isoformat()}..{end.isoformat()}",
                            message=DUPLICATE_RANGE_MSG)
    _gate(trainer_id, start, end, confirm)

    records = [
        TrainerUnavailability(trainer_id=trainer_id, unavailable_date=day, status=status, reason=reason)
        for day in date_range(start, end)
    ]
    db.session.add_all(records)
    commit_or_raise("TrainerUnavailability", "unavailable_date", message=DUPLICATE_RANGE_MSG)
    logger.info("Trainer %s marked %s for %d day(s) %s..%s", trainer_id, status,
                len(records), start, end, extra={"trainer_id": trainer_id})
    if status == "provisionally_booked":
        _notify_provisional(trainer, start, end, reason)
    return records


def toggle_date(
    trainer_id: int,
    day: date,
    status: str | None = None,
    reason: str | None = None,
    confirm: bool = False,
) -> tuple[str, TrainerUnavailability | None]:
    """Calendar click behaviour.

    - no record              → create (gated)       → ("marked", record)
    - record, same status    → delete               → ("removed", None)
    - record, other status   → switch status        → ("marked", record)
    """
    trainer = get_bookable_trainer(trainer_id)
    status = _validate_status(status)
    record = _get_record(trainer_id, day)

    if record is None:
        return "marked", mark_date(trainer_id, day, status=status, reason=reason, confirm=confirm)

    if record.status == status:
        db.session.delete(record)
        commit_or_raise("TrainerUnavailability")
        logger.info("Trainer %s unmarked %s", trainer_id, day, extra={"trainer_id": trainer_id})
        return "removed", None

    record.status = status
    if reason is not None:
        record.reason = reason
    commit_or_raise("TrainerUnavailability")
    if status == "provisionally_booked":
        _notify_provisional(trainer, day, day, record.reason)
    return "marked", record


def set_date_status(
    trainer_id: int,
    day: date,
    status: str,
    reason: str | None = None,
    confirm: bool = False,
) -> TrainerUnavailability:
    """Upsert the record for a date to the given status."""
    trainer = get_bookable_trainer(trainer_id)
    status = _validate_status(status)
    record = _get_record(trainer_id, day)
    if record is None:
        return mark_date(trainer_id, day, status=status, reason=reason, confirm=confirm)
    newly_provisional = status == "provisionally_booked" and record.status != status
    record.status = status
    if reason is not None:
        record.reason = reason
    commit_or_raise("TrainerUnavailability")
    if newly_provisional:
        _notify_provisional(trainer, day, day, record.reason)
    return record


def get_record(record_id: int) -> TrainerUnavailability:
    record = db.session.get(TrainerUnavailability, record_id)
    if record is None:
        raise NotFoundError(resource="TrainerUnavailability", resource_id=record_id)
    return record


def update_record(record_id: int, data: dict) -> TrainerUnavailability:
    record = get_record(record_id)
    newly_provisional = False
    if "status" in data:
        status = _validate_status(data["status"])
        newly_provisional = status == "provisionally_booked" and record.status != status
        record.status = status
    if "reason" in data:
        record.reason = data["reason"]
    commit_or_raise("TrainerUnavailability")
    if newly_provisional:
        day = record.unavailable_date
        _notify_provisional(record.trainer, day, day, record.reason)
    return record


def remove_record(record_id: int) -> None:
    record = get_record(record_id)
    db.session.delete(record)
    commit_or_raise("TrainerUnavailability")


def remove_date_range(trainer_id: int, start: date, end: date) -> int:
    """Delete every record in [start, end]; returns how many were removed."""
    get_trainer(trainer_id)
    _validate_range(start, end)
    removed = TrainerUnavailability.query.filter(
        TrainerUnavailability.trainer_id == trainer_id,
        TrainerUnavailability.unavailable_date >= start,
        TrainerUnavailability.unavailable_date <= end,
    ).delete(synchronize_session=False)
    commit_or_raise("TrainerUnavailability")
    logger.info("Trainer %s: removed %d unavailability record(s) %s..%s",
                trainer_id, removed, start, end, extra={"trainer_id": trainer_id})
    return removed
