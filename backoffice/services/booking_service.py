"""
Booking Service.

Closed-course bookings and their candidates.

Rules:
  - A booking's trainer must exist and not be suspended.
  - The client's contact details are copied onto the booking at creation
    (fields given explicitly in the payload win).
  - A location must belong to the booking's client.
  - When a booking has both, its trainer must hold the trainer type its
    course type requires; checked whenever either of them is set.
  - Create and move return availability warnings: dates in the booking
    span the trainer has marked unavailable. Warnings never block.
  - Trainer notifications (new, moved, updated, cancelled) are queued through
    the email queue using the trainer_* core templates, unless the trainer
    has receive_booking_notifications switched off. "Updated" is only sent
    when a field in _NOTIFIED_FIELDS changes.
  - db.session.commit() happens only in this file.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation

from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationError
from backoffice.models import db
from backoffice.models.booking import (
    BOOKING_STATUSES, DEFAULT_START_TIME, MAX_BOOKING_DAYS, Booking, BookingCandidate,
)
from backoffice.models.certificate import Certificate, CourseType
from backoffice.models.client import ClientLocation
from backoffice.models.email import DEFAULT_PRIORITY
from backoffice.services import client_service
from backoffice.services.availability_service import unavailable_dates_for_booking
from backoffice.services.trainer_service import get_bookable_trainer, notify_trainer
from backoffice.services.trainer_type_service import ensure_trainer_qualified
from backoffice.utils.helpers import (
    clean_email, commit_or_raise, get_or_raise, parse_bool, parse_date_input, parse_time_input,
)

logger = logging.getLogger(__name__)

_SIMPLE_FIELDS = ("title", "location", "notes", "client_name", "client_contact_name",
                  "client_telephone", "course_level_data")
_CANDIDATE_FIELDS = ("candidate_name", "telephone", "email", "paid", "passed",
                     "outstanding_balance", "course_data", "client_id")


# ── Validation helpers ───────────────────────────────────────────────────────


def _parse_num_days(value) -> int:
    if value in (None, ""):
        return 1
    num_days = int(value)
    if not 1 <= num_days <= MAX_BOOKING_DAYS:
        raise ValidationError(f"num_days must be between 1 and {MAX_BOOKING_DAYS}",
                              details={"num_days": "invalid"})
    return num_days


def _validate_status(status: str) -> str:
    if status not in BOOKING_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(BOOKING_STATUSES))}",
            details={"status": "invalid"},
        )
    return status


def _parse_money(value, field: str) -> Decimal:
    try:
        return Decimal(str(value if value not in (None, "") else 0))
    except InvalidOperation as exc:
        raise ValidationError(f"{field} must be a number", details={field: "invalid"}) from exc


def _apply_client(booking: Booking, data: dict) -> None:
    """Link client/location and snapshot the client's contact details."""
    client_id = data.get("client_id")
    location_id = data.get("location_id")
    if client_id:
        client = client_service.get_client(int(client_id))
        booking.client_id = client.id
        booking.client_name = data.get("client_name") or client.name
        booking.client_contact_name = data.get("client_contact_name") or client.contact_name
        booking.client_email = clean_email(data.get("client_email")) or client.email
        booking.client_telephone = data.get("client_telephone") or client.telephone
        if not location_id:
            default = next((loc for loc in client.active_locations() if loc.is_default), None)
            if default is not None and not data.get("location"):
                booking.location_id = default.id
                booking.location = ", ".join(
                    p for p in (default.location_name, default.full_address) if p
                )
    if location_id:
        if not booking.client_id:
            raise ValidationError("location_id requires a client_id", details={"location_id": "invalid"})
        loc = client_service.get_location(booking.client_id, int(location_id))
        booking.location_id = loc.id
        if not data.get("location"):
            booking.location = ", ".join(p for p in (loc.location_name, loc.full_address) if p)


def _warnings(booking: Booking) -> list[dict]:
    if not booking.trainer_id:
        return []
    return unavailable_dates_for_booking(booking.trainer_id, booking.booking_date, booking.end_date)


def _notification_data(booking: Booking, **extra) -> dict:
    data = {
        "trainer_name": booking.trainer.name if booking.trainer else "",
        "booking_title": booking.title,
        "booking_date": booking.booking_date.strftime("%d/%m/%Y"),
        "num_days": booking.num_days,
        "start_time": booking.start_time.strftime("%H:%M") if booking.start_time else "",
        "client_name": booking.client_name,
        "location": booking.location,
    }
    data.update(extra)
    return data


def _notify_trainer(booking: Booking, template_key: str, priority: int = DEFAULT_PRIORITY,
                    **extra) -> None:
    notify_trainer(booking.trainer, template_key, _notification_data(booking, **extra), priority)


# Changes to these are worth telling the trainer about; notes or contact details are not.
_NOTIFIED_FIELDS = {
    "title": "Title",
    "start_time": "Start time",
    "num_days": "Days",
    "status": "Status",
    "location": "Location",
    "in_centre": "In centre",
    "location_id": "Site",
}


def _notified_snapshot(booking: Booking) -> dict:
    return {field: getattr(booking, field) for field in _NOTIFIED_FIELDS}


def _describe(field: str, value) -> str:
    if value is None or value == "":
        return "none"
    if field == "start_time":
        return value.strftime("%H:%M")
    if field == "in_centre":
        return "yes" if value else "no"
    if field == "location_id":
        location = db.session.get(ClientLocation, value)
        return location.location_name if location else str(value)
    return str(value)


def _changes_summary(before: dict, after: dict) -> str:
    return "; ".join(
        f"{label}: {_describe(field, before[field])} to {_describe(field, after[field])}"
        for field, label in _NOTIFIED_FIELDS.items()
        if before[field] != after[field]
    )


# ── Bookings ─────────────────────────────────────────────────────────────────


def get_booking(booking_id: int) -> Booking:
    return get_or_raise(Booking, booking_id)


def booking_query(
    trainer_id: int | None = None,
    client_id: int | None = None,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    include_cancelled: bool = False,
    in_centre: bool | None = None,
):
    """Bookings filtered by trainer/client/status, in-centre flag and a date window (by start date)."""
    q = Booking.query
    if trainer_id:
        q = q.filter(Booking.trainer_id == trainer_id)
    if client_id:
        q = q.filter(Booking.client_id == client_id)
    if status:
        q = q.filter(Booking.status == _validate_status(status))
    elif not include_cancelled:
        q = q.filter(Booking.status != "cancelled")
    if date_from:
        q = q.filter(Booking.booking_date >= date_from - timedelta(days=MAX_BOOKING_DAYS - 1))
    if date_to:
        q = q.filter(Booking.booking_date <= date_to)
    if in_centre is not None:
        q = q.filter(Booking.in_centre.is_(in_centre))
    return q.order_by(Booking.booking_date, Booking.start_time, Booking.id)


def list_bookings(date_from: date | None = None, **filters) -> list[Booking]:
    """Like booking_query but trims multi-day bookings that end before date_from."""
    rows = booking_query(date_from=date_from, **filters).all()
    if date_from:
        rows = [b for b in rows if b.end_date >= date_from]
    return rows


def create_booking(data: dict) -> tuple[Booking, list[dict]]:
    """Create a booking.

    Returns:
        (booking, availability_warnings)

    Raises:
        ValidationError: Missing title/date, bad num_days, suspended trainer.
        NotFoundError: Unknown trainer, client, location or course type.
    """
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    booking_date = parse_date_input(data.get("booking_date"))
    if booking_date is None:
        raise ValidationError("booking_date is required", details={"booking_date": "required"})

    booking = Booking(
        title=title,
        booking_date=booking_date,
        start_time=parse_time_input(data.get("start_time")) or DEFAULT_START_TIME,
        num_days=_parse_num_days(data.get("num_days")),
        status=_validate_status(data.get("status") or "confirmed"),
        in_centre=parse_bool(data.get("in_centre"), "in_centre"),
        location=data.get("location"),
        notes=data.get("notes"),
        course_level_data=data.get("course_level_data") or {},
    )
    if data.get("trainer_id"):
        booking.trainer = get_bookable_trainer(int(data["trainer_id"]))
    if data.get("course_type_id"):
        booking.course_type = get_or_raise(CourseType, int(data["course_type_id"]), "CourseType")
    ensure_trainer_qualified(booking.trainer, booking.course_type)
    _apply_client(booking, data)
    if not data.get("client_id"):
        booking.client_name = data.get("client_name")
        booking.client_contact_name = data.get("client_contact_name")
        booking.client_email = clean_email(data.get("client_email"))
        booking.client_telephone = data.get("client_telephone")

    db.session.add(booking)
    commit_or_raise("Booking")
    logger.info("Booking created id=%s trainer=%s date=%s", booking.id, booking.trainer_id,
                booking.booking_date, extra={"booking_id": booking.id})

    warnings = _warnings(booking)
    if booking.status != "cancelled":
        _notify_trainer(booking, "trainer_new_booking")
    return booking, warnings


def update_booking(booking_id: int, data: dict) -> Booking:
    """Partial update of descriptive fields. Use move_booking for trainer/date changes."""
    booking = get_booking(booking_id)
    if "title" in data and not (data.get("title") or "").strip():
        raise ValidationError("title cannot be blank", details={"title": "required"})
    before = _notified_snapshot(booking)
    for field in _SIMPLE_FIELDS:
        if field in data:
            setattr(booking, field, data[field])
    if "client_email" in data:
        booking.client_email = clean_email(data["client_email"])
    if "start_time" in data:
        booking.start_time = parse_time_input(data["start_time"]) or DEFAULT_START_TIME
    if "num_days" in data:
        booking.num_days = _parse_num_days(data["num_days"])
    if "status" in data:
        booking.status = _validate_status(data["status"])
    if "in_centre" in data:
        booking.in_centre = parse_bool(data["in_centre"], "in_centre")
    if "course_type_id" in data:
        booking.course_type = (
            get_or_raise(CourseType, int(data["course_type_id"]), "CourseType")
            if data["course_type_id"] else None
        )
        ensure_trainer_qualified(booking.trainer, booking.course_type)
    if "client_id" in data or "location_id" in data:
        if "client_id" in data and not data["client_id"]:
            booking.client_id = None
            booking.location_id = None
        else:
            merged = {"client_id": booking.client_id, **data}
            _apply_client(booking, merged)
    commit_or_raise("Booking")

    changes = _changes_summary(before, _notified_snapshot(booking))
    if changes and booking.status != "cancelled":
        logger.info("Booking %s updated: %s", booking.id, changes, extra={"booking_id": booking.id})
        _notify_trainer(booking, "trainer_booking_updated", priority=4, changes_summary=changes)
    return booking


def move_booking(booking_id: int, data: dict) -> tuple[Booking, list[dict]]:
    """Drag-and-drop transfer: new trainer and/or new start date in one write."""
    booking = get_booking(booking_id)
    if booking.status == "cancelled":
        raise ValidationError("Cancelled bookings cannot be moved")
    if "trainer_id" not in data and "booking_date" not in data:
        raise ValidationError("trainer_id or booking_date is required")

    previous_date = booking.booking_date
    previous_trainer = booking.trainer
    if data.get("trainer_id"):
        booking.trainer = get_bookable_trainer(int(data["trainer_id"]))
        ensure_trainer_qualified(booking.trainer, booking.course_type)
    if data.get("booking_date"):
        booking.booking_date = parse_date_input(data["booking_date"])
    commit_or_raise("Booking")
    logger.info("Booking %s moved: trainer %s→%s date %s→%s", booking.id,
                previous_trainer.id if previous_trainer else None, booking.trainer_id,
                previous_date, booking.booking_date, extra={"booking_id": booking.id})

    warnings = _warnings(booking)
    trainer_changed = previous_trainer is not None and previous_trainer.id != booking.trainer_id
    if trainer_changed:
        notify_trainer(
            previous_trainer, "trainer_booking_cancelled",
            _notification_data(booking, trainer_name=previous_trainer.name,
                               booking_date=previous_date.strftime("%d/%m/%Y")),
        )
    if trainer_changed or previous_date != booking.booking_date:
        _notify_trainer(booking, "trainer_booking_moved",
                        previous_date=previous_date.strftime("%d/%m/%Y"))
    return booking, warnings


def cancel_booking(booking_id: int) -> Booking:
    booking = get_booking(booking_id)
    if booking.status == "cancelled":
        raise ConflictError("Booking", "status", "cancelled", message="Booking is already cancelled")
    booking.status = "cancelled"
    commit_or_raise("Booking")
    logger.info("Booking %s cancelled", booking.id, extra={"booking_id": booking.id})
    _notify_trainer(booking, "trainer_booking_cancelled")
    return booking


def delete_booking(booking_id: int) -> None:
    booking = get_booking(booking_id)
    if Certificate.query.filter_by(booking_id=booking.id).count():
        raise ConflictError("Booking", "certificates", str(booking.id),
                            message="Booking has issued certificates; cancel it instead")
    db.session.delete(booking)
    commit_or_raise("Booking")
    logger.info("Booking %s deleted", booking_id, extra={"booking_id": booking_id})


# ── Candidates ───────────────────────────────────────────────────────────────


def get_candidate(booking_id: int, candidate_id: int) -> BookingCandidate:
    candidate = db.session.get(BookingCandidate, candidate_id)
    if candidate is None or candidate.booking_id != booking_id:
        raise NotFoundError(resource="BookingCandidate", resource_id=candidate_id)
    return candidate


def _apply_candidate(candidate: BookingCandidate, data: dict) -> None:
    for field in _CANDIDATE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "email":
            value = clean_email(value)
        elif field == "outstanding_balance":
            value = _parse_money(value, field)
        elif field in ("paid", "passed"):
            value = parse_bool(value, field)
        elif field == "client_id" and value:
            value = client_service.get_client(int(value)).id
        setattr(candidate, field, value)


def add_candidate(booking_id: int, data: dict) -> BookingCandidate:
    booking = get_booking(booking_id)
    name = (data.get("candidate_name") or "").strip()
    if not name:
        raise ValidationError("candidate_name is required", details={"candidate_name": "required"})
    candidate = BookingCandidate(booking=booking, client_id=booking.client_id, candidate_name=name)
    _apply_candidate(candidate, data)
    candidate.candidate_name = name
    db.session.add(candidate)
    commit_or_raise("BookingCandidate")
    return candidate


def update_candidate(booking_id: int, candidate_id: int, data: dict) -> BookingCandidate:
    candidate = get_candidate(booking_id, candidate_id)
    if "candidate_name" in data and not (data.get("candidate_name") or "").strip():
        raise ValidationError("candidate_name cannot be blank", details={"candidate_name": "required"})
    _apply_candidate(candidate, data)
    commit_or_raise("BookingCandidate")
    return candidate


def remove_candidate(booking_id: int, candidate_id: int) -> None:
    candidate = get_candidate(booking_id, candidate_id)
    if Certificate.query.filter_by(candidate_id=candidate.id).count():
        raise ConflictError("BookingCandidate", "certificates", str(candidate.id),
                            message="Candidate has a certificate; revoke it instead")
    db.session.delete(candidate)
    commit_or_raise("BookingCandidate")
