"""
Trainer Type Service.

Trainer types are qualifications. A course type may name the trainer
type its trainer must hold; a course type without one can be run by any
trainer. Bookings and open-course sessions refuse a trainer who lacks the
course type's trainer type (422, details {"trainer_id": "not_qualified"}).

Removing a type from a trainer who still has future, non-cancelled
bookings of course types needing it answers 409 unless confirmed.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import func, or_

from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationError
from backoffice.models import db
from backoffice.models.booking import Booking
from backoffice.models.certificate import CourseType
from backoffice.models.trainer import Trainer, TrainerTrainerType, TrainerType
from backoffice.services.trainer_service import get_trainer
from backoffice.utils.helpers import commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

_FIELDS = ("name", "description", "sort_order")


# ── Trainer type CRUD ────────────────────────────────────────────────────────


def get_trainer_type(trainer_type_id: int) -> TrainerType:
    return get_or_raise(TrainerType, trainer_type_id, "TrainerType")


def list_trainer_types() -> list[dict]:
    """Every trainer type in sort order, with how many trainers hold it."""
    counts = dict(
        db.session.query(TrainerTrainerType.trainer_type_id, func.count(TrainerTrainerType.id))
        .group_by(TrainerTrainerType.trainer_type_id)
        .all()
    )
    rows = TrainerType.query.order_by(TrainerType.sort_order, TrainerType.name).all()
    return [{**t.to_dict(), "trainer_count": counts.get(t.id, 0)} for t in rows]


def _apply(trainer_type: TrainerType, data: dict) -> None:
    if "name" in data and not (data.get("name") or "").strip():
        raise ValidationError("name is required", details={"name": "required"})
    for field in _FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "name":
            value = value.strip()
        elif field == "sort_order":
            value = int(value or 0)
        setattr(trainer_type, field, value)


def create_trainer_type(data: dict) -> TrainerType:
    if not (data.get("name") or "").strip():
        raise ValidationError("name is required", details={"name": "required"})
    trainer_type = TrainerType()
    _apply(trainer_type, data)
    db.session.add(trainer_type)
    commit_or_raise("TrainerType", "name")
    logger.info("Trainer type created id=%s name=%s", trainer_type.id, trainer_type.name)
    return trainer_type


def update_trainer_type(trainer_type_id: int, data: dict) -> TrainerType:
    trainer_type = get_trainer_type(trainer_type_id)
    _apply(trainer_type, data)
    commit_or_raise("TrainerType", "name")
    return trainer_type


def delete_trainer_type(trainer_type_id: int) -> None:
    """Delete a type; assignments go with it and course types stop requiring it."""
    trainer_type = get_trainer_type(trainer_type_id)
    TrainerTrainerType.query.filter_by(trainer_type_id=trainer_type.id).delete(
        synchronize_session=False)
    CourseType.query.filter_by(trainer_type_id=trainer_type.id).update(
        {"trainer_type_id": None}, synchronize_session=False)
    db.session.delete(trainer_type)
    commit_or_raise("TrainerType")
    logger.info("Trainer type deleted id=%s", trainer_type_id)


# ── Assignments ──────────────────────────────────────────────────────────────


def trainer_types_for(trainer_id: int) -> list[TrainerType]:
    get_trainer(trainer_id)
    return (
        TrainerType.query
        .join(TrainerTrainerType, TrainerTrainerType.trainer_type_id == TrainerType.id)
        .filter(TrainerTrainerType.trainer_id == trainer_id)
        .order_by(TrainerType.sort_order, TrainerType.name)
        .all()
    )


def trainer_types_for_many(trainer_ids: list[int]) -> dict[int, list[dict]]:
    """{trainer_id: [type, ...]} for the given trainers; trainers with none are left out."""
    if not trainer_ids:
        return {}
    rows = (
        db.session.query(TrainerTrainerType.trainer_id, TrainerType)
        .join(TrainerType, TrainerType.id == TrainerTrainerType.trainer_type_id)
        .filter(TrainerTrainerType.trainer_id.in_(trainer_ids))
        .order_by(TrainerType.sort_order, TrainerType.name)
        .all()
    )
    result: dict[int, list[dict]] = {}
    for trainer_id, trainer_type in rows:
        result.setdefault(trainer_id, []).append(trainer_type.to_dict())
    return result


def assign_trainer_type(trainer_id: int, trainer_type_id: int) -> TrainerType:
    """Give a trainer a type.

    Raises:
        ConflictError: The trainer already holds it.
    """
    trainer = get_trainer(trainer_id)
    trainer_type = get_trainer_type(trainer_type_id)
    message = "This trainer type is already assigned to the trainer"
    if TrainerTrainerType.query.filter_by(
        trainer_id=trainer.id, trainer_type_id=trainer_type.id,
    ).first() is not None:
        raise ConflictError("TrainerTrainerType", "trainer_type_id", trainer_type.id, message=message)
    db.session.add(TrainerTrainerType(trainer_id=trainer.id, trainer_type_id=trainer_type.id))
    commit_or_raise("TrainerTrainerType", "trainer_type_id", message=message)
    logger.info("Trainer %s given type %s", trainer.id, trainer_type.name,
                extra={"trainer_id": trainer.id})
    return trainer_type


def future_bookings_for_type(trainer_id: int, trainer_type_id: int,
                             today: date | None = None) -> dict:
    """Non-cancelled bookings from today on whose course type needs this trainer type."""
    today = today or date.today()
    count, earliest, latest = (
        db.session.query(func.count(Booking.id), func.min(Booking.booking_date),
                         func.max(Booking.booking_date))
        .join(CourseType, CourseType.id == Booking.course_type_id)
        .filter(
            Booking.trainer_id == trainer_id,
            CourseType.trainer_type_id == trainer_type_id,
            Booking.booking_date >= today,
            Booking.status != "cancelled",
        )
        .one()
    )
    return {
        "booking_count": count or 0,
        "earliest_booking_date": earliest.isoformat() if earliest else None,
        "latest_booking_date": latest.isoformat() if latest else None,
    }


def remove_trainer_type(trainer_id: int, trainer_type_id: int, confirm: bool = False) -> None:
    """Take a type away from a trainer.

    Raises:
        NotFoundError: The trainer does not hold the type.
        ConflictError: Future bookings depend on it and confirm is False.
    """
    get_trainer(trainer_id)
    link = TrainerTrainerType.query.filter_by(
        trainer_id=trainer_id, trainer_type_id=trainer_type_id,
    ).first()
    if link is None:
        raise NotFoundError(resource="TrainerTrainerType", resource_id=trainer_type_id)
    future = future_bookings_for_type(trainer_id, trainer_type_id)
    if future["booking_count"] and not confirm:
        raise ConflictError(
            "TrainerTrainerType", "trainer_type_id", trainer_type_id,
            message=(f"Trainer has {future['booking_count']} future booking(s) needing this type "
                     f"({future['earliest_booking_date']} to {future['latest_booking_date']}); "
                     "resubmit with confirm=true to remove it"),
        )
    db.session.delete(link)
    commit_or_raise("TrainerTrainerType")
    logger.info("Trainer %s lost type %s (future bookings: %s)", trainer_id, trainer_type_id,
                future["booking_count"], extra={"trainer_id": trainer_id})


# ── Qualification ────────────────────────────────────────────────────────────


def qualified_course_types(trainer_id: int) -> list[CourseType]:
    """Active course types the trainer may run: untyped ones plus those matching a held type."""
    get_trainer(trainer_id)
    held = db.session.query(TrainerTrainerType.trainer_type_id).filter(
        TrainerTrainerType.trainer_id == trainer_id)
    return (
        CourseType.query
        .filter(
            CourseType.active.is_(True),
            or_(CourseType.trainer_type_id.is_(None), CourseType.trainer_type_id.in_(held)),
        )
        .order_by(CourseType.sort_order, CourseType.name)
        .all()
    )


def is_trainer_qualified(trainer_id: int, course_type: CourseType | None) -> bool:
    if course_type is None or course_type.trainer_type_id is None:
        return True
    # Callers check half-built bookings; do not flush them
    with db.session.no_autoflush:
        return TrainerTrainerType.query.filter_by(
            trainer_id=trainer_id, trainer_type_id=course_type.trainer_type_id,
        ).first() is not None


def ensure_trainer_qualified(trainer: Trainer | None, course_type: CourseType | None) -> None:
    """Raise ValidationError when *trainer* lacks the type *course_type* needs."""
    if trainer is None or is_trainer_qualified(trainer.id, course_type):
        return
    raise ValidationError(
        f"{trainer.name} is not qualified to run {course_type.name} "
        f"(needs {course_type.trainer_type.name}).",
        details={"trainer_id": "not_qualified"},
    )
