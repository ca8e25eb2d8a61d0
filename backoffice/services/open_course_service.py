"""
Open Course Service.

Venues, public sessions, delegate registers and capacity alerts.

Rules:
  - available_spaces = capacity - active (non-cancelled) delegates, recomputed
    after every delegate change. Overbooking is allowed and raises an alert.
  - Fill level alerts: >=75% low_capacity, >=90% full, >=100% overbooked.
    Only the highest threshold crossed is raised, and only when no
    unacknowledged alert of that type exists for the session.
  - Delegates cannot be added to (or transferred onto) a cancelled session.
  - A session with delegates cannot be deleted; cancel it instead.
  - Assigning a trainer to a session that is not cancelled queues
    trainer_open_course_assignment to that trainer.
  - A session's trainer must hold the trainer type its course type requires.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import or_

from backoffice.core.exceptions import ConflictError, ValidationError
from backoffice.models import db
from backoffice.models.certificate import CourseType
from backoffice.models.open_course import (
    ATTENDANCE_VALUES, BOOKING_SOURCES, CAPACITY_THRESHOLDS, ID_TYPES, LICENCE_CATEGORIES,
    PRESENT_ATTENDANCE, SESSION_STATUSES, CapacityAlert, OpenCourseCompany, OpenCourseDelegate,
    OpenCourseSession, Venue,
)
from backoffice.services.trainer_service import get_bookable_trainer, get_trainer, notify_trainer
from backoffice.services.trainer_type_service import ensure_trainer_qualified
from backoffice.utils.helpers import (
    clean_email, commit_or_raise, get_or_raise, parse_bool, parse_date_input, parse_time_input,
)

logger = logging.getLogger(__name__)

_VENUE_FIELDS = ("name", "address1", "address2", "town", "postcode", "contact_name",
                 "contact_telephone", "notes", "sort_order")
_SESSION_FIELDS = ("event_title", "description", "meeting_url", "currency",
                   "notes", "course_level_data")
_DELEGATE_FIELDS = ("delegate_name", "delegate_phone", "delegate_company", "notes")


# ═══════════════════════════════════════════════════════════════════════════
#  Venues
# ═══════════════════════════════════════════════════════════════════════════


def venue_query(active: bool | None = None):
    q = Venue.query
    if active is not None:
        q = q.filter(Venue.is_active.is_(active))
    return q.order_by(Venue.sort_order, Venue.name)


def get_venue(venue_id: int) -> Venue:
    return get_or_raise(Venue, venue_id)


def _apply_venue(venue: Venue, data: dict) -> None:
    if "name" in data and not (data.get("name") or "").strip():
        raise ValidationError("name is required", details={"name": "required"})
    for field in _VENUE_FIELDS:
        if field in data:
            setattr(venue, field, data[field])
    if "contact_email" in data:
        venue.contact_email = clean_email(data["contact_email"], "contact_email")
    if "is_active" in data:
        venue.is_active = parse_bool(data["is_active"], "is_active", default=True)


def create_venue(data: dict) -> Venue:
    if not (data.get("name") or "").strip():
        raise ValidationError("name is required", details={"name": "required"})
    venue = Venue(name=data["name"].strip())
    _apply_venue(venue, data)
    db.session.add(venue)
    commit_or_raise("Venue")
    return venue


def update_venue(venue_id: int, data: dict) -> Venue:
    venue = get_venue(venue_id)
    _apply_venue(venue, data)
    commit_or_raise("Venue")
    return venue


def deactivate_venue(venue_id: int) -> Venue:
    venue = get_venue(venue_id)
    venue.is_active = False
    commit_or_raise("Venue")
    return venue


# ═══════════════════════════════════════════════════════════════════════════
#  Sessions
# ═══════════════════════════════════════════════════════════════════════════


def _parse_capacity(value) -> int:
    capacity = int(value)
    if capacity < 0:
        raise ValidationError("capacity cannot be negative", details={"capacity": "invalid"})
    return capacity


def _apply_session(session: OpenCourseSession, data: dict) -> None:
    if "event_title" in data and not (data.get("event_title") or "").strip():
        raise ValidationError("event_title is required", details={"event_title": "required"})
    for field in _SESSION_FIELDS:
        if field in data:
            setattr(session, field, data[field])
    if "is_virtual" in data:
        session.is_virtual = parse_bool(data["is_virtual"], "is_virtual")

    if "status" in data:
        if data["status"] not in SESSION_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(sorted(SESSION_STATUSES))}",
                details={"status": "invalid"},
            )
        session.status = data["status"]
    if "session_date" in data:
        session_date = parse_date_input(data["session_date"])
        if session_date is None:
            raise ValidationError("session_date is required", details={"session_date": "required"})
        session.session_date = session_date
    if "end_date" in data:
        session.end_date = parse_date_input(data["end_date"])
    if session.end_date and session.session_date and session.end_date < session.session_date:
        raise ValidationError("end_date cannot be before session_date", details={"end_date": "invalid"})
    for field in ("start_time", "end_time"):
        if field in data:
            setattr(session, field, parse_time_input(data[field]))
    if "price" in data:
        try:
            session.price = Decimal(str(data["price"])) if data["price"] not in (None, "") else None
        except InvalidOperation as exc:
            raise ValidationError("price must be a number", details={"price": "invalid"}) from exc
    if "course_type_id" in data:
        course_type_id = data["course_type_id"]
        session.course_type_id = (
            get_or_raise(CourseType, int(course_type_id)).id if course_type_id else None
        )
    if "trainer_id" in data:
        trainer_id = data["trainer_id"]
        session.trainer_id = get_bookable_trainer(int(trainer_id)).id if trainer_id else None
    if "venue_id" in data:
        session.venue_id = get_venue(int(data["venue_id"])).id if data["venue_id"] else None
    if ("trainer_id" in data or "course_type_id" in data) and session.trainer_id:
        ensure_trainer_qualified(
            get_trainer(session.trainer_id),
            db.session.get(CourseType, session.course_type_id) if session.course_type_id else None,
        )


def _notify_assignment(session: OpenCourseSession) -> None:
    if session.trainer is None or session.status == "cancelled":
        return
    notify_trainer(session.trainer, "trainer_open_course_assignment", {
        "event_title": session.event_title,
        "session_date": session.session_date.strftime("%d/%m/%Y"),
        "start_time": session.start_time.strftime("%H:%M") if session.start_time else "",
        "end_time": session.end_time.strftime("%H:%M") if session.end_time else "",
        "venue_name": session.venue.name if session.venue else "",
        "delegate_count": len(session.active_delegates()),
    })


def session_query(date_from=None, date_to=None, status=None, venue_id=None, trainer_id=None):
    q = OpenCourseSession.query
    if date_from:
        q = q.filter(OpenCourseSession.session_date >= date_from)
    if date_to:
        q = q.filter(OpenCourseSession.session_date <= date_to)
    if status:
        if status not in SESSION_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(sorted(SESSION_STATUSES))}")
        q = q.filter(OpenCourseSession.status == status)
    if venue_id:
        q = q.filter(OpenCourseSession.venue_id == venue_id)
    if trainer_id:
        q = q.filter(OpenCourseSession.trainer_id == trainer_id)
    return q.order_by(OpenCourseSession.session_date, OpenCourseSession.start_time,
                      OpenCourseSession.id)


def week_sessions(week_start) -> list[OpenCourseSession]:
    """Sessions in the seven days starting at week_start."""
    return session_query(date_from=week_start, date_to=week_start + timedelta(days=6)).all()


def get_session(session_id: int) -> OpenCourseSession:
    return get_or_raise(OpenCourseSession, session_id, "OpenCourseSession")


def session_detail(session_id: int) -> dict:
    session = get_session(session_id)
    result = session.to_dict()
    result["delegate_count"] = len(session.active_delegates())
    result["cancelled_delegate_count"] = session.delegates.filter(
        OpenCourseDelegate.cancelled.is_(True)
    ).count()
    result["unacknowledged_alerts"] = CapacityAlert.query.filter_by(
        session_id=session.id, acknowledged=False,
    ).count()
    return result


def create_session(data: dict) -> OpenCourseSession:
    missing = [f for f in ("event_title", "session_date") if not data.get(f)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}",
                              details={f: "required" for f in missing})
    capacity = _parse_capacity(data.get("capacity", 12))
    session = OpenCourseSession(
        event_title=data["event_title"].strip(),
        capacity=capacity,
        available_spaces=capacity,
        status=data.get("status") or "draft",
    )
    _apply_session(session, data)
    db.session.add(session)
    commit_or_raise("OpenCourseSession")
    logger.info("Open course session created id=%s date=%s", session.id, session.session_date,
                extra={"session_id": session.id})
    _notify_assignment(session)
    return session


def update_session(session_id: int, data: dict) -> OpenCourseSession:
    session = get_session(session_id)
    previous_trainer_id = session.trainer_id
    _apply_session(session, data)
    if "capacity" in data:
        session.capacity = _parse_capacity(data["capacity"])
        _recalculate(session)
    commit_or_raise("OpenCourseSession")
    if session.trainer_id and session.trainer_id != previous_trainer_id:
        logger.info("Session %s assigned to trainer %s", session.id, session.trainer_id,
                    extra={"session_id": session.id, "trainer_id": session.trainer_id})
        _notify_assignment(session)
    return session


def duplicate_session(session_id: int, new_date) -> OpenCourseSession:
    """Copy a session (without delegates) to another date as a draft."""
    source = get_session(session_id)
    new_date = parse_date_input(new_date)
    if new_date is None:
        raise ValidationError("session_date is required", details={"session_date": "required"})
    span = (source.end_date - source.session_date) if source.end_date else None
    copy = OpenCourseSession(
        course_type_id=source.course_type_id,
        trainer_id=source.trainer_id,
        venue_id=source.venue_id,
        event_title=source.event_title,
        description=source.description,
        session_date=new_date,
        end_date=new_date + span if span is not None else None,
        start_time=source.start_time,
        end_time=source.end_time,
        capacity=source.capacity,
        available_spaces=source.capacity,
        status="draft",
        is_virtual=source.is_virtual,
        meeting_url=source.meeting_url,
        price=source.price,
        currency=source.currency,
        notes=source.notes,
        course_level_data=dict(source.course_level_data or {}),
    )
    db.session.add(copy)
    commit_or_raise("OpenCourseSession")
    return copy


def cancel_session(session_id: int) -> OpenCourseSession:
    session = get_session(session_id)
    if session.status == "cancelled":
        raise ConflictError("OpenCourseSession", "status", "cancelled",
                            message="Session is already cancelled")
    session.status = "cancelled"
    commit_or_raise("OpenCourseSession")
    logger.info("Open course session cancelled id=%s", session.id, extra={"session_id": session.id})
    return session


def delete_session(session_id: int) -> None:
    session = get_session(session_id)
    if session.delegates.count():
        raise ConflictError("OpenCourseSession", "delegates", str(session.id),
                            message="Session has delegates; cancel it instead")
    CapacityAlert.query.filter_by(session_id=session.id).delete()
    db.session.delete(session)
    commit_or_raise("OpenCourseSession")


def sign_declaration(session_id: int, signed_by: str | None) -> OpenCourseSession:
    session = get_session(session_id)
    signed_by = (signed_by or "").strip()
    if not signed_by:
        raise ValidationError("signed_by is required", details={"signed_by": "required"})
    session.trainer_declaration_signed = True
    session.trainer_declaration_signed_at = datetime.now(timezone.utc)
    session.trainer_declaration_signed_by = signed_by[:200]
    commit_or_raise("OpenCourseSession")
    return session


def unsign_declaration(session_id: int) -> OpenCourseSession:
    session = get_session(session_id)
    session.trainer_declaration_signed = False
    session.trainer_declaration_signed_at = None
    session.trainer_declaration_signed_by = None
    commit_or_raise("OpenCourseSession")
    return session


# ── Capacity ─────────────────────────────────────────────────────────────────


def _recalculate(session: OpenCourseSession) -> CapacityAlert | None:
    """Refresh available_spaces and raise a capacity alert if a threshold is crossed.

    Does not commit; callers commit with the change that triggered it.
    """
    db.session.flush()
    active = session.delegates.filter(OpenCourseDelegate.cancelled.is_(False)).count()
    session.available_spaces = session.capacity - active

    if session.capacity > 0:
        percentage = active * 100 // session.capacity
    else:
        percentage = 100 if active else 0

    for alert_type, threshold in CAPACITY_THRESHOLDS:
        if percentage < threshold:
            continue
        open_alert = CapacityAlert.query.filter_by(
            session_id=session.id, alert_type=alert_type, acknowledged=False,
        ).first()
        if open_alert is not None:
            return None
        alert = CapacityAlert(session_id=session.id, alert_type=alert_type,
                              threshold_percentage=threshold)
        db.session.add(alert)
        logger.info("Capacity alert %s for session %s (%s%% full)", alert_type, session.id,
                    percentage, extra={"session_id": session.id})
        return alert
    return None


def recalculate_capacity(session_id: int) -> OpenCourseSession:
    session = get_session(session_id)
    _recalculate(session)
    commit_or_raise("OpenCourseSession")
    return session


def alert_query(acknowledged: bool | None = None, session_id: int | None = None):
    q = CapacityAlert.query
    if acknowledged is not None:
        q = q.filter(CapacityAlert.acknowledged.is_(acknowledged))
    if session_id:
        q = q.filter(CapacityAlert.session_id == session_id)
    return q.order_by(CapacityAlert.triggered_at.desc(), CapacityAlert.id.desc())


def acknowledge_alert(alert_id: int, acknowledged_by: str | None) -> CapacityAlert:
    alert = get_or_raise(CapacityAlert, alert_id, "CapacityAlert")
    if alert.acknowledged:
        raise ConflictError("CapacityAlert", "acknowledged", str(alert.id),
                            message="Alert is already acknowledged")
    alert.acknowledged = True
    alert.acknowledged_by = (acknowledged_by or "").strip()[:200] or None
    alert.acknowledged_at = datetime.now(timezone.utc)
    commit_or_raise("CapacityAlert")
    return alert


# ═══════════════════════════════════════════════════════════════════════════
#  Delegates
# ═══════════════════════════════════════════════════════════════════════════


def get_delegate(delegate_id: int) -> OpenCourseDelegate:
    return get_or_raise(OpenCourseDelegate, delegate_id, "OpenCourseDelegate")


def _open_session(session_id: int) -> OpenCourseSession:
    session = get_session(session_id)
    if session.status == "cancelled":
        raise ValidationError("Delegates cannot be added to a cancelled session")
    return session


def _apply_delegate(delegate: OpenCourseDelegate, data: dict) -> None:
    if "delegate_name" in data and not (data.get("delegate_name") or "").strip():
        raise ValidationError("delegate_name is required", details={"delegate_name": "required"})
    for field in _DELEGATE_FIELDS:
        if field in data:
            setattr(delegate, field, data[field])
    if "delegate_email" in data:
        delegate.delegate_email = clean_email(data["delegate_email"], "delegate_email")
    if "company_id" in data:
        company_id = data["company_id"]
        delegate.company_id = (
            get_or_raise(OpenCourseCompany, int(company_id), "OpenCourseCompany").id
            if company_id else None
        )
    if "booking_source" in data:
        if data["booking_source"] not in BOOKING_SOURCES:
            raise ValidationError(
                f"booking_source must be one of: {', '.join(sorted(BOOKING_SOURCES))}",
                details={"booking_source": "invalid"},
            )
        delegate.booking_source = data["booking_source"]
    _apply_dvsa(delegate, data)


def _apply_dvsa(delegate: OpenCourseDelegate, data: dict) -> None:
    if "licence_number" in data:
        delegate.licence_number = (data["licence_number"] or "").strip().upper() or None
    if "licence_category" in data:
        category = data["licence_category"] or None
        if category is not None and category not in LICENCE_CATEGORIES:
            raise ValidationError("Unknown licence_category", details={"licence_category": "invalid"})
        delegate.licence_category = category
    if "id_type" in data:
        id_type = data["id_type"] or None
        if id_type is not None and id_type not in ID_TYPES:
            raise ValidationError(f"id_type must be one of: {', '.join(sorted(ID_TYPES))}",
                                  details={"id_type": "invalid"})
        delegate.id_type = id_type
    if "dvsa_uploaded" in data:
        uploaded = parse_bool(data["dvsa_uploaded"], "dvsa_uploaded")
        if uploaded and not delegate.dvsa_uploaded:
            delegate.dvsa_uploaded_at = datetime.now(timezone.utc)
        elif not uploaded:
            delegate.dvsa_uploaded_at = None
        delegate.dvsa_uploaded = uploaded


def delegate_query(
    session_id: int | None = None,
    search: str | None = None,
    company_id: int | None = None,
    attendance: str | None = None,
    certificate: str | None = None,
    date_from=None,
    date_to=None,
    include_cancelled: bool = False,
):
    """Delegates of one session or across sessions.

    attendance:  attended (incl. late / left_early) | absent | pending
    certificate: issued | pending (present, not issued) | not_applicable
    """
    q = OpenCourseDelegate.query.join(OpenCourseSession)
    if session_id:
        q = q.filter(OpenCourseDelegate.session_id == session_id)
    if company_id:
        q = q.filter(OpenCourseDelegate.company_id == company_id)
    if not include_cancelled:
        q = q.filter(OpenCourseDelegate.cancelled.is_(False))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            OpenCourseDelegate.delegate_name.ilike(like),
            OpenCourseDelegate.delegate_email.ilike(like),
            OpenCourseDelegate.delegate_company.ilike(like),
        ))
    if attendance:
        if attendance == "attended":
            q = q.filter(OpenCourseDelegate.attendance_detail.in_(PRESENT_ATTENDANCE))
        elif attendance == "absent":
            q = q.filter(OpenCourseDelegate.attendance_detail == "absent")
        elif attendance == "pending":
            q = q.filter(OpenCourseDelegate.attendance_detail.is_(None))
        else:
            raise ValueError("attendance must be one of: attended, absent, pending")
    if certificate:
        present = OpenCourseDelegate.attendance_detail.in_(PRESENT_ATTENDANCE)
        if certificate == "issued":
            q = q.filter(OpenCourseDelegate.certificate_issued.is_(True))
        elif certificate == "pending":
            q = q.filter(OpenCourseDelegate.certificate_issued.is_(False), present)
        elif certificate == "not_applicable":
            q = q.filter(
                OpenCourseDelegate.certificate_issued.is_(False),
                or_(OpenCourseDelegate.attendance_detail.is_(None), ~present),
            )
        else:
            raise ValueError("certificate must be one of: issued, pending, not_applicable")
    if date_from:
        q = q.filter(OpenCourseSession.session_date >= date_from)
    if date_to:
        q = q.filter(OpenCourseSession.session_date <= date_to)
    return q.order_by(OpenCourseSession.session_date.desc(), OpenCourseDelegate.delegate_name)


def create_delegate(session_id: int, data: dict) -> OpenCourseDelegate:
    session = _open_session(session_id)
    name = (data.get("delegate_name") or "").strip()
    if not name:
        raise ValidationError("delegate_name is required", details={"delegate_name": "required"})
    delegate = OpenCourseDelegate(session=session, delegate_name=name, booking_source="admin")
    _apply_delegate(delegate, data)
    delegate.delegate_name = name
    db.session.add(delegate)
    _recalculate(session)
    commit_or_raise("OpenCourseDelegate")
    logger.info("Delegate added id=%s session=%s", delegate.id, session.id,
                extra={"session_id": session.id})
    return delegate


def update_delegate(delegate_id: int, data: dict) -> OpenCourseDelegate:
    delegate = get_delegate(delegate_id)
    _apply_delegate(delegate, data)
    commit_or_raise("OpenCourseDelegate")
    return delegate


def cancel_delegate(delegate_id: int, reason: str | None = None) -> OpenCourseDelegate:
    delegate = get_delegate(delegate_id)
    if delegate.cancelled:
        raise ConflictError("OpenCourseDelegate", "cancelled", str(delegate.id),
                            message="Delegate is already cancelled")
    delegate.cancelled = True
    delegate.cancelled_at = datetime.now(timezone.utc)
    delegate.cancellation_reason = (reason or "").strip()[:500] or None
    _recalculate(delegate.session)
    commit_or_raise("OpenCourseDelegate")
    return delegate


def reinstate_delegate(delegate_id: int) -> OpenCourseDelegate:
    delegate = get_delegate(delegate_id)
    if not delegate.cancelled:
        raise ConflictError("OpenCourseDelegate", "cancelled", str(delegate.id),
                            message="Delegate is not cancelled")
    if delegate.session.status == "cancelled":
        raise ValidationError("Delegates cannot be reinstated on a cancelled session")
    delegate.cancelled = False
    delegate.cancelled_at = None
    delegate.cancellation_reason = None
    _recalculate(delegate.session)
    commit_or_raise("OpenCourseDelegate")
    return delegate


def delete_delegate(delegate_id: int) -> None:
    delegate = get_delegate(delegate_id)
    if delegate.certificate_issued:
        raise ConflictError("OpenCourseDelegate", "certificate_number", delegate.certificate_number,
                            message="Delegate holds a certificate; revoke it first")
    session = delegate.session
    db.session.delete(delegate)
    _recalculate(session)
    commit_or_raise("OpenCourseDelegate")


def transfer_delegate(delegate_id: int, target_session_id: int) -> OpenCourseDelegate:
    """Move a delegate to another session and recalculate both sessions."""
    delegate = get_delegate(delegate_id)
    source = delegate.session
    if source.id == int(target_session_id):
        raise ValidationError("Delegate is already on this session")
    if delegate.certificate_issued:
        raise ValidationError("Delegates holding a certificate cannot be transferred")
    target = _open_session(int(target_session_id))

    delegate.session = target
    delegate.attendance_detail = None
    delegate.attendance_marked_by = None
    delegate.attendance_marked_at = None
    _recalculate(source)
    _recalculate(target)
    commit_or_raise("OpenCourseDelegate")
    logger.info("Delegate %s transferred session %s → %s", delegate.id, source.id, target.id,
                extra={"session_id": target.id})
    return delegate


# ── Register ─────────────────────────────────────────────────────────────────


def register_for_session(session_id: int) -> dict:
    """Session, its active delegates, and an attendance summary."""
    session = get_session(session_id)
    delegates = session.active_delegates()
    present = sum(1 for d in delegates if d.attendance_detail in PRESENT_ATTENDANCE)
    absent = sum(1 for d in delegates if d.attendance_detail == "absent")
    return {
        "session": session.to_dict(),
        "delegates": [d.to_dict() for d in delegates],
        "summary": {
            "total": len(delegates),
            "present": present,
            "absent": absent,
            "pending": len(delegates) - present - absent,
        },
    }


def mark_attendance(delegate_id: int, attendance: str | None, marked_by: str | None) -> OpenCourseDelegate:
    delegate = get_delegate(delegate_id)
    if delegate.cancelled:
        raise ValidationError("Attendance cannot be recorded for a cancelled delegate")
    if attendance is not None and attendance not in ATTENDANCE_VALUES:
        raise ValidationError(
            f"attendance must be one of: {', '.join(sorted(ATTENDANCE_VALUES))}",
            details={"attendance": "invalid"},
        )
    delegate.attendance_detail = attendance
    if attendance is None:
        delegate.attendance_marked_by = None
        delegate.attendance_marked_at = None
    else:
        delegate.attendance_marked_by = (marked_by or "").strip()[:200] or None
        delegate.attendance_marked_at = datetime.now(timezone.utc)
    commit_or_raise("OpenCourseDelegate")
    return delegate


def update_dvsa(delegate_id: int, data: dict) -> OpenCourseDelegate:
    delegate = get_delegate(delegate_id)
    _apply_dvsa(delegate, data)
    commit_or_raise("OpenCourseDelegate")
    return delegate
