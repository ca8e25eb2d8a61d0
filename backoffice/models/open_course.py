"""
Training Back-Office
Open-course domain models.

Models:
    - Venue: a training centre hosting public sessions
    - OpenCourseCompany: an employer whose staff attend as delegates
    - OpenCourseSession: a scheduled public course with capacity
    - OpenCourseDelegate: a person registered on a session (the register rows)
    - CapacityAlert: raised when a session crosses a fill threshold

Capacity rule: available_spaces = capacity − active (non-cancelled) delegates,
recomputed after every delegate change.
"""

from datetime import datetime, timezone

from backoffice.models import db
from backoffice.utils.helpers import iso


# ── Constants ────────────────────────────────────────────────────────────────

SESSION_STATUSES = {"draft", "confirmed", "cancelled"}
BOOKING_SOURCES = {"website", "phone", "admin", "transfer"}
ATTENDANCE_VALUES = {"attended", "absent", "late", "left_early"}
PRESENT_ATTENDANCE = {"attended", "late", "left_early"}
LICENCE_CATEGORIES = {"C", "CE", "C1", "C1E", "D", "DE", "D1", "D1E", "C+E", "D+E"}
ID_TYPES = {"NONE", "DL", "DQC", "Digitaco", "Passport", "Other"}
ALERT_TYPES = {"low_capacity", "full", "overbooked"}

# (alert_type, minimum fill percentage), checked highest first
CAPACITY_THRESHOLDS = (
    ("overbooked", 100),
    ("full", 90),
    ("low_capacity", 75),
)


class Venue(db.Model):
    """A training centre."""

    __tablename__ = "venues"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    address1 = db.Column(db.String(200), nullable=True)
    address2 = db.Column(db.String(200), nullable=True)
    town = db.Column(db.String(100), nullable=True)
    postcode = db.Column(db.String(20), nullable=True)
    contact_name = db.Column(db.String(200), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_telephone = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "address1": self.address1,
            "address2": self.address2,
            "town": self.town,
            "postcode": self.postcode,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_telephone": self.contact_telephone,
            "notes": self.notes,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<Venue {self.id}: {self.name[:40]}>"


class OpenCourseCompany(db.Model):
    """An employer sending delegates to open courses."""

    __tablename__ = "open_course_companies"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    contact_name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    telephone = db.Column(db.String(50), nullable=True)
    address1 = db.Column(db.String(200), nullable=True)
    address2 = db.Column(db.String(200), nullable=True)
    town = db.Column(db.String(100), nullable=True)
    postcode = db.Column(db.String(20), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "contact_name": self.contact_name,
            "email": self.email,
            "telephone": self.telephone,
            "address1": self.address1,
            "address2": self.address2,
            "town": self.town,
            "postcode": self.postcode,
            "notes": self.notes,
            "active": self.active,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<OpenCourseCompany {self.id}: {self.name[:40]}>"


class OpenCourseSession(db.Model):
    """A public course session."""

    __tablename__ = "open_course_sessions"

    id = db.Column(db.Integer, primary_key=True)
    course_type_id = db.Column(
        db.Integer, db.ForeignKey("course_types.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    trainer_id = db.Column(
        db.Integer, db.ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    venue_id = db.Column(
        db.Integer, db.ForeignKey("venues.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    event_title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    session_date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date, nullable=True)
    start_time = db.Column(db.Time, nullable=True)
    end_time = db.Column(db.Time, nullable=True)
    capacity = db.Column(db.Integer, nullable=False, default=12)
    available_spaces = db.Column(db.Integer, nullable=False, default=12)
    status = db.Column(db.String(20), nullable=False, default="draft", index=True)
    is_virtual = db.Column(db.Boolean, nullable=False, default=False)
    meeting_url = db.Column(db.String(1000), nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="GBP")
    notes = db.Column(db.Text, nullable=True)
    course_level_data = db.Column(db.JSON, nullable=True)

    trainer_declaration_signed = db.Column(db.Boolean, nullable=False, default=False)
    trainer_declaration_signed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    trainer_declaration_signed_by = db.Column(db.String(200), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    course_type = db.relationship("CourseType")
    trainer = db.relationship("Trainer")
    venue = db.relationship("Venue")
    delegates = db.relationship(
        "OpenCourseDelegate", back_populates="session", lazy="dynamic",
        order_by="OpenCourseDelegate.delegate_name",
    )

    def active_delegates(self):
        return self.delegates.filter(OpenCourseDelegate.cancelled.is_(False)).all()

    def to_dict(self):
        booked = self.capacity - self.available_spaces
        return {
            "id": self.id,
            "course_type_id": self.course_type_id,
            "course_type_name": self.course_type.name if self.course_type else None,
            "trainer_id": self.trainer_id,
            "trainer_name": self.trainer.name if self.trainer else None,
            "venue_id": self.venue_id,
            "venue_name": self.venue.name if self.venue else None,
            "event_title": self.event_title,
            "description": self.description,
            "session_date": iso(self.session_date),
            "end_date": iso(self.end_date),
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
            "capacity": self.capacity,
            "available_spaces": self.available_spaces,
            "booked_count": booked,
            "status": self.status,
            "is_virtual": self.is_virtual,
            "meeting_url": self.meeting_url,
            "price": float(self.price) if self.price is not None else None,
            "currency": self.currency,
            "notes": self.notes,
            "course_level_data": self.course_level_data or {},
            "trainer_declaration_signed": self.trainer_declaration_signed,
            "trainer_declaration_signed_at": iso(self.trainer_declaration_signed_at),
            "trainer_declaration_signed_by": self.trainer_declaration_signed_by,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<OpenCourseSession {self.id}: {self.event_title[:40]} {self.session_date}>"


class OpenCourseDelegate(db.Model):
    """A delegate on an open-course session register."""

    __tablename__ = "open_course_delegates"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(
        db.Integer, db.ForeignKey("open_course_sessions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    delegate_name = db.Column(db.String(200), nullable=False)
    delegate_email = db.Column(db.String(255), nullable=True)
    delegate_phone = db.Column(db.String(50), nullable=True)
    delegate_company = db.Column(db.String(200), nullable=True)
    company_id = db.Column(
        db.Integer, db.ForeignKey("open_course_companies.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    booking_source = db.Column(db.String(20), nullable=False, default="admin")
    notes = db.Column(db.Text, nullable=True)

    cancelled = db.Column(db.Boolean, nullable=False, default=False, index=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    # Register
    attendance_detail = db.Column(db.String(20), nullable=True,
                                  comment="attended | absent | late | left_early, NULL = not marked")
    attendance_marked_by = db.Column(db.String(200), nullable=True)
    attendance_marked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # DVSA compliance (driver CPC courses)
    licence_number = db.Column(db.String(30), nullable=True)
    licence_category = db.Column(db.String(10), nullable=True)
    id_type = db.Column(db.String(20), nullable=True)
    dvsa_uploaded = db.Column(db.Boolean, nullable=False, default=False)
    dvsa_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    certificate_issued = db.Column(db.Boolean, nullable=False, default=False)
    certificate_number = db.Column(db.String(40), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    session = db.relationship("OpenCourseSession", back_populates="delegates")
    company = db.relationship("OpenCourseCompany")

    def to_dict(self, include_session=False):
        result = {
            "id": self.id,
            "session_id": self.session_id,
            "delegate_name": self.delegate_name,
            "delegate_email": self.delegate_email,
            "delegate_phone": self.delegate_phone,
            "delegate_company": self.delegate_company,
            "company_id": self.company_id,
            "company_name": self.company.name if self.company else None,
            "booking_source": self.booking_source,
            "notes": self.notes,
            "cancelled": self.cancelled,
            "cancelled_at": iso(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "attendance_detail": self.attendance_detail,
            "attendance_marked_by": self.attendance_marked_by,
            "attendance_marked_at": iso(self.attendance_marked_at),
            "licence_number": self.licence_number,
            "licence_category": self.licence_category,
            "id_type": self.id_type,
            "dvsa_uploaded": self.dvsa_uploaded,
            "dvsa_uploaded_at": iso(self.dvsa_uploaded_at),
            "certificate_issued": self.certificate_issued,
            "certificate_number": self.certificate_number,
            "created_at": iso(self.created_at),
        }
        if include_session and self.session:
            result["session"] = {
                "id": self.session.id,
                "event_title": self.session.event_title,
                "session_date": iso(self.session.session_date),
            }
        return result

    def __repr__(self):
        return f"<OpenCourseDelegate {self.id}: {self.delegate_name[:40]}>"


class CapacityAlert(db.Model):
    """A fill-level alert for a session. At most one unacknowledged alert per type."""

    __tablename__ = "capacity_alerts"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(
        db.Integer, db.ForeignKey("open_course_sessions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    alert_type = db.Column(db.String(20), nullable=False)
    threshold_percentage = db.Column(db.Integer, nullable=False)
    triggered_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    acknowledged = db.Column(db.Boolean, nullable=False, default=False)
    acknowledged_by = db.Column(db.String(200), nullable=True)
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)

    session = db.relationship("OpenCourseSession")

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "event_title": self.session.event_title if self.session else None,
            "alert_type": self.alert_type,
            "threshold_percentage": self.threshold_percentage,
            "triggered_at": iso(self.triggered_at),
            "acknowledged": self.acknowledged,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": iso(self.acknowledged_at),
        }
