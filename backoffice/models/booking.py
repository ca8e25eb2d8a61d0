"""
Training Back-Office
Booking domain models.

Models:
    - Booking: a closed course for a client, delivered by one trainer
      from booking_date for num_days consecutive days
    - BookingCandidate: a person attending a booking

Client contact fields are copied onto the booking at creation so the
booking record survives later edits (or soft-deletion) of the client.
"""

from datetime import datetime, time, timedelta, timezone

from backoffice.models import db
from backoffice.utils.helpers import iso


# ── Constants ────────────────────────────────────────────────────────────────

BOOKING_STATUSES = {"confirmed", "provisional", "hold", "cancelled"}
MAX_BOOKING_DAYS = 5
DEFAULT_START_TIME = time(9, 0)


class Booking(db.Model):
    """A closed-course booking."""

    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    trainer_id = db.Column(
        db.Integer, db.ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    course_type_id = db.Column(
        db.Integer, db.ForeignKey("course_types.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    location_id = db.Column(
        db.Integer, db.ForeignKey("client_locations.id", ondelete="SET NULL"), nullable=True,
    )
    booking_date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.Time, nullable=False, default=DEFAULT_START_TIME)
    num_days = db.Column(db.Integer, nullable=False, default=1, comment="1-5 consecutive days")
    title = db.Column(db.String(300), nullable=False)
    location = db.Column(db.String(500), nullable=True, comment="Free-text venue description")

    # Client snapshot
    client_name = db.Column(db.String(200), nullable=True)
    client_contact_name = db.Column(db.String(200), nullable=True)
    client_email = db.Column(db.String(255), nullable=True)
    client_telephone = db.Column(db.String(50), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="confirmed", index=True)
    in_centre = db.Column(db.Boolean, nullable=False, default=False)
    course_level_data = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    trainer = db.relationship("Trainer")
    course_type = db.relationship("CourseType")
    candidates = db.relationship(
        "BookingCandidate", back_populates="booking", cascade="all, delete-orphan",
        order_by="BookingCandidate.id",
    )

    @property
    def end_date(self):
        return self.booking_date + timedelta(days=max(self.num_days or 1, 1) - 1)

    def to_dict(self, include_candidates=False):
        result = {
            "id": self.id,
            "trainer_id": self.trainer_id,
            "trainer_name": self.trainer.name if self.trainer else None,
            "course_type_id": self.course_type_id,
            "course_type_code": self.course_type.code if self.course_type else None,
            "client_id": self.client_id,
            "location_id": self.location_id,
            "booking_date": iso(self.booking_date),
            "end_date": iso(self.end_date),
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "num_days": self.num_days,
            "title": self.title,
            "location": self.location,
            "client_name": self.client_name,
            "client_contact_name": self.client_contact_name,
            "client_email": self.client_email,
            "client_telephone": self.client_telephone,
            "notes": self.notes,
            "status": self.status,
            "in_centre": self.in_centre,
            "course_level_data": self.course_level_data or {},
            "candidate_count": len(self.candidates),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_candidates:
            result["candidates"] = [c.to_dict() for c in self.candidates]
        return result

    def __repr__(self):
        return f"<Booking {self.id}: {self.title[:40]} {self.booking_date}>"


class BookingCandidate(db.Model):
    """A candidate attending a closed-course booking."""

    __tablename__ = "booking_candidates"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(
        db.Integer, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    candidate_name = db.Column(db.String(200), nullable=False)
    telephone = db.Column(db.String(50), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    paid = db.Column(db.Boolean, nullable=False, default=False)
    outstanding_balance = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    passed = db.Column(db.Boolean, nullable=False, default=False)
    course_data = db.Column(db.JSON, nullable=True, comment="Per-candidate course-specific fields")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    booking = db.relationship("Booking", back_populates="candidates")

    def to_dict(self):
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "client_id": self.client_id,
            "candidate_name": self.candidate_name,
            "telephone": self.telephone,
            "email": self.email,
            "paid": self.paid,
            "outstanding_balance": float(self.outstanding_balance or 0),
            "passed": self.passed,
            "course_data": self.course_data or {},
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<BookingCandidate {self.id}: {self.candidate_name[:40]}>"
