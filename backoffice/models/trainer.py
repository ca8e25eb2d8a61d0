"""
Training Back-Office
Trainer domain models.

Models:
    - Trainer: a person who delivers courses (suspended, never deleted)
    - TrainerUnavailability: one row per trainer per unavailable date
    - TrainerType: a qualification a course type can demand of its trainer
    - TrainerTrainerType: the types a trainer holds (unique per pair)
"""

from datetime import datetime, timezone

from backoffice.models import db
from backoffice.utils.helpers import iso


# ── Constants ────────────────────────────────────────────────────────────────

UNAVAILABILITY_STATUSES = {"unavailable", "provisionally_booked"}


class Trainer(db.Model):
    """A course trainer. One trainer per login user (user_id unique)."""

    __tablename__ = "trainers"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=True, unique=True,
                        comment="External identity of the trainer's login, one trainer per user")
    name = db.Column(db.String(200), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    telephone = db.Column(db.String(50), nullable=True)
    address1 = db.Column(db.String(200), nullable=True)
    address2 = db.Column(db.String(200), nullable=True)
    town = db.Column(db.String(100), nullable=True)
    postcode = db.Column(db.String(20), nullable=True)
    day_rate = db.Column(db.Numeric(10, 2), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)
    suspended = db.Column(db.Boolean, nullable=False, default=False, index=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    receive_booking_notifications = db.Column(db.Boolean, nullable=False, default=True)
    insurance_expiry = db.Column(db.Date, nullable=True)
    insurance_reminder_sent_at = db.Column(
        db.DateTime(timezone=True), nullable=True,
        comment="Cleared whenever insurance_expiry changes",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "telephone": self.telephone,
            "address1": self.address1,
            "address2": self.address2,
            "town": self.town,
            "postcode": self.postcode,
            "day_rate": float(self.day_rate) if self.day_rate is not None else None,
            "active": self.active,
            "suspended": self.suspended,
            "display_order": self.display_order,
            "receive_booking_notifications": self.receive_booking_notifications,
            "insurance_expiry": iso(self.insurance_expiry),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Trainer {self.id}: {self.name[:40]}>"


class TrainerUnavailability(db.Model):
    """A date on which a trainer cannot take (new) bookings."""

    __tablename__ = "trainer_unavailability"
    __table_args__ = (
        db.UniqueConstraint("trainer_id", "unavailable_date", name="uq_trainer_unavailable_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    trainer_id = db.Column(
        db.Integer, db.ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    unavailable_date = db.Column(db.Date, nullable=False, index=True)
    reason = db.Column(db.String(500), nullable=True)
    status = db.Column(db.String(30), nullable=False, default="unavailable",
                       comment="unavailable | provisionally_booked")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    trainer = db.relationship("Trainer")

    def to_dict(self):
        return {
            "id": self.id,
            "trainer_id": self.trainer_id,
            "trainer_name": self.trainer.name if self.trainer else None,
            "unavailable_date": iso(self.unavailable_date),
            "reason": self.reason,
            "status": self.status,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<TrainerUnavailability trainer={self.trainer_id} {self.unavailable_date}>"


class TrainerType(db.Model):
    """A trainer qualification, e.g. "Counterbalance instructor"."""

    __tablename__ = "trainer_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<TrainerType {self.id}: {self.name[:40]}>"


class TrainerTrainerType(db.Model):
    __tablename__ = "trainer_trainer_types"
    __table_args__ = (
        db.UniqueConstraint("trainer_id", "trainer_type_id", name="uq_trainer_trainer_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    trainer_id = db.Column(
        db.Integer, db.ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    trainer_type_id = db.Column(
        db.Integer, db.ForeignKey("trainer_types.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    trainer_type = db.relationship("TrainerType")

    def __repr__(self):
        return f"<TrainerTrainerType trainer={self.trainer_id} type={self.trainer_type_id}>"
