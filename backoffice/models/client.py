"""
Training Back-Office
Client domain models.

Models:
    - Client: a customer company that books closed courses
    - ClientLocation: a delivery site belonging to a client (one default per client)

Both are soft-deleted: bookings keep their FK and their contact snapshot.
"""

from datetime import datetime, timezone

from backoffice.models import db
from backoffice.models.soft_delete import SoftDeleteMixin
from backoffice.utils.helpers import iso


class Client(SoftDeleteMixin, db.Model):
    """A customer organisation."""

    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    contact_name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    telephone = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    locations = db.relationship(
        "ClientLocation", back_populates="client", lazy="dynamic",
        order_by="ClientLocation.location_name",
    )

    def active_locations(self):
        return self.locations.filter(ClientLocation.deleted_at.is_(None)).all()

    def to_dict(self, include_locations=False):
        result = {
            "id": self.id,
            "name": self.name,
            "contact_name": self.contact_name,
            "email": self.email,
            "telephone": self.telephone,
            "notes": self.notes,
            "deleted_at": iso(self.deleted_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_locations:
            result["locations"] = [loc.to_dict() for loc in self.active_locations()]
        return result

    def __repr__(self):
        return f"<Client {self.id}: {self.name[:40]}>"


class ClientLocation(SoftDeleteMixin, db.Model):
    """A training delivery site for a client."""

    __tablename__ = "client_locations"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    location_name = db.Column(db.String(200), nullable=False)
    address1 = db.Column(db.String(200), nullable=True)
    address2 = db.Column(db.String(200), nullable=True)
    town = db.Column(db.String(100), nullable=True)
    postcode = db.Column(db.String(20), nullable=True)
    contact_name = db.Column(db.String(200), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_telephone = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    client = db.relationship("Client", back_populates="locations")

    @property
    def full_address(self):
        parts = [self.address1, self.address2, self.town, self.postcode]
        return ", ".join(p for p in parts if p)

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "location_name": self.location_name,
            "address1": self.address1,
            "address2": self.address2,
            "town": self.town,
            "postcode": self.postcode,
            "full_address": self.full_address,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_telephone": self.contact_telephone,
            "notes": self.notes,
            "is_default": self.is_default,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ClientLocation {self.id}: {self.location_name[:40]}>"
