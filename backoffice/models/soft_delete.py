"""
``deleted_at`` marker for records that bookings keep pointing at.

Clients and client locations are archived rather than removed so past
bookings still resolve their customer and site.
"""

from datetime import datetime, timezone

from backoffice.models import db


class SoftDeleteMixin:
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self):
        self.deleted_at = datetime.now(timezone.utc)

    def restore(self):
        self.deleted_at = None

    @classmethod
    def query_active(cls):
        """``cls.query`` without archived rows."""
        return cls.query.filter(cls.deleted_at.is_(None))
