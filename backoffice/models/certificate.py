"""
Training Back-Office
Certificate domain models.

Models:
    - CourseType: course catalogue entry (code prefixes certificate numbers)
    - CertificateTemplate: layout for printing certificates of a course type
    - Certificate: an issued certificate (booking candidate or open-course delegate)
    - CertificateVerificationLog: audit row for every public verification lookup

Certificate number format: <COURSE CODE>-<YYYY>-<5-digit sequence>,
e.g. FLT-2026-00042.
"""

from datetime import date, datetime, timezone

from backoffice.models import db
from backoffice.utils.helpers import add_months, iso


# ── Constants ────────────────────────────────────────────────────────────────

CERTIFICATE_STATUSES = {"issued", "revoked", "expired"}
VERIFICATION_RESULTS = {"valid", "invalid", "revoked", "expired"}
EXPIRY_STATUSES = {"valid", "expiring_soon", "expired"}
DURATION_UNITS = {"hours", "days"}
REQUIRED_FIELD_TYPES = {"text", "number", "date", "select", "checkbox"}

EXPIRING_SOON_MONTHS = 3
CERTIFICATE_SEQUENCE_WIDTH = 5


# ── Expiry helpers ──────────────────────────────────────────────────────────

def calculate_expiry_date(issue_date: date, validity_months: int | None) -> date | None:
    """Issue date plus the course type's validity; None when it never expires."""
    if not validity_months:
        return None
    return add_months(issue_date, int(validity_months))


def expiry_status(expiry_date: date | None, today: date | None = None) -> str:
    """
    Classify a certificate's expiry.
      no expiry date            → valid
      before today              → expired
      within 3 months of today  → expiring_soon
      otherwise                 → valid
    """
    if expiry_date is None:
        return "valid"
    today = today or date.today()
    if expiry_date < today:
        return "expired"
    if expiry_date <= add_months(today, EXPIRING_SOON_MONTHS):
        return "expiring_soon"
    return "valid"


def days_until_expiry(expiry_date: date | None, today: date | None = None) -> int | None:
    if expiry_date is None:
        return None
    today = today or date.today()
    return max((expiry_date - today).days, 0)


def format_certificate_number(code: str, year: int, sequence: int) -> str:
    return f"{code.upper()}-{year}-{sequence:0{CERTIFICATE_SEQUENCE_WIDTH}d}"


# ═══════════════════════════════════════════════════════════════════════════
#  COURSE TYPE
# ═══════════════════════════════════════════════════════════════════════════

class CourseType(db.Model):
    """
    A course in the catalogue.

    required_fields is a list of field definitions that must be captured
    before a certificate can be issued, e.g.
        [{"name": "truck_type", "label": "Truck type", "type": "select",
          "required": true, "scope": "candidate", "options": ["Counterbalance"]}]
    """

    __tablename__ = "course_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(20), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    duration_days = db.Column(db.Numeric(5, 1), nullable=True)
    duration_unit = db.Column(db.String(10), nullable=False, default="days")
    certificate_validity_months = db.Column(db.Integer, nullable=True,
                                            comment="NULL = certificate never expires")
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    active = db.Column(db.Boolean, nullable=False, default=True)
    required_fields = db.Column(db.JSON, nullable=False, default=list)
    trainer_type_id = db.Column(
        db.Integer, db.ForeignKey("trainer_types.id", ondelete="SET NULL"), nullable=True, index=True,
        comment="Qualification the trainer must hold; NULL = any trainer",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    trainer_type = db.relationship("TrainerType")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "duration_days": float(self.duration_days) if self.duration_days is not None else None,
            "duration_unit": self.duration_unit,
            "certificate_validity_months": self.certificate_validity_months,
            "sort_order": self.sort_order,
            "active": self.active,
            "required_fields": self.required_fields or [],
            "trainer_type_id": self.trainer_type_id,
            "trainer_type_name": self.trainer_type.name if self.trainer_type else None,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<CourseType {self.code}: {self.name[:40]}>"


# ═══════════════════════════════════════════════════════════════════════════
#  CERTIFICATE TEMPLATE
# ═══════════════════════════════════════════════════════════════════════════

class CertificateTemplate(db.Model):
    """Print layout for a course type's certificates (A4 landscape at 150 dpi by default)."""

    __tablename__ = "certificate_templates"

    id = db.Column(db.Integer, primary_key=True)
    course_type_id = db.Column(
        db.Integer, db.ForeignKey("course_types.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    background_image_url = db.Column(db.String(1000), nullable=True)
    page_width = db.Column(db.Integer, nullable=False, default=1754)
    page_height = db.Column(db.Integer, nullable=False, default=1240)
    fields_config = db.Column(db.JSON, nullable=False, default=list,
                              comment="Positioned fields: [{field, x, y, font_size, ...}]")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    course_type = db.relationship("CourseType")

    def to_dict(self):
        return {
            "id": self.id,
            "course_type_id": self.course_type_id,
            "course_type_name": self.course_type.name if self.course_type else None,
            "name": self.name,
            "background_image_url": self.background_image_url,
            "page_width": self.page_width,
            "page_height": self.page_height,
            "fields_config": self.fields_config or [],
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<CertificateTemplate {self.id}: {self.name[:40]}>"


# ═══════════════════════════════════════════════════════════════════════════
#  CERTIFICATE
# ═══════════════════════════════════════════════════════════════════════════

class Certificate(db.Model):
    """An issued training certificate."""

    __tablename__ = "certificates"

    id = db.Column(db.Integer, primary_key=True)
    certificate_number = db.Column(db.String(40), nullable=False, unique=True, index=True)
    course_type_id = db.Column(
        db.Integer, db.ForeignKey("course_types.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    certificate_template_id = db.Column(
        db.Integer, db.ForeignKey("certificate_templates.id", ondelete="SET NULL"), nullable=True,
    )

    # Source: either a closed booking candidate or an open-course delegate
    booking_id = db.Column(
        db.Integer, db.ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    candidate_id = db.Column(
        db.Integer, db.ForeignKey("booking_candidates.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    open_course_session_id = db.Column(
        db.Integer, db.ForeignKey("open_course_sessions.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    open_course_delegate_id = db.Column(
        db.Integer, db.ForeignKey("open_course_delegates.id", ondelete="SET NULL"), nullable=True, index=True,
    )

    candidate_name = db.Column(db.String(200), nullable=False)
    candidate_email = db.Column(db.String(255), nullable=True)
    trainer_id = db.Column(
        db.Integer, db.ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True,
    )
    trainer_name = db.Column(db.String(200), nullable=True)
    course_date_start = db.Column(db.Date, nullable=False)
    course_date_end = db.Column(db.Date, nullable=True)
    issue_date = db.Column(db.Date, nullable=False, index=True)
    expiry_date = db.Column(db.Date, nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default="issued", index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(500), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    course_specific_data = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    course_type = db.relationship("CourseType")

    @property
    def expiry_status(self):
        return expiry_status(self.expiry_date)

    def to_dict(self):
        return {
            "id": self.id,
            "certificate_number": self.certificate_number,
            "course_type_id": self.course_type_id,
            "course_type_name": self.course_type.name if self.course_type else None,
            "course_type_code": self.course_type.code if self.course_type else None,
            "certificate_template_id": self.certificate_template_id,
            "booking_id": self.booking_id,
            "candidate_id": self.candidate_id,
            "open_course_session_id": self.open_course_session_id,
            "open_course_delegate_id": self.open_course_delegate_id,
            "candidate_name": self.candidate_name,
            "candidate_email": self.candidate_email,
            "trainer_id": self.trainer_id,
            "trainer_name": self.trainer_name,
            "course_date_start": iso(self.course_date_start),
            "course_date_end": iso(self.course_date_end),
            "issue_date": iso(self.issue_date),
            "expiry_date": iso(self.expiry_date),
            "expiry_status": self.expiry_status,
            "days_until_expiry": days_until_expiry(self.expiry_date),
            "status": self.status,
            "revoked_at": iso(self.revoked_at),
            "revoked_reason": self.revoked_reason,
            "sent_at": iso(self.sent_at),
            "course_specific_data": self.course_specific_data or {},
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def to_public_dict(self):
        """Fields safe to show on the public verification page."""
        return {
            "certificate_number": self.certificate_number,
            "candidate_name": self.candidate_name,
            "course_name": self.course_type.name if self.course_type else None,
            "course_date_start": iso(self.course_date_start),
            "course_date_end": iso(self.course_date_end),
            "issue_date": iso(self.issue_date),
            "expiry_date": iso(self.expiry_date),
            "trainer_name": self.trainer_name,
        }

    def __repr__(self):
        return f"<Certificate {self.certificate_number}>"


class CertificateVerificationLog(db.Model):
    """One row per public verification lookup, found or not."""

    __tablename__ = "certificate_verification_log"

    id = db.Column(db.Integer, primary_key=True)
    certificate_number = db.Column(db.String(100), nullable=False, index=True)
    certificate_id = db.Column(
        db.Integer, db.ForeignKey("certificates.id", ondelete="SET NULL"), nullable=True,
    )
    ip_address = db.Column(db.String(64), nullable=True)
    result = db.Column(db.String(20), nullable=False, comment="valid | invalid | revoked | expired")
    verified_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "certificate_number": self.certificate_number,
            "certificate_id": self.certificate_id,
            "ip_address": self.ip_address,
            "result": self.result,
            "verified_at": iso(self.verified_at),
        }
