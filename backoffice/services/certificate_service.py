"""
Certificate Service.

Course types, certificate templates, certificate issuance/revocation,
XLSX export and public verification.

Rules:
  - Certificate numbers are <CODE>-<YYYY>-<NNNNN>; the sequence is the
    highest existing number for that code and year plus one. The unique
    constraint on certificate_number is the final guard.
  - A booking candidate must be marked passed and hold no other
    non-revoked certificate for the same course type.
  - An open-course delegate must not be cancelled, must have attended
    (attended / late / left_early), and must not already hold a certificate.
  - Required fields declared on the course type must be present in
    course_specific_data.
  - Revoking a delegate's certificate clears the delegate's issued flag.
  - Every public verification lookup is logged, found or not.
"""

from __future__ import annotations

import io
import logging
from datetime import date, datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from sqlalchemy import or_

from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationError
from backoffice.models import db
from backoffice.models.booking import Booking, BookingCandidate
from backoffice.models.certificate import (
    CERTIFICATE_STATUSES, DURATION_UNITS, EXPIRING_SOON_MONTHS, REQUIRED_FIELD_TYPES,
    Certificate, CertificateTemplate, CertificateVerificationLog, CourseType,
    calculate_expiry_date, format_certificate_number,
)
from backoffice.models.open_course import PRESENT_ATTENDANCE, OpenCourseDelegate
from backoffice.models.trainer import TrainerType
from backoffice.services import email_queue_service
from backoffice.utils.helpers import (
    add_months, commit_or_raise, get_or_raise, parse_bool, parse_date_input,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Course types
# ═══════════════════════════════════════════════════════════════════════════

DEFAULT_COURSE_TYPES = [
    {"code": "FLT", "name": "Forklift Truck", "duration_days": 3, "certificate_validity_months": 36,
     "sort_order": 1,
     "required_fields": [
         {"name": "truck_type", "label": "Truck type", "type": "text", "required": True,
          "scope": "candidate"},
     ]},
    {"code": "FA", "name": "First Aid at Work", "duration_days": 3, "certificate_validity_months": 36,
     "sort_order": 2, "required_fields": []},
    {"code": "MHFA", "name": "Mental Health First Aid", "duration_days": 2,
     "certificate_validity_months": 36, "sort_order": 3, "required_fields": []},
    {"code": "CPC", "name": "Driver CPC Periodic Training", "duration_days": 1,
     "certificate_validity_months": 60, "sort_order": 4,
     "required_fields": [
         {"name": "licence_number", "label": "Driving licence number", "type": "text",
          "required": True, "scope": "candidate"},
     ]},
    {"code": "MH", "name": "Manual Handling", "duration_days": 0.5, "duration_unit": "days",
     "certificate_validity_months": 36, "sort_order": 5, "required_fields": []},
]

_COURSE_TYPE_FIELDS = ("name", "description", "duration_days", "duration_unit",
                       "certificate_validity_months", "sort_order", "active", "required_fields",
                       "trainer_type_id")


def _validate_required_fields_definition(fields) -> list[dict]:
    if fields in (None, ""):
        return []
    if not isinstance(fields, list):
        raise ValidationError("required_fields must be a list", details={"required_fields": "invalid"})
    cleaned = []
    for item in fields:
        if not isinstance(item, dict) or not item.get("name"):
            raise ValidationError("Each required field needs a name",
                                  details={"required_fields": "invalid"})
        field_type = item.get("type", "text")
        if field_type not in REQUIRED_FIELD_TYPES:
            raise ValidationError(f"Unknown required field type '{field_type}'",
                                  details={"required_fields": "invalid"})
        cleaned.append({
            "name": item["name"],
            "label": item.get("label") or item["name"],
            "type": field_type,
            "required": parse_bool(item.get("required"), "required", default=True),
            "scope": item.get("scope", "candidate"),
            **({"options": item["options"]} if item.get("options") else {}),
        })
    return cleaned


def _apply_course_type(course_type: CourseType, data: dict) -> None:
    for field in _COURSE_TYPE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "duration_unit" and value not in DURATION_UNITS:
            raise ValidationError(f"duration_unit must be one of: {', '.join(sorted(DURATION_UNITS))}",
                                  details={"duration_unit": "invalid"})
        if field == "certificate_validity_months" and value not in (None, ""):
            value = int(value)
            if value < 0:
                raise ValidationError("certificate_validity_months cannot be negative",
                                      details={"certificate_validity_months": "invalid"})
        elif field == "certificate_validity_months":
            value = None
        if field == "required_fields":
            value = _validate_required_fields_definition(value)
        elif field == "active":
            value = parse_bool(value, field, default=True)
        elif field == "trainer_type_id":
            value = get_or_raise(TrainerType, int(value), "TrainerType").id if value else None
        setattr(course_type, field, value)


def course_type_query(include_inactive: bool = False):
    q = CourseType.query
    if not include_inactive:
        q = q.filter(CourseType.active.is_(True))
    return q.order_by(CourseType.sort_order, CourseType.name)


def get_course_type(course_type_id: int) -> CourseType:
    return get_or_raise(CourseType, course_type_id, "CourseType")


def create_course_type(data: dict) -> CourseType:
    name = (data.get("name") or "").strip()
    code = (data.get("code") or "").strip().upper()
    if not name or not code:
        missing = [f for f, v in (("name", name), ("code", code)) if not v]
        raise ValidationError(f"Missing required fields: {', '.join(missing)}",
                              details={f: "required" for f in missing})
    if not code.isalnum():
        raise ValidationError("code may only contain letters and digits", details={"code": "invalid"})
    if CourseType.query.filter_by(code=code).first() is not None:
        raise ConflictError("CourseType", "code", code)

    course_type = CourseType(code=code, required_fields=[])
    _apply_course_type(course_type, data)
    course_type.name = name
    db.session.add(course_type)
    commit_or_raise("CourseType", "code")
    logger.info("Course type created code=%s", code)
    return course_type


def update_course_type(course_type_id: int, data: dict) -> CourseType:
    course_type = get_course_type(course_type_id)
    if "code" in data:
        code = (data.get("code") or "").strip().upper()
        if code != course_type.code:
            if Certificate.query.filter_by(course_type_id=course_type.id).count():
                raise ValidationError("The code of a course type with certificates cannot change",
                                      details={"code": "immutable"})
            if not code or not code.isalnum():
                raise ValidationError("code may only contain letters and digits",
                                      details={"code": "invalid"})
            if CourseType.query.filter_by(code=code).first() is not None:
                raise ConflictError("CourseType", "code", code)
            course_type.code = code
    if "name" in data and not (data.get("name") or "").strip():
        raise ValidationError("name cannot be blank", details={"name": "required"})
    _apply_course_type(course_type, data)
    commit_or_raise("CourseType", "code")
    return course_type


def delete_course_type(course_type_id: int) -> None:
    course_type = get_course_type(course_type_id)
    if Certificate.query.filter_by(course_type_id=course_type.id).count():
        raise ConflictError("CourseType", "certificates", course_type.code,
                            message="Course type has issued certificates; deactivate it instead")
    for template in CertificateTemplate.query.filter_by(course_type_id=course_type.id).all():
        db.session.delete(template)
    db.session.delete(course_type)
    commit_or_raise("CourseType")
    logger.info("Course type deleted code=%s", course_type.code)


def seed_course_types() -> int:
    added = 0
    for row in DEFAULT_COURSE_TYPES:
        if CourseType.query.filter_by(code=row["code"]).first() is not None:
            continue
        db.session.add(CourseType(**row))
        added += 1
    commit_or_raise("CourseType", "code")
    return added


# ═══════════════════════════════════════════════════════════════════════════
#  Certificate templates
# ═══════════════════════════════════════════════════════════════════════════

_TEMPLATE_FIELDS = ("name", "background_image_url", "page_width", "page_height",
                    "fields_config", "is_active", "course_type_id")


def template_query(course_type_id: int | None = None):
    q = CertificateTemplate.query
    if course_type_id:
        q = q.filter(CertificateTemplate.course_type_id == course_type_id)
    return q.order_by(CertificateTemplate.name)


def get_template(template_id: int) -> CertificateTemplate:
    return get_or_raise(CertificateTemplate, template_id, "CertificateTemplate")


def _apply_template(template: CertificateTemplate, data: dict) -> None:
    for field in _TEMPLATE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in ("page_width", "page_height"):
            value = int(value)
            if value <= 0:
                raise ValidationError(f"{field} must be positive", details={field: "invalid"})
        elif field == "fields_config":
            if not isinstance(value or [], list):
                raise ValidationError("fields_config must be a list", details={field: "invalid"})
            value = value or []
        elif field == "course_type_id" and value:
            value = get_course_type(int(value)).id
        elif field == "is_active":
            value = parse_bool(value, field, default=True)
        setattr(template, field, value)


def create_template(data: dict) -> CertificateTemplate:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    template = CertificateTemplate(name=name, fields_config=[])
    _apply_template(template, data)
    template.name = name
    db.session.add(template)
    commit_or_raise("CertificateTemplate")
    return template


def update_template(template_id: int, data: dict) -> CertificateTemplate:
    template = get_template(template_id)
    if "name" in data and not (data.get("name") or "").strip():
        raise ValidationError("name cannot be blank", details={"name": "required"})
    _apply_template(template, data)
    commit_or_raise("CertificateTemplate")
    return template


def delete_template(template_id: int) -> None:
    template = get_template(template_id)
    db.session.delete(template)
    commit_or_raise("CertificateTemplate")


def duplicate_template(template_id: int) -> CertificateTemplate:
    source = get_template(template_id)
    copy = CertificateTemplate(
        course_type_id=source.course_type_id,
        name=f"{source.name} (Copy)",
        background_image_url=source.background_image_url,
        page_width=source.page_width,
        page_height=source.page_height,
        fields_config=list(source.fields_config or []),
        is_active=True,
    )
    db.session.add(copy)
    commit_or_raise("CertificateTemplate")
    return copy


# ═══════════════════════════════════════════════════════════════════════════
#  Issuing
# ═══════════════════════════════════════════════════════════════════════════


def next_certificate_number(course_type: CourseType, issue_date: date) -> str:
    """Highest existing sequence for <CODE>-<YYYY>- plus one."""
    prefix = f"{course_type.code.upper()}-{issue_date.year}-"
    numbers = (
        db.session.query(Certificate.certificate_number)
        .filter(Certificate.certificate_number.like(f"{prefix}%"))
        .all()
    )
    highest = 0
    for (number,) in numbers:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return format_certificate_number(course_type.code, issue_date.year, highest + 1)


def _check_required_fields(course_type: CourseType, data: dict) -> None:
    missing = {
        f["name"]: f"{f.get('label') or f['name']} is required"
        for f in course_type.required_fields or []
        if f.get("required") and data.get(f["name"]) in (None, "", [])
    }
    if missing:
        raise ValidationError("Required course fields are missing", details=missing)


def _pick_template_id(course_type: CourseType, requested) -> int | None:
    if requested:
        template = get_template(int(requested))
        return template.id
    template = (
        CertificateTemplate.query
        .filter_by(course_type_id=course_type.id, is_active=True)
        .order_by(CertificateTemplate.id)
        .first()
    )
    return template.id if template else None


def _build_certificate(course_type: CourseType, data: dict, **fields) -> Certificate:
    issue_date = parse_date_input(data.get("issue_date")) or date.today()
    course_specific_data = data.get("course_specific_data") or {}
    if not isinstance(course_specific_data, dict):
        raise ValidationError("course_specific_data must be an object",
                              details={"course_specific_data": "invalid"})
    _check_required_fields(course_type, course_specific_data)
    return Certificate(
        certificate_number=next_certificate_number(course_type, issue_date),
        course_type_id=course_type.id,
        certificate_template_id=_pick_template_id(course_type, data.get("certificate_template_id")),
        issue_date=issue_date,
        expiry_date=calculate_expiry_date(issue_date, course_type.certificate_validity_months),
        status="issued",
        course_specific_data=course_specific_data,
        **fields,
    )


def issue_for_candidate(booking_id: int, candidate_id: int, data: dict) -> Certificate:
    """Issue a certificate to a passed booking candidate.

    Raises:
        NotFoundError: Unknown booking/candidate, or candidate not on the booking.
        ValidationError: No course type, candidate not passed, missing required fields.
        ConflictError: Candidate already holds a non-revoked certificate.
    """
    booking = get_or_raise(Booking, booking_id)
    candidate = db.session.get(BookingCandidate, candidate_id)
    if candidate is None or candidate.booking_id != booking.id:
        raise NotFoundError(resource="BookingCandidate", resource_id=candidate_id)

    course_type_id = data.get("course_type_id") or booking.course_type_id
    if not course_type_id:
        raise ValidationError("Booking has no course type", details={"course_type_id": "required"})
    course_type = get_course_type(int(course_type_id))

    if not candidate.passed:
        raise ValidationError(f"{candidate.candidate_name} has not been marked as passed")
    existing = Certificate.query.filter(
        Certificate.candidate_id == candidate.id,
        Certificate.status != "revoked",
    ).first()
    if existing is not None:
        raise ConflictError("Certificate", "candidate_id", str(candidate.id),
                            message=f"Candidate already holds certificate {existing.certificate_number}")

    merged = {"course_specific_data": {**(candidate.course_data or {}),
                                       **(data.get("course_specific_data") or {})}}
    cert = _build_certificate(
        course_type, {**data, **merged},
        booking_id=booking.id,
        candidate_id=candidate.id,
        candidate_name=candidate.candidate_name,
        candidate_email=candidate.email,
        trainer_id=booking.trainer_id,
        trainer_name=booking.trainer.name if booking.trainer else None,
        course_date_start=booking.booking_date,
        course_date_end=booking.end_date,
    )
    db.session.add(cert)
    commit_or_raise("Certificate", "certificate_number",
                    message="Certificate number already issued; please retry")
    logger.info("Certificate issued %s booking=%s candidate=%s", cert.certificate_number,
                booking.id, candidate.id,
                extra={"certificate_number": cert.certificate_number, "booking_id": booking.id})
    return cert


def issue_for_delegate(delegate_id: int, data: dict) -> Certificate:
    """Issue a certificate to an open-course delegate who attended."""
    delegate = get_or_raise(OpenCourseDelegate, delegate_id, "OpenCourseDelegate")
    session = delegate.session
    if delegate.cancelled:
        raise ValidationError("Cancelled delegates cannot receive certificates")
    if delegate.attendance_detail not in PRESENT_ATTENDANCE:
        raise ValidationError(f"{delegate.delegate_name} has no recorded attendance")
    if delegate.certificate_issued:
        raise ConflictError("Certificate", "open_course_delegate_id", str(delegate.id),
                            message=f"Delegate already holds certificate {delegate.certificate_number}")

    course_type_id = data.get("course_type_id") or session.course_type_id
    if not course_type_id:
        raise ValidationError("Session has no course type", details={"course_type_id": "required"})
    course_type = get_course_type(int(course_type_id))

    delegate_data = {
        "licence_number": delegate.licence_number,
        "licence_category": delegate.licence_category,
    }
    merged = {k: v for k, v in delegate_data.items() if v}
    merged.update(data.get("course_specific_data") or {})
    cert = _build_certificate(
        course_type, {**data, "course_specific_data": merged},
        open_course_session_id=session.id,
        open_course_delegate_id=delegate.id,
        candidate_name=delegate.delegate_name,
        candidate_email=delegate.delegate_email,
        trainer_id=session.trainer_id,
        trainer_name=session.trainer.name if session.trainer else None,
        course_date_start=session.session_date,
        course_date_end=session.end_date or session.session_date,
    )
    db.session.add(cert)
    delegate.certificate_issued = True
    delegate.certificate_number = cert.certificate_number
    commit_or_raise("Certificate", "certificate_number",
                    message="Certificate number already issued; please retry")
    logger.info("Certificate issued %s delegate=%s", cert.certificate_number, delegate.id,
                extra={"certificate_number": cert.certificate_number, "session_id": session.id})
    return cert


def revoke_certificate(certificate_id: int, reason: str | None) -> Certificate:
    cert = get_certificate(certificate_id)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A revocation reason is required", details={"reason": "required"})
    if cert.status == "revoked":
        raise ConflictError("Certificate", "status", "revoked", message="Certificate is already revoked")

    cert.status = "revoked"
    cert.revoked_at = datetime.now(timezone.utc)
    cert.revoked_reason = reason[:500]
    if cert.open_course_delegate_id:
        delegate = db.session.get(OpenCourseDelegate, cert.open_course_delegate_id)
        if delegate is not None and delegate.certificate_number == cert.certificate_number:
            delegate.certificate_issued = False
            delegate.certificate_number = None
    commit_or_raise("Certificate")
    logger.warning("Certificate revoked %s: %s", cert.certificate_number, reason,
                   extra={"certificate_number": cert.certificate_number})
    return cert


# ═══════════════════════════════════════════════════════════════════════════
#  Reads, email, export
# ═══════════════════════════════════════════════════════════════════════════


def get_certificate(certificate_id: int) -> Certificate:
    return get_or_raise(Certificate, certificate_id)


def certificate_query(
    course_type_id: int | None = None,
    status: str | None = None,
    expiry: str | None = None,
    issued_from: date | None = None,
    issued_to: date | None = None,
    search: str | None = None,
    today: date | None = None,
):
    """Filtered certificate query.

    expiry: valid | expiring_soon | expired (computed from expiry_date)
    """
    today = today or date.today()
    q = Certificate.query
    if course_type_id:
        q = q.filter(Certificate.course_type_id == course_type_id)
    if status:
        if status not in CERTIFICATE_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(sorted(CERTIFICATE_STATUSES))}")
        q = q.filter(Certificate.status == status)
    if expiry:
        soon = add_months(today, EXPIRING_SOON_MONTHS)
        if expiry == "expired":
            q = q.filter(Certificate.expiry_date < today)
        elif expiry == "expiring_soon":
            q = q.filter(Certificate.expiry_date >= today, Certificate.expiry_date <= soon)
        elif expiry == "valid":
            q = q.filter(or_(Certificate.expiry_date.is_(None), Certificate.expiry_date > soon))
        else:
            raise ValueError("expiry must be one of: expired, expiring_soon, valid")
    if issued_from:
        q = q.filter(Certificate.issue_date >= issued_from)
    if issued_to:
        q = q.filter(Certificate.issue_date <= issued_to)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            Certificate.candidate_name.ilike(like),
            Certificate.certificate_number.ilike(like),
        ))
    return q.order_by(Certificate.issue_date.desc(), Certificate.id.desc())


def send_certificate_email(certificate_id: int, verify_base_url: str = "") -> Certificate:
    """Queue the candidate copy of a certificate and stamp sent_at."""
    cert = get_certificate(certificate_id)
    if cert.status == "revoked":
        raise ValidationError("Revoked certificates cannot be sent")
    if not cert.candidate_email:
        raise ValidationError("Certificate has no candidate email address",
                              details={"candidate_email": "required"})

    template_data = {
        "candidate_name": cert.candidate_name,
        "course_name": cert.course_type.name if cert.course_type else "",
        "course_date": cert.course_date_start.strftime("%d/%m/%Y"),
        "certificate_number": cert.certificate_number,
        "issue_date": cert.issue_date.strftime("%d/%m/%Y"),
        "expiry_date": cert.expiry_date.strftime("%d/%m/%Y") if cert.expiry_date else "no expiry",
        "trainer_name": cert.trainer_name,
        "verify_url": f"{verify_base_url.rstrip('/')}/{cert.certificate_number}" if verify_base_url
        else cert.certificate_number,
    }
    email_queue_service.queue_email({
        "recipient_email": cert.candidate_email,
        "recipient_name": cert.candidate_name,
        "template_key": "send_certificate_candidate",
        "template_data": template_data,
        "priority": 3,
    })
    cert.sent_at = datetime.now(timezone.utc)
    commit_or_raise("Certificate")
    logger.info("Certificate %s queued for email", cert.certificate_number,
                extra={"certificate_number": cert.certificate_number})
    return cert


HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
STATUS_FILLS = {
    "expired": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
    "expiring_soon": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
    "revoked": PatternFill(start_color="7F8C8D", end_color="7F8C8D", fill_type="solid"),
}
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

_EXPORT_COLUMNS = [
    ("Certificate No.", "certificate_number", 20),
    ("Candidate", "candidate_name", 28),
    ("Email", "candidate_email", 30),
    ("Course", "course_type_name", 28),
    ("Trainer", "trainer_name", 22),
    ("Course Start", "course_date_start", 14),
    ("Course End", "course_date_end", 14),
    ("Issued", "issue_date", 14),
    ("Expires", "expiry_date", 14),
    ("Status", "status", 12),
    ("Expiry Status", "expiry_status", 16),
]


def export_certificates_xlsx(certificates: list[Certificate]) -> io.BytesIO:
    """
    Generate a styled Excel workbook of certificates.
    Returns a BytesIO buffer ready for Flask send_file.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Certificates"

    ws["A1"] = "Certificate Register"
    ws["A1"].font = Font(size=16, bold=True)
    ws["A2"] = f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    header_row = 4
    for col, (header, _, width) in enumerate(_EXPORT_COLUMNS, 1):
        cell = ws.cell(row=header_row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center")
        ws.column_dimensions[get_column_letter(col)].width = width

    for offset, cert in enumerate(certificates, 1):
        row = cert.to_dict()
        for col, (_, key, _) in enumerate(_EXPORT_COLUMNS, 1):
            cell = ws.cell(row=header_row + offset, column=col, value=row.get(key))
            cell.border = THIN_BORDER
        flag = "revoked" if cert.status == "revoked" else row["expiry_status"]
        fill = STATUS_FILLS.get(flag)
        if fill is not None:
            ws.cell(row=header_row + offset, column=len(_EXPORT_COLUMNS)).fill = fill

    ws.freeze_panes = ws.cell(row=header_row + 1, column=1)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


# ═══════════════════════════════════════════════════════════════════════════
#  Public verification
# ═══════════════════════════════════════════════════════════════════════════


def verify_certificate(number: str | None, ip_address: str | None = None) -> dict:
    """Look up a certificate by number for the public verification page.

    Returns {"result": valid|invalid|revoked|expired, "certificate": public fields or None}.
    """
    normalized = (number or "").strip().upper()
    cert = (
        Certificate.query.filter(Certificate.certificate_number == normalized).first()
        if normalized else None
    )

    if cert is None:
        result = "invalid"
    elif cert.status == "revoked":
        result = "revoked"
    elif cert.status == "expired" or (cert.expiry_date is not None and cert.expiry_date < date.today()):
        result = "expired"
    else:
        result = "valid"

    db.session.add(CertificateVerificationLog(
        certificate_number=normalized[:100] or "(blank)",
        certificate_id=cert.id if cert else None,
        ip_address=ip_address,
        result=result,
    ))
    commit_or_raise("CertificateVerificationLog")
    logger.info("Certificate verification %s → %s", normalized, result,
                extra={"certificate_number": normalized, "remote_addr": ip_address})

    return {
        "certificate_number": normalized,
        "result": result,
        "certificate": cert.to_public_dict() if cert else None,
    }


def verification_log_query(certificate_number: str | None = None):
    q = CertificateVerificationLog.query
    if certificate_number:
        q = q.filter(CertificateVerificationLog.certificate_number == certificate_number.strip().upper())
    return q.order_by(CertificateVerificationLog.verified_at.desc(), CertificateVerificationLog.id.desc())
