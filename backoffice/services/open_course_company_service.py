"""
Open Course Company Service.

Employers that send delegates to open courses. A delegate may be linked to
one company; deleting a company unlinks its delegates and keeps them.

Stats per company:
  delegate_count       non-cancelled linked delegates
  courses_completed    of those, attendance attended | late | left_early
  certificates_issued  non-revoked certificates raised for those delegates
"""

from __future__ import annotations

import logging

from sqlalchemy import case, func, or_

from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationError
from backoffice.models import db
from backoffice.models.certificate import Certificate, CourseType
from backoffice.models.open_course import (
    PRESENT_ATTENDANCE, OpenCourseCompany, OpenCourseDelegate, OpenCourseSession,
)
from backoffice.utils.helpers import clean_email, commit_or_raise, get_or_raise, parse_bool

logger = logging.getLogger(__name__)

_FIELDS = ("name", "contact_name", "email", "telephone", "address1", "address2",
           "town", "postcode", "notes")


def get_company(company_id: int) -> OpenCourseCompany:
    return get_or_raise(OpenCourseCompany, company_id, "OpenCourseCompany")


def company_query(search: str | None = None, active_only: bool = True):
    q = OpenCourseCompany.query
    if active_only:
        q = q.filter(OpenCourseCompany.active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            OpenCourseCompany.name.ilike(like),
            OpenCourseCompany.contact_name.ilike(like),
            OpenCourseCompany.email.ilike(like),
        ))
    return q.order_by(OpenCourseCompany.name, OpenCourseCompany.id)


def company_stats(company_ids: list[int]) -> dict[int, dict]:
    """{company_id: {delegate_count, courses_completed, certificates_issued}}."""
    stats = {cid: {"delegate_count": 0, "courses_completed": 0, "certificates_issued": 0}
             for cid in company_ids}
    if not company_ids:
        return stats

    live = OpenCourseDelegate.cancelled.is_(False)
    rows = (
        db.session.query(
            OpenCourseDelegate.company_id,
            func.count(OpenCourseDelegate.id),
            func.sum(case(
                (OpenCourseDelegate.attendance_detail.in_(PRESENT_ATTENDANCE), 1), else_=0)),
        )
        .filter(OpenCourseDelegate.company_id.in_(company_ids), live)
        .group_by(OpenCourseDelegate.company_id)
        .all()
    )
    for cid, delegates, completed in rows:
        stats[cid]["delegate_count"] = delegates
        stats[cid]["courses_completed"] = int(completed or 0)

    certs = (
        db.session.query(OpenCourseDelegate.company_id, func.count(Certificate.id))
        .join(Certificate, Certificate.open_course_delegate_id == OpenCourseDelegate.id)
        .filter(OpenCourseDelegate.company_id.in_(company_ids), live,
                Certificate.status != "revoked")
        .group_by(OpenCourseDelegate.company_id)
        .all()
    )
    for cid, count in certs:
        stats[cid]["certificates_issued"] = count
    return stats


def with_stats(companies: list[OpenCourseCompany]) -> list[dict]:
    stats = company_stats([c.id for c in companies])
    return [{**c.to_dict(), **stats[c.id]} for c in companies]


def company_detail(company_id: int) -> dict:
    return with_stats([get_company(company_id)])[0]


def dropdown() -> list[dict]:
    """Active companies as id/name pairs for pickers."""
    rows = company_query().with_entities(OpenCourseCompany.id, OpenCourseCompany.name).all()
    return [{"id": cid, "name": name} for cid, name in rows]


# ── Create / update / delete ─────────────────────────────────────────────────


def _name_taken(name: str, exclude_id: int | None = None) -> bool:
    q = OpenCourseCompany.query.filter(func.lower(OpenCourseCompany.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(OpenCourseCompany.id != exclude_id)
    return q.first() is not None


def _apply(company: OpenCourseCompany, data: dict) -> None:
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Company name is required.", details={"name": "required"})
        if _name_taken(name, company.id):
            raise ConflictError("OpenCourseCompany", "name", name,
                                message=f"A company named '{name}' already exists")
    for field in _FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "email":
            value = clean_email(value)
        elif isinstance(value, str):
            value = value.strip() or None
        setattr(company, field, value)
    if "active" in data:
        company.active = parse_bool(data["active"], "active", default=True)


def create_company(data: dict) -> OpenCourseCompany:
    """Create a company.

    Raises:
        ValidationError: Name missing or email malformed.
        ConflictError: Another company has the same name, ignoring case.
    """
    if not (data.get("name") or "").strip():
        raise ValidationError("Company name is required.", details={"name": "required"})
    company = OpenCourseCompany()
    _apply(company, data)
    db.session.add(company)
    commit_or_raise("OpenCourseCompany")
    logger.info("Open course company created id=%s name=%s", company.id, company.name)
    return company


def update_company(company_id: int, data: dict) -> OpenCourseCompany:
    company = get_company(company_id)
    _apply(company, data)
    commit_or_raise("OpenCourseCompany")
    return company


def delete_company(company_id: int) -> int:
    """Delete a company and unlink its delegates. Returns how many were unlinked."""
    company = get_company(company_id)
    unlinked = OpenCourseDelegate.query.filter_by(company_id=company.id).update(
        {"company_id": None}, synchronize_session=False)
    db.session.delete(company)
    commit_or_raise("OpenCourseCompany")
    logger.info("Open course company deleted id=%s unlinked=%s", company_id, unlinked)
    return unlinked


def find_or_create_by_name(name: str) -> OpenCourseCompany:
    """Case-insensitive lookup by name; creates the company when there is none."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Company name is required.", details={"name": "required"})
    company = OpenCourseCompany.query.filter(
        func.lower(OpenCourseCompany.name) == name.lower()
    ).order_by(OpenCourseCompany.id).first()
    if company is not None:
        return company
    return create_company({"name": name})


# ── Delegates ────────────────────────────────────────────────────────────────


def company_delegates(company_id: int) -> list[dict]:
    """Linked delegates newest session first, with session, course, venue and certificate."""
    get_company(company_id)
    rows = (
        OpenCourseDelegate.query
        .join(OpenCourseSession, OpenCourseSession.id == OpenCourseDelegate.session_id)
        .filter(OpenCourseDelegate.company_id == company_id)
        .order_by(OpenCourseSession.session_date.desc(), OpenCourseDelegate.delegate_name)
        .all()
    )
    if not rows:
        return []
    certs = {
        c.open_course_delegate_id: c
        for c in Certificate.query.filter(
            Certificate.open_course_delegate_id.in_([d.id for d in rows]),
            Certificate.status != "revoked",
        )
    }
    items = []
    for delegate in rows:
        session = delegate.session
        cert = certs.get(delegate.id)
        items.append({
            **delegate.to_dict(include_session=True),
            "course_type_name": session.course_type.name if session.course_type else None,
            "venue_name": session.venue.name if session.venue else None,
            "certificate": cert.to_dict() if cert else None,
        })
    return items


def company_course_summary(company_id: int) -> list[dict]:
    """Per course type: sessions attended by the company, delegates sent, certificates issued."""
    get_company(company_id)
    live = (OpenCourseDelegate.company_id == company_id, OpenCourseDelegate.cancelled.is_(False))
    rows = (
        db.session.query(
            CourseType.id, CourseType.name,
            func.count(func.distinct(OpenCourseDelegate.session_id)),
            func.count(OpenCourseDelegate.id),
        )
        .select_from(OpenCourseDelegate)
        .join(OpenCourseSession, OpenCourseSession.id == OpenCourseDelegate.session_id)
        .join(CourseType, CourseType.id == OpenCourseSession.course_type_id)
        .filter(*live)
        .group_by(CourseType.id, CourseType.name)
        .all()
    )
    certs = dict(
        db.session.query(OpenCourseSession.course_type_id, func.count(Certificate.id))
        .select_from(OpenCourseDelegate)
        .join(OpenCourseSession, OpenCourseSession.id == OpenCourseDelegate.session_id)
        .join(Certificate, Certificate.open_course_delegate_id == OpenCourseDelegate.id)
        .filter(*live, Certificate.status != "revoked")
        .group_by(OpenCourseSession.course_type_id)
        .all()
    )
    summary = [
        {
            "course_type_id": ct_id,
            "course_type_name": name,
            "sessions_count": sessions,
            "delegates_count": delegates,
            "certificates_issued": certs.get(ct_id, 0),
        }
        for ct_id, name, sessions, delegates in rows
    ]
    return sorted(summary, key=lambda row: row["course_type_name"].lower())


def link_delegate(delegate_id: int, company_id: int | None) -> OpenCourseDelegate:
    """Link a delegate to a company, or unlink with company_id None."""
    delegate = get_or_raise(OpenCourseDelegate, delegate_id, "OpenCourseDelegate")
    delegate.company_id = get_company(company_id).id if company_id else None
    commit_or_raise("OpenCourseDelegate")
    return delegate


def bulk_link(delegate_ids: list[int], company_id: int) -> int:
    """Link many delegates to one company. Unknown ids fail the whole request."""
    company = get_company(company_id)
    ids = sorted({int(i) for i in delegate_ids})
    if not ids:
        raise ValidationError("delegate_ids is required.", details={"delegate_ids": "required"})
    found = {d_id for (d_id,) in db.session.query(OpenCourseDelegate.id)
             .filter(OpenCourseDelegate.id.in_(ids))}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFoundError(resource="OpenCourseDelegate", resource_id=missing[0])
    OpenCourseDelegate.query.filter(OpenCourseDelegate.id.in_(ids)).update(
        {"company_id": company.id}, synchronize_session=False)
    commit_or_raise("OpenCourseDelegate")
    logger.info("Linked %s delegate(s) to company %s", len(ids), company.id)
    return len(ids)
