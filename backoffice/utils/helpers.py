"""Shared utility functions used by services and blueprints.

get_or_raise:        PK lookup raising NotFoundError
parse_date:          returns None on bad input
parse_date_input:    raises ValueError on bad input (blueprints turn it into 400)
parse_time_input:    HH:MM strings, raises ValueError on bad input
add_months:          calendar month arithmetic, day clamped to month end
date_range:          inclusive list of dates
clean_email:         email_validator normalisation → ValidationError
parse_bool:          JSON / form booleans, "false" is False → ValidationError otherwise
commit_or_raise:     commit with rollback + IntegrityError → ConflictError
"""
import calendar
import logging
from datetime import date, datetime, time, timedelta

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError

from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationError
from backoffice.models import db

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    label = label or model.__name__
    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(resource=label, resource_id=pk)
    return obj


def parse_date(value):
    """Parse a date string (ISO or DD/MM/YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD/MM/YYYY (UK format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d/%m/%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Same as parse_date() but raises ValueError instead of returning None.
    Empty input still returns None so optional fields can be omitted.
    """
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Invalid date {value!r}. Use YYYY-MM-DD or DD/MM/YYYY.")
    return parsed


def parse_time_input(value):
    """Parse HH:MM (or HH:MM:SS) into a time object; None for empty input."""
    if value in (None, ""):
        return None
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value))
    except ValueError as exc:
        raise ValueError(f"Invalid time {value!r}. Use HH:MM.") from exc


def add_months(start: date, months: int) -> date:
    """Return *start* shifted by *months*, clamping the day to the month end."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def date_range(start: date, end: date) -> list[date]:
    """Inclusive list of dates from start to end."""
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def clean_email(value, field="email"):
    """Normalise an optional email address; raise ValidationError if malformed."""
    value = (value or "").strip()
    if not value:
        return None
    try:
        return validate_email(value, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid {field}: {exc}", details={field: str(exc)}) from exc


_TRUE_STRINGS = ("1", "true", "yes", "on")
_FALSE_STRINGS = ("0", "false", "no", "off")


def parse_bool(value, field, default=False):
    """Coerce a payload flag to bool.

    Accepts real booleans, 0/1 and the usual true/false strings; None or ""
    gives *default*. Anything else is a ValidationError rather than being
    truthy, so "false" never switches a flag on.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValidationError(f"{field} must be true or false", details={field: "invalid"})


def iso(value):
    """isoformat() or None."""
    return value.isoformat() if value is not None else None


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_raise(resource="Record", field="id", message=None):
    """Commit the current SQLAlchemy session.

    IntegrityError → rollback + ConflictError (409 in blueprints).
    Anything else → rollback, logged, re-raised (500).
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit (%s): %s", resource, exc.orig)
        raise ConflictError(
            resource, field, message=message or "Duplicate or constraint violation"
        ) from exc
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit (%s)", resource)
        raise
