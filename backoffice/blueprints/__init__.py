"""
Training Back-Office
Blueprint registry and shared request helpers.
"""

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from backoffice.core.exceptions import (
    AvailabilityConflictError, ConflictError, NotFoundError, ValidationError,
)
from backoffice.models import db
from backoffice.utils.errors import E, api_error
from backoffice.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def json_body() -> dict:
    """Request JSON as a dict; anything else becomes ValueError (400)."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def date_arg(name: str):
    """Optional date query parameter; malformed values raise ValueError (400)."""
    return parse_date_input(request.args.get(name))


def bool_arg(name: str, default: bool | None = False) -> bool | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def register_error_handlers(bp):
    """Map service-layer exceptions to JSON responses for one blueprint.

    NotFoundError → 404, ValidationError → 422, ConflictError → 409,
    AvailabilityConflictError → 409 with the conflicting bookings,
    ValueError (malformed input) → 400, anything else → 500 (logged).
    Each handler rolls back whatever the failed call left in the session.
    """

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        db.session.rollback()
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        db.session.rollback()
        return api_error(E.BUSINESS_RULE, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        db.session.rollback()
        return api_error(E.CONFLICT, str(error), details={"field": error.field})

    @bp.errorhandler(AvailabilityConflictError)
    def _handle_availability_conflict(error: AvailabilityConflictError):
        db.session.rollback()
        return jsonify({
            "error": str(error),
            "code": E.AVAILABILITY_CONFLICT,
            "conflicts": error.conflicts,
            "requires_confirmation": True,
        }), 409

    @bp.errorhandler(ValueError)
    def _handle_bad_input(error: ValueError):
        db.session.rollback()
        return api_error(E.BAD_REQUEST, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        db.session.rollback()
        return api_error(E.INTERNAL, "Internal server error")

    return bp
