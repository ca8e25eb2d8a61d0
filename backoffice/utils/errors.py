"""JSON error bodies shared by every blueprint and the auth hook.

Body shape::

    {"error": "<message>", "code": "ERR_...", "details": {...}}

``details`` is only present when there is something to put in it
(field errors, the conflicting field, ...).
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes returned in the ``code`` field."""

    BAD_REQUEST = "ERR_BAD_REQUEST"                     # malformed input
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"             # missing / unknown API key
    FORBIDDEN = "ERR_FORBIDDEN"                         # role too low
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT = "ERR_CONFLICT"                           # duplicate or state clash
    AVAILABILITY_CONFLICT = "ERR_AVAILABILITY_CONFLICT"
    BUSINESS_RULE = "ERR_BUSINESS_RULE"
    UNSUPPORTED_MEDIA = "ERR_UNSUPPORTED_MEDIA"
    INTERNAL = "ERR_INTERNAL"


STATUS_FOR_CODE: dict[str, int] = {
    E.BAD_REQUEST: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT: 409,
    E.AVAILABILITY_CONFLICT: 409,
    E.UNSUPPORTED_MEDIA: 415,
    E.BUSINESS_RULE: 422,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None,
              details: dict | None = None, **extra):
    """``(jsonify(body), status)`` for a Flask view or errorhandler.

    Extra keyword arguments are added to the top level of the body,
    e.g. ``conflicts=[...]`` for the availability confirmation gate.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    body.update(extra)
    return jsonify(body), status or STATUS_FOR_CODE.get(code, 400)
