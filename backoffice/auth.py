"""
API key authentication for the back-office API.

Every ``/api/v1/*`` request carries a key in the ``X-API-Key`` header
(or ``?api_key=`` for quick manual testing). Each key maps to one of
three roles, ranked::

    viewer < editor < admin

Viewers may only read. Any POST/PUT/PATCH/DELETE needs at least an
editor key, and endpoints that destroy or lock records (deletes,
restore, trainer suspension, certificate revocation) are additionally
wrapped in ``@require_role("admin")``.

Health checks and ``/api/v1/public/*`` (certificate verification) are
open.

Environment:
    API_KEYS          "<key>:<role>,<key>:<role>,..."; a key with no
                      role, or an unknown one, is treated as viewer
    API_AUTH_ENABLED  "false" switches auth off (local development)
"""

import functools
import logging
import os
from typing import Optional

from flask import current_app, g, request

from backoffice.utils.errors import E, api_error

logger = logging.getLogger(__name__)

ROLE_RANK = {"viewer": 1, "editor": 2, "admin": 3}
DEFAULT_ROLE = "viewer"

_OPEN_PATHS = ("/api/v1/health", "/api/v1/public/")
_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
_FALSY = ("false", "0", "no", "off")


def role_allows(role: Optional[str], minimum_role: str) -> bool:
    """True when ``role`` ranks at or above ``minimum_role``."""
    return ROLE_RANK.get(role or "", 0) >= ROLE_RANK[minimum_role]


def _parse_api_keys() -> dict[str, str]:
    """Read ``API_KEYS`` into ``{key: role}``."""
    keys: dict[str, str] = {}
    for entry in os.getenv("API_KEYS", "").split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, _, role = entry.rpartition(":") if ":" in entry else (entry, "", "")
        role = role.strip().lower() or DEFAULT_ROLE
        if role not in ROLE_RANK:
            logger.warning("API key configured with unknown role %r; using %s", role, DEFAULT_ROLE)
            role = DEFAULT_ROLE
        keys[key.strip()] = role
    return keys


def _is_auth_enabled() -> bool:
    flag = os.getenv("API_AUTH_ENABLED", "")
    if not flag:
        try:
            flag = str(current_app.config.get("API_AUTH_ENABLED", "true"))
        except RuntimeError:
            return True
    return flag.lower() not in _FALSY


def _request_key() -> Optional[str]:
    return (request.headers.get("X-API-Key", "").strip()
            or request.args.get("api_key", "").strip()
            or None)


def _authenticate():
    """Put the caller's role on ``g``; return an error response or None."""
    if not _is_auth_enabled():
        g.current_user_role, g.api_key = "admin", "dev-mode"
        return None

    supplied = _request_key()
    if not supplied:
        return api_error(E.UNAUTHENTICATED, "Authentication required. Provide X-API-Key header.")

    configured = _parse_api_keys()
    if not configured:
        logger.error("API_AUTH_ENABLED is on but API_KEYS is empty")
        return api_error(E.INTERNAL, "Server authentication not configured")

    role = configured.get(supplied)
    if role is None:
        logger.warning("Rejected API key %s...", supplied[:8])
        return api_error(E.UNAUTHENTICATED, "Invalid API key")

    g.current_user_role, g.api_key = role, supplied
    return None


def require_role(minimum_role: str):
    """View decorator rejecting callers below ``minimum_role`` with 403.

    Runs after the app-level hook, so ``g.current_user_role`` is set
    for every authenticated request.
    """
    def decorator(view):
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            role = getattr(g, "current_user_role", None)
            if role is None:
                return api_error(E.UNAUTHENTICATED, "Authentication required")
            if not role_allows(role, minimum_role):
                logger.warning("%s key refused on %s (needs %s)", role, request.path, minimum_role)
                return api_error(E.FORBIDDEN, "Insufficient permissions")
            return view(*args, **kwargs)
        return wrapper
    return decorator


def _reject_non_json_write():
    # Browsers cannot submit application/json from a plain form.
    if request.method not in _WRITE_METHODS or not request.content_length:
        return None
    if "application/json" in (request.content_type or ""):
        return None
    return api_error(E.UNSUPPORTED_MEDIA,
                     "Content-Type must be application/json for state-changing requests")


def init_auth(app):
    """Install the API key check as a ``before_request`` hook."""

    @app.before_request
    def _check_api_key():
        path = request.path
        if not path.startswith("/api/v1/") or path.startswith(_OPEN_PATHS):
            return None
        if request.method == "OPTIONS":
            return None

        error = _reject_non_json_write() or _authenticate()
        if error:
            return error

        if request.method in _WRITE_METHODS and not role_allows(g.current_user_role, "editor"):
            logger.warning("Read-only key attempted %s %s", request.method, path)
            return api_error(E.FORBIDDEN, "Insufficient permissions")
        return None

    logger.info("Auth hook installed (enabled=%s)", _is_auth_enabled())
