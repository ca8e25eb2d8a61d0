"""
Per-blueprint Flask-Limiter rules.

The shared ``Limiter`` is built in ``backoffice/__init__.py`` with no
default limit. Staff blueprints get a generous ceiling, the public
certificate lookup a tight one (it is unauthenticated and certificate
numbers are sequential), and health checks none at all. Nothing is
limited under TESTING.
"""

import logging

logger = logging.getLogger(__name__)

STAFF_LIMIT = "300/minute"

_STAFF_BLUEPRINTS = (
    "clients", "trainers", "availability", "bookings",
    "certificates", "email", "open_courses",
)


def init_rate_limits(app, limiter):
    if app.config.get("TESTING"):
        logger.debug("Rate limits not applied under TESTING")
        return

    blueprints = app.blueprints
    for name in _STAFF_BLUEPRINTS:
        if name in blueprints:
            limiter.limit(STAFF_LIMIT)(blueprints[name])

    verify_limit = app.config.get("CERTIFICATE_VERIFY_RATE_LIMIT", "30/minute")
    if "verification" in blueprints:
        limiter.limit(verify_limit)(blueprints["verification"])
    if "health" in blueprints:
        limiter.exempt(blueprints["health"])

    logger.info("Rate limits applied: staff=%s verification=%s", STAFF_LIMIT, verify_limit)
