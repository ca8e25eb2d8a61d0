"""
Health checks (no API key needed).

    GET /api/v1/health/ready   process is up
    GET /api/v1/health/live    database, redis and email queue backlog

``live`` answers 503 only when the database is unreachable; Redis only
backs the rate limiter, so a Redis failure is reported but not fatal.
"""

import logging
import time

import redis
from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from backoffice.models import db
from backoffice.models.email import EmailQueueEntry

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


def _timed(check) -> dict:
    started = time.perf_counter()
    check()
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _database_check() -> dict:
    try:
        return _timed(lambda: db.session.execute(db.text("SELECT 1")))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}


def _redis_check() -> dict:
    url = current_app.config.get("REDIS_URL") or ""
    if "redis" not in url:
        return {"status": "skipped", "detail": "rate limiter uses in-process storage"}
    try:
        return _timed(lambda: redis.from_url(url, socket_timeout=2).ping())
    except redis.RedisError as exc:
        logger.warning("Health: redis unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}


def _email_queue_check() -> dict:
    counts = dict(
        db.session.query(EmailQueueEntry.status, db.func.count(EmailQueueEntry.id))
        .filter(EmailQueueEntry.status.in_(("pending", "failed")))
        .group_by(EmailQueueEntry.status)
        .all()
    )
    return {
        "pending": counts.get("pending", 0),
        "failed": counts.get("failed", 0),
        "smtp_configured": bool(current_app.config.get("MAIL_SERVER")),
    }


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {"database": _database_check(), "redis": _redis_check()}
    healthy = checks["database"]["status"] == "ok"
    if healthy:
        checks["email_queue"] = _email_queue_check()
    checks["app"] = {"debug": current_app.debug, "testing": current_app.testing}

    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
