"""
Open courses blueprint: venues, public sessions, delegate registers, capacity alerts.

Endpoint groups (prefix /api/v1/open-courses):
  Venues      GET/POST /venues, GET/PUT /venues/<id>, POST /venues/<id>/deactivate
  Sessions    GET/POST /sessions, GET /sessions/week?start=
              GET/PUT/DELETE /sessions/<id>
              POST /sessions/<id>/duplicate | cancel | recalculate
              GET  /sessions/<id>/register
              POST/DELETE /sessions/<id>/declaration
  Delegates   GET/POST /sessions/<id>/delegates, GET /delegates (cross-session)
              GET/PUT/DELETE /delegates/<id>
              POST /delegates/<id>/cancel | reinstate | transfer
              PUT  /delegates/<id>/attendance | dvsa
  Alerts      GET /alerts, POST /alerts/<id>/acknowledge
"""

import logging

from flask import Blueprint, jsonify, request

from backoffice.auth import require_role
from backoffice.blueprints import (
    bool_arg, date_arg, json_body, paginate_query, register_error_handlers,
)
from backoffice.services import open_course_service as ocs
from backoffice.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

open_courses_bp = Blueprint("open_courses", __name__, url_prefix="/api/v1/open-courses")
register_error_handlers(open_courses_bp)


# ═════════════════════════════════════════════════════════════════════════
# Venues
# ═════════════════════════════════════════════════════════════════════════


@open_courses_bp.route("/venues", methods=["GET"])
def list_venues():
    rows = ocs.venue_query(active=bool_arg("active", default=None)).all()
    return jsonify({"items": [v.to_dict() for v in rows], "total": len(rows)})


@open_courses_bp.route("/venues", methods=["POST"])
def create_venue():
    return jsonify(ocs.create_venue(json_body()).to_dict()), 201


@open_courses_bp.route("/venues/<int:venue_id>", methods=["GET"])
def get_venue(venue_id):
    return jsonify(ocs.get_venue(venue_id).to_dict())


@open_courses_bp.route("/venues/<int:venue_id>", methods=["PUT", "PATCH"])
def update_venue(venue_id):
    return jsonify(ocs.update_venue(venue_id, json_body()).to_dict())


@open_courses_bp.route("/venues/<int:venue_id>/deactivate", methods=["POST"])
def deactivate_venue(venue_id):
    return jsonify(ocs.deactivate_venue(venue_id).to_dict())


# ═════════════════════════════════════════════════════════════════════════
# Sessions
# ═════════════════════════════════════════════════════════════════════════


@open_courses_bp.route("/sessions", methods=["GET"])
def list_sessions():
    """Query params: date_from, date_to, status, venue_id, trainer_id, limit, offset."""
    q = ocs.session_query(
        date_from=date_arg("date_from"),
        date_to=date_arg("date_to"),
        status=request.args.get("status") or None,
        venue_id=request.args.get("venue_id", type=int),
        trainer_id=request.args.get("trainer_id", type=int),
    )
    items, total = paginate_query(q)
    return jsonify({"items": [s.to_dict() for s in items], "total": total})


@open_courses_bp.route("/sessions/week", methods=["GET"])
def week_view():
    start = date_arg("start")
    if start is None:
        return jsonify({"error": "start is required"}), 400
    rows = ocs.week_sessions(start)
    return jsonify({"start": start.isoformat(), "items": [s.to_dict() for s in rows],
                    "total": len(rows)})


@open_courses_bp.route("/sessions", methods=["POST"])
def create_session():
    return jsonify(ocs.create_session(json_body()).to_dict()), 201


@open_courses_bp.route("/sessions/<int:session_id>", methods=["GET"])
def get_session(session_id):
    return jsonify(ocs.session_detail(session_id))


@open_courses_bp.route("/sessions/<int:session_id>", methods=["PUT", "PATCH"])
def update_session(session_id):
    return jsonify(ocs.update_session(session_id, json_body()).to_dict())


@open_courses_bp.route("/sessions/<int:session_id>", methods=["DELETE"])
@require_role("admin")
def delete_session(session_id):
    ocs.delete_session(session_id)
    return jsonify({"message": "Session deleted", "id": session_id})


@open_courses_bp.route("/sessions/<int:session_id>/duplicate", methods=["POST"])
def duplicate_session(session_id):
    new_date = parse_date_input(json_body().get("session_date"))
    return jsonify(ocs.duplicate_session(session_id, new_date).to_dict()), 201


@open_courses_bp.route("/sessions/<int:session_id>/cancel", methods=["POST"])
def cancel_session(session_id):
    return jsonify(ocs.cancel_session(session_id).to_dict())


@open_courses_bp.route("/sessions/<int:session_id>/recalculate", methods=["POST"])
def recalculate(session_id):
    return jsonify(ocs.recalculate_capacity(session_id).to_dict())


@open_courses_bp.route("/sessions/<int:session_id>/register", methods=["GET"])
def register(session_id):
    return jsonify(ocs.register_for_session(session_id))


@open_courses_bp.route("/sessions/<int:session_id>/declaration", methods=["POST"])
def sign_declaration(session_id):
    session = ocs.sign_declaration(session_id, json_body().get("signed_by"))
    return jsonify(session.to_dict())


@open_courses_bp.route("/sessions/<int:session_id>/declaration", methods=["DELETE"])
def unsign_declaration(session_id):
    return jsonify(ocs.unsign_declaration(session_id).to_dict())


# ═════════════════════════════════════════════════════════════════════════
# Delegates
# ═════════════════════════════════════════════════════════════════════════


def _delegate_filters():
    return {
        "search": request.args.get("search") or None,
        "company_id": request.args.get("company_id", type=int),
        "attendance": request.args.get("attendance") or None,
        "certificate": request.args.get("certificate") or None,
        "date_from": date_arg("date_from"),
        "date_to": date_arg("date_to"),
        "include_cancelled": bool_arg("include_cancelled"),
    }


@open_courses_bp.route("/sessions/<int:session_id>/delegates", methods=["GET"])
def list_session_delegates(session_id):
    ocs.get_session(session_id)
    rows = ocs.delegate_query(session_id=session_id, **_delegate_filters()).all()
    return jsonify({"items": [d.to_dict() for d in rows], "total": len(rows)})


@open_courses_bp.route("/sessions/<int:session_id>/delegates", methods=["POST"])
def create_delegate(session_id):
    return jsonify(ocs.create_delegate(session_id, json_body()).to_dict()), 201


@open_courses_bp.route("/delegates", methods=["GET"])
def list_delegates():
    items, total = paginate_query(ocs.delegate_query(**_delegate_filters()))
    return jsonify({"items": [d.to_dict(include_session=True) for d in items], "total": total})


@open_courses_bp.route("/delegates/<int:delegate_id>", methods=["GET"])
def get_delegate(delegate_id):
    return jsonify(ocs.get_delegate(delegate_id).to_dict(include_session=True))


@open_courses_bp.route("/delegates/<int:delegate_id>", methods=["PUT", "PATCH"])
def update_delegate(delegate_id):
    return jsonify(ocs.update_delegate(delegate_id, json_body()).to_dict())


@open_courses_bp.route("/delegates/<int:delegate_id>", methods=["DELETE"])
@require_role("admin")
def delete_delegate(delegate_id):
    ocs.delete_delegate(delegate_id)
    return jsonify({"message": "Delegate deleted", "id": delegate_id})


@open_courses_bp.route("/delegates/<int:delegate_id>/cancel", methods=["POST"])
def cancel_delegate(delegate_id):
    delegate = ocs.cancel_delegate(delegate_id, json_body().get("reason"))
    return jsonify(delegate.to_dict())


@open_courses_bp.route("/delegates/<int:delegate_id>/reinstate", methods=["POST"])
def reinstate_delegate(delegate_id):
    return jsonify(ocs.reinstate_delegate(delegate_id).to_dict())


@open_courses_bp.route("/delegates/<int:delegate_id>/transfer", methods=["POST"])
def transfer_delegate(delegate_id):
    target = json_body().get("session_id")
    if not target:
        return jsonify({"error": "session_id is required"}), 400
    delegate = ocs.transfer_delegate(delegate_id, int(target))
    return jsonify(delegate.to_dict(include_session=True))


@open_courses_bp.route("/delegates/<int:delegate_id>/attendance", methods=["PUT"])
def mark_attendance(delegate_id):
    data = json_body()
    if "attendance" not in data:
        return jsonify({"error": "attendance is required"}), 400
    delegate = ocs.mark_attendance(delegate_id, data["attendance"], data.get("marked_by"))
    return jsonify(delegate.to_dict())


@open_courses_bp.route("/delegates/<int:delegate_id>/dvsa", methods=["PUT"])
def update_dvsa(delegate_id):
    return jsonify(ocs.update_dvsa(delegate_id, json_body()).to_dict())


# ═════════════════════════════════════════════════════════════════════════
# Capacity alerts
# ═════════════════════════════════════════════════════════════════════════


@open_courses_bp.route("/alerts", methods=["GET"])
def list_alerts():
    q = ocs.alert_query(
        acknowledged=bool_arg("acknowledged", default=None),
        session_id=request.args.get("session_id", type=int),
    )
    items, total = paginate_query(q)
    return jsonify({"items": [a.to_dict() for a in items], "total": total})


@open_courses_bp.route("/alerts/<int:alert_id>/acknowledge", methods=["POST"])
def acknowledge_alert(alert_id):
    alert = ocs.acknowledge_alert(alert_id, json_body().get("acknowledged_by"))
    return jsonify(alert.to_dict())
