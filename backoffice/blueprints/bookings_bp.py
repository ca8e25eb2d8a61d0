"""
Booking blueprint.

Endpoints:
    GET    /api/v1/bookings                                   — list / calendar window
    POST   /api/v1/bookings                                   — create (+ availability_warnings)
    GET    /api/v1/bookings/<id>                              — detail with candidates
    PUT    /api/v1/bookings/<id>                              — partial update
    POST   /api/v1/bookings/<id>/move                         — change trainer and/or date
    POST   /api/v1/bookings/<id>/cancel                       — cancel
    DELETE /api/v1/bookings/<id>                              — delete (admin)

    GET    /api/v1/bookings/<id>/candidates                   — list
    POST   /api/v1/bookings/<id>/candidates                   — add
    PUT    /api/v1/bookings/<id>/candidates/<cid>             — update (passed, paid, balance...)
    DELETE /api/v1/bookings/<id>/candidates/<cid>             — remove

Query params for list: trainer_id, client_id, status, date_from, date_to,
include_cancelled. With a date window the full window is returned
(calendar view); otherwise limit/offset pagination applies.
"""

import logging

from flask import Blueprint, jsonify, request

from backoffice.auth import require_role
from backoffice.blueprints import (
    bool_arg, date_arg, json_body, paginate_query, register_error_handlers,
)
from backoffice.services import booking_service

logger = logging.getLogger(__name__)

bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/v1")
register_error_handlers(bookings_bp)


@bookings_bp.route("/bookings", methods=["GET"])
def list_bookings():
    filters = {
        "trainer_id": request.args.get("trainer_id", type=int),
        "client_id": request.args.get("client_id", type=int),
        "status": request.args.get("status") or None,
        "date_to": date_arg("date_to"),
        "include_cancelled": bool_arg("include_cancelled"),
        "in_centre": bool_arg("in_centre", default=None),
    }
    date_from = date_arg("date_from")
    if date_from or filters["date_to"]:
        rows = booking_service.list_bookings(date_from=date_from, **filters)
        return jsonify({"items": [b.to_dict() for b in rows], "total": len(rows)})

    items, total = paginate_query(booking_service.booking_query(**filters))
    return jsonify({"items": [b.to_dict() for b in items], "total": total})


@bookings_bp.route("/bookings", methods=["POST"])
def create_booking():
    booking, warnings = booking_service.create_booking(json_body())
    result = booking.to_dict(include_candidates=True)
    result["availability_warnings"] = warnings
    return jsonify(result), 201


@bookings_bp.route("/bookings/<int:booking_id>", methods=["GET"])
def get_booking(booking_id):
    return jsonify(booking_service.get_booking(booking_id).to_dict(include_candidates=True))


@bookings_bp.route("/bookings/<int:booking_id>", methods=["PUT", "PATCH"])
def update_booking(booking_id):
    booking = booking_service.update_booking(booking_id, json_body())
    return jsonify(booking.to_dict(include_candidates=True))


@bookings_bp.route("/bookings/<int:booking_id>/move", methods=["POST"])
def move_booking(booking_id):
    booking, warnings = booking_service.move_booking(booking_id, json_body())
    result = booking.to_dict()
    result["availability_warnings"] = warnings
    return jsonify(result)


@bookings_bp.route("/bookings/<int:booking_id>/cancel", methods=["POST"])
def cancel_booking(booking_id):
    return jsonify(booking_service.cancel_booking(booking_id).to_dict())


@bookings_bp.route("/bookings/<int:booking_id>", methods=["DELETE"])
@require_role("admin")
def delete_booking(booking_id):
    booking_service.delete_booking(booking_id)
    return jsonify({"message": "Booking deleted", "id": booking_id})


# ── Candidates ───────────────────────────────────────────────────────────────


@bookings_bp.route("/bookings/<int:booking_id>/candidates", methods=["GET"])
def list_candidates(booking_id):
    booking = booking_service.get_booking(booking_id)
    candidates = booking.candidates
    return jsonify({"items": [c.to_dict() for c in candidates], "total": len(candidates)})


@bookings_bp.route("/bookings/<int:booking_id>/candidates", methods=["POST"])
def add_candidate(booking_id):
    candidate = booking_service.add_candidate(booking_id, json_body())
    return jsonify(candidate.to_dict()), 201


@bookings_bp.route("/bookings/<int:booking_id>/candidates/<int:candidate_id>", methods=["PUT", "PATCH"])
def update_candidate(booking_id, candidate_id):
    candidate = booking_service.update_candidate(booking_id, candidate_id, json_body())
    return jsonify(candidate.to_dict())


@bookings_bp.route("/bookings/<int:booking_id>/candidates/<int:candidate_id>", methods=["DELETE"])
def remove_candidate(booking_id, candidate_id):
    booking_service.remove_candidate(booking_id, candidate_id)
    return jsonify({"message": "Candidate removed", "id": candidate_id})
