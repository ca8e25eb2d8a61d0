"""
Trainer availability blueprint.

Endpoints:
    GET    /api/v1/availability?start=&end=&include_suspended=         — all trainers
    GET    /api/v1/trainers/<id>/availability?start=&end=                — one trainer
    GET    /api/v1/trainers/<id>/availability/check?date=                — is available
    GET    /api/v1/trainers/<id>/availability/conflicts?start=&end=      — overlapping bookings
    POST   /api/v1/trainers/<id>/availability                            — mark a date
    POST   /api/v1/trainers/<id>/availability/range                      — mark a range
    POST   /api/v1/trainers/<id>/availability/toggle                     — calendar click
    PUT    /api/v1/trainers/<id>/availability/<YYYY-MM-DD>               — set status (upsert)
    DELETE /api/v1/trainers/<id>/availability/range?start=&end=          — remove a range
    PUT    /api/v1/availability/<record_id>                              — update status/reason
    DELETE /api/v1/availability/<record_id>                              — remove

Writes that mark dates answer 409 with ``conflicts`` and
``requires_confirmation: true`` when the trainer has bookings on those
dates; resubmit with ``"confirm": true`` to proceed.
"""

import logging

from flask import Blueprint, jsonify, request

from backoffice.blueprints import bool_arg, json_body, register_error_handlers
from backoffice.services import availability_service
from backoffice.utils.helpers import parse_bool, parse_date_input

logger = logging.getLogger(__name__)

availability_bp = Blueprint("availability", __name__, url_prefix="/api/v1")
register_error_handlers(availability_bp)


def _required_date(value, name):
    parsed = parse_date_input(value)
    if parsed is None:
        raise ValueError(f"{name} is required")
    return parsed


def _range_args():
    return (
        _required_date(request.args.get("start"), "start"),
        _required_date(request.args.get("end"), "end"),
    )


def _records(records):
    return jsonify({"items": [r.to_dict() for r in records], "total": len(records)})


@availability_bp.route("/availability", methods=["GET"])
def list_all():
    start, end = _range_args()
    return _records(availability_service.list_for_all_trainers(
        start, end, include_suspended=bool_arg("include_suspended"),
    ))


@availability_bp.route("/trainers/<int:trainer_id>/availability", methods=["GET"])
def list_for_trainer(trainer_id):
    start, end = _range_args()
    return _records(availability_service.list_for_trainer(trainer_id, start, end))


@availability_bp.route("/trainers/<int:trainer_id>/availability/check", methods=["GET"])
def check(trainer_id):
    day = _required_date(request.args.get("date"), "date")
    available = availability_service.is_trainer_available(trainer_id, day)
    return jsonify({"trainer_id": trainer_id, "date": day.isoformat(), "available": available})


@availability_bp.route("/trainers/<int:trainer_id>/availability/conflicts", methods=["GET"])
def conflicts(trainer_id):
    start, end = _range_args()
    bookings = availability_service.get_booking_conflicts(trainer_id, start, end)
    return jsonify({"items": [b.to_dict() for b in bookings], "total": len(bookings)})


@availability_bp.route("/trainers/<int:trainer_id>/availability", methods=["POST"])
def mark_date(trainer_id):
    data = json_body()
    record = availability_service.mark_date(
        trainer_id,
        _required_date(data.get("date"), "date"),
        status=data.get("status"),
        reason=data.get("reason"),
        confirm=parse_bool(data.get("confirm"), "confirm"),
    )
    return jsonify(record.to_dict()), 201


@availability_bp.route("/trainers/<int:trainer_id>/availability/range", methods=["POST"])
def mark_range(trainer_id):
    data = json_body()
    records = availability_service.mark_date_range(
        trainer_id,
        _required_date(data.get("start_date"), "start_date"),
        _required_date(data.get("end_date"), "end_date"),
        status=data.get("status"),
        reason=data.get("reason"),
        confirm=parse_bool(data.get("confirm"), "confirm"),
    )
    return jsonify({"items": [r.to_dict() for r in records], "total": len(records)}), 201


@availability_bp.route("/trainers/<int:trainer_id>/availability/toggle", methods=["POST"])
def toggle(trainer_id):
    data = json_body()
    action, record = availability_service.toggle_date(
        trainer_id,
        _required_date(data.get("date"), "date"),
        status=data.get("status"),
        reason=data.get("reason"),
        confirm=parse_bool(data.get("confirm"), "confirm"),
    )
    return jsonify({"action": action, "record": record.to_dict() if record else None})


@availability_bp.route("/trainers/<int:trainer_id>/availability/<day>", methods=["PUT"])
def set_status(trainer_id, day):
    data = json_body()
    if not data.get("status"):
        return jsonify({"error": "status is required"}), 400
    record = availability_service.set_date_status(
        trainer_id,
        _required_date(day, "date"),
        data["status"],
        reason=data.get("reason"),
        confirm=parse_bool(data.get("confirm"), "confirm"),
    )
    return jsonify(record.to_dict())


@availability_bp.route("/trainers/<int:trainer_id>/availability/range", methods=["DELETE"])
def remove_range(trainer_id):
    start, end = _range_args()
    removed = availability_service.remove_date_range(trainer_id, start, end)
    return jsonify({"removed": removed})


@availability_bp.route("/availability/<int:record_id>", methods=["PUT", "PATCH"])
def update_record(record_id):
    record = availability_service.update_record(record_id, json_body())
    return jsonify(record.to_dict())


@availability_bp.route("/availability/<int:record_id>", methods=["DELETE"])
def remove_record(record_id):
    availability_service.remove_record(record_id)
    return jsonify({"message": "Record removed", "id": record_id})
