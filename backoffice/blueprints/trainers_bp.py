"""
Trainer blueprint.

Endpoints:
    GET  /api/v1/trainers                       — list (include_suspended, active)
    POST /api/v1/trainers                       — create
    GET  /api/v1/trainers/<id>                  — detail
    PUT  /api/v1/trainers/<id>                  — update
    POST /api/v1/trainers/<id>/suspend          — suspend (admin)
    POST /api/v1/trainers/<id>/reinstate        — reinstate (admin)
    PUT  /api/v1/trainers/order                 — reorder {"trainer_ids": [...]}
"""

from flask import Blueprint, jsonify

from backoffice.auth import require_role
from backoffice.blueprints import bool_arg, json_body, register_error_handlers
from backoffice.services import trainer_service

trainers_bp = Blueprint("trainers", __name__, url_prefix="/api/v1")
register_error_handlers(trainers_bp)


@trainers_bp.route("/trainers", methods=["GET"])
def list_trainers():
    trainers = trainer_service.trainer_query(
        include_suspended=bool_arg("include_suspended"),
        active=bool_arg("active", default=None),
    ).all()
    return jsonify({"items": [t.to_dict() for t in trainers], "total": len(trainers)})


@trainers_bp.route("/trainers", methods=["POST"])
def create_trainer():
    trainer = trainer_service.create_trainer(json_body())
    return jsonify(trainer.to_dict()), 201


@trainers_bp.route("/trainers/<int:trainer_id>", methods=["GET"])
def get_trainer(trainer_id):
    return jsonify(trainer_service.get_trainer(trainer_id).to_dict())


@trainers_bp.route("/trainers/<int:trainer_id>", methods=["PUT", "PATCH"])
def update_trainer(trainer_id):
    trainer = trainer_service.update_trainer(trainer_id, json_body())
    return jsonify(trainer.to_dict())


@trainers_bp.route("/trainers/<int:trainer_id>/suspend", methods=["POST"])
@require_role("admin")
def suspend_trainer(trainer_id):
    return jsonify(trainer_service.suspend_trainer(trainer_id).to_dict())


@trainers_bp.route("/trainers/<int:trainer_id>/reinstate", methods=["POST"])
@require_role("admin")
def reinstate_trainer(trainer_id):
    return jsonify(trainer_service.reinstate_trainer(trainer_id).to_dict())


@trainers_bp.route("/trainers/order", methods=["PUT"])
def reorder_trainers():
    ids = json_body().get("trainer_ids")
    if not isinstance(ids, list) or not ids:
        return jsonify({"error": "trainer_ids must be a non-empty list"}), 400
    trainers = trainer_service.reorder_trainers([int(i) for i in ids])
    return jsonify({"items": [t.to_dict() for t in trainers], "total": len(trainers)})
