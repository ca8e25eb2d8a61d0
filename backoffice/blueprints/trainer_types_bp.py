"""
Trainer type blueprint.

Endpoints:
    GET    /api/v1/trainer-types                                    — list with trainer_count
    POST   /api/v1/trainer-types                                    — create
    PUT    /api/v1/trainer-types/<id>                               — update
    DELETE /api/v1/trainer-types/<id>                               — delete (admin)
    GET    /api/v1/trainer-types/assignments?trainer_ids=1,2        — types per trainer
    GET    /api/v1/trainers/<id>/trainer-types                      — types a trainer holds
    POST   /api/v1/trainers/<id>/trainer-types                      — assign {"trainer_type_id"}
    DELETE /api/v1/trainers/<id>/trainer-types/<type_id>?confirm=   — remove
    GET    /api/v1/trainers/<id>/trainer-types/<type_id>/future-bookings
    GET    /api/v1/trainers/<id>/course-types                       — course types they may run
    GET    /api/v1/trainers/<id>/qualified?course_type_id=          — single check
"""

from flask import Blueprint, jsonify, request

from backoffice.auth import require_role
from backoffice.blueprints import bool_arg, json_body, register_error_handlers
from backoffice.services import trainer_type_service
from backoffice.services.certificate_service import get_course_type
from backoffice.services.trainer_service import get_trainer

trainer_types_bp = Blueprint("trainer_types", __name__, url_prefix="/api/v1")
register_error_handlers(trainer_types_bp)


def _id_list(raw):
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError as exc:
        raise ValueError("trainer_ids must be a comma-separated list of ids") from exc


@trainer_types_bp.route("/trainer-types", methods=["GET"])
def list_trainer_types():
    items = trainer_type_service.list_trainer_types()
    return jsonify({"items": items, "total": len(items)})


@trainer_types_bp.route("/trainer-types", methods=["POST"])
def create_trainer_type():
    return jsonify(trainer_type_service.create_trainer_type(json_body()).to_dict()), 201


@trainer_types_bp.route("/trainer-types/<int:trainer_type_id>", methods=["PUT", "PATCH"])
def update_trainer_type(trainer_type_id):
    return jsonify(trainer_type_service.update_trainer_type(trainer_type_id, json_body()).to_dict())


@trainer_types_bp.route("/trainer-types/<int:trainer_type_id>", methods=["DELETE"])
@require_role("admin")
def delete_trainer_type(trainer_type_id):
    trainer_type_service.delete_trainer_type(trainer_type_id)
    return jsonify({"message": "Trainer type deleted", "id": trainer_type_id})


@trainer_types_bp.route("/trainer-types/assignments", methods=["GET"])
def assignments():
    ids = _id_list(request.args.get("trainer_ids", ""))
    by_trainer = trainer_type_service.trainer_types_for_many(ids)
    return jsonify({"items": {str(k): v for k, v in by_trainer.items()}})


@trainer_types_bp.route("/trainers/<int:trainer_id>/trainer-types", methods=["GET"])
def trainer_types_for(trainer_id):
    rows = trainer_type_service.trainer_types_for(trainer_id)
    return jsonify({"items": [t.to_dict() for t in rows], "total": len(rows)})


@trainer_types_bp.route("/trainers/<int:trainer_id>/trainer-types", methods=["POST"])
def assign(trainer_id):
    type_id = json_body().get("trainer_type_id")
    if not type_id:
        return jsonify({"error": "trainer_type_id is required"}), 400
    trainer_type = trainer_type_service.assign_trainer_type(trainer_id, int(type_id))
    return jsonify(trainer_type.to_dict()), 201


@trainer_types_bp.route("/trainers/<int:trainer_id>/trainer-types/<int:trainer_type_id>",
                        methods=["DELETE"])
def remove(trainer_id, trainer_type_id):
    trainer_type_service.remove_trainer_type(trainer_id, trainer_type_id,
                                             confirm=bool_arg("confirm"))
    return jsonify({"message": "Trainer type removed", "trainer_type_id": trainer_type_id})


@trainer_types_bp.route(
    "/trainers/<int:trainer_id>/trainer-types/<int:trainer_type_id>/future-bookings",
    methods=["GET"],
)
def future_bookings(trainer_id, trainer_type_id):
    return jsonify(trainer_type_service.future_bookings_for_type(trainer_id, trainer_type_id))


@trainer_types_bp.route("/trainers/<int:trainer_id>/course-types", methods=["GET"])
def qualified_course_types(trainer_id):
    rows = trainer_type_service.qualified_course_types(trainer_id)
    return jsonify({"items": [c.to_dict() for c in rows], "total": len(rows)})


@trainer_types_bp.route("/trainers/<int:trainer_id>/qualified", methods=["GET"])
def qualified(trainer_id):
    raw = request.args.get("course_type_id")
    if not raw:
        return jsonify({"error": "course_type_id is required"}), 400
    course_type = get_course_type(int(raw))
    get_trainer(trainer_id)
    return jsonify({
        "trainer_id": trainer_id,
        "course_type_id": course_type.id,
        "qualified": trainer_type_service.is_trainer_qualified(trainer_id, course_type),
    })
