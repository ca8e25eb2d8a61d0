"""
Client & location blueprint.

Endpoints:
    GET    /api/v1/clients                                   — list (search, limit, offset)
    POST   /api/v1/clients                                   — create
    GET    /api/v1/clients/<id>                              — detail with active locations
    PUT    /api/v1/clients/<id>                              — update
    DELETE /api/v1/clients/<id>                              — soft delete (admin)
    POST   /api/v1/clients/<id>/restore                      — undo soft delete (admin)

    GET    /api/v1/clients/<id>/locations                    — list
    POST   /api/v1/clients/<id>/locations                    — create
    PUT    /api/v1/clients/<id>/locations/<loc_id>           — update
    POST   /api/v1/clients/<id>/locations/<loc_id>/default   — make default
    DELETE /api/v1/clients/<id>/locations/<loc_id>           — soft delete
"""

import logging

from flask import Blueprint, jsonify, request

from backoffice.auth import require_role
from backoffice.blueprints import json_body, paginate_query, register_error_handlers
from backoffice.services import client_service

logger = logging.getLogger(__name__)

clients_bp = Blueprint("clients", __name__, url_prefix="/api/v1")
register_error_handlers(clients_bp)


@clients_bp.route("/clients", methods=["GET"])
def list_clients():
    q = client_service.client_query(search=request.args.get("search"))
    items, total = paginate_query(q)
    return jsonify({"items": [c.to_dict() for c in items], "total": total})


@clients_bp.route("/clients", methods=["POST"])
def create_client():
    client = client_service.create_client(json_body())
    return jsonify(client.to_dict(include_locations=True)), 201


@clients_bp.route("/clients/<int:client_id>", methods=["GET"])
def get_client(client_id):
    return jsonify(client_service.get_client(client_id).to_dict(include_locations=True))


@clients_bp.route("/clients/<int:client_id>", methods=["PUT", "PATCH"])
def update_client(client_id):
    client = client_service.update_client(client_id, json_body())
    return jsonify(client.to_dict(include_locations=True))


@clients_bp.route("/clients/<int:client_id>", methods=["DELETE"])
@require_role("admin")
def delete_client(client_id):
    client_service.delete_client(client_id)
    return jsonify({"message": "Client deleted", "id": client_id})


@clients_bp.route("/clients/<int:client_id>/restore", methods=["POST"])
@require_role("admin")
def restore_client(client_id):
    client = client_service.restore_client(client_id)
    return jsonify(client.to_dict(include_locations=True))


# ── Locations ────────────────────────────────────────────────────────────────


@clients_bp.route("/clients/<int:client_id>/locations", methods=["GET"])
def list_locations(client_id):
    locations = client_service.list_locations(client_id)
    return jsonify({"items": [loc.to_dict() for loc in locations], "total": len(locations)})


@clients_bp.route("/clients/<int:client_id>/locations", methods=["POST"])
def create_location(client_id):
    loc = client_service.create_location(client_id, json_body())
    return jsonify(loc.to_dict()), 201


@clients_bp.route("/clients/<int:client_id>/locations/<int:location_id>", methods=["PUT", "PATCH"])
def update_location(client_id, location_id):
    loc = client_service.update_location(client_id, location_id, json_body())
    return jsonify(loc.to_dict())


@clients_bp.route("/clients/<int:client_id>/locations/<int:location_id>/default", methods=["POST"])
def set_default_location(client_id, location_id):
    loc = client_service.set_default_location(client_id, location_id)
    return jsonify(loc.to_dict())


@clients_bp.route("/clients/<int:client_id>/locations/<int:location_id>", methods=["DELETE"])
def delete_location(client_id, location_id):
    client_service.delete_location(client_id, location_id)
    return jsonify({"message": "Location deleted", "id": location_id})
