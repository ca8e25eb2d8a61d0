"""
Email templates & outbound queue blueprint.

Endpoint groups:
  Templates   GET/POST        /api/v1/email/templates
              GET             /api/v1/email/templates/key/<template_key>
              GET/PUT/DELETE  /api/v1/email/templates/<id>          (DELETE: admin, non-core only)
              POST            /api/v1/email/templates/<id>/preview  {data: {...}}
  Queue       GET/POST        /api/v1/email/queue
              GET             /api/v1/email/queue/stats
              GET             /api/v1/email/queue/template-keys
              GET             /api/v1/email/queue/<id>
              POST            /api/v1/email/queue/<id>/retry
              POST            /api/v1/email/queue/<id>/cancel
              POST            /api/v1/email/queue/bulk-retry        {ids: [...]}
              POST            /api/v1/email/queue/bulk-cancel       {ids: [...]}
              POST            /api/v1/email/queue/process           (admin) run one batch
"""

import logging
from datetime import datetime, time, timedelta

from flask import Blueprint, jsonify, request

from backoffice.auth import require_role
from backoffice.blueprints import date_arg, json_body, paginate_query, register_error_handlers
from backoffice.services import email_queue_service, email_template_service

logger = logging.getLogger(__name__)

email_bp = Blueprint("email", __name__, url_prefix="/api/v1/email")
register_error_handlers(email_bp)


def _template_dict(template):
    result = template.to_dict()
    result["placeholders"] = email_template_service.extract_placeholders(
        template.subject_template, template.body_html, template.body_text,
    )
    return result


def _ids_from_body() -> list[int]:
    ids = json_body().get("ids")
    if not isinstance(ids, list) or not ids:
        raise ValueError("ids must be a non-empty list")
    return [int(i) for i in ids]


# ═════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════


@email_bp.route("/templates", methods=["GET"])
def list_templates():
    rows = email_template_service.template_query().all()
    return jsonify({"items": [_template_dict(t) for t in rows], "total": len(rows)})


@email_bp.route("/templates", methods=["POST"])
def create_template():
    template = email_template_service.create_template(json_body())
    return jsonify(_template_dict(template)), 201


@email_bp.route("/templates/key/<template_key>", methods=["GET"])
def get_template_by_key(template_key):
    return jsonify(_template_dict(email_template_service.get_template_by_key(template_key)))


@email_bp.route("/templates/<int:template_id>", methods=["GET"])
def get_template(template_id):
    return jsonify(_template_dict(email_template_service.get_template(template_id)))


@email_bp.route("/templates/<int:template_id>", methods=["PUT", "PATCH"])
def update_template(template_id):
    template = email_template_service.update_template(template_id, json_body())
    return jsonify(_template_dict(template))


@email_bp.route("/templates/<int:template_id>", methods=["DELETE"])
@require_role("admin")
def delete_template(template_id):
    email_template_service.delete_template(template_id)
    return jsonify({"message": "Template deleted", "id": template_id})


@email_bp.route("/templates/<int:template_id>/preview", methods=["POST"])
def preview_template(template_id):
    data = json_body().get("data") or {}
    if not isinstance(data, dict):
        raise ValueError("data must be an object")
    return jsonify(email_template_service.preview_template(template_id, data))


# ═════════════════════════════════════════════════════════════════════════
# Queue
# ═════════════════════════════════════════════════════════════════════════


@email_bp.route("/queue", methods=["GET"])
def list_queue():
    """Query params: status, template_key, search, date_from, date_to, limit, offset."""
    date_from = date_arg("date_from")
    date_to = date_arg("date_to")
    q = email_queue_service.queue_query(
        status=request.args.get("status") or None,
        template_key=request.args.get("template_key") or None,
        search=request.args.get("search") or None,
        date_from=datetime.combine(date_from, time.min) if date_from else None,
        date_to=datetime.combine(date_to + timedelta(days=1), time.min) if date_to else None,
    )
    items, total = paginate_query(q, default_limit=50)
    return jsonify({"items": [e.to_dict() for e in items], "total": total})


@email_bp.route("/queue", methods=["POST"])
def queue_email():
    entry = email_queue_service.queue_email(json_body())
    return jsonify(entry.to_dict()), 201


@email_bp.route("/queue/stats", methods=["GET"])
def queue_stats():
    return jsonify(email_queue_service.queue_stats())


@email_bp.route("/queue/template-keys", methods=["GET"])
def queue_template_keys():
    return jsonify({"items": email_queue_service.distinct_template_keys()})


@email_bp.route("/queue/<int:entry_id>", methods=["GET"])
def get_entry(entry_id):
    return jsonify(email_queue_service.get_entry(entry_id).to_dict())


@email_bp.route("/queue/<int:entry_id>/retry", methods=["POST"])
def retry_entry(entry_id):
    return jsonify(email_queue_service.retry_entry(entry_id).to_dict())


@email_bp.route("/queue/<int:entry_id>/cancel", methods=["POST"])
def cancel_entry(entry_id):
    return jsonify(email_queue_service.cancel_entry(entry_id).to_dict())


@email_bp.route("/queue/bulk-retry", methods=["POST"])
def bulk_retry():
    return jsonify({"updated": email_queue_service.bulk_retry(_ids_from_body())})


@email_bp.route("/queue/bulk-cancel", methods=["POST"])
def bulk_cancel():
    return jsonify({"updated": email_queue_service.bulk_cancel(_ids_from_body())})


@email_bp.route("/queue/process", methods=["POST"])
@require_role("admin")
def process_queue():
    batch_size = json_body().get("batch_size")
    result = email_queue_service.process_queue(int(batch_size) if batch_size else None)
    return jsonify(result)
