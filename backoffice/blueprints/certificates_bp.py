"""
Certificate blueprint.

Endpoint groups:
  Course types          GET/POST /api/v1/course-types
                        GET/PUT/DELETE /api/v1/course-types/<id>
  Certificate templates GET/POST /api/v1/certificate-templates
                        GET/PUT/DELETE /api/v1/certificate-templates/<id>
                        POST /api/v1/certificate-templates/<id>/duplicate
  Certificates          GET  /api/v1/certificates
                        GET  /api/v1/certificates/export.xlsx
                        GET  /api/v1/certificates/<id>
                        POST /api/v1/bookings/<bid>/candidates/<cid>/certificate
                        POST /api/v1/open-courses/delegates/<did>/certificate
                        POST /api/v1/certificates/<id>/revoke        (admin)
                        POST /api/v1/certificates/<id>/send
  Verification log      GET  /api/v1/certificates/verification-log

The unauthenticated lookup lives in verification_bp.
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request, send_file

from backoffice.auth import require_role
from backoffice.blueprints import (
    bool_arg, date_arg, json_body, paginate_query, register_error_handlers,
)
from backoffice.services import certificate_service

logger = logging.getLogger(__name__)

certificates_bp = Blueprint("certificates", __name__, url_prefix="/api/v1")
register_error_handlers(certificates_bp)


# ═════════════════════════════════════════════════════════════════════════
# Course types
# ═════════════════════════════════════════════════════════════════════════


@certificates_bp.route("/course-types", methods=["GET"])
def list_course_types():
    rows = certificate_service.course_type_query(include_inactive=bool_arg("include_inactive")).all()
    return jsonify({"items": [ct.to_dict() for ct in rows], "total": len(rows)})


@certificates_bp.route("/course-types", methods=["POST"])
def create_course_type():
    course_type = certificate_service.create_course_type(json_body())
    return jsonify(course_type.to_dict()), 201


@certificates_bp.route("/course-types/<int:course_type_id>", methods=["GET"])
def get_course_type(course_type_id):
    return jsonify(certificate_service.get_course_type(course_type_id).to_dict())


@certificates_bp.route("/course-types/<int:course_type_id>", methods=["PUT", "PATCH"])
def update_course_type(course_type_id):
    course_type = certificate_service.update_course_type(course_type_id, json_body())
    return jsonify(course_type.to_dict())


@certificates_bp.route("/course-types/<int:course_type_id>", methods=["DELETE"])
@require_role("admin")
def delete_course_type(course_type_id):
    certificate_service.delete_course_type(course_type_id)
    return jsonify({"message": "Course type deleted", "id": course_type_id})


# ═════════════════════════════════════════════════════════════════════════
# Certificate templates
# ═════════════════════════════════════════════════════════════════════════


@certificates_bp.route("/certificate-templates", methods=["GET"])
def list_templates():
    rows = certificate_service.template_query(
        course_type_id=request.args.get("course_type_id", type=int),
    ).all()
    return jsonify({"items": [t.to_dict() for t in rows], "total": len(rows)})


@certificates_bp.route("/certificate-templates", methods=["POST"])
def create_template():
    return jsonify(certificate_service.create_template(json_body()).to_dict()), 201


@certificates_bp.route("/certificate-templates/<int:template_id>", methods=["GET"])
def get_template(template_id):
    return jsonify(certificate_service.get_template(template_id).to_dict())


@certificates_bp.route("/certificate-templates/<int:template_id>", methods=["PUT", "PATCH"])
def update_template(template_id):
    return jsonify(certificate_service.update_template(template_id, json_body()).to_dict())


@certificates_bp.route("/certificate-templates/<int:template_id>", methods=["DELETE"])
@require_role("admin")
def delete_template(template_id):
    certificate_service.delete_template(template_id)
    return jsonify({"message": "Template deleted", "id": template_id})


@certificates_bp.route("/certificate-templates/<int:template_id>/duplicate", methods=["POST"])
def duplicate_template(template_id):
    return jsonify(certificate_service.duplicate_template(template_id).to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Certificates
# ═════════════════════════════════════════════════════════════════════════


def _filtered_query():
    return certificate_service.certificate_query(
        course_type_id=request.args.get("course_type_id", type=int),
        status=request.args.get("status") or None,
        expiry=request.args.get("expiry_status") or None,
        issued_from=date_arg("date_from"),
        issued_to=date_arg("date_to"),
        search=request.args.get("search") or None,
    )


@certificates_bp.route("/certificates", methods=["GET"])
def list_certificates():
    """Query params: course_type_id, status, expiry_status, date_from, date_to, search, limit, offset."""
    items, total = paginate_query(_filtered_query())
    return jsonify({"items": [c.to_dict() for c in items], "total": total})


@certificates_bp.route("/certificates/export.xlsx", methods=["GET"])
def export_certificates():
    """Same filters as the list, without pagination."""
    buf = certificate_service.export_certificates_xlsx(_filtered_query().all())
    filename = f"certificates_{datetime.now(timezone.utc).strftime('%Y%m%d')}.xlsx"
    return send_file(
        buf,
        as_attachment=True,
        download_name=filename,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )


@certificates_bp.route("/certificates/verification-log", methods=["GET"])
def verification_log():
    q = certificate_service.verification_log_query(request.args.get("certificate_number"))
    items, total = paginate_query(q)
    return jsonify({"items": [row.to_dict() for row in items], "total": total})


@certificates_bp.route("/certificates/<int:certificate_id>", methods=["GET"])
def get_certificate(certificate_id):
    return jsonify(certificate_service.get_certificate(certificate_id).to_dict())


@certificates_bp.route(
    "/bookings/<int:booking_id>/candidates/<int:candidate_id>/certificate", methods=["POST"],
)
def issue_for_candidate(booking_id, candidate_id):
    cert = certificate_service.issue_for_candidate(booking_id, candidate_id, json_body())
    return jsonify(cert.to_dict()), 201


@certificates_bp.route("/open-courses/delegates/<int:delegate_id>/certificate", methods=["POST"])
def issue_for_delegate(delegate_id):
    cert = certificate_service.issue_for_delegate(delegate_id, json_body())
    return jsonify(cert.to_dict()), 201


@certificates_bp.route("/certificates/<int:certificate_id>/revoke", methods=["POST"])
@require_role("admin")
def revoke_certificate(certificate_id):
    cert = certificate_service.revoke_certificate(certificate_id, json_body().get("reason"))
    return jsonify(cert.to_dict())


@certificates_bp.route("/certificates/<int:certificate_id>/send", methods=["POST"])
def send_certificate(certificate_id):
    base_url = (
        current_app.config.get("CERTIFICATE_VERIFY_BASE_URL")
        or f"{request.host_url.rstrip('/')}/api/v1/public/certificates/verify"
    )
    cert = certificate_service.send_certificate_email(certificate_id, verify_base_url=base_url)
    return jsonify(cert.to_dict())
