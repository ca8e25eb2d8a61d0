"""
Open course companies blueprint.

Endpoints (prefix /api/v1/open-courses/companies):
    GET    /                          — list with stats (?search=, ?include_inactive=)
    POST   /                          — create
    GET    /options                   — active id/name pairs
    POST   /find-or-create            — {"name"}, case-insensitive
    GET    /<id>                      — detail with stats
    PUT    /<id>                      — update
    DELETE /<id>                      — delete, unlinking delegates (admin)
    GET    /<id>/delegates            — linked delegates with session and certificate
    GET    /<id>/course-summary       — per course type totals
    POST   /<id>/delegates            — bulk link {"delegate_ids": [...]}
    PUT    /delegates/<delegate_id>   — link or unlink one delegate {"company_id"}
"""

from flask import Blueprint, jsonify, request

from backoffice.auth import require_role
from backoffice.blueprints import bool_arg, json_body, paginate_query, register_error_handlers
from backoffice.services import open_course_company_service as companies

open_course_companies_bp = Blueprint(
    "open_course_companies", __name__, url_prefix="/api/v1/open-courses",
)
register_error_handlers(open_course_companies_bp)


@open_course_companies_bp.route("/companies", methods=["GET"])
def list_companies():
    q = companies.company_query(
        search=request.args.get("search") or None,
        active_only=not bool_arg("include_inactive"),
    )
    rows, total = paginate_query(q)
    return jsonify({"items": companies.with_stats(rows), "total": total})


@open_course_companies_bp.route("/companies", methods=["POST"])
def create_company():
    return jsonify(companies.create_company(json_body()).to_dict()), 201


@open_course_companies_bp.route("/companies/options", methods=["GET"])
def options():
    return jsonify({"items": companies.dropdown()})


@open_course_companies_bp.route("/companies/find-or-create", methods=["POST"])
def find_or_create():
    return jsonify(companies.find_or_create_by_name(json_body().get("name")).to_dict())


@open_course_companies_bp.route("/companies/<int:company_id>", methods=["GET"])
def get_company(company_id):
    return jsonify(companies.company_detail(company_id))


@open_course_companies_bp.route("/companies/<int:company_id>", methods=["PUT", "PATCH"])
def update_company(company_id):
    return jsonify(companies.update_company(company_id, json_body()).to_dict())


@open_course_companies_bp.route("/companies/<int:company_id>", methods=["DELETE"])
@require_role("admin")
def delete_company(company_id):
    unlinked = companies.delete_company(company_id)
    return jsonify({"message": "Company deleted", "id": company_id, "delegates_unlinked": unlinked})


@open_course_companies_bp.route("/companies/<int:company_id>/delegates", methods=["GET"])
def company_delegates(company_id):
    items = companies.company_delegates(company_id)
    return jsonify({"items": items, "total": len(items)})


@open_course_companies_bp.route("/companies/<int:company_id>/course-summary", methods=["GET"])
def course_summary(company_id):
    return jsonify({"items": companies.company_course_summary(company_id)})


@open_course_companies_bp.route("/companies/<int:company_id>/delegates", methods=["POST"])
def bulk_link(company_id):
    ids = json_body().get("delegate_ids") or []
    if not isinstance(ids, list):
        return jsonify({"error": "delegate_ids must be a list"}), 400
    return jsonify({"linked": companies.bulk_link(ids, company_id), "company_id": company_id})


@open_course_companies_bp.route("/companies/delegates/<int:delegate_id>", methods=["PUT"])
def link_delegate(delegate_id):
    company_id = json_body().get("company_id")
    delegate = companies.link_delegate(delegate_id, int(company_id) if company_id else None)
    return jsonify(delegate.to_dict())
