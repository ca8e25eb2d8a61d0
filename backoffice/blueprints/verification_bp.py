"""
Public certificate verification.

    GET /api/v1/public/certificates/verify/<certificate_number>

Unauthenticated and rate limited (CERTIFICATE_VERIFY_RATE_LIMIT). Every
lookup is written to the verification log with request.remote_addr, which
only reflects X-Forwarded-For behind a configured proxy (middleware/proxy.py).
Only public certificate fields are returned.
"""

import logging

from flask import Blueprint, jsonify, request

from backoffice.blueprints import register_error_handlers
from backoffice.services import certificate_service

logger = logging.getLogger(__name__)

verification_bp = Blueprint("verification", __name__, url_prefix="/api/v1/public")
register_error_handlers(verification_bp)


@verification_bp.route("/certificates/verify/<path:certificate_number>", methods=["GET"])
def verify(certificate_number):
    result = certificate_service.verify_certificate(certificate_number, ip_address=request.remote_addr)
    return jsonify(result), 200
