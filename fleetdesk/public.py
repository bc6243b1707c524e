# fleetdesk/public.py
from __future__ import annotations

from flask import Blueprint, jsonify, request

from .extensions import limiter
from .services import onboarding

public = Blueprint("public", __name__, url_prefix="/public")


# =========================================================
# Fleet applications (no login)
# =========================================================
@public.route("/applications", methods=["POST"])
@limiter.limit("10 per hour")
def submit_application():
    result = onboarding.submit_fleet_application(request.get_json(silent=True) or {})
    status = 201 if result.success else result.status_code
    return jsonify(result.to_dict()), status


@public.route("/applications/status", methods=["GET"])
@limiter.limit("30 per hour")
def application_status():
    result = onboarding.check_application_status(
        request.args.get("email"),
        request.args.get("number"),
    )
    return jsonify(result.to_dict()), result.status_code
