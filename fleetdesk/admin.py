# fleetdesk/admin.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user

from .services import features, onboarding, reporting, superadmin
from .utils.results import ActionResult

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _respond(result: ActionResult, created: bool = False):
    status = 201 if (created and result.success) else result.status_code
    return jsonify(result.to_dict()), status


def _body() -> dict:
    return request.get_json(silent=True) or {}


# -------------------------------------------------------------------
# Analytics
# -------------------------------------------------------------------
@admin_bp.route("/analytics", methods=["GET"])
def analytics():
    return _respond(reporting.system_analytics(current_user, days=request.args.get("days", 30, type=int)))


# -------------------------------------------------------------------
# Companies
# -------------------------------------------------------------------
@admin_bp.route("/companies", methods=["GET"])
def companies_list():
    return _respond(
        superadmin.list_companies(current_user, status=request.args.get("status"), search=request.args.get("q"))
    )


@admin_bp.route("/companies", methods=["POST"])
def companies_create():
    return _respond(superadmin.create_company(current_user, _body()), created=True)


@admin_bp.route("/companies/<int:company_id>", methods=["PUT", "PATCH"])
def companies_update(company_id: int):
    return _respond(superadmin.update_company(current_user, company_id, _body()))


@admin_bp.route("/companies/<int:company_id>/status", methods=["POST"])
def companies_status(company_id: int):
    return _respond(superadmin.update_company_status(current_user, company_id, _body().get("status")))


@admin_bp.route("/companies/<int:company_id>", methods=["DELETE"])
def companies_delete(company_id: int):
    return _respond(superadmin.delete_company(current_user, company_id))


@admin_bp.route("/companies/<int:company_id>/subscription", methods=["POST"])
def companies_subscription(company_id: int):
    return _respond(features.apply_subscription_plan(current_user, company_id, _body().get("plan")))


# -------------------------------------------------------------------
# Users + invitations
# -------------------------------------------------------------------
@admin_bp.route("/users", methods=["GET"])
def users_list():
    return _respond(
        superadmin.list_users(
            current_user,
            company_id=request.args.get("company_id", type=int),
            role=request.args.get("role"),
            search=request.args.get("q"),
        )
    )


@admin_bp.route("/users/<int:user_id>/role", methods=["POST"])
def users_role(user_id: int):
    return _respond(superadmin.update_user_role(current_user, user_id, _body().get("role")))


@admin_bp.route("/users/<int:user_id>/active", methods=["POST"])
def users_active(user_id: int):
    return _respond(superadmin.set_user_active(current_user, user_id, bool(_body().get("is_active"))))


@admin_bp.route("/users/<int:user_id>", methods=["DELETE"])
def users_delete(user_id: int):
    return _respond(superadmin.delete_user(current_user, user_id))


@admin_bp.route("/invitations", methods=["POST"])
def invitations_create():
    return _respond(superadmin.invite_user(current_user, _body()), created=True)


# -------------------------------------------------------------------
# Fleet applications
# -------------------------------------------------------------------
@admin_bp.route("/applications", methods=["GET"])
def applications_list():
    return _respond(onboarding.list_applications(current_user, status=request.args.get("status")))


@admin_bp.route("/applications/stats", methods=["GET"])
def applications_stats():
    return _respond(onboarding.application_stats(current_user))


@admin_bp.route("/applications/<int:application_id>/approve", methods=["POST"])
def applications_approve(application_id: int):
    return _respond(onboarding.approve_application(current_user, application_id))


@admin_bp.route("/applications/<int:application_id>/reject", methods=["POST"])
def applications_reject(application_id: int):
    return _respond(onboarding.reject_application(current_user, application_id, _body().get("reason")))


# -------------------------------------------------------------------
# System
# -------------------------------------------------------------------
@admin_bp.route("/settings", methods=["GET"])
def settings_get():
    return _respond(superadmin.get_system_settings(current_user))


@admin_bp.route("/settings", methods=["PUT", "PATCH"])
def settings_update():
    return _respond(superadmin.update_system_settings(current_user, request.get_json(silent=True)))


@admin_bp.route("/maintenance", methods=["POST"])
def maintenance_toggle():
    enabled = _body().get("enabled")
    return _respond(superadmin.toggle_maintenance_mode(current_user, None if enabled is None else bool(enabled)))


@admin_bp.route("/health", methods=["GET"])
def health():
    return _respond(superadmin.health_check(current_user))


@admin_bp.route("/logs", methods=["GET"])
def logs():
    return _respond(
        superadmin.list_system_logs(
            current_user,
            level=request.args.get("level"),
            component=request.args.get("component"),
            limit=request.args.get("limit", 100, type=int),
        )
    )
