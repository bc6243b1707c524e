# fleetdesk/auth.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db, limiter, login_manager
from .models import Profile, utcnow_naive
from .utils.passwords import (
    MAX_FAILED_LOGINS,
    hash_password,
    is_locked_out,
    set_lockout,
    validate_password,
    verify_password,
)

auth = Blueprint("auth", __name__, url_prefix="/auth")


# =========================================================
# Flask-Login hooks
# =========================================================
@login_manager.user_loader
def load_user(user_id: str):
    try:
        return db.session.get(Profile, int(user_id))
    except (TypeError, ValueError):
        return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"success": False, "error": "User not authenticated"}), 401


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _error(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


# =========================================================
# Login / Logout
# =========================================================
@auth.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    body = _json_body()
    email = (body.get("email") or "").strip().lower()
    password = body.get("password") or ""

    if not email or not password:
        return _error("Email and password are required", 400)

    profile = Profile.query.filter(db.func.lower(Profile.email) == email).first()

    if profile is not None and is_locked_out(profile.locked_until):
        return _error("Account temporarily locked. Try again later.", 403)

    if profile is None or not verify_password(profile.password_hash, password):
        if profile is not None:
            profile.failed_login_attempts = (profile.failed_login_attempts or 0) + 1
            if profile.failed_login_attempts >= MAX_FAILED_LOGINS:
                profile.locked_until = set_lockout()
                profile.failed_login_attempts = 0
                current_app.logger.warning("Profile %s locked after repeated failed logins", profile.id)
            try:
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.exception("Could not record failed login for %s", profile.id)
        return _error("Invalid email or password", 401)

    if not profile.is_active:
        return _error("Account is inactive", 403)

    profile.failed_login_attempts = 0
    profile.locked_until = None
    profile.last_login_at = utcnow_naive()
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not stamp last login for %s", profile.id)

    login_user(profile)
    return jsonify(
        {
            "success": True,
            "data": {**profile.to_dict(), "must_change_password": profile.must_change_password},
            "message": "Logged in",
        }
    )


@auth.route("/logout", methods=["POST"])
def logout():
    # Not login_required: logging out twice is harmless
    logout_user()
    return jsonify({"success": True, "message": "Logged out"})


@auth.route("/me", methods=["GET"])
@login_required
def me():
    data = current_user.to_dict()
    data["must_change_password"] = current_user.must_change_password
    data["company"] = current_user.company.to_dict() if current_user.company else None
    return jsonify({"success": True, "data": data})


# =========================================================
# Change password (logged-in users)
# =========================================================
@auth.route("/change-password", methods=["POST"])
@login_required
def change_password():
    body = _json_body()
    current_password = body.get("current_password") or ""
    new_password = body.get("new_password") or ""

    if not current_password or not new_password:
        return _error("Current and new password are required", 400)

    if not verify_password(current_user.password_hash, current_password):
        return _error("Current password is incorrect", 400)

    ok, message = validate_password(new_password)
    if not ok:
        return _error(message, 400)

    if verify_password(current_user.password_hash, new_password):
        return _error("New password must be different from the current password", 400)

    current_user.password_hash = hash_password(new_password)
    current_user.must_change_password = False
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Password update failed for %s", current_user.id)
        return _error("Failed to update password", 500)

    return jsonify({"success": True, "message": "Password updated successfully"})
