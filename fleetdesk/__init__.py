# fleetdesk/__init__.py
from __future__ import annotations

from typing import Any, Mapping

from flask import Flask, current_app, jsonify, request
from flask_login import current_user

from .extensions import db, limiter, login_manager, migrate
from .settings import Config, NotificationSettings


def create_app(overrides: Mapping[str, Any] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # ======================
    # Initialize Extensions
    # ======================
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # ======================
    # Import Models (CRITICAL)
    # ======================
    from . import models  # noqa: F401

    # ======================
    # Outbound reminder channels
    # ======================
    from .services.notifications import EXTENSION_KEY

    app.extensions[EXTENSION_KEY] = NotificationSettings.from_config(app.config)

    # ======================
    # Register Blueprints
    # ======================
    from .admin import admin_bp
    from .auth import auth
    from .portal import portal
    from .public import public
    from .routes import main

    app.register_blueprint(main)
    app.register_blueprint(auth)
    app.register_blueprint(admin_bp)
    app.register_blueprint(public)
    app.register_blueprint(portal)

    from .cli import create_super_admin

    app.cli.add_command(create_super_admin)

    # ======================
    # Maintenance mode (tenant API + customer portal)
    # ======================
    from .services.superadmin import is_maintenance_mode

    @app.before_request
    def enforce_maintenance_mode():
        endpoint = request.endpoint or ""
        if not endpoint.startswith(("main.", "portal.")):
            return None
        if getattr(current_user, "is_authenticated", False) and current_user.role == "super_admin":
            return None
        if not is_maintenance_mode():
            return None
        return jsonify({"success": False, "error": "System is under maintenance. Please try again later."}), 503

    # ======================
    # JSON error handlers
    # ======================
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"success": False, "error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"success": False, "error": "Method not allowed"}), 405

    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify({"success": False, "error": "Too many requests. Please try again later."}), 429

    @app.errorhandler(500)
    def internal_error(e):
        db.session.rollback()
        current_app.logger.exception("Unhandled error on %s", request.path)
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return app
