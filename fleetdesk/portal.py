# fleetdesk/portal.py
from __future__ import annotations

from flask import Blueprint, request
from flask_login import current_user

from .routes import _body, _respond
from .services import portal as portal_service
from .services import ratings

portal = Blueprint("portal", __name__, url_prefix="/portal")


# -------------------------------------------------------------------
# Dashboard + profile
# -------------------------------------------------------------------
@portal.route("/dashboard", methods=["GET"])
def dashboard():
    return _respond(portal_service.portal_dashboard(current_user))


@portal.route("/profile", methods=["GET"])
def profile_get():
    return _respond(portal_service.get_profile(current_user))


@portal.route("/profile", methods=["PUT", "PATCH"])
def profile_update():
    return _respond(portal_service.update_profile(current_user, _body()))


# -------------------------------------------------------------------
# Quotes
# -------------------------------------------------------------------
@portal.route("/quotes", methods=["GET"])
def quotes_list():
    return _respond(portal_service.portal_quotes(current_user, status=request.args.get("status")))


@portal.route("/quotes/<int:quote_id>/accept", methods=["POST"])
def quotes_accept(quote_id: int):
    return _respond(portal_service.accept_quote(current_user, quote_id))


@portal.route("/quotes/<int:quote_id>/reject", methods=["POST"])
def quotes_reject(quote_id: int):
    return _respond(portal_service.reject_quote(current_user, quote_id, _body().get("reason")))


# -------------------------------------------------------------------
# Invoices + payments
# -------------------------------------------------------------------
@portal.route("/invoices", methods=["GET"])
def invoices_list():
    return _respond(portal_service.portal_invoices(current_user, status=request.args.get("status")))


@portal.route("/payments", methods=["GET"])
def payments_list():
    return _respond(portal_service.payment_history(current_user))


# -------------------------------------------------------------------
# Shipments
# -------------------------------------------------------------------
@portal.route("/loads", methods=["GET"])
def loads_list():
    return _respond(portal_service.portal_loads(current_user, status=request.args.get("status")))


@portal.route("/loads", methods=["POST"])
def loads_request():
    return _respond(portal_service.submit_load_request(current_user, _body()), created=True)


@portal.route("/loads/<int:load_id>", methods=["GET"])
def loads_get(load_id: int):
    return _respond(portal_service.portal_load(current_user, load_id))


# -------------------------------------------------------------------
# Ratings
# -------------------------------------------------------------------
@portal.route("/ratings", methods=["GET"])
def ratings_list():
    return _respond(ratings.list_my_ratings(current_user))


@portal.route("/ratings", methods=["POST"])
def ratings_submit():
    return _respond(ratings.submit_rating(current_user, _body()), created=True)
