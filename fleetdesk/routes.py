# fleetdesk/routes.py
from __future__ import annotations

from datetime import date
from io import BytesIO

from flask import Blueprint, jsonify, request, send_file
from flask_login import current_user

from .services import (
    customers,
    documents,
    expenses,
    features,
    fleet,
    invoices,
    loads,
    payments,
    quotes,
    ratings,
    reporting,
)
from .utils.results import ActionResult

main = Blueprint("main", __name__, url_prefix="/api")


# =========================================================
# Helpers
# =========================================================
def _respond(result: ActionResult, created: bool = False):
    status = result.status_code
    if created and result.success:
        status = 201
    return jsonify(result.to_dict()), status


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _bool_arg(name: str) -> bool | None:
    raw = (request.args.get(name) or "").strip().lower()
    if raw in ("1", "true", "yes", "active"):
        return True
    if raw in ("0", "false", "no", "inactive"):
        return False
    return None


def _date_arg(name: str) -> date | None:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


def _send_bytes(result: ActionResult, mimetype: str, as_attachment: bool = True):
    if not result.success:
        return _respond(result)
    return send_file(
        BytesIO(result.data["content"]),
        mimetype=result.data.get("content_type") or mimetype,
        as_attachment=as_attachment,
        download_name=result.data["filename"],
    )


# =========================================================
# Dashboard
# =========================================================
@main.route("/dashboard", methods=["GET"])
def dashboard():
    return _respond(reporting.company_dashboard(current_user))


# =========================================================
# Customers
# =========================================================
@main.route("/customers", methods=["GET"])
def customers_list():
    return _respond(
        customers.list_customers(current_user, search=request.args.get("q"), active=_bool_arg("active"))
    )


@main.route("/customers", methods=["POST"])
def customers_create():
    return _respond(customers.create_customer(current_user, _body()), created=True)


@main.route("/customers/<int:customer_id>", methods=["GET"])
def customers_get(customer_id: int):
    return _respond(customers.get_customer(current_user, customer_id))


@main.route("/customers/<int:customer_id>", methods=["PUT", "PATCH"])
def customers_update(customer_id: int):
    return _respond(customers.update_customer(current_user, customer_id, _body()))


@main.route("/customers/<int:customer_id>", methods=["DELETE"])
def customers_delete(customer_id: int):
    return _respond(customers.delete_customer(current_user, customer_id))


@main.route("/customers/<int:customer_id>/toggle-status", methods=["POST"])
def customers_toggle(customer_id: int):
    return _respond(customers.toggle_customer_status(current_user, customer_id))


@main.route("/customers/<int:customer_id>/payment-methods", methods=["GET"])
def customers_payment_methods(customer_id: int):
    return _respond(payments.list_payment_methods(current_user, customer_id))


# =========================================================
# Quotes
# =========================================================
@main.route("/quotes", methods=["GET"])
def quotes_list():
    return _respond(
        quotes.list_quotes(
            current_user,
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            search=request.args.get("q"),
        )
    )


@main.route("/quotes", methods=["POST"])
def quotes_create():
    return _respond(quotes.create_quote(current_user, _body()), created=True)


@main.route("/quotes/<int:quote_id>", methods=["GET"])
def quotes_get(quote_id: int):
    return _respond(quotes.get_quote(current_user, quote_id))


@main.route("/quotes/<int:quote_id>", methods=["PUT", "PATCH"])
def quotes_update(quote_id: int):
    return _respond(quotes.update_quote(current_user, quote_id, _body()))


@main.route("/quotes/<int:quote_id>", methods=["DELETE"])
def quotes_delete(quote_id: int):
    return _respond(quotes.delete_quote(current_user, quote_id))


@main.route("/quotes/<int:quote_id>/duplicate", methods=["POST"])
def quotes_duplicate(quote_id: int):
    return _respond(quotes.duplicate_quote(current_user, quote_id), created=True)


@main.route("/quotes/<int:quote_id>/send", methods=["POST"])
def quotes_send(quote_id: int):
    return _respond(quotes.send_quote(current_user, quote_id))


@main.route("/quotes/<int:quote_id>/accept", methods=["POST"])
def quotes_accept(quote_id: int):
    return _respond(quotes.accept_quote(current_user, quote_id))


@main.route("/quotes/<int:quote_id>/reject", methods=["POST"])
def quotes_reject(quote_id: int):
    return _respond(quotes.reject_quote(current_user, quote_id, _body().get("reason")))


@main.route("/quotes/<int:quote_id>/convert", methods=["POST"])
def quotes_convert(quote_id: int):
    return _respond(invoices.convert_quote_to_invoice(current_user, quote_id), created=True)


@main.route("/quotes/<int:quote_id>/totals", methods=["GET"])
def quotes_totals(quote_id: int):
    return _respond(quotes.quote_totals_report(current_user, quote_id))


@main.route("/quotes/<int:quote_id>/totals/sync", methods=["POST"])
def quotes_sync_totals(quote_id: int):
    return _respond(quotes.sync_quote_totals(current_user, quote_id))


@main.route("/quotes/<int:quote_id>/pdf", methods=["GET"])
def quotes_pdf(quote_id: int):
    return _send_bytes(quotes.export_quote_pdf(current_user, quote_id), "application/pdf")


# =========================================================
# Invoices
# =========================================================
@main.route("/invoices", methods=["GET"])
def invoices_list():
    return _respond(
        invoices.list_invoices(
            current_user,
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            search=request.args.get("q"),
        )
    )


@main.route("/invoices", methods=["POST"])
def invoices_create():
    return _respond(invoices.create_invoice(current_user, _body()), created=True)


@main.route("/invoices/<int:invoice_id>", methods=["GET"])
def invoices_get(invoice_id: int):
    return _respond(invoices.get_invoice(current_user, invoice_id))


@main.route("/invoices/<int:invoice_id>/mark-paid", methods=["POST"])
def invoices_mark_paid(invoice_id: int):
    return _respond(invoices.mark_invoice_paid(current_user, invoice_id))


@main.route("/invoices/<int:invoice_id>/cancel", methods=["POST"])
def invoices_cancel(invoice_id: int):
    return _respond(invoices.cancel_invoice(current_user, invoice_id))


@main.route("/invoices/<int:invoice_id>/reminder", methods=["POST"])
def invoices_reminder(invoice_id: int):
    return _respond(invoices.send_invoice_reminder(current_user, invoice_id))


@main.route("/invoices/<int:invoice_id>/pdf", methods=["GET"])
def invoices_pdf(invoice_id: int):
    return _send_bytes(invoices.export_invoice_pdf(current_user, invoice_id), "application/pdf")


# =========================================================
# Payments
# =========================================================
@main.route("/payment-methods", methods=["POST"])
def payment_methods_create():
    return _respond(payments.add_payment_method(current_user, _body()), created=True)


@main.route("/payment-methods/<int:method_id>", methods=["DELETE"])
def payment_methods_delete(method_id: int):
    return _respond(payments.remove_payment_method(current_user, method_id))


@main.route("/payments", methods=["GET"])
def payments_list():
    return _respond(payments.list_transactions(current_user, invoice_id=request.args.get("invoice_id", type=int)))


@main.route("/payments", methods=["POST"])
def payments_process():
    return _respond(payments.process_invoice_payment(current_user, _body()), created=True)


@main.route("/payments/<int:transaction_id>/refund", methods=["POST"])
def payments_refund(transaction_id: int):
    return _respond(payments.refund_payment(current_user, transaction_id, _body()), created=True)


@main.route("/payments/stats", methods=["GET"])
def payments_stats():
    return _respond(payments.payment_stats(current_user))


# =========================================================
# Loads
# =========================================================
@main.route("/loads", methods=["GET"])
def loads_list():
    return _respond(
        loads.list_loads(
            current_user,
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            search=request.args.get("q"),
        )
    )


@main.route("/loads", methods=["POST"])
def loads_create():
    return _respond(loads.create_load(current_user, _body()), created=True)


@main.route("/loads/<int:load_id>", methods=["GET"])
def loads_get(load_id: int):
    return _respond(loads.get_load(current_user, load_id))


@main.route("/loads/<int:load_id>", methods=["PUT", "PATCH"])
def loads_update(load_id: int):
    return _respond(loads.update_load(current_user, load_id, _body()))


@main.route("/loads/<int:load_id>", methods=["DELETE"])
def loads_delete(load_id: int):
    return _respond(loads.delete_load(current_user, load_id))


@main.route("/loads/<int:load_id>/status", methods=["POST"])
def loads_status(load_id: int):
    body = _body()
    return _respond(loads.update_load_status(current_user, load_id, body.get("status"), body.get("notes")))


@main.route("/loads/<int:load_id>/assign-driver", methods=["POST"])
def loads_assign_driver(load_id: int):
    return _respond(loads.assign_driver(current_user, load_id, _body().get("driver_id")))


@main.route("/loads/<int:load_id>/unassign-driver", methods=["POST"])
def loads_unassign_driver(load_id: int):
    return _respond(loads.unassign_driver(current_user, load_id))


@main.route("/loads/<int:load_id>/assign-vehicle", methods=["POST"])
def loads_assign_vehicle(load_id: int):
    return _respond(loads.assign_vehicle(current_user, load_id, _body().get("vehicle_id")))


@main.route("/loads/<int:load_id>/tracking", methods=["POST"])
def loads_tracking(load_id: int):
    return _respond(loads.add_load_tracking(current_user, load_id, _body()), created=True)


# =========================================================
# Fleet
# =========================================================
@main.route("/drivers", methods=["GET"])
def drivers_list():
    return _respond(fleet.list_drivers(current_user, available_only=bool(_bool_arg("available"))))


@main.route("/drivers", methods=["POST"])
def drivers_create():
    return _respond(fleet.create_driver(current_user, _body()), created=True)


@main.route("/drivers/<int:driver_id>", methods=["GET"])
def drivers_get(driver_id: int):
    return _respond(fleet.get_driver(current_user, driver_id))


@main.route("/drivers/<int:driver_id>", methods=["PUT", "PATCH"])
def drivers_update(driver_id: int):
    return _respond(fleet.update_driver(current_user, driver_id, _body()))


@main.route("/drivers/<int:driver_id>", methods=["DELETE"])
def drivers_delete(driver_id: int):
    return _respond(fleet.delete_driver(current_user, driver_id))


@main.route("/drivers/<int:driver_id>/status", methods=["POST"])
def drivers_status(driver_id: int):
    return _respond(fleet.set_driver_status(current_user, driver_id, _body().get("status")))


@main.route("/vehicles", methods=["GET"])
def vehicles_list():
    return _respond(fleet.list_vehicles(current_user, status=request.args.get("status")))


@main.route("/vehicles", methods=["POST"])
def vehicles_create():
    return _respond(fleet.create_vehicle(current_user, _body()), created=True)


@main.route("/vehicles/<int:vehicle_id>", methods=["GET"])
def vehicles_get(vehicle_id: int):
    return _respond(fleet.get_vehicle(current_user, vehicle_id))


@main.route("/vehicles/<int:vehicle_id>", methods=["PUT", "PATCH"])
def vehicles_update(vehicle_id: int):
    return _respond(fleet.update_vehicle(current_user, vehicle_id, _body()))


@main.route("/vehicles/<int:vehicle_id>", methods=["DELETE"])
def vehicles_delete(vehicle_id: int):
    return _respond(fleet.delete_vehicle(current_user, vehicle_id))


@main.route("/vehicles/<int:vehicle_id>/status", methods=["POST"])
def vehicles_status(vehicle_id: int):
    return _respond(fleet.set_vehicle_status(current_user, vehicle_id, _body().get("status")))


# =========================================================
# Expenses
# =========================================================
@main.route("/expenses", methods=["GET"])
def expenses_list():
    return _respond(
        expenses.list_expenses(
            current_user,
            status=request.args.get("status"),
            category=request.args.get("category"),
            date_from=_date_arg("from"),
            date_to=_date_arg("to"),
        )
    )


@main.route("/expenses", methods=["POST"])
def expenses_create():
    return _respond(expenses.create_expense(current_user, _body()), created=True)


@main.route("/expenses/stats", methods=["GET"])
def expenses_stats():
    return _respond(expenses.expense_stats(current_user))


@main.route("/expenses/<int:expense_id>", methods=["PUT", "PATCH"])
def expenses_update(expense_id: int):
    return _respond(expenses.update_expense(current_user, expense_id, _body()))


@main.route("/expenses/<int:expense_id>", methods=["DELETE"])
def expenses_delete(expense_id: int):
    return _respond(expenses.delete_expense(current_user, expense_id))


@main.route("/expenses/<int:expense_id>/review", methods=["POST"])
def expenses_review(expense_id: int):
    return _respond(expenses.review_expense(current_user, expense_id, _body()))


@main.route("/expenses/<int:expense_id>/receipt", methods=["POST"])
def expenses_upload_receipt(expense_id: int):
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"success": False, "error": "No file provided"}), 400
    return _respond(expenses.upload_receipt(current_user, expense_id, upload.read(), upload.mimetype))


@main.route("/expenses/<int:expense_id>/receipt", methods=["GET"])
def expenses_download_receipt(expense_id: int):
    return _send_bytes(
        expenses.get_receipt(current_user, expense_id), "application/octet-stream", as_attachment=False
    )


# =========================================================
# Documents
# =========================================================
@main.route("/documents", methods=["GET"])
def documents_list():
    return _respond(
        documents.list_documents(
            current_user,
            document_type=request.args.get("type"),
            load_id=request.args.get("load_id", type=int),
            invoice_id=request.args.get("invoice_id", type=int),
            quote_id=request.args.get("quote_id", type=int),
        )
    )


@main.route("/documents", methods=["POST"])
def documents_upload():
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"success": False, "error": "No file provided"}), 400
    return _respond(
        documents.upload_document(
            current_user, upload.read(), upload.filename, upload.mimetype, request.form.to_dict()
        ),
        created=True,
    )


@main.route("/documents/stats", methods=["GET"])
def documents_stats():
    return _respond(documents.document_stats(current_user))


@main.route("/documents/<int:document_id>", methods=["PUT", "PATCH"])
def documents_update(document_id: int):
    return _respond(documents.update_document(current_user, document_id, _body()))


@main.route("/documents/<int:document_id>", methods=["DELETE"])
def documents_delete(document_id: int):
    return _respond(documents.delete_document(current_user, document_id))


@main.route("/documents/<int:document_id>/download", methods=["GET"])
def documents_download(document_id: int):
    return _send_bytes(documents.download_document(current_user, document_id), "application/octet-stream")


# =========================================================
# Customer ratings
# =========================================================
@main.route("/ratings", methods=["GET"])
def ratings_list():
    return _respond(
        ratings.list_ratings(
            current_user,
            customer_id=request.args.get("customer_id", type=int),
            load_id=request.args.get("load_id", type=int),
            rating=request.args.get("rating", type=int),
            date_from=_date_arg("from"),
            date_to=_date_arg("to"),
        )
    )


@main.route("/ratings/stats", methods=["GET"])
def ratings_stats():
    return _respond(ratings.rating_stats(current_user))


@main.route("/ratings/<int:rating_id>/respond", methods=["POST"])
def ratings_respond(rating_id: int):
    return _respond(ratings.respond_to_rating(current_user, rating_id, _body()))


# =========================================================
# Feature toggles + portal access
# =========================================================
@main.route("/features", methods=["GET"])
def features_list():
    return _respond(features.get_company_features(current_user, request.args.get("company_id", type=int)))


@main.route("/features/<feature_name>", methods=["POST"])
def features_toggle(feature_name: str):
    body = _body()
    return _respond(
        features.toggle_feature(current_user, feature_name, body.get("enabled"), body.get("company_id"))
    )


@main.route("/customers/<int:customer_id>/portal-access", methods=["POST"])
def customers_portal_enable(customer_id: int):
    return _respond(customers.enable_portal_access(current_user, customer_id), created=True)


@main.route("/customers/<int:customer_id>/portal-access", methods=["DELETE"])
def customers_portal_revoke(customer_id: int):
    return _respond(customers.revoke_portal_access(current_user, customer_id))
