# tests/test_portal.py
from __future__ import annotations

from datetime import timedelta

import pytest

from fleetdesk.extensions import db
from fleetdesk.models import Customer, Load, LoadStatus, Profile, QuoteStatus, utc_today
from fleetdesk.services import customers, features, invoices, loads, portal, quotes


@pytest.fixture
def invoice_payload(customer):
    def _make(**overrides):
        payload = {
            "customer_id": customer.id,
            "tax_rate": 15,
            "items": [
                {"description": "Linehaul", "quantity": 1, "unit_price": 1000},
                {"description": "Border clearance", "quantity": 2, "unit_price": 125.5},
            ],
        }
        payload.update(overrides)
        return payload

    return _make


def _sent_quote(actor, payload) -> int:
    quote_id = quotes.create_quote(actor, payload).data["id"]
    assert quotes.send_quote(actor, quote_id).success
    return quote_id


# =========================================================
# Portal access (staff side)
# =========================================================
def test_enable_portal_access_creates_customer_login(manager, customer):
    result = customers.enable_portal_access(manager, customer.id)

    assert result.success, result.error
    assert result.message == "Portal access enabled"
    assert result.data["temporary_password"]
    account = db.session.get(Profile, result.data["profile"]["id"])
    assert account.role == "customer"
    assert account.customer_id == customer.id
    assert account.company_id == customer.company_id
    assert account.must_change_password

    again = customers.enable_portal_access(manager, customer.id)
    assert again.error == "Customer already has portal access"
    assert again.status_code == 409


def test_enable_portal_access_guards(manager, dispatcher, make_customer, make_profile):
    assert customers.enable_portal_access(dispatcher, 1).error == "Insufficient permissions"

    no_email = make_customer("Silent Freight", email=None)
    assert customers.enable_portal_access(manager, no_email.id).error == "Customer has no email address"

    dormant = make_customer("Dormant Ltd", email="d@dormant.co.za", is_active=False)
    assert customers.enable_portal_access(manager, dormant.id).error == "Customer is inactive"

    taken = make_customer("Taken Ltd", email="ops@taken.co.za")
    make_profile("dispatcher", email="OPS@taken.co.za")
    assert customers.enable_portal_access(manager, taken.id).error == "A user with this email already exists"


def test_revoke_then_reenable_issues_new_password(manager, customer):
    first = customers.enable_portal_access(manager, customer.id).data

    revoked = customers.revoke_portal_access(manager, customer.id)
    assert revoked.success
    account = db.session.get(Profile, first["profile"]["id"])
    assert not account.is_active
    assert portal.portal_dashboard(account).error == "Account is inactive"

    assert customers.revoke_portal_access(manager, customer.id).error == "Customer has no portal access"

    second = customers.enable_portal_access(manager, customer.id).data
    assert second["profile"]["id"] == account.id
    assert second["temporary_password"] != first["temporary_password"]
    assert db.session.get(Profile, account.id).is_active


def test_portal_login_role_cannot_be_reassigned(super_admin, portal_user):
    from fleetdesk.services import superadmin

    result = superadmin.update_user_role(super_admin, portal_user.id, "manager")
    assert result.error == "Cannot change role of customer portal accounts"


def test_deleting_customer_removes_portal_login(company_admin, customer, portal_user):
    user_id = portal_user.id
    result = customers.delete_customer(company_admin, customer.id)
    assert result.success, result.error
    assert db.session.get(Profile, user_id) is None


# =========================================================
# Gate
# =========================================================
def test_staff_are_not_portal_users(dispatcher, company_admin):
    for actor in (dispatcher, company_admin):
        result = portal.portal_dashboard(actor)
        assert result.error == "Customer portal access required"
        assert result.status_code == 403


def test_inactive_customer_locked_out(portal_user, customer):
    customer.is_active = False
    db.session.commit()

    result = portal.portal_quotes(portal_user)
    assert result.error == "Customer account is inactive"


def test_portal_feature_switch(company_admin, portal_user):
    assert portal.get_profile(portal_user).success

    assert features.toggle_feature(company_admin, "customer_portal", False).success
    result = portal.portal_loads(portal_user)
    assert result.error == "Customer portal is not enabled for this company"
    assert result.status_code == 403


# =========================================================
# Dashboard + quotes
# =========================================================
def test_dashboard_counts_only_own_records(
    dispatcher, manager, portal_user, make_customer, quote_payload, load_payload, invoice_payload
):
    other = make_customer("Kalahari Salt", email="orders@kalaharisalt.co.za")
    quotes.create_quote(dispatcher, quote_payload())
    _sent_quote(dispatcher, quote_payload())
    _sent_quote(dispatcher, quote_payload(customer_id=other.id))
    loads.create_load(dispatcher, load_payload())
    loads.create_load(dispatcher, load_payload(customer_id=other.id))

    past = utc_today() - timedelta(days=30)
    overdue = invoices.create_invoice(
        manager, invoice_payload(issue_date=past.isoformat(), due_date=(past + timedelta(days=7)).isoformat())
    )
    paid = invoices.create_invoice(manager, invoice_payload())
    invoices.mark_invoice_paid(manager, paid.data["id"])

    result = portal.portal_dashboard(portal_user)

    assert result.success, result.error
    stats = result.data["stats"]
    assert stats["total_loads"] == 1
    assert stats["active_loads"] == 1
    assert stats["pending_quotes"] == 1
    assert stats["pending_invoices"] == 1
    assert stats["overdue_invoices"] == 1
    assert stats["total_outstanding"] == overdue.data["total_amount"] == 1438.65
    assert len(result.data["recent_quotes"]) == 1
    assert {i["id"] for i in result.data["recent_invoices"]} == {overdue.data["id"], paid.data["id"]}


def test_drafts_stay_hidden_until_sent(dispatcher, portal_user, quote_payload):
    draft_id = quotes.create_quote(dispatcher, quote_payload()).data["id"]
    assert portal.portal_quotes(portal_user).data == []

    quotes.send_quote(dispatcher, draft_id)
    listed = portal.portal_quotes(portal_user, status="sent").data
    assert [q["id"] for q in listed] == [draft_id]

    assert portal.portal_quotes(portal_user, status="bogus").error == "Invalid quote status"


def test_accept_and_reject_from_portal(dispatcher, portal_user, quote_payload):
    first = _sent_quote(dispatcher, quote_payload())
    second = _sent_quote(dispatcher, quote_payload())

    accepted = portal.accept_quote(portal_user, first)
    assert accepted.success, accepted.error
    assert accepted.data["status"] == QuoteStatus.ACCEPTED.value

    rejected = portal.reject_quote(portal_user, second)
    assert rejected.success
    assert "Rejection reason: Rejected by customer" in quotes.get_quote(dispatcher, second).data["notes"]


# =========================================================
# Invoices + payments
# =========================================================
def test_invoices_and_payment_history(manager, portal_user, invoice_payload):
    open_invoice = invoices.create_invoice(manager, invoice_payload()).data
    paid = invoices.create_invoice(manager, invoice_payload()).data
    invoices.mark_invoice_paid(manager, paid["id"])

    pending = portal.portal_invoices(portal_user, status="pending").data
    assert [i["id"] for i in pending] == [open_invoice["id"]]

    history = portal.payment_history(portal_user).data
    assert [p["invoice_number"] for p in history] == [paid["invoice_number"]]
    assert history[0]["paid_amount"] == paid["total_amount"]


# =========================================================
# Shipments
# =========================================================
def test_load_detail_shows_driver_and_tracking(dispatcher, portal_user, load_payload, driver, vehicle):
    load = loads.create_load(dispatcher, load_payload()).data
    loads.assign_driver(dispatcher, load["id"], driver.id)
    loads.assign_vehicle(dispatcher, load["id"], vehicle.id)

    detail = portal.portal_load(portal_user, load["id"])

    assert detail.success, detail.error
    assert detail.data["driver"]["name"] == "Tendai Moyo"
    assert detail.data["vehicle"]["registration_number"] == "ABC123GP"
    assert [t["status"] for t in detail.data["tracking"]] == ["assigned"]
    assert [row["id"] for row in portal.portal_loads(portal_user, status="assigned").data] == [load["id"]]


def test_other_customers_load_not_found(dispatcher, portal_user, make_customer, load_payload):
    other = make_customer("Kalahari Salt", email="orders@kalaharisalt.co.za")
    theirs = loads.create_load(dispatcher, load_payload(customer_id=other.id)).data

    result = portal.portal_load(portal_user, theirs["id"])
    assert result.error == "Load not found"
    assert result.status_code == 404


def test_submit_load_request(portal_user, customer):
    result = portal.submit_load_request(
        portal_user,
        {
            "pickup_address": "Mine Rd 4",
            "pickup_city": "Rustenburg",
            "delivery_address": "Harbour Rd 9",
            "cargo_description": "Chrome ore",
            "weight_kg": 28000,
            "special_instructions": "Gate closes at 17:00",
        },
    )

    assert result.success, result.error
    assert result.message == f"Load request LD-ACM{customer.id}-0001 submitted successfully"
    load = db.session.get(Load, result.data["id"])
    assert load.status == LoadStatus.PENDING
    assert load.customer_id == customer.id
    assert load.notes == "Gate closes at 17:00"
    assert load.rate is None


def test_load_request_validation(portal_user):
    missing = portal.submit_load_request(portal_user, {"pickup_address": "Mine Rd 4"})
    assert missing.error == "Invalid load request"

    today = utc_today()
    backwards = portal.submit_load_request(
        portal_user,
        {
            "pickup_address": "Mine Rd 4",
            "delivery_address": "Harbour Rd 9",
            "pickup_date": today.isoformat(),
            "delivery_date": (today - timedelta(days=1)).isoformat(),
        },
    )
    assert backwards.error == "Invalid load request"
    assert Load.query.count() == 0


# =========================================================
# Profile
# =========================================================
def test_profile_update_touches_contact_fields_only(portal_user, customer):
    result = portal.update_profile(
        portal_user, {"contact_person": "Naledi Dube", "phone": "+27 11 555 0101", "payment_terms": 90}
    )

    assert result.success
    assert result.message == "Profile updated successfully"
    refreshed = db.session.get(Customer, customer.id)
    assert refreshed.contact_person == "Naledi Dube"
    assert refreshed.payment_terms == 14

    profile = portal.get_profile(portal_user).data
    assert profile["company"]["name"] == "Acme Haulage"


# =========================================================
# HTTP
# =========================================================
def test_portal_over_http(client, manager, make_customer, dispatcher, quote_payload, login):
    buyer = make_customer("Acme Mining", email="orders@acmemining.co.za")
    access = customers.enable_portal_access(manager, buyer.id).data
    quote_id = _sent_quote(dispatcher, quote_payload(customer_id=buyer.id))

    assert client.get("/portal/dashboard").status_code == 401

    login("orders@acmemining.co.za", access["temporary_password"])

    dash = client.get("/portal/dashboard")
    assert dash.status_code == 200
    assert dash.get_json()["data"]["stats"]["pending_quotes"] == 1

    accepted = client.post(f"/portal/quotes/{quote_id}/accept")
    assert accepted.status_code == 200
    assert accepted.get_json()["data"]["status"] == "accepted"

    created = client.post("/portal/loads", json={"pickup_address": "A", "delivery_address": "B"})
    assert created.status_code == 201

    # staff API stays closed to the portal login
    assert client.get("/api/customers").status_code == 403
