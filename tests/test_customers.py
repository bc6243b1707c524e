# tests/test_customers.py
from __future__ import annotations

from fleetdesk.extensions import db
from fleetdesk.models import CompanyStatus, Customer
from fleetdesk.services import customers, invoices, loads, quotes


def test_create_and_search(dispatcher):
    result = customers.create_customer(
        dispatcher,
        {"name": "Kalahari Salt", "email": "Accounts@KalahariSalt.com", "contact_person": "Neo", "payment_terms": 7},
    )
    assert result.success, result.error
    assert result.data["email"] == "accounts@kalaharisalt.com"
    assert result.data["currency"] == "USD"

    customers.create_customer(dispatcher, {"name": "Zambezi Timber"})
    found = customers.list_customers(dispatcher, search="kalahari").data
    assert [c["name"] for c in found] == ["Kalahari Salt"]


def test_create_rejects_bad_currency(dispatcher):
    result = customers.create_customer(dispatcher, {"name": "Odd Co", "currency": "XYZ"})
    assert result.error == "Invalid customer data"
    assert result.status_code == 400


def test_default_tax_rate_held_to_cents(dispatcher, customer):
    fine = customers.create_customer(dispatcher, {"name": "Odd Co", "default_tax_rate": 7.5})
    assert fine.data["default_tax_rate"] == 7.5

    result = customers.update_customer(dispatcher, customer.id, {"default_tax_rate": 7.125})
    assert result.error == "Invalid customer data"
    assert result.status_code == 400
    assert db.session.get(Customer, customer.id).default_tax_rate == 0


def test_update_ignores_blanked_required_fields(dispatcher, customer):
    result = customers.update_customer(dispatcher, customer.id, {"name": "", "phone": "+267 390 0000"})
    assert result.success
    assert result.data["name"] == "Acme Mining"
    assert result.data["phone"] == "+267 390 0000"


def test_other_company_customer_is_invisible(dispatcher, make_company, make_customer):
    other = make_company("Other Transport")
    foreign = make_customer("Foreign Buyer", company_id=other.id, email="x@foreign.test")

    assert customers.get_customer(dispatcher, foreign.id).error == "Customer not found"
    assert customers.list_customers(dispatcher).data == []


def test_get_reports_outstanding(manager, customer):
    invoices.create_invoice(
        manager, {"customer_id": customer.id, "items": [{"description": "Haul", "quantity": 1, "unit_price": 500}]}
    )

    data = customers.get_customer(manager, customer.id).data
    assert data["open_invoices"] == 1
    assert data["outstanding_amount"] == 500.0
    assert data["active_loads"] == 0


def test_delete_blocked_by_active_load(manager, customer, load_payload):
    loads.create_load(manager, load_payload())

    result = customers.delete_customer(manager, customer.id)
    assert result.error == "Cannot delete customer with active loads. Please complete or cancel loads first."

    toggled = customers.toggle_customer_status(manager, customer.id)
    assert toggled.error == "Cannot deactivate customer with active loads. Please complete or cancel loads first."


def test_delete_blocked_by_pending_invoice(manager, customer):
    invoices.create_invoice(
        manager, {"customer_id": customer.id, "items": [{"description": "Haul", "quantity": 1, "unit_price": 500}]}
    )
    result = customers.delete_customer(manager, customer.id)
    assert result.error == "Cannot delete customer with pending invoices. Please resolve invoices first."


def test_delete_with_history_deactivates(manager, customer, quote_payload):
    quotes.create_quote(manager, quote_payload())

    result = customers.delete_customer(manager, customer.id)
    assert result.success
    assert result.data == {"id": customer.id, "deleted": False, "is_active": False}
    assert db.session.get(Customer, customer.id).is_active is False


def test_delete_unreferenced_customer(manager, customer):
    customer_id = customer.id
    result = customers.delete_customer(manager, customer_id)
    assert result.data["deleted"] is True
    assert db.session.get(Customer, customer_id) is None


def test_dispatcher_cannot_delete(dispatcher, customer):
    assert customers.delete_customer(dispatcher, customer.id).error == "Insufficient permissions"


def test_toggle_and_inactive_filter(dispatcher, customer, quote_payload):
    off = customers.toggle_customer_status(dispatcher, customer.id)
    assert off.message == "Customer deactivated successfully"
    assert customers.list_customers(dispatcher, active=True).data == []

    blocked = quotes.create_quote(dispatcher, quote_payload())
    assert blocked.error == "Customer is inactive"

    on = customers.toggle_customer_status(dispatcher, customer.id)
    assert on.data["is_active"] is True


def test_tenant_gate_failures(company, make_profile, customer):
    inactive = make_profile("dispatcher", is_active=False)
    assert customers.list_customers(inactive).error == "Account is inactive"

    orphan = make_profile("dispatcher", company_id=None)
    assert customers.list_customers(orphan).error == "User not associated with a company"

    active = make_profile("dispatcher")
    company.status = CompanyStatus.SUSPENDED
    db.session.commit()
    result = customers.list_customers(active)
    assert result.error == "Company account is not active"
    assert result.status_code == 403
