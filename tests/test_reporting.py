# tests/test_reporting.py
from __future__ import annotations

from datetime import timedelta

from fleetdesk.models import utc_today
from fleetdesk.services import expenses, invoices, loads, quotes, reporting


def _invoice(actor, customer, amount, **dates):
    payload = {"customer_id": customer.id, "items": [{"description": "Haul", "quantity": 1, "unit_price": amount}]}
    payload.update(dates)
    return invoices.create_invoice(actor, payload).data


def test_company_dashboard(manager, customer, driver, vehicle, quote_payload, load_payload):
    loads.create_load(manager, load_payload())

    stale = quotes.create_quote(manager, quote_payload(valid_until=(utc_today() - timedelta(days=2)).isoformat())).data
    quotes.send_quote(manager, stale["id"])
    quotes.create_quote(manager, quote_payload())

    paid = _invoice(manager, customer, 300)
    invoices.mark_invoice_paid(manager, paid["id"])
    _invoice(manager, customer, 200)
    _invoice(manager, customer, 50, issue_date="2025-01-01", due_date="2025-01-15")

    expenses.create_expense(manager, {"category": "tolls", "description": "N1 toll", "amount": 75})

    data = reporting.company_dashboard(manager).data
    assert data["loads"]["pending"] == 1
    assert data["quotes"]["draft"] == 1
    assert data["quotes"]["sent"] == 0
    assert data["quotes"]["expired"] == 1
    assert data["revenue"]["paid_total"] == 300.0
    assert data["revenue"]["paid_this_month"] == 300.0
    assert data["revenue"]["outstanding_total"] == 250.0
    assert data["revenue"]["overdue_total"] == 50.0
    assert data["revenue"]["overdue_count"] == 1
    assert data["expenses"]["pending"] == 75.0
    assert data["fleet"] == {"customers": 1, "active_drivers": 1, "active_vehicles": 1}


def test_dashboard_is_tenant_scoped(manager, make_company, make_profile, customer, load_payload):
    loads.create_load(manager, load_payload())
    other = make_company("Other Transport")
    outsider = make_profile("manager", company_id=other.id)

    data = reporting.company_dashboard(outsider).data
    assert sum(data["loads"].values()) == 0
    assert data["fleet"]["customers"] == 0


def test_driver_has_no_dashboard(driver_user):
    assert reporting.company_dashboard(driver_user).error == "Insufficient permissions"


def test_system_analytics(super_admin, company, manager, customer, load_payload):
    loads.create_load(manager, load_payload())

    data = reporting.system_analytics(super_admin, days=7).data
    assert data["companies"]["active"] == 1
    assert data["companies_total"] == 1
    assert data["users_by_role"] == {"super_admin": 1, "manager": 1}
    assert data["users_total"] == 2
    assert data["loads_total"] == 1
    assert data["loads_recent"] == 1
    assert data["window_days"] == 7

    assert reporting.system_analytics(manager).error == "Super admin access required"
