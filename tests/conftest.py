# tests/conftest.py
from __future__ import annotations

import itertools

import pytest

from fleetdesk import create_app
from fleetdesk.extensions import db
from fleetdesk.models import (
    Company,
    CompanyStatus,
    Customer,
    Driver,
    DriverStatus,
    Profile,
    Vehicle,
    VehicleStatus,
)
from fleetdesk.utils.passwords import hash_password

_emails = itertools.count(1)


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "RATELIMIT_ENABLED": False,
            "PAYMENT_GATEWAY_LATENCY": 0,
            "RECEIPT_STORAGE_DIR": str(tmp_path / "receipts"),
            "REMINDER_WEBHOOK_URL": "",
            "REMINDER_FUNCTION_BASE_URL": "",
            "LOG_LEVEL": "DEBUG",
        }
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


# =========================================================
# Tenants + profiles
# =========================================================
@pytest.fixture
def make_company(app):
    def _make(name="Acme Haulage", status=CompanyStatus.ACTIVE):
        company = Company(name=name, status=status)
        db.session.add(company)
        db.session.commit()
        return company

    return _make


@pytest.fixture
def company(make_company):
    return make_company()


@pytest.fixture
def make_profile(app, company):
    def _make(role="company_admin", email=None, company_id=..., password=None, is_active=True, customer_id=None):
        profile = Profile(
            company_id=company.id if company_id is ... else company_id,
            customer_id=customer_id,
            email=email or f"user{next(_emails)}@fleetdesk.test",
            full_name=f"{role.replace('_', ' ').title()} User",
            role=role,
            is_active=is_active,
            password_hash=hash_password(password) if password else None,
        )
        db.session.add(profile)
        db.session.commit()
        return profile

    return _make


@pytest.fixture
def company_admin(make_profile):
    return make_profile("company_admin")


@pytest.fixture
def manager(make_profile):
    return make_profile("manager")


@pytest.fixture
def dispatcher(make_profile):
    return make_profile("dispatcher")


@pytest.fixture
def driver_user(make_profile):
    return make_profile("driver")


@pytest.fixture
def super_admin(make_profile):
    return make_profile("super_admin", company_id=None)


# =========================================================
# Business data
# =========================================================
@pytest.fixture
def make_customer(app, company):
    def _make(name="Acme Mining", company_id=None, **fields):
        fields.setdefault("email", "buyer@acmemining.test")
        fields.setdefault("payment_terms", 14)
        customer = Customer(company_id=company_id or company.id, name=name, **fields)
        db.session.add(customer)
        db.session.commit()
        return customer

    return _make


@pytest.fixture
def customer(make_customer):
    return make_customer()


@pytest.fixture
def portal_user(make_profile, customer):
    """Customer-role login linked to the default customer."""
    return make_profile("customer", email="buyer@acmemining.co.za", customer_id=customer.id)


@pytest.fixture
def driver(app, company, driver_user):
    row = Driver(
        company_id=company.id,
        profile_id=driver_user.id,
        first_name="Tendai",
        last_name="Moyo",
        status=DriverStatus.ACTIVE,
    )
    db.session.add(row)
    db.session.commit()
    return row


@pytest.fixture
def vehicle(app, company):
    row = Vehicle(company_id=company.id, registration_number="ABC123GP", make="Volvo", status=VehicleStatus.ACTIVE)
    db.session.add(row)
    db.session.commit()
    return row


@pytest.fixture
def quote_payload(customer):
    def _make(**overrides):
        payload = {
            "customer_id": customer.id,
            "currency": "USD",
            "tax_rate": 15,
            "items": [
                {"description": "Johannesburg to Gaborone linehaul", "quantity": 1, "unit_price": 1000},
                {"description": "Border clearance", "quantity": 2, "unit_price": 125.5},
            ],
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def load_payload(customer):
    def _make(**overrides):
        payload = {
            "customer_id": customer.id,
            "pickup_address": "12 Main Reef Rd",
            "pickup_city": "Johannesburg",
            "delivery_address": "Plot 50 Broadhurst",
            "delivery_city": "Gaborone",
            "rate": 1250,
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def login(client):
    """Log a profile in through the real endpoint (profile needs a password)."""

    def _login(email, password):
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp

    return _login
