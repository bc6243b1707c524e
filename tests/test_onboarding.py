# tests/test_onboarding.py
from __future__ import annotations

import re

import pytest

from fleetdesk.extensions import db
from fleetdesk.models import Company, Profile, SystemLog
from fleetdesk.services import onboarding
from fleetdesk.utils.passwords import verify_password


@pytest.fixture
def application_payload():
    def _make(**overrides):
        payload = {
            "company_name": "Limpopo Logistics",
            "contact_person": "Thandiwe Mokoena",
            "email": "Thandiwe@LimpopoLogistics.co.za",
            "phone": "+27 15 000 1234",
            "country": "South Africa",
            "city": "Polokwane",
            "fleet_size": 12,
        }
        payload.update(overrides)
        return payload

    return _make


def _submit(payload):
    result = onboarding.submit_fleet_application(payload)
    assert result.success, result.error
    return result.data


def test_submit_returns_application_number(app, application_payload):
    result = onboarding.submit_fleet_application(application_payload())

    assert result.message == "Application submitted successfully"
    assert result.data["status"] == "pending"
    assert re.fullmatch(r"APP-\d{6}-[A-Z0-9]{4}", result.data["application_number"])


def test_missing_fields_rejected(app, application_payload):
    result = onboarding.submit_fleet_application(application_payload(phone=""))
    assert result.error == "Please fill in all required fields"
    assert result.status_code == 400


def test_duplicate_email_rejected(app, application_payload):
    _submit(application_payload())
    again = onboarding.submit_fleet_application(application_payload(email="thandiwe@limpopologistics.co.za"))
    assert again.error == "An application with this email already exists"
    assert again.status_code == 409


def test_status_lookup(app, application_payload):
    number = _submit(application_payload())["application_number"]

    found = onboarding.check_application_status("THANDIWE@limpopologistics.co.za", number.lower())
    assert found.data["status"] == "pending"
    assert found.data["company_name"] == "Limpopo Logistics"

    assert onboarding.check_application_status("").error == "Email is required"
    assert onboarding.check_application_status("nobody@nowhere.co.za").error == "Application not found"


def test_review_requires_super_admin(company_admin, application_payload):
    _submit(application_payload())
    assert onboarding.list_applications(company_admin).error == "Super admin access required"


def test_approve_creates_company_and_admin(super_admin, application_payload):
    _submit(application_payload())
    application = onboarding.list_applications(super_admin, status="pending").data[0]

    result = onboarding.approve_application(super_admin, application["id"])
    assert result.success, result.error
    data = result.data
    assert data["application"]["status"] == "approved"
    assert data["company"]["name"] == "Limpopo Logistics"
    assert data["admin_email"] == "thandiwe@limpopologistics.co.za"

    owner = Profile.query.filter_by(email="thandiwe@limpopologistics.co.za").one()
    assert owner.role == "company_admin"
    assert owner.must_change_password is True
    assert owner.company_id == data["company"]["id"]
    assert verify_password(owner.password_hash, data["temporary_password"])
    assert db.session.get(Company, data["company"]["id"]).status.value == "active"

    logged = SystemLog.query.filter_by(component="onboarding").one()
    assert logged.profile_id == super_admin.id

    again = onboarding.approve_application(super_admin, application["id"])
    assert again.error == "Application not found or already processed"
    assert again.status_code == 404


def test_approve_refuses_existing_user_email(super_admin, make_profile, application_payload):
    make_profile("manager", email="thandiwe@limpopologistics.co.za")
    _submit(application_payload())
    application_id = onboarding.list_applications(super_admin).data[0]["id"]

    result = onboarding.approve_application(super_admin, application_id)
    assert result.error == "A user with this email already exists"


def test_reject_needs_reason_then_allows_reapply(super_admin, application_payload):
    _submit(application_payload())
    application_id = onboarding.list_applications(super_admin).data[0]["id"]

    assert onboarding.reject_application(super_admin, application_id, "  ").error == "Rejection reason is required"

    rejected = onboarding.reject_application(super_admin, application_id, "Missing operating licence")
    assert rejected.data["status"] == "rejected"
    assert rejected.data["rejection_reason"] == "Missing operating licence"

    status = onboarding.check_application_status("thandiwe@limpopologistics.co.za").data
    assert status["rejection_reason"] == "Missing operating licence"

    _submit(application_payload())


def test_stats(super_admin, application_payload):
    _submit(application_payload())
    _submit(application_payload(email="ops@kgalagadi-freight.co.bw", company_name="Kgalagadi Freight"))
    first = onboarding.list_applications(super_admin).data[-1]
    onboarding.reject_application(super_admin, first["id"], "Duplicate")

    stats = onboarding.application_stats(super_admin).data
    assert stats == {"pending": 1, "approved": 0, "rejected": 1, "total": 2}
