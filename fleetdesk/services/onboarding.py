# fleetdesk/services/onboarding.py
from __future__ import annotations

import secrets
import string

import sqlalchemy as sa
from flask import current_app

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import (
    ApplicationStatus,
    Company,
    CompanyStatus,
    FleetApplication,
    Profile,
    SystemLog,
    utcnow_naive,
)
from ..schemas import FleetApplicationIn, parse_payload
from ..utils.guards import require_super_admin
from ..utils.passwords import generate_temporary_password, hash_password
from ..utils.results import ActionResult, action
from .features import initialize_company_features

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _application_number() -> str:
    stamp = utcnow_naive().strftime("%y%m%d")
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(4))
    return f"APP-{stamp}-{suffix}"


# =========================================================
# Public
# =========================================================
@action("Submit fleet application", "Failed to submit application")
def submit_fleet_application(payload) -> ActionResult:
    """No session required; anyone may apply."""
    data = parse_payload(FleetApplicationIn, payload, "Please fill in all required fields")
    email = _normalize_email(data.email)

    existing = FleetApplication.query.filter(
        sa.func.lower(FleetApplication.email) == email,
        FleetApplication.status.in_([ApplicationStatus.PENDING, ApplicationStatus.APPROVED]),
    ).first()
    if existing is not None:
        raise StateConflictError("An application with this email already exists")

    number = _application_number()
    while FleetApplication.query.filter_by(application_number=number).first() is not None:
        number = _application_number()

    application = FleetApplication(
        application_number=number,
        status=ApplicationStatus.PENDING,
        **{**data.model_dump(), "email": email},
    )
    db.session.add(application)
    db.session.commit()

    current_app.logger.info("Fleet application %s submitted for %s", number, data.company_name)
    return ActionResult.ok(
        {"application_number": number, "status": application.status.value},
        message="Application submitted successfully",
    )


@action("Check application status", "Failed to check application status")
def check_application_status(email: str | None, application_number: str | None = None) -> ActionResult:
    email = _normalize_email(email)
    if not email:
        raise ValidationError("Email is required")

    query = FleetApplication.query.filter(sa.func.lower(FleetApplication.email) == email)
    if application_number:
        query = query.filter(FleetApplication.application_number == application_number.strip().upper())

    application = query.order_by(FleetApplication.created_at.desc(), FleetApplication.id.desc()).first()
    if application is None:
        raise NotFoundError("Application not found")

    return ActionResult.ok(
        {
            "application_number": application.application_number,
            "company_name": application.company_name,
            "status": application.status.value,
            "rejection_reason": application.rejection_reason,
            "submitted_at": application.created_at.isoformat() if application.created_at else None,
        }
    )


# =========================================================
# Super-admin review
# =========================================================
def _pending_application(application_id) -> FleetApplication:
    try:
        application_id = int(application_id)
    except (TypeError, ValueError):
        raise NotFoundError("Application not found or already processed") from None

    application = FleetApplication.query.filter_by(
        id=application_id, status=ApplicationStatus.PENDING
    ).first()
    if application is None:
        raise NotFoundError("Application not found or already processed")
    return application


@action("List fleet applications", "Failed to load applications")
def list_applications(actor, status: str | None = None) -> ActionResult:
    require_super_admin(actor)

    query = FleetApplication.query
    if status:
        try:
            query = query.filter(FleetApplication.status == ApplicationStatus(status))
        except ValueError:
            raise ValidationError("Invalid application status") from None

    applications = query.order_by(FleetApplication.created_at.desc(), FleetApplication.id.desc()).all()
    return ActionResult.ok([a.to_dict() for a in applications])


@action("Approve fleet application", "Failed to approve application")
def approve_application(actor, application_id) -> ActionResult:
    admin = require_super_admin(actor)
    application = _pending_application(application_id)

    email = _normalize_email(application.email)
    if Profile.query.filter(sa.func.lower(Profile.email) == email).first() is not None:
        raise StateConflictError("A user with this email already exists")

    company = Company(
        name=application.company_name,
        email=email,
        phone=application.phone,
        address=application.address,
        city=application.city,
        country=application.country,
        tax_number=application.business_registration_number,
        status=CompanyStatus.ACTIVE,
    )
    db.session.add(company)
    db.session.flush()
    initialize_company_features(company.id, company.subscription_plan or "basic")

    temp_password = generate_temporary_password()
    owner = Profile(
        company_id=company.id,
        email=email,
        full_name=application.contact_person,
        phone=application.phone,
        role="company_admin",
        password_hash=hash_password(temp_password),
        is_active=True,
        must_change_password=True,
    )
    db.session.add(owner)

    application.status = ApplicationStatus.APPROVED
    application.company_id = company.id
    application.reviewed_by_id = admin.id
    application.reviewed_at = utcnow_naive()

    db.session.add(
        SystemLog(
            level="info",
            message=f"Fleet application {application.application_number} approved",
            component="onboarding",
            details={"application_id": application.id, "company_id": company.id},
            profile_id=admin.id,
        )
    )
    db.session.commit()

    current_app.logger.info(
        "Application %s approved; company %s created", application.application_number, company.id
    )
    # The temporary password is returned once so the admin can hand it over.
    return ActionResult.ok(
        {
            "application": application.to_dict(),
            "company": company.to_dict(),
            "admin_email": owner.email,
            "temporary_password": temp_password,
        },
        message=f"Application approved. Company {company.name} created.",
    )


@action("Reject fleet application", "Failed to reject application")
def reject_application(actor, application_id, reason: str | None) -> ActionResult:
    admin = require_super_admin(actor)

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required")

    application = _pending_application(application_id)
    application.status = ApplicationStatus.REJECTED
    application.rejection_reason = reason
    application.reviewed_by_id = admin.id
    application.reviewed_at = utcnow_naive()

    db.session.add(
        SystemLog(
            level="info",
            message=f"Fleet application {application.application_number} rejected",
            component="onboarding",
            details={"application_id": application.id, "reason": reason},
            profile_id=admin.id,
        )
    )
    db.session.commit()
    return ActionResult.ok(application.to_dict(), message="Application rejected")


@action("Application stats", "Failed to load application statistics")
def application_stats(actor) -> ActionResult:
    require_super_admin(actor)

    counts = {s.value: 0 for s in ApplicationStatus}
    for status, count in (
        db.session.query(FleetApplication.status, sa.func.count(FleetApplication.id))
        .group_by(FleetApplication.status)
        .all()
    ):
        counts[status.value] = count

    counts["total"] = sum(counts[s.value] for s in ApplicationStatus)
    return ActionResult.ok(counts)
