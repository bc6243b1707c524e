# fleetdesk/services/portal.py
from __future__ import annotations

from decimal import Decimal

import sqlalchemy as sa
from flask import current_app

from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    ACTIVE_LOAD_STATUSES,
    Invoice,
    InvoiceStatus,
    Load,
    LoadStatus,
    Quote,
    QuoteStatus,
    utc_today,
)
from ..schemas import LoadRequestIn, PortalProfileIn, parse_payload
from ..utils.guards import CustomerContext, resolve_customer
from ..utils.results import ActionResult, action
from . import quotes as quote_service
from .features import feature_enabled
from .money import round2
from .numbering import issue_document_number

RECENT_LIMIT = 5

_OPEN_INVOICE_STATUSES = (InvoiceStatus.PENDING, InvoiceStatus.OVERDUE)


def _portal(actor) -> CustomerContext:
    portal = resolve_customer(actor)
    if not feature_enabled(portal.company_id, "customer_portal"):
        raise AuthorizationError("Customer portal is not enabled for this company")
    return portal


def _visible_quotes(portal: CustomerContext):
    # Drafts are internal to the carrier until sent
    return Quote.query.filter(
        Quote.customer_id == portal.customer_id,
        Quote.company_id == portal.company_id,
        Quote.status != QuoteStatus.DRAFT,
    )


def _customer_invoices(portal: CustomerContext):
    return Invoice.query.filter(Invoice.customer_id == portal.customer_id, Invoice.company_id == portal.company_id)


def _customer_loads(portal: CustomerContext):
    return Load.query.filter(Load.customer_id == portal.customer_id, Load.company_id == portal.company_id)


def _shipment(load: Load, with_tracking: bool = False) -> dict:
    data = load.to_dict()
    data["driver"] = (
        {"name": load.driver.full_name, "phone": load.driver.phone} if load.driver else None
    )
    data["vehicle"] = (
        {
            "registration_number": load.vehicle.registration_number,
            "make": load.vehicle.make,
            "model": load.vehicle.model,
        }
        if load.vehicle
        else None
    )
    if with_tracking:
        data["tracking"] = [t.to_dict() for t in load.tracking]
    return data


# =========================================================
# Dashboard
# =========================================================
@action("Portal dashboard", "Failed to fetch dashboard data")
def portal_dashboard(actor) -> ActionResult:
    portal = _portal(actor)
    today = utc_today()

    load_counts = dict(
        db.session.query(Load.status, sa.func.count(Load.id))
        .filter(Load.customer_id == portal.customer_id, Load.company_id == portal.company_id)
        .group_by(Load.status)
        .all()
    )
    quote_counts = dict(
        db.session.query(Quote.status, sa.func.count(Quote.id))
        .filter(Quote.customer_id == portal.customer_id, Quote.company_id == portal.company_id)
        .group_by(Quote.status)
        .all()
    )
    open_invoices = _customer_invoices(portal).filter(Invoice.status.in_(_OPEN_INVOICE_STATUSES)).all()

    stats = {
        "total_loads": sum(load_counts.values()),
        "active_loads": sum(load_counts.get(s, 0) for s in ACTIVE_LOAD_STATUSES),
        "completed_loads": load_counts.get(LoadStatus.DELIVERED, 0),
        "pending_quotes": quote_counts.get(QuoteStatus.SENT, 0),
        "accepted_quotes": quote_counts.get(QuoteStatus.ACCEPTED, 0),
        "pending_invoices": len(open_invoices),
        "overdue_invoices": sum(1 for i in open_invoices if i.display_status(today) == InvoiceStatus.OVERDUE),
        "total_outstanding": float(sum((round2(i.total_amount or 0) for i in open_invoices), Decimal("0"))),
    }

    def _recent(query, column):
        return query.order_by(column.desc()).limit(RECENT_LIMIT).all()

    return ActionResult.ok(
        {
            "customer": {"id": portal.customer.id, "name": portal.customer.name},
            "stats": stats,
            "recent_loads": [load.to_dict() for load in _recent(_customer_loads(portal), Load.id)],
            "recent_quotes": [q.to_dict(with_items=False) for q in _recent(_visible_quotes(portal), Quote.id)],
            "recent_invoices": [i.to_dict(with_items=False) for i in _recent(_customer_invoices(portal), Invoice.id)],
        }
    )


# =========================================================
# Quotes
# =========================================================
@action("Portal quotes", "Failed to fetch quotes")
def portal_quotes(actor, status: str | None = None) -> ActionResult:
    portal = _portal(actor)

    query = _visible_quotes(portal)
    if status:
        try:
            query = query.filter(Quote.status == QuoteStatus(status))
        except ValueError:
            raise ValidationError("Invalid quote status") from None

    quotes = query.order_by(Quote.created_at.desc(), Quote.id.desc()).all()
    return ActionResult.ok([q.to_dict() for q in quotes])


@action("Portal accept quote", "Failed to accept quote")
def accept_quote(actor, quote_id) -> ActionResult:
    _portal(actor)
    return quote_service.accept_quote(actor, quote_id)


@action("Portal reject quote", "Failed to reject quote")
def reject_quote(actor, quote_id, reason: str | None = None) -> ActionResult:
    _portal(actor)
    return quote_service.reject_quote(actor, quote_id, reason or "Rejected by customer")


# =========================================================
# Invoices + payments
# =========================================================
@action("Portal invoices", "Failed to fetch invoices")
def portal_invoices(actor, status: str | None = None) -> ActionResult:
    portal = _portal(actor)
    today = utc_today()

    wanted = None
    if status:
        try:
            wanted = InvoiceStatus(status)
        except ValueError:
            raise ValidationError("Invalid invoice status") from None

    # overdue is derived from due_date, so filter on the display status
    invoices = _customer_invoices(portal).order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
    if wanted is not None:
        invoices = [i for i in invoices if i.display_status(today) == wanted]
    return ActionResult.ok([i.to_dict() for i in invoices])


@action("Portal payment history", "Failed to fetch payment history")
def payment_history(actor) -> ActionResult:
    portal = _portal(actor)
    paid = (
        _customer_invoices(portal)
        .filter(Invoice.status == InvoiceStatus.PAID)
        .order_by(Invoice.paid_date.desc(), Invoice.id.desc())
        .all()
    )
    return ActionResult.ok(
        [
            {
                "id": i.id,
                "invoice_number": i.invoice_number,
                "total_amount": i.total_amount,
                "paid_amount": i.paid_amount,
                "currency": i.currency,
                "issue_date": i.issue_date.isoformat() if i.issue_date else None,
                "paid_date": i.paid_date.isoformat() if i.paid_date else None,
            }
            for i in paid
        ]
    )


# =========================================================
# Shipments
# =========================================================
@action("Portal loads", "Failed to fetch loads")
def portal_loads(actor, status: str | None = None) -> ActionResult:
    portal = _portal(actor)

    query = _customer_loads(portal)
    if status:
        try:
            query = query.filter(Load.status == LoadStatus(status))
        except ValueError:
            raise ValidationError("Invalid load status") from None

    loads = query.order_by(Load.created_at.desc(), Load.id.desc()).all()
    return ActionResult.ok([_shipment(load) for load in loads])


@action("Portal load", "Failed to fetch load")
def portal_load(actor, load_id) -> ActionResult:
    portal = _portal(actor)
    load = _customer_loads(portal).filter(Load.id == load_id).first()
    if load is None:
        raise NotFoundError("Load not found")
    return ActionResult.ok(_shipment(load, with_tracking=True))


@action("Submit load request", "Failed to submit load request")
def submit_load_request(actor, payload) -> ActionResult:
    portal = _portal(actor)
    data = parse_payload(LoadRequestIn, payload, "Invalid load request")
    customer = portal.customer

    number = issue_document_number(portal.company_id, "load", customer)
    values = data.model_dump(exclude={"special_instructions"})
    load = Load(
        company_id=portal.company_id,
        customer_id=customer.id,
        load_number=number,
        status=LoadStatus.PENDING,
        currency=customer.currency,
        notes=data.special_instructions,
        created_by_id=portal.profile.id,
        **values,
    )
    db.session.add(load)
    db.session.commit()

    current_app.logger.info("Load request %s submitted by customer %s", number, customer.id)
    return ActionResult.ok(load.to_dict(), message=f"Load request {number} submitted successfully")


# =========================================================
# Profile
# =========================================================
@action("Portal profile", "Failed to fetch profile")
def get_profile(actor) -> ActionResult:
    portal = _portal(actor)
    company = portal.profile.company

    data = portal.customer.to_dict()
    data["company"] = {"name": company.name, "email": company.email, "phone": company.phone}
    return ActionResult.ok(data)


@action("Update portal profile", "Failed to update profile")
def update_profile(actor, payload) -> ActionResult:
    portal = _portal(actor)
    data = parse_payload(PortalProfileIn, payload, "Invalid profile data")

    for name, value in data.model_dump(exclude_unset=True).items():
        setattr(portal.customer, name, value)

    db.session.commit()
    return ActionResult.ok(portal.customer.to_dict(), message="Profile updated successfully")
