# fleetdesk/services/quotes.py
from __future__ import annotations

from datetime import timedelta

import sqlalchemy as sa
from flask import current_app

from ..constants import CUSTOMER_ROLE, MANAGEMENT_ROLES, QUOTE_VALIDITY_DAYS, STAFF_ROLES
from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import (
    QUOTE_EDITABLE,
    QUOTE_TRANSITIONS,
    Customer,
    Load,
    Quote,
    QuoteItem,
    QuoteStatus,
    can_transition,
    utc_today,
    utcnow_naive,
)
from ..schemas import QuoteIn, parse_payload
from ..utils.guards import load_profile, resolve_customer, resolve_tenant
from ..utils.results import ActionResult, action
from .lookups import get_owned
from .money import apply_totals, build_line_items, check_totals, compute_totals
from .numbering import issue_document_number
from .pdf import render_quote_pdf


def _active_customer(ctx, customer_id) -> Customer:
    customer = get_owned(Customer, ctx, customer_id, "Customer not found")
    if not customer.is_active:
        raise StateConflictError("Customer is inactive")
    return customer


def _replace_items(quote: Quote, items) -> None:
    quote.items = [QuoteItem(**row) for row in build_line_items(items)]
    apply_totals(quote, compute_totals(items, quote.tax_rate))


def _transition(quote: Quote, target: QuoteStatus, message: str) -> None:
    if not can_transition(QUOTE_TRANSITIONS, quote.status, target):
        raise StateConflictError(message)
    quote.status = target


# =========================================================
# Create / update / delete
# =========================================================
@action("Create quote", "Failed to create quote")
def create_quote(actor, payload) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    data = parse_payload(QuoteIn, payload, "Invalid quote payload")

    customer = _active_customer(ctx, data.customer_id)
    if data.load_id is not None:
        get_owned(Load, ctx, data.load_id, "Load not found")

    number = issue_document_number(ctx.company_id, "quote", customer)

    quote = Quote(
        company_id=ctx.company_id,
        customer_id=customer.id,
        load_id=data.load_id,
        quote_number=number,
        status=QuoteStatus.DRAFT,
        currency=data.currency,
        tax_rate=data.tax_rate,
        valid_until=data.valid_until or (utc_today() + timedelta(days=QUOTE_VALIDITY_DAYS)),
        notes=data.notes,
        terms=data.terms,
        created_by_id=ctx.user_id,
    )
    _replace_items(quote, data.items)

    db.session.add(quote)
    db.session.commit()

    current_app.logger.info("Quote %s created (company=%s)", quote.quote_number, ctx.company_id)
    return ActionResult.ok(quote.to_dict(), message=f"Quote {quote.quote_number} created successfully")


@action("Update quote", "Failed to update quote")
def update_quote(actor, quote_id, payload) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    data = parse_payload(QuoteIn, payload, "Invalid quote payload")
    quote = get_owned(Quote, ctx, quote_id, "Quote not found")

    if quote.status not in QUOTE_EDITABLE:
        raise StateConflictError("Cannot edit quote with current status")

    if data.load_id is not None:
        get_owned(Load, ctx, data.load_id, "Load not found")

    if data.customer_id != quote.customer_id:
        if quote.status != QuoteStatus.DRAFT:
            raise StateConflictError("Customer can only be changed on draft quotes")
        customer = _active_customer(ctx, data.customer_id)
        # Numbers are sequenced per customer
        number = issue_document_number(ctx.company_id, "quote", customer)
        quote = get_owned(Quote, ctx, quote_id, "Quote not found")
        quote.customer_id = customer.id
        quote.quote_number = number

    quote.load_id = data.load_id
    quote.currency = data.currency
    quote.tax_rate = data.tax_rate
    if data.valid_until is not None:
        quote.valid_until = data.valid_until
    quote.notes = data.notes
    quote.terms = data.terms
    _replace_items(quote, data.items)

    db.session.commit()
    return ActionResult.ok(quote.to_dict(), message="Quote updated successfully")


@action("Delete quote", "Failed to delete quote")
def delete_quote(actor, quote_id) -> ActionResult:
    ctx = resolve_tenant(actor, MANAGEMENT_ROLES)
    quote = get_owned(Quote, ctx, quote_id, "Quote not found")

    if quote.status != QuoteStatus.DRAFT:
        raise StateConflictError("Can only delete draft quotes")

    number = quote.quote_number
    db.session.delete(quote)
    db.session.commit()

    current_app.logger.info("Quote %s deleted (company=%s)", number, ctx.company_id)
    return ActionResult.ok({"id": int(quote_id)}, message=f"Quote {number} deleted successfully")


@action("Duplicate quote", "Failed to duplicate quote")
def duplicate_quote(actor, quote_id) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    source = get_owned(Quote, ctx, quote_id, "Quote not found")
    customer = _active_customer(ctx, source.customer_id)

    number = issue_document_number(ctx.company_id, "quote", customer)
    source = get_owned(Quote, ctx, quote_id, "Quote not found")

    copy = Quote(
        company_id=ctx.company_id,
        customer_id=source.customer_id,
        load_id=source.load_id,
        quote_number=number,
        status=QuoteStatus.DRAFT,
        currency=source.currency,
        tax_rate=source.tax_rate,
        valid_until=utc_today() + timedelta(days=QUOTE_VALIDITY_DAYS),
        notes=source.notes,
        terms=source.terms,
        created_by_id=ctx.user_id,
    )
    _replace_items(copy, source.items)

    db.session.add(copy)
    db.session.commit()
    return ActionResult.ok(copy.to_dict(), message=f"Quote duplicated as {copy.quote_number}")


# =========================================================
# Status transitions
# =========================================================
@action("Send quote", "Failed to send quote")
def send_quote(actor, quote_id) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    quote = get_owned(Quote, ctx, quote_id, "Quote not found")

    _transition(quote, QuoteStatus.SENT, "Only draft quotes can be sent")
    quote.sent_at = utcnow_naive()

    db.session.commit()
    return ActionResult.ok(quote.to_dict(with_items=False), message=f"Quote {quote.quote_number} sent")


def _quote_for_response(actor, quote_id) -> Quote:
    """
    Accept/reject may come from company staff or from the quote's own
    customer through a portal account. Anyone else gets a plain not-found.
    """
    profile = load_profile(actor)
    quote = db.session.get(Quote, quote_id)
    if quote is None:
        raise NotFoundError("Quote not found")

    if profile.role == CUSTOMER_ROLE:
        portal = resolve_customer(actor)
        allowed = (
            portal.company_id == quote.company_id
            and portal.customer_id == quote.customer_id
            and quote.status != QuoteStatus.DRAFT
        )
    else:
        allowed = profile.role in STAFF_ROLES and profile.company_id == quote.company_id

    if not allowed:
        raise NotFoundError("Quote not found")
    return quote


@action("Accept quote", "Failed to accept quote")
def accept_quote(actor, quote_id) -> ActionResult:
    quote = _quote_for_response(actor, quote_id)

    if quote.status != QuoteStatus.SENT:
        raise StateConflictError("Only sent quotes can be accepted")
    if quote.valid_until and quote.valid_until < utc_today():
        raise StateConflictError("Quote has expired")

    _transition(quote, QuoteStatus.ACCEPTED, "Only sent quotes can be accepted")
    quote.accepted_at = utcnow_naive()

    db.session.commit()
    return ActionResult.ok(quote.to_dict(with_items=False), message=f"Quote {quote.quote_number} accepted")


@action("Reject quote", "Failed to reject quote")
def reject_quote(actor, quote_id, reason: str | None = None) -> ActionResult:
    quote = _quote_for_response(actor, quote_id)

    if quote.status != QuoteStatus.SENT:
        raise StateConflictError("Only sent quotes can be rejected")

    _transition(quote, QuoteStatus.REJECTED, "Only sent quotes can be rejected")
    quote.rejected_at = utcnow_naive()
    reason = (reason or "").strip()
    if reason:
        quote.notes = f"{quote.notes}\n\nRejection reason: {reason}" if quote.notes else f"Rejection reason: {reason}"

    db.session.commit()
    return ActionResult.ok(quote.to_dict(with_items=False), message=f"Quote {quote.quote_number} rejected")


# =========================================================
# Totals reconciliation
# =========================================================
@action("Check quote totals", "Failed to check quote totals")
def quote_totals_report(actor, quote_id) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    quote = get_owned(Quote, ctx, quote_id, "Quote not found")
    return ActionResult.ok(check_totals(quote).as_dict())


@action("Sync quote totals", "Failed to sync quote totals")
def sync_quote_totals(actor, quote_id) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    quote = get_owned(Quote, ctx, quote_id, "Quote not found")

    if quote.status not in QUOTE_EDITABLE:
        raise StateConflictError("Cannot edit quote with current status")

    drift = check_totals(quote)
    if drift.in_sync:
        return ActionResult.ok(drift.as_dict(), message="Quote totals already in sync")

    apply_totals(quote, drift.computed)
    db.session.commit()
    current_app.logger.warning(
        "Quote %s totals resynced (%s)", quote.quote_number, ", ".join(drift.fields)
    )
    return ActionResult.ok(check_totals(quote).as_dict(), message="Quote totals updated")


# =========================================================
# Reads
# =========================================================
@action("List quotes", "Failed to load quotes")
def list_quotes(actor, status: str | None = None, customer_id=None, search: str | None = None) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    today = utc_today()

    query = Quote.query.filter(Quote.company_id == ctx.company_id)
    if customer_id:
        query = query.filter(Quote.customer_id == int(customer_id))
    if search:
        query = query.filter(Quote.quote_number.ilike(f"%{search.strip()}%"))

    if status == QuoteStatus.EXPIRED.value:
        query = query.filter(
            sa.or_(
                Quote.status == QuoteStatus.EXPIRED,
                sa.and_(Quote.status == QuoteStatus.SENT, Quote.valid_until < today),
            )
        )
    elif status == QuoteStatus.SENT.value:
        query = query.filter(
            Quote.status == QuoteStatus.SENT,
            sa.or_(Quote.valid_until.is_(None), Quote.valid_until >= today),
        )
    elif status:
        try:
            query = query.filter(Quote.status == QuoteStatus(status))
        except ValueError:
            raise ValidationError("Invalid quote status") from None

    quotes = query.order_by(Quote.created_at.desc(), Quote.id.desc()).all()
    return ActionResult.ok([q.to_dict(with_items=False) for q in quotes])


@action("Get quote", "Failed to load quote")
def get_quote(actor, quote_id) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    quote = get_owned(Quote, ctx, quote_id, "Quote not found")
    data = quote.to_dict()
    data["totals_check"] = check_totals(quote).as_dict()
    return ActionResult.ok(data)


@action("Export quote PDF", "Failed to render quote")
def export_quote_pdf(actor, quote_id) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    quote = get_owned(Quote, ctx, quote_id, "Quote not found")
    pdf_bytes = render_quote_pdf(quote, ctx.profile.company)
    return ActionResult.ok({"filename": f"{quote.quote_number}.pdf", "content": pdf_bytes})
