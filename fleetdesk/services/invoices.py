# fleetdesk/services/invoices.py
from __future__ import annotations

from datetime import timedelta

import sqlalchemy as sa
from flask import current_app

from ..constants import CONVERTED_INVOICE_DUE_DAYS, MANAGEMENT_ROLES, STAFF_ROLES
from ..errors import StateConflictError, ValidationError
from ..extensions import db
from ..models import (
    INVOICE_TRANSITIONS,
    QUOTE_TRANSITIONS,
    Customer,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    Load,
    Quote,
    QuoteStatus,
    can_transition,
    utc_today,
    utcnow_naive,
)
from ..schemas import InvoiceIn, parse_payload
from ..settings import NotificationSettings
from ..utils.guards import resolve_tenant
from ..utils.results import ActionResult, action
from .lookups import get_owned
from .money import apply_totals, build_line_items, compute_totals
from .notifications import dispatch_invoice_reminder, notification_settings
from .numbering import issue_document_number
from .pdf import render_invoice_pdf

INVOICE_ROLES = MANAGEMENT_ROLES


# =========================================================
# Create
# =========================================================
@action("Create invoice", "Failed to create invoice")
def create_invoice(actor, payload) -> ActionResult:
    ctx = resolve_tenant(actor, INVOICE_ROLES)
    data = parse_payload(InvoiceIn, payload, "Invalid invoice payload")

    customer = get_owned(Customer, ctx, data.customer_id, "Customer not found")
    if not customer.is_active:
        raise StateConflictError("Customer is inactive")
    if data.quote_id is not None:
        get_owned(Quote, ctx, data.quote_id, "Quote not found")
    if data.source_load_id is not None:
        get_owned(Load, ctx, data.source_load_id, "Load not found")

    number = issue_document_number(ctx.company_id, "invoice", customer)
    customer = get_owned(Customer, ctx, data.customer_id, "Customer not found")

    issue_date = data.issue_date or utc_today()
    due_date = data.due_date or (issue_date + timedelta(days=customer.payment_terms or 0))
    if due_date < issue_date:
        raise ValidationError("Invalid invoice payload", details="due_date before issue_date")

    invoice = Invoice(
        company_id=ctx.company_id,
        customer_id=customer.id,
        quote_id=data.quote_id,
        source_load_id=data.source_load_id,
        invoice_number=number,
        status=InvoiceStatus.PENDING,
        currency=data.currency or customer.currency,
        tax_rate=data.tax_rate if data.tax_rate is not None else (customer.default_tax_rate or 0),
        issue_date=issue_date,
        due_date=due_date,
        notes=data.notes,
        terms=data.terms,
        created_by_id=ctx.user_id,
    )
    invoice.items = [InvoiceItem(**row) for row in build_line_items(data.items)]
    apply_totals(invoice, compute_totals(data.items, invoice.tax_rate))

    db.session.add(invoice)
    db.session.commit()

    current_app.logger.info("Invoice %s created (company=%s)", invoice.invoice_number, ctx.company_id)
    return ActionResult.ok(invoice.to_dict(), message=f"Invoice {invoice.invoice_number} created successfully")


@action("Convert quote", "Failed to convert quote to invoice")
def convert_quote_to_invoice(actor, quote_id) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    quote = get_owned(Quote, ctx, quote_id, "Quote not found")

    if not can_transition(QUOTE_TRANSITIONS, quote.status, QuoteStatus.CONVERTED):
        raise StateConflictError("Only accepted quotes can be converted to invoices")

    customer = get_owned(Customer, ctx, quote.customer_id, "Customer not found")
    number = issue_document_number(ctx.company_id, "invoice", customer)
    quote = get_owned(Quote, ctx, quote_id, "Quote not found")

    today = utc_today()
    invoice = Invoice(
        company_id=ctx.company_id,
        customer_id=quote.customer_id,
        quote_id=quote.id,
        source_load_id=quote.load_id,
        invoice_number=number,
        status=InvoiceStatus.PENDING,
        currency=quote.currency,
        tax_rate=quote.tax_rate,
        subtotal=quote.subtotal,
        tax_amount=quote.tax_amount,
        total_amount=quote.total_amount,
        issue_date=today,
        due_date=today + timedelta(days=CONVERTED_INVOICE_DUE_DAYS),
        notes=f"Converted from Quote {quote.quote_number}",
        terms=quote.terms,
        created_by_id=ctx.user_id,
    )
    invoice.items = [
        InvoiceItem(
            line_number=item.line_number,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=item.line_total,
        )
        for item in quote.items
    ]

    db.session.add(invoice)
    db.session.flush()

    quote.status = QuoteStatus.CONVERTED
    quote.converted_to_invoice_id = invoice.id
    db.session.commit()

    current_app.logger.info("Quote %s converted to invoice %s", quote.quote_number, invoice.invoice_number)
    return ActionResult.ok(
        invoice.to_dict(),
        message=f"Quote {quote.quote_number} converted to invoice {invoice.invoice_number}",
    )


# =========================================================
# Status changes
# =========================================================
@action("Mark invoice paid", "Failed to update invoice")
def mark_invoice_paid(actor, invoice_id) -> ActionResult:
    ctx = resolve_tenant(actor, INVOICE_ROLES)
    invoice = get_owned(Invoice, ctx, invoice_id, "Invoice not found")

    # Repeated calls are no-ops
    if invoice.status == InvoiceStatus.PAID:
        return ActionResult.ok(invoice.to_dict(with_items=False), message="Invoice is already marked as paid")

    if not can_transition(INVOICE_TRANSITIONS, invoice.status, InvoiceStatus.PAID):
        raise StateConflictError(f"Cannot mark a {invoice.status.value} invoice as paid")

    invoice.status = InvoiceStatus.PAID
    invoice.paid_date = utcnow_naive()
    if invoice.paid_amount is None:
        invoice.paid_amount = invoice.total_amount

    db.session.commit()
    current_app.logger.info("Invoice %s marked paid by profile %s", invoice.invoice_number, ctx.user_id)
    return ActionResult.ok(invoice.to_dict(with_items=False), message="Invoice marked as paid")


@action("Cancel invoice", "Failed to cancel invoice")
def cancel_invoice(actor, invoice_id) -> ActionResult:
    ctx = resolve_tenant(actor, INVOICE_ROLES)
    invoice = get_owned(Invoice, ctx, invoice_id, "Invoice not found")

    if not can_transition(INVOICE_TRANSITIONS, invoice.status, InvoiceStatus.CANCELLED):
        raise StateConflictError("Only pending invoices can be cancelled")

    invoice.status = InvoiceStatus.CANCELLED
    invoice.cancelled_at = utcnow_naive()
    db.session.commit()
    return ActionResult.ok(invoice.to_dict(with_items=False), message="Invoice cancelled")


@action("Send invoice reminder", "Failed to send invoice reminder")
def send_invoice_reminder(actor, invoice_id, settings: NotificationSettings | None = None) -> ActionResult:
    ctx = resolve_tenant(actor, INVOICE_ROLES)
    invoice = get_owned(Invoice, ctx, invoice_id, "Invoice not found")

    if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
        raise StateConflictError("Cannot send reminder for paid or cancelled invoices")

    payload = {
        "invoiceId": invoice.id,
        "companyId": ctx.company_id,
        "requestedBy": ctx.user_id,
        "status": invoice.display_status().value,
    }
    channel = dispatch_invoice_reminder(payload, settings or notification_settings())

    current_app.logger.info("Reminder for invoice %s sent via %s", invoice.invoice_number, channel)
    return ActionResult.ok({"channel": channel}, message="Reminder sent successfully")


# =========================================================
# Reads
# =========================================================
@action("List invoices", "Failed to load invoices")
def list_invoices(actor, status: str | None = None, customer_id=None, search: str | None = None) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    today = utc_today()

    query = Invoice.query.filter(Invoice.company_id == ctx.company_id)
    if customer_id:
        query = query.filter(Invoice.customer_id == int(customer_id))
    if search:
        query = query.filter(Invoice.invoice_number.ilike(f"%{search.strip()}%"))

    if status == InvoiceStatus.OVERDUE.value:
        query = query.filter(
            sa.or_(
                Invoice.status == InvoiceStatus.OVERDUE,
                sa.and_(Invoice.status == InvoiceStatus.PENDING, Invoice.due_date < today),
            )
        )
    elif status == InvoiceStatus.PENDING.value:
        query = query.filter(
            Invoice.status == InvoiceStatus.PENDING,
            sa.or_(Invoice.due_date.is_(None), Invoice.due_date >= today),
        )
    elif status:
        try:
            query = query.filter(Invoice.status == InvoiceStatus(status))
        except ValueError:
            raise ValidationError("Invalid invoice status") from None

    invoices = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
    return ActionResult.ok([inv.to_dict(with_items=False) for inv in invoices])


@action("Get invoice", "Failed to load invoice")
def get_invoice(actor, invoice_id) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    invoice = get_owned(Invoice, ctx, invoice_id, "Invoice not found")
    return ActionResult.ok(invoice.to_dict())


@action("Export invoice PDF", "Failed to render invoice")
def export_invoice_pdf(actor, invoice_id) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    invoice = get_owned(Invoice, ctx, invoice_id, "Invoice not found")
    pdf_bytes = render_invoice_pdf(invoice, ctx.profile.company)
    return ActionResult.ok({"filename": f"{invoice.invoice_number}.pdf", "content": pdf_bytes})
