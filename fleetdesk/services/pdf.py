# fleetdesk/services/pdf.py

from __future__ import annotations

import io
from datetime import date, datetime

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

NAVY = colors.HexColor("#1e3a5f")
AMBER = colors.HexColor("#f59e0b")
GRAY = colors.HexColor("#6b7280")
DARK = colors.HexColor("#111827")
RULE = colors.HexColor("#e5e7eb")


def _fmt_date(d):
    if not d:
        return "-"
    if isinstance(d, (datetime, date)):
        return d.strftime("%Y-%m-%d")
    return str(d)


def _money(v, currency="USD"):
    if v is None:
        return "-"
    return f"{currency} {float(v):,.2f}"


def _qty(v):
    v = float(v or 0)
    return f"{v:g}"


def _render_document(
    *,
    title: str,
    number: str,
    company,
    customer,
    meta: list[tuple[str, str]],
    items,
    currency: str,
    tax_rate,
    subtotal,
    tax_amount,
    total_amount,
    notes: str | None,
    terms: str | None,
) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    width, height = A4

    # --- Header bar ---
    c.setFillColor(NAVY)
    c.rect(0, height - 28 * mm, width, 28 * mm, stroke=0, fill=1)

    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 16)
    c.drawString(18 * mm, height - 16 * mm, getattr(company, "name", None) or "FleetDesk")

    c.setFont("Helvetica", 9)
    contact = " | ".join(
        part for part in (getattr(company, "email", None), getattr(company, "phone", None)) if part
    )
    if contact:
        c.drawString(18 * mm, height - 22 * mm, contact)

    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(width - 18 * mm, height - 14 * mm, f"{title} {number}")

    c.setFont("Helvetica", 9)
    c.setFillColor(AMBER)
    c.drawRightString(width - 18 * mm, height - 20 * mm, "  ".join(f"{k}: {v}" for k, v in meta))

    y = height - 38 * mm

    # --- Customer box ---
    c.setFillColor(DARK)
    c.setFont("Helvetica-Bold", 11)
    c.drawString(18 * mm, y, "Billed To")
    y -= 6 * mm

    c.setStrokeColor(RULE)
    c.setFillColor(colors.white)
    c.roundRect(18 * mm, y - 26 * mm, width - 36 * mm, 26 * mm, 6, stroke=1, fill=1)

    c.setFillColor(DARK)
    c.setFont("Helvetica-Bold", 10)
    c.drawString(22 * mm, y - 8 * mm, getattr(customer, "name", None) or "-")

    c.setFont("Helvetica", 9)
    line_y = y - 14 * mm
    for value in (
        getattr(customer, "contact_person", None),
        getattr(customer, "email", None),
        ", ".join(
            part
            for part in (getattr(customer, "address", None), getattr(customer, "city", None), getattr(customer, "country", None))
            if part
        ),
    ):
        if value:
            c.drawString(22 * mm, line_y, value[:90])
            line_y -= 5 * mm

    y -= 36 * mm

    # --- Items table ---
    data = [["#", "Description", "Qty", "Unit Price", "Line Total"]]
    for it in items:
        data.append([
            str(it.line_number),
            (it.description or "-")[:60],
            _qty(it.quantity),
            _money(it.unit_price, currency),
            _money(it.line_total, currency),
        ])

    if len(data) == 1:
        data.append(["", "(No items)", "-", "-", "-"])

    table = Table(
        data,
        colWidths=[10 * mm, 88 * mm, 18 * mm, 30 * mm, 30 * mm],
        hAlign="LEFT",
    )
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f3f4f6")),
        ("TEXTCOLOR", (0, 0), (-1, 0), DARK),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("GRID", (0, 0), (-1, -1), 0.5, RULE),
        ("ALIGN", (2, 1), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("PADDING", (0, 0), (-1, -1), 6),
    ]))

    _, th = table.wrapOn(c, width - 36 * mm, height)
    table.drawOn(c, 18 * mm, y - th)

    y = y - th - 10 * mm

    # --- Totals ---
    block_x = width - 18 * mm
    c.setFont("Helvetica", 9)
    c.setFillColor(GRAY)
    c.drawRightString(block_x, y, "Subtotal")
    c.drawRightString(block_x, y - 6 * mm, f"Tax ({float(tax_rate or 0):g}%)")
    c.setFillColor(DARK)
    c.setFont("Helvetica-Bold", 10)
    c.drawRightString(block_x, y - 14 * mm, "Total")

    c.setFont("Helvetica", 9)
    c.drawRightString(block_x - 40 * mm, y, _money(subtotal, currency))
    c.drawRightString(block_x - 40 * mm, y - 6 * mm, _money(tax_amount, currency))
    c.setFont("Helvetica-Bold", 10)
    c.drawRightString(block_x - 40 * mm, y - 14 * mm, _money(total_amount, currency))

    y -= 24 * mm

    # --- Notes / Terms ---
    if terms:
        c.setFont("Helvetica-Bold", 10)
        c.setFillColor(DARK)
        c.drawString(18 * mm, y, "Terms")
        c.setFont("Helvetica", 9)
        c.setFillColor(GRAY)
        c.drawString(18 * mm, y - 6 * mm, terms[:120])
        y -= 16 * mm

    if notes:
        c.setFont("Helvetica-Bold", 10)
        c.setFillColor(DARK)
        c.drawString(18 * mm, y, "Notes")
        c.setFont("Helvetica", 9)
        c.setFillColor(GRAY)
        c.drawString(18 * mm, y - 6 * mm, notes[:120])

    # --- Footer ---
    c.setFillColor(RULE)
    c.rect(0, 0, width, 12 * mm, stroke=0, fill=1)
    c.setFillColor(GRAY)
    c.setFont("Helvetica", 8)
    c.drawRightString(width - 18 * mm, 4 * mm, f"Generated: {_fmt_date(date.today())}")

    c.showPage()
    c.save()

    pdf = buf.getvalue()
    buf.close()
    return pdf


def render_quote_pdf(quote, company) -> bytes:
    """Render a Quote (no DB writes)."""
    return _render_document(
        title="QUOTE",
        number=quote.quote_number,
        company=company,
        customer=quote.customer,
        meta=[
            ("Status", quote.display_status().value),
            ("Valid until", _fmt_date(quote.valid_until)),
        ],
        items=quote.items,
        currency=quote.currency,
        tax_rate=quote.tax_rate,
        subtotal=quote.subtotal,
        tax_amount=quote.tax_amount,
        total_amount=quote.total_amount,
        notes=quote.notes,
        terms=quote.terms,
    )


def render_invoice_pdf(invoice, company) -> bytes:
    """Render an Invoice (no DB writes)."""
    return _render_document(
        title="INVOICE",
        number=invoice.invoice_number,
        company=company,
        customer=invoice.customer,
        meta=[
            ("Status", invoice.display_status().value),
            ("Issued", _fmt_date(invoice.issue_date)),
            ("Due", _fmt_date(invoice.due_date)),
        ],
        items=invoice.items,
        currency=invoice.currency,
        tax_rate=invoice.tax_rate,
        subtotal=invoice.subtotal,
        tax_amount=invoice.tax_amount,
        total_amount=invoice.total_amount,
        notes=invoice.notes,
        terms=invoice.terms or "Payment due as agreed.",
    )
