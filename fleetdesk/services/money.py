# fleetdesk/services/money.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

CENT = Decimal("0.01")
DRIFT_TOLERANCE = Decimal("0.01")


def _dec(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.1 as 0.1 instead of its binary expansion
    return Decimal(str(value))


def round2(value) -> Decimal:
    """Half-up rounding to cents."""
    return _dec(value).quantize(CENT, rounding=ROUND_HALF_UP)


def fits_cents(value) -> bool:
    """True when `value` has no digits past the second decimal place."""
    amount = _dec(value)
    return amount == amount.quantize(CENT)


@dataclass(frozen=True)
class Totals:
    subtotal: float
    tax_amount: float
    total_amount: float

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
        }


def line_total(quantity, unit_price) -> float:
    return float(round2(_dec(quantity) * _dec(unit_price)))


def compute_totals(items: Iterable, tax_rate) -> Totals:
    """
    items: objects or dicts carrying quantity + unit_price.

    tax is taken on the unrounded subtotal, then both are rounded
    to cents before they are added together.
    """
    subtotal = Decimal("0")
    for item in items:
        quantity = item["quantity"] if isinstance(item, dict) else item.quantity
        unit_price = item["unit_price"] if isinstance(item, dict) else item.unit_price
        subtotal += _dec(quantity) * _dec(unit_price)

    tax_amount = round2(subtotal * _dec(tax_rate) / Decimal("100"))
    total_amount = round2(subtotal) + tax_amount

    return Totals(
        subtotal=float(round2(subtotal)),
        tax_amount=float(tax_amount),
        total_amount=float(total_amount),
    )


def build_line_items(items: Sequence) -> list[dict]:
    """
    Numbered rows ready for QuoteItem/InvoiceItem.

    Quantity and unit price are stored exactly as given. Payloads are held
    to two decimals by the schemas, which is also the column scale.
    """
    rows = []
    for index, item in enumerate(items, start=1):
        quantity = item["quantity"] if isinstance(item, dict) else item.quantity
        unit_price = item["unit_price"] if isinstance(item, dict) else item.unit_price
        description = item["description"] if isinstance(item, dict) else item.description
        if not (fits_cents(quantity) and fits_cents(unit_price)):
            raise ValueError("quantity and unit_price are limited to two decimal places")
        rows.append(
            {
                "line_number": index,
                "description": description,
                "quantity": float(_dec(quantity)),
                "unit_price": float(_dec(unit_price)),
                "line_total": line_total(quantity, unit_price),
            }
        )
    return rows


# =========================================================
# Reconciliation
# =========================================================
@dataclass(frozen=True)
class TotalsDrift:
    stored: Totals
    computed: Totals
    fields: tuple[str, ...]

    @property
    def in_sync(self) -> bool:
        return not self.fields

    def as_dict(self) -> dict:
        return {
            "in_sync": self.in_sync,
            "stored": self.stored.as_dict(),
            "computed": self.computed.as_dict(),
            "mismatched_fields": list(self.fields),
        }


def check_totals(document) -> TotalsDrift:
    """
    Recompute from the stored line items and compare against the persisted
    subtotal/tax/total. Anything further apart than one cent is reported.
    """
    stored = Totals(
        subtotal=float(document.subtotal or 0),
        tax_amount=float(document.tax_amount or 0),
        total_amount=float(document.total_amount or 0),
    )
    computed = compute_totals(document.items, document.tax_rate or 0)

    mismatched = tuple(
        name
        for name in ("subtotal", "tax_amount", "total_amount")
        if abs(_dec(getattr(stored, name)) - _dec(getattr(computed, name))) > DRIFT_TOLERANCE
    )
    return TotalsDrift(stored=stored, computed=computed, fields=mismatched)


def apply_totals(document, totals: Totals) -> None:
    document.subtotal = totals.subtotal
    document.tax_amount = totals.tax_amount
    document.total_amount = totals.total_amount
