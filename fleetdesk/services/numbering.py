# fleetdesk/services/numbering.py
from __future__ import annotations

import random
import re
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Customer, DocumentSequence, utcnow_naive

DOC_PREFIXES = {
    "quote": "QT",
    "invoice": "INV",
    "load": "LD",
}

_rng = random.SystemRandom()


def customer_code(name: str | None) -> str:
    """First three alphanumerics of the customer name, upper-cased, X-padded."""
    letters = re.sub(r"[^A-Za-z0-9]", "", name or "").upper()[:3]
    return letters.ljust(3, "X")


def next_document_number(company_id: int, doc_type: str, customer_id: int) -> str | None:
    """
    Primary generator: bump the (company, customer, doc_type) counter.

    The row is locked for the rest of the transaction, so two callers in the
    same scope serialize on it. Returns e.g. QT-ACM12-0007.
    """
    prefix = DOC_PREFIXES[doc_type]

    seq = (
        db.session.query(DocumentSequence)
        .filter_by(company_id=company_id, customer_id=customer_id, doc_type=doc_type)
        .with_for_update()
        .one_or_none()
    )
    if seq is None:
        seq = DocumentSequence(company_id=company_id, customer_id=customer_id, doc_type=doc_type, last_value=0)
        db.session.add(seq)

    seq.last_value = (seq.last_value or 0) + 1
    db.session.flush()

    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return None
    return f"{prefix}-{customer_code(customer.name)}{customer.id}-{seq.last_value:04d}"


def fallback_document_number(doc_type: str, customer_name: str | None = None, now: datetime | None = None) -> str:
    """
    Best-effort number used only when the counter is unavailable:
    INV-2501-0234, or LD-ACM-2501-0234 for loads. Not guaranteed unique.
    """
    prefix = DOC_PREFIXES[doc_type]
    stamp = (now or utcnow_naive()).strftime("%y%m")
    suffix = f"{_rng.randint(0, 9999):04d}"
    if doc_type == "load":
        return f"{prefix}-{customer_code(customer_name)}-{stamp}-{suffix}"
    return f"{prefix}-{stamp}-{suffix}"


def issue_document_number(company_id: int, doc_type: str, customer: Customer) -> str:
    """
    Must run before the caller stages any other writes: a failed counter
    rolls the session back before falling back.
    """
    customer_id = customer.id
    customer_name = customer.name

    try:
        number = next_document_number(company_id, doc_type, customer_id)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "Document number generator failed (company=%s type=%s); using fallback", company_id, doc_type
        )
        number = None

    if not number:
        number = fallback_document_number(doc_type, customer_name)
        current_app.logger.warning("Issued fallback %s number %s", doc_type, number)
    return number
