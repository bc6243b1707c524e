# tests/test_numbering.py
from __future__ import annotations

import re
from datetime import datetime

from sqlalchemy.exc import OperationalError

from fleetdesk.extensions import db
from fleetdesk.models import DocumentSequence
from fleetdesk.services import numbering
from fleetdesk.services.numbering import (
    customer_code,
    fallback_document_number,
    issue_document_number,
    next_document_number,
)
from fleetdesk.services.quotes import create_quote


def test_customer_code():
    assert customer_code("Acme Mining") == "ACM"
    assert customer_code("3M & Co") == "3MC"
    assert customer_code("Xi") == "XIX"
    assert customer_code("") == "XXX"
    assert customer_code(None) == "XXX"


def test_sequence_per_customer_and_type(company, make_customer):
    acme = make_customer()
    bantu = make_customer("Bantu Freight", email="ops@bantu.test")

    assert next_document_number(company.id, "quote", acme.id) == f"QT-ACM{acme.id}-0001"
    assert next_document_number(company.id, "quote", acme.id) == f"QT-ACM{acme.id}-0002"
    assert next_document_number(company.id, "invoice", acme.id) == f"INV-ACM{acme.id}-0001"
    assert next_document_number(company.id, "quote", bantu.id) == f"QT-BAN{bantu.id}-0001"
    db.session.commit()

    seq = DocumentSequence.query.filter_by(customer_id=acme.id, doc_type="quote").one()
    assert seq.last_value == 2


def test_fallback_formats():
    now = datetime(2025, 1, 5, 10, 30)
    assert re.fullmatch(r"INV-2501-\d{4}", fallback_document_number("invoice", now=now))
    assert re.fullmatch(r"QT-2501-\d{4}", fallback_document_number("quote", "Acme", now=now))
    assert re.fullmatch(r"LD-ACM-2501-\d{4}", fallback_document_number("load", "Acme Mining", now=now))


def _broken_counter(*args, **kwargs):
    raise OperationalError("UPDATE document_sequences", {}, Exception("database is locked"))


def test_issue_falls_back_when_counter_fails(company, customer, monkeypatch):
    monkeypatch.setattr(numbering, "next_document_number", _broken_counter)
    number = issue_document_number(company.id, "load", customer)
    assert re.fullmatch(r"LD-ACM-\d{4}-\d{4}", number)


def test_quote_created_with_fallback_number(dispatcher, quote_payload, monkeypatch):
    monkeypatch.setattr(numbering, "next_document_number", _broken_counter)

    result = create_quote(dispatcher, quote_payload())
    assert result.success, result.error
    assert re.fullmatch(r"QT-\d{4}-\d{4}", result.data["quote_number"])
    assert result.data["total_amount"] == 1438.65
