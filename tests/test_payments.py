# tests/test_payments.py
from __future__ import annotations

import random

import pytest

from fleetdesk.extensions import db
from fleetdesk.models import Invoice, InvoiceStatus, PaymentTransaction, TransactionStatus
from fleetdesk.services import invoices, payments
from fleetdesk.services.payments import SimulatedGateway


def approve():
    return SimulatedGateway(latency=0, success_rate=1.0, rng=random.Random(1))


def decline():
    return SimulatedGateway(latency=0, success_rate=0.0, rng=random.Random(1))


@pytest.fixture
def invoice(manager, customer):
    result = invoices.create_invoice(
        manager,
        {
            "customer_id": customer.id,
            "tax_rate": 15,
            "items": [
                {"description": "Linehaul", "quantity": 1, "unit_price": 1000},
                {"description": "Border clearance", "quantity": 2, "unit_price": 125.5},
            ],
        },
    )
    assert result.success, result.error
    return result.data


@pytest.fixture
def card(manager, customer):
    result = payments.add_payment_method(
        manager, {"customer_id": customer.id, "method_type": "card", "last_four": "4242", "is_default": True}
    )
    assert result.success, result.error
    return result.data


def _pay(actor, invoice, card, gateway=None):
    return payments.process_invoice_payment(
        actor, {"invoice_id": invoice["id"], "payment_method_id": card["id"]}, gateway=gateway or approve()
    )


def test_gateway_waits_and_decides():
    waits = []
    gw = SimulatedGateway(latency=2.0, success_rate=1.0, sleep=waits.append, rng=random.Random(7))
    result = gw.charge(100.0, "USD", "TXN-1")
    assert waits == [2.0]
    assert result.approved
    assert result.response["reference"] == "TXN-1"

    declined = decline().charge(100.0, "USD", "TXN-2")
    assert not declined.approved
    assert declined.failure_reason == "Payment declined by gateway"


def test_single_default_method(manager, customer, card):
    second = payments.add_payment_method(
        manager, {"customer_id": customer.id, "method_type": "mobile_money", "provider": "M-Pesa", "is_default": True}
    )
    assert second.success

    listed = payments.list_payment_methods(manager, customer.id).data
    assert [m["is_default"] for m in listed] == [True, False]
    assert listed[0]["id"] == second.data["id"]


def test_invalid_last_four_rejected(manager, customer):
    result = payments.add_payment_method(
        manager, {"customer_id": customer.id, "method_type": "card", "last_four": "42"}
    )
    assert result.error == "Invalid payment method"


def test_removed_method_hidden_and_unusable(manager, customer, invoice, card):
    assert payments.remove_payment_method(manager, card["id"]).success
    assert payments.list_payment_methods(manager, customer.id).data == []

    result = _pay(manager, invoice, card)
    assert result.error == "Payment method not found"


def test_successful_payment_marks_invoice_paid(manager, invoice, card):
    result = _pay(manager, invoice, card)

    assert result.success, result.error
    assert result.data["status"] == "completed"
    assert result.data["transaction_reference"].startswith("TXN-")
    assert result.data["amount"] == 1438.65

    row = db.session.get(Invoice, invoice["id"])
    assert row.status == InvoiceStatus.PAID
    assert row.paid_amount == 1438.65
    assert row.paid_date is not None


def test_declined_payment_is_recorded(manager, invoice, card):
    result = _pay(manager, invoice, card, gateway=decline())

    assert not result.success
    assert result.error == "Payment failed: Payment declined by gateway"
    assert result.status_code == 502

    txn = PaymentTransaction.query.filter_by(invoice_id=invoice["id"]).one()
    assert txn.status == TransactionStatus.FAILED
    assert txn.failure_reason == "Payment declined by gateway"
    assert db.session.get(Invoice, invoice["id"]).status == InvoiceStatus.PENDING


def test_paid_invoice_cannot_be_charged_again(manager, invoice, card):
    _pay(manager, invoice, card)
    again = _pay(manager, invoice, card)
    assert again.error == "Invoice not found or already paid"
    assert again.status_code == 404


def test_method_of_other_customer_refused(manager, make_customer, invoice):
    other = make_customer("Bantu Freight", email="ops@bantu.test")
    foreign_card = payments.add_payment_method(manager, {"customer_id": other.id, "method_type": "card"}).data

    assert _pay(manager, invoice, foreign_card).error == "Payment method not found"


def test_dispatcher_cannot_take_payments(dispatcher, invoice, card):
    assert _pay(dispatcher, invoice, card).error == "Insufficient permissions"


def test_partial_refund_keeps_invoice_paid(manager, invoice, card):
    txn = _pay(manager, invoice, card).data

    refund = payments.refund_payment(manager, txn["id"], {"amount": 100, "reason": "Late delivery"})
    assert refund.success, refund.error
    assert refund.data["amount"] == -100.0
    assert refund.data["transaction_reference"].startswith("REF-")
    assert refund.data["parent_transaction_id"] == txn["id"]

    row = db.session.get(Invoice, invoice["id"])
    assert row.status == InvoiceStatus.PAID
    assert row.refunded_amount == 100.0

    over = payments.refund_payment(manager, txn["id"], {"amount": 1400})
    assert over.error == "Refund amount cannot exceed original payment amount"

    rest = payments.refund_payment(manager, txn["id"], {"amount": 1338.65})
    assert rest.success
    assert db.session.get(Invoice, invoice["id"]).refunded_amount == 1438.65


def test_full_refund_flips_invoice(manager, invoice, card):
    txn = _pay(manager, invoice, card).data

    result = payments.refund_payment(manager, txn["id"], {"amount": 1438.65})
    assert result.success
    assert db.session.get(Invoice, invoice["id"]).status == InvoiceStatus.REFUNDED


def test_failed_payment_cannot_be_refunded(manager, invoice, card):
    _pay(manager, invoice, card, gateway=decline())
    failed = PaymentTransaction.query.filter_by(invoice_id=invoice["id"]).one()

    result = payments.refund_payment(manager, failed.id, {"amount": 10})
    assert result.error == "Only completed payments can be refunded"


def test_transactions_and_stats(manager, invoice, card):
    _pay(manager, invoice, card, gateway=decline())
    txn = _pay(manager, invoice, card).data
    payments.refund_payment(manager, txn["id"], {"amount": 38.65})

    listed = payments.list_transactions(manager, invoice_id=invoice["id"]).data
    assert len(listed) == 3

    stats = payments.payment_stats(manager).data
    assert stats["total_payments"] == 2
    assert stats["completed_payments"] == 1
    assert stats["failed_payments"] == 1
    assert stats["success_rate"] == 50.0
    assert stats["total_collected"] == 1438.65
    assert stats["total_refunded"] == 38.65
    assert stats["net_collected"] == 1400.0
