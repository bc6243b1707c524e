# fleetdesk/services/payments.py
from __future__ import annotations

import random
import secrets
import time
from dataclasses import dataclass, field
from typing import Callable

import sqlalchemy as sa
from flask import current_app

from ..constants import MANAGEMENT_ROLES
from ..errors import DependencyError, NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import (
    Customer,
    Invoice,
    InvoiceStatus,
    PaymentMethod,
    PaymentTransaction,
    TransactionStatus,
    utcnow_naive,
)
from ..schemas import PaymentIn, PaymentMethodIn, RefundIn, parse_payload
from ..utils.guards import resolve_tenant
from ..utils.results import ActionResult, action
from .lookups import get_owned
from .money import round2

PAYMENT_ROLES = MANAGEMENT_ROLES


# =========================================================
# Gateway (simulated)
# =========================================================
@dataclass(frozen=True)
class GatewayResult:
    approved: bool
    response: dict
    failure_reason: str | None = None


@dataclass
class SimulatedGateway:
    """
    Stand-in for a card/bank processor: waits `latency` seconds, then
    approves with probability `success_rate`.
    """

    latency: float = 2.0
    success_rate: float = 0.95
    sleep: Callable[[float], None] = time.sleep
    rng: random.Random = field(default_factory=random.Random)

    def charge(self, amount: float, currency: str, reference: str) -> GatewayResult:
        if self.latency > 0:
            self.sleep(self.latency)

        gateway_id = f"gw_{secrets.token_hex(8)}"
        if self.rng.random() < self.success_rate:
            return GatewayResult(
                approved=True,
                response={"gateway_id": gateway_id, "reference": reference, "message": "Approved"},
            )
        return GatewayResult(
            approved=False,
            response={"gateway_id": gateway_id, "reference": reference, "message": "Declined"},
            failure_reason="Payment declined by gateway",
        )


def gateway_from_config() -> SimulatedGateway:
    return SimulatedGateway(
        latency=float(current_app.config.get("PAYMENT_GATEWAY_LATENCY", 2.0)),
        success_rate=float(current_app.config.get("PAYMENT_GATEWAY_SUCCESS_RATE", 0.95)),
    )


def _reference(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


# =========================================================
# Payment methods
# =========================================================
@action("Add payment method", "Failed to add payment method")
def add_payment_method(actor, payload) -> ActionResult:
    ctx = resolve_tenant(actor, PAYMENT_ROLES)
    data = parse_payload(PaymentMethodIn, payload, "Invalid payment method")
    customer = get_owned(Customer, ctx, data.customer_id, "Customer not found")

    if data.is_default:
        PaymentMethod.query.filter_by(company_id=ctx.company_id, customer_id=customer.id).update(
            {"is_default": False}, synchronize_session="fetch"
        )

    method = PaymentMethod(company_id=ctx.company_id, **data.model_dump())
    db.session.add(method)
    db.session.commit()
    return ActionResult.ok(method.to_dict(), message="Payment method added successfully")


@action("Remove payment method", "Failed to remove payment method")
def remove_payment_method(actor, method_id) -> ActionResult:
    ctx = resolve_tenant(actor, PAYMENT_ROLES)
    method = get_owned(PaymentMethod, ctx, method_id, "Payment method not found")

    method.is_active = False
    method.is_default = False
    db.session.commit()
    return ActionResult.ok(method.to_dict(), message="Payment method removed")


@action("List payment methods", "Failed to load payment methods")
def list_payment_methods(actor, customer_id) -> ActionResult:
    ctx = resolve_tenant(actor, PAYMENT_ROLES)
    customer = get_owned(Customer, ctx, customer_id, "Customer not found")

    methods = (
        PaymentMethod.query.filter_by(company_id=ctx.company_id, customer_id=customer.id, is_active=True)
        .order_by(PaymentMethod.is_default.desc(), PaymentMethod.created_at.desc())
        .all()
    )
    return ActionResult.ok([m.to_dict() for m in methods])


# =========================================================
# Charge / refund
# =========================================================
@action("Process payment", "Failed to process payment")
def process_invoice_payment(actor, payload, gateway: SimulatedGateway | None = None) -> ActionResult:
    ctx = resolve_tenant(actor, PAYMENT_ROLES)
    data = parse_payload(PaymentIn, payload, "Invalid payment request")

    invoice = Invoice.query.filter_by(
        id=data.invoice_id, company_id=ctx.company_id, status=InvoiceStatus.PENDING
    ).first()
    if invoice is None:
        raise NotFoundError("Invoice not found or already paid")

    method = PaymentMethod.query.filter_by(
        id=data.payment_method_id,
        company_id=ctx.company_id,
        customer_id=invoice.customer_id,
        is_active=True,
    ).first()
    if method is None:
        raise NotFoundError("Payment method not found")

    txn = PaymentTransaction(
        company_id=ctx.company_id,
        invoice_id=invoice.id,
        payment_method_id=method.id,
        transaction_reference=_reference("TXN"),
        transaction_type="payment",
        amount=invoice.total_amount,
        currency=invoice.currency,
        status=TransactionStatus.PROCESSING,
        created_by_id=ctx.user_id,
    )
    db.session.add(txn)
    db.session.commit()

    result = (gateway or gateway_from_config()).charge(txn.amount, txn.currency, txn.transaction_reference)

    txn.gateway_response = result.response
    txn.processed_at = utcnow_naive()

    if not result.approved:
        txn.status = TransactionStatus.FAILED
        txn.failure_reason = result.failure_reason
        db.session.commit()
        current_app.logger.warning("Payment %s declined", txn.transaction_reference)
        raise DependencyError(f"Payment failed: {result.failure_reason}")

    txn.status = TransactionStatus.COMPLETED
    invoice.status = InvoiceStatus.PAID
    invoice.paid_date = txn.processed_at
    invoice.paid_amount = txn.amount
    db.session.commit()

    current_app.logger.info("Payment %s completed for invoice %s", txn.transaction_reference, invoice.invoice_number)
    return ActionResult.ok(txn.to_dict(), message="Payment processed successfully")


@action("Refund payment", "Failed to process refund")
def refund_payment(actor, transaction_id, payload) -> ActionResult:
    ctx = resolve_tenant(actor, PAYMENT_ROLES)
    data = parse_payload(RefundIn, payload, "Invalid refund request")
    original = get_owned(PaymentTransaction, ctx, transaction_id, "Transaction not found")

    if original.transaction_type != "payment" or original.status != TransactionStatus.COMPLETED:
        raise StateConflictError("Only completed payments can be refunded")

    already_refunded = -(
        db.session.query(sa.func.coalesce(sa.func.sum(PaymentTransaction.amount), 0))
        .filter(
            PaymentTransaction.parent_transaction_id == original.id,
            PaymentTransaction.transaction_type == "refund",
            PaymentTransaction.status == TransactionStatus.COMPLETED,
        )
        .scalar()
    )

    amount = round2(data.amount)
    if amount + round2(already_refunded) > round2(original.amount):
        raise ValidationError("Refund amount cannot exceed original payment amount")

    now = utcnow_naive()
    refund = PaymentTransaction(
        company_id=ctx.company_id,
        invoice_id=original.invoice_id,
        payment_method_id=original.payment_method_id,
        parent_transaction_id=original.id,
        transaction_reference=_reference("REF"),
        transaction_type="refund",
        amount=-float(amount),
        currency=original.currency,
        status=TransactionStatus.COMPLETED,
        gateway_response={"reason": data.reason} if data.reason else None,
        processed_at=now,
        created_by_id=ctx.user_id,
    )
    db.session.add(refund)

    invoice = original.invoice
    invoice.refunded_amount = float(round2(invoice.refunded_amount or 0) + amount)
    # Only a refund of the full original amount flips the invoice
    if amount == round2(original.amount):
        invoice.status = InvoiceStatus.REFUNDED

    db.session.commit()
    current_app.logger.info("Refund %s recorded against %s", refund.transaction_reference, original.transaction_reference)
    return ActionResult.ok(refund.to_dict(), message="Refund processed successfully")


# =========================================================
# Reads
# =========================================================
@action("List transactions", "Failed to load transactions")
def list_transactions(actor, invoice_id=None) -> ActionResult:
    ctx = resolve_tenant(actor, PAYMENT_ROLES)

    query = PaymentTransaction.query.filter(PaymentTransaction.company_id == ctx.company_id)
    if invoice_id:
        query = query.filter(PaymentTransaction.invoice_id == int(invoice_id))

    txns = query.order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc()).all()
    return ActionResult.ok([t.to_dict() for t in txns])


@action("Payment stats", "Failed to load payment statistics")
def payment_stats(actor) -> ActionResult:
    ctx = resolve_tenant(actor, PAYMENT_ROLES)

    rows = (
        db.session.query(
            PaymentTransaction.transaction_type,
            PaymentTransaction.status,
            sa.func.count(PaymentTransaction.id),
            sa.func.coalesce(sa.func.sum(PaymentTransaction.amount), 0),
        )
        .filter(PaymentTransaction.company_id == ctx.company_id)
        .group_by(PaymentTransaction.transaction_type, PaymentTransaction.status)
        .all()
    )

    stats = {
        "total_payments": 0,
        "completed_payments": 0,
        "failed_payments": 0,
        "total_collected": 0.0,
        "total_refunded": 0.0,
    }
    for txn_type, status, count, total in rows:
        if txn_type == "payment":
            stats["total_payments"] += count
            if status == TransactionStatus.COMPLETED:
                stats["completed_payments"] += count
                stats["total_collected"] += float(total or 0)
            elif status == TransactionStatus.FAILED:
                stats["failed_payments"] += count
        elif txn_type == "refund" and status == TransactionStatus.COMPLETED:
            stats["total_refunded"] += -float(total or 0)

    attempted = stats["completed_payments"] + stats["failed_payments"]
    stats["success_rate"] = round(stats["completed_payments"] / attempted * 100, 2) if attempted else 0.0
    stats["net_collected"] = float(round2(stats["total_collected"] - stats["total_refunded"]))
    return ActionResult.ok(stats)
