# fleetdesk/services/expenses.py
from __future__ import annotations

from datetime import date

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..constants import MANAGEMENT_ROLES, RECEIPT_MIME_TYPES, STAFF_ROLES
from ..errors import (
    AuthorizationError,
    DependencyError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    Expense,
    ExpenseStatus,
    Load,
    Vehicle,
    utc_today,
    utcnow_naive,
)
from ..schemas import ExpenseIn, ExpenseReviewIn, ExpenseUpdateIn, parse_payload
from ..utils.guards import TenantContext, resolve_tenant
from ..utils.results import ActionResult, action
from .lookups import get_owned, owned_or_none
from .storage import delete_bytes, load_bytes, store_bytes

SUBMIT_ROLES = STAFF_ROLES | {"driver"}
REVIEW_ROLES = MANAGEMENT_ROLES

_REQUIRED_FIELDS = {"category", "description", "amount", "currency", "expense_date"}


def _check_links(ctx: TenantContext, load_id, vehicle_id) -> None:
    if load_id is not None and owned_or_none(Load, ctx, load_id) is None:
        raise ValidationError("Invalid load selected")
    if vehicle_id is not None and owned_or_none(Vehicle, ctx, vehicle_id) is None:
        raise ValidationError("Invalid vehicle selected")


def _can_manage(ctx: TenantContext, expense: Expense) -> bool:
    return ctx.role in REVIEW_ROLES or expense.submitted_by_id == ctx.user_id


def _discard_receipt(storage_key: str | None) -> None:
    if not storage_key:
        return
    try:
        delete_bytes(storage_key)
    except OSError:
        current_app.logger.exception("Could not remove receipt %s", storage_key)


def _visible_expense(ctx: TenantContext, expense_id) -> Expense:
    expense = get_owned(Expense, ctx, expense_id, "Expense not found")
    if ctx.role == "driver" and expense.submitted_by_id != ctx.user_id:
        raise NotFoundError("Expense not found")
    return expense


# =========================================================
# Create / update / delete
# =========================================================
@action("Create expense", "Failed to create expense")
def create_expense(actor, payload) -> ActionResult:
    ctx = resolve_tenant(actor, SUBMIT_ROLES)
    data = parse_payload(ExpenseIn, payload, "Invalid expense data")
    _check_links(ctx, data.load_id, data.vehicle_id)

    values = data.model_dump()
    values["expense_date"] = values["expense_date"] or utc_today()

    expense = Expense(
        company_id=ctx.company_id,
        submitted_by_id=ctx.user_id,
        status=ExpenseStatus.PENDING,
        **values,
    )
    db.session.add(expense)
    db.session.commit()

    current_app.logger.info("Expense %s submitted by profile %s", expense.id, ctx.user_id)
    return ActionResult.ok(expense.to_dict(), message="Expense created successfully")


@action("Update expense", "Failed to update expense")
def update_expense(actor, expense_id, payload) -> ActionResult:
    ctx = resolve_tenant(actor, SUBMIT_ROLES)
    data = parse_payload(ExpenseUpdateIn, payload, "Invalid expense data")
    expense = _visible_expense(ctx, expense_id)

    if not _can_manage(ctx, expense):
        raise AuthorizationError("Insufficient permissions")
    if expense.status != ExpenseStatus.PENDING:
        raise StateConflictError("Can only edit pending expenses")

    changes = data.model_dump(exclude_unset=True)
    _check_links(ctx, changes.get("load_id"), changes.get("vehicle_id"))

    for name, value in changes.items():
        if value is None and name in _REQUIRED_FIELDS:
            continue
        setattr(expense, name, value)

    db.session.commit()
    return ActionResult.ok(expense.to_dict(), message="Expense updated successfully")


@action("Delete expense", "Failed to delete expense")
def delete_expense(actor, expense_id) -> ActionResult:
    ctx = resolve_tenant(actor, SUBMIT_ROLES)
    expense = _visible_expense(ctx, expense_id)

    if not _can_manage(ctx, expense):
        raise AuthorizationError("Insufficient permissions")
    if expense.status != ExpenseStatus.PENDING:
        raise StateConflictError("Can only delete pending expenses")

    receipt_key = expense.receipt_key
    db.session.delete(expense)
    db.session.commit()
    _discard_receipt(receipt_key)

    return ActionResult.ok({"id": int(expense_id)}, message="Expense deleted successfully")


@action("Review expense", "Failed to update expense status")
def review_expense(actor, expense_id, payload) -> ActionResult:
    ctx = resolve_tenant(actor, REVIEW_ROLES)
    data = parse_payload(ExpenseReviewIn, payload, "Invalid expense status")
    expense = get_owned(Expense, ctx, expense_id, "Expense not found")

    if expense.status != ExpenseStatus.PENDING:
        raise StateConflictError("Can only approve/reject pending expenses")

    expense.status = ExpenseStatus(data.status)
    expense.reviewed_by_id = ctx.user_id
    expense.reviewed_at = utcnow_naive()
    expense.review_notes = data.notes

    db.session.commit()
    current_app.logger.info("Expense %s %s by profile %s", expense.id, data.status, ctx.user_id)
    return ActionResult.ok(expense.to_dict(), message=f"Expense {data.status} successfully")


# =========================================================
# Receipts
# =========================================================
@action("Upload receipt", "Failed to upload receipt")
def upload_receipt(actor, expense_id, content: bytes, content_type: str | None) -> ActionResult:
    ctx = resolve_tenant(actor, SUBMIT_ROLES)
    expense = _visible_expense(ctx, expense_id)

    if not _can_manage(ctx, expense):
        raise AuthorizationError("Insufficient permissions")

    max_bytes = int(current_app.config.get("RECEIPT_MAX_BYTES", 5 * 1024 * 1024))
    if len(content) > max_bytes:
        raise ValidationError("File size must be less than 5MB")

    mime = (content_type or "").split(";")[0].strip().lower()
    ext = RECEIPT_MIME_TYPES.get(mime)
    if ext is None:
        raise ValidationError("File must be an image (JPEG, PNG, WebP) or PDF")

    ts = utcnow_naive().strftime("%Y%m%dT%H%M%S%f")
    key = f"expenses/{ctx.company_id}/{expense.id}-{ts}.{ext}"
    try:
        stored = store_bytes(key, content)
    except OSError as exc:
        current_app.logger.exception("Receipt write failed for expense %s", expense.id)
        raise DependencyError("Failed to store receipt") from exc

    previous_key = expense.receipt_key
    expense.receipt_key = stored.storage_key
    expense.receipt_sha256 = stored.sha256
    expense.receipt_content_type = mime
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        _discard_receipt(stored.storage_key)
        raise

    # The row now points at the new file only
    if previous_key != stored.storage_key:
        _discard_receipt(previous_key)

    return ActionResult.ok(
        {"receipt_key": stored.storage_key, "sha256": stored.sha256, "size": stored.size},
        message="Receipt uploaded successfully",
    )


@action("Download receipt", "Failed to load receipt")
def get_receipt(actor, expense_id) -> ActionResult:
    ctx = resolve_tenant(actor, SUBMIT_ROLES)
    expense = _visible_expense(ctx, expense_id)

    if not expense.receipt_key:
        raise NotFoundError("No receipt uploaded for this expense")
    try:
        content = load_bytes(expense.receipt_key)
    except FileNotFoundError:
        raise NotFoundError("Receipt file is missing") from None

    return ActionResult.ok(
        {
            "content": content,
            "content_type": expense.receipt_content_type or "application/octet-stream",
            "filename": expense.receipt_key.rsplit("/", 1)[-1],
        }
    )


# =========================================================
# Reads
# =========================================================
@action("List expenses", "Failed to load expenses")
def list_expenses(
    actor,
    status: str | None = None,
    category: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> ActionResult:
    ctx = resolve_tenant(actor, SUBMIT_ROLES)

    query = Expense.query.filter(Expense.company_id == ctx.company_id)
    if ctx.role == "driver":
        query = query.filter(Expense.submitted_by_id == ctx.user_id)
    if status:
        try:
            query = query.filter(Expense.status == ExpenseStatus(status))
        except ValueError:
            raise ValidationError("Invalid expense status") from None
    if category:
        query = query.filter(Expense.category == category)
    if date_from:
        query = query.filter(Expense.expense_date >= date_from)
    if date_to:
        query = query.filter(Expense.expense_date <= date_to)

    expenses = query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()
    return ActionResult.ok([e.to_dict() for e in expenses])


@action("Expense stats", "Failed to load expense statistics")
def expense_stats(actor) -> ActionResult:
    ctx = resolve_tenant(actor, REVIEW_ROLES)

    by_status = {s.value: {"count": 0, "amount": 0.0} for s in ExpenseStatus}
    for status, count, total in (
        db.session.query(Expense.status, sa.func.count(Expense.id), sa.func.coalesce(sa.func.sum(Expense.amount), 0))
        .filter(Expense.company_id == ctx.company_id)
        .group_by(Expense.status)
        .all()
    ):
        by_status[status.value] = {"count": count, "amount": float(total or 0)}

    by_category = {
        category: float(total or 0)
        for category, total in (
            db.session.query(Expense.category, sa.func.coalesce(sa.func.sum(Expense.amount), 0))
            .filter(Expense.company_id == ctx.company_id, Expense.status == ExpenseStatus.APPROVED)
            .group_by(Expense.category)
            .all()
        )
    }

    return ActionResult.ok({"by_status": by_status, "approved_by_category": by_category})
