# fleetdesk/services/customers.py
from __future__ import annotations

import sqlalchemy as sa
from flask import current_app

from ..constants import CUSTOMER_ROLE, MANAGEMENT_ROLES, STAFF_ROLES
from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import (
    ACTIVE_LOAD_STATUSES,
    Customer,
    Invoice,
    InvoiceStatus,
    Load,
    Profile,
    Quote,
)
from ..schemas import CustomerIn, CustomerUpdateIn, parse_payload
from ..utils.guards import resolve_tenant
from ..utils.passwords import generate_temporary_password, hash_password
from ..utils.results import ActionResult, action
from .lookups import get_owned

# Columns that may not be blanked by an update
_REQUIRED_FIELDS = {"name", "currency", "default_tax_rate", "payment_terms", "credit_limit"}

_OPEN_INVOICE_STATUSES = (InvoiceStatus.PENDING, InvoiceStatus.OVERDUE)


def _active_load_count(company_id: int, customer_id: int) -> int:
    return (
        Load.query.filter(
            Load.company_id == company_id,
            Load.customer_id == customer_id,
            Load.status.in_(ACTIVE_LOAD_STATUSES),
        ).count()
    )


def _open_invoice_count(company_id: int, customer_id: int) -> int:
    return (
        Invoice.query.filter(
            Invoice.company_id == company_id,
            Invoice.customer_id == customer_id,
            Invoice.status.in_(_OPEN_INVOICE_STATUSES),
        ).count()
    )


def _has_history(company_id: int, customer_id: int) -> bool:
    for model in (Load, Quote, Invoice):
        if model.query.filter_by(company_id=company_id, customer_id=customer_id).first() is not None:
            return True
    return False


# =========================================================
# Create / update
# =========================================================
@action("Create customer", "Failed to create customer")
def create_customer(actor, payload) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    data = parse_payload(CustomerIn, payload, "Invalid customer data")

    customer = Customer(company_id=ctx.company_id, **data.model_dump())
    if customer.email:
        customer.email = customer.email.lower()

    db.session.add(customer)
    db.session.commit()

    current_app.logger.info("Customer %s created in company %s", customer.id, ctx.company_id)
    return ActionResult.ok(customer.to_dict(), message="Customer created successfully")


@action("Update customer", "Failed to update customer")
def update_customer(actor, customer_id, payload) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    data = parse_payload(CustomerUpdateIn, payload, "Invalid customer data")
    customer = get_owned(Customer, ctx, customer_id, "Customer not found")

    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field in _REQUIRED_FIELDS:
            continue
        if field == "email" and value:
            value = value.lower()
        setattr(customer, field, value)

    db.session.commit()
    return ActionResult.ok(customer.to_dict(), message="Customer updated successfully")


# =========================================================
# Delete / deactivate
# =========================================================
@action("Delete customer", "Failed to delete customer")
def delete_customer(actor, customer_id) -> ActionResult:
    ctx = resolve_tenant(actor, MANAGEMENT_ROLES)
    customer = get_owned(Customer, ctx, customer_id, "Customer not found")

    if _active_load_count(ctx.company_id, customer.id):
        raise StateConflictError(
            "Cannot delete customer with active loads. Please complete or cancel loads first."
        )
    if _open_invoice_count(ctx.company_id, customer.id):
        raise StateConflictError(
            "Cannot delete customer with pending invoices. Please resolve invoices first."
        )

    # Referenced customers keep their row for the documents that point at them
    if _has_history(ctx.company_id, customer.id):
        customer.is_active = False
        db.session.commit()
        current_app.logger.info("Customer %s deactivated instead of deleted", customer.id)
        return ActionResult.ok(
            {"id": customer.id, "deleted": False, "is_active": False},
            message="Customer has history and was deactivated instead",
        )

    Profile.query.filter_by(customer_id=customer.id).delete(synchronize_session=False)
    db.session.delete(customer)
    db.session.commit()
    current_app.logger.info("Customer %s deleted from company %s", customer_id, ctx.company_id)
    return ActionResult.ok({"id": int(customer_id), "deleted": True}, message="Customer deleted successfully")


@action("Toggle customer status", "Failed to update customer status")
def toggle_customer_status(actor, customer_id) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    customer = get_owned(Customer, ctx, customer_id, "Customer not found")

    if customer.is_active and _active_load_count(ctx.company_id, customer.id):
        raise StateConflictError(
            "Cannot deactivate customer with active loads. Please complete or cancel loads first."
        )

    customer.is_active = not customer.is_active
    db.session.commit()

    state = "activated" if customer.is_active else "deactivated"
    return ActionResult.ok(customer.to_dict(), message=f"Customer {state} successfully")


# =========================================================
# Reads
# =========================================================
@action("Get customer", "Failed to load customer")
def get_customer(actor, customer_id) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    customer = get_owned(Customer, ctx, customer_id, "Customer not found")

    outstanding = (
        db.session.query(sa.func.coalesce(sa.func.sum(Invoice.total_amount), 0))
        .filter(
            Invoice.company_id == ctx.company_id,
            Invoice.customer_id == customer.id,
            Invoice.status.in_(_OPEN_INVOICE_STATUSES),
        )
        .scalar()
    )

    data = customer.to_dict()
    data["active_loads"] = _active_load_count(ctx.company_id, customer.id)
    data["open_invoices"] = _open_invoice_count(ctx.company_id, customer.id)
    data["outstanding_amount"] = float(outstanding or 0)
    return ActionResult.ok(data)


@action("List customers", "Failed to load customers")
def list_customers(actor, search: str | None = None, active: bool | None = None) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)

    query = Customer.query.filter(Customer.company_id == ctx.company_id)
    if active is not None:
        query = query.filter(Customer.is_active.is_(active))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            sa.or_(
                Customer.name.ilike(like),
                Customer.email.ilike(like),
                Customer.contact_person.ilike(like),
            )
        )

    customers = query.order_by(Customer.name.asc()).all()
    return ActionResult.ok([c.to_dict() for c in customers])


# =========================================================
# Portal access
# =========================================================
@action("Enable portal access", "Failed to enable portal access")
def enable_portal_access(actor, customer_id) -> ActionResult:
    """Create the customer's portal login; the temporary password is returned once."""
    ctx = resolve_tenant(actor, MANAGEMENT_ROLES)
    customer = get_owned(Customer, ctx, customer_id, "Customer not found")

    if not customer.is_active:
        raise StateConflictError("Customer is inactive")
    email = (customer.email or "").strip().lower()
    if not email:
        raise ValidationError("Customer has no email address")
    account = Profile.query.filter_by(customer_id=customer.id).first()
    if account is not None and account.is_active:
        raise StateConflictError("Customer already has portal access")

    temp_password = generate_temporary_password()
    if account is None:
        if Profile.query.filter(sa.func.lower(Profile.email) == email).first() is not None:
            raise StateConflictError("A user with this email already exists")
        account = Profile(
            company_id=ctx.company_id,
            customer_id=customer.id,
            email=email,
            full_name=customer.contact_person or customer.name,
            phone=customer.phone,
            role=CUSTOMER_ROLE,
        )
        db.session.add(account)

    # A revoked login comes back with a fresh password
    account.password_hash = hash_password(temp_password)
    account.is_active = True
    account.must_change_password = True
    db.session.commit()

    current_app.logger.info("Portal access enabled for customer %s by profile %s", customer.id, ctx.user_id)
    return ActionResult.ok(
        {"profile": account.to_dict(), "temporary_password": temp_password},
        message="Portal access enabled",
    )


@action("Revoke portal access", "Failed to revoke portal access")
def revoke_portal_access(actor, customer_id) -> ActionResult:
    ctx = resolve_tenant(actor, MANAGEMENT_ROLES)
    customer = get_owned(Customer, ctx, customer_id, "Customer not found")

    account = Profile.query.filter_by(customer_id=customer.id, role=CUSTOMER_ROLE).first()
    if account is None or not account.is_active:
        raise NotFoundError("Customer has no portal access")

    account.is_active = False
    db.session.commit()
    return ActionResult.ok(account.to_dict(), message="Portal access revoked")
