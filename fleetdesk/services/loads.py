# fleetdesk/services/loads.py
from __future__ import annotations

import sqlalchemy as sa
from flask import current_app

from ..constants import MANAGEMENT_ROLES, STAFF_ROLES
from ..errors import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import (
    LOAD_EDITABLE,
    LOAD_TRANSITIONS,
    Customer,
    Driver,
    DriverStatus,
    Load,
    LoadStatus,
    LoadTracking,
    Quote,
    QuoteStatus,
    Vehicle,
    VehicleStatus,
    can_transition,
    utcnow_naive,
)
from ..schemas import LoadIn, LoadUpdateIn, TrackingIn, parse_payload
from ..utils.guards import TenantContext, resolve_tenant
from ..utils.results import ActionResult, action
from .lookups import get_owned
from .numbering import issue_document_number

LOAD_ROLES = STAFF_ROLES
FIELD_ROLES = STAFF_ROLES | {"driver"}

_REQUIRED_FIELDS = {"pickup_address", "delivery_address", "currency"}


def _parse_status(value) -> LoadStatus:
    try:
        return LoadStatus(value)
    except ValueError:
        raise ValidationError("Invalid load status") from None


def _is_own_load(ctx: TenantContext, load: Load) -> bool:
    return load.driver is not None and load.driver.profile_id == ctx.user_id


def _visible_load(ctx: TenantContext, load_id) -> Load:
    load = get_owned(Load, ctx, load_id, "Load not found")
    if ctx.role == "driver" and not _is_own_load(ctx, load):
        raise NotFoundError("Load not found")
    return load


def _apply_status(ctx: TenantContext, load: Load, target: LoadStatus, notes: str | None = None) -> None:
    """Single place where a load changes status; records a tracking row."""
    if ctx.role == "driver":
        if target != LoadStatus.DELIVERED:
            raise AuthorizationError("Insufficient permissions")
        if not _is_own_load(ctx, load):
            raise AuthorizationError("You can only mark your assigned loads as delivered")

    if not can_transition(LOAD_TRANSITIONS, load.status, target):
        raise StateConflictError(f"Cannot change status from {load.status.value} to {target.value}")

    if target == LoadStatus.IN_TRANSIT and not load.assigned_driver_id:
        raise StateConflictError("Cannot start transit without assigned driver")

    load.status = target
    if target == LoadStatus.DELIVERED:
        load.delivered_at = utcnow_naive()

    load.tracking.append(
        LoadTracking(status=target.value, notes=notes, recorded_by_id=ctx.user_id)
    )


# =========================================================
# Create / update / delete
# =========================================================
@action("Create load", "Failed to create load")
def create_load(actor, payload) -> ActionResult:
    ctx = resolve_tenant(actor, LOAD_ROLES)
    data = parse_payload(LoadIn, payload, "Invalid load data")

    customer = get_owned(Customer, ctx, data.customer_id, "Customer not found")
    if not customer.is_active:
        raise StateConflictError("Customer is inactive")
    if data.quote_id is not None:
        get_owned(Quote, ctx, data.quote_id, "Quote not found")

    number = issue_document_number(ctx.company_id, "load", customer)

    load = Load(
        company_id=ctx.company_id,
        load_number=number,
        status=LoadStatus.PENDING,
        created_by_id=ctx.user_id,
        **data.model_dump(),
    )
    db.session.add(load)
    db.session.flush()

    if data.quote_id is not None:
        quote = get_owned(Quote, ctx, data.quote_id, "Quote not found")
        if quote.load_id is None:
            quote.load_id = load.id
        if quote.status == QuoteStatus.ACCEPTED:
            quote.status = QuoteStatus.CONVERTED
            quote.converted_load_id = load.id

    db.session.commit()
    current_app.logger.info("Load %s created (company=%s)", load.load_number, ctx.company_id)
    return ActionResult.ok(load.to_dict(), message=f"Load {load.load_number} created successfully")


@action("Update load", "Failed to update load")
def update_load(actor, load_id, payload) -> ActionResult:
    ctx = resolve_tenant(actor, LOAD_ROLES)
    data = parse_payload(LoadUpdateIn, payload, "Invalid load data")
    load = get_owned(Load, ctx, load_id, "Load not found")

    if load.status not in LOAD_EDITABLE:
        raise StateConflictError("Cannot edit load with current status")

    for name, value in data.model_dump(exclude_unset=True).items():
        if value is None and name in _REQUIRED_FIELDS:
            continue
        setattr(load, name, value)

    if load.pickup_date and load.delivery_date and load.delivery_date < load.pickup_date:
        raise ValidationError("Invalid load data", details="delivery_date before pickup_date")

    db.session.commit()
    return ActionResult.ok(load.to_dict(), message="Load updated successfully")


@action("Delete load", "Failed to delete load")
def delete_load(actor, load_id) -> ActionResult:
    ctx = resolve_tenant(actor, MANAGEMENT_ROLES)
    load = get_owned(Load, ctx, load_id, "Load not found")

    if load.status != LoadStatus.PENDING:
        raise StateConflictError("Can only delete pending loads")

    number = load.load_number
    Quote.query.filter_by(company_id=ctx.company_id, load_id=load.id).update(
        {"load_id": None}, synchronize_session="fetch"
    )
    db.session.delete(load)
    db.session.commit()

    current_app.logger.info("Load %s deleted (company=%s)", number, ctx.company_id)
    return ActionResult.ok({"id": int(load_id)}, message=f"Load {number} deleted successfully")


# =========================================================
# Status + assignment
# =========================================================
@action("Update load status", "Failed to update load status")
def update_load_status(actor, load_id, status, notes: str | None = None) -> ActionResult:
    ctx = resolve_tenant(actor, FIELD_ROLES)
    target = _parse_status(status)
    load = get_owned(Load, ctx, load_id, "Load not found")

    _apply_status(ctx, load, target, notes)

    db.session.commit()
    current_app.logger.info("Load %s -> %s by profile %s", load.load_number, target.value, ctx.user_id)
    return ActionResult.ok(load.to_dict(), message=f"Load status updated to {target.value}")


@action("Assign driver", "Failed to assign driver")
def assign_driver(actor, load_id, driver_id) -> ActionResult:
    ctx = resolve_tenant(actor, LOAD_ROLES)
    load = get_owned(Load, ctx, load_id, "Load not found")
    driver = get_owned(Driver, ctx, driver_id, "Driver not found")

    if driver.status != DriverStatus.ACTIVE:
        raise StateConflictError("Driver is not active")
    if load.status not in LOAD_EDITABLE:
        raise StateConflictError("Load cannot be assigned in current status")

    busy = Load.query.filter(
        Load.company_id == ctx.company_id,
        Load.assigned_driver_id == driver.id,
        Load.status == LoadStatus.IN_TRANSIT,
        Load.id != load.id,
    ).first()
    if busy is not None:
        raise StateConflictError("Driver is already assigned to an active load")

    load.assigned_driver_id = driver.id
    if load.status == LoadStatus.PENDING:
        _apply_status(ctx, load, LoadStatus.ASSIGNED, f"Driver {driver.full_name} assigned")

    db.session.commit()
    return ActionResult.ok(load.to_dict(), message=f"{driver.full_name} assigned to Load {load.load_number}")


@action("Unassign driver", "Failed to unassign driver")
def unassign_driver(actor, load_id) -> ActionResult:
    ctx = resolve_tenant(actor, LOAD_ROLES)
    load = get_owned(Load, ctx, load_id, "Load not found")

    if load.status == LoadStatus.IN_TRANSIT:
        raise StateConflictError("Cannot unassign driver from load in transit")
    if not load.assigned_driver_id:
        raise StateConflictError("No driver assigned to this load")
    if load.status not in LOAD_EDITABLE:
        raise StateConflictError("Cannot edit load with current status")

    name = load.driver.full_name if load.driver else "Driver"
    load.assigned_driver_id = None
    if load.status == LoadStatus.ASSIGNED:
        _apply_status(ctx, load, LoadStatus.PENDING, f"{name} unassigned")

    db.session.commit()
    return ActionResult.ok(load.to_dict(), message=f"{name} unassigned from Load {load.load_number}")


@action("Assign vehicle", "Failed to assign vehicle")
def assign_vehicle(actor, load_id, vehicle_id) -> ActionResult:
    ctx = resolve_tenant(actor, LOAD_ROLES)
    load = get_owned(Load, ctx, load_id, "Load not found")
    vehicle = get_owned(Vehicle, ctx, vehicle_id, "Vehicle not found")

    if vehicle.status != VehicleStatus.ACTIVE:
        raise StateConflictError("Vehicle is not active")
    if load.status not in LOAD_EDITABLE:
        raise StateConflictError("Load cannot be assigned in current status")

    load.assigned_vehicle_id = vehicle.id
    if load.status == LoadStatus.PENDING:
        _apply_status(ctx, load, LoadStatus.ASSIGNED, f"Vehicle {vehicle.registration_number} assigned")

    db.session.commit()
    return ActionResult.ok(
        load.to_dict(), message=f"Vehicle {vehicle.registration_number} assigned to Load {load.load_number}"
    )


# =========================================================
# Tracking
# =========================================================
@action("Add load tracking", "Failed to add tracking update")
def add_load_tracking(actor, load_id, payload) -> ActionResult:
    ctx = resolve_tenant(actor, FIELD_ROLES)
    data = parse_payload(TrackingIn, payload, "Invalid tracking update")
    load = _visible_load(ctx, load_id)

    if data.status and data.status != load.status.value:
        _apply_status(ctx, load, _parse_status(data.status), data.notes)
        entry = load.tracking[-1]
    else:
        entry = LoadTracking(status=load.status.value, notes=data.notes, recorded_by_id=ctx.user_id)
        load.tracking.append(entry)

    entry.location = data.location
    entry.latitude = data.latitude
    entry.longitude = data.longitude

    db.session.commit()
    return ActionResult.ok(entry.to_dict(), message="Tracking update added")


# =========================================================
# Reads
# =========================================================
@action("List loads", "Failed to load loads")
def list_loads(actor, status: str | None = None, customer_id=None, search: str | None = None) -> ActionResult:
    ctx = resolve_tenant(actor, FIELD_ROLES)

    query = Load.query.filter(Load.company_id == ctx.company_id)
    if ctx.role == "driver":
        # Drivers only ever see their own loads
        query = query.join(Driver, Load.assigned_driver_id == Driver.id).filter(Driver.profile_id == ctx.user_id)
    if status:
        query = query.filter(Load.status == _parse_status(status))
    if customer_id:
        query = query.filter(Load.customer_id == int(customer_id))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            sa.or_(
                Load.load_number.ilike(like),
                Load.pickup_city.ilike(like),
                Load.delivery_city.ilike(like),
            )
        )

    loads = query.order_by(Load.created_at.desc(), Load.id.desc()).all()
    return ActionResult.ok([load.to_dict() for load in loads])


@action("Get load", "Failed to load load")
def get_load(actor, load_id) -> ActionResult:
    ctx = resolve_tenant(actor, FIELD_ROLES)
    load = _visible_load(ctx, load_id)

    data = load.to_dict()
    data["driver"] = load.driver.to_dict() if load.driver else None
    data["vehicle"] = load.vehicle.to_dict() if load.vehicle else None
    data["tracking"] = [t.to_dict() for t in load.tracking]
    return ActionResult.ok(data)
