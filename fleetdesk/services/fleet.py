# fleetdesk/services/fleet.py
from __future__ import annotations

import sqlalchemy as sa

from ..constants import MANAGEMENT_ROLES, STAFF_ROLES
from ..errors import StateConflictError, ValidationError
from ..extensions import db
from ..models import (
    ACTIVE_LOAD_STATUSES,
    Driver,
    DriverStatus,
    Expense,
    Load,
    LoadStatus,
    Profile,
    Vehicle,
    VehicleStatus,
)
from ..schemas import DriverIn, DriverUpdateIn, VehicleIn, VehicleUpdateIn, parse_payload
from ..utils.guards import TenantContext, resolve_tenant
from ..utils.results import ActionResult, action
from .lookups import get_owned

_DRIVER_REQUIRED = {"first_name", "last_name"}


def _check_driver_link(ctx: TenantContext, profile_id, driver_id=None) -> None:
    profile = Profile.query.filter_by(id=profile_id, company_id=ctx.company_id).first()
    if profile is None or profile.role != "driver":
        raise ValidationError("Linked account must be a driver in this company")

    linked = Driver.query.filter_by(profile_id=profile.id).first()
    if linked is not None and linked.id != driver_id:
        raise StateConflictError("This account is already linked to a driver")


def _active_loads(ctx: TenantContext, column, obj_id):
    return Load.query.filter(
        Load.company_id == ctx.company_id,
        column == obj_id,
        Load.status.in_(ACTIVE_LOAD_STATUSES),
    )


def _unique_registration(ctx: TenantContext, registration: str, vehicle_id=None) -> str:
    registration = registration.upper()
    clash = Vehicle.query.filter_by(company_id=ctx.company_id, registration_number=registration).first()
    if clash is not None and clash.id != vehicle_id:
        raise StateConflictError("A vehicle with this registration already exists")
    return registration


# =========================================================
# Drivers
# =========================================================
@action("Create driver", "Failed to create driver")
def create_driver(actor, payload) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    data = parse_payload(DriverIn, payload, "Invalid driver data")

    if data.profile_id is not None:
        _check_driver_link(ctx, data.profile_id)

    driver = Driver(company_id=ctx.company_id, status=DriverStatus.ACTIVE, **data.model_dump())
    db.session.add(driver)
    db.session.commit()
    return ActionResult.ok(driver.to_dict(), message=f"Driver {driver.full_name} added")


@action("Get driver", "Failed to load driver")
def get_driver(actor, driver_id) -> ActionResult:
    """Driver record plus the loads assigned to it, newest first."""
    ctx = resolve_tenant(actor, STAFF_ROLES)
    driver = get_owned(Driver, ctx, driver_id, "Driver not found")

    assigned = (
        Load.query.filter_by(company_id=ctx.company_id, assigned_driver_id=driver.id)
        .order_by(Load.created_at.desc(), Load.id.desc())
        .all()
    )
    data = driver.to_dict()
    data["loads"] = [load.to_dict() for load in assigned]
    return ActionResult.ok(data)


@action("Update driver", "Failed to update driver")
def update_driver(actor, driver_id, payload) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    data = parse_payload(DriverUpdateIn, payload, "Invalid driver data")
    driver = get_owned(Driver, ctx, driver_id, "Driver not found")

    changes = data.model_dump(exclude_unset=True)
    if changes.get("profile_id") is not None:
        _check_driver_link(ctx, changes["profile_id"], driver.id)

    for name, value in changes.items():
        if value is None and name in _DRIVER_REQUIRED:
            continue
        setattr(driver, name, value)

    db.session.commit()
    return ActionResult.ok(driver.to_dict(), message="Driver updated successfully")


@action("Delete driver", "Failed to delete driver")
def delete_driver(actor, driver_id) -> ActionResult:
    ctx = resolve_tenant(actor, MANAGEMENT_ROLES)
    driver = get_owned(Driver, ctx, driver_id, "Driver not found")

    if _active_loads(ctx, Load.assigned_driver_id, driver.id).first() is not None:
        raise StateConflictError("Cannot delete driver with active loads. Please reassign loads first.")

    # Finished loads keep their history without the driver link
    Load.query.filter_by(assigned_driver_id=driver.id).update(
        {Load.assigned_driver_id: None}, synchronize_session=False
    )
    db.session.delete(driver)
    db.session.commit()
    return ActionResult.ok({"id": int(driver_id)}, message="Driver deleted successfully")


@action("Update driver status", "Failed to update driver status")
def set_driver_status(actor, driver_id, status) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    driver = get_owned(Driver, ctx, driver_id, "Driver not found")

    try:
        target = DriverStatus(status)
    except ValueError:
        raise ValidationError("Invalid driver status") from None

    if target != DriverStatus.ACTIVE:
        on_road = Load.query.filter_by(
            company_id=ctx.company_id, assigned_driver_id=driver.id, status=LoadStatus.IN_TRANSIT
        ).first()
        if on_road is not None:
            raise StateConflictError("Cannot deactivate a driver with a load in transit")

    driver.status = target
    db.session.commit()
    return ActionResult.ok(driver.to_dict(), message="Driver status updated")


@action("List drivers", "Failed to load drivers")
def list_drivers(actor, available_only: bool = False) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)

    query = Driver.query.filter(Driver.company_id == ctx.company_id)
    if available_only:
        busy_ids = (
            sa.select(Load.assigned_driver_id)
            .where(
                Load.company_id == ctx.company_id,
                Load.status == LoadStatus.IN_TRANSIT,
                Load.assigned_driver_id.isnot(None),
            )
        )
        query = query.filter(Driver.status == DriverStatus.ACTIVE, Driver.id.notin_(busy_ids))

    drivers = query.order_by(Driver.last_name.asc(), Driver.first_name.asc()).all()
    return ActionResult.ok([d.to_dict() for d in drivers])


# =========================================================
# Vehicles
# =========================================================
@action("Create vehicle", "Failed to create vehicle")
def create_vehicle(actor, payload) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    data = parse_payload(VehicleIn, payload, "Invalid vehicle data")

    registration = _unique_registration(ctx, data.registration_number)
    vehicle = Vehicle(
        company_id=ctx.company_id,
        status=VehicleStatus.ACTIVE,
        **{**data.model_dump(), "registration_number": registration},
    )
    db.session.add(vehicle)
    db.session.commit()
    return ActionResult.ok(vehicle.to_dict(), message=f"Vehicle {vehicle.registration_number} added")


@action("Get vehicle", "Failed to load vehicle")
def get_vehicle(actor, vehicle_id) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    vehicle = get_owned(Vehicle, ctx, vehicle_id, "Vehicle not found")
    return ActionResult.ok(vehicle.to_dict())


@action("Update vehicle", "Failed to update vehicle")
def update_vehicle(actor, vehicle_id, payload) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    data = parse_payload(VehicleUpdateIn, payload, "Invalid vehicle data")
    vehicle = get_owned(Vehicle, ctx, vehicle_id, "Vehicle not found")

    changes = data.model_dump(exclude_unset=True)
    if changes.get("registration_number") is None:
        changes.pop("registration_number", None)
    else:
        changes["registration_number"] = _unique_registration(ctx, changes["registration_number"], vehicle.id)

    for name, value in changes.items():
        setattr(vehicle, name, value)

    db.session.commit()
    return ActionResult.ok(vehicle.to_dict(), message="Vehicle updated successfully")


@action("Delete vehicle", "Failed to delete vehicle")
def delete_vehicle(actor, vehicle_id) -> ActionResult:
    ctx = resolve_tenant(actor, MANAGEMENT_ROLES)
    vehicle = get_owned(Vehicle, ctx, vehicle_id, "Vehicle not found")

    if _active_loads(ctx, Load.assigned_vehicle_id, vehicle.id).first() is not None:
        raise StateConflictError("Cannot delete vehicle with active loads. Please reassign loads first.")

    Load.query.filter_by(assigned_vehicle_id=vehicle.id).update(
        {Load.assigned_vehicle_id: None}, synchronize_session=False
    )
    Expense.query.filter_by(vehicle_id=vehicle.id).update({Expense.vehicle_id: None}, synchronize_session=False)
    db.session.delete(vehicle)
    db.session.commit()
    return ActionResult.ok({"id": int(vehicle_id)}, message="Vehicle deleted successfully")


@action("Update vehicle status", "Failed to update vehicle status")
def set_vehicle_status(actor, vehicle_id, status) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    vehicle = get_owned(Vehicle, ctx, vehicle_id, "Vehicle not found")

    try:
        vehicle.status = VehicleStatus(status)
    except ValueError:
        raise ValidationError("Invalid vehicle status") from None

    db.session.commit()
    return ActionResult.ok(vehicle.to_dict(), message="Vehicle status updated")


@action("List vehicles", "Failed to load vehicles")
def list_vehicles(actor, status: str | None = None) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)

    query = Vehicle.query.filter(Vehicle.company_id == ctx.company_id)
    if status:
        try:
            query = query.filter(Vehicle.status == VehicleStatus(status))
        except ValueError:
            raise ValidationError("Invalid vehicle status") from None

    vehicles = query.order_by(Vehicle.registration_number.asc()).all()
    return ActionResult.ok([v.to_dict() for v in vehicles])
