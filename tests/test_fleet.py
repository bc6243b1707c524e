# tests/test_fleet.py
from __future__ import annotations

from fleetdesk.extensions import db
from fleetdesk.models import Driver, Load, LoadStatus, Vehicle
from fleetdesk.services import fleet, loads


def test_create_driver_linked_to_account(dispatcher, make_profile):
    account = make_profile("driver")

    result = fleet.create_driver(
        dispatcher,
        {"first_name": "Chipo", "last_name": "Banda", "email": "chipo@banda-transport.com", "profile_id": account.id},
    )
    assert result.success, result.error
    assert result.data["profile_id"] == account.id
    assert result.data["status"] == "active"

    again = fleet.create_driver(dispatcher, {"first_name": "C", "last_name": "B", "profile_id": account.id})
    assert again.error == "This account is already linked to a driver"


def test_driver_link_must_be_driver_role(dispatcher, manager):
    result = fleet.create_driver(dispatcher, {"first_name": "Not", "last_name": "Driver", "profile_id": manager.id})
    assert result.error == "Linked account must be a driver in this company"


def test_available_drivers_exclude_busy_and_inactive(dispatcher, driver, load_payload, company):
    spare = fleet.create_driver(dispatcher, {"first_name": "Sipho", "last_name": "Nkosi"}).data
    benched = fleet.create_driver(dispatcher, {"first_name": "Zola", "last_name": "Dlamini"}).data
    fleet.set_driver_status(dispatcher, benched["id"], "inactive")

    load = loads.create_load(dispatcher, load_payload()).data
    loads.assign_driver(dispatcher, load["id"], driver.id)
    loads.update_load_status(dispatcher, load["id"], "in_transit")

    available = fleet.list_drivers(dispatcher, available_only=True).data
    assert [d["id"] for d in available] == [spare["id"]]
    assert len(fleet.list_drivers(dispatcher).data) == 3

    blocked = fleet.set_driver_status(dispatcher, driver.id, "suspended")
    assert blocked.error == "Cannot deactivate a driver with a load in transit"


def test_vehicle_registration_unique_per_company(dispatcher, vehicle):
    dup = fleet.create_vehicle(dispatcher, {"registration_number": "abc123gp"})
    assert dup.error == "A vehicle with this registration already exists"

    ok = fleet.create_vehicle(dispatcher, {"registration_number": "nd 456-789", "make": "Scania", "year": 2019})
    assert ok.data["registration_number"] == "ND 456-789"


def test_vehicle_status_filter(dispatcher, vehicle):
    assert fleet.set_vehicle_status(dispatcher, vehicle.id, "flying").error == "Invalid vehicle status"
    fleet.set_vehicle_status(dispatcher, vehicle.id, "maintenance")

    assert fleet.list_vehicles(dispatcher, status="active").data == []
    assert [v["id"] for v in fleet.list_vehicles(dispatcher, status="maintenance").data] == [vehicle.id]


def test_vehicle_in_maintenance_cannot_be_assigned(dispatcher, vehicle, load_payload):
    fleet.set_vehicle_status(dispatcher, vehicle.id, "maintenance")
    load = loads.create_load(dispatcher, load_payload()).data

    assert loads.assign_vehicle(dispatcher, load["id"], vehicle.id).error == "Vehicle is not active"


def test_driver_role_cannot_manage_fleet(driver_user):
    assert fleet.list_vehicles(driver_user).error == "Insufficient permissions"


def test_get_driver_lists_assigned_loads(dispatcher, driver, load_payload, make_company, make_profile):
    load = loads.create_load(dispatcher, load_payload()).data
    loads.assign_driver(dispatcher, load["id"], driver.id)

    result = fleet.get_driver(dispatcher, driver.id)
    assert result.data["first_name"] == "Tendai"
    assert [row["id"] for row in result.data["loads"]] == [load["id"]]

    outsider = make_profile("dispatcher", company_id=make_company("Other Transport").id)
    assert fleet.get_driver(outsider, driver.id).error == "Driver not found"


def test_update_driver(dispatcher, driver, make_profile):
    result = fleet.update_driver(
        dispatcher,
        driver.id,
        {"phone": "+27 82 555 0101", "license_expiry": "2027-03-31", "first_name": "", "emergency_contact_name": "Rudo Moyo"},
    )
    assert result.success, result.error
    assert result.data["phone"] == "+27 82 555 0101"
    assert result.data["license_expiry"] == "2027-03-31"
    assert result.data["emergency_contact_name"] == "Rudo Moyo"
    assert result.data["first_name"] == "Tendai"

    # Re-saving its own link is fine; taking another driver's account is not
    assert fleet.update_driver(dispatcher, driver.id, {"profile_id": driver.profile_id}).success
    spare = fleet.create_driver(dispatcher, {"first_name": "Sipho", "last_name": "Nkosi"}).data
    stolen = fleet.update_driver(dispatcher, spare["id"], {"profile_id": driver.profile_id})
    assert stolen.error == "This account is already linked to a driver"

    bad = fleet.update_driver(dispatcher, driver.id, {"email": "not-an-email"})
    assert bad.error == "Invalid driver data"


def test_delete_driver_refused_with_active_loads(manager, dispatcher, driver, load_payload):
    load = loads.create_load(dispatcher, load_payload()).data
    loads.assign_driver(dispatcher, load["id"], driver.id)

    assert fleet.delete_driver(dispatcher, driver.id).error == "Insufficient permissions"

    refused = fleet.delete_driver(manager, driver.id)
    assert refused.error == "Cannot delete driver with active loads. Please reassign loads first."
    assert refused.status_code == 409
    assert db.session.get(Driver, driver.id) is not None

    loads.update_load_status(dispatcher, load["id"], "in_transit")
    loads.update_load_status(dispatcher, load["id"], "delivered")

    deleted = fleet.delete_driver(manager, driver.id)
    assert deleted.success, deleted.error
    assert db.session.get(Driver, driver.id) is None
    delivered = db.session.get(Load, load["id"])
    assert delivered.assigned_driver_id is None
    assert delivered.status == LoadStatus.DELIVERED


def test_update_vehicle_keeps_registration_unique(dispatcher, vehicle):
    other = fleet.create_vehicle(dispatcher, {"registration_number": "ND 456-789"}).data

    clash = fleet.update_vehicle(dispatcher, other["id"], {"registration_number": "abc123gp"})
    assert clash.error == "A vehicle with this registration already exists"
    assert clash.status_code == 409

    same = fleet.update_vehicle(dispatcher, vehicle.id, {"registration_number": "abc123gp", "capacity_kg": 34000})
    assert same.success, same.error
    assert same.data["registration_number"] == "ABC123GP"
    assert same.data["capacity_kg"] == 34000

    renamed = fleet.update_vehicle(dispatcher, other["id"], {"registration_number": "nd 999", "make": "MAN"})
    assert renamed.data["registration_number"] == "ND 999"
    assert renamed.data["make"] == "MAN"

    assert fleet.update_vehicle(dispatcher, vehicle.id, {"year": 1800}).error == "Invalid vehicle data"
    assert fleet.get_vehicle(dispatcher, 9999).error == "Vehicle not found"


def test_delete_vehicle_guarded(manager, dispatcher, vehicle, load_payload):
    load = loads.create_load(dispatcher, load_payload()).data
    loads.assign_vehicle(dispatcher, load["id"], vehicle.id)

    refused = fleet.delete_vehicle(manager, vehicle.id)
    assert refused.error == "Cannot delete vehicle with active loads. Please reassign loads first."

    loads.update_load_status(dispatcher, load["id"], "cancelled")
    assert fleet.delete_vehicle(manager, vehicle.id).success
    assert db.session.get(Vehicle, vehicle.id) is None
    assert db.session.get(Load, load["id"]).assigned_vehicle_id is None


def test_fleet_endpoints(client, driver, vehicle, login, make_profile):
    staff = make_profile("manager", email="ops@acmehaulage.co.za", password="Str0ng!Passw0rd")
    login(staff.email, "Str0ng!Passw0rd")

    got = client.get(f"/api/drivers/{driver.id}")
    assert got.status_code == 200
    assert got.get_json()["data"]["loads"] == []

    put = client.put(f"/api/drivers/{driver.id}", json={"address": "4 Jan Smuts Ave"})
    assert put.get_json()["data"]["address"] == "4 Jan Smuts Ave"

    vput = client.put(f"/api/vehicles/{vehicle.id}", json={"model": "FH16"})
    assert vput.get_json()["data"]["model"] == "FH16"

    gone = client.delete(f"/api/drivers/{driver.id}")
    assert gone.status_code == 200
    assert client.get(f"/api/drivers/{driver.id}").status_code == 404
