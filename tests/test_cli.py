# tests/test_cli.py
from __future__ import annotations

from fleetdesk.cli import create_super_admin
from fleetdesk.models import Profile
from fleetdesk.utils.passwords import verify_password


def test_create_super_admin(app):
    runner = app.test_cli_runner()
    result = runner.invoke(
        create_super_admin, ["--email", "Root@FleetDesk.co.za", "--password", "Adm1n!Passw0rd"]
    )

    assert result.exit_code == 0, result.output
    assert "Super admin ready: root@fleetdesk.co.za" in result.output
    profile = Profile.query.filter_by(email="root@fleetdesk.co.za").one()
    assert profile.role == "super_admin"
    assert profile.company_id is None
    assert verify_password(profile.password_hash, "Adm1n!Passw0rd")


def test_reset_existing_profile(app, dispatcher):
    runner = app.test_cli_runner()
    result = runner.invoke(create_super_admin, ["--email", dispatcher.email, "--password", "Adm1n!Passw0rd"])

    assert "Resetting existing profile" in result.output
    profile = Profile.query.filter_by(email=dispatcher.email).one()
    assert profile.role == "super_admin"
    assert profile.company_id is None


def test_weak_password_refused(app):
    result = app.test_cli_runner().invoke(create_super_admin, ["--email", "a@fleetdesk.co.za", "--password", "weak"])
    assert result.exit_code != 0
    assert Profile.query.count() == 0
