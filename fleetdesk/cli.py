# fleetdesk/cli.py
from __future__ import annotations

import click
from flask.cli import with_appcontext
from sqlalchemy import func

from .extensions import db
from .models import Profile
from .utils.passwords import hash_password, validate_password


@click.command("create-super-admin")
@click.option("--email", prompt=True)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--name", default="Platform Super Admin", show_default=True)
@with_appcontext
def create_super_admin(email: str, password: str, name: str) -> None:
    """Create (or reset) a super_admin profile outside any company."""
    email = email.strip().lower()

    ok, message = validate_password(password)
    if not ok:
        raise click.BadParameter(message, param_hint="--password")

    profile = Profile.query.filter(func.lower(Profile.email) == email).first()
    if profile is None:
        profile = Profile(email=email)
        db.session.add(profile)
        click.echo(f"Creating super admin {email}")
    else:
        click.echo(f"Resetting existing profile {email} to super admin")

    profile.full_name = name
    profile.role = "super_admin"
    profile.company_id = None
    profile.is_active = True
    profile.must_change_password = False
    profile.failed_login_attempts = 0
    profile.locked_until = None
    profile.password_hash = hash_password(password)

    db.session.commit()
    click.echo(f"Super admin ready: {email}")
