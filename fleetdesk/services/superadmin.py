# fleetdesk/services/superadmin.py
from __future__ import annotations

import secrets
import time
from datetime import timedelta

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..constants import CUSTOMER_ROLE, ROLES
from ..errors import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import (
    ACTIVE_LOAD_STATUSES,
    Company,
    CompanyStatus,
    Load,
    Profile,
    SystemLog,
    SystemSetting,
    UserInvitation,
    utcnow_naive,
)
from ..schemas import CompanyIn, CompanyUpdateIn, InvitationIn, parse_payload
from ..utils.guards import require_super_admin
from ..utils.results import ActionResult, action

INVITATION_DAYS = 7
MAINTENANCE_KEY = "maintenance_mode"
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _log(admin: Profile, message: str, component: str, level: str = "info", **details) -> None:
    """Audit row for the console; committed with the caller's transaction."""
    db.session.add(
        SystemLog(
            level=level,
            message=message,
            component=component,
            details=details or None,
            profile_id=admin.id,
        )
    )


def _get_company(company_id) -> Company:
    try:
        company = db.session.get(Company, int(company_id))
    except (TypeError, ValueError):
        company = None
    if company is None:
        raise NotFoundError("Company not found")
    return company


def _get_user(user_id) -> Profile:
    try:
        profile = db.session.get(Profile, int(user_id))
    except (TypeError, ValueError):
        profile = None
    if profile is None:
        raise NotFoundError("User not found")
    return profile


# =========================================================
# Companies
# =========================================================
@action("List companies", "Failed to load companies")
def list_companies(actor, status: str | None = None, search: str | None = None) -> ActionResult:
    require_super_admin(actor)

    query = Company.query
    if status:
        try:
            query = query.filter(Company.status == CompanyStatus(status))
        except ValueError:
            raise ValidationError("Invalid company status") from None
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(sa.or_(Company.name.ilike(like), Company.email.ilike(like)))

    user_counts = dict(
        db.session.query(Profile.company_id, sa.func.count(Profile.id))
        .filter(Profile.company_id.isnot(None))
        .group_by(Profile.company_id)
        .all()
    )

    out = []
    for company in query.order_by(Company.created_at.desc(), Company.id.desc()).all():
        row = company.to_dict()
        row["user_count"] = user_counts.get(company.id, 0)
        out.append(row)
    return ActionResult.ok(out)


@action("Create company", "Failed to create company")
def create_company(actor, payload) -> ActionResult:
    admin = require_super_admin(actor)
    data = parse_payload(CompanyIn, payload, "Invalid company data")

    company = Company(status=CompanyStatus.ACTIVE, **data.model_dump())
    db.session.add(company)
    db.session.flush()

    _log(admin, f"Company {company.name} created", "companies", company_id=company.id)
    db.session.commit()
    return ActionResult.ok(company.to_dict(), message=f"Company {company.name} created")


@action("Update company", "Failed to update company")
def update_company(actor, company_id, payload) -> ActionResult:
    admin = require_super_admin(actor)
    data = parse_payload(CompanyUpdateIn, payload, "Invalid company data")
    company = _get_company(company_id)

    changes = data.model_dump(exclude_unset=True)
    for name, value in changes.items():
        if name == "name" and value is None:
            continue
        setattr(company, name, value)

    _log(admin, f"Company {company.name} updated", "companies", company_id=company.id, fields=sorted(changes))
    db.session.commit()
    return ActionResult.ok(company.to_dict(), message="Company updated")


@action("Update company status", "Failed to update company status")
def update_company_status(actor, company_id, status) -> ActionResult:
    admin = require_super_admin(actor)
    company = _get_company(company_id)

    try:
        target = CompanyStatus(status)
    except ValueError:
        raise ValidationError("Invalid company status") from None

    previous = company.status
    company.status = target
    _log(
        admin,
        f"Company {company.name} status changed to {target.value}",
        "companies",
        level="warning" if target != CompanyStatus.ACTIVE else "info",
        company_id=company.id,
        previous=previous.value,
    )
    db.session.commit()
    return ActionResult.ok(company.to_dict(), message=f"Company status updated to {target.value}")


@action("Delete company", "Failed to delete company")
def delete_company(actor, company_id) -> ActionResult:
    admin = require_super_admin(actor)
    company = _get_company(company_id)

    active_users = Profile.query.filter_by(company_id=company.id, is_active=True).count()
    if active_users:
        raise StateConflictError("Cannot delete company with active users")

    active_loads = Load.query.filter(
        Load.company_id == company.id, Load.status.in_(ACTIVE_LOAD_STATUSES)
    ).count()
    if active_loads:
        raise StateConflictError("Cannot delete company with active loads")

    name = company.name
    db.session.delete(company)
    _log(admin, f"Company {name} deleted", "companies", level="warning", company_id=int(company_id))
    db.session.commit()
    return ActionResult.ok({"id": int(company_id)}, message=f"Company {name} deleted")


# =========================================================
# Users
# =========================================================
@action("List users", "Failed to load users")
def list_users(actor, company_id=None, role: str | None = None, search: str | None = None) -> ActionResult:
    require_super_admin(actor)

    query = Profile.query
    if company_id:
        query = query.filter(Profile.company_id == int(company_id))
    if role:
        query = query.filter(Profile.role == role)
    if search:
        like = f"%{search.strip().lower()}%"
        query = query.filter(
            sa.or_(sa.func.lower(Profile.email).like(like), sa.func.lower(Profile.full_name).like(like))
        )

    users = query.order_by(Profile.id.desc()).all()
    return ActionResult.ok([u.to_dict() for u in users])


@action("Update user role", "Failed to update user role")
def update_user_role(actor, user_id, role) -> ActionResult:
    admin = require_super_admin(actor)
    role = (role or "").strip().lower().replace("-", "_")
    if role not in ROLES:
        raise ValidationError("Invalid role")

    target = _get_user(user_id)
    if target.id == admin.id:
        raise AuthorizationError("Cannot change your own role")
    if target.role == "super_admin":
        raise AuthorizationError("Cannot change role of super admin users")
    if target.role == CUSTOMER_ROLE:
        raise AuthorizationError("Cannot change role of customer portal accounts")
    if role == "super_admin":
        raise AuthorizationError("Cannot promote users to super admin")

    previous = target.role
    target.role = role
    _log(admin, f"Role of {target.email} changed to {role}", "users", user_id=target.id, previous=previous)
    db.session.commit()
    return ActionResult.ok(target.to_dict(), message="User role updated")


@action("Update user status", "Failed to update user status")
def set_user_active(actor, user_id, is_active: bool) -> ActionResult:
    admin = require_super_admin(actor)
    target = _get_user(user_id)

    if target.id == admin.id:
        raise AuthorizationError("Cannot deactivate your own account")

    target.is_active = bool(is_active)
    if target.is_active:
        target.failed_login_attempts = 0
        target.locked_until = None

    state = "activated" if target.is_active else "deactivated"
    _log(admin, f"User {target.email} {state}", "users", user_id=target.id)
    db.session.commit()
    return ActionResult.ok(target.to_dict(), message=f"User {state}")


@action("Delete user", "Failed to delete user")
def delete_user(actor, user_id) -> ActionResult:
    admin = require_super_admin(actor)
    target = _get_user(user_id)

    if target.id == admin.id:
        raise AuthorizationError("Cannot delete your own account")
    if target.role == "super_admin":
        raise AuthorizationError("Cannot delete super admin users")

    email = target.email
    db.session.delete(target)
    _log(admin, f"User {email} deleted", "users", level="warning", user_id=int(user_id))
    db.session.commit()
    return ActionResult.ok({"id": int(user_id)}, message="User deleted")


@action("Invite user", "Failed to create invitation")
def invite_user(actor, payload) -> ActionResult:
    admin = require_super_admin(actor)
    data = parse_payload(InvitationIn, payload, "Invalid invitation")
    email = data.email.lower()

    if data.role != "super_admin":
        if data.company_id is None:
            raise ValidationError("Company is required for this role")
        _get_company(data.company_id)

    if Profile.query.filter(sa.func.lower(Profile.email) == email).first() is not None:
        raise StateConflictError("A user with this email already exists")

    invitation = UserInvitation(
        company_id=data.company_id if data.role != "super_admin" else None,
        email=email,
        role=data.role,
        token=secrets.token_urlsafe(32),
        invited_by_id=admin.id,
        expires_at=utcnow_naive() + timedelta(days=INVITATION_DAYS),
    )
    db.session.add(invitation)
    _log(admin, f"Invitation sent to {email}", "users", role=data.role, company_id=data.company_id)
    db.session.commit()
    return ActionResult.ok(invitation.to_dict(), message=f"Invitation created for {email}")


# =========================================================
# System settings / maintenance
# =========================================================
def _setting(key: str) -> SystemSetting | None:
    return SystemSetting.query.filter_by(key=key).first()


def is_maintenance_mode() -> bool:
    """Read outside any action (request hook); a broken lookup means "off"."""
    try:
        row = _setting(MAINTENANCE_KEY)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not read maintenance flag")
        return False
    return bool(row and row.value)


@action("Get system settings", "Failed to load system settings")
def get_system_settings(actor) -> ActionResult:
    require_super_admin(actor)
    rows = SystemSetting.query.order_by(SystemSetting.key.asc()).all()
    return ActionResult.ok({row.key: row.to_dict() for row in rows})


@action("Update system settings", "Failed to update system settings")
def update_system_settings(actor, payload) -> ActionResult:
    admin = require_super_admin(actor)
    if not isinstance(payload, dict) or not payload:
        raise ValidationError("No settings provided")

    for key, value in payload.items():
        key = str(key).strip()
        if not key or len(key) > 80:
            raise ValidationError("Invalid setting key")

        row = _setting(key)
        if row is None:
            row = SystemSetting(key=key)
            db.session.add(row)
        row.value = value
        row.updated_by_id = admin.id

    _log(admin, "System settings updated", "settings", keys=sorted(str(k) for k in payload))
    db.session.commit()
    return ActionResult.ok(
        {row.key: row.to_dict() for row in SystemSetting.query.order_by(SystemSetting.key.asc()).all()},
        message="Settings updated",
    )


@action("Toggle maintenance mode", "Failed to toggle maintenance mode")
def toggle_maintenance_mode(actor, enabled: bool | None = None) -> ActionResult:
    admin = require_super_admin(actor)

    row = _setting(MAINTENANCE_KEY)
    if row is None:
        row = SystemSetting(key=MAINTENANCE_KEY, value=False, description="Block non-admin traffic")
        db.session.add(row)

    new_value = (not bool(row.value)) if enabled is None else bool(enabled)
    row.value = new_value
    row.updated_by_id = admin.id

    state = "enabled" if new_value else "disabled"
    _log(admin, f"Maintenance mode {state}", "settings", level="warning")
    db.session.commit()

    current_app.logger.warning("Maintenance mode %s by %s", state, admin.email)
    return ActionResult.ok({"maintenance_mode": new_value}, message=f"Maintenance mode {state}")


# =========================================================
# Health + logs
# =========================================================
@action("Health check", "Health check failed")
def health_check(actor) -> ActionResult:
    require_super_admin(actor)

    started = time.perf_counter()
    try:
        db.session.execute(sa.text("SELECT 1"))
        database = {"status": "healthy"}
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        database = {"status": "unhealthy", "error": exc.__class__.__name__}
    database["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)

    return ActionResult.ok(
        {
            "status": "healthy" if database["status"] == "healthy" else "degraded",
            "database": database,
            "maintenance_mode": is_maintenance_mode(),
            "checked_at": utcnow_naive().isoformat(),
        }
    )


@action("System logs", "Failed to load system logs")
def list_system_logs(actor, level: str | None = None, component: str | None = None, limit: int = 100) -> ActionResult:
    require_super_admin(actor)

    query = SystemLog.query
    if level:
        if level not in LOG_LEVELS:
            raise ValidationError("Invalid log level")
        query = query.filter(SystemLog.level == level)
    if component:
        query = query.filter(SystemLog.component == component)

    limit = max(1, min(int(limit or 100), 500))
    logs = query.order_by(SystemLog.created_at.desc(), SystemLog.id.desc()).limit(limit).all()
    return ActionResult.ok([log.to_dict() for log in logs])
