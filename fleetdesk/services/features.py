# fleetdesk/services/features.py
from __future__ import annotations

from flask import current_app

from ..constants import FEATURES, STAFF_ROLES, SUBSCRIPTION_PLANS
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Company, FeatureToggle, SystemLog, utcnow_naive
from ..utils.guards import load_profile, require_super_admin, resolve_tenant
from ..utils.results import ActionResult, action

_READ_ROLES = STAFF_ROLES | {"driver"}


def plan_features(plan: str) -> set[str]:
    """Feature names switched on by a subscription plan."""
    if plan in ("premium", "trial"):
        return set(FEATURES)
    return {name for name, on_basic in FEATURES.items() if on_basic}


def feature_enabled(company_id: int, feature_name: str) -> bool:
    """
    Stored toggle wins; a company with no row for the feature
    falls back to the basic plan default.
    """
    row = FeatureToggle.query.filter_by(company_id=company_id, feature_name=feature_name).first()
    if row is not None:
        return row.is_enabled
    return FEATURES.get(feature_name, False)


def _set_toggle(company_id: int, feature_name: str, enabled: bool) -> FeatureToggle:
    row = FeatureToggle.query.filter_by(company_id=company_id, feature_name=feature_name).first()
    if row is None:
        row = FeatureToggle(company_id=company_id, feature_name=feature_name)
        db.session.add(row)
    elif row.is_enabled == enabled:
        return row

    now = utcnow_naive()
    row.is_enabled = enabled
    row.enabled_at = now if enabled else None
    row.disabled_at = None if enabled else now
    return row


def initialize_company_features(company_id: int, plan: str = "basic") -> None:
    """Add the plan's defaults for any feature the company has no row for. Caller commits."""
    enabled = plan_features(plan)
    existing = {
        name for (name,) in db.session.query(FeatureToggle.feature_name).filter_by(company_id=company_id)
    }
    now = utcnow_naive()
    for name in FEATURES:
        if name in existing:
            continue
        on = name in enabled
        db.session.add(
            FeatureToggle(company_id=company_id, feature_name=name, is_enabled=on, enabled_at=now if on else None)
        )


def _target_company(actor, company_id, roles) -> int:
    profile = load_profile(actor)
    if profile.role == "super_admin":
        target = company_id or profile.company_id
        if not target:
            raise ValidationError("Company is required")
        if db.session.get(Company, int(target)) is None:
            raise NotFoundError("Company not found")
        return int(target)

    ctx = resolve_tenant(actor, roles)
    if company_id and int(company_id) != ctx.company_id:
        raise AuthorizationError("Insufficient permissions")
    return ctx.company_id


# =========================================================
# Reads
# =========================================================
@action("Get company features", "Failed to fetch features")
def get_company_features(actor, company_id=None) -> ActionResult:
    target = _target_company(actor, company_id, _READ_ROLES)

    stored = {row.feature_name: row for row in FeatureToggle.query.filter_by(company_id=target)}
    features = {}
    for name, on_basic in FEATURES.items():
        row = stored.get(name)
        if row is None:
            features[name] = {"enabled": on_basic, "enabled_at": None, "disabled_at": None}
        else:
            features[name] = {k: v for k, v in row.to_dict().items() if k != "feature_name"}
    return ActionResult.ok(features)


# =========================================================
# Writes
# =========================================================
@action("Toggle feature", "Failed to toggle feature")
def toggle_feature(actor, feature_name, enabled, company_id=None) -> ActionResult:
    target = _target_company(actor, company_id, {"company_admin"})

    if feature_name not in FEATURES:
        raise ValidationError("Unknown feature")
    if not isinstance(enabled, bool):
        raise ValidationError("enabled must be true or false")

    row = _set_toggle(target, feature_name, enabled)
    db.session.commit()

    state = "enabled" if enabled else "disabled"
    current_app.logger.info("Feature %s %s for company %s", feature_name, state, target)
    return ActionResult.ok(row.to_dict(), message=f"Feature {feature_name} {state} successfully")


@action("Apply subscription plan", "Failed to update subscription features")
def apply_subscription_plan(actor, company_id, plan) -> ActionResult:
    admin = require_super_admin(actor)
    plan = (plan or "").strip().lower()
    if plan not in SUBSCRIPTION_PLANS:
        raise ValidationError("Invalid subscription plan")

    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFoundError("Company not found")

    enabled = plan_features(plan)
    for name in FEATURES:
        _set_toggle(company.id, name, name in enabled)

    previous = company.subscription_plan
    company.subscription_plan = plan
    db.session.add(
        SystemLog(
            level="info",
            message=f"Subscription plan of {company.name} changed to {plan}",
            component="features",
            details={"company_id": company.id, "previous": previous},
            profile_id=admin.id,
        )
    )
    db.session.commit()

    return ActionResult.ok(
        {"company_id": company.id, "plan": plan, "enabled": sorted(enabled)},
        message=f"Features updated for {plan} subscription plan",
    )
