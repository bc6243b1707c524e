# fleetdesk/utils/guards.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..constants import CUSTOMER_ROLE
from ..errors import AuthenticationError, AuthorizationError
from ..extensions import db
from ..models import CompanyStatus, Customer, Profile


@dataclass(frozen=True)
class TenantContext:
    profile: Profile
    company_id: int
    role: str

    @property
    def user_id(self) -> int:
        return self.profile.id

    @property
    def email(self) -> str:
        return self.profile.email


def load_profile(actor) -> Profile:
    """
    Re-read the caller's profile from the database.
    Role and company are never trusted from the session object itself.
    """
    if actor is None or not getattr(actor, "is_authenticated", False):
        raise AuthenticationError("User not authenticated")

    actor_id = getattr(actor, "id", None)
    profile = db.session.get(Profile, actor_id) if actor_id is not None else None
    if profile is None:
        raise AuthenticationError("User not authenticated")
    if not profile.is_active:
        raise AuthorizationError("Account is inactive")
    return profile


def resolve_tenant(actor, allowed_roles: Iterable[str]) -> TenantContext:
    """
    Tenant gate for every company-scoped action:
        ctx = resolve_tenant(actor, STAFF_ROLES)
        Quote.query.filter_by(company_id=ctx.company_id, id=quote_id)
    """
    profile = load_profile(actor)

    if not profile.company_id:
        raise AuthorizationError("User not associated with a company")

    company = profile.company
    if company is None or company.status != CompanyStatus.ACTIVE:
        raise AuthorizationError("Company account is not active")

    if profile.role not in set(allowed_roles):
        raise AuthorizationError("Insufficient permissions")

    return TenantContext(profile=profile, company_id=profile.company_id, role=profile.role)


def require_super_admin(actor) -> Profile:
    try:
        profile = load_profile(actor)
    except AuthorizationError:
        raise AuthorizationError("Super admin access required") from None

    if profile.role != "super_admin":
        raise AuthorizationError("Super admin access required")
    return profile


@dataclass(frozen=True)
class CustomerContext:
    profile: Profile
    customer: Customer

    @property
    def company_id(self) -> int:
        return self.customer.company_id

    @property
    def customer_id(self) -> int:
        return self.customer.id


def resolve_customer(actor) -> CustomerContext:
    """
    Gate for the customer portal. Only profiles with the customer role that
    are linked to an active customer of an active company get through;
    staff accounts are refused even when they share the customer's email.
    """
    profile = load_profile(actor)

    if profile.role != CUSTOMER_ROLE or not profile.customer_id:
        raise AuthorizationError("Customer portal access required")

    company = profile.company
    if company is None or company.status != CompanyStatus.ACTIVE:
        raise AuthorizationError("Company account is not active")

    customer = db.session.get(Customer, profile.customer_id)
    if customer is None or customer.company_id != profile.company_id or not customer.is_active:
        raise AuthorizationError("Customer account is inactive")

    return CustomerContext(profile=profile, customer=customer)
