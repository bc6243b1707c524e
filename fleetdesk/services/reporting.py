# fleetdesk/services/reporting.py
from __future__ import annotations

from datetime import timedelta

import sqlalchemy as sa

from ..constants import STAFF_ROLES
from ..extensions import db
from ..models import (
    ApplicationStatus,
    Company,
    CompanyStatus,
    Customer,
    Driver,
    DriverStatus,
    Expense,
    ExpenseStatus,
    FleetApplication,
    Invoice,
    InvoiceStatus,
    Load,
    LoadStatus,
    PaymentTransaction,
    Profile,
    Quote,
    QuoteStatus,
    TransactionStatus,
    Vehicle,
    VehicleStatus,
    utc_today,
    utcnow_naive,
)
from ..utils.guards import require_super_admin, resolve_tenant
from ..utils.results import ActionResult, action
from .money import round2


def _counts(column, *filters) -> dict:
    rows = db.session.query(column, sa.func.count()).filter(*filters).group_by(column).all()
    return {getattr(key, "value", key): count for key, count in rows}


def _sum(column, *filters) -> float:
    total = db.session.query(sa.func.coalesce(sa.func.sum(column), 0)).filter(*filters).scalar()
    return float(round2(total or 0))


# =========================================================
# Company dashboard
# =========================================================
@action("Company dashboard", "Failed to load dashboard")
def company_dashboard(actor) -> ActionResult:
    ctx = resolve_tenant(actor, STAFF_ROLES)
    company_id = ctx.company_id
    today = utc_today()

    loads = {s.value: 0 for s in LoadStatus}
    loads.update(_counts(Load.status, Load.company_id == company_id))

    # Quote pipeline uses display statuses: sent past valid_until counts as expired.
    quotes = {s.value: 0 for s in QuoteStatus}
    quotes.update(_counts(Quote.status, Quote.company_id == company_id))
    stale = Quote.query.filter(
        Quote.company_id == company_id,
        Quote.status == QuoteStatus.SENT,
        Quote.valid_until.isnot(None),
        Quote.valid_until < today,
    ).count()
    quotes[QuoteStatus.SENT.value] -= stale
    quotes[QuoteStatus.EXPIRED.value] += stale

    pending = sa.and_(Invoice.company_id == company_id, Invoice.status.in_([InvoiceStatus.PENDING, InvoiceStatus.OVERDUE]))
    overdue_clause = sa.or_(
        Invoice.status == InvoiceStatus.OVERDUE,
        sa.and_(Invoice.due_date.isnot(None), Invoice.due_date < today),
    )

    revenue = {
        "paid_total": _sum(Invoice.total_amount, Invoice.company_id == company_id, Invoice.status == InvoiceStatus.PAID),
        "outstanding_total": _sum(Invoice.total_amount, pending),
        "overdue_total": _sum(Invoice.total_amount, pending, overdue_clause),
        "overdue_count": Invoice.query.filter(pending, overdue_clause).count(),
    }

    month_start = today.replace(day=1)
    revenue["paid_this_month"] = _sum(
        Invoice.total_amount,
        Invoice.company_id == company_id,
        Invoice.status == InvoiceStatus.PAID,
        Invoice.paid_date >= month_start,
    )

    expenses = {s.value: 0.0 for s in ExpenseStatus}
    for status, total in (
        db.session.query(Expense.status, sa.func.coalesce(sa.func.sum(Expense.amount), 0))
        .filter(Expense.company_id == company_id)
        .group_by(Expense.status)
        .all()
    ):
        expenses[status.value] = float(round2(total or 0))

    fleet = {
        "customers": Customer.query.filter_by(company_id=company_id, is_active=True).count(),
        "active_drivers": Driver.query.filter_by(company_id=company_id, status=DriverStatus.ACTIVE).count(),
        "active_vehicles": Vehicle.query.filter_by(company_id=company_id, status=VehicleStatus.ACTIVE).count(),
    }

    return ActionResult.ok(
        {
            "loads": loads,
            "quotes": quotes,
            "revenue": revenue,
            "expenses": expenses,
            "fleet": fleet,
            "generated_at": utcnow_naive().isoformat(),
        }
    )


# =========================================================
# System analytics (super admin)
# =========================================================
@action("System analytics", "Failed to load analytics")
def system_analytics(actor, days: int = 30) -> ActionResult:
    require_super_admin(actor)
    since = utcnow_naive() - timedelta(days=max(1, int(days or 30)))

    companies = {s.value: 0 for s in CompanyStatus}
    companies.update(_counts(Company.status))

    applications = {s.value: 0 for s in ApplicationStatus}
    applications.update(_counts(FleetApplication.status))

    users = _counts(Profile.role)

    return ActionResult.ok(
        {
            "companies": companies,
            "companies_total": sum(companies.values()),
            "users_by_role": users,
            "users_total": sum(users.values()),
            "active_users": Profile.query.filter_by(is_active=True).count(),
            "loads_total": Load.query.count(),
            "loads_recent": Load.query.filter(Load.created_at >= since).count(),
            "invoices_total": Invoice.query.count(),
            "payments_completed": PaymentTransaction.query.filter_by(
                transaction_type="payment", status=TransactionStatus.COMPLETED
            ).count(),
            "payments_volume": _sum(
                PaymentTransaction.amount,
                PaymentTransaction.transaction_type == "payment",
                PaymentTransaction.status == TransactionStatus.COMPLETED,
            ),
            "applications": applications,
            "window_days": max(1, int(days or 30)),
        }
    )
