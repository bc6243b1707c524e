# fleetdesk/models.py
from __future__ import annotations

import enum
from datetime import date, datetime, timezone

import sqlalchemy as sa
from flask_login import UserMixin
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.mutable import MutableDict

from .extensions import db


# Naive UTC everywhere: columns are "timestamp without time zone".
def utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    return utcnow_naive().date()


# jsonb on Postgres, plain JSON elsewhere (tests run on SQLite).
JSONType = sa.JSON().with_variant(JSONB(), "postgresql")

# Money columns come back as floats; arithmetic happens in services/money.py.
Money = db.Numeric(12, 2, asdecimal=False)


def _status_column(enum_cls, name: str, default):
    return db.Column(
        SAEnum(
            enum_cls,
            name=name,
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default=default,
        index=True,
    )


def _iso(value):
    if value is None:
        return None
    return value.isoformat()


def can_transition(table: dict, current, target) -> bool:
    return target in table.get(current, set())


# =========================================================
# Status enums + transition tables
# =========================================================
class CompanyStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class QuoteStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CONVERTED = "converted"


QUOTE_TRANSITIONS = {
    QuoteStatus.DRAFT: {QuoteStatus.SENT},
    QuoteStatus.SENT: {QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED},
    QuoteStatus.ACCEPTED: {QuoteStatus.CONVERTED},
    QuoteStatus.APPROVED: set(),
    QuoteStatus.REJECTED: set(),
    QuoteStatus.EXPIRED: set(),
    QuoteStatus.CONVERTED: set(),
}

QUOTE_EDITABLE = {QuoteStatus.DRAFT, QuoteStatus.SENT}


class InvoiceStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


INVOICE_TRANSITIONS = {
    InvoiceStatus.PENDING: {InvoiceStatus.PAID, InvoiceStatus.CANCELLED},
    # Rows written before overdue became display-only.
    InvoiceStatus.OVERDUE: {InvoiceStatus.PAID, InvoiceStatus.CANCELLED},
    InvoiceStatus.PAID: {InvoiceStatus.REFUNDED},
    InvoiceStatus.CANCELLED: set(),
    InvoiceStatus.REFUNDED: set(),
}


class LoadStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


LOAD_TRANSITIONS = {
    LoadStatus.PENDING: {LoadStatus.ASSIGNED, LoadStatus.CANCELLED},
    LoadStatus.ASSIGNED: {LoadStatus.IN_TRANSIT, LoadStatus.PENDING, LoadStatus.CANCELLED},
    LoadStatus.IN_TRANSIT: {LoadStatus.DELIVERED, LoadStatus.CANCELLED},
    LoadStatus.DELIVERED: set(),
    LoadStatus.CANCELLED: {LoadStatus.PENDING},
}

ACTIVE_LOAD_STATUSES = (LoadStatus.PENDING, LoadStatus.ASSIGNED, LoadStatus.IN_TRANSIT)
LOAD_EDITABLE = {LoadStatus.PENDING, LoadStatus.ASSIGNED}


class ExpenseStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DriverStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class VehicleStatus(str, enum.Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    OUT_OF_SERVICE = "out_of_service"
    RETIRED = "retired"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# =========================================================
# Company (tenant boundary)
# =========================================================
class Company(db.Model):
    __tablename__ = "company"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    email = db.Column(db.String(120), nullable=True)
    phone = db.Column(db.String(30), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    country = db.Column(db.String(80), nullable=True)
    tax_number = db.Column(db.String(60), nullable=True)

    status = _status_column(CompanyStatus, "company_status", CompanyStatus.ACTIVE)
    subscription_plan = db.Column(db.String(20), nullable=False, default="basic")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "country": self.country,
            "tax_number": self.tax_number,
            "status": self.status.value,
            "subscription_plan": self.subscription_plan,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Company {self.id} {self.name}>"


# =========================================================
# Profile (login + role + tenant membership)
# =========================================================
class Profile(UserMixin, db.Model):
    __tablename__ = "profile"

    id = db.Column(db.Integer, primary_key=True)

    # super_admin profiles may sit outside any company
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=True, index=True)
    company = db.relationship("Company", foreign_keys=[company_id], lazy="joined")

    # Set only for customer portal accounts
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id", ondelete="CASCADE"), nullable=True, index=True)
    customer = db.relationship("Customer", foreign_keys=[customer_id])

    email = db.Column(db.String(120), nullable=False)
    full_name = db.Column(db.String(160), nullable=True)
    phone = db.Column(db.String(30), nullable=True)

    password_hash = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(30), nullable=False, default="dispatcher")

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    must_change_password = db.Column(db.Boolean, nullable=False, default=False)
    failed_login_attempts = db.Column(db.Integer, nullable=False, default=0)
    locked_until = db.Column(db.DateTime, nullable=True)
    last_login_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.UniqueConstraint("email", name="profile_email_key"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "email": self.email,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": self.role,
            "customer_id": self.customer_id,
            "is_active": self.is_active,
            "last_login_at": _iso(self.last_login_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Profile {self.id} {self.email} {self.role}>"


# =========================================================
# Customer
# =========================================================
class Customer(db.Model):
    __tablename__ = "customer"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)

    name = db.Column(db.String(160), nullable=False)
    contact_person = db.Column(db.String(160), nullable=True)
    email = db.Column(db.String(120), nullable=True)
    phone = db.Column(db.String(30), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    country = db.Column(db.String(80), nullable=True)
    postal_code = db.Column(db.String(20), nullable=True)
    tax_number = db.Column(db.String(60), nullable=True)

    # Billing defaults used to prefill quotes/invoices
    currency = db.Column(db.String(3), nullable=False, default="USD")
    default_tax_rate = db.Column(db.Numeric(5, 2, asdecimal=False), nullable=False, default=0)
    payment_terms = db.Column(db.Integer, nullable=False, default=30)
    credit_limit = db.Column(Money, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "country": self.country,
            "postal_code": self.postal_code,
            "tax_number": self.tax_number,
            "currency": self.currency,
            "default_tax_rate": self.default_tax_rate,
            "payment_terms": self.payment_terms,
            "credit_limit": self.credit_limit,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Customer {self.id} {self.name}>"


# =========================================================
# Fleet: drivers + vehicles
# =========================================================
class Driver(db.Model):
    __tablename__ = "driver"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)

    # Login account of the driver (role "driver"), if they have one
    profile_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True, unique=True)
    profile = db.relationship("Profile", foreign_keys=[profile_id], lazy="joined")

    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)
    phone = db.Column(db.String(30), nullable=True)
    email = db.Column(db.String(120), nullable=True)
    license_number = db.Column(db.String(60), nullable=True)
    license_expiry = db.Column(db.Date, nullable=True)
    address = db.Column(db.String(255), nullable=True)
    emergency_contact_name = db.Column(db.String(160), nullable=True)
    emergency_contact_phone = db.Column(db.String(30), nullable=True)

    status = _status_column(DriverStatus, "driver_status", DriverStatus.ACTIVE)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=utcnow_naive)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "profile_id": self.profile_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "email": self.email,
            "license_number": self.license_number,
            "license_expiry": _iso(self.license_expiry),
            "address": self.address,
            "emergency_contact_name": self.emergency_contact_name,
            "emergency_contact_phone": self.emergency_contact_phone,
            "status": self.status.value,
        }


class Vehicle(db.Model):
    __tablename__ = "vehicle"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)

    registration_number = db.Column(db.String(30), nullable=False)
    make = db.Column(db.String(60), nullable=True)
    model = db.Column(db.String(60), nullable=True)
    year = db.Column(db.Integer, nullable=True)
    vehicle_type = db.Column(db.String(40), nullable=True)
    capacity_kg = db.Column(db.Float, nullable=True)

    status = _status_column(VehicleStatus, "vehicle_status", VehicleStatus.ACTIVE)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=utcnow_naive)

    __table_args__ = (
        db.UniqueConstraint("company_id", "registration_number", name="uq_vehicle_company_registration"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "registration_number": self.registration_number,
            "make": self.make,
            "model": self.model,
            "year": self.year,
            "vehicle_type": self.vehicle_type,
            "capacity_kg": self.capacity_kg,
            "status": self.status.value,
        }


# =========================================================
# Load (shipment)
# =========================================================
class Load(db.Model):
    __tablename__ = "load"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False, index=True)
    customer = db.relationship("Customer", foreign_keys=[customer_id], lazy="joined")

    quote_id = db.Column(db.Integer, db.ForeignKey("quote.id", ondelete="SET NULL"), nullable=True)

    load_number = db.Column(db.String(40), nullable=False)
    status = _status_column(LoadStatus, "load_status", LoadStatus.PENDING)

    pickup_address = db.Column(db.String(255), nullable=False)
    pickup_city = db.Column(db.String(120), nullable=True)
    pickup_date = db.Column(db.Date, nullable=True)
    delivery_address = db.Column(db.String(255), nullable=False)
    delivery_city = db.Column(db.String(120), nullable=True)
    delivery_date = db.Column(db.Date, nullable=True)

    cargo_description = db.Column(db.Text, nullable=True)
    weight_kg = db.Column(db.Float, nullable=True)
    rate = db.Column(Money, nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    notes = db.Column(db.Text, nullable=True)

    assigned_driver_id = db.Column(db.Integer, db.ForeignKey("driver.id", ondelete="SET NULL"), nullable=True, index=True)
    driver = db.relationship("Driver", foreign_keys=[assigned_driver_id], lazy="joined")

    assigned_vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicle.id", ondelete="SET NULL"), nullable=True)
    vehicle = db.relationship("Vehicle", foreign_keys=[assigned_vehicle_id], lazy="joined")

    delivered_at = db.Column(db.DateTime, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    tracking = db.relationship(
        "LoadTracking",
        back_populates="load",
        cascade="all, delete-orphan",
        order_by="[LoadTracking.recorded_at, LoadTracking.id]",
        lazy="select",
    )

    __table_args__ = (
        db.UniqueConstraint("company_id", "load_number", name="uq_load_company_number"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "quote_id": self.quote_id,
            "load_number": self.load_number,
            "status": self.status.value,
            "pickup_address": self.pickup_address,
            "pickup_city": self.pickup_city,
            "pickup_date": _iso(self.pickup_date),
            "delivery_address": self.delivery_address,
            "delivery_city": self.delivery_city,
            "delivery_date": _iso(self.delivery_date),
            "cargo_description": self.cargo_description,
            "weight_kg": self.weight_kg,
            "rate": self.rate,
            "currency": self.currency,
            "notes": self.notes,
            "assigned_driver_id": self.assigned_driver_id,
            "assigned_vehicle_id": self.assigned_vehicle_id,
            "delivered_at": _iso(self.delivered_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Load {self.id} {self.load_number} {self.status}>"


class LoadTracking(db.Model):
    __tablename__ = "load_tracking"

    id = db.Column(db.Integer, primary_key=True)
    load_id = db.Column(db.Integer, db.ForeignKey("load.id", ondelete="CASCADE"), nullable=False, index=True)
    load = db.relationship("Load", back_populates="tracking")

    status = db.Column(db.String(30), nullable=True)
    location = db.Column(db.String(255), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    recorded_by_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True)
    recorded_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "load_id": self.load_id,
            "status": self.status,
            "location": self.location,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "notes": self.notes,
            "recorded_at": _iso(self.recorded_at),
        }


# =========================================================
# Line items (shared shape for quotes + invoices)
# =========================================================
class _LineItemMixin:
    id = db.Column(db.Integer, primary_key=True)
    line_number = db.Column(db.Integer, nullable=False, default=1)
    description = db.Column(db.String(255), nullable=False)
    quantity = db.Column(Money, nullable=False, default=1)
    unit_price = db.Column(Money, nullable=False, default=0)
    line_total = db.Column(Money, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_total": self.line_total,
        }


# =========================================================
# Quote
# =========================================================
class Quote(db.Model):
    __tablename__ = "quote"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False, index=True)
    customer = db.relationship("Customer", foreign_keys=[customer_id], lazy="joined")

    load_id = db.Column(db.Integer, db.ForeignKey("load.id", ondelete="SET NULL", use_alter=True, name="fk_quote_load"), nullable=True)

    quote_number = db.Column(db.String(40), nullable=False)
    status = _status_column(QuoteStatus, "quote_status", QuoteStatus.DRAFT)

    currency = db.Column(db.String(3), nullable=False, default="USD")
    tax_rate = db.Column(db.Numeric(5, 2, asdecimal=False), nullable=False, default=0)
    subtotal = db.Column(Money, nullable=False, default=0)
    tax_amount = db.Column(Money, nullable=False, default=0)
    total_amount = db.Column(Money, nullable=False, default=0)

    valid_until = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    terms = db.Column(db.Text, nullable=True)

    sent_at = db.Column(db.DateTime, nullable=True)
    accepted_at = db.Column(db.DateTime, nullable=True)
    rejected_at = db.Column(db.DateTime, nullable=True)

    converted_to_invoice_id = db.Column(
        db.Integer, db.ForeignKey("invoice.id", ondelete="SET NULL", use_alter=True, name="fk_quote_converted_invoice"), nullable=True
    )
    converted_load_id = db.Column(
        db.Integer, db.ForeignKey("load.id", ondelete="SET NULL", use_alter=True, name="fk_quote_converted_load"), nullable=True
    )

    created_by_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    items = db.relationship(
        "QuoteItem",
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteItem.line_number",
        lazy="select",
    )

    __table_args__ = (
        db.UniqueConstraint("company_id", "quote_number", name="uq_quote_company_number"),
    )

    def display_status(self, today: date | None = None) -> QuoteStatus:
        """A sent quote past valid_until reads as expired; nothing is persisted."""
        today = today or utc_today()
        if self.status == QuoteStatus.SENT and self.valid_until and self.valid_until < today:
            return QuoteStatus.EXPIRED
        return self.status

    def to_dict(self, with_items: bool = True) -> dict:
        out = {
            "id": self.id,
            "company_id": self.company_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "load_id": self.load_id,
            "quote_number": self.quote_number,
            "status": self.status.value,
            "display_status": self.display_status().value,
            "currency": self.currency,
            "tax_rate": self.tax_rate,
            "subtotal": self.subtotal,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
            "valid_until": _iso(self.valid_until),
            "notes": self.notes,
            "terms": self.terms,
            "sent_at": _iso(self.sent_at),
            "accepted_at": _iso(self.accepted_at),
            "rejected_at": _iso(self.rejected_at),
            "converted_to_invoice_id": self.converted_to_invoice_id,
            "converted_load_id": self.converted_load_id,
            "created_at": _iso(self.created_at),
        }
        if with_items:
            out["items"] = [item.to_dict() for item in self.items]
        return out

    def __repr__(self) -> str:
        return f"<Quote {self.id} {self.quote_number} {self.status}>"


class QuoteItem(_LineItemMixin, db.Model):
    __tablename__ = "quote_item"

    quote_id = db.Column(db.Integer, db.ForeignKey("quote.id", ondelete="CASCADE"), nullable=False, index=True)
    quote = db.relationship("Quote", back_populates="items")


# =========================================================
# Invoice
# =========================================================
class Invoice(db.Model):
    __tablename__ = "invoice"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False, index=True)
    customer = db.relationship("Customer", foreign_keys=[customer_id], lazy="joined")

    quote_id = db.Column(db.Integer, db.ForeignKey("quote.id", ondelete="SET NULL"), nullable=True)
    source_load_id = db.Column(db.Integer, db.ForeignKey("load.id", ondelete="SET NULL"), nullable=True)

    invoice_number = db.Column(db.String(40), nullable=False)
    status = _status_column(InvoiceStatus, "invoice_status", InvoiceStatus.PENDING)

    currency = db.Column(db.String(3), nullable=False, default="USD")
    tax_rate = db.Column(db.Numeric(5, 2, asdecimal=False), nullable=False, default=0)
    subtotal = db.Column(Money, nullable=False, default=0)
    tax_amount = db.Column(Money, nullable=False, default=0)
    total_amount = db.Column(Money, nullable=False, default=0)

    issue_date = db.Column(db.Date, nullable=False, default=utc_today)
    due_date = db.Column(db.Date, nullable=True)
    paid_date = db.Column(db.DateTime, nullable=True)
    paid_amount = db.Column(Money, nullable=True)
    refunded_amount = db.Column(Money, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    terms = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.line_number",
        lazy="select",
    )

    __table_args__ = (
        db.UniqueConstraint("company_id", "invoice_number", name="uq_invoice_company_number"),
    )

    def display_status(self, today: date | None = None) -> InvoiceStatus:
        """Pending past due_date reads as overdue; nothing is persisted."""
        today = today or utc_today()
        if self.status == InvoiceStatus.PENDING and self.due_date and self.due_date < today:
            return InvoiceStatus.OVERDUE
        return self.status

    def to_dict(self, with_items: bool = True) -> dict:
        out = {
            "id": self.id,
            "company_id": self.company_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "quote_id": self.quote_id,
            "source_load_id": self.source_load_id,
            "invoice_number": self.invoice_number,
            "status": self.status.value,
            "display_status": self.display_status().value,
            "currency": self.currency,
            "tax_rate": self.tax_rate,
            "subtotal": self.subtotal,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
            "issue_date": _iso(self.issue_date),
            "due_date": _iso(self.due_date),
            "paid_date": _iso(self.paid_date),
            "paid_amount": self.paid_amount,
            "refunded_amount": self.refunded_amount,
            "notes": self.notes,
            "terms": self.terms,
            "created_at": _iso(self.created_at),
        }
        if with_items:
            out["items"] = [item.to_dict() for item in self.items]
        return out

    def __repr__(self) -> str:
        return f"<Invoice {self.id} {self.invoice_number} {self.status}>"


class InvoiceItem(_LineItemMixin, db.Model):
    __tablename__ = "invoice_item"

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoice.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice = db.relationship("Invoice", back_populates="items")


# =========================================================
# Payments
# =========================================================
class PaymentMethod(db.Model):
    __tablename__ = "payment_method"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id", ondelete="CASCADE"), nullable=False, index=True)

    method_type = db.Column(db.String(30), nullable=False)  # card, bank_account, mobile_money
    label = db.Column(db.String(120), nullable=True)
    provider = db.Column(db.String(60), nullable=True)
    last_four = db.Column(db.String(4), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "method_type": self.method_type,
            "label": self.label,
            "provider": self.provider,
            "last_four": self.last_four,
            "is_default": self.is_default,
            "is_active": self.is_active,
        }


class PaymentTransaction(db.Model):
    __tablename__ = "payment_transaction"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoice.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice = db.relationship("Invoice", foreign_keys=[invoice_id], lazy="joined")

    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_method.id", ondelete="SET NULL"), nullable=True)
    parent_transaction_id = db.Column(db.Integer, db.ForeignKey("payment_transaction.id"), nullable=True)

    transaction_reference = db.Column(db.String(60), nullable=False, unique=True)
    transaction_type = db.Column(db.String(20), nullable=False, default="payment")  # payment, refund
    amount = db.Column(Money, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    status = _status_column(TransactionStatus, "transaction_status", TransactionStatus.PENDING)
    gateway_response = db.Column(MutableDict.as_mutable(JSONType), nullable=True)
    failure_reason = db.Column(db.String(255), nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "payment_method_id": self.payment_method_id,
            "parent_transaction_id": self.parent_transaction_id,
            "transaction_reference": self.transaction_reference,
            "transaction_type": self.transaction_type,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status.value,
            "failure_reason": self.failure_reason,
            "processed_at": _iso(self.processed_at),
            "created_at": _iso(self.created_at),
        }


# =========================================================
# Expense
# =========================================================
class Expense(db.Model):
    __tablename__ = "expense"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)

    submitted_by_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True, index=True)

    load_id = db.Column(db.Integer, db.ForeignKey("load.id", ondelete="SET NULL"), nullable=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicle.id", ondelete="SET NULL"), nullable=True)

    category = db.Column(db.String(30), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(Money, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    expense_date = db.Column(db.Date, nullable=False, default=utc_today)
    vendor = db.Column(db.String(160), nullable=True)

    status = _status_column(ExpenseStatus, "expense_status", ExpenseStatus.PENDING)

    receipt_key = db.Column(db.String(500), nullable=True)
    receipt_sha256 = db.Column(db.String(64), nullable=True)
    receipt_content_type = db.Column(db.String(60), nullable=True)

    reviewed_by_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    review_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "submitted_by_id": self.submitted_by_id,
            "load_id": self.load_id,
            "vehicle_id": self.vehicle_id,
            "category": self.category,
            "description": self.description,
            "amount": self.amount,
            "currency": self.currency,
            "expense_date": _iso(self.expense_date),
            "vendor": self.vendor,
            "status": self.status.value,
            "receipt_key": self.receipt_key,
            "reviewed_by_id": self.reviewed_by_id,
            "reviewed_at": _iso(self.reviewed_at),
            "review_notes": self.review_notes,
            "created_at": _iso(self.created_at),
        }


# =========================================================
# Company documents (PODs, permits, customs papers, ...)
# =========================================================
class Document(db.Model):
    __tablename__ = "document"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)

    load_id = db.Column(db.Integer, db.ForeignKey("load.id", ondelete="SET NULL"), nullable=True, index=True)
    load = db.relationship("Load", foreign_keys=[load_id])
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoice.id", ondelete="SET NULL"), nullable=True, index=True)
    invoice = db.relationship("Invoice", foreign_keys=[invoice_id])
    quote_id = db.Column(db.Integer, db.ForeignKey("quote.id", ondelete="SET NULL"), nullable=True, index=True)
    quote = db.relationship("Quote", foreign_keys=[quote_id])

    document_type = db.Column(db.String(20), nullable=False, index=True)
    file_name = db.Column(db.String(255), nullable=False)
    storage_key = db.Column(db.String(512), nullable=False)
    file_size = db.Column(db.Integer, nullable=False, default=0)
    mime_type = db.Column(db.String(120), nullable=True)
    sha256 = db.Column(db.String(64), nullable=True)

    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True)
    uploaded_by = db.relationship("Profile", foreign_keys=[uploaded_by_id])

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "document_type": self.document_type,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "sha256": self.sha256,
            "load_id": self.load_id,
            "load_number": self.load.load_number if self.load else None,
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice.invoice_number if self.invoice else None,
            "quote_id": self.quote_id,
            "quote_number": self.quote.quote_number if self.quote else None,
            "uploaded_by_id": self.uploaded_by_id,
            "uploaded_by_name": self.uploaded_by.full_name if self.uploaded_by else None,
            "created_at": _iso(self.created_at),
        }


# =========================================================
# Customer ratings
# =========================================================
class CustomerRating(db.Model):
    __tablename__ = "customer_rating"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id", ondelete="CASCADE"), nullable=False, index=True)
    customer = db.relationship("Customer", foreign_keys=[customer_id], lazy="joined")
    load_id = db.Column(db.Integer, db.ForeignKey("load.id", ondelete="SET NULL"), nullable=True)
    load = db.relationship("Load", foreign_keys=[load_id])

    rating = db.Column(db.Integer, nullable=False)
    feedback = db.Column(db.Text, nullable=True)
    # aspect name -> 1..5
    service_aspects = db.Column(MutableDict.as_mutable(JSONType), nullable=True)
    is_anonymous = db.Column(db.Boolean, nullable=False, default=False)

    company_response = db.Column(db.Text, nullable=True)
    responded_at = db.Column(db.DateTime, nullable=True)
    responded_by_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.UniqueConstraint("customer_id", "load_id", name="uq_customer_rating_load"),
        db.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_customer_rating_range"),
    )

    def to_dict(self, for_staff: bool = True) -> dict:
        hide_name = for_staff and self.is_anonymous
        return {
            "id": self.id,
            "customer_id": None if hide_name else self.customer_id,
            "customer_name": None if hide_name else (self.customer.name if self.customer else None),
            "load_id": self.load_id,
            "load_number": self.load.load_number if self.load else None,
            "rating": self.rating,
            "feedback": self.feedback,
            "service_aspects": dict(self.service_aspects or {}),
            "is_anonymous": self.is_anonymous,
            "company_response": self.company_response,
            "responded_at": _iso(self.responded_at),
            "created_at": _iso(self.created_at),
        }


# =========================================================
# Feature toggles (per company)
# =========================================================
class FeatureToggle(db.Model):
    __tablename__ = "feature_toggle"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)
    feature_name = db.Column(db.String(60), nullable=False)
    is_enabled = db.Column(db.Boolean, nullable=False, default=False)
    enabled_at = db.Column(db.DateTime, nullable=True)
    disabled_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.UniqueConstraint("company_id", "feature_name", name="uq_feature_toggle_company_feature"),
    )

    def to_dict(self) -> dict:
        return {
            "feature_name": self.feature_name,
            "enabled": self.is_enabled,
            "enabled_at": _iso(self.enabled_at),
            "disabled_at": _iso(self.disabled_at),
        }


# =========================================================
# Fleet onboarding applications
# =========================================================
class FleetApplication(db.Model):
    __tablename__ = "fleet_application"

    id = db.Column(db.Integer, primary_key=True)
    application_number = db.Column(db.String(40), nullable=False, unique=True)

    company_name = db.Column(db.String(160), nullable=False)
    contact_person = db.Column(db.String(160), nullable=False)
    email = db.Column(db.String(120), nullable=False, index=True)
    phone = db.Column(db.String(30), nullable=False)
    country = db.Column(db.String(80), nullable=False)
    city = db.Column(db.String(120), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    fleet_size = db.Column(db.Integer, nullable=True)
    business_registration_number = db.Column(db.String(80), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = _status_column(ApplicationStatus, "application_status", ApplicationStatus.PENDING)
    rejection_reason = db.Column(db.Text, nullable=True)

    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="SET NULL"), nullable=True)
    reviewed_by_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "application_number": self.application_number,
            "company_name": self.company_name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "country": self.country,
            "city": self.city,
            "address": self.address,
            "fleet_size": self.fleet_size,
            "business_registration_number": self.business_registration_number,
            "status": self.status.value,
            "rejection_reason": self.rejection_reason,
            "company_id": self.company_id,
            "reviewed_at": _iso(self.reviewed_at),
            "created_at": _iso(self.created_at),
        }


# =========================================================
# Super-admin: invitations, settings, logs
# =========================================================
class UserInvitation(db.Model):
    __tablename__ = "user_invitation"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=True, index=True)
    email = db.Column(db.String(120), nullable=False)
    role = db.Column(db.String(30), nullable=False)
    token = db.Column(db.String(128), nullable=False, unique=True)

    invited_by_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    accepted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "email": self.email,
            "role": self.role,
            "token": self.token,
            "expires_at": _iso(self.expires_at),
            "accepted_at": _iso(self.accepted_at),
        }


class SystemSetting(db.Model):
    __tablename__ = "system_setting"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(80), nullable=False, unique=True)
    value = db.Column(JSONType, nullable=True)
    description = db.Column(db.String(255), nullable=True)

    updated_by_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value": self.value,
            "description": self.description,
            "updated_at": _iso(self.updated_at),
        }


class SystemLog(db.Model):
    __tablename__ = "system_log"

    id = db.Column(db.Integer, primary_key=True)
    level = db.Column(db.String(10), nullable=False, default="info", index=True)
    message = db.Column(db.Text, nullable=False)
    component = db.Column(db.String(60), nullable=True)
    details = db.Column(MutableDict.as_mutable(JSONType), nullable=True)

    profile_id = db.Column(db.Integer, db.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "level": self.level,
            "message": self.message,
            "component": self.component,
            "details": dict(self.details or {}),
            "profile_id": self.profile_id,
            "created_at": _iso(self.created_at),
        }


# =========================================================
# Document numbering counters
# =========================================================
class DocumentSequence(db.Model):
    __tablename__ = "document_sequence"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id", ondelete="CASCADE"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id", ondelete="CASCADE"), nullable=False)
    doc_type = db.Column(db.String(20), nullable=False)
    last_value = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint("company_id", "customer_id", "doc_type", name="uq_document_sequence_scope"),
    )
