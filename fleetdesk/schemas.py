# fleetdesk/schemas.py
from __future__ import annotations

from datetime import date
from typing import Annotated, Any, List, Literal, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)

from .constants import CURRENCIES, DEFAULT_CURRENCY, DOCUMENT_TYPES, EXPENSE_CATEGORIES, ROLES
from .errors import ValidationError
from .services.money import fits_cents


def _currency(value: str) -> str:
    code = value.upper()
    if code not in CURRENCIES:
        raise ValueError(f"Unsupported currency {value!r}")
    return code


def _expense_category(value: str) -> str:
    if value not in EXPENSE_CATEGORIES:
        raise ValueError(f"Unknown expense category {value!r}")
    return value


def _role(value: str) -> str:
    role = value.strip().lower().replace("-", "_")
    if role not in ROLES:
        raise ValueError("Invalid role")
    return role


def _document_type(value: str) -> str:
    if value not in DOCUMENT_TYPES:
        raise ValueError(f"Unknown document type {value!r}")
    return value


def _two_places(value: float) -> float:
    # Numeric(.., 2) columns; anything finer would be rounded on write
    if not fits_cents(value):
        raise ValueError("At most two decimal places are allowed")
    return value


Currency = Annotated[str, AfterValidator(_currency)]
TaxRate = Annotated[float, Field(ge=0, le=100), AfterValidator(_two_places)]
Quantity = Annotated[float, Field(gt=0), AfterValidator(_two_places)]
UnitPrice = Annotated[float, Field(ge=0), AfterValidator(_two_places)]
Text = Annotated[str, Field(min_length=1)]
Role = Annotated[str, AfterValidator(_role)]


class _Payload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


def parse_payload(schema: type[_Payload], data: Any, message: str):
    """Validate `data`; field-level details go to the log, callers see `message`."""
    try:
        return schema.model_validate(data if data is not None else {})
    except PydanticValidationError as exc:
        raise ValidationError(message, details=exc.errors(include_url=False, include_context=False)) from None


# =========================================================
# Line items
# =========================================================
class LineItemIn(_Payload):
    description: Text
    quantity: Quantity
    unit_price: UnitPrice


# =========================================================
# Customers
# =========================================================
class CustomerIn(_Payload):
    name: Text
    contact_person: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    tax_number: Optional[str] = None
    currency: Currency = DEFAULT_CURRENCY
    default_tax_rate: TaxRate = 0
    payment_terms: int = Field(default=30, ge=0, le=365)
    credit_limit: float = Field(default=0, ge=0)
    notes: Optional[str] = None
    is_active: bool = True


class CustomerUpdateIn(_Payload):
    name: Optional[Text] = None
    contact_person: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    tax_number: Optional[str] = None
    currency: Optional[Currency] = None
    default_tax_rate: Optional[TaxRate] = None
    payment_terms: Optional[int] = Field(default=None, ge=0, le=365)
    credit_limit: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


# =========================================================
# Quotes / invoices
# =========================================================
class QuoteIn(_Payload):
    customer_id: int
    load_id: Optional[int] = None
    currency: Currency = DEFAULT_CURRENCY
    tax_rate: TaxRate = 0
    valid_until: Optional[date] = None
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: List[LineItemIn] = Field(min_length=1)


class InvoiceIn(_Payload):
    customer_id: int
    quote_id: Optional[int] = None
    source_load_id: Optional[int] = None
    currency: Optional[Currency] = None
    tax_rate: Optional[TaxRate] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: List[LineItemIn] = Field(min_length=1)

    @model_validator(mode="after")
    def _due_after_issue(self):
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            raise ValueError("due_date must not be before issue_date")
        return self


# =========================================================
# Payments
# =========================================================
class PaymentMethodIn(_Payload):
    customer_id: int
    method_type: Literal["card", "bank_account", "mobile_money"]
    label: Optional[str] = None
    provider: Optional[str] = None
    last_four: Optional[str] = Field(default=None, pattern=r"^\d{4}$")
    is_default: bool = False


class PaymentIn(_Payload):
    invoice_id: int
    payment_method_id: int


class RefundIn(_Payload):
    amount: float = Field(gt=0)
    reason: Optional[str] = None


# =========================================================
# Loads
# =========================================================
class LoadIn(_Payload):
    customer_id: int
    quote_id: Optional[int] = None
    pickup_address: Text
    pickup_city: Optional[str] = None
    pickup_date: Optional[date] = None
    delivery_address: Text
    delivery_city: Optional[str] = None
    delivery_date: Optional[date] = None
    cargo_description: Optional[str] = None
    weight_kg: Optional[float] = Field(default=None, ge=0)
    rate: Optional[float] = Field(default=None, ge=0)
    currency: Currency = DEFAULT_CURRENCY
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _delivery_after_pickup(self):
        if self.pickup_date and self.delivery_date and self.delivery_date < self.pickup_date:
            raise ValueError("delivery_date must not be before pickup_date")
        return self


class LoadUpdateIn(_Payload):
    pickup_address: Optional[Text] = None
    pickup_city: Optional[str] = None
    pickup_date: Optional[date] = None
    delivery_address: Optional[Text] = None
    delivery_city: Optional[str] = None
    delivery_date: Optional[date] = None
    cargo_description: Optional[str] = None
    weight_kg: Optional[float] = Field(default=None, ge=0)
    rate: Optional[float] = Field(default=None, ge=0)
    currency: Optional[Currency] = None
    notes: Optional[str] = None


class TrackingIn(_Payload):
    status: Optional[Literal["pending", "assigned", "in_transit", "delivered", "cancelled"]] = None
    location: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    notes: Optional[str] = None


# =========================================================
# Fleet
# =========================================================
class DriverIn(_Payload):
    first_name: Text
    last_name: Text
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    license_number: Optional[str] = None
    license_expiry: Optional[date] = None
    address: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    profile_id: Optional[int] = None


class DriverUpdateIn(_Payload):
    first_name: Optional[Text] = None
    last_name: Optional[Text] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    license_number: Optional[str] = None
    license_expiry: Optional[date] = None
    address: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    profile_id: Optional[int] = None


class VehicleIn(_Payload):
    registration_number: Text
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=1950, le=2100)
    vehicle_type: Optional[str] = None
    capacity_kg: Optional[float] = Field(default=None, ge=0)


class VehicleUpdateIn(_Payload):
    registration_number: Optional[Text] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=1950, le=2100)
    vehicle_type: Optional[str] = None
    capacity_kg: Optional[float] = Field(default=None, ge=0)


# =========================================================
# Expenses
# =========================================================
class ExpenseIn(_Payload):
    category: Annotated[str, AfterValidator(_expense_category)]
    description: Text
    amount: float = Field(gt=0)
    currency: Currency = DEFAULT_CURRENCY
    expense_date: Optional[date] = None
    vendor: Optional[str] = None
    load_id: Optional[int] = None
    vehicle_id: Optional[int] = None


class ExpenseUpdateIn(_Payload):
    category: Optional[Annotated[str, AfterValidator(_expense_category)]] = None
    description: Optional[Text] = None
    amount: Optional[float] = Field(default=None, gt=0)
    currency: Optional[Currency] = None
    expense_date: Optional[date] = None
    vendor: Optional[str] = None
    load_id: Optional[int] = None
    vehicle_id: Optional[int] = None


class ExpenseReviewIn(_Payload):
    status: Literal["approved", "rejected"]
    notes: Optional[str] = None


# =========================================================
# Onboarding + super-admin
# =========================================================
class FleetApplicationIn(_Payload):
    company_name: Text
    contact_person: Text
    email: EmailStr
    phone: Text
    country: Text
    city: Optional[str] = None
    address: Optional[str] = None
    fleet_size: Optional[int] = Field(default=None, ge=1)
    business_registration_number: Optional[str] = None
    notes: Optional[str] = None


class CompanyIn(_Payload):
    name: Text
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    tax_number: Optional[str] = None


class CompanyUpdateIn(_Payload):
    name: Optional[Text] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    tax_number: Optional[str] = None


class InvitationIn(_Payload):
    email: EmailStr
    role: Role
    company_id: Optional[int] = None


# =========================================================
# Customer portal
# =========================================================
class LoadRequestIn(_Payload):
    pickup_address: Text
    pickup_city: Optional[str] = None
    pickup_date: Optional[date] = None
    delivery_address: Text
    delivery_city: Optional[str] = None
    delivery_date: Optional[date] = None
    cargo_description: Optional[str] = None
    weight_kg: Optional[float] = Field(default=None, ge=0)
    special_instructions: Optional[str] = None

    @model_validator(mode="after")
    def _delivery_after_pickup(self):
        if self.pickup_date and self.delivery_date and self.delivery_date < self.pickup_date:
            raise ValueError("delivery_date must not be before pickup_date")
        return self


class PortalProfileIn(_Payload):
    # Only contact details; billing terms stay with the carrier
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None


# =========================================================
# Documents
# =========================================================
class DocumentIn(_Payload):
    document_type: Annotated[str, AfterValidator(_document_type)]
    load_id: Optional[int] = None
    invoice_id: Optional[int] = None
    quote_id: Optional[int] = None


class DocumentUpdateIn(_Payload):
    document_type: Optional[Annotated[str, AfterValidator(_document_type)]] = None
    load_id: Optional[int] = None
    invoice_id: Optional[int] = None
    quote_id: Optional[int] = None


# =========================================================
# Ratings
# =========================================================
Score = Annotated[int, Field(ge=1, le=5)]


class ServiceAspectsIn(_Payload):
    model_config = ConfigDict(extra="forbid")

    punctuality: Optional[Score] = None
    communication: Optional[Score] = None
    vehicle_condition: Optional[Score] = None
    driver_professionalism: Optional[Score] = None
    cargo_handling: Optional[Score] = None


class RatingIn(_Payload):
    load_id: Optional[int] = None
    rating: Score
    feedback: Optional[str] = None
    is_anonymous: bool = False
    service_aspects: Optional[ServiceAspectsIn] = None


class RatingResponseIn(_Payload):
    response: Text
