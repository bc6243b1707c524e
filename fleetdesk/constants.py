# fleetdesk/constants.py
from __future__ import annotations

# =========================================================
# Roles
# =========================================================
ROLES = {
    "super_admin": "Super Admin",
    "company_admin": "Company Admin",
    "manager": "Manager",
    "dispatcher": "Dispatcher",
    "driver": "Driver",
}

ADMIN_ROLES = frozenset({"super_admin", "company_admin"})
MANAGEMENT_ROLES = frozenset({"super_admin", "company_admin", "manager"})
STAFF_ROLES = frozenset({"super_admin", "company_admin", "manager", "dispatcher"})

# Portal login for a customer contact; never assignable through invitations or role changes
CUSTOMER_ROLE = "customer"

# =========================================================
# Money
# =========================================================
CURRENCIES = ("USD", "ZAR", "BWP", "NAD", "ZWL", "ZMW", "MZN")
DEFAULT_CURRENCY = "USD"

QUOTE_VALIDITY_DAYS = 30
CONVERTED_INVOICE_DUE_DAYS = 30
DEFAULT_PAYMENT_TERMS_DAYS = 30

# =========================================================
# Expenses
# =========================================================
EXPENSE_CATEGORIES = (
    "fuel",
    "maintenance",
    "repairs",
    "tolls",
    "insurance",
    "permits",
    "accommodation",
    "meals",
    "parking",
    "fines",
    "other",
)

RECEIPT_MIME_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "application/pdf": "pdf",
}

# =========================================================
# Documents
# =========================================================
DOCUMENT_TYPES = ("invoice", "pod", "customs", "permit", "insurance", "other")

DOCUMENT_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "image/jpeg",
        "image/png",
        "image/gif",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    }
)

# =========================================================
# Customer ratings
# =========================================================
RATING_ASPECTS = (
    "punctuality",
    "communication",
    "vehicle_condition",
    "driver_professionalism",
    "cargo_handling",
)

# =========================================================
# Feature toggles
# =========================================================
SUBSCRIPTION_PLANS = ("basic", "premium", "trial")

# feature name -> enabled on the basic plan (premium and trial enable everything)
FEATURES = {
    "real_time_tracking": False,
    "advanced_analytics": False,
    "customer_portal": True,
    "expense_management": True,
    "document_management": True,
    "multi_currency": False,
    "mobile_app": False,
    "api_access": False,
    "custom_reports": False,
    "bulk_operations": False,
}
