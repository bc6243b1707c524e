"""Initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
MONEY = sa.Numeric(12, 2)
RATE = sa.Numeric(5, 2)


def _timestamps(updated: bool = True):
    cols = [sa.Column("created_at", sa.DateTime(), nullable=False)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(), nullable=False))
    return cols


def _line_item_columns():
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("quantity", MONEY, nullable=False),
        sa.Column("unit_price", MONEY, nullable=False),
        sa.Column("line_total", MONEY, nullable=False),
    ]


def _index(table: str, *columns: str, unique: bool = False) -> None:
    op.create_index(f"ix_{table}_{'_'.join(columns)}", table, list(columns), unique=unique)


def upgrade() -> None:
    # -----------------------
    # company / profile
    # -----------------------
    op.create_table(
        "company",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("email", sa.String(120), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("country", sa.String(80), nullable=True),
        sa.Column("tax_number", sa.String(60), nullable=True),
        sa.Column("status", sa.String(9), nullable=False),
        *_timestamps(),
    )
    _index("company", "status")

    op.create_table(
        "profile",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=True),
        sa.Column("email", sa.String(120), nullable=False),
        sa.Column("full_name", sa.String(160), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("role", sa.String(30), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("must_change_password", sa.Boolean(), nullable=False),
        sa.Column("failed_login_attempts", sa.Integer(), nullable=False),
        sa.Column("locked_until", sa.DateTime(), nullable=True),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("email", name="profile_email_key"),
    )
    _index("profile", "company_id")

    # -----------------------
    # customer / fleet
    # -----------------------
    op.create_table(
        "customer",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("contact_person", sa.String(160), nullable=True),
        sa.Column("email", sa.String(120), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("country", sa.String(80), nullable=True),
        sa.Column("postal_code", sa.String(20), nullable=True),
        sa.Column("tax_number", sa.String(60), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("default_tax_rate", RATE, nullable=False),
        sa.Column("payment_terms", sa.Integer(), nullable=False),
        sa.Column("credit_limit", MONEY, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    _index("customer", "company_id")

    op.create_table(
        "driver",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("profile_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        sa.Column("first_name", sa.String(80), nullable=False),
        sa.Column("last_name", sa.String(80), nullable=False),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("email", sa.String(120), nullable=True),
        sa.Column("license_number", sa.String(60), nullable=True),
        sa.Column("status", sa.String(9), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("profile_id"),
    )
    _index("driver", "company_id")
    _index("driver", "status")

    op.create_table(
        "vehicle",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("registration_number", sa.String(30), nullable=False),
        sa.Column("make", sa.String(60), nullable=True),
        sa.Column("model", sa.String(60), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("vehicle_type", sa.String(40), nullable=True),
        sa.Column("capacity_kg", sa.Float(), nullable=True),
        sa.Column("status", sa.String(14), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("company_id", "registration_number", name="uq_vehicle_company_registration"),
    )
    _index("vehicle", "company_id")
    _index("vehicle", "status")

    # -----------------------
    # quote (load/invoice FKs added below)
    # -----------------------
    op.create_table(
        "quote",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customer.id"), nullable=False),
        sa.Column("load_id", sa.Integer(), nullable=True),
        sa.Column("quote_number", sa.String(40), nullable=False),
        sa.Column("status", sa.String(9), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("tax_rate", RATE, nullable=False),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.Column("tax_amount", MONEY, nullable=False),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("valid_until", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("terms", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("accepted_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("converted_to_invoice_id", sa.Integer(), nullable=True),
        sa.Column("converted_load_id", sa.Integer(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "quote_number", name="uq_quote_company_number"),
    )
    _index("quote", "company_id")
    _index("quote", "customer_id")
    _index("quote", "status")

    op.create_table(
        "quote_item",
        *_line_item_columns(),
        sa.Column("quote_id", sa.Integer(), sa.ForeignKey("quote.id", ondelete="CASCADE"), nullable=False),
    )
    _index("quote_item", "quote_id")

    # -----------------------
    # load / tracking
    # -----------------------
    op.create_table(
        "load",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customer.id"), nullable=False),
        sa.Column("quote_id", sa.Integer(), sa.ForeignKey("quote.id", ondelete="SET NULL"), nullable=True),
        sa.Column("load_number", sa.String(40), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("pickup_city", sa.String(120), nullable=True),
        sa.Column("pickup_date", sa.Date(), nullable=True),
        sa.Column("delivery_address", sa.String(255), nullable=False),
        sa.Column("delivery_city", sa.String(120), nullable=True),
        sa.Column("delivery_date", sa.Date(), nullable=True),
        sa.Column("cargo_description", sa.Text(), nullable=True),
        sa.Column("weight_kg", sa.Float(), nullable=True),
        sa.Column("rate", MONEY, nullable=True),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("assigned_driver_id", sa.Integer(), sa.ForeignKey("driver.id", ondelete="SET NULL"), nullable=True),
        sa.Column("assigned_vehicle_id", sa.Integer(), sa.ForeignKey("vehicle.id", ondelete="SET NULL"), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "load_number", name="uq_load_company_number"),
    )
    _index("load", "company_id")
    _index("load", "customer_id")
    _index("load", "status")
    _index("load", "assigned_driver_id")

    op.create_table(
        "load_tracking",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("load_id", sa.Integer(), sa.ForeignKey("load.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(30), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recorded_by_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        sa.Column("recorded_at", sa.DateTime(), nullable=False),
    )
    _index("load_tracking", "load_id")

    # -----------------------
    # invoice
    # -----------------------
    op.create_table(
        "invoice",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customer.id"), nullable=False),
        sa.Column("quote_id", sa.Integer(), sa.ForeignKey("quote.id", ondelete="SET NULL"), nullable=True),
        sa.Column("source_load_id", sa.Integer(), sa.ForeignKey("load.id", ondelete="SET NULL"), nullable=True),
        sa.Column("invoice_number", sa.String(40), nullable=False),
        sa.Column("status", sa.String(9), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("tax_rate", RATE, nullable=False),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.Column("tax_amount", MONEY, nullable=False),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("paid_date", sa.DateTime(), nullable=True),
        sa.Column("paid_amount", MONEY, nullable=True),
        sa.Column("refunded_amount", MONEY, nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("terms", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "invoice_number", name="uq_invoice_company_number"),
    )
    _index("invoice", "company_id")
    _index("invoice", "customer_id")
    _index("invoice", "status")

    op.create_table(
        "invoice_item",
        *_line_item_columns(),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoice.id", ondelete="CASCADE"), nullable=False),
    )
    _index("invoice_item", "invoice_id")

    # Cycle quote <-> load / invoice
    op.create_foreign_key("fk_quote_load", "quote", "load", ["load_id"], ["id"], ondelete="SET NULL")
    op.create_foreign_key(
        "fk_quote_converted_invoice", "quote", "invoice", ["converted_to_invoice_id"], ["id"], ondelete="SET NULL"
    )
    op.create_foreign_key(
        "fk_quote_converted_load", "quote", "load", ["converted_load_id"], ["id"], ondelete="SET NULL"
    )

    # -----------------------
    # payments
    # -----------------------
    op.create_table(
        "payment_method",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customer.id", ondelete="CASCADE"), nullable=False),
        sa.Column("method_type", sa.String(30), nullable=False),
        sa.Column("label", sa.String(120), nullable=True),
        sa.Column("provider", sa.String(60), nullable=True),
        sa.Column("last_four", sa.String(4), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(updated=False),
    )
    _index("payment_method", "company_id")
    _index("payment_method", "customer_id")

    op.create_table(
        "payment_transaction",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoice.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "payment_method_id", sa.Integer(), sa.ForeignKey("payment_method.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("parent_transaction_id", sa.Integer(), sa.ForeignKey("payment_transaction.id"), nullable=True),
        sa.Column("transaction_reference", sa.String(60), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("gateway_response", JSON, nullable=True),
        sa.Column("failure_reason", sa.String(255), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("transaction_reference"),
    )
    _index("payment_transaction", "company_id")
    _index("payment_transaction", "invoice_id")
    _index("payment_transaction", "status")

    # -----------------------
    # expense
    # -----------------------
    op.create_table(
        "expense",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("submitted_by_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        sa.Column("load_id", sa.Integer(), sa.ForeignKey("load.id", ondelete="SET NULL"), nullable=True),
        sa.Column("vehicle_id", sa.Integer(), sa.ForeignKey("vehicle.id", ondelete="SET NULL"), nullable=True),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("vendor", sa.String(160), nullable=True),
        sa.Column("status", sa.String(8), nullable=False),
        sa.Column("receipt_key", sa.String(500), nullable=True),
        sa.Column("receipt_sha256", sa.String(64), nullable=True),
        sa.Column("receipt_content_type", sa.String(60), nullable=True),
        sa.Column("reviewed_by_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    _index("expense", "company_id")
    _index("expense", "submitted_by_id")
    _index("expense", "status")

    # -----------------------
    # onboarding + console
    # -----------------------
    op.create_table(
        "fleet_application",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("application_number", sa.String(40), nullable=False),
        sa.Column("company_name", sa.String(160), nullable=False),
        sa.Column("contact_person", sa.String(160), nullable=False),
        sa.Column("email", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(30), nullable=False),
        sa.Column("country", sa.String(80), nullable=False),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("fleet_size", sa.Integer(), nullable=True),
        sa.Column("business_registration_number", sa.String(80), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(8), nullable=False),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reviewed_by_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("application_number"),
    )
    _index("fleet_application", "email")
    _index("fleet_application", "status")

    op.create_table(
        "user_invitation",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=True),
        sa.Column("email", sa.String(120), nullable=False),
        sa.Column("role", sa.String(30), nullable=False),
        sa.Column("token", sa.String(128), nullable=False),
        sa.Column("invited_by_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("accepted_at", sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("token"),
    )
    _index("user_invitation", "company_id")

    op.create_table(
        "system_setting",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(80), nullable=False),
        sa.Column("value", JSON, nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("updated_by_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )

    op.create_table(
        "system_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("level", sa.String(10), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("component", sa.String(60), nullable=True),
        sa.Column("details", JSON, nullable=True),
        sa.Column("profile_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    _index("system_log", "level")
    _index("system_log", "created_at")

    # -----------------------
    # numbering counters
    # -----------------------
    op.create_table(
        "document_sequence",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customer.id", ondelete="CASCADE"), nullable=False),
        sa.Column("doc_type", sa.String(20), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False),
        sa.UniqueConstraint("company_id", "customer_id", "doc_type", name="uq_document_sequence_scope"),
    )


def downgrade() -> None:
    op.drop_table("document_sequence")
    op.drop_table("system_log")
    op.drop_table("system_setting")
    op.drop_table("user_invitation")
    op.drop_table("fleet_application")
    op.drop_table("expense")
    op.drop_table("payment_transaction")
    op.drop_table("payment_method")

    op.drop_constraint("fk_quote_converted_load", "quote", type_="foreignkey")
    op.drop_constraint("fk_quote_converted_invoice", "quote", type_="foreignkey")
    op.drop_constraint("fk_quote_load", "quote", type_="foreignkey")

    op.drop_table("invoice_item")
    op.drop_table("invoice")
    op.drop_table("load_tracking")
    op.drop_table("load")
    op.drop_table("quote_item")
    op.drop_table("quote")
    op.drop_table("vehicle")
    op.drop_table("driver")
    op.drop_table("customer")
    op.drop_table("profile")
    op.drop_table("company")
