"""Customer portal, documents, ratings and feature toggles

Revision ID: 0002_portal_documents_ratings_features
Revises: 0001_initial_schema
Create Date: 2026-10-19 15:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "0002_portal_documents_ratings_features"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _index(table: str, *columns: str, unique: bool = False) -> None:
    op.create_index(f"ix_{table}_{'_'.join(columns)}", table, list(columns), unique=unique)


def upgrade() -> None:
    # -----------------------
    # existing tables
    # -----------------------
    with op.batch_alter_table("company") as batch:
        batch.add_column(sa.Column("subscription_plan", sa.String(20), nullable=False, server_default="basic"))

    with op.batch_alter_table("profile") as batch:
        batch.add_column(sa.Column("customer_id", sa.Integer(), nullable=True))
        batch.create_foreign_key("fk_profile_customer", "customer", ["customer_id"], ["id"], ondelete="CASCADE")
    _index("profile", "customer_id")

    with op.batch_alter_table("driver") as batch:
        batch.add_column(sa.Column("license_expiry", sa.Date(), nullable=True))
        batch.add_column(sa.Column("address", sa.String(255), nullable=True))
        batch.add_column(sa.Column("emergency_contact_name", sa.String(160), nullable=True))
        batch.add_column(sa.Column("emergency_contact_phone", sa.String(30), nullable=True))
        batch.add_column(sa.Column("updated_at", sa.DateTime(), nullable=True))

    with op.batch_alter_table("vehicle") as batch:
        batch.add_column(sa.Column("updated_at", sa.DateTime(), nullable=True))

    # -----------------------
    # documents
    # -----------------------
    op.create_table(
        "document",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("load_id", sa.Integer(), sa.ForeignKey("load.id", ondelete="SET NULL"), nullable=True),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoice.id", ondelete="SET NULL"), nullable=True),
        sa.Column("quote_id", sa.Integer(), sa.ForeignKey("quote.id", ondelete="SET NULL"), nullable=True),
        sa.Column("document_type", sa.String(20), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("storage_key", sa.String(512), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(120), nullable=True),
        sa.Column("sha256", sa.String(64), nullable=True),
        sa.Column("uploaded_by_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    _index("document", "company_id")
    _index("document", "load_id")
    _index("document", "invoice_id")
    _index("document", "quote_id")
    _index("document", "document_type")

    # -----------------------
    # customer ratings
    # -----------------------
    op.create_table(
        "customer_rating",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customer.id", ondelete="CASCADE"), nullable=False),
        sa.Column("load_id", sa.Integer(), sa.ForeignKey("load.id", ondelete="SET NULL"), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("service_aspects", JSON, nullable=True),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False),
        sa.Column("company_response", sa.Text(), nullable=True),
        sa.Column("responded_at", sa.DateTime(), nullable=True),
        sa.Column("responded_by_id", sa.Integer(), sa.ForeignKey("profile.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("customer_id", "load_id", name="uq_customer_rating_load"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_customer_rating_range"),
    )
    _index("customer_rating", "company_id")
    _index("customer_rating", "customer_id")
    _index("customer_rating", "created_at")

    # -----------------------
    # feature toggles
    # -----------------------
    op.create_table(
        "feature_toggle",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("company.id", ondelete="CASCADE"), nullable=False),
        sa.Column("feature_name", sa.String(60), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        sa.Column("enabled_at", sa.DateTime(), nullable=True),
        sa.Column("disabled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("company_id", "feature_name", name="uq_feature_toggle_company_feature"),
    )
    _index("feature_toggle", "company_id")


def downgrade() -> None:
    op.drop_table("feature_toggle")
    op.drop_table("customer_rating")
    op.drop_table("document")

    with op.batch_alter_table("vehicle") as batch:
        batch.drop_column("updated_at")

    with op.batch_alter_table("driver") as batch:
        batch.drop_column("updated_at")
        batch.drop_column("emergency_contact_phone")
        batch.drop_column("emergency_contact_name")
        batch.drop_column("address")
        batch.drop_column("license_expiry")

    op.drop_index("ix_profile_customer_id", table_name="profile")
    with op.batch_alter_table("profile") as batch:
        batch.drop_constraint("fk_profile_customer", type_="foreignkey")
        batch.drop_column("customer_id")

    with op.batch_alter_table("company") as batch:
        batch.drop_column("subscription_plan")
