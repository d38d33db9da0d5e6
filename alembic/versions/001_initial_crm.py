"""Initial CRM schema: users, customers, pipeline, billing, shipping, email, activity.

Revision ID: 001_initial_crm
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_crm"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())]
    if updated:
        columns.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True))
    return columns


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=True),
        sa.Column("role", sa.String(50), server_default=sa.text("'member'"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
    )

    # ── Customers ───────────────────────────────────────────────────────
    op.create_table(
        "customers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("store_name", sa.String(300), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("owner_manager_name", sa.String(200), nullable=True),
        sa.Column("type", sa.String(20), server_default=sa.text("'B2B'"), nullable=False),
        sa.Column("status", sa.String(30), server_default=sa.text("'Qualified'"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("province", sa.String(10), nullable=True),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("street", sa.String(300), nullable=True),
        sa.Column("postal_code", sa.String(20), nullable=True),
        sa.Column("location_lat", sa.Float(), nullable=True),
        sa.Column("location_lng", sa.Float(), nullable=True),
        sa.Column("website", sa.String(500), nullable=True),
        sa.Column("stripe_customer_id", sa.String(100), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_customers_status", "customers", ["status"])
    op.create_index("ix_customers_province", "customers", ["province"])

    op.create_table(
        "customer_contacts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("is_primary", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("ix_customer_contacts_customer_id", "customer_contacts", ["customer_id"])

    op.create_table(
        "tags",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
        sa.Column("color", sa.String(20), server_default=sa.text("'#8B5CF6'"), nullable=False),
        *_timestamps(updated=False),
    )

    op.create_table(
        "customer_tags",
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("tag_id", sa.Uuid(), sa.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "saved_searches",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("filters", sa.JSON(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_saved_searches_user_id", "saved_searches", ["user_id"])

    # ── Pipeline ────────────────────────────────────────────────────────
    op.create_table(
        "deal_stages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("probability", sa.Float(), server_default=sa.text("0"), nullable=False),
        *_timestamps(updated=False),
    )

    op.create_table(
        "deals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("value", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("stage", sa.String(100), nullable=False),
        sa.Column("probability", sa.Float(), nullable=True),
        sa.Column("expected_close_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_deals_customer_id", "deals", ["customer_id"])
    op.create_index("ix_deals_stage", "deals", ["stage"])

    # ── Products & Invoices ─────────────────────────────────────────────
    op.create_table(
        "products",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("sku", sa.String(100), unique=True, nullable=False),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("unit_price", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("stripe_price_id", sa.String(100), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("invoice_number", sa.String(50), unique=True, nullable=False),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("subtotal", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("tax", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("shipping", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("discount", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("total", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("stripe_invoice_id", sa.String(100), nullable=True),
        sa.Column("pdf_url", sa.Text(), nullable=True),
        sa.Column("sent_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_invoices_customer_id", "invoices", ["customer_id"])
    op.create_index("ix_invoices_stripe_invoice_id", "invoices", ["stripe_invoice_id"])
    op.create_index("ix_invoices_status", "invoices", ["status"])

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("invoice_id", sa.Uuid(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id", ondelete="SET NULL"), nullable=True),
        sa.Column("product_sku", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit_price", sa.Float(), nullable=False),
        sa.Column("total", sa.Float(), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"])

    # ── Shipments ───────────────────────────────────────────────────────
    op.create_table(
        "shipments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("invoice_id", sa.Uuid(), sa.ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True),
        sa.Column("order_number", sa.String(50), nullable=False),
        sa.Column("carrier", sa.String(100), nullable=True),
        sa.Column("tracking_number", sa.String(100), nullable=True),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("service_level", sa.String(50), nullable=True),
        sa.Column("package_count", sa.Integer(), nullable=False),
        sa.Column("actual_weight", sa.Float(), nullable=True),
        sa.Column("dimensions_length", sa.Float(), nullable=True),
        sa.Column("dimensions_width", sa.Float(), nullable=True),
        sa.Column("dimensions_height", sa.Float(), nullable=True),
        sa.Column("shipping_cost", sa.Float(), nullable=True),
        sa.Column("label_url", sa.Text(), nullable=True),
        sa.Column("estimated_delivery_date", sa.Date(), nullable=True),
        sa.Column("shipped_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_shipments_customer_id", "shipments", ["customer_id"])
    op.create_index("ix_shipments_tracking_number", "shipments", ["tracking_number"])

    op.create_table(
        "shipping_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("shipment_id", sa.Uuid(), sa.ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("location", sa.String(200), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_shipping_events_shipment_id", "shipping_events", ["shipment_id"])

    # ── Email ───────────────────────────────────────────────────────────
    op.create_table(
        "email_templates",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("subject", sa.String(500), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("variables", sa.JSON(), nullable=True),
        sa.Column("active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_email_templates_name", "email_templates", ["name"])

    op.create_table(
        "email_campaigns",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column(
            "template_id", sa.Uuid(), sa.ForeignKey("email_templates.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recipient_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("opened_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("clicked_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("bounced_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        *_timestamps(),
    )

    # ── Activity ────────────────────────────────────────────────────────
    op.create_table(
        "customer_timeline",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("call_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("call_outcome", sa.String(100), nullable=True),
        sa.Column("call_follow_up_date", sa.Date(), nullable=True),
        sa.Column("email_subject", sa.String(500), nullable=True),
        sa.Column("email_message_id", sa.String(200), nullable=True),
        sa.Column("email_sent_to", sa.String(320), nullable=True),
        sa.Column("email_sent_from", sa.String(320), nullable=True),
        sa.Column("email_opened", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("email_clicked", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("email_clicked_link", sa.Text(), nullable=True),
        sa.Column("email_delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("email_opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("email_clicked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("email_bounced", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("email_bounced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("email_bounce_reason", sa.Text(), nullable=True),
        sa.Column("email_spam_complaint", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("email_complained_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deal_stage", sa.String(100), nullable=True),
        sa.Column("deal_value", sa.Float(), nullable=True),
        sa.Column("note_category", sa.String(50), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_customer_timeline_customer_id", "customer_timeline", ["customer_id"])
    op.create_index("ix_customer_timeline_email_message_id", "customer_timeline", ["email_message_id"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("priority", sa.String(10), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_tasks_customer_id", "tasks", ["customer_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=True),
        sa.Column("entity_id", sa.String(64), nullable=True),
        sa.Column("entity_name", sa.String(300), nullable=True),
        sa.Column("old_data", sa.JSON(), nullable=True),
        sa.Column("new_data", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])

    op.create_table(
        "company_settings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("province", sa.String(10), nullable=True),
        sa.Column("postal_code", sa.String(20), nullable=True),
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("website", sa.String(500), nullable=True),
        sa.Column("logo_url", sa.Text(), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("tax_rate", sa.Float(), server_default=sa.text("0"), nullable=False),
        *_timestamps(),
    )


def downgrade() -> None:
    for table in (
        "company_settings",
        "activity_logs",
        "tasks",
        "customer_timeline",
        "email_campaigns",
        "email_templates",
        "shipping_events",
        "shipments",
        "invoice_items",
        "invoices",
        "products",
        "deals",
        "deal_stages",
        "saved_searches",
        "customer_tags",
        "tags",
        "customer_contacts",
        "customers",
        "users",
    ):
        op.drop_table(table)
