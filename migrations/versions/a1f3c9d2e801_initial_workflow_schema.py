"""initial_workflow_schema

Create orders, order items, timeline, settings, notifications and
material reservation tables.

Revision ID: a1f3c9d2e801
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1f3c9d2e801"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "orders" not in existing_tables:
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_number", sa.String(length=40), nullable=False),
            sa.Column("source", sa.String(length=20), nullable=True),
            sa.Column("customer_ref", sa.String(length=100), nullable=True),
            sa.Column("customer_name", sa.String(length=200), nullable=True),
            sa.Column("delivery_date", sa.Date(), nullable=True),
            sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("requires_downstream_departments", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("assigned_user", sa.String(length=64), nullable=True),
            sa.Column("created_by", sa.String(length=64), nullable=True),
            sa.Column("global_notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)

    if "order_items" not in existing_tables:
        op.create_table(
            "order_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_id", sa.Integer(), nullable=False),
            sa.Column("product_name", sa.String(length=300), nullable=False),
            sa.Column("sku", sa.String(length=100), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("specifications", sa.JSON(), nullable=False),
            sa.Column("need_design", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("current_stage", sa.String(length=20), nullable=False, server_default="sales"),
            sa.Column("assigned_department", sa.String(length=20), nullable=True),
            sa.Column("status", sa.String(length=40), nullable=False, server_default="new_order"),
            sa.Column("assigned_to", sa.String(length=64), nullable=True),
            sa.Column("assigned_to_name", sa.String(length=150), nullable=True),
            sa.Column("previous_department", sa.String(length=20), nullable=True),
            sa.Column("previous_assigned_to", sa.String(length=64), nullable=True),
            sa.Column("previous_assigned_to_name", sa.String(length=150), nullable=True),
            sa.Column("current_substage", sa.String(length=50), nullable=True),
            sa.Column("substage_status", sa.String(length=20), nullable=True),
            sa.Column("substage_started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("production_stage_sequence", sa.JSON(), nullable=False),
            sa.Column("delivery_date", sa.Date(), nullable=True),
            sa.Column("outsource_info", sa.JSON(), nullable=True),
            sa.Column("last_workflow_note", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("version_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_order_items_order_id", "order_items", ["order_id"])
        op.create_index("ix_order_items_current_stage", "order_items", ["current_stage"])
        op.create_index("ix_order_items_assigned_department", "order_items", ["assigned_department"])
        op.create_index("ix_order_items_assigned_to", "order_items", ["assigned_to"])

    if "timeline_entries" not in existing_tables:
        op.create_table(
            "timeline_entries",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_id", sa.Integer(), nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=True),
            sa.Column("stage", sa.String(length=20), nullable=False),
            sa.Column("substage", sa.String(length=50), nullable=True),
            sa.Column("action", sa.String(length=40), nullable=False),
            sa.Column("performed_by", sa.String(length=64), nullable=False),
            sa.Column("performed_by_name", sa.String(length=150), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["item_id"], ["order_items.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_timeline_item_ts", "timeline_entries", ["item_id", "created_at"])
        op.create_index("idx_timeline_order_ts", "timeline_entries", ["order_id", "created_at"])

    if "app_settings" not in existing_tables:
        op.create_table(
            "app_settings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("setting_key", sa.String(length=80), nullable=False),
            sa.Column("value", sa.JSON(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("updated_by", sa.String(length=64), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_app_settings_setting_key", "app_settings", ["setting_key"], unique=True)

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("type", sa.String(length=20), nullable=True),
            sa.Column("order_id", sa.Integer(), nullable=True),
            sa.Column("item_id", sa.Integer(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
        op.create_index("ix_notifications_order_id", "notifications", ["order_id"])

    if "material_reservations" not in existing_tables:
        op.create_table(
            "material_reservations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_id", sa.Integer(), nullable=True),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("material", sa.String(length=200), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("reserved_by", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["item_id"], ["order_items.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_material_reservations_order_id", "material_reservations", ["order_id"])
        op.create_index("ix_material_reservations_item_id", "material_reservations", ["item_id"])


def downgrade():
    op.drop_table("material_reservations")
    op.drop_table("notifications")
    op.drop_table("app_settings")
    op.drop_table("timeline_entries")
    op.drop_table("order_items")
    op.drop_table("orders")
