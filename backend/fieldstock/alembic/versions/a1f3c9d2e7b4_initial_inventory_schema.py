"""Initial inventory, order and audit schema.

Revision ID: a1f3c9d2e7b4
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1f3c9d2e7b4"
down_revision = None
branch_labels = None
depends_on = None


ACCOUNT_ROLES = ("ADMIN", "COORDINATOR", "WAREHOUSEMAN", "TECHNICIAN")


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "warehouse_locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_warehouse_locations_code", "warehouse_locations", ["code"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.Enum(*ACCOUNT_ROLES, name="account_role_enum"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "location_id",
            sa.Integer(),
            sa.ForeignKey("warehouse_locations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_location_id", "users", ["location_id"])
    op.create_index("idx_users_role_active", "users", ["role", "is_active"])

    op.create_table(
        "device_definitions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("category", sa.String(length=16), nullable=False),
        sa.Column("price", sa.Float(), nullable=True),
        sa.UniqueConstraint("name", "category", name="uq_device_definition_name_category"),
    )
    op.create_index("ix_device_definitions_name", "device_definitions", ["name"])

    op.create_table(
        "material_definitions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("index", sa.String(length=64), nullable=True),
        sa.Column("unit", sa.String(length=16), nullable=False),
        sa.Column("price", sa.Float(), nullable=True),
    )
    op.create_index("ix_material_definitions_name", "material_definitions", ["name"], unique=True)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_number", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("city", sa.String(length=128), nullable=True),
        sa.Column("street", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("assigned_to_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("attempt_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("previous_order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("order_number", "attempt_number", name="uq_orders_number_attempt"),
    )
    op.create_index("ix_orders_order_number", "orders", ["order_number"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_assignee_status", "orders", ["assigned_to_id", "status"])

    op.create_table(
        "warehouse_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kind", sa.String(length=8), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False),
        sa.Column("assigned_to_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "location_id",
            sa.Integer(),
            sa.ForeignKey("warehouse_locations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True),
        sa.Column("price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("serial_number", sa.String(length=64), nullable=True),
        sa.Column("category", sa.String(length=16), nullable=True),
        sa.Column(
            "material_definition_id",
            sa.Integer(),
            sa.ForeignKey("material_definitions.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("unit", sa.String(length=16), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_warehouse_items_kind", "warehouse_items", ["kind"])
    op.create_index("ix_warehouse_items_status", "warehouse_items", ["status"])
    op.create_index("ix_warehouse_items_order_id", "warehouse_items", ["order_id"])
    op.create_index("ix_warehouse_items_serial_number", "warehouse_items", ["serial_number"], unique=True)
    op.create_index("ix_warehouse_items_holder", "warehouse_items", ["assigned_to_id", "kind", "status"])
    op.create_index("ix_warehouse_items_location", "warehouse_items", ["location_id", "kind", "status"])
    op.create_index("ix_warehouse_items_material", "warehouse_items", ["material_definition_id", "assigned_to_id"])

    op.create_table(
        "warehouse_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "item_id",
            sa.Integer(),
            sa.ForeignKey("warehouse_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("action", sa.String(length=24), nullable=False),
        sa.Column("status_after", sa.String(length=24), nullable=False),
        sa.Column("performed_by_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("assigned_to_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column(
            "from_location_id",
            sa.Integer(),
            sa.ForeignKey("warehouse_locations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "to_location_id",
            sa.Integer(),
            sa.ForeignKey("warehouse_locations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_warehouse_history_item_id", "warehouse_history", ["item_id"])
    op.create_index("ix_warehouse_history_action", "warehouse_history", ["action"])
    op.create_index("ix_warehouse_history_item_time", "warehouse_history", ["item_id", "occurred_at"])
    op.create_index("ix_warehouse_history_order", "warehouse_history", ["order_id", "action"])

    op.create_table(
        "technician_material_deficits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "technician_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "material_definition_id",
            sa.Integer(),
            sa.ForeignKey("material_definitions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("technician_id", "material_definition_id", name="uq_technician_material_deficit"),
    )
    op.create_index("ix_technician_material_deficits_technician_id", "technician_material_deficits", ["technician_id"])

    op.create_table(
        "transfer_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("warehouse_items.id", ondelete="CASCADE"), nullable=True),
        sa.Column("sender_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("recipient_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_transfer_requests_item_id", "transfer_requests", ["item_id"])
    op.create_index("ix_transfer_requests_sender_id", "transfer_requests", ["sender_id"])
    op.create_index("ix_transfer_requests_status", "transfer_requests", ["status"])
    op.create_index("ix_transfer_requests_recipient", "transfer_requests", ["recipient_id", "status"])
    op.create_index(
        "uq_transfer_requests_open_item",
        "transfer_requests",
        ["item_id"],
        unique=True,
        sqlite_where=sa.text("status = 'REQUESTED'"),
        postgresql_where=sa.text("status = 'REQUESTED'"),
    )

    op.create_table(
        "order_equipment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("warehouse_items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("order_id", "item_id", name="uq_order_equipment_item"),
    )
    op.create_index("ix_order_equipment_order_id", "order_equipment", ["order_id"])
    op.create_index("ix_order_equipment_item_id", "order_equipment", ["item_id"])

    op.create_table(
        "order_materials",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "material_definition_id",
            sa.Integer(),
            sa.ForeignKey("material_definitions.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit", sa.String(length=16), nullable=False, server_default="PIECE"),
    )
    op.create_index("ix_order_materials_order_id", "order_materials", ["order_id"])

    op.create_table(
        "rate_definitions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
    )
    op.create_index("ix_rate_definitions_code", "rate_definitions", ["code"], unique=True)

    op.create_table(
        "order_settlement_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_order_settlement_entries_order_id", "order_settlement_entries", ["order_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("actor_user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"])
    op.create_index("ix_audit_events_action", "audit_events", ["action"])
    op.create_index("ix_audit_events_actor_user_id", "audit_events", ["actor_user_id"])
    op.create_index("ix_audit_events_correlation_id", "audit_events", ["correlation_id"])
    op.create_index("ix_audit_events_time_desc", "audit_events", [sa.text("occurred_at DESC")])


def downgrade() -> None:
    for table_name in (
        "audit_events",
        "order_settlement_entries",
        "rate_definitions",
        "order_materials",
        "order_equipment",
        "transfer_requests",
        "technician_material_deficits",
        "warehouse_history",
        "warehouse_items",
        "orders",
        "material_definitions",
        "device_definitions",
        "users",
        "warehouse_locations",
    ):
        op.drop_table(table_name)

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS account_role_enum")
