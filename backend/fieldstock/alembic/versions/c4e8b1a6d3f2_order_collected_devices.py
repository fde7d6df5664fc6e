"""Record collected devices per order.

Revision ID: c4e8b1a6d3f2
Revises: a1f3c9d2e7b4
Create Date: 2026-10-26 10:30:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "c4e8b1a6d3f2"
down_revision = "a1f3c9d2e7b4"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "order_collected_devices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("warehouse_items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("order_id", "item_id", name="uq_order_collected_device_item"),
    )
    op.create_index("ix_order_collected_devices_order_id", "order_collected_devices", ["order_id"])
    op.create_index("ix_order_collected_devices_item_id", "order_collected_devices", ["item_id"])

    # Devices still held as collected keep their link to the order.
    op.execute(
        """
        INSERT INTO order_collected_devices (order_id, item_id, created_at)
        SELECT order_id, id, CURRENT_TIMESTAMP
        FROM warehouse_items
        WHERE kind = 'DEVICE'
          AND status = 'COLLECTED_FROM_CLIENT'
          AND order_id IS NOT NULL
        """
    )


def downgrade() -> None:
    op.drop_index("ix_order_collected_devices_item_id", table_name="order_collected_devices")
    op.drop_index("ix_order_collected_devices_order_id", table_name="order_collected_devices")
    op.drop_table("order_collected_devices")
