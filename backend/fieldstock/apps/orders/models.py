# backend/fieldstock/apps/orders/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from fieldstock.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderTypeEnum(str, enum.Enum):
    INSTALLATION = "INSTALLATION"
    SERVICE = "SERVICE"
    OUTAGE = "OUTAGE"


class OrderStatusEnum(str, enum.Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    COMPLETED = "COMPLETED"
    NOT_COMPLETED = "NOT_COMPLETED"


OPEN_STATUSES = frozenset({OrderStatusEnum.PENDING, OrderStatusEnum.ASSIGNED})
FINAL_STATUSES = frozenset({OrderStatusEnum.COMPLETED, OrderStatusEnum.NOT_COMPLETED})


class Order(Base):
    """
    Customer work order.

    A failed visit (NOT_COMPLETED) is never reopened; a new attempt is
    created with the same order number, ``attempt_number + 1`` and a link to
    the previous attempt.
    """

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("order_number", "attempt_number", name="uq_orders_number_attempt"),
        Index("ix_orders_assignee_status", "assigned_to_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(64), nullable=False, index=True)
    type = Column(
        SAEnum(OrderTypeEnum, name="order_type_enum", native_enum=False),
        nullable=False,
        default=OrderTypeEnum.INSTALLATION,
    )
    status = Column(
        SAEnum(OrderStatusEnum, name="order_status_enum", native_enum=False),
        nullable=False,
        default=OrderStatusEnum.PENDING,
        index=True,
    )

    city = Column(String(128), nullable=True)
    street = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)

    assigned_to_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    attempt_number = Column(Integer, nullable=False, default=1)
    previous_order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)

    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number} attempt={self.attempt_number} status={self.status}>"


class OrderEquipment(Base):
    """Device installed on an order."""

    __tablename__ = "order_equipment"
    __table_args__ = (UniqueConstraint("order_id", "item_id", name="uq_order_equipment_item"),)

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("warehouse_items.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class OrderCollectedDevice(Base):
    """
    Device recorded as picked up from the customer on an order.

    The row outlives the device's own state: a collected device that was
    later handed in at the warehouse or returned to the operator still
    belongs to the order's reported collection.
    """

    __tablename__ = "order_collected_devices"
    __table_args__ = (UniqueConstraint("order_id", "item_id", name="uq_order_collected_device_item"),)

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("warehouse_items.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class OrderMaterial(Base):
    """Material quantity reported as used on an order."""

    __tablename__ = "order_materials"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    material_definition_id = Column(
        Integer,
        ForeignKey("material_definitions.id", ondelete="RESTRICT"),
        nullable=False,
    )
    quantity = Column(Integer, nullable=False)
    unit = Column(String(16), nullable=False, default="PIECE")


class RateDefinition(Base):
    __tablename__ = "rate_definitions"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), nullable=False, unique=True, index=True)
    description = Column(String(255), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False, default=0)


class OrderSettlementEntry(Base):
    __tablename__ = "order_settlement_entries"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(32), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
