from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from fieldstock.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ItemKindEnum(str, enum.Enum):
    DEVICE = "DEVICE"
    MATERIAL = "MATERIAL"


class ItemStatusEnum(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    ASSIGNED = "ASSIGNED"
    ASSIGNED_TO_ORDER = "ASSIGNED_TO_ORDER"
    COLLECTED_FROM_CLIENT = "COLLECTED_FROM_CLIENT"
    RETURNED = "RETURNED"
    RETURNED_TO_OPERATOR = "RETURNED_TO_OPERATOR"


class HistoryActionEnum(str, enum.Enum):
    RECEIVED = "RECEIVED"
    ISSUED = "ISSUED"
    RETURNED = "RETURNED"
    RETURNED_TO_TECHNICIAN = "RETURNED_TO_TECHNICIAN"
    RETURNED_TO_OPERATOR = "RETURNED_TO_OPERATOR"
    ASSIGNED_TO_ORDER = "ASSIGNED_TO_ORDER"
    COLLECTED_FROM_CLIENT = "COLLECTED_FROM_CLIENT"
    TRANSFER = "TRANSFER"


class DeviceCategoryEnum(str, enum.Enum):
    MODEM = "MODEM"
    ROUTER = "ROUTER"
    DECODER = "DECODER"
    ONT = "ONT"
    AMPLIFIER = "AMPLIFIER"
    OTHER = "OTHER"


class MaterialUnitEnum(str, enum.Enum):
    PIECE = "PIECE"
    METER = "METER"
    ROLL = "ROLL"
    PACK = "PACK"


class TransferStatusEnum(str, enum.Enum):
    REQUESTED = "REQUESTED"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# Statuses in which an item is bound to an order (order_id must be set).
BOUND_STATUSES = frozenset({ItemStatusEnum.ASSIGNED_TO_ORDER, ItemStatusEnum.COLLECTED_FROM_CLIENT})


class WarehouseLocation(Base):
    __tablename__ = "warehouse_locations"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), nullable=False, unique=True, index=True)
    name = Column(String(128), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class DeviceDefinition(Base):
    __tablename__ = "device_definitions"
    __table_args__ = (UniqueConstraint("name", "category", name="uq_device_definition_name_category"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False, index=True)
    category = Column(
        SAEnum(DeviceCategoryEnum, name="device_category_enum", native_enum=False),
        nullable=False,
        default=DeviceCategoryEnum.OTHER,
    )
    price = Column(Float, nullable=True)


class MaterialDefinition(Base):
    __tablename__ = "material_definitions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False, unique=True, index=True)
    index = Column(String(64), nullable=True)
    unit = Column(
        SAEnum(MaterialUnitEnum, name="material_unit_enum", native_enum=False),
        nullable=False,
        default=MaterialUnitEnum.PIECE,
    )
    price = Column(Float, nullable=True)


class InventoryItem(Base):
    """
    A device or a material lot. Single-table polymorphism on ``kind`` keeps
    the holder columns shared while the kind-specific payload lives on
    :class:`DeviceItem` / :class:`MaterialItem`.

    ``status``/``assigned_to_id``/``location_id``/``order_id`` are a
    projection of the item's history (see ``history.project_device_state``).
    """

    __tablename__ = "warehouse_items"
    __table_args__ = (
        Index("ix_warehouse_items_holder", "assigned_to_id", "kind", "status"),
        Index("ix_warehouse_items_location", "location_id", "kind", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(
        SAEnum(ItemKindEnum, name="item_kind_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    name = Column(String(128), nullable=False)
    status = Column(
        SAEnum(ItemStatusEnum, name="item_status_enum", native_enum=False),
        nullable=False,
        default=ItemStatusEnum.AVAILABLE,
        index=True,
    )
    assigned_to_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    location_id = Column(Integer, ForeignKey("warehouse_locations.id", ondelete="SET NULL"), nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    price = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    location = relationship("WarehouseLocation", lazy="joined")

    __mapper_args__ = {"polymorphic_on": kind}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} status={self.status}>"


class DeviceItem(InventoryItem):
    serial_number = Column(String(64), nullable=True, unique=True, index=True)
    category = Column(
        SAEnum(DeviceCategoryEnum, name="item_device_category_enum", native_enum=False),
        nullable=True,
    )

    __mapper_args__ = {"polymorphic_identity": ItemKindEnum.DEVICE}

    @property
    def quantity(self) -> int:
        return 1


class MaterialItem(InventoryItem):
    material_definition_id = Column(
        Integer,
        ForeignKey("material_definitions.id", ondelete="RESTRICT"),
        nullable=True,
    )
    quantity = Column(Integer, nullable=True, default=0)
    unit = Column(
        SAEnum(MaterialUnitEnum, name="item_material_unit_enum", native_enum=False),
        nullable=True,
    )

    definition = relationship("MaterialDefinition", lazy="joined")

    __mapper_args__ = {"polymorphic_identity": ItemKindEnum.MATERIAL}


# Declared after the subclass so the material column exists on the shared table.
Index(
    "ix_warehouse_items_material",
    InventoryItem.__table__.c.material_definition_id,
    InventoryItem.__table__.c.assigned_to_id,
)


class HistoryEntry(Base):
    """
    Append-only ledger of every state-changing action on an item.
    """

    __tablename__ = "warehouse_history"
    __table_args__ = (
        Index("ix_warehouse_history_item_time", "item_id", "occurred_at"),
        Index("ix_warehouse_history_order", "order_id", "action"),
    )

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("warehouse_items.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(
        SAEnum(HistoryActionEnum, name="history_action_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    status_after = Column(
        SAEnum(ItemStatusEnum, name="history_status_after_enum", native_enum=False),
        nullable=False,
    )
    performed_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_to_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    quantity = Column(Integer, nullable=True)
    from_location_id = Column(Integer, ForeignKey("warehouse_locations.id", ondelete="SET NULL"), nullable=True)
    to_location_id = Column(Integer, ForeignKey("warehouse_locations.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class TechnicianMaterialDeficit(Base):
    __tablename__ = "technician_material_deficits"
    __table_args__ = (
        UniqueConstraint("technician_id", "material_definition_id", name="uq_technician_material_deficit"),
    )

    id = Column(Integer, primary_key=True, index=True)
    technician_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    material_definition_id = Column(
        Integer,
        ForeignKey("material_definitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class TransferRequest(Base):
    """
    Technician-to-technician handover negotiation for a single item.

    The item stays with the sender until the recipient confirms. Only one
    open (REQUESTED) request may exist per item.
    """

    __tablename__ = "transfer_requests"
    __table_args__ = (
        Index(
            "uq_transfer_requests_open_item",
            "item_id",
            unique=True,
            sqlite_where=text("status = 'REQUESTED'"),
            postgresql_where=text("status = 'REQUESTED'"),
        ),
        Index("ix_transfer_requests_recipient", "recipient_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("warehouse_items.id", ondelete="CASCADE"), nullable=True, index=True)
    sender_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    status = Column(
        SAEnum(TransferStatusEnum, name="transfer_status_enum", native_enum=False),
        nullable=False,
        default=TransferStatusEnum.REQUESTED,
        index=True,
    )
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    item = relationship("InventoryItem", lazy="joined")
