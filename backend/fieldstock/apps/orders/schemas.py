from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from fieldstock.apps.warehouse.schemas import CollectedDevice

from . import models


class OrderCreate(BaseModel):
    order_number: str = Field(..., min_length=1, max_length=64)
    type: models.OrderTypeEnum = models.OrderTypeEnum.INSTALLATION
    city: Optional[str] = None
    street: Optional[str] = None
    notes: Optional[str] = None
    assigned_to_id: Optional[str] = None


class OrderAssign(BaseModel):
    technician_id: Optional[str] = None


class OrderRead(BaseModel):
    id: int
    order_number: str
    type: models.OrderTypeEnum
    status: models.OrderStatusEnum
    city: Optional[str] = None
    street: Optional[str] = None
    notes: Optional[str] = None
    failure_reason: Optional[str] = None
    assigned_to_id: Optional[str] = None
    attempt_number: int
    previous_order_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class WorkCodeLine(BaseModel):
    code: str = Field(..., min_length=1)
    quantity: int = Field(1, gt=0)


class MaterialUsage(BaseModel):
    material_definition_id: int
    quantity: int = Field(..., gt=0)


class CompletionRequest(BaseModel):
    status: models.OrderStatusEnum
    notes: Optional[str] = None
    failure_reason: Optional[str] = None
    work_codes: List[WorkCodeLine] = Field(default_factory=list)
    equipment_ids: List[int] = Field(default_factory=list)
    used_materials: List[MaterialUsage] = Field(default_factory=list)
    collected_devices: List[CollectedDevice] = Field(default_factory=list)


class CompletionResult(BaseModel):
    warnings: List[str] = Field(default_factory=list)


class CollectRequest(BaseModel):
    device: CollectedDevice


class OrderMaterialRead(BaseModel):
    material_definition_id: int
    quantity: int
    unit: str

    class Config:
        from_attributes = True


class SettlementEntryRead(BaseModel):
    code: str
    quantity: int

    class Config:
        from_attributes = True


class OrderDetail(OrderRead):
    equipment_ids: List[int] = Field(default_factory=list)
    collected_item_ids: List[int] = Field(default_factory=list)
    materials: List[OrderMaterialRead] = Field(default_factory=list)
    settlement_entries: List[SettlementEntryRead] = Field(default_factory=list)
    settlement_total: Decimal = Decimal("0")
