from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from . import models


class LocationRead(BaseModel):
    id: int
    code: str
    name: str
    is_active: bool

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# Item references (request bodies)
# ---------------------------------------------------------------------------


class DeviceRef(BaseModel):
    kind: Literal["DEVICE"] = "DEVICE"
    id: int


class MaterialRef(BaseModel):
    kind: Literal["MATERIAL"] = "MATERIAL"
    id: int
    quantity: int = Field(..., gt=0)


ItemRef = Annotated[Union[DeviceRef, MaterialRef], Field(discriminator="kind")]


class DeviceReceive(BaseModel):
    kind: Literal["DEVICE"] = "DEVICE"
    name: str
    serial_number: Optional[str] = None
    category: models.DeviceCategoryEnum = models.DeviceCategoryEnum.OTHER
    price: Optional[float] = None


class MaterialReceive(BaseModel):
    kind: Literal["MATERIAL"] = "MATERIAL"
    material_definition_id: int
    quantity: int = Field(..., gt=0)


ReceiveLine = Annotated[Union[DeviceReceive, MaterialReceive], Field(discriminator="kind")]


class ReceiveRequest(BaseModel):
    location_id: Optional[int] = None
    items: List[ReceiveLine] = Field(..., min_length=1)
    notes: Optional[str] = None


class IssueRequest(BaseModel):
    technician_id: str
    items: List[ItemRef] = Field(..., min_length=1)
    notes: Optional[str] = None


class ReturnRequest(BaseModel):
    location_id: Optional[int] = None
    items: List[ItemRef] = Field(..., min_length=1)
    notes: Optional[str] = None


class ReturnToOperatorRequest(ReturnRequest):
    pass


class LocationTransferRequest(BaseModel):
    from_location_id: Optional[int] = None
    to_location_id: int
    items: List[ItemRef] = Field(..., min_length=1)
    notes: Optional[str] = None


class TransferCreate(BaseModel):
    recipient_id: str
    items: List[ItemRef] = Field(..., min_length=1)
    notes: Optional[str] = None


class CollectedDevice(BaseModel):
    name: str
    serial_number: Optional[str] = None
    category: models.DeviceCategoryEnum = models.DeviceCategoryEnum.OTHER
    price: Optional[float] = None


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


class ItemRead(BaseModel):
    id: int
    kind: models.ItemKindEnum
    name: str
    status: models.ItemStatusEnum
    assigned_to_id: Optional[str] = None
    location_id: Optional[int] = None
    order_id: Optional[int] = None
    price: float = 0.0

    serial_number: Optional[str] = None
    category: Optional[models.DeviceCategoryEnum] = None

    material_definition_id: Optional[int] = None
    quantity: Optional[int] = None
    unit: Optional[models.MaterialUnitEnum] = None

    transfer_pending: bool = False
    transfer_to_id: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class HistoryEntryRead(BaseModel):
    id: int
    item_id: int
    action: models.HistoryActionEnum
    status_after: models.ItemStatusEnum
    performed_by_id: Optional[str] = None
    assigned_to_id: Optional[str] = None
    order_id: Optional[int] = None
    quantity: Optional[int] = None
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    notes: Optional[str] = None
    occurred_at: datetime

    class Config:
        from_attributes = True


class DeficitRead(BaseModel):
    technician_id: str
    material_definition_id: int
    quantity: int
    updated_at: datetime

    class Config:
        from_attributes = True


class TransferRead(BaseModel):
    id: int
    item_id: Optional[int] = None
    sender_id: str
    recipient_id: str
    quantity: int
    status: models.TransferStatusEnum
    notes: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True
