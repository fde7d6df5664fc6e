from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from fieldstock.apps.accounts import models as account_models
from fieldstock.apps.accounts import services as account_services
from fieldstock.apps.audit import models as audit_models
from fieldstock.apps.audit import services as audit_services
from fieldstock.apps.warehouse import models as warehouse_models

from . import models, schemas, settlement

logger = logging.getLogger(__name__)

ORDER_ENTITY = "Order"


def get_order_or_404(db: Session, order_id: int) -> models.Order:
    order = db.get(models.Order, order_id)
    if order is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Order {order_id} not found.",
        )
    return order


def record_order_history(
    db: Session,
    *,
    order: models.Order,
    actor_user_id: Optional[str],
    action: str,
    before_status: Optional[models.OrderStatusEnum],
    note: Optional[str] = None,
    metadata: Optional[dict] = None,
    critical: bool = False,
) -> None:
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type=ORDER_ENTITY,
        entity_id=str(order.id),
        action=action,
        before={"status": before_status.value} if before_status else None,
        after={"status": order.status.value, "assigned_to_id": order.assigned_to_id},
        metadata={"note": note, **(metadata or {})},
        critical=critical,
    )


def list_order_history(db: Session, *, order_id: int) -> List[audit_models.AuditEvent]:
    return audit_services.list_audit_events(db, entity_type=ORDER_ENTITY, entity_id=str(order_id))


def _latest_attempt(db: Session, order_number: str) -> Optional[models.Order]:
    return (
        db.query(models.Order)
        .filter(models.Order.order_number == order_number)
        .order_by(models.Order.attempt_number.desc())
        .first()
    )


def create_order(
    db: Session,
    *,
    actor: account_models.User,
    payload: schemas.OrderCreate,
) -> models.Order:
    """
    Create an order, or the next attempt of a failed one.

    A number that is still open or already completed cannot be reused.
    """
    order_number = payload.order_number.strip()
    previous = _latest_attempt(db, order_number)
    attempt_number = 1
    previous_order_id = None

    if previous is not None:
        if previous.status == models.OrderStatusEnum.COMPLETED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Order {order_number} is already completed.",
            )
        if previous.status in models.OPEN_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Order {order_number} is still open (attempt {previous.attempt_number}).",
            )
        attempt_number = previous.attempt_number + 1
        previous_order_id = previous.id

    technician_id = None
    if payload.assigned_to_id:
        technician_id = account_services.get_active_technician(db, payload.assigned_to_id).id

    order = models.Order(
        order_number=order_number,
        type=payload.type,
        status=models.OrderStatusEnum.ASSIGNED if technician_id else models.OrderStatusEnum.PENDING,
        city=payload.city,
        street=payload.street,
        notes=payload.notes,
        assigned_to_id=technician_id,
        attempt_number=attempt_number,
        previous_order_id=previous_order_id,
    )
    db.add(order)
    db.flush()

    record_order_history(
        db,
        order=order,
        actor_user_id=actor.id,
        action="create",
        before_status=None,
        note=f"Attempt {attempt_number}" if attempt_number > 1 else None,
    )
    logger.info(
        "Order created",
        extra={"order_id": order.id, "order_number": order_number, "attempt_number": attempt_number},
    )
    return order


def assign_technician(
    db: Session,
    *,
    actor: account_models.User,
    order: models.Order,
    technician_id: Optional[str],
) -> models.Order:
    before = order.status
    if technician_id:
        order.assigned_to_id = account_services.get_active_technician(db, technician_id).id
    else:
        order.assigned_to_id = None

    # Finalized orders keep their status; only the assignee changes.
    if order.status in models.OPEN_STATUSES:
        order.status = models.OrderStatusEnum.ASSIGNED if order.assigned_to_id else models.OrderStatusEnum.PENDING
    db.flush()

    record_order_history(
        db,
        order=order,
        actor_user_id=actor.id,
        action="assign",
        before_status=before,
    )
    return order


def get_attempt_chain(db: Session, order: models.Order) -> List[models.Order]:
    return (
        db.query(models.Order)
        .filter(models.Order.order_number == order.order_number)
        .order_by(models.Order.attempt_number.asc())
        .all()
    )


def list_equipment_ids(db: Session, order_id: int) -> List[int]:
    rows = (
        db.query(models.OrderEquipment)
        .filter(models.OrderEquipment.order_id == order_id)
        .order_by(models.OrderEquipment.id.asc())
        .all()
    )
    return [row.item_id for row in rows]


def list_collected_items(db: Session, order_id: int) -> List[warehouse_models.DeviceItem]:
    """Devices recorded as collected on the order, whatever their current state."""
    return (
        db.query(warehouse_models.DeviceItem)
        .join(models.OrderCollectedDevice, models.OrderCollectedDevice.item_id == warehouse_models.DeviceItem.id)
        .filter(models.OrderCollectedDevice.order_id == order_id)
        .order_by(models.OrderCollectedDevice.id.asc())
        .all()
    )


def link_collected_device(db: Session, *, order_id: int, item_id: int) -> None:
    exists = (
        db.query(models.OrderCollectedDevice.id)
        .filter(
            models.OrderCollectedDevice.order_id == order_id,
            models.OrderCollectedDevice.item_id == item_id,
        )
        .first()
    )
    if exists is None:
        db.add(models.OrderCollectedDevice(order_id=order_id, item_id=item_id))
        db.flush()


def unlink_collected_device(db: Session, *, order_id: int, item_id: int) -> None:
    db.query(models.OrderCollectedDevice).filter(
        models.OrderCollectedDevice.order_id == order_id,
        models.OrderCollectedDevice.item_id == item_id,
    ).delete(synchronize_session=False)
    db.flush()


def get_order_detail(db: Session, order: models.Order) -> schemas.OrderDetail:
    detail = schemas.OrderDetail.model_validate(order)
    detail.equipment_ids = list_equipment_ids(db, order.id)
    detail.collected_item_ids = [item.id for item in list_collected_items(db, order.id)]
    detail.materials = [
        schemas.OrderMaterialRead.model_validate(row)
        for row in db.query(models.OrderMaterial)
        .filter(models.OrderMaterial.order_id == order.id)
        .order_by(models.OrderMaterial.id.asc())
        .all()
    ]
    detail.settlement_entries = [
        schemas.SettlementEntryRead.model_validate(row)
        for row in db.query(models.OrderSettlementEntry)
        .filter(models.OrderSettlementEntry.order_id == order.id)
        .order_by(models.OrderSettlementEntry.id.asc())
        .all()
    ]
    detail.settlement_total = settlement.settlement_total(db, order_id=order.id)
    return detail
