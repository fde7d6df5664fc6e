from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from fieldstock.apps.accounts import models as account_models
from fieldstock.apps.accounts import services as account_services
from fieldstock.apps.audit import services as audit_services
from fieldstock.utils.identifiers import normalize_serial

from . import deficits, history, models, schemas

logger = logging.getLogger(__name__)

Action = models.HistoryActionEnum
Status = models.ItemStatusEnum

# Actions whose resulting state may be restored when an item is unbound
# from an order. Anything else is left untouched and reported for review.
RESTORABLE_ACTIONS = frozenset(
    {
        Action.RECEIVED,
        Action.ISSUED,
        Action.RETURNED,
        Action.RETURNED_TO_TECHNICIAN,
        Action.TRANSFER,
        Action.COLLECTED_FROM_CLIENT,
        Action.ASSIGNED_TO_ORDER,
    }
)

_WAREHOUSE_STATUSES = (Status.AVAILABLE, Status.RETURNED)
_TECHNICIAN_STATUSES = (Status.ASSIGNED, Status.COLLECTED_FROM_CLIENT)

_KIND_LABELS = {
    models.ItemKindEnum.DEVICE: "Device",
    models.ItemKindEnum.MATERIAL: "Material",
}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def get_item_or_404(
    db: Session,
    item_id: int,
    *,
    kind: Optional[models.ItemKindEnum] = None,
) -> models.InventoryItem:
    item = db.get(models.InventoryItem, item_id)
    if item is None or (kind is not None and item.kind != kind):
        label = _KIND_LABELS.get(kind, "Item")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{label} {item_id} not found.",
        )
    return item


def _get_ref_item(db: Session, ref) -> models.InventoryItem:
    return get_item_or_404(db, ref.id, kind=models.ItemKindEnum(ref.kind))


def get_location_or_404(db: Session, location_id: int) -> models.WarehouseLocation:
    location = db.get(models.WarehouseLocation, location_id)
    if location is None or not location.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Warehouse location {location_id} not found.",
        )
    return location


def find_device_by_serial(db: Session, serial_number: Optional[str]) -> Optional[models.DeviceItem]:
    serial = normalize_serial(serial_number)
    if serial is None:
        return None
    return db.query(models.DeviceItem).filter(models.DeviceItem.serial_number == serial).first()


def get_open_transfer(db: Session, item_id: int) -> Optional[models.TransferRequest]:
    return (
        db.query(models.TransferRequest)
        .filter(
            models.TransferRequest.item_id == item_id,
            models.TransferRequest.status == models.TransferStatusEnum.REQUESTED,
        )
        .first()
    )


def _ensure_no_open_transfer(db: Session, item: models.InventoryItem) -> None:
    if get_open_transfer(db, item.id) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{item.name} ({_item_label(item)}) has a pending transfer.",
        )


def _item_label(item: models.InventoryItem) -> str:
    serial = getattr(item, "serial_number", None)
    return serial or f"#{item.id}"


def find_location_lot(
    db: Session,
    *,
    location_id: int,
    material_definition_id: int,
) -> Optional[models.MaterialItem]:
    return (
        db.query(models.MaterialItem)
        .filter(
            models.MaterialItem.location_id == location_id,
            models.MaterialItem.material_definition_id == material_definition_id,
            models.MaterialItem.status == Status.AVAILABLE,
            models.MaterialItem.assigned_to_id.is_(None),
        )
        .order_by(models.MaterialItem.id.asc())
        .first()
    )


def _credit_location_lot(
    db: Session,
    *,
    location_id: int,
    definition: models.MaterialDefinition,
    quantity: int,
) -> models.MaterialItem:
    lot = find_location_lot(db, location_id=location_id, material_definition_id=definition.id)
    if lot is None:
        lot = models.MaterialItem(
            name=definition.name,
            material_definition_id=definition.id,
            quantity=quantity,
            unit=definition.unit,
            price=definition.price or 0.0,
            status=Status.AVAILABLE,
            location_id=location_id,
        )
        db.add(lot)
    else:
        lot.quantity = (lot.quantity or 0) + quantity
    db.flush()
    return lot


def _require_quantity(lot: models.MaterialItem, quantity: int) -> None:
    if (lot.quantity or 0) < quantity:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Insufficient quantity of {lot.name}: requested {quantity}, available {lot.quantity or 0}.",
        )


# ---------------------------------------------------------------------------
# Holder invariant
# ---------------------------------------------------------------------------

# status -> (location set?, technician set?, order set?); None means "any".
HOLDER_RULES: Dict[models.ItemStatusEnum, Tuple[Optional[bool], Optional[bool], Optional[bool]]] = {
    Status.AVAILABLE: (True, False, False),
    Status.ASSIGNED: (False, True, False),
    Status.ASSIGNED_TO_ORDER: (False, False, True),
    Status.COLLECTED_FROM_CLIENT: (False, True, True),
    Status.RETURNED: (True, False, False),
    Status.RETURNED_TO_OPERATOR: (None, False, False),
}


def check_holder_invariant(item: models.InventoryItem) -> List[str]:
    """Return a list of violations of the status/holder table (empty when consistent)."""
    rule = HOLDER_RULES.get(item.status)
    if rule is None:
        return [f"unknown status {item.status!r}"]
    problems: List[str] = []
    for field, expected in zip(("location_id", "assigned_to_id", "order_id"), rule):
        if expected is None:
            continue
        is_set = getattr(item, field) is not None
        if is_set != expected:
            problems.append(f"{item.status.value}: {field} must be {'set' if expected else 'empty'}")
    return problems


# ---------------------------------------------------------------------------
# Receive / issue / return
# ---------------------------------------------------------------------------


def receive_items(
    db: Session,
    *,
    actor: account_models.User,
    payload: schemas.ReceiveRequest,
) -> List[models.InventoryItem]:
    location_id = account_services.resolve_location_id(actor, payload.location_id)
    get_location_or_404(db, location_id)

    received: List[models.InventoryItem] = []
    for line in payload.items:
        if line.kind == models.ItemKindEnum.DEVICE.value:
            serial = normalize_serial(line.serial_number)
            if serial and find_device_by_serial(db, serial) is not None:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Device with serial number {serial} already exists.",
                )
            item = models.DeviceItem(
                name=line.name,
                serial_number=serial,
                category=line.category,
                price=line.price or 0.0,
                status=Status.AVAILABLE,
                location_id=location_id,
            )
            db.add(item)
            db.flush()
            history.append_history(
                db,
                item,
                action=Action.RECEIVED,
                performed_by_id=actor.id,
                to_location_id=location_id,
                notes=payload.notes,
            )
        else:
            definition = deficits.get_material_definition_or_404(db, line.material_definition_id)
            item = _credit_location_lot(db, location_id=location_id, definition=definition, quantity=line.quantity)
            history.append_history(
                db,
                item,
                action=Action.RECEIVED,
                performed_by_id=actor.id,
                quantity=line.quantity,
                to_location_id=location_id,
                notes=payload.notes,
            )
        received.append(item)

    logger.info(
        "Items received",
        extra={"location_id": location_id, "count": len(received), "actor_user_id": actor.id},
    )
    return received


def issue_items(
    db: Session,
    *,
    actor: account_models.User,
    payload: schemas.IssueRequest,
) -> List[models.InventoryItem]:
    """
    Hand warehouse stock to a technician.

    Material quantities first settle the technician's deficit; only the
    remainder becomes visible stock on the technician's lot.
    """
    technician = account_services.get_active_technician(db, payload.technician_id)

    issued: List[models.InventoryItem] = []
    for ref in payload.items:
        item = _get_ref_item(db, ref)
        if item.status != Status.AVAILABLE:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{item.name} ({_item_label(item)}) is not available (status {item.status.value}).",
            )
        from_location_id = item.location_id

        if isinstance(item, models.DeviceItem):
            item.status = Status.ASSIGNED
            item.assigned_to_id = technician.id
            item.location_id = None
            item.order_id = None
            db.flush()
            history.append_history(
                db,
                item,
                action=Action.ISSUED,
                performed_by_id=actor.id,
                assigned_to_id=technician.id,
                from_location_id=from_location_id,
                notes=payload.notes,
            )
            issued.append(item)
            continue

        _require_quantity(item, ref.quantity)
        item.quantity = item.quantity - ref.quantity
        db.flush()
        history.append_history(
            db,
            item,
            action=Action.ISSUED,
            performed_by_id=actor.id,
            assigned_to_id=technician.id,
            quantity=ref.quantity,
            from_location_id=from_location_id,
            notes=payload.notes,
        )

        settlement = deficits.settle_on_issue(
            db,
            technician_id=technician.id,
            material_definition_id=item.material_definition_id,
            quantity=ref.quantity,
        )
        if settlement.settled:
            logger.info(
                "Issued material settled technician deficit",
                extra={
                    "technician_id": technician.id,
                    "material_definition_id": item.material_definition_id,
                    "settled": settlement.settled,
                },
            )
        if settlement.remainder <= 0:
            continue

        lot = deficits.find_technician_lot(
            db,
            technician_id=technician.id,
            material_definition_id=item.material_definition_id,
        )
        if lot is None:
            lot = deficits.create_technician_lot(
                db,
                technician_id=technician.id,
                definition=deficits.get_material_definition_or_404(db, item.material_definition_id),
                quantity=settlement.remainder,
            )
        else:
            lot.quantity = (lot.quantity or 0) + settlement.remainder
            db.flush()
        history.append_history(
            db,
            lot,
            action=Action.ISSUED,
            performed_by_id=actor.id,
            assigned_to_id=technician.id,
            quantity=settlement.remainder,
            from_location_id=from_location_id,
            notes=payload.notes,
        )
        issued.append(lot)

    return issued


def return_to_warehouse(
    db: Session,
    *,
    actor: account_models.User,
    payload: schemas.ReturnRequest,
) -> List[models.InventoryItem]:
    location_id = account_services.resolve_location_id(actor, payload.location_id)
    get_location_or_404(db, location_id)

    returned: List[models.InventoryItem] = []
    for ref in payload.items:
        item = _get_ref_item(db, ref)
        if item.status not in _TECHNICIAN_STATUSES or item.assigned_to_id is None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{item.name} ({_item_label(item)}) is not held by a technician.",
            )
        _ensure_no_open_transfer(db, item)
        technician_id = item.assigned_to_id

        if isinstance(item, models.DeviceItem):
            # Collected devices wait at the warehouse for the operator.
            was_collected = item.status == Status.COLLECTED_FROM_CLIENT
            item.status = Status.RETURNED if was_collected else Status.AVAILABLE
            item.assigned_to_id = None
            item.order_id = None
            item.location_id = location_id
            db.flush()
            history.append_history(
                db,
                item,
                action=Action.RETURNED,
                performed_by_id=actor.id,
                to_location_id=location_id,
                notes=payload.notes,
            )
            returned.append(item)
            continue

        _require_quantity(item, ref.quantity)
        item.quantity = item.quantity - ref.quantity
        db.flush()
        history.append_history(
            db,
            item,
            action=Action.RETURNED,
            performed_by_id=actor.id,
            assigned_to_id=technician_id,
            quantity=ref.quantity,
            to_location_id=location_id,
            notes=payload.notes,
        )
        definition = deficits.get_material_definition_or_404(db, item.material_definition_id)
        lot = _credit_location_lot(db, location_id=location_id, definition=definition, quantity=ref.quantity)
        history.append_history(
            db,
            lot,
            action=Action.RETURNED,
            performed_by_id=actor.id,
            quantity=ref.quantity,
            to_location_id=location_id,
            notes=payload.notes,
        )
        returned.append(lot)

    return returned


def return_to_operator(
    db: Session,
    *,
    actor: account_models.User,
    payload: schemas.ReturnToOperatorRequest,
) -> List[models.InventoryItem]:
    """Ship warehouse stock back to the operator. Terminal for devices."""
    location_id = account_services.resolve_location_id(actor, payload.location_id)
    get_location_or_404(db, location_id)

    shipped: List[models.InventoryItem] = []
    for ref in payload.items:
        item = _get_ref_item(db, ref)
        if item.status == Status.RETURNED_TO_OPERATOR:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{item.name} ({_item_label(item)}) was already returned to the operator.",
            )
        if item.status not in _WAREHOUSE_STATUSES or item.location_id != location_id:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{item.name} ({_item_label(item)}) is not in stock at location {location_id}.",
            )
        order_link = history.last_order_link(db, item.id)

        if isinstance(item, models.DeviceItem):
            item.status = Status.RETURNED_TO_OPERATOR
            item.assigned_to_id = None
            item.order_id = None
            db.flush()
            history.append_history(
                db,
                item,
                action=Action.RETURNED_TO_OPERATOR,
                performed_by_id=actor.id,
                order_id=order_link,
                from_location_id=location_id,
                notes=payload.notes,
            )
        else:
            _require_quantity(item, ref.quantity)
            item.quantity = item.quantity - ref.quantity
            db.flush()
            history.append_history(
                db,
                item,
                action=Action.RETURNED_TO_OPERATOR,
                performed_by_id=actor.id,
                order_id=order_link,
                quantity=ref.quantity,
                from_location_id=location_id,
                notes=payload.notes,
            )
        shipped.append(item)

    return shipped


def transfer_between_locations(
    db: Session,
    *,
    actor: account_models.User,
    payload: schemas.LocationTransferRequest,
) -> List[models.InventoryItem]:
    from_location_id = account_services.resolve_location_id(actor, payload.from_location_id)
    get_location_or_404(db, from_location_id)
    get_location_or_404(db, payload.to_location_id)
    if from_location_id == payload.to_location_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Source and destination locations must differ.",
        )

    moved: List[models.InventoryItem] = []
    for ref in payload.items:
        item = _get_ref_item(db, ref)
        if item.status not in _WAREHOUSE_STATUSES or item.location_id != from_location_id:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{item.name} ({_item_label(item)}) is not in stock at location {from_location_id}.",
            )

        if isinstance(item, models.DeviceItem):
            item.location_id = payload.to_location_id
            db.flush()
            history.append_history(
                db,
                item,
                action=Action.RECEIVED,
                performed_by_id=actor.id,
                from_location_id=from_location_id,
                to_location_id=payload.to_location_id,
                notes=payload.notes,
            )
            moved.append(item)
            continue

        _require_quantity(item, ref.quantity)
        item.quantity = item.quantity - ref.quantity
        db.flush()
        history.append_history(
            db,
            item,
            action=Action.TRANSFER,
            performed_by_id=actor.id,
            quantity=ref.quantity,
            from_location_id=from_location_id,
            to_location_id=payload.to_location_id,
            notes=payload.notes,
        )
        definition = deficits.get_material_definition_or_404(db, item.material_definition_id)
        lot = _credit_location_lot(db, location_id=payload.to_location_id, definition=definition, quantity=ref.quantity)
        history.append_history(
            db,
            lot,
            action=Action.RECEIVED,
            performed_by_id=actor.id,
            quantity=ref.quantity,
            from_location_id=from_location_id,
            to_location_id=payload.to_location_id,
            notes=payload.notes,
        )
        moved.append(lot)

    return moved


# ---------------------------------------------------------------------------
# Order binding
# ---------------------------------------------------------------------------


def validate_binding(
    db: Session,
    item: models.InventoryItem,
    *,
    order_id: int,
    technician_id: Optional[str],
    is_admin: bool,
) -> None:
    """Raise unless ``item`` may be bound to ``order_id`` by this actor."""
    label = f"{item.name} ({_item_label(item)})"
    if not isinstance(item, models.DeviceItem):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{label} is not a device.",
        )
    if item.order_id is not None and item.order_id != order_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{label} is already bound to order {item.order_id}.",
        )
    _ensure_no_open_transfer(db, item)

    if is_admin:
        if item.status == Status.RETURNED_TO_OPERATOR:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{label} was returned to the operator.",
            )
        return

    held_by_technician = (
        technician_id is not None
        and item.assigned_to_id == technician_id
        and item.status in _TECHNICIAN_STATUSES
    )
    if not held_by_technician:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"{label} is not held by the technician performing this order.",
        )


def bind_to_order(
    db: Session,
    item: models.InventoryItem,
    *,
    order_id: int,
    technician_id: Optional[str],
    performed_by_id: Optional[str],
    is_admin: bool,
) -> models.InventoryItem:
    validate_binding(db, item, order_id=order_id, technician_id=technician_id, is_admin=is_admin)

    if item.status == Status.COLLECTED_FROM_CLIENT:
        # Collected devices stay with the technician; only the order link is recorded.
        item.order_id = order_id
        db.flush()
        history.append_history(
            db,
            item,
            action=Action.ASSIGNED_TO_ORDER,
            performed_by_id=performed_by_id,
            assigned_to_id=item.assigned_to_id,
            order_id=order_id,
        )
        return item

    from_location_id = item.location_id
    item.status = Status.ASSIGNED_TO_ORDER
    item.assigned_to_id = None
    item.location_id = None
    item.order_id = order_id
    db.flush()
    history.append_history(
        db,
        item,
        action=Action.ASSIGNED_TO_ORDER,
        performed_by_id=performed_by_id,
        order_id=order_id,
        from_location_id=from_location_id,
    )
    return item


def ensure_collectable(db: Session, item: models.DeviceItem) -> None:
    """Raise when an existing device cannot be picked up from a customer again."""
    if item.status == Status.RETURNED_TO_OPERATOR:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{item.name} ({_item_label(item)}) was returned to the operator and cannot be collected again.",
        )
    _ensure_no_open_transfer(db, item)


def collect_from_client(
    db: Session,
    *,
    order_id: int,
    technician_id: str,
    performed_by_id: Optional[str],
    device: schemas.CollectedDevice,
) -> models.DeviceItem:
    """
    Record a device picked up at a customer site.

    A device with the same normalized serial is reused in place, so a serial
    is never represented by more than one item.
    """
    serial = normalize_serial(device.serial_number)
    item = find_device_by_serial(db, serial)

    if item is not None:
        if (
            item.status == Status.COLLECTED_FROM_CLIENT
            and item.order_id == order_id
            and item.assigned_to_id == technician_id
        ):
            return item
        ensure_collectable(db, item)
        from_location_id = item.location_id
        item.name = device.name or item.name
        if device.category is not None:
            item.category = device.category
        if device.price is not None:
            item.price = device.price
        logger.info(
            "Reusing existing device for client collection",
            extra={"item_id": item.id, "serial_number": serial, "previous_status": item.status.value},
        )
    else:
        from_location_id = None
        item = models.DeviceItem(
            name=device.name,
            serial_number=serial,
            category=device.category,
            price=device.price or 0.0,
        )
        db.add(item)

    item.status = Status.COLLECTED_FROM_CLIENT
    item.assigned_to_id = technician_id
    item.order_id = order_id
    item.location_id = None
    db.flush()
    history.append_history(
        db,
        item,
        action=Action.COLLECTED_FROM_CLIENT,
        performed_by_id=performed_by_id,
        assigned_to_id=technician_id,
        order_id=order_id,
        from_location_id=from_location_id,
    )
    return item


def _compensating_action(state: history.ProjectedState) -> models.HistoryActionEnum:
    if state.status in _WAREHOUSE_STATUSES:
        return Action.RETURNED
    if state.status == Status.ASSIGNED:
        return Action.RETURNED_TO_TECHNICIAN
    if state.status == Status.COLLECTED_FROM_CLIENT:
        return Action.COLLECTED_FROM_CLIENT
    if state.status == Status.ASSIGNED_TO_ORDER:
        return Action.ASSIGNED_TO_ORDER
    return Action.RETURNED_TO_OPERATOR


def item_snapshot(item: models.InventoryItem) -> dict:
    return {
        "id": item.id,
        "kind": item.kind.value if item.kind else None,
        "name": item.name,
        "serial_number": getattr(item, "serial_number", None),
        "status": item.status.value if item.status else None,
        "assigned_to_id": item.assigned_to_id,
        "location_id": item.location_id,
        "order_id": item.order_id,
    }


def unbind_from_order(
    db: Session,
    item: models.InventoryItem,
    *,
    order_id: int,
    performed_by_id: Optional[str],
    binding_actions: Iterable[models.HistoryActionEnum] = (Action.ASSIGNED_TO_ORDER, Action.COLLECTED_FROM_CLIENT),
) -> Optional[str]:
    """
    Undo the binding of ``item`` to ``order_id`` using its history.

    The state is rebuilt by replaying every entry before the binding entry.
    An item with nothing before the binding only existed because of this
    order and is deleted along with its history. Returns a warning when
    the item needs manual review.
    """
    label = f"{item.name} ({_item_label(item)})"
    binding = history.find_binding_entry(db, item.id, order_id, actions=binding_actions)
    if binding is None:
        logger.warning(
            "No binding entry found while unbinding item",
            extra={"item_id": item.id, "order_id": order_id},
        )
        return f"{label}: no binding to order {order_id} found in history; left unchanged for review."

    entries = history.list_item_history(db, item.id)
    prior = history.split_at(entries, binding)

    if not prior:
        audit_services.log_event(
            db,
            actor_user_id=performed_by_id,
            entity_type="InventoryItem",
            entity_id=str(item.id),
            action="delete_provisional",
            before={
                "item": item_snapshot(item),
                "history": [history.entry_snapshot(entry) for entry in entries],
            },
            metadata={"order_id": order_id},
            critical=True,
        )
        history.delete_item_history(db, item.id)
        db.delete(item)
        db.flush()
        logger.info(
            "Deleted provisional item on unbind",
            extra={"item_id": binding.item_id, "order_id": order_id},
        )
        return None

    preceding = prior[-1]
    if preceding.action not in RESTORABLE_ACTIONS:
        logger.warning(
            "Prior action is not restorable",
            extra={"item_id": item.id, "order_id": order_id, "action": preceding.action.value},
        )
        return (
            f"{label}: previous action {preceding.action.value} cannot be restored automatically; "
            "review required."
        )

    state = history.project_device_state(prior)
    item.status = state.status
    item.assigned_to_id = state.assigned_to_id
    item.location_id = state.location_id
    item.order_id = state.order_id
    db.flush()

    history.append_history(
        db,
        item,
        action=_compensating_action(state),
        performed_by_id=performed_by_id,
        assigned_to_id=state.assigned_to_id,
        order_id=state.order_id,
        from_location_id=state.location_id if item.status == Status.RETURNED_TO_OPERATOR else None,
        to_location_id=state.location_id if item.status in _WAREHOUSE_STATUSES else None,
        notes=f"Restored after removal from order {order_id}",
    )
    return None


# ---------------------------------------------------------------------------
# Stock views
# ---------------------------------------------------------------------------


def _positive_material(query):
    quantity = models.InventoryItem.__table__.c.quantity
    return query.filter(
        or_(models.InventoryItem.kind == models.ItemKindEnum.DEVICE, quantity > 0)
    )


def list_technician_stock(db: Session, *, technician_id: str) -> List[models.InventoryItem]:
    query = db.query(models.InventoryItem).filter(
        models.InventoryItem.assigned_to_id == technician_id,
        models.InventoryItem.status.in_(_TECHNICIAN_STATUSES),
    )
    return _positive_material(query).order_by(models.InventoryItem.id.asc()).all()


def list_warehouse_stock(db: Session, *, location_id: int) -> List[models.InventoryItem]:
    query = db.query(models.InventoryItem).filter(
        models.InventoryItem.location_id == location_id,
        models.InventoryItem.status.in_(_WAREHOUSE_STATUSES),
    )
    return _positive_material(query).order_by(models.InventoryItem.id.asc()).all()


def describe_items(db: Session, items: List[models.InventoryItem]) -> List[schemas.ItemRead]:
    """Read models with the transfer flags derived from open requests."""
    ids = [item.id for item in items]
    open_requests: Dict[int, models.TransferRequest] = {}
    if ids:
        for request in (
            db.query(models.TransferRequest)
            .filter(
                models.TransferRequest.item_id.in_(ids),
                models.TransferRequest.status == models.TransferStatusEnum.REQUESTED,
            )
            .all()
        ):
            open_requests[request.item_id] = request

    reads: List[schemas.ItemRead] = []
    for item in items:
        read = schemas.ItemRead.model_validate(item)
        request = open_requests.get(item.id)
        if request is not None:
            read.transfer_pending = True
            read.transfer_to_id = request.recipient_id
        reads.append(read)
    return reads
