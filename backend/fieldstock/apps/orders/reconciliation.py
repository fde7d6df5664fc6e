"""
Order equipment/material reconciliation.

Brings warehouse state in line with what a technician (or an admin) reports
as used on an order. The join tables hold the previously reported usage;
only the difference to the newly reported usage is applied:

- materials: reductions are credited back to the technician (deficit
  first), increases are consumed from their stock with any shortfall
  booked as deficit;
- installed devices: new ones are bound to the order, removed ones are
  restored from their history;
- collected devices: new serials are collected, dropped ones are restored
  the same way as removed equipment.

Every device reference is validated before anything is mutated.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
import enum
import logging
from typing import Dict, Iterable, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from fieldstock.apps.warehouse import deficits
from fieldstock.apps.warehouse import models as warehouse_models
from fieldstock.apps.warehouse import schemas as warehouse_schemas
from fieldstock.apps.warehouse import services as warehouse_services
from fieldstock.utils.identifiers import normalize_serial

from . import models, schemas, services

logger = logging.getLogger(__name__)

Action = warehouse_models.HistoryActionEnum


class ReconcileMode(str, enum.Enum):
    COMPLETE = "COMPLETE"
    AMEND = "AMEND"
    ADMIN = "ADMIN"


@dataclass
class ReconcileResult:
    warnings: List[str] = field(default_factory=list)


def _sum_usage(pairs: Iterable) -> Dict[int, int]:
    totals: Dict[int, int] = OrderedDict()
    for material_definition_id, quantity in pairs:
        totals[material_definition_id] = totals.get(material_definition_id, 0) + quantity
    return totals


def _collected_key(serial_number: Optional[str], name: Optional[str]) -> str:
    serial = normalize_serial(serial_number)
    if serial:
        return serial
    return f"name:{(name or '').strip().lower()}"


def _device_label(item: warehouse_models.InventoryItem) -> str:
    serial = getattr(item, "serial_number", None)
    return f"{item.name} ({serial or f'#{item.id}'})"


def _still_collected_on(item: warehouse_models.DeviceItem, order: models.Order) -> bool:
    return item.order_id == order.id and item.status == warehouse_models.ItemStatusEnum.COLLECTED_FROM_CLIENT


# ---------------------------------------------------------------------------
# Validation (no mutation)
# ---------------------------------------------------------------------------


def _validate_equipment(
    db: Session,
    *,
    order: models.Order,
    item_ids: List[int],
    technician_id: Optional[str],
    is_admin: bool,
) -> List[warehouse_models.InventoryItem]:
    items = []
    for item_id in item_ids:
        item = warehouse_services.get_item_or_404(db, item_id, kind=warehouse_models.ItemKindEnum.DEVICE)
        warehouse_services.validate_binding(
            db,
            item,
            order_id=order.id,
            technician_id=technician_id,
            is_admin=is_admin,
        )
        items.append(item)
    return items


def _validate_collected(
    db: Session,
    *,
    order: models.Order,
    devices: List[warehouse_schemas.CollectedDevice],
) -> None:
    previous = {
        _collected_key(item.serial_number, item.name): item
        for item in services.list_collected_items(db, order.id)
    }
    desired = {_collected_key(device.serial_number, device.name) for device in devices}

    for device in devices:
        if _collected_key(device.serial_number, device.name) in previous:
            continue
        existing = warehouse_services.find_device_by_serial(db, device.serial_number)
        if existing is not None:
            warehouse_services.ensure_collectable(db, existing)

    for key, item in previous.items():
        if key in desired or not _still_collected_on(item, order):
            continue
        if warehouse_services.get_open_transfer(db, item.id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{_device_label(item)} has a pending transfer.",
            )


# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------


def _reconcile_materials(
    db: Session,
    *,
    order: models.Order,
    technician_id: Optional[str],
    editor_id: Optional[str],
    definitions: Dict[int, warehouse_models.MaterialDefinition],
    desired: Dict[int, int],
) -> List[str]:
    warnings: List[str] = []
    previous_rows = db.query(models.OrderMaterial).filter(models.OrderMaterial.order_id == order.id).all()
    previous = _sum_usage((row.material_definition_id, row.quantity) for row in previous_rows)

    if technician_id is not None:
        for material_definition_id in list(previous) + [key for key in desired if key not in previous]:
            delta = desired.get(material_definition_id, 0) - previous.get(material_definition_id, 0)
            if delta < 0:
                deficits.credit_back(
                    db,
                    technician_id=technician_id,
                    material_definition_id=material_definition_id,
                    quantity=-delta,
                    performed_by_id=editor_id,
                    order_id=order.id,
                )
            elif delta > 0:
                result = deficits.record_consumption(
                    db,
                    technician_id=technician_id,
                    material_definition_id=material_definition_id,
                    quantity=delta,
                    performed_by_id=editor_id,
                    order_id=order.id,
                )
                if result.missing:
                    name = definitions[material_definition_id].name
                    if result.covered == 0:
                        warnings.append(
                            f"Used {delta} x {name} not held by the technician; {result.missing} booked as deficit."
                        )
                    else:
                        warnings.append(
                            f"Used {delta} x {name} but only {result.covered} in stock; "
                            f"{result.missing} booked as deficit."
                        )

    db.query(models.OrderMaterial).filter(models.OrderMaterial.order_id == order.id).delete(
        synchronize_session=False
    )
    for material_definition_id, quantity in desired.items():
        definition = definitions[material_definition_id]
        db.add(
            models.OrderMaterial(
                order_id=order.id,
                material_definition_id=material_definition_id,
                quantity=quantity,
                unit=definition.unit.value if definition.unit else "PIECE",
            )
        )
    db.flush()
    return warnings


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------


def _unlink_equipment(db: Session, *, order_id: int, item_id: int) -> None:
    db.query(models.OrderEquipment).filter(
        models.OrderEquipment.order_id == order_id,
        models.OrderEquipment.item_id == item_id,
    ).delete(synchronize_session=False)
    db.flush()


def _remove_equipment(
    db: Session,
    *,
    order: models.Order,
    item_ids: List[int],
    editor_id: Optional[str],
) -> List[str]:
    warnings: List[str] = []
    for item_id in item_ids:
        item = db.get(warehouse_models.InventoryItem, item_id)
        if item is None:
            _unlink_equipment(db, order_id=order.id, item_id=item_id)
            continue
        if item.order_id != order.id:
            warnings.append(f"{_device_label(item)} is no longer bound to this order; left unchanged.")
            _unlink_equipment(db, order_id=order.id, item_id=item_id)
            continue
        warning = warehouse_services.unbind_from_order(
            db,
            item,
            order_id=order.id,
            performed_by_id=editor_id,
            binding_actions=(Action.ASSIGNED_TO_ORDER,),
        )
        if warning:
            # Restoration deferred for review; the device stays listed on the order.
            warnings.append(warning)
            continue
        _unlink_equipment(db, order_id=order.id, item_id=item_id)
    return warnings


def _add_equipment(
    db: Session,
    *,
    order: models.Order,
    items: List[warehouse_models.InventoryItem],
    technician_id: Optional[str],
    editor_id: Optional[str],
    is_admin: bool,
) -> None:
    for item in items:
        warehouse_services.bind_to_order(
            db,
            item,
            order_id=order.id,
            technician_id=technician_id,
            performed_by_id=editor_id,
            is_admin=is_admin,
        )
        db.add(models.OrderEquipment(order_id=order.id, item_id=item.id))
    db.flush()


def _reconcile_collected(
    db: Session,
    *,
    order: models.Order,
    technician_id: str,
    editor_id: Optional[str],
    devices: List[warehouse_schemas.CollectedDevice],
) -> List[str]:
    """
    Compare the order's recorded collection with the reported one.

    Devices already recorded on the order are left as they are, even when
    they have since been handed in at the warehouse or returned to the
    operator.
    """
    warnings: List[str] = []
    previous = {
        _collected_key(item.serial_number, item.name): item
        for item in services.list_collected_items(db, order.id)
    }
    desired = OrderedDict()
    for device in devices:
        desired.setdefault(_collected_key(device.serial_number, device.name), device)

    for key, item in previous.items():
        if key in desired:
            continue
        if not _still_collected_on(item, order):
            warnings.append(
                f"{_device_label(item)} has left the technician since it was collected; "
                "removed from the order without moving it."
            )
            services.unlink_collected_device(db, order_id=order.id, item_id=item.id)
            continue
        warning = warehouse_services.unbind_from_order(
            db,
            item,
            order_id=order.id,
            performed_by_id=editor_id,
            binding_actions=(Action.COLLECTED_FROM_CLIENT,),
        )
        if warning:
            warnings.append(warning)
            continue
        services.unlink_collected_device(db, order_id=order.id, item_id=item.id)

    for key, device in desired.items():
        if key in previous:
            continue
        item = warehouse_services.collect_from_client(
            db,
            order_id=order.id,
            technician_id=technician_id,
            performed_by_id=editor_id,
            device=device,
        )
        services.link_collected_device(db, order_id=order.id, item_id=item.id)
    return warnings


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def reconcile_order(
    db: Session,
    *,
    order: models.Order,
    technician_id: Optional[str],
    editor_id: Optional[str],
    equipment_ids: List[int],
    materials: List[schemas.MaterialUsage],
    collected_devices: List[warehouse_schemas.CollectedDevice],
    mode: ReconcileMode,
) -> ReconcileResult:
    """
    Apply the difference between the order's recorded usage and the new one.

    Raises before mutating anything when a device or material reference is
    invalid. Without a technician the material rows are rewritten without
    stock movement and client collection is skipped.
    """
    is_admin = mode == ReconcileMode.ADMIN
    result = ReconcileResult()

    previous_ids = services.list_equipment_ids(db, order.id)
    new_ids = list(OrderedDict.fromkeys(equipment_ids))
    to_add = [item_id for item_id in new_ids if item_id not in previous_ids]
    to_remove = [item_id for item_id in previous_ids if item_id not in new_ids]

    items_to_add = _validate_equipment(
        db,
        order=order,
        item_ids=to_add,
        technician_id=technician_id,
        is_admin=is_admin,
    )
    desired_materials = _sum_usage((usage.material_definition_id, usage.quantity) for usage in materials)
    definitions = {
        material_definition_id: deficits.get_material_definition_or_404(db, material_definition_id)
        for material_definition_id in desired_materials
    }
    if technician_id is not None:
        _validate_collected(db, order=order, devices=collected_devices)

    result.warnings.extend(
        _reconcile_materials(
            db,
            order=order,
            technician_id=technician_id,
            editor_id=editor_id,
            definitions=definitions,
            desired=desired_materials,
        )
    )
    result.warnings.extend(_remove_equipment(db, order=order, item_ids=to_remove, editor_id=editor_id))
    _add_equipment(
        db,
        order=order,
        items=items_to_add,
        technician_id=technician_id,
        editor_id=editor_id,
        is_admin=is_admin,
    )

    if technician_id is None:
        if collected_devices:
            result.warnings.append("Order has no technician; collected devices were not recorded.")
    else:
        result.warnings.extend(
            _reconcile_collected(
                db,
                order=order,
                technician_id=technician_id,
                editor_id=editor_id,
                devices=collected_devices,
            )
        )

    logger.info(
        "Order reconciled",
        extra={
            "order_id": order.id,
            "mode": mode.value,
            "added": len(items_to_add),
            "removed": len(to_remove),
            "warnings": len(result.warnings),
        },
    )
    return result
