"""
Technician material deficits.

A deficit is material a technician has reported as used on orders beyond
what they physically held. It is settled by later issues before any surplus
shows up as visible stock, and it never goes below zero (the row is removed
when it reaches zero).
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy import and_, exists
from sqlalchemy.orm import Session

from . import history, models

logger = logging.getLogger(__name__)


@dataclass
class ConsumptionResult:
    covered: int
    missing: int
    lot: Optional[models.MaterialItem] = None


@dataclass
class SettlementResult:
    settled: int
    remainder: int


def _open_transfer_exists():
    return exists().where(
        and_(
            models.TransferRequest.item_id == models.MaterialItem.id,
            models.TransferRequest.status == models.TransferStatusEnum.REQUESTED,
        )
    )


def get_material_definition_or_404(db: Session, material_definition_id: int) -> models.MaterialDefinition:
    definition = db.get(models.MaterialDefinition, material_definition_id)
    if definition is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Material definition {material_definition_id} not found.",
        )
    return definition


def find_technician_lot(
    db: Session,
    *,
    technician_id: str,
    material_definition_id: int,
) -> Optional[models.MaterialItem]:
    """The technician's own (non-pending) lot for a material, if any."""
    return (
        db.query(models.MaterialItem)
        .filter(
            models.MaterialItem.assigned_to_id == technician_id,
            models.MaterialItem.material_definition_id == material_definition_id,
            models.MaterialItem.status == models.ItemStatusEnum.ASSIGNED,
            models.MaterialItem.location_id.is_(None),
            ~_open_transfer_exists(),
        )
        .order_by(models.MaterialItem.id.asc())
        .first()
    )


def create_technician_lot(
    db: Session,
    *,
    technician_id: str,
    definition: models.MaterialDefinition,
    quantity: int,
) -> models.MaterialItem:
    lot = models.MaterialItem(
        name=definition.name,
        material_definition_id=definition.id,
        quantity=quantity,
        unit=definition.unit,
        price=definition.price or 0.0,
        status=models.ItemStatusEnum.ASSIGNED,
        assigned_to_id=technician_id,
        location_id=None,
    )
    db.add(lot)
    db.flush()
    return lot


def _get_deficit_row(
    db: Session,
    *,
    technician_id: str,
    material_definition_id: int,
) -> Optional[models.TechnicianMaterialDeficit]:
    return (
        db.query(models.TechnicianMaterialDeficit)
        .filter(
            models.TechnicianMaterialDeficit.technician_id == technician_id,
            models.TechnicianMaterialDeficit.material_definition_id == material_definition_id,
        )
        .first()
    )


def get_deficit(db: Session, *, technician_id: str, material_definition_id: int) -> int:
    row = _get_deficit_row(db, technician_id=technician_id, material_definition_id=material_definition_id)
    return row.quantity if row else 0


def list_deficits(db: Session, *, technician_id: str) -> List[models.TechnicianMaterialDeficit]:
    return (
        db.query(models.TechnicianMaterialDeficit)
        .filter(
            models.TechnicianMaterialDeficit.technician_id == technician_id,
            models.TechnicianMaterialDeficit.quantity > 0,
        )
        .order_by(models.TechnicianMaterialDeficit.material_definition_id.asc())
        .all()
    )


def _increase_deficit(db: Session, *, technician_id: str, material_definition_id: int, quantity: int) -> None:
    row = _get_deficit_row(db, technician_id=technician_id, material_definition_id=material_definition_id)
    if row is None:
        row = models.TechnicianMaterialDeficit(
            technician_id=technician_id,
            material_definition_id=material_definition_id,
            quantity=0,
        )
        db.add(row)
    row.quantity += quantity
    db.flush()


def _reduce_deficit(db: Session, *, technician_id: str, material_definition_id: int, quantity: int) -> int:
    """Reduce the deficit by up to ``quantity``; returns how much was settled."""
    row = _get_deficit_row(db, technician_id=technician_id, material_definition_id=material_definition_id)
    if row is None or row.quantity <= 0 or quantity <= 0:
        return 0
    settled = min(row.quantity, quantity)
    row.quantity -= settled
    if row.quantity <= 0:
        db.delete(row)
    db.flush()
    return settled


def record_consumption(
    db: Session,
    *,
    technician_id: str,
    material_definition_id: int,
    quantity: int,
    performed_by_id: Optional[str] = None,
    order_id: Optional[int] = None,
) -> ConsumptionResult:
    """
    Consume ``quantity`` from the technician's lot.

    Whatever the lot cannot cover is booked as deficit instead of failing.
    """
    if quantity <= 0:
        return ConsumptionResult(covered=0, missing=0, lot=None)

    lot = find_technician_lot(db, technician_id=technician_id, material_definition_id=material_definition_id)
    held = (lot.quantity or 0) if lot else 0
    covered = min(held, quantity)
    missing = quantity - covered

    if lot is not None and covered > 0:
        lot.quantity = held - covered
        db.flush()
        history.append_history(
            db,
            lot,
            action=models.HistoryActionEnum.ASSIGNED_TO_ORDER,
            performed_by_id=performed_by_id,
            assigned_to_id=technician_id,
            order_id=order_id,
            quantity=covered,
        )

    if missing > 0:
        _increase_deficit(
            db,
            technician_id=technician_id,
            material_definition_id=material_definition_id,
            quantity=missing,
        )
        logger.info(
            "Material shortfall booked as deficit",
            extra={
                "technician_id": technician_id,
                "material_definition_id": material_definition_id,
                "missing": missing,
                "order_id": order_id,
            },
        )

    return ConsumptionResult(covered=covered, missing=missing, lot=lot)


def settle_on_issue(
    db: Session,
    *,
    technician_id: str,
    material_definition_id: int,
    quantity: int,
) -> SettlementResult:
    """Apply an issued quantity to the deficit first; the remainder is credited to stock by the caller."""
    settled = _reduce_deficit(
        db,
        technician_id=technician_id,
        material_definition_id=material_definition_id,
        quantity=quantity,
    )
    return SettlementResult(settled=settled, remainder=quantity - settled)


def credit_back(
    db: Session,
    *,
    technician_id: str,
    material_definition_id: int,
    quantity: int,
    performed_by_id: Optional[str] = None,
    order_id: Optional[int] = None,
) -> SettlementResult:
    """
    Give previously consumed material back to the technician.

    Offsets the deficit first and credits the remainder to the technician's
    lot, creating the lot when they no longer hold one.
    """
    if quantity <= 0:
        return SettlementResult(settled=0, remainder=0)

    result = settle_on_issue(
        db,
        technician_id=technician_id,
        material_definition_id=material_definition_id,
        quantity=quantity,
    )
    if result.remainder <= 0:
        return result

    lot = find_technician_lot(db, technician_id=technician_id, material_definition_id=material_definition_id)
    if lot is None:
        definition = get_material_definition_or_404(db, material_definition_id)
        lot = create_technician_lot(db, technician_id=technician_id, definition=definition, quantity=result.remainder)
    else:
        lot.quantity = (lot.quantity or 0) + result.remainder
        db.flush()

    history.append_history(
        db,
        lot,
        action=models.HistoryActionEnum.RETURNED_TO_TECHNICIAN,
        performed_by_id=performed_by_id,
        assigned_to_id=technician_id,
        order_id=order_id,
        quantity=result.remainder,
    )
    return result
