"""
Technician-to-technician transfers.

A transfer is negotiated through a ``TransferRequest``: the sender keeps the
item until the recipient confirms. Material requests split the requested
quantity off into a pending lot so the sender can keep working with the
rest of the lot.

    REQUESTED -> CONFIRMED | REJECTED | CANCELLED
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import List

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from fieldstock.apps.accounts import models as account_models
from fieldstock.apps.accounts import services as account_services

from . import deficits, history, models, schemas, services

logger = logging.getLogger(__name__)

Status = models.ItemStatusEnum
TransferStatus = models.TransferStatusEnum
Action = models.HistoryActionEnum


def _find_open_material_request(
    db: Session,
    *,
    sender_id: str,
    recipient_id: str,
    material_definition_id: int,
):
    return (
        db.query(models.TransferRequest)
        .join(models.MaterialItem, models.MaterialItem.id == models.TransferRequest.item_id)
        .filter(
            models.TransferRequest.sender_id == sender_id,
            models.TransferRequest.recipient_id == recipient_id,
            models.TransferRequest.status == TransferStatus.REQUESTED,
            models.MaterialItem.material_definition_id == material_definition_id,
        )
        .first()
    )


def request_transfer(
    db: Session,
    *,
    sender: account_models.User,
    payload: schemas.TransferCreate,
) -> List[models.TransferRequest]:
    if payload.recipient_id == sender.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot transfer items to yourself.",
        )
    recipient = account_services.get_active_technician(db, payload.recipient_id)

    requests: List[models.TransferRequest] = []
    for ref in payload.items:
        item = services.get_item_or_404(db, ref.id, kind=models.ItemKindEnum(ref.kind))
        if item.assigned_to_id != sender.id or item.status != Status.ASSIGNED:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{item.name} (#{item.id}) is not held by you.",
            )
        if services.get_open_transfer(db, item.id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{item.name} (#{item.id}) already has a pending transfer.",
            )

        if isinstance(item, models.DeviceItem):
            request = models.TransferRequest(
                item_id=item.id,
                sender_id=sender.id,
                recipient_id=recipient.id,
                quantity=1,
                notes=payload.notes,
            )
            db.add(request)
            db.flush()
            history.append_history(
                db,
                item,
                action=Action.ISSUED,
                performed_by_id=sender.id,
                assigned_to_id=sender.id,
                quantity=1,
                notes=f"Transfer to {recipient.full_name} requested",
            )
            requests.append(request)
            continue

        if (item.quantity or 0) < ref.quantity:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Insufficient quantity of {item.name}: requested {ref.quantity}, held {item.quantity or 0}.",
            )

        request = _find_open_material_request(
            db,
            sender_id=sender.id,
            recipient_id=recipient.id,
            material_definition_id=item.material_definition_id,
        )
        if request is not None:
            pending_lot = services.get_item_or_404(db, request.item_id)
            pending_lot.quantity = (pending_lot.quantity or 0) + ref.quantity
            request.quantity += ref.quantity
        else:
            pending_lot = models.MaterialItem(
                name=item.name,
                material_definition_id=item.material_definition_id,
                quantity=ref.quantity,
                unit=item.unit,
                price=item.price,
                status=Status.ASSIGNED,
                assigned_to_id=sender.id,
            )
            db.add(pending_lot)
            db.flush()
            request = models.TransferRequest(
                item_id=pending_lot.id,
                sender_id=sender.id,
                recipient_id=recipient.id,
                quantity=ref.quantity,
                notes=payload.notes,
            )
            db.add(request)

        item.quantity = item.quantity - ref.quantity
        db.flush()
        # Out of the sender's own lot, into the lot earmarked for the recipient.
        history.append_history(
            db,
            item,
            action=Action.ISSUED,
            performed_by_id=sender.id,
            assigned_to_id=sender.id,
            quantity=ref.quantity,
            notes=f"{ref.quantity} set aside for transfer to {recipient.full_name}",
        )
        history.append_history(
            db,
            pending_lot,
            action=Action.ISSUED,
            performed_by_id=sender.id,
            assigned_to_id=sender.id,
            quantity=ref.quantity,
            notes=f"Awaiting confirmation by {recipient.full_name}",
        )
        requests.append(request)

    logger.info(
        "Transfer requested",
        extra={"sender_id": sender.id, "recipient_id": recipient.id, "count": len(requests)},
    )
    return requests


def _get_open_request_or_404(db: Session, item_id: int) -> models.TransferRequest:
    request = services.get_open_transfer(db, item_id)
    if request is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No pending transfer for item {item_id}.",
        )
    return request


def _close(request: models.TransferRequest, new_status: models.TransferStatusEnum) -> None:
    request.status = new_status
    request.resolved_at = datetime.now(timezone.utc)


def confirm_transfer(
    db: Session,
    *,
    recipient: account_models.User,
    item_id: int,
) -> models.InventoryItem:
    item = services.get_item_or_404(db, item_id)
    request = _get_open_request_or_404(db, item_id)
    if request.recipient_id != recipient.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Transfer of {item.name} (#{item.id}) is not addressed to you.",
        )
    sender_id = request.sender_id

    target = item
    if isinstance(item, models.MaterialItem):
        existing = deficits.find_technician_lot(
            db,
            technician_id=recipient.id,
            material_definition_id=item.material_definition_id,
        )
        if existing is not None:
            existing.quantity = (existing.quantity or 0) + (item.quantity or 0)
            request.item = existing
            target = existing

    if target is item:
        item.assigned_to_id = recipient.id
    _close(request, TransferStatus.CONFIRMED)
    db.flush()

    if target is not item:
        _discard_pending_lot(db, item)

    history.append_history(
        db,
        target,
        action=models.HistoryActionEnum.TRANSFER,
        performed_by_id=sender_id,
        assigned_to_id=recipient.id,
        quantity=request.quantity if isinstance(target, models.MaterialItem) else None,
        notes=request.notes,
    )
    logger.info(
        "Transfer confirmed",
        extra={"item_id": target.id, "sender_id": sender_id, "recipient_id": recipient.id},
    )
    return target


def _discard_pending_lot(db: Session, lot: models.MaterialItem) -> None:
    # The quantities are already on the sender's and the receiving lot's ledgers.
    history.delete_item_history(db, lot.id)
    db.delete(lot)
    db.flush()


def _roll_back(
    db: Session,
    request: models.TransferRequest,
    item: models.InventoryItem,
    *,
    performed_by_id: str,
    notes: str,
) -> models.InventoryItem:
    """Give the item back to the sender, merging a pending material lot into their own lot."""
    target = item
    if isinstance(item, models.MaterialItem):
        existing = deficits.find_technician_lot(
            db,
            technician_id=request.sender_id,
            material_definition_id=item.material_definition_id,
        )
        if existing is not None:
            existing.quantity = (existing.quantity or 0) + (item.quantity or 0)
            request.item = existing
            db.flush()
            _discard_pending_lot(db, item)
            target = existing

    history.append_history(
        db,
        target,
        action=Action.RETURNED_TO_TECHNICIAN,
        performed_by_id=performed_by_id,
        assigned_to_id=request.sender_id,
        quantity=request.quantity,
        notes=notes,
    )
    return target


def reject_transfer(
    db: Session,
    *,
    recipient: account_models.User,
    item_id: int,
) -> models.InventoryItem:
    item = services.get_item_or_404(db, item_id)
    request = _get_open_request_or_404(db, item_id)
    if request.recipient_id != recipient.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Transfer of {item.name} (#{item.id}) is not addressed to you.",
        )
    result = _roll_back(
        db,
        request,
        item,
        performed_by_id=recipient.id,
        notes=f"Transfer rejected by {recipient.full_name}",
    )
    _close(request, TransferStatus.REJECTED)
    db.flush()
    logger.info("Transfer rejected", extra={"item_id": item_id, "recipient_id": recipient.id})
    return result


def cancel_transfer(
    db: Session,
    *,
    sender: account_models.User,
    item_id: int,
) -> models.InventoryItem:
    item = services.get_item_or_404(db, item_id)
    request = _get_open_request_or_404(db, item_id)
    if request.sender_id != sender.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Transfer of {item.name} (#{item.id}) was not requested by you.",
        )
    result = _roll_back(
        db,
        request,
        item,
        performed_by_id=sender.id,
        notes="Transfer cancelled by sender",
    )
    _close(request, TransferStatus.CANCELLED)
    db.flush()
    logger.info("Transfer cancelled", extra={"item_id": item_id, "sender_id": sender.id})
    return result


def list_incoming_transfers(db: Session, *, recipient_id: str) -> List[models.TransferRequest]:
    return (
        db.query(models.TransferRequest)
        .filter(
            models.TransferRequest.recipient_id == recipient_id,
            models.TransferRequest.status == TransferStatus.REQUESTED,
        )
        .order_by(models.TransferRequest.created_at.asc(), models.TransferRequest.id.asc())
        .all()
    )


def list_outgoing_transfers(db: Session, *, sender_id: str) -> List[models.TransferRequest]:
    return (
        db.query(models.TransferRequest)
        .filter(
            models.TransferRequest.sender_id == sender_id,
            models.TransferRequest.status == TransferStatus.REQUESTED,
        )
        .order_by(models.TransferRequest.created_at.asc(), models.TransferRequest.id.asc())
        .all()
    )
