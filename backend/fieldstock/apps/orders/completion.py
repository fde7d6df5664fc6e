"""
Order completion, amendment and admin correction.

All three share one write path: reported usage is reconciled against the
warehouse, settlement entries are rewritten from the reported work codes
and the order status change is audited. They differ only in who may call
them and in which window.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
import os
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from fieldstock.apps.accounts import models as account_models

from . import models, reconciliation, schemas, services, settlement

logger = logging.getLogger(__name__)

AMEND_WINDOW_MINUTES = int(os.getenv("AMEND_WINDOW_MINUTES", "15"))


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def can_technician_amend(order: models.Order, *, now: Optional[datetime] = None) -> bool:
    if order.completed_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return _as_aware(now) - _as_aware(order.completed_at) <= timedelta(minutes=AMEND_WINDOW_MINUTES)


def _apply_completion(
    db: Session,
    *,
    order: models.Order,
    technician_id: Optional[str],
    editor_id: Optional[str],
    payload: schemas.CompletionRequest,
    mode: reconciliation.ReconcileMode,
) -> schemas.CompletionResult:
    if payload.status not in models.FINAL_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Completion status must be COMPLETED or NOT_COMPLETED.",
        )
    if (
        payload.status == models.OrderStatusEnum.COMPLETED
        and order.type == models.OrderTypeEnum.INSTALLATION
        and not payload.work_codes
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A completed installation requires at least one work code.",
        )

    if payload.status == models.OrderStatusEnum.NOT_COMPLETED:
        equipment_ids: List[int] = []
        used_materials: List[schemas.MaterialUsage] = []
        collected_devices = []
    else:
        equipment_ids = payload.equipment_ids
        used_materials = payload.used_materials
        collected_devices = payload.collected_devices

    result = reconciliation.reconcile_order(
        db,
        order=order,
        technician_id=technician_id,
        editor_id=editor_id,
        equipment_ids=equipment_ids,
        materials=used_materials,
        collected_devices=collected_devices,
        mode=mode,
    )
    warnings = list(result.warnings)
    warnings.extend(settlement.rewrite_settlement_entries(db, order_id=order.id, work_codes=payload.work_codes))

    before = order.status
    order.status = payload.status
    order.notes = payload.notes
    order.failure_reason = payload.failure_reason if payload.status == models.OrderStatusEnum.NOT_COMPLETED else None
    if mode == reconciliation.ReconcileMode.COMPLETE or order.completed_at is None:
        order.completed_at = datetime.now(timezone.utc)
    db.flush()

    services.record_order_history(
        db,
        order=order,
        actor_user_id=editor_id,
        action=mode.value.lower(),
        before_status=before,
        note=payload.notes,
        metadata={"warnings": warnings} if warnings else None,
        critical=True,
    )
    logger.info(
        "Order completion applied",
        extra={"order_id": order.id, "mode": mode.value, "status": order.status.value},
    )
    return schemas.CompletionResult(warnings=warnings)


def complete_order(
    db: Session,
    *,
    order: models.Order,
    technician: account_models.User,
    payload: schemas.CompletionRequest,
) -> schemas.CompletionResult:
    if order.assigned_to_id != technician.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the assigned technician can complete this order.",
        )
    if order.status != models.OrderStatusEnum.ASSIGNED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Order is {order.status.value}; only ASSIGNED orders can be completed.",
        )
    return _apply_completion(
        db,
        order=order,
        technician_id=technician.id,
        editor_id=technician.id,
        payload=payload,
        mode=reconciliation.ReconcileMode.COMPLETE,
    )


def amend_completion(
    db: Session,
    *,
    order: models.Order,
    technician: account_models.User,
    payload: schemas.CompletionRequest,
    now: Optional[datetime] = None,
) -> schemas.CompletionResult:
    """
    Correct a just-finished order as the technician.

    Only allowed within ``AMEND_WINDOW_MINUTES`` of the original completion;
    amending does not move the completion time.
    """
    if order.assigned_to_id != technician.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the assigned technician can amend this order.",
        )
    if order.status not in models.FINAL_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only completed orders can be amended.",
        )
    if not can_technician_amend(order, now=now):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"The amend window of {AMEND_WINDOW_MINUTES} minutes has expired.",
        )
    return _apply_completion(
        db,
        order=order,
        technician_id=technician.id,
        editor_id=technician.id,
        payload=payload,
        mode=reconciliation.ReconcileMode.AMEND,
    )


def admin_edit_completion(
    db: Session,
    *,
    order: models.Order,
    editor: account_models.User,
    payload: schemas.CompletionRequest,
) -> schemas.CompletionResult:
    if not editor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required.",
        )
    return _apply_completion(
        db,
        order=order,
        technician_id=order.assigned_to_id,
        editor_id=editor.id,
        payload=payload,
        mode=reconciliation.ReconcileMode.ADMIN,
    )
