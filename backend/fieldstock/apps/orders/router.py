from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from fieldstock.database import get_read_db, get_write_db
from fieldstock.security import get_current_active_user, require_roles
from fieldstock.apps.accounts import models as account_models
from fieldstock.apps.audit import schemas as audit_schemas
from fieldstock.apps.warehouse import schemas as warehouse_schemas
from fieldstock.apps.warehouse import services as warehouse_services

from . import completion, models, schemas, services

router = APIRouter(prefix="/orders", tags=["orders"])

COORDINATOR_ROLES = [account_models.AccountRole.COORDINATOR]
TECHNICIAN_ROLES = [account_models.AccountRole.TECHNICIAN]


def _ensure_can_view_order(current_user: account_models.User, order: models.Order) -> None:
    if current_user.role == account_models.AccountRole.TECHNICIAN and order.assigned_to_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Technicians can only view their own orders.",
        )


@router.post("", response_model=schemas.OrderRead, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: schemas.OrderCreate,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*COORDINATOR_ROLES)),
):
    order = services.create_order(db, actor=current_user, payload=payload)
    db.commit()
    return order


@router.get("/{order_id}", response_model=schemas.OrderDetail)
def get_order(
    order_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    order = services.get_order_or_404(db, order_id)
    _ensure_can_view_order(current_user, order)
    return services.get_order_detail(db, order)


@router.get("/{order_id}/attempts", response_model=List[schemas.OrderRead])
def list_attempts(
    order_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    order = services.get_order_or_404(db, order_id)
    _ensure_can_view_order(current_user, order)
    return services.get_attempt_chain(db, order)


@router.get("/{order_id}/history", response_model=List[audit_schemas.AuditEventRead])
def get_order_history(
    order_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_roles(*COORDINATOR_ROLES)),
):
    services.get_order_or_404(db, order_id)
    return services.list_order_history(db, order_id=order_id)


@router.post("/{order_id}/assign", response_model=schemas.OrderRead)
def assign_order(
    order_id: int,
    payload: schemas.OrderAssign,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*COORDINATOR_ROLES)),
):
    order = services.get_order_or_404(db, order_id)
    services.assign_technician(db, actor=current_user, order=order, technician_id=payload.technician_id)
    db.commit()
    return order


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


@router.post("/{order_id}/complete", response_model=schemas.CompletionResult)
def complete_order(
    order_id: int,
    payload: schemas.CompletionRequest,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*TECHNICIAN_ROLES)),
):
    order = services.get_order_or_404(db, order_id)
    result = completion.complete_order(db, order=order, technician=current_user, payload=payload)
    db.commit()
    return result


@router.post("/{order_id}/amend", response_model=schemas.CompletionResult)
def amend_order(
    order_id: int,
    payload: schemas.CompletionRequest,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*TECHNICIAN_ROLES)),
):
    order = services.get_order_or_404(db, order_id)
    result = completion.amend_completion(db, order=order, technician=current_user, payload=payload)
    db.commit()
    return result


@router.post("/{order_id}/admin-edit", response_model=schemas.CompletionResult)
def admin_edit_order(
    order_id: int,
    payload: schemas.CompletionRequest,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*COORDINATOR_ROLES)),
):
    order = services.get_order_or_404(db, order_id)
    result = completion.admin_edit_completion(db, order=order, editor=current_user, payload=payload)
    db.commit()
    return result


@router.post("/{order_id}/collect", response_model=warehouse_schemas.ItemRead)
def collect_device(
    order_id: int,
    payload: schemas.CollectRequest,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*TECHNICIAN_ROLES)),
):
    """Record a device picked up at the customer before the order is completed."""
    order = services.get_order_or_404(db, order_id)
    if order.assigned_to_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the assigned technician can collect devices for this order.",
        )
    if order.status != models.OrderStatusEnum.ASSIGNED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Order is {order.status.value}; devices can only be collected on ASSIGNED orders.",
        )
    item = warehouse_services.collect_from_client(
        db,
        order_id=order.id,
        technician_id=current_user.id,
        performed_by_id=current_user.id,
        device=payload.device,
    )
    services.link_collected_device(db, order_id=order.id, item_id=item.id)
    db.commit()
    return warehouse_services.describe_items(db, [item])[0]
