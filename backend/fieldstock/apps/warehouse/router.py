from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from fieldstock.database import get_read_db, get_write_db
from fieldstock.security import get_current_active_user, require_roles
from fieldstock.apps.accounts import models as account_models

from . import deficits, history, schemas, services, transfers

router = APIRouter(prefix="/warehouse", tags=["warehouse"])

WAREHOUSE_ROLES = [
    account_models.AccountRole.COORDINATOR,
    account_models.AccountRole.WAREHOUSEMAN,
]

TECHNICIAN_ROLES = [account_models.AccountRole.TECHNICIAN]


def _ensure_can_view_technician(current_user: account_models.User, technician_id: str) -> None:
    if current_user.id == technician_id:
        return
    if current_user.role == account_models.AccountRole.TECHNICIAN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Technicians can only view their own stock.",
        )


# ---------------------------------------------------------------------------
# Warehouse desk
# ---------------------------------------------------------------------------


@router.post(
    "/receive",
    response_model=List[schemas.ItemRead],
    status_code=status.HTTP_201_CREATED,
)
def receive_items(
    payload: schemas.ReceiveRequest,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*WAREHOUSE_ROLES)),
):
    items = services.receive_items(db, actor=current_user, payload=payload)
    db.commit()
    return services.describe_items(db, items)


@router.post("/issue", response_model=List[schemas.ItemRead])
def issue_items(
    payload: schemas.IssueRequest,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*WAREHOUSE_ROLES)),
):
    items = services.issue_items(db, actor=current_user, payload=payload)
    db.commit()
    return services.describe_items(db, items)


@router.post("/return", response_model=List[schemas.ItemRead])
def return_to_warehouse(
    payload: schemas.ReturnRequest,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*WAREHOUSE_ROLES)),
):
    items = services.return_to_warehouse(db, actor=current_user, payload=payload)
    db.commit()
    return services.describe_items(db, items)


@router.post("/return-to-operator", response_model=List[schemas.ItemRead])
def return_to_operator(
    payload: schemas.ReturnToOperatorRequest,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*WAREHOUSE_ROLES)),
):
    items = services.return_to_operator(db, actor=current_user, payload=payload)
    db.commit()
    return services.describe_items(db, items)


@router.post("/location-transfer", response_model=List[schemas.ItemRead])
def transfer_between_locations(
    payload: schemas.LocationTransferRequest,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*WAREHOUSE_ROLES)),
):
    items = services.transfer_between_locations(db, actor=current_user, payload=payload)
    db.commit()
    return services.describe_items(db, items)


@router.get("/locations/{location_id}/stock", response_model=List[schemas.ItemRead])
def list_warehouse_stock(
    location_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_roles(*WAREHOUSE_ROLES)),
):
    services.get_location_or_404(db, location_id)
    return services.describe_items(db, services.list_warehouse_stock(db, location_id=location_id))


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


@router.get("/items/{item_id}", response_model=schemas.ItemRead)
def get_item(
    item_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    item = services.get_item_or_404(db, item_id)
    return services.describe_items(db, [item])[0]


@router.get("/items/{item_id}/history", response_model=List[schemas.HistoryEntryRead])
def get_item_history(
    item_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_roles(*WAREHOUSE_ROLES)),
):
    services.get_item_or_404(db, item_id)
    return history.list_item_history(db, item_id)


@router.get("/technicians/{technician_id}/stock", response_model=List[schemas.ItemRead])
def list_technician_stock(
    technician_id: str,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    _ensure_can_view_technician(current_user, technician_id)
    return services.describe_items(db, services.list_technician_stock(db, technician_id=technician_id))


@router.get("/technicians/{technician_id}/deficits", response_model=List[schemas.DeficitRead])
def list_technician_deficits(
    technician_id: str,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    _ensure_can_view_technician(current_user, technician_id)
    return deficits.list_deficits(db, technician_id=technician_id)


# ---------------------------------------------------------------------------
# Technician transfers
# ---------------------------------------------------------------------------


@router.post(
    "/transfers",
    response_model=List[schemas.TransferRead],
    status_code=status.HTTP_201_CREATED,
)
def request_transfer(
    payload: schemas.TransferCreate,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*TECHNICIAN_ROLES)),
):
    requests = transfers.request_transfer(db, sender=current_user, payload=payload)
    db.commit()
    return requests


@router.get("/transfers/incoming", response_model=List[schemas.TransferRead])
def list_incoming_transfers(
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_roles(*TECHNICIAN_ROLES)),
):
    return transfers.list_incoming_transfers(db, recipient_id=current_user.id)


@router.get("/transfers/outgoing", response_model=List[schemas.TransferRead])
def list_outgoing_transfers(
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_roles(*TECHNICIAN_ROLES)),
):
    return transfers.list_outgoing_transfers(db, sender_id=current_user.id)


@router.post("/transfers/{item_id}/confirm", response_model=schemas.ItemRead)
def confirm_transfer(
    item_id: int,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*TECHNICIAN_ROLES)),
):
    item = transfers.confirm_transfer(db, recipient=current_user, item_id=item_id)
    db.commit()
    return services.describe_items(db, [item])[0]


@router.post("/transfers/{item_id}/reject", response_model=schemas.ItemRead)
def reject_transfer(
    item_id: int,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*TECHNICIAN_ROLES)),
):
    item = transfers.reject_transfer(db, recipient=current_user, item_id=item_id)
    db.commit()
    return services.describe_items(db, [item])[0]


@router.post("/transfers/{item_id}/cancel", response_model=schemas.ItemRead)
def cancel_transfer(
    item_id: int,
    db: Session = Depends(get_write_db),
    current_user: account_models.User = Depends(require_roles(*TECHNICIAN_ROLES)),
):
    item = transfers.cancel_transfer(db, sender=current_user, item_id=item_id)
    db.commit()
    return services.describe_items(db, [item])[0]
