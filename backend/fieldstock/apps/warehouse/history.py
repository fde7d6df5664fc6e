from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from . import models

Action = models.HistoryActionEnum
Status = models.ItemStatusEnum

_LOCATION_ACTIONS = {Action.RECEIVED, Action.RETURNED}
_HOLDER_ACTIONS = {Action.ISSUED, Action.RETURNED_TO_TECHNICIAN, Action.TRANSFER}
_BINDING_ACTIONS = (Action.ASSIGNED_TO_ORDER, Action.COLLECTED_FROM_CLIENT)


@dataclass
class ProjectedState:
    """Current status/holder of a device rebuilt from its history."""

    status: Optional[models.ItemStatusEnum] = None
    assigned_to_id: Optional[str] = None
    location_id: Optional[int] = None
    order_id: Optional[int] = None


def append_history(
    db: Session,
    item: models.InventoryItem,
    *,
    action: models.HistoryActionEnum,
    performed_by_id: Optional[str],
    assigned_to_id: Optional[str] = None,
    order_id: Optional[int] = None,
    quantity: Optional[int] = None,
    from_location_id: Optional[int] = None,
    to_location_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> models.HistoryEntry:
    """
    Append a ledger entry for ``item``.

    Callers mutate the item first; ``status_after`` is stamped from the
    item's status at the time of the call so the entry alone is enough to
    replay the transition.
    """
    entry = models.HistoryEntry(
        item_id=item.id,
        action=action,
        status_after=item.status,
        performed_by_id=performed_by_id,
        assigned_to_id=assigned_to_id,
        order_id=order_id,
        quantity=quantity,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        notes=notes,
        occurred_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    db.flush()
    return entry


def list_item_history(db: Session, item_id: int) -> List[models.HistoryEntry]:
    return (
        db.query(models.HistoryEntry)
        .filter(models.HistoryEntry.item_id == item_id)
        .order_by(models.HistoryEntry.occurred_at.asc(), models.HistoryEntry.id.asc())
        .all()
    )


def apply_entry(state: ProjectedState, entry: models.HistoryEntry) -> ProjectedState:
    action = entry.action
    state.status = entry.status_after

    if action in _LOCATION_ACTIONS:
        state.location_id = entry.to_location_id
        state.assigned_to_id = None
        state.order_id = None
    elif action in _HOLDER_ACTIONS:
        state.assigned_to_id = entry.assigned_to_id
        state.location_id = None
        state.order_id = None
    elif action == Action.ASSIGNED_TO_ORDER:
        state.order_id = entry.order_id
        state.location_id = None
        # A collected device keeps its technician while bound to the order.
        if entry.status_after != Status.COLLECTED_FROM_CLIENT:
            state.assigned_to_id = None
    elif action == Action.COLLECTED_FROM_CLIENT:
        state.assigned_to_id = entry.assigned_to_id
        state.order_id = entry.order_id
        state.location_id = None
    elif action == Action.RETURNED_TO_OPERATOR:
        state.assigned_to_id = None
        state.order_id = None
        if entry.from_location_id is not None:
            state.location_id = entry.from_location_id
    return state


def project_device_state(entries: Iterable[models.HistoryEntry]) -> ProjectedState:
    """Fold history entries (oldest first) into the device's current state."""
    state = ProjectedState()
    for entry in entries:
        apply_entry(state, entry)
    return state


def replay_matches(db: Session, item: models.InventoryItem) -> bool:
    """True when the stored row equals the projection of its history."""
    projected = project_device_state(list_item_history(db, item.id))
    return (
        projected.status == item.status
        and projected.assigned_to_id == item.assigned_to_id
        and projected.location_id == item.location_id
        and projected.order_id == item.order_id
    )


def last_order_link(db: Session, item_id: int) -> Optional[int]:
    entry = (
        db.query(models.HistoryEntry)
        .filter(
            models.HistoryEntry.item_id == item_id,
            models.HistoryEntry.order_id.isnot(None),
        )
        .order_by(models.HistoryEntry.occurred_at.desc(), models.HistoryEntry.id.desc())
        .first()
    )
    return entry.order_id if entry else None


def find_binding_entry(
    db: Session,
    item_id: int,
    order_id: int,
    *,
    actions: Iterable[models.HistoryActionEnum] = _BINDING_ACTIONS,
) -> Optional[models.HistoryEntry]:
    """Most recent entry that bound the item to ``order_id``."""
    return (
        db.query(models.HistoryEntry)
        .filter(
            models.HistoryEntry.item_id == item_id,
            models.HistoryEntry.order_id == order_id,
            models.HistoryEntry.action.in_(list(actions)),
        )
        .order_by(models.HistoryEntry.occurred_at.desc(), models.HistoryEntry.id.desc())
        .first()
    )


def split_at(
    entries: List[models.HistoryEntry],
    entry: models.HistoryEntry,
) -> List[models.HistoryEntry]:
    """Entries strictly before ``entry`` in ledger order."""
    for index, candidate in enumerate(entries):
        if candidate.id == entry.id:
            return entries[:index]
    return list(entries)


def delete_item_history(db: Session, item_id: int) -> int:
    """
    Remove every ledger entry of a provisional item.

    Only called right before the item itself is deleted; the caller records
    an audit snapshot of the entries first.
    """
    count = (
        db.query(models.HistoryEntry)
        .filter(models.HistoryEntry.item_id == item_id)
        .delete(synchronize_session=False)
    )
    db.flush()
    return count


def entry_snapshot(entry: models.HistoryEntry) -> dict:
    return {
        "id": entry.id,
        "action": entry.action.value if entry.action else None,
        "status_after": entry.status_after.value if entry.status_after else None,
        "performed_by_id": entry.performed_by_id,
        "assigned_to_id": entry.assigned_to_id,
        "order_id": entry.order_id,
        "quantity": entry.quantity,
        "from_location_id": entry.from_location_id,
        "to_location_id": entry.to_location_id,
        "notes": entry.notes,
        "occurred_at": entry.occurred_at.isoformat() if entry.occurred_at else None,
    }
