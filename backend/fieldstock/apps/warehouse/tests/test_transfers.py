from __future__ import annotations

import pytest
from fastapi import HTTPException

from fieldstock.apps.accounts import models as account_models
from fieldstock.apps.warehouse import deficits, history
from fieldstock.apps.warehouse import models as warehouse_models
from fieldstock.apps.warehouse import schemas as warehouse_schemas
from fieldstock.apps.warehouse import services as warehouse_services
from fieldstock.apps.warehouse import transfers


def _create_user(db, *, email: str, role, location_id=None) -> account_models.User:
    user = account_models.User(email=email, full_name=email.split("@")[0], role=role, location_id=location_id)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _setup(db):
    location = warehouse_models.WarehouseLocation(code="L1", name="Main")
    db.add(location)
    db.commit()
    desk = _create_user(
        db,
        email="desk@example.com",
        role=account_models.AccountRole.WAREHOUSEMAN,
        location_id=location.id,
    )
    sender = _create_user(db, email="anna@example.com", role=account_models.AccountRole.TECHNICIAN)
    recipient = _create_user(db, email="bart@example.com", role=account_models.AccountRole.TECHNICIAN)
    return desk, sender, recipient


def _issue_material(db, desk, tech, *, quantity: int) -> warehouse_models.MaterialItem:
    definition = db.query(warehouse_models.MaterialDefinition).first()
    if definition is None:
        definition = warehouse_models.MaterialDefinition(name="Cable", unit=warehouse_models.MaterialUnitEnum.METER)
        db.add(definition)
        db.commit()
    (lot,) = warehouse_services.receive_items(
        db,
        actor=desk,
        payload=warehouse_schemas.ReceiveRequest(
            items=[{"kind": "MATERIAL", "material_definition_id": definition.id, "quantity": quantity}],
        ),
    )
    (tech_lot,) = warehouse_services.issue_items(
        db,
        actor=desk,
        payload=warehouse_schemas.IssueRequest(
            technician_id=tech.id,
            items=[{"kind": "MATERIAL", "id": lot.id, "quantity": quantity}],
        ),
    )
    db.commit()
    return tech_lot


def _issue_device(db, desk, tech, serial: str = "SN-1") -> warehouse_models.DeviceItem:
    (device,) = warehouse_services.receive_items(
        db,
        actor=desk,
        payload=warehouse_schemas.ReceiveRequest(items=[{"kind": "DEVICE", "name": "ONT", "serial_number": serial}]),
    )
    warehouse_services.issue_items(
        db,
        actor=desk,
        payload=warehouse_schemas.IssueRequest(technician_id=tech.id, items=[{"kind": "DEVICE", "id": device.id}]),
    )
    db.commit()
    return device


def _request(db, sender, recipient, refs):
    requests = transfers.request_transfer(
        db,
        sender=sender,
        payload=warehouse_schemas.TransferCreate(recipient_id=recipient.id, items=refs),
    )
    db.commit()
    return requests


def test_partial_material_transfer_splits_and_merges(db_session):
    desk, sender, recipient = _setup(db_session)
    sender_lot = _issue_material(db_session, desk, sender, quantity=10)

    (request,) = _request(db_session, sender, recipient, [{"kind": "MATERIAL", "id": sender_lot.id, "quantity": 6}])

    assert sender_lot.quantity == 4
    assert request.quantity == 6
    pending_item_id = request.item_id
    assert pending_item_id != sender_lot.id
    pending = warehouse_services.describe_items(db_session, [db_session.get(warehouse_models.InventoryItem, pending_item_id)])
    assert pending[0].transfer_pending is True
    assert pending[0].transfer_to_id == recipient.id

    received = transfers.confirm_transfer(db_session, recipient=recipient, item_id=pending_item_id)
    db_session.commit()

    assert received.assigned_to_id == recipient.id
    assert received.quantity == 6
    assert sender_lot.quantity == 4
    assert transfers.list_incoming_transfers(db_session, recipient_id=recipient.id) == []

    with pytest.raises(HTTPException) as exc:
        transfers.confirm_transfer(db_session, recipient=recipient, item_id=pending_item_id)
    assert exc.value.status_code == 404


def test_confirm_merges_into_recipient_lot(db_session):
    desk, sender, recipient = _setup(db_session)
    sender_lot = _issue_material(db_session, desk, sender, quantity=10)
    recipient_lot = _issue_material(db_session, desk, recipient, quantity=2)

    (request,) = _request(db_session, sender, recipient, [{"kind": "MATERIAL", "id": sender_lot.id, "quantity": 3}])
    pending_item_id = request.item_id
    merged = transfers.confirm_transfer(db_session, recipient=recipient, item_id=pending_item_id)
    db_session.commit()

    assert merged.id == recipient_lot.id
    assert recipient_lot.quantity == 5
    assert db_session.get(warehouse_models.InventoryItem, pending_item_id) is None
    assert request.item_id == recipient_lot.id
    assert request.status == warehouse_models.TransferStatusEnum.CONFIRMED


def test_repeated_material_requests_accumulate_on_one_pending_lot(db_session):
    desk, sender, recipient = _setup(db_session)
    sender_lot = _issue_material(db_session, desk, sender, quantity=10)

    (first,) = _request(db_session, sender, recipient, [{"kind": "MATERIAL", "id": sender_lot.id, "quantity": 2}])
    (second,) = _request(db_session, sender, recipient, [{"kind": "MATERIAL", "id": sender_lot.id, "quantity": 3}])

    assert first.id == second.id
    assert second.quantity == 5
    assert sender_lot.quantity == 5
    assert len(transfers.list_outgoing_transfers(db_session, sender_id=sender.id)) == 1


def test_reject_returns_material_to_sender(db_session):
    desk, sender, recipient = _setup(db_session)
    sender_lot = _issue_material(db_session, desk, sender, quantity=10)
    (request,) = _request(db_session, sender, recipient, [{"kind": "MATERIAL", "id": sender_lot.id, "quantity": 6}])

    result = transfers.reject_transfer(db_session, recipient=recipient, item_id=request.item_id)
    db_session.commit()

    assert result.id == sender_lot.id
    assert sender_lot.quantity == 10
    assert request.status == warehouse_models.TransferStatusEnum.REJECTED
    assert deficits.find_technician_lot(
        db_session,
        technician_id=sender.id,
        material_definition_id=sender_lot.material_definition_id,
    ).id == sender_lot.id


def test_device_transfer_keeps_item_with_sender_until_confirmed(db_session):
    desk, sender, recipient = _setup(db_session)
    device = _issue_device(db_session, desk, sender)

    _request(db_session, sender, recipient, [{"kind": "DEVICE", "id": device.id}])
    assert device.assigned_to_id == sender.id

    with pytest.raises(HTTPException) as exc:
        _request(db_session, sender, recipient, [{"kind": "DEVICE", "id": device.id}])
    assert exc.value.status_code == 409

    with pytest.raises(HTTPException) as exc:
        warehouse_services.return_to_warehouse(
            db_session,
            actor=desk,
            payload=warehouse_schemas.ReturnRequest(items=[{"kind": "DEVICE", "id": device.id}]),
        )
    assert exc.value.status_code == 409

    with pytest.raises(HTTPException) as exc:
        transfers.confirm_transfer(db_session, recipient=sender, item_id=device.id)
    assert exc.value.status_code == 403

    transfers.confirm_transfer(db_session, recipient=recipient, item_id=device.id)
    db_session.commit()

    assert device.assigned_to_id == recipient.id
    last = history.list_item_history(db_session, device.id)[-1]
    assert last.action == warehouse_models.HistoryActionEnum.TRANSFER
    assert last.performed_by_id == sender.id
    assert last.assigned_to_id == recipient.id
    assert history.replay_matches(db_session, device)


def test_cancel_is_sender_only(db_session):
    desk, sender, recipient = _setup(db_session)
    device = _issue_device(db_session, desk, sender)
    _request(db_session, sender, recipient, [{"kind": "DEVICE", "id": device.id}])

    with pytest.raises(HTTPException) as exc:
        transfers.cancel_transfer(db_session, sender=recipient, item_id=device.id)
    assert exc.value.status_code == 403

    transfers.cancel_transfer(db_session, sender=sender, item_id=device.id)
    db_session.commit()

    assert warehouse_services.get_open_transfer(db_session, device.id) is None
    assert device.assigned_to_id == sender.id


def test_request_validation(db_session):
    desk, sender, recipient = _setup(db_session)
    device = _issue_device(db_session, desk, sender)
    sender_lot = _issue_material(db_session, desk, sender, quantity=2)

    with pytest.raises(HTTPException) as exc:
        _request(db_session, sender, sender, [{"kind": "DEVICE", "id": device.id}])
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        _request(db_session, recipient, sender, [{"kind": "DEVICE", "id": device.id}])
    assert exc.value.status_code == 403

    with pytest.raises(HTTPException) as exc:
        _request(db_session, sender, desk, [{"kind": "DEVICE", "id": device.id}])
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        _request(db_session, sender, recipient, [{"kind": "MATERIAL", "id": sender_lot.id, "quantity": 3}])
    assert exc.value.status_code == 400


def _actions(db, item_id):
    return [entry.action for entry in history.list_item_history(db, item_id)]


def test_material_request_and_cancel_are_recorded(db_session):
    desk, sender, recipient = _setup(db_session)
    sender_lot = _issue_material(db_session, desk, sender, quantity=10)
    issued_entries = len(history.list_item_history(db_session, sender_lot.id))

    (request,) = _request(db_session, sender, recipient, [{"kind": "MATERIAL", "id": sender_lot.id, "quantity": 4}])

    sender_entries = history.list_item_history(db_session, sender_lot.id)
    assert len(sender_entries) == issued_entries + 1
    assert sender_entries[-1].action == warehouse_models.HistoryActionEnum.ISSUED
    assert sender_entries[-1].quantity == 4
    pending_entries = history.list_item_history(db_session, request.item_id)
    assert [(e.action, e.quantity) for e in pending_entries] == [(warehouse_models.HistoryActionEnum.ISSUED, 4)]

    pending_item_id = request.item_id
    result = transfers.cancel_transfer(db_session, sender=sender, item_id=pending_item_id)
    db_session.commit()

    assert result.id == sender_lot.id
    assert sender_lot.quantity == 10
    last = history.list_item_history(db_session, sender_lot.id)[-1]
    assert last.action == warehouse_models.HistoryActionEnum.RETURNED_TO_TECHNICIAN
    assert last.quantity == 4
    assert last.performed_by_id == sender.id
    assert db_session.get(warehouse_models.InventoryItem, pending_item_id) is None
    assert history.list_item_history(db_session, pending_item_id) == []


def test_rejected_device_can_be_handed_in_again(db_session):
    desk, sender, recipient = _setup(db_session)
    device = _issue_device(db_session, desk, sender)

    _request(db_session, sender, recipient, [{"kind": "DEVICE", "id": device.id}])
    transfers.reject_transfer(db_session, recipient=recipient, item_id=device.id)
    db_session.commit()

    assert _actions(db_session, device.id)[-2:] == [
        warehouse_models.HistoryActionEnum.ISSUED,
        warehouse_models.HistoryActionEnum.RETURNED_TO_TECHNICIAN,
    ]
    assert device.assigned_to_id == sender.id
    assert history.replay_matches(db_session, device)

    (returned,) = warehouse_services.return_to_warehouse(
        db_session,
        actor=desk,
        payload=warehouse_schemas.ReturnRequest(items=[{"kind": "DEVICE", "id": device.id}]),
    )
    db_session.commit()

    assert returned.status == warehouse_models.ItemStatusEnum.AVAILABLE
    assert history.replay_matches(db_session, device)
