from __future__ import annotations

from datetime import datetime, timezone

from fieldstock.apps.accounts import models as account_models
from fieldstock.apps.audit import models as audit_models
from fieldstock.apps.orders import models as order_models
from fieldstock.apps.warehouse import history
from fieldstock.apps.warehouse import models as warehouse_models
from fieldstock.apps.warehouse import schemas as warehouse_schemas
from fieldstock.apps.warehouse import services as warehouse_services

Action = warehouse_models.HistoryActionEnum
Status = warehouse_models.ItemStatusEnum


def _create_location(db, code: str = "L1") -> warehouse_models.WarehouseLocation:
    location = warehouse_models.WarehouseLocation(code=code, name=f"Warehouse {code}")
    db.add(location)
    db.commit()
    db.refresh(location)
    return location


def _create_user(db, *, email: str, role, location_id=None) -> account_models.User:
    user = account_models.User(email=email, full_name=email.split("@")[0], role=role, location_id=location_id)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _create_order(db, *, number: str, technician_id=None) -> order_models.Order:
    order = order_models.Order(
        order_number=number,
        type=order_models.OrderTypeEnum.INSTALLATION,
        status=order_models.OrderStatusEnum.ASSIGNED,
        assigned_to_id=technician_id,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def _setup(db):
    location = _create_location(db)
    desk = _create_user(
        db,
        email="desk@example.com",
        role=account_models.AccountRole.WAREHOUSEMAN,
        location_id=location.id,
    )
    tech = _create_user(db, email="tech@example.com", role=account_models.AccountRole.TECHNICIAN)
    return location, desk, tech


def _receive_device(db, desk, serial: str = "SN-1") -> warehouse_models.DeviceItem:
    (device,) = warehouse_services.receive_items(
        db,
        actor=desk,
        payload=warehouse_schemas.ReceiveRequest(
            items=[{"kind": "DEVICE", "name": "Router", "serial_number": serial, "category": "ROUTER"}],
        ),
    )
    db.commit()
    return device


def _issue_device(db, desk, tech, device) -> None:
    warehouse_services.issue_items(
        db,
        actor=desk,
        payload=warehouse_schemas.IssueRequest(technician_id=tech.id, items=[{"kind": "DEVICE", "id": device.id}]),
    )
    db.commit()


def test_history_is_ordered_by_time_then_id(db_session):
    location, desk, tech = _setup(db_session)
    device = _receive_device(db_session, desk)
    stamp = datetime(2026, 1, 1, tzinfo=timezone.utc)
    first = history.append_history(db_session, device, action=Action.RETURNED, performed_by_id=desk.id)
    second = history.append_history(db_session, device, action=Action.RETURNED, performed_by_id=desk.id)
    first.occurred_at = stamp
    second.occurred_at = stamp
    db_session.commit()

    entries = history.list_item_history(db_session, device.id)

    assert [e.id for e in entries[:2]] == [first.id, second.id]
    assert entries[-1].action == Action.RECEIVED


def test_projection_follows_issue_and_binding(db_session):
    location, desk, tech = _setup(db_session)
    order = _create_order(db_session, number="O1", technician_id=tech.id)
    device = _receive_device(db_session, desk)
    _issue_device(db_session, desk, tech, device)

    warehouse_services.bind_to_order(
        db_session,
        device,
        order_id=order.id,
        technician_id=tech.id,
        performed_by_id=tech.id,
        is_admin=False,
    )
    db_session.commit()

    state = history.project_device_state(history.list_item_history(db_session, device.id))
    assert state.status == Status.ASSIGNED_TO_ORDER
    assert state.order_id == order.id
    assert state.assigned_to_id is None
    assert state.location_id is None
    assert history.replay_matches(db_session, device)


def test_unbind_restores_technician_holding(db_session):
    location, desk, tech = _setup(db_session)
    order = _create_order(db_session, number="O1", technician_id=tech.id)
    device = _receive_device(db_session, desk)
    _issue_device(db_session, desk, tech, device)
    warehouse_services.bind_to_order(
        db_session,
        device,
        order_id=order.id,
        technician_id=tech.id,
        performed_by_id=tech.id,
        is_admin=False,
    )
    db_session.commit()

    warning = warehouse_services.unbind_from_order(
        db_session,
        device,
        order_id=order.id,
        performed_by_id=tech.id,
    )
    db_session.commit()

    assert warning is None
    assert device.status == Status.ASSIGNED
    assert device.assigned_to_id == tech.id
    assert device.order_id is None
    last = history.list_item_history(db_session, device.id)[-1]
    assert last.action == Action.RETURNED_TO_TECHNICIAN
    assert history.replay_matches(db_session, device)


def test_unbind_restores_admin_bound_warehouse_device(db_session):
    location, desk, tech = _setup(db_session)
    order = _create_order(db_session, number="O1", technician_id=tech.id)
    device = _receive_device(db_session, desk)
    warehouse_services.bind_to_order(
        db_session,
        device,
        order_id=order.id,
        technician_id=tech.id,
        performed_by_id=desk.id,
        is_admin=True,
    )
    db_session.commit()
    assert device.location_id is None

    warning = warehouse_services.unbind_from_order(db_session, device, order_id=order.id, performed_by_id=desk.id)
    db_session.commit()

    assert warning is None
    assert device.status == Status.AVAILABLE
    assert device.location_id == location.id
    last = history.list_item_history(db_session, device.id)[-1]
    assert last.action == Action.RETURNED
    assert last.to_location_id == location.id
    assert history.replay_matches(db_session, device)


def test_unbind_deletes_device_created_by_the_order(db_session):
    location, desk, tech = _setup(db_session)
    order = _create_order(db_session, number="O1", technician_id=tech.id)
    device = warehouse_services.collect_from_client(
        db_session,
        order_id=order.id,
        technician_id=tech.id,
        performed_by_id=tech.id,
        device=warehouse_schemas.CollectedDevice(name="Old modem", serial_number="old-1"),
    )
    db_session.commit()
    device_id = device.id

    warning = warehouse_services.unbind_from_order(
        db_session,
        device,
        order_id=order.id,
        performed_by_id=tech.id,
        binding_actions=(Action.COLLECTED_FROM_CLIENT,),
    )
    db_session.commit()

    assert warning is None
    assert db_session.get(warehouse_models.InventoryItem, device_id) is None
    assert history.list_item_history(db_session, device_id) == []
    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.entity_id == str(device_id))
        .one()
    )
    assert event.action == "delete_provisional"
    assert event.before["item"]["serial_number"] == "OLD-1"
    assert len(event.before["history"]) == 1


def test_unbind_leaves_unrestorable_history_for_review(db_session):
    location, desk, tech = _setup(db_session)
    order = _create_order(db_session, number="O1", technician_id=tech.id)
    device = _receive_device(db_session, desk)
    device.status = Status.RETURNED_TO_OPERATOR
    history.append_history(db_session, device, action=Action.RETURNED_TO_OPERATOR, performed_by_id=desk.id)
    device.status = Status.ASSIGNED_TO_ORDER
    device.location_id = None
    device.order_id = order.id
    history.append_history(
        db_session,
        device,
        action=Action.ASSIGNED_TO_ORDER,
        performed_by_id=desk.id,
        order_id=order.id,
    )
    db_session.commit()
    before = len(history.list_item_history(db_session, device.id))

    warning = warehouse_services.unbind_from_order(db_session, device, order_id=order.id, performed_by_id=desk.id)

    assert warning is not None
    assert "RETURNED_TO_OPERATOR" in warning
    assert device.status == Status.ASSIGNED_TO_ORDER
    assert len(history.list_item_history(db_session, device.id)) == before


def test_unbind_without_binding_entry_warns(db_session):
    location, desk, tech = _setup(db_session)
    order = _create_order(db_session, number="O1", technician_id=tech.id)
    device = _receive_device(db_session, desk)

    warning = warehouse_services.unbind_from_order(db_session, device, order_id=order.id, performed_by_id=desk.id)

    assert warning is not None
    assert device.status == Status.AVAILABLE


def test_last_order_link_survives_return(db_session):
    location, desk, tech = _setup(db_session)
    order = _create_order(db_session, number="O1", technician_id=tech.id)
    collected = warehouse_services.collect_from_client(
        db_session,
        order_id=order.id,
        technician_id=tech.id,
        performed_by_id=tech.id,
        device=warehouse_schemas.CollectedDevice(name="Decoder", serial_number="D-9"),
    )
    warehouse_services.return_to_warehouse(
        db_session,
        actor=desk,
        payload=warehouse_schemas.ReturnRequest(items=[{"kind": "DEVICE", "id": collected.id}]),
    )
    db_session.commit()

    assert collected.status == Status.RETURNED
    assert collected.order_id is None
    assert history.last_order_link(db_session, collected.id) == order.id
    assert history.replay_matches(db_session, collected)
