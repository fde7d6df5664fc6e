from __future__ import annotations

import pytest
from fastapi import HTTPException

from fieldstock.apps.accounts import models as account_models
from fieldstock.apps.orders import completion
from fieldstock.apps.orders import models as order_models
from fieldstock.apps.orders import router as orders_router
from fieldstock.apps.orders import schemas as order_schemas
from fieldstock.apps.orders import services as order_services
from fieldstock.apps.warehouse import history
from fieldstock.apps.warehouse import models as warehouse_models
from fieldstock.apps.warehouse import schemas as warehouse_schemas
from fieldstock.apps.warehouse import services as warehouse_services


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
    coordinator = _create_user(db, email="coord@example.com", role=account_models.AccountRole.COORDINATOR)
    desk = _create_user(
        db,
        email="desk@example.com",
        role=account_models.AccountRole.WAREHOUSEMAN,
        location_id=location.id,
    )
    tech = _create_user(db, email="tech@example.com", role=account_models.AccountRole.TECHNICIAN)
    return coordinator, desk, tech


def _create_order(db, coordinator, *, number: str, technician_id=None, order_type=None) -> order_models.Order:
    payload = order_schemas.OrderCreate(
        order_number=number,
        type=order_type or order_models.OrderTypeEnum.SERVICE,
        assigned_to_id=technician_id,
    )
    order = order_services.create_order(db, actor=coordinator, payload=payload)
    db.commit()
    return order


def _finish(db, order, tech, status, **extra):
    payload = order_schemas.CompletionRequest(status=status, **extra)
    result = completion.complete_order(db, order=order, technician=tech, payload=payload)
    db.commit()
    return result


def test_new_order_is_pending_until_assigned(db_session):
    coordinator, _, tech = _setup(db_session)
    order = _create_order(db_session, coordinator, number="O-100")

    assert order.status == order_models.OrderStatusEnum.PENDING
    assert order.attempt_number == 1

    order_services.assign_technician(db_session, actor=coordinator, order=order, technician_id=tech.id)
    db_session.commit()
    assert order.status == order_models.OrderStatusEnum.ASSIGNED

    order_services.assign_technician(db_session, actor=coordinator, order=order, technician_id=None)
    db_session.commit()
    assert order.status == order_models.OrderStatusEnum.PENDING

    actions = [event.action for event in order_services.list_order_history(db_session, order_id=order.id)]
    assert sorted(actions) == ["assign", "assign", "create"]


def test_failed_order_gets_a_new_attempt(db_session):
    coordinator, _, tech = _setup(db_session)
    first = _create_order(db_session, coordinator, number="O-200", technician_id=tech.id)

    with pytest.raises(HTTPException) as exc:
        _create_order(db_session, coordinator, number="O-200")
    assert exc.value.status_code == 409

    _finish(db_session, first, tech, order_models.OrderStatusEnum.NOT_COMPLETED, failure_reason="Nobody home")
    assert first.failure_reason == "Nobody home"

    second = _create_order(db_session, coordinator, number="O-200", technician_id=tech.id)
    assert second.attempt_number == 2
    assert second.previous_order_id == first.id
    assert [o.id for o in order_services.get_attempt_chain(db_session, second)] == [first.id, second.id]

    _finish(db_session, second, tech, order_models.OrderStatusEnum.COMPLETED)

    with pytest.raises(HTTPException) as exc:
        _create_order(db_session, coordinator, number="O-200")
    assert exc.value.status_code == 400


def test_serial_is_reused_across_orders(db_session):
    coordinator, desk, tech = _setup(db_session)
    first = _create_order(db_session, coordinator, number="O1", technician_id=tech.id)
    second = _create_order(db_session, coordinator, number="O2", technician_id=tech.id)

    _finish(
        db_session,
        first,
        tech,
        order_models.OrderStatusEnum.COMPLETED,
        collected_devices=[{"name": "Old decoder", "serial_number": "sn-1"}],
    )
    (collected,) = order_services.list_collected_items(db_session, first.id)
    warehouse_services.return_to_warehouse(
        db_session,
        actor=desk,
        payload=warehouse_schemas.ReturnRequest(items=[{"kind": "DEVICE", "id": collected.id}]),
    )
    db_session.commit()
    assert collected.status == warehouse_models.ItemStatusEnum.RETURNED

    _finish(
        db_session,
        second,
        tech,
        order_models.OrderStatusEnum.COMPLETED,
        collected_devices=[{"name": "Old decoder", "serial_number": "SN-1 "}],
    )

    assert db_session.query(warehouse_models.DeviceItem).filter_by(serial_number="SN-1").count() == 1
    assert collected.status == warehouse_models.ItemStatusEnum.COLLECTED_FROM_CLIENT
    assert collected.order_id == second.id
    collections = [
        entry.order_id
        for entry in history.list_item_history(db_session, collected.id)
        if entry.action == warehouse_models.HistoryActionEnum.COLLECTED_FROM_CLIENT
    ]
    assert collections == [first.id, second.id]
    assert history.replay_matches(db_session, collected)


def test_collect_endpoint_requires_assignee_and_open_order(db_session):
    coordinator, _, tech = _setup(db_session)
    other = _create_user(db_session, email="other@example.com", role=account_models.AccountRole.TECHNICIAN)
    order = _create_order(db_session, coordinator, number="O-300", technician_id=tech.id)
    payload = order_schemas.CollectRequest(device={"name": "Router", "serial_number": "r-7"})

    with pytest.raises(HTTPException) as exc:
        orders_router.collect_device(order_id=order.id, payload=payload, db=db_session, current_user=other)
    assert exc.value.status_code == 403

    item = orders_router.collect_device(order_id=order.id, payload=payload, db=db_session, current_user=tech)
    assert item.status == warehouse_models.ItemStatusEnum.COLLECTED_FROM_CLIENT
    assert item.order_id == order.id

    # Completing with the same device keeps the single collected item.
    _finish(
        db_session,
        order,
        tech,
        order_models.OrderStatusEnum.COMPLETED,
        collected_devices=[{"name": "Router", "serial_number": "R-7"}],
    )
    detail = orders_router.get_order(order_id=order.id, db=db_session, current_user=tech)
    assert detail.collected_item_ids == [item.id]

    with pytest.raises(HTTPException) as exc:
        orders_router.collect_device(order_id=order.id, payload=payload, db=db_session, current_user=tech)
    assert exc.value.status_code == 409


def test_technician_cannot_view_foreign_order(db_session):
    coordinator, _, tech = _setup(db_session)
    other = _create_user(db_session, email="other@example.com", role=account_models.AccountRole.TECHNICIAN)
    order = _create_order(db_session, coordinator, number="O-400", technician_id=tech.id)

    with pytest.raises(HTTPException) as exc:
        orders_router.get_order(order_id=order.id, db=db_session, current_user=other)
    assert exc.value.status_code == 403

    attempts = orders_router.list_attempts(order_id=order.id, db=db_session, current_user=coordinator)
    assert [o.id for o in attempts] == [order.id]
