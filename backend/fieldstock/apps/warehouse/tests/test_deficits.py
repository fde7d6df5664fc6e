from __future__ import annotations

from fieldstock.apps.accounts import models as account_models
from fieldstock.apps.warehouse import deficits
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
    desk = _create_user(
        db,
        email="desk@example.com",
        role=account_models.AccountRole.WAREHOUSEMAN,
        location_id=location.id,
    )
    tech = _create_user(db, email="tech@example.com", role=account_models.AccountRole.TECHNICIAN)
    connector = warehouse_models.MaterialDefinition(name="F connector", unit=warehouse_models.MaterialUnitEnum.PIECE)
    db.add(connector)
    db.commit()
    (lot,) = warehouse_services.receive_items(
        db,
        actor=desk,
        payload=warehouse_schemas.ReceiveRequest(
            items=[{"kind": "MATERIAL", "material_definition_id": connector.id, "quantity": 100}],
        ),
    )
    db.commit()
    return desk, tech, connector, lot


def _issue(db, desk, tech, lot, quantity: int):
    items = warehouse_services.issue_items(
        db,
        actor=desk,
        payload=warehouse_schemas.IssueRequest(
            technician_id=tech.id,
            items=[{"kind": "MATERIAL", "id": lot.id, "quantity": quantity}],
        ),
    )
    db.commit()
    return items


def test_consumption_beyond_stock_books_deficit(db_session):
    desk, tech, connector, lot = _setup(db_session)
    (tech_lot,) = _issue(db_session, desk, tech, lot, 3)

    result = deficits.record_consumption(
        db_session,
        technician_id=tech.id,
        material_definition_id=connector.id,
        quantity=5,
    )
    db_session.commit()

    assert (result.covered, result.missing) == (3, 2)
    assert tech_lot.quantity == 0
    assert deficits.get_deficit(db_session, technician_id=tech.id, material_definition_id=connector.id) == 2
    assert warehouse_services.list_technician_stock(db_session, technician_id=tech.id) == []


def test_consumption_without_any_lot_is_all_deficit(db_session):
    desk, tech, connector, lot = _setup(db_session)

    result = deficits.record_consumption(
        db_session,
        technician_id=tech.id,
        material_definition_id=connector.id,
        quantity=4,
    )

    assert (result.covered, result.missing, result.lot) == (0, 4, None)
    assert deficits.get_deficit(db_session, technician_id=tech.id, material_definition_id=connector.id) == 4


def test_issue_settles_deficit_before_crediting_stock(db_session):
    desk, tech, connector, lot = _setup(db_session)
    deficits.record_consumption(db_session, technician_id=tech.id, material_definition_id=connector.id, quantity=4)
    db_session.commit()

    assert _issue(db_session, desk, tech, lot, 3) == []
    assert deficits.get_deficit(db_session, technician_id=tech.id, material_definition_id=connector.id) == 1

    (tech_lot,) = _issue(db_session, desk, tech, lot, 5)
    assert tech_lot.quantity == 4
    assert deficits.list_deficits(db_session, technician_id=tech.id) == []
    assert lot.quantity == 92


def test_credit_back_offsets_deficit_then_restores_stock(db_session):
    desk, tech, connector, lot = _setup(db_session)
    deficits.record_consumption(db_session, technician_id=tech.id, material_definition_id=connector.id, quantity=2)

    result = deficits.credit_back(
        db_session,
        technician_id=tech.id,
        material_definition_id=connector.id,
        quantity=5,
    )
    db_session.commit()

    assert (result.settled, result.remainder) == (2, 3)
    assert deficits.get_deficit(db_session, technician_id=tech.id, material_definition_id=connector.id) == 0
    restored = deficits.find_technician_lot(db_session, technician_id=tech.id, material_definition_id=connector.id)
    assert restored is not None
    assert restored.quantity == 3
    assert warehouse_services.check_holder_invariant(restored) == []


def test_zero_quantities_are_noops(db_session):
    desk, tech, connector, lot = _setup(db_session)

    consumed = deficits.record_consumption(
        db_session,
        technician_id=tech.id,
        material_definition_id=connector.id,
        quantity=0,
    )
    credited = deficits.credit_back(
        db_session,
        technician_id=tech.id,
        material_definition_id=connector.id,
        quantity=0,
    )

    assert (consumed.covered, consumed.missing) == (0, 0)
    assert (credited.settled, credited.remainder) == (0, 0)
    assert deficits.list_deficits(db_session, technician_id=tech.id) == []
