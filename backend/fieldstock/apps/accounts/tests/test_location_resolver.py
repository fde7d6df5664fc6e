from __future__ import annotations

import pytest
from fastapi import HTTPException

from fieldstock.apps.accounts import models as account_models
from fieldstock.apps.accounts import services as account_services
from fieldstock.apps.warehouse import models as warehouse_models


def _create_location(db, code: str = "L1") -> warehouse_models.WarehouseLocation:
    location = warehouse_models.WarehouseLocation(code=code, name=f"Warehouse {code}")
    db.add(location)
    db.commit()
    db.refresh(location)
    return location


def _create_user(db, *, email: str, role, location_id=None, is_active: bool = True) -> account_models.User:
    user = account_models.User(
        email=email,
        full_name=email.split("@")[0],
        role=role,
        location_id=location_id,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def test_explicit_location_wins_for_everyone(db_session):
    location = _create_location(db_session)
    admin = _create_user(db_session, email="admin@example.com", role=account_models.AccountRole.ADMIN)

    assert account_services.resolve_location_id(admin, location.id) == location.id


def test_admin_without_location_must_choose_one(db_session):
    coordinator = _create_user(
        db_session,
        email="coord@example.com",
        role=account_models.AccountRole.COORDINATOR,
    )

    with pytest.raises(HTTPException) as exc:
        account_services.resolve_location_id(coordinator)

    assert exc.value.status_code == 400


def test_warehouseman_falls_back_to_primary_location(db_session):
    location = _create_location(db_session)
    warehouseman = _create_user(
        db_session,
        email="desk@example.com",
        role=account_models.AccountRole.WAREHOUSEMAN,
        location_id=location.id,
    )

    assert account_services.resolve_location_id(warehouseman) == location.id


def test_user_without_any_location_is_forbidden(db_session):
    warehouseman = _create_user(
        db_session,
        email="desk@example.com",
        role=account_models.AccountRole.WAREHOUSEMAN,
    )

    with pytest.raises(HTTPException) as exc:
        account_services.resolve_location_id(warehouseman)

    assert exc.value.status_code == 403


def test_get_active_technician_rejects_other_roles_and_inactive(db_session):
    desk = _create_user(db_session, email="desk@example.com", role=account_models.AccountRole.WAREHOUSEMAN)
    retired = _create_user(
        db_session,
        email="old@example.com",
        role=account_models.AccountRole.TECHNICIAN,
        is_active=False,
    )
    tech = _create_user(db_session, email="tech@example.com", role=account_models.AccountRole.TECHNICIAN)

    for user_id in (desk.id, retired.id, "missing"):
        with pytest.raises(HTTPException) as exc:
            account_services.get_active_technician(db_session, user_id)
        assert exc.value.status_code == 404

    assert account_services.get_active_technician(db_session, tech.id).id == tech.id
