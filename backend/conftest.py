from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"

from fieldstock.database import Base  # noqa: E402
from fieldstock.apps.accounts import models as account_models  # noqa: E402
from fieldstock.apps.audit import models as audit_models  # noqa: E402
from fieldstock.apps.orders import models as order_models  # noqa: E402
from fieldstock.apps.warehouse import models as warehouse_models  # noqa: E402


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(
        bind=engine,
        tables=[
            warehouse_models.WarehouseLocation.__table__,
            account_models.User.__table__,
            warehouse_models.DeviceDefinition.__table__,
            warehouse_models.MaterialDefinition.__table__,
            order_models.Order.__table__,
            warehouse_models.InventoryItem.__table__,
            warehouse_models.HistoryEntry.__table__,
            warehouse_models.TechnicianMaterialDeficit.__table__,
            warehouse_models.TransferRequest.__table__,
            order_models.OrderEquipment.__table__,
            order_models.OrderCollectedDevice.__table__,
            order_models.OrderMaterial.__table__,
            order_models.RateDefinition.__table__,
            order_models.OrderSettlementEntry.__table__,
            audit_models.AuditEvent.__table__,
        ],
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
