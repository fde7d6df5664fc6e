# backend/fieldstock/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from fieldstock.database import Base
from fieldstock.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class AccountRole(str, enum.Enum):
    """Roles used across the warehouse and order screens.

    ADMIN and COORDINATOR may edit any order; WAREHOUSEMAN runs the
    warehouse desk; TECHNICIAN holds stock and completes orders.
    """

    ADMIN = "ADMIN"
    COORDINATOR = "COORDINATOR"
    WAREHOUSEMAN = "WAREHOUSEMAN"
    TECHNICIAN = "TECHNICIAN"


ADMIN_ROLES = frozenset({AccountRole.ADMIN, AccountRole.COORDINATOR})


# ---------------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------------


class User(Base):
    """
    Portal account. Technicians are users with role TECHNICIAN; they act as
    item holders in the warehouse tables.
    """

    __tablename__ = "users"
    __table_args__ = (Index("idx_users_role_active", "role", "is_active"),)

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=False)

    role = Column(
        Enum(AccountRole, name="account_role_enum"),
        nullable=False,
        default=AccountRole.TECHNICIAN,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)

    # Primary warehouse location; used when an operation does not name one.
    location_id = Column(
        Integer,
        ForeignKey("warehouse_locations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    location = relationship("WarehouseLocation", lazy="joined")

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_technician(self) -> bool:
        return self.role == AccountRole.TECHNICIAN

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role}>"
