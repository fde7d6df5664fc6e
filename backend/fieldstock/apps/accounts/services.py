from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from . import models


def get_user(db: Session, user_id: Optional[str]) -> Optional[models.User]:
    if user_id is None:
        return None
    return db.query(models.User).filter(models.User.id == str(user_id).strip()).first()


def get_user_or_404(db: Session, user_id: Optional[str]) -> models.User:
    user = get_user(db, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found.",
        )
    return user


def get_active_technician(db: Session, technician_id: Optional[str]) -> models.User:
    """Load a technician who can hold stock, or raise 404."""
    user = get_user(db, technician_id)
    if user is None or not user.is_active or user.role != models.AccountRole.TECHNICIAN:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Technician {technician_id} not found.",
        )
    return user


def resolve_location_id(user: models.User, explicit_location_id: Optional[int] = None) -> int:
    """
    Resolve the warehouse location an operation runs against.

    An explicit location always wins. Admins and coordinators work across
    locations and must name one; everybody else falls back to their primary
    location.
    """
    if explicit_location_id is not None:
        return explicit_location_id
    if user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admin/coordinator must select a warehouse location.",
        )
    if user.location_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User has no warehouse location assigned.",
        )
    return user.location_id
