# backend/fieldstock/apps/accounts/__init__.py
"""
Accounts app

Responsible for:
- User accounts and roles (admin, coordinator, warehouseman, technician)
- Resolving which warehouse location an operation runs against

Other apps (warehouse, orders) depend on these models for anything related
to "who holds what" and "who may act on it".
"""

from . import models, services  # noqa: F401

__all__ = ["models", "services"]
