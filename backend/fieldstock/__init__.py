# backend/fieldstock/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- Cross-app foreign keys (items -> orders, users -> locations) resolve.

The actual model classes are kept in fieldstock/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models      # users / roles
from .apps.audit import models as audit_models            # audit trail
from .apps.warehouse import models as warehouse_models    # items / history / deficits / transfers
from .apps.orders import models as orders_models          # orders / equipment / settlement

__all__ = [
    "accounts_models",
    "audit_models",
    "warehouse_models",
    "orders_models",
]
