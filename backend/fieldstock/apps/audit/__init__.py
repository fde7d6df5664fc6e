"""
Audit module.

Append-only audit trail for order status changes and for inventory records
that are removed during reconciliation.
"""

from . import models  # noqa: F401
