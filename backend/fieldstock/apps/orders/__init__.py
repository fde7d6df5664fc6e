"""
Orders app.

Work orders with attempt chains, the equipment/material usage reported on
completion, and per-order settlement entries.
"""

from . import models  # noqa: F401
