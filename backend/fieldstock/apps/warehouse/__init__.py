"""
Warehouse app.

Owns the physical inventory: devices and material lots, their append-only
history, technician material deficits and technician-to-technician
transfer requests.
"""

from . import models  # noqa: F401
