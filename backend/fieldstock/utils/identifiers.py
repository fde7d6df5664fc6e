from __future__ import annotations

import os
import time
import uuid
from typing import Optional


def generate_uuid7() -> str:
    """
    Generate a UUIDv7 string (time-ordered).

    Used for user and audit event ids so that rows sort by creation time.
    """
    ts_ms = int(time.time() * 1000)
    ts_bytes = ts_ms.to_bytes(6, "big", signed=False)
    rand_bytes = os.urandom(10)
    raw = bytearray(ts_bytes + rand_bytes)
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def normalize_serial(serial: Optional[str]) -> Optional[str]:
    """Trim and upper-case a device serial/MAC; blank values become None."""
    if not serial:
        return None
    normalized = serial.strip().upper()
    return normalized or None


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()
