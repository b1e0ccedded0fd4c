from __future__ import annotations

import os
import random
import string
import time
import uuid


def _random_block(length: int = 8) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(random.choices(alphabet, k=length))


def generate_id(prefix: str = "ID") -> str:
    """
    Short readable id like 'ID-8K2L0P9Q', used as the default primary key.

    SQLAlchemy calls column defaults with zero positional arguments, so the
    prefix must stay optional.
    """
    block = _random_block(8)
    if prefix:
        return f"{prefix}-{block}"
    return block


def generate_uuid7() -> str:
    """
    Generate a UUIDv7 string (time-ordered).

    Used for append-only log tables (notifications, email logs) where
    insertion order should match key order.
    """
    ts_ms = int(time.time() * 1000)
    ts_bytes = ts_ms.to_bytes(6, "big", signed=False)
    rand_bytes = os.urandom(10)
    raw = bytearray(ts_bytes + rand_bytes)
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))
