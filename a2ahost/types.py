"""Small shared helpers: ids and timestamps."""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def new_uuid() -> str:
    return str(uuid.uuid4())


def timestamp_token() -> str:
    """Hex token derived from the current epoch milliseconds."""
    return str(int(time.time() * 1000)).encode().hex()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
