"""Identifier generators for log rows and conversations.

Log ids are 26 digits: YYYYMMDDHHMMSS + 6-digit microseconds + 6-digit
random suffix, so they sort lexicographically by creation time.
"""

from __future__ import annotations

import secrets
import time
from datetime import datetime

LOG_ID_LENGTH = 26
CONVERSATION_ID_PREFIX = "cvrs_"
CONVERSATION_ID_MAX_LENGTH = 30


def generate_log_id(now: datetime | None = None) -> str:
    """Return a 26-character, time-sortable log identifier."""
    now = now or datetime.now()
    return f"{now.strftime('%Y%m%d%H%M%S%f')}{secrets.randbelow(1_000_000):06d}"


def generate_conversation_id() -> str:
    """Return a fresh conversation id such as ``cvrs_1760870400123_a1b2c3``."""
    return f"{CONVERSATION_ID_PREFIX}{int(time.time() * 1000)}_{secrets.token_hex(3)}"
