# src/tradearena/utils.py

"""Small shared helpers."""

import math
import secrets
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes.

    SQLite returns naive values even for timezone-aware columns, so everything
    read back from the database goes through here before date arithmetic.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (Python's round() is banker's)."""
    return math.floor(value + 0.5)


def generate_public_id(prefix: str) -> str:
    """Build an opaque public identifier such as ``battle-3f9c0a...``."""
    return f"{prefix}-{secrets.token_hex(8)}"


def fallback_username(user_id: str) -> str:
    """Display name used when the identity store has no record for a user."""
    return f"User {user_id[-4:]}"
