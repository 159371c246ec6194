# 📄 File: recurring_billing/shared/utils/helpers.py

# 🧭 Purpose (Layman Explanation):
# Small everyday tools used all over the billing engine, like making unique IDs
# and getting the current time in a consistent way.

# 🧪 Purpose (Technical Summary):
# General purpose helpers for identifier generation, timezone-aware datetime
# handling, and the clock abstraction consumed by the engine.

# 🔗 Dependencies:
# - secrets: Random identifier parts
# - datetime: Timezone-aware timestamps
# - decimal: Money values

# 🔄 Connected Modules / Calls From:
# Used by: Domain models (ids, timestamps), store, processor, scheduler, analytics, tests

import secrets
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

# A clock is any zero-argument callable returning an aware UTC datetime.
Clock = Callable[[], datetime]


def generate_id(prefix: str = "", length: int = 12) -> str:
    """
    Generate a unique identifier with optional prefix.

    Args:
        prefix: Optional prefix for the ID
        length: Length of the random part

    Returns:
        Generated unique ID
    """
    random_part = secrets.token_hex(length)[:length]
    if prefix:
        return f"{prefix}_{random_part}"
    return random_part


def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Convert a number or numeric string to Decimal without float artifacts.

    Returns:
        The Decimal value, or None if the value is not a finite number
    """
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def utc_now() -> datetime:
    """Default clock: the current time in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to an aware UTC value.

    Naive datetimes are interpreted as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
