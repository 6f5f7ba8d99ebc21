"""
Timestamp utilities for consistent time handling across the system.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Convert datetime to ISO string, treating naive values as UTC.

    Args:
        value: datetime to convert (None passes through)

    Returns:
        ISO 8601 string or None
    """
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO string produced by to_iso back into a UTC datetime.

    Args:
        value: ISO 8601 string (None passes through)

    Returns:
        timezone-aware datetime or None
    """
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def recency_decay(created_at: datetime, half_life_hours: float, now: Optional[datetime] = None) -> float:
    """Exponential recency weight in (0, 1], halving every half_life_hours.

    Args:
        created_at: When the item was created
        half_life_hours: Age at which the weight drops to 0.5
        now: Reference time (optional, uses current time if None)

    Returns:
        Weight in (0, 1]; future timestamps count as age zero
    """
    now = now or utc_now()
    age_hours = max(0.0, (ensure_utc(now) - ensure_utc(created_at)).total_seconds() / 3600.0)
    if half_life_hours <= 0:
        return 1.0 if age_hours == 0 else 0.0
    return 0.5 ** (age_hours / half_life_hours)
