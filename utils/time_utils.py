"""Time, duration and pace helpers shared by tracking and sync code."""

import math
from datetime import datetime, timezone
from typing import Optional, Tuple


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as ISO-8601, assuming UTC when naive."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def parse_iso(value) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into an aware datetime.

    Returns None for empty or unparseable input instead of raising, since
    persisted payloads may come from older app versions.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value).strip()
    if not text:
        return None
    # Python < 3.11 does not accept the "Z" suffix
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize to an aware UTC datetime, assuming UTC when naive."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_duration(total_seconds: int) -> str:
    """
    Format seconds as 'MM:SS', or 'H:MM:SS' past one hour.
    Example: 125 -> '02:05', 3725 -> '1:02:05'
    """
    total_seconds = max(0, int(total_seconds))
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def pace_parts(pace_min_per_km: float) -> Tuple[int, int]:
    """
    Split a decimal pace into whole minutes and rounded seconds.

    seconds = round((pace - floor(pace)) * 60). Note this can yield 60
    (e.g. 5.995 -> (5, 60)); callers that need a carry must apply it.
    """
    minutes = math.floor(pace_min_per_km)
    # Half-seconds round up, not to even
    seconds = int(math.floor((pace_min_per_km - minutes) * 60 + 0.5))
    return minutes, seconds


def format_pace(pace_min_per_km: Optional[float]) -> str:
    """Format pace as 'M:SS', or '--:--' when there is no meaningful pace."""
    if pace_min_per_km is None or math.isnan(pace_min_per_km) or math.isinf(pace_min_per_km):
        return "--:--"
    if pace_min_per_km <= 0:
        return "--:--"
    minutes, seconds = pace_parts(pace_min_per_km)
    return f"{minutes}:{seconds:02d}"


def time_of_day(dt: datetime) -> str:
    """Name the part of day for an activity start, in the device's local time."""
    hour = dt.astimezone().hour if dt.tzinfo else dt.hour
    if hour < 6:
        return "Night"
    if hour < 12:
        return "Morning"
    if hour < 17:
        return "Afternoon"
    if hour < 21:
        return "Evening"
    return "Night"
