from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

# Shared helpers for the engine modules and the service layer.

def ensure_timezone_aware(dt: datetime) -> datetime:
    """Ensures a datetime object is timezone-aware, assuming UTC if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt

def parse_iso_datetime(value: str) -> datetime:
    """Parses Airtable/JS style ISO strings, including a trailing 'Z'."""
    return ensure_timezone_aware(datetime.fromisoformat(value.replace('Z', '+00:00')))

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def time_ago(dt: datetime, now: datetime | None = None) -> str:
    """Converts a datetime object to a human-readable string like '2h ago'."""
    if not dt: return "N/A"
    now = now or utc_now()
    dt_aware = ensure_timezone_aware(dt)
    diff = now - dt_aware
    seconds = diff.total_seconds()
    if seconds < 60: return "Just now"
    if seconds < 3600: return f"{int(seconds / 60)}m ago"
    if seconds < 86400: return f"{int(seconds / 3600)}h ago"
    return f"{diff.days}d ago"

def round_half_up(value: float) -> int:
    """Rounds .5 away from zero, matching the dashboard's point display (22.5 -> 23)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def clamp(value, lower, upper):
    return max(lower, min(upper, value))

def threshold_label(value: float, thresholds: list) -> str:
    """Returns the name of the highest (minimum, name) threshold reached. Thresholds ascend."""
    label = thresholds[0][1]
    for minimum, name in thresholds:
        if value >= minimum:
            label = name
    return label
