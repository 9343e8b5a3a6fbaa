"""Time utilities."""
from datetime import datetime, timezone


def now_utc() -> datetime:
    """Get current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat_or_none(value: datetime | None) -> str | None:
    """Format datetime as ISO string in UTC."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()

