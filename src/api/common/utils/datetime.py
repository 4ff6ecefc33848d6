from datetime import date, datetime, timezone, timedelta
from typing import Optional


def get_current_datetime() -> datetime:
    """Return current UTC datetime with timezone info."""
    dt = datetime.now(timezone.utc)
    # Microseconds are stripped for consistency in tests
    return dt.replace(microsecond=0)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes.

    Some backends (SQLite) hand timezone-aware columns back without tzinfo;
    everything we store is UTC so the naive value can be tagged safely.
    """
    if value is None:
        return None
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_date(date_str: str | None) -> Optional[date]:
    return None if date_str is None else date.fromisoformat(date_str[:10])


def day_count(start_date: date, end_date: date) -> int:
    """Number of calendar days in the inclusive range [start_date, end_date]."""
    if end_date < start_date:
        return 0
    return (end_date - start_date).days + 1


def add_days(target: date, days: int) -> date:
    return target + timedelta(days=days)


def get_batch_window(start_date: date, end_date: date, offset_days: int, batch_days: int) -> Optional[tuple[date, date]]:
    """
    Get the date window of the next batch of a range.

    Args:
        start_date: First day of the whole range
        end_date: Last day of the whole range (inclusive)
        offset_days: Days of the range already processed
        batch_days: Maximum days in one batch

    Returns:
        Tuple of (batch_start, batch_end), clipped to end_date,
        or None when the offset is already past the end of the range
    """
    batch_start = add_days(start_date, offset_days)
    if batch_start > end_date:
        return None
    batch_end = min(add_days(batch_start, max(batch_days, 1) - 1), end_date)
    return batch_start, batch_end
