"""Time utilities (UTC month labels)."""

from datetime import date, datetime, timezone


def utc_now_naive() -> datetime:
    """
    Current time in UTC, returned as naive datetime for DB storage.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime) -> datetime:
    """Normalize a datetime to naive UTC. Naive values are assumed to be UTC."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def month_label(dt: datetime) -> str:
    """
    Accounting period label for a timestamp, e.g. "2025-09".

    The label is computed on the UTC calendar so the same instant always
    maps to the same month regardless of the host timezone.
    """
    dt = to_utc_naive(dt)
    return f"{dt.year:04d}-{dt.month:02d}"


def current_month_label() -> str:
    return month_label(utc_now_naive())


def parse_month_label(label: str) -> date:
    """Return the first day of the month for a "YYYY-MM" label."""
    try:
        year, month = map(int, label.split("-"))
        return date(year, month, 1)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid month label '{label}'. Use YYYY-MM")


def months_between(start: date, end: date) -> int:
    """Whole calendar months from start's month to end's month (may be negative)."""
    return (end.year - start.year) * 12 + (end.month - start.month)
