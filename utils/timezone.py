"""UTC-everywhere time handling. Billing dates are UTC calendar dates."""

from datetime import date, datetime, timedelta, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def add_days(day: date, days: int) -> date:
    """Shift a calendar date by a signed number of days."""
    return day + timedelta(days=days)


def parse_date(value: str) -> date:
    """
    Parse an ISO 8601 calendar date (YYYY-MM-DD).

    Raises ValueError on anything else, including full datetimes.
    """
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")
