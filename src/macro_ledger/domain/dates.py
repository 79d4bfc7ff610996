"""Calendar helpers that work in the device's local timezone."""

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

DECEMBER = 12


def local_now(tz: ZoneInfo, now: datetime | None = None) -> datetime:
    """Return the current wall-clock time in ``tz``."""
    moment = now or datetime.now(tz=UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(tz)


def local_day(tz: ZoneInfo, now: datetime | None = None) -> date:
    """Return the local calendar date, never the UTC one."""
    return local_now(tz, now).date()


def date_key(day: date) -> str:
    return day.isoformat()


def parse_date_key(key: str) -> date:
    return date.fromisoformat(key)


def trailing_days(end: date, count: int) -> list[date]:
    """Return ``count`` days ending at ``end``, oldest first."""
    return [end - timedelta(days=offset) for offset in range(count - 1, -1, -1)]


def previous_days(day: date, count: int) -> list[date]:
    """Return the ``count`` days before ``day``, most recent first."""
    return [day - timedelta(days=offset) for offset in range(1, count + 1)]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the first and last day of a month."""
    start = date(year, month, 1)
    if month == DECEMBER:
        following = date(year + 1, 1, 1)
    else:
        following = date(year, month + 1, 1)
    return start, following - timedelta(days=1)
