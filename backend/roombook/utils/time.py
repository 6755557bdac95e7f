from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable

Clock = Callable[[], datetime]


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utc_naive_to_local(dt: datetime, tz: tzinfo) -> datetime:
    return dt.replace(tzinfo=timezone.utc).astimezone(tz)


def local_naive_to_utc_naive(dt: datetime, tz: tzinfo) -> datetime:
    """Interpret a wall-clock time in `tz` and return it as naive UTC."""
    return to_utc_naive(dt.replace(tzinfo=tz))


def local_date(dt: datetime, tz: tzinfo) -> date:
    """Calendar date of a naive UTC instant as seen in `tz`."""
    return utc_naive_to_local(dt, tz).date()


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Naive UTC [start, end) of the local calendar day."""
    start = datetime.combine(day, time.min)
    return local_naive_to_utc_naive(start, tz), local_naive_to_utc_naive(start + timedelta(days=1), tz)


def week_start(day: date) -> date:
    # Weeks start on Sunday.
    return day - timedelta(days=(day.weekday() + 1) % 7)


def week_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    first = week_start(day)
    start, _ = day_bounds(first, tz)
    end, _ = day_bounds(first + timedelta(days=7), tz)
    return start, end
