from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Iterable, Literal, Protocol

from ..utils.time import local_date

QuotaCap = Literal["daily", "weekly"]


class TimedReservation(Protocol):
    id: int
    starts_at: datetime
    ends_at: datetime
    status: str


@dataclass(frozen=True)
class QuotaStatus:
    day: date
    daily_count: int
    weekly_hours: float
    daily_cap: int
    weekly_cap: float
    blocked_by: QuotaCap | None = None

    @property
    def can_book(self) -> bool:
        return self.blocked_by is None


def duration_hours(starts_at: datetime, ends_at: datetime) -> float:
    return (ends_at - starts_at).total_seconds() / 3600


def evaluate_quota(
    day: date,
    week_reservations: Iterable[TimedReservation],
    *,
    daily_cap: int,
    weekly_cap: float,
    tz: tzinfo,
    exclude_id: int | None = None,
) -> QuotaStatus:
    """Count usage from the reservations starting in the week containing `day`."""
    daily_count = 0
    weekly_hours = 0.0
    for reservation in week_reservations:
        if reservation.status == "cancelled" or reservation.id == exclude_id:
            continue
        weekly_hours += duration_hours(reservation.starts_at, reservation.ends_at)
        if local_date(reservation.starts_at, tz) == day:
            daily_count += 1

    blocked_by: QuotaCap | None = None
    if daily_count >= daily_cap:
        blocked_by = "daily"
    elif weekly_hours >= weekly_cap:
        blocked_by = "weekly"
    return QuotaStatus(
        day=day,
        daily_count=daily_count,
        weekly_hours=weekly_hours,
        daily_cap=daily_cap,
        weekly_cap=weekly_cap,
        blocked_by=blocked_by,
    )
