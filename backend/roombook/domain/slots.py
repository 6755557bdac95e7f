from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from ..utils.time import local_date, local_naive_to_utc_naive

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class OperatingHours:
    opens_at_hour: int = 0
    closes_at_hour: int = 24
    slot_minutes: int = 30

    def __post_init__(self) -> None:
        if not 0 <= self.opens_at_hour < self.closes_at_hour <= 24:
            raise ValueError("operating hours must satisfy 0 <= opens < closes <= 24")
        if self.slot_minutes <= 0:
            raise ValueError("slot_minutes must be positive")
        if self.span_minutes % self.slot_minutes != 0:
            raise ValueError("operating span must be a multiple of slot_minutes")

    @property
    def span_minutes(self) -> int:
        return (self.closes_at_hour - self.opens_at_hour) * 60

    @property
    def slot_count(self) -> int:
        return self.span_minutes // self.slot_minutes

    def with_overrides(
        self,
        *,
        opens_at_hour: int | None = None,
        closes_at_hour: int | None = None,
        slot_minutes: int | None = None,
    ) -> OperatingHours:
        return OperatingHours(
            opens_at_hour=self.opens_at_hour if opens_at_hour is None else opens_at_hour,
            closes_at_hour=self.closes_at_hour if closes_at_hour is None else closes_at_hour,
            slot_minutes=self.slot_minutes if slot_minutes is None else slot_minutes,
        )


@dataclass(frozen=True)
class TimeSlot:
    slot_id: str
    day: date
    starts_at: datetime
    ends_at: datetime
    is_available: bool = True
    is_my_booking: bool = False
    reservation_id: int | None = None

    @property
    def status(self) -> str:
        if self.reservation_id is not None:
            return "mine" if self.is_my_booking else "booked"
        return "free" if self.is_available else "past"


def generate_time_slots(
    day: date,
    *,
    room_id: int,
    hours: OperatingHours,
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> list[TimeSlot]:
    """
    Partition the operating span of `day` into contiguous slots.

    `now` and the returned instants are naive UTC. Slots starting at or before
    `now` are seeded unavailable only when `day` is today in `tz`.
    """
    is_today = day == local_date(now, tz)
    midnight = datetime.combine(day, time.min)
    slots: list[TimeSlot] = []
    for offset in range(hours.opens_at_hour * 60, hours.closes_at_hour * 60, hours.slot_minutes):
        local_start = midnight + timedelta(minutes=offset)
        starts_at = local_naive_to_utc_naive(local_start, tz)
        ends_at = local_naive_to_utc_naive(local_start + timedelta(minutes=hours.slot_minutes), tz)
        slots.append(
            TimeSlot(
                slot_id=f"{day.isoformat()}-{room_id}-{offset // 60:02d}{offset % 60:02d}",
                day=day,
                starts_at=starts_at,
                ends_at=ends_at,
                is_available=not (is_today and starts_at <= now),
            )
        )
    return slots
