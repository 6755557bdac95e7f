from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone, tzinfo
from typing import Iterable, Protocol

from .slots import OperatingHours, TimeSlot, generate_time_slots


class BookedInterval(Protocol):
    id: int
    user_id: str
    starts_at: datetime
    ends_at: datetime
    status: str


@dataclass(frozen=True)
class RoomAvailability:
    room_id: int
    day: date
    slots: list[TimeSlot]

    @property
    def total_slots(self) -> int:
        return len(self.slots)

    @property
    def available_slots(self) -> int:
        return sum(1 for slot in self.slots if slot.is_available)

    @property
    def availability_percentage(self) -> int:
        return percentage(self.available_slots, self.total_slots)


def percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return round(part * 100 / whole)


def project_availability(
    *,
    room_id: int,
    day: date,
    hours: OperatingHours,
    reservations: Iterable[BookedInterval],
    now: datetime,
    tz: tzinfo = timezone.utc,
    user_id: str | None = None,
) -> RoomAvailability:
    """
    Overlay live reservations on the generated slots of `day`.

    A slot counts as booked only when it lies entirely inside a reservation's
    [starts_at, ends_at). Cancelled reservations are ignored.
    """
    slots = generate_time_slots(day, room_id=room_id, hours=hours, now=now, tz=tz)
    booked: dict[str, BookedInterval] = {}
    for reservation in reservations:
        if reservation.status == "cancelled":
            continue
        for slot in slots:
            if slot.starts_at >= reservation.starts_at and slot.ends_at <= reservation.ends_at:
                booked[slot.slot_id] = reservation

    projected: list[TimeSlot] = []
    for slot in slots:
        owner = booked.get(slot.slot_id)
        if owner is None:
            projected.append(slot)
            continue
        projected.append(
            replace(
                slot,
                is_available=False,
                is_my_booking=user_id is not None and owner.user_id == user_id,
                reservation_id=owner.id,
            )
        )
    return RoomAvailability(room_id=room_id, day=day, slots=projected)
