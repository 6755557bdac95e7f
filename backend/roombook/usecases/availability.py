from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List

from ..domain.availability import RoomAvailability, percentage, project_availability
from ..domain.errors import UnavailableResourceError
from ..domain.repositories import ReservationRepository, RoomRepository
from ..domain.services import BookingRules, snapshot_room
from ..domain.slots import OperatingHours
from ..models import Hostel, Room, RoomStatus, RoomType
from ..utils.time import day_bounds


@dataclass(frozen=True)
class HostelSummary:
    hostel: Hostel
    rooms: list[tuple[Room, RoomAvailability]]

    @property
    def total_slots(self) -> int:
        return sum(a.total_slots for _, a in self.rooms)

    @property
    def available_slots(self) -> int:
        return sum(a.available_slots for _, a in self.rooms)

    @property
    def availability_percentage(self) -> int:
        return percentage(self.available_slots, self.total_slots)


async def _project_room(
    res_repo: ReservationRepository,
    room: Room,
    *,
    day: date,
    user_id: str | None,
    rules: BookingRules,
    default_hours: OperatingHours,
    now: datetime,
) -> RoomAvailability:
    start, end = day_bounds(day, rules.tz)
    reservations = await res_repo.list_live_for_room(room.id, start, end)
    return project_availability(
        room_id=room.id,
        day=day,
        hours=snapshot_room(room, default_hours).hours,
        reservations=reservations,
        now=now,
        tz=rules.tz,
        user_id=user_id,
    )


async def compute_room_availability(
    room_repo: RoomRepository,
    res_repo: ReservationRepository,
    *,
    room_id: int,
    day: date,
    user_id: str | None,
    rules: BookingRules,
    default_hours: OperatingHours,
    now: datetime,
) -> tuple[Room, RoomAvailability]:
    room = await room_repo.get(room_id)
    if room is None:
        raise UnavailableResourceError("Room not found", rule="room_not_found", room_id=room_id)
    if room.type != RoomType.STUDY or room.status != RoomStatus.ACTIVE:
        raise UnavailableResourceError(
            "Room not available",
            rule="room_not_bookable",
            room_id=room_id,
            room_status=room.status.value,
        )
    availability = await _project_room(
        res_repo, room, day=day, user_id=user_id, rules=rules, default_hours=default_hours, now=now
    )
    return room, availability


async def compute_rooms_availability(
    room_repo: RoomRepository,
    res_repo: ReservationRepository,
    *,
    day: date,
    user_id: str | None,
    rules: BookingRules,
    default_hours: OperatingHours,
    now: datetime,
    hostel_code: str | None = None,
) -> List[tuple[Room, RoomAvailability]]:
    rooms = await room_repo.list_bookable(hostel_code)
    items: List[tuple[Room, RoomAvailability]] = []
    for room in rooms:
        availability = await _project_room(
            res_repo, room, day=day, user_id=user_id, rules=rules, default_hours=default_hours, now=now
        )
        items.append((room, availability))
    return items


def summarize_hostels(rows: Iterable[tuple[Room, RoomAvailability]]) -> List[HostelSummary]:
    grouped: dict[int, list[tuple[Room, RoomAvailability]]] = {}
    hostels: dict[int, Hostel] = {}
    for room, availability in rows:
        hostels[room.hostel_id] = room.hostel
        grouped.setdefault(room.hostel_id, []).append((room, availability))
    return sorted(
        (HostelSummary(hostel=hostels[hid], rooms=items) for hid, items in grouped.items()),
        key=lambda summary: summary.hostel.code,
    )
