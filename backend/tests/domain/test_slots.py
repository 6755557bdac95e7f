from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest
from roombook.domain.slots import OperatingHours, TimeSlot, generate_time_slots

DAY = date(2025, 1, 8)


def test_full_day_at_thirty_minutes_yields_48_contiguous_slots() -> None:
    slots = generate_time_slots(DAY, room_id=1, hours=OperatingHours(), now=datetime(2025, 1, 7, 12, 0))

    assert len(slots) == 48
    assert slots[0].starts_at == datetime(2025, 1, 8, 0, 0)
    assert slots[-1].ends_at == datetime(2025, 1, 9, 0, 0)
    for prev, nxt in zip(slots, slots[1:]):
        assert prev.ends_at == nxt.starts_at
    assert all(slot.is_available for slot in slots)


def test_slot_ids_encode_day_room_and_start() -> None:
    slots = generate_time_slots(DAY, room_id=7, hours=OperatingHours(), now=datetime(2025, 1, 1))

    assert slots[0].slot_id == "2025-01-08-7-0000"
    assert slots[29].slot_id == "2025-01-08-7-1430"
    # The final slot ends at next-day midnight but keeps its own day's identifier.
    assert slots[-1].slot_id == "2025-01-08-7-2330"
    assert slots[-1].day == DAY
    assert len({slot.slot_id for slot in slots}) == 48


def test_configured_hours_and_granularity() -> None:
    hours = OperatingHours(opens_at_hour=8, closes_at_hour=22, slot_minutes=15)
    slots = generate_time_slots(DAY, room_id=1, hours=hours, now=datetime(2025, 1, 1))

    assert len(slots) == hours.slot_count == 56
    assert slots[0].starts_at == datetime(2025, 1, 8, 8, 0)
    assert slots[-1].ends_at == datetime(2025, 1, 8, 22, 0)


def test_past_slots_today_are_seeded_unavailable() -> None:
    slots = generate_time_slots(DAY, room_id=1, hours=OperatingHours(), now=datetime(2025, 1, 8, 10, 15))

    unavailable = [slot for slot in slots if not slot.is_available]
    # 00:00 through 10:00 start at or before now.
    assert len(unavailable) == 21
    assert unavailable[-1].starts_at == datetime(2025, 1, 8, 10, 0)
    assert all(slot.status == "past" for slot in unavailable)


def test_slot_starting_exactly_now_is_past() -> None:
    slots = generate_time_slots(DAY, room_id=1, hours=OperatingHours(), now=datetime(2025, 1, 8, 10, 0))

    by_start = {slot.starts_at: slot for slot in slots}
    assert by_start[datetime(2025, 1, 8, 10, 0)].is_available is False
    assert by_start[datetime(2025, 1, 8, 10, 30)].is_available is True


def test_other_days_are_not_seeded() -> None:
    yesterday = generate_time_slots(date(2025, 1, 7), room_id=1, hours=OperatingHours(), now=datetime(2025, 1, 8, 10))
    tomorrow = generate_time_slots(date(2025, 1, 9), room_id=1, hours=OperatingHours(), now=datetime(2025, 1, 8, 10))

    assert all(slot.is_available for slot in yesterday)
    assert all(slot.is_available for slot in tomorrow)


def test_local_timezone_shifts_instants_not_identifiers() -> None:
    tz = ZoneInfo("Asia/Tokyo")
    slots = generate_time_slots(DAY, room_id=1, hours=OperatingHours(), now=datetime(2025, 1, 1), tz=tz)

    assert slots[0].slot_id == "2025-01-08-1-0000"
    assert slots[0].starts_at == datetime(2025, 1, 7, 15, 0)
    assert slots[-1].ends_at == datetime(2025, 1, 8, 15, 0)


@pytest.mark.parametrize(
    "opens, closes, minutes",
    [(8, 8, 30), (22, 8, 30), (0, 25, 30), (0, 24, 0), (0, 24, 7)],
)
def test_invalid_operating_hours_rejected(opens: int, closes: int, minutes: int) -> None:
    with pytest.raises(ValueError):
        OperatingHours(opens_at_hour=opens, closes_at_hour=closes, slot_minutes=minutes)


def test_with_overrides_keeps_unset_fields() -> None:
    base = OperatingHours(opens_at_hour=0, closes_at_hour=24, slot_minutes=30)

    assert base.with_overrides(opens_at_hour=8) == OperatingHours(8, 24, 30)
    assert base.with_overrides() == base


def test_slot_status_prefers_booking_state() -> None:
    start = datetime(2025, 1, 8, 10)
    end = datetime(2025, 1, 8, 10, 30)

    assert TimeSlot("a", DAY, start, end).status == "free"
    assert TimeSlot("a", DAY, start, end, is_available=False).status == "past"
    assert TimeSlot("a", DAY, start, end, is_available=False, reservation_id=3).status == "booked"
    assert TimeSlot("a", DAY, start, end, is_available=False, is_my_booking=True, reservation_id=3).status == "mine"
