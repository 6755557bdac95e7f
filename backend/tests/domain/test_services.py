from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from roombook.domain.errors import QuotaExceededError, TimingError, UnavailableResourceError, ValidationError
from roombook.domain.quota import QuotaStatus
from roombook.domain.services import (
    BookingRules,
    RoomSnapshot,
    ensure_modified_quota_allows,
    ensure_quota_allows,
    snapshot_room,
    validate_booking_window,
    validate_modification_timing,
    validate_operating_hours,
    validate_party_size,
    validate_room_admission,
)
from roombook.domain.slots import OperatingHours, generate_time_slots
from roombook.models import Room, RoomStatus, RoomType

RULES = BookingRules(tz=timezone.utc)
NOW = datetime(2025, 1, 8, 8, 0)


def _at(hour: int, minute: int = 0, day: int = 8) -> datetime:
    return datetime(2025, 1, day, hour, minute)


def _snapshot(**overrides: object) -> RoomSnapshot:
    values: dict[str, object] = {
        "type": RoomType.STUDY,
        "status": RoomStatus.ACTIVE,
        "capacity": 4,
        "hours": OperatingHours(),
    }
    values.update(overrides)
    return RoomSnapshot(**values)  # type: ignore[arg-type]


def _quota(daily_count: int = 0, weekly_hours: float = 0, blocked_by: str | None = None) -> QuotaStatus:
    return QuotaStatus(
        day=date(2025, 1, 8),
        daily_count=daily_count,
        weekly_hours=weekly_hours,
        daily_cap=2,
        weekly_cap=6,
        blocked_by=blocked_by,  # type: ignore[arg-type]
    )


def test_accepts_two_hour_window() -> None:
    assert validate_booking_window(_at(14), _at(16), rules=RULES, now=NOW) == 2.0


@pytest.mark.parametrize("end", [_at(18, 30), _at(18, 15)])
def test_rejects_window_longer_than_max(end: datetime) -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate_booking_window(_at(16), end, rules=RULES, now=NOW)
    assert excinfo.value.rule == "max_duration"
    assert excinfo.value.message == "Maximum booking duration is 2 hours"
    assert excinfo.value.details["limit_hours"] == 2


def test_duration_rejected_even_in_the_past() -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate_booking_window(_at(1), _at(4), rules=RULES, now=NOW)
    assert excinfo.value.rule == "max_duration"


@pytest.mark.parametrize("end", [_at(14), _at(13)])
def test_rejects_end_not_after_start(end: datetime) -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate_booking_window(_at(14), end, rules=RULES, now=NOW)
    assert excinfo.value.rule == "end_before_start"


def test_rejects_window_crossing_midnight() -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate_booking_window(_at(23), _at(0, 30, day=9), rules=RULES, now=NOW)
    assert excinfo.value.rule == "crosses_midnight"


def test_window_may_end_exactly_at_midnight() -> None:
    assert validate_booking_window(_at(23), _at(0, day=9), rules=RULES, now=NOW) == 1.0


def test_midnight_is_evaluated_in_local_time() -> None:
    tokyo = BookingRules(tz=ZoneInfo("Asia/Tokyo"))
    # 14:30-15:30 UTC is 23:30-00:30 in Tokyo.
    with pytest.raises(ValidationError) as excinfo:
        validate_booking_window(_at(14, 30), _at(15, 30), rules=tokyo, now=NOW)
    assert excinfo.value.rule == "crosses_midnight"


@pytest.mark.parametrize("start", [_at(7), _at(8)])
def test_rejects_start_not_in_future(start: datetime) -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate_booking_window(start, start + timedelta(hours=1), rules=RULES, now=NOW)
    assert excinfo.value.rule == "start_in_past"


def test_party_size_bounds() -> None:
    validate_party_size(20, rules=RULES)
    with pytest.raises(ValidationError):
        validate_party_size(0, rules=RULES)
    with pytest.raises(ValidationError):
        validate_party_size(21, rules=RULES)
    with pytest.raises(ValidationError) as excinfo:
        validate_party_size(5, rules=RULES, capacity=4)
    assert excinfo.value.rule == "room_capacity"


@pytest.mark.parametrize(
    "overrides",
    [{"status": RoomStatus.MAINTENANCE}, {"status": RoomStatus.BLOCKED}, {"type": RoomType.INVENTORY}],
)
def test_room_admission_rejects_unbookable_rooms(overrides: dict[str, object]) -> None:
    with pytest.raises(UnavailableResourceError):
        validate_room_admission(_snapshot(**overrides), party_size=1, starts_at=_at(14), ends_at=_at(15), rules=RULES)


def test_room_admission_enforces_operating_hours() -> None:
    snapshot = _snapshot(hours=OperatingHours(opens_at_hour=8, closes_at_hour=22))

    validate_room_admission(snapshot, party_size=1, starts_at=_at(8), ends_at=_at(10), rules=RULES)
    with pytest.raises(ValidationError) as excinfo:
        validate_room_admission(snapshot, party_size=1, starts_at=_at(21), ends_at=_at(22, 30), rules=RULES)
    assert excinfo.value.rule == "operating_hours"


def test_snapshot_room_applies_per_room_overrides() -> None:
    room = Room(id=1, hostel_id=1, name="R1", type=RoomType.STUDY, status=RoomStatus.ACTIVE, capacity=6)
    room.opens_at_hour = 8
    room.slot_minutes = 15

    snapshot = snapshot_room(room, OperatingHours())

    assert snapshot.hours == OperatingHours(opens_at_hour=8, closes_at_hour=24, slot_minutes=15)
    assert snapshot.capacity == 6


def test_quota_errors_carry_cap_and_usage() -> None:
    ensure_quota_allows(_quota(daily_count=1, weekly_hours=2))

    with pytest.raises(QuotaExceededError) as excinfo:
        ensure_quota_allows(_quota(daily_count=2, blocked_by="daily"))
    assert excinfo.value.details == {"cap": "daily", "current": 2, "limit": 2}

    with pytest.raises(QuotaExceededError) as excinfo:
        ensure_quota_allows(_quota(weekly_hours=6, blocked_by="weekly"))
    assert excinfo.value.details["cap"] == "weekly"


def test_modified_quota_checks_extension_against_weekly_cap() -> None:
    others = _quota(weekly_hours=4.5)

    ensure_modified_quota_allows(others, old_hours=1, new_hours=1.5, moved_to_other_day=False)
    with pytest.raises(QuotaExceededError) as excinfo:
        ensure_modified_quota_allows(others, old_hours=1, new_hours=2, moved_to_other_day=False)
    assert excinfo.value.details["cap"] == "weekly"


def test_modified_quota_allows_shrinking_when_over_cap() -> None:
    ensure_modified_quota_allows(_quota(weekly_hours=6), old_hours=2, new_hours=1, moved_to_other_day=False)


def test_modified_quota_checks_daily_cap_when_moving_day() -> None:
    full_day = _quota(daily_count=2)

    ensure_modified_quota_allows(full_day, old_hours=1, new_hours=1, moved_to_other_day=False)
    with pytest.raises(QuotaExceededError) as excinfo:
        ensure_modified_quota_allows(full_day, old_hours=1, new_hours=1, moved_to_other_day=True)
    assert excinfo.value.details["cap"] == "daily"


def test_modification_rejected_within_lead_time() -> None:
    with pytest.raises(TimingError) as excinfo:
        validate_modification_timing(NOW + timedelta(minutes=10), now=NOW, rules=RULES)
    assert excinfo.value.rule == "lead_time"


def test_modification_rejected_after_start() -> None:
    with pytest.raises(TimingError) as excinfo:
        validate_modification_timing(NOW - timedelta(minutes=5), now=NOW, rules=RULES)
    assert excinfo.value.rule == "already_started"


def test_modification_allowed_at_exact_lead_time() -> None:
    validate_modification_timing(NOW + timedelta(minutes=15), now=NOW, rules=RULES)


def test_modified_quota_counts_full_duration_when_moving_week() -> None:
    next_week = _quota(weekly_hours=6)

    ensure_modified_quota_allows(next_week, old_hours=1, new_hours=1, moved_to_other_day=True)
    with pytest.raises(QuotaExceededError) as excinfo:
        ensure_modified_quota_allows(
            next_week, old_hours=1, new_hours=1, moved_to_other_day=True, moved_to_other_week=True
        )
    assert excinfo.value.details["cap"] == "weekly"
    assert excinfo.value.details["additional"] == 1


def test_operating_hours_follow_wall_clock_on_dst_change() -> None:
    london = ZoneInfo("Europe/London")
    rules = BookingRules(tz=london)
    hours = OperatingHours(opens_at_hour=8, closes_at_hour=22, slot_minutes=60)
    # Clocks go forward on 2025-03-30, so local 08:00 is 07:00 UTC.
    slots = generate_time_slots(date(2025, 3, 30), room_id=1, hours=hours, now=datetime(2025, 3, 29), tz=london)

    assert slots[0].starts_at == datetime(2025, 3, 30, 7, 0)
    for slot in (slots[0], slots[-1]):
        validate_operating_hours(hours, starts_at=slot.starts_at, ends_at=slot.ends_at, rules=rules)
    with pytest.raises(ValidationError) as excinfo:
        validate_operating_hours(
            hours, starts_at=datetime(2025, 3, 30, 6, 0), ends_at=datetime(2025, 3, 30, 7, 0), rules=rules
        )
    assert excinfo.value.rule == "operating_hours"
    with pytest.raises(ValidationError):
        validate_operating_hours(
            hours, starts_at=datetime(2025, 3, 30, 21, 0), ends_at=datetime(2025, 3, 30, 22, 0), rules=rules
        )
