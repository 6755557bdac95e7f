from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone, tzinfo

from ..models import Room, RoomStatus, RoomType
from ..utils.time import day_bounds, local_date, local_naive_to_utc_naive
from .errors import QuotaExceededError, TimingError, UnavailableResourceError, ValidationError
from .quota import QuotaStatus, duration_hours
from .slots import OperatingHours


@dataclass(frozen=True)
class BookingRules:
    max_booking_hours: float = 2
    daily_booking_cap: int = 2
    weekly_hours_cap: float = 6
    modification_lead_minutes: int = 15
    max_party_size: int = 20
    lock_timeout_seconds: float = 2.0
    tz: tzinfo = field(default=timezone.utc)


@dataclass(frozen=True)
class RoomSnapshot:
    type: RoomType
    status: RoomStatus
    capacity: int
    hours: OperatingHours


def snapshot_room(room: Room, default_hours: OperatingHours) -> RoomSnapshot:
    return RoomSnapshot(
        type=room.type,
        status=room.status,
        capacity=room.capacity,
        hours=default_hours.with_overrides(
            opens_at_hour=room.opens_at_hour,
            closes_at_hour=room.closes_at_hour,
            slot_minutes=room.slot_minutes,
        ),
    )


def _fmt_hours(value: float) -> str:
    return f"{value:g}"


def validate_booking_window(
    starts_at: datetime,
    ends_at: datetime,
    *,
    rules: BookingRules,
    now: datetime,
) -> float:
    """
    Pure validation of a proposed [starts_at, ends_at) in naive UTC.
    Returns the duration in hours. Raises ValidationError naming the rule.
    """
    if ends_at <= starts_at:
        raise ValidationError("End time must be after start time", rule="end_before_start")

    _, day_end = day_bounds(local_date(starts_at, rules.tz), rules.tz)
    if ends_at > day_end:
        raise ValidationError("Bookings cannot cross midnight", rule="crosses_midnight")

    hours = duration_hours(starts_at, ends_at)
    if hours > rules.max_booking_hours:
        raise ValidationError(
            f"Maximum booking duration is {_fmt_hours(rules.max_booking_hours)} hours",
            rule="max_duration",
            limit_hours=rules.max_booking_hours,
            requested_hours=hours,
        )

    if starts_at <= now:
        raise ValidationError("Bookings must start in the future", rule="start_in_past")
    return hours


def validate_party_size(party_size: int, *, rules: BookingRules, capacity: int | None = None) -> None:
    if party_size < 1:
        raise ValidationError("party_size must be positive", rule="party_size")
    if party_size > rules.max_party_size:
        raise ValidationError(
            f"party_size must be at most {rules.max_party_size}",
            rule="party_size",
            limit=rules.max_party_size,
        )
    if capacity is not None and party_size > capacity:
        raise ValidationError(
            "party_size exceeds room capacity",
            rule="room_capacity",
            capacity=capacity,
        )


def validate_room_admission(
    snapshot: RoomSnapshot,
    *,
    party_size: int,
    starts_at: datetime,
    ends_at: datetime,
    rules: BookingRules,
) -> None:
    """Room must be a bookable study room, and the booking must fit its capacity and hours."""
    if snapshot.type != RoomType.STUDY or snapshot.status != RoomStatus.ACTIVE:
        raise UnavailableResourceError("Room not available", rule="room_not_bookable", room_status=snapshot.status.value)

    validate_party_size(party_size, rules=rules, capacity=snapshot.capacity)
    validate_operating_hours(snapshot.hours, starts_at=starts_at, ends_at=ends_at, rules=rules)


def validate_operating_hours(
    hours: OperatingHours,
    *,
    starts_at: datetime,
    ends_at: datetime,
    rules: BookingRules,
) -> None:
    # Wall-clock hours of the local day, so DST days match the generated slots.
    midnight = datetime.combine(local_date(starts_at, rules.tz), time.min)
    opens = local_naive_to_utc_naive(midnight + timedelta(hours=hours.opens_at_hour), rules.tz)
    closes = local_naive_to_utc_naive(midnight + timedelta(hours=hours.closes_at_hour), rules.tz)
    if starts_at < opens or ends_at > closes:
        raise ValidationError(
            "Booking is outside the room's operating hours",
            rule="operating_hours",
            opens_at_hour=hours.opens_at_hour,
            closes_at_hour=hours.closes_at_hour,
        )


def ensure_quota_allows(quota: QuotaStatus) -> None:
    if quota.blocked_by == "daily":
        raise QuotaExceededError(
            f"Daily booking limit reached ({quota.daily_cap} bookings per day)",
            rule="daily_cap",
            cap="daily",
            current=quota.daily_count,
            limit=quota.daily_cap,
        )
    if quota.blocked_by == "weekly":
        raise QuotaExceededError(
            f"Weekly hours limit reached ({_fmt_hours(quota.weekly_cap)} hours per week)",
            rule="weekly_cap",
            cap="weekly",
            current=quota.weekly_hours,
            limit=quota.weekly_cap,
        )


def ensure_modified_quota_allows(
    quota_without_self: QuotaStatus,
    *,
    old_hours: float,
    new_hours: float,
    moved_to_other_day: bool,
    moved_to_other_week: bool = False,
) -> None:
    """
    `quota_without_self` is the usage in the target week/day excluding the
    reservation being modified. Within the same week only extra hours count;
    a move into another week brings the whole duration with it.
    """
    if moved_to_other_day and quota_without_self.daily_count >= quota_without_self.daily_cap:
        raise QuotaExceededError(
            f"Modified booking would exceed daily booking limit ({quota_without_self.daily_cap} bookings per day)",
            rule="daily_cap",
            cap="daily",
            current=quota_without_self.daily_count,
            limit=quota_without_self.daily_cap,
        )
    if new_hours > old_hours or moved_to_other_week:
        projected = quota_without_self.weekly_hours + new_hours
        if projected > quota_without_self.weekly_cap:
            raise QuotaExceededError(
                f"Modified booking would exceed weekly hours limit "
                f"({_fmt_hours(quota_without_self.weekly_cap)} hours per week)",
                rule="weekly_cap",
                cap="weekly",
                current=quota_without_self.weekly_hours,
                additional=new_hours if moved_to_other_week else new_hours - old_hours,
                limit=quota_without_self.weekly_cap,
            )


def validate_modification_timing(starts_at: datetime, *, now: datetime, rules: BookingRules) -> None:
    """Reject changes to reservations that started or start within the lead time."""
    if starts_at <= now:
        raise TimingError(
            "Cannot modify bookings that have already started or are in the past",
            rule="already_started",
        )
    lead = timedelta(minutes=rules.modification_lead_minutes)
    if starts_at - now < lead:
        raise TimingError(
            f"Bookings can only be modified at least {rules.modification_lead_minutes} "
            "minutes before the start time",
            rule="lead_time",
            lead_minutes=rules.modification_lead_minutes,
            minutes_until_start=(starts_at - now).total_seconds() / 60,
        )
