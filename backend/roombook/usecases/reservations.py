import logging
from datetime import date, datetime, timedelta
from typing import Any, Literal, Mapping

from ..domain.errors import (
    ConflictError,
    ForbiddenError,
    ReservationNotFoundError,
    TimingError,
    UnavailableResourceError,
    ValidationError,
    VersionConflictError,
)
from ..domain.quota import duration_hours
from ..domain.repositories import LockProvider, ReservationRepository, RoomRepository, TransactionFactory
from ..domain.services import (
    BookingRules,
    ensure_modified_quota_allows,
    ensure_quota_allows,
    snapshot_room,
    validate_booking_window,
    validate_modification_timing,
    validate_operating_hours,
    validate_party_size,
    validate_room_admission,
)
from ..domain.slots import OperatingHours
from ..models import Reservation, ReservationStatus, Room
from ..utils.time import day_bounds, local_date, week_start
from .quota import compute_user_quota

logger = logging.getLogger(__name__)

MODIFIABLE_FIELDS = frozenset({"starts_at", "ends_at", "purpose", "party_size"})

ListRange = Literal["today", "week", "all"]


def _room_day_key(room_id: int, day: date) -> str:
    return f"room:{room_id}:{day.isoformat()}"


def _user_key(user_id: str) -> str:
    return f"user:{user_id}"


def _ensure_owner(reservation: Reservation, user_id: str, *, action: str) -> None:
    if reservation.user_id != user_id:
        raise ForbiddenError(f"Unauthorized to {action} this booking", rule="not_owner")


async def admit_booking(
    room_repo: RoomRepository,
    res_repo: ReservationRepository,
    locks: LockProvider,
    transaction: TransactionFactory,
    *,
    room_id: int,
    user_id: str,
    starts_at: datetime,
    ends_at: datetime,
    purpose: str | None = None,
    party_size: int = 1,
    rules: BookingRules,
    default_hours: OperatingHours,
    now: datetime,
) -> tuple[Reservation, Room]:
    """
    Admit a new reservation or raise the first violated rule.

    Quota, overlap and room checks run inside one transaction while the
    room/day and user locks are held, and the locks are released only after
    the commit, so concurrent admissions for one room can never both insert.
    """
    hours = validate_booking_window(starts_at, ends_at, rules=rules, now=now)
    validate_party_size(party_size, rules=rules)
    day = local_date(starts_at, rules.tz)

    async with locks.hold(_room_day_key(room_id, day), _user_key(user_id), timeout=rules.lock_timeout_seconds):
        async with transaction():
            room = await room_repo.get_for_update(room_id)

            quota = await compute_user_quota(res_repo, user_id=user_id, day=day, rules=rules)
            ensure_quota_allows(quota)

            conflict = await res_repo.find_conflict(room_id, starts_at, ends_at)
            if conflict is not None:
                raise ConflictError(
                    "Time slot already booked",
                    rule="overlap",
                    conflicting_reservation_id=conflict.id,
                )

            if room is None:
                raise UnavailableResourceError("Room not found", rule="room_not_found", room_id=room_id)
            validate_room_admission(
                snapshot_room(room, default_hours),
                party_size=party_size,
                starts_at=starts_at,
                ends_at=ends_at,
                rules=rules,
            )

            reservation = await res_repo.create(
                room_id=room.id,
                user_id=user_id,
                starts_at=starts_at,
                ends_at=ends_at,
                party_size=party_size,
                purpose=purpose,
                status=ReservationStatus.CONFIRMED,
                now=now,
            )
            await res_repo.add_fairness_snapshot(
                reservation_id=reservation.id,
                user_id=user_id,
                daily_count=quota.daily_count + 1,
                weekly_hours=quota.weekly_hours + hours,
                now=now,
            )

    logger.info("admitted reservation %s for room %s (%s - %s)", reservation.id, room_id, starts_at, ends_at)
    return reservation, room


async def modify_booking(
    res_repo: ReservationRepository,
    locks: LockProvider,
    transaction: TransactionFactory,
    *,
    reservation_id: int,
    user_id: str,
    changes: Mapping[str, Any],
    rules: BookingRules,
    default_hours: OperatingHours,
    now: datetime,
    expected_version: int | None = None,
) -> tuple[Reservation, Room, dict[str, tuple[Any, Any]]]:
    """
    Apply the supplied fields to a confirmed reservation.

    Returns the reservation, its room and `{field: (old, new)}` for every
    field that actually changed.
    """
    unknown = set(changes) - MODIFIABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be modified: {', '.join(sorted(unknown))}", rule="unknown_fields")
    if not changes:
        raise ValidationError("No changes supplied", rule="empty_update")

    # Locate the room first so the lock can be keyed before the write transaction opens.
    async with transaction():
        row = await res_repo.get(reservation_id)
    if row is None:
        raise ReservationNotFoundError("Booking not found", reservation_id=reservation_id)
    current, _ = row
    _ensure_owner(current, user_id, action="modify")
    target_day = local_date(changes.get("starts_at") or current.starts_at, rules.tz)

    async with locks.hold(
        _room_day_key(current.room_id, target_day),
        _user_key(user_id),
        timeout=rules.lock_timeout_seconds,
    ):
        async with transaction():
            row = await res_repo.get_for_update(reservation_id)
            if row is None:
                raise ReservationNotFoundError("Booking not found", reservation_id=reservation_id)
            reservation, room = row
            _ensure_owner(reservation, user_id, action="modify")
            if reservation.status != ReservationStatus.CONFIRMED:
                raise ValidationError(
                    f"A {reservation.status.value} booking cannot be modified",
                    rule="reservation_not_modifiable",
                    status=reservation.status.value,
                )
            if expected_version is not None and reservation.version != expected_version:
                raise VersionConflictError("version mismatch", current_version=reservation.version)
            validate_modification_timing(reservation.starts_at, now=now, rules=rules)

            new_starts_at = changes.get("starts_at") or reservation.starts_at
            new_ends_at = changes.get("ends_at") or reservation.ends_at
            window_changed = new_starts_at != reservation.starts_at or new_ends_at != reservation.ends_at
            snapshot = snapshot_room(room, default_hours)

            if window_changed:
                new_hours = validate_booking_window(new_starts_at, new_ends_at, rules=rules, now=now)
                validate_operating_hours(snapshot.hours, starts_at=new_starts_at, ends_at=new_ends_at, rules=rules)
                new_day = local_date(new_starts_at, rules.tz)
                old_day = local_date(reservation.starts_at, rules.tz)
                quota = await compute_user_quota(
                    res_repo,
                    user_id=user_id,
                    day=new_day,
                    rules=rules,
                    exclude_id=reservation.id,
                )
                ensure_modified_quota_allows(
                    quota,
                    old_hours=duration_hours(reservation.starts_at, reservation.ends_at),
                    new_hours=new_hours,
                    moved_to_other_day=new_day != old_day,
                    moved_to_other_week=week_start(new_day) != week_start(old_day),
                )
                conflict = await res_repo.find_conflict(
                    reservation.room_id, new_starts_at, new_ends_at, exclude_id=reservation.id
                )
                if conflict is not None:
                    raise ConflictError(
                        "New time slot conflicts with another booking",
                        rule="overlap",
                        conflicting_reservation_id=conflict.id,
                    )

            if "party_size" in changes:
                validate_party_size(changes["party_size"], rules=rules, capacity=snapshot.capacity)

            proposed = {
                "starts_at": new_starts_at,
                "ends_at": new_ends_at,
                "purpose": changes.get("purpose", reservation.purpose),
                "party_size": changes.get("party_size", reservation.party_size),
            }
            changed: dict[str, tuple[Any, Any]] = {}
            for name, value in proposed.items():
                old = getattr(reservation, name)
                if old != value:
                    changed[name] = (old, value)
                    setattr(reservation, name, value)

            if changed:
                reservation.version += 1
                reservation.updated_at = now
                await res_repo.update(reservation)

    logger.info("modified reservation %s fields=%s", reservation.id, sorted(changed))
    return reservation, room, changed


async def cancel_booking(
    res_repo: ReservationRepository,
    transaction: TransactionFactory,
    *,
    reservation_id: int,
    user_id: str,
    rules: BookingRules,
    now: datetime,
    expected_version: int | None = None,
) -> tuple[Reservation, Room, ReservationStatus]:
    """Cancel a reservation. Returns the reservation, its room and the status it had before."""
    async with transaction():
        row = await res_repo.get_for_update(reservation_id)
        if row is None:
            raise ReservationNotFoundError("Booking not found", reservation_id=reservation_id)
        reservation, room = row
        _ensure_owner(reservation, user_id, action="cancel")
        previous = reservation.status
        # Idempotent: already cancelled returns as-is
        if previous == ReservationStatus.CANCELLED:
            return reservation, room, previous
        if expected_version is not None and reservation.version != expected_version:
            raise VersionConflictError("version mismatch", current_version=reservation.version)
        if previous == ReservationStatus.COMPLETED:
            raise TimingError("Completed bookings cannot be cancelled", rule="already_completed")
        validate_modification_timing(reservation.starts_at, now=now, rules=rules)

        reservation.status = ReservationStatus.CANCELLED
        reservation.live = None
        reservation.version += 1
        reservation.updated_at = now
        await res_repo.update(reservation)

    logger.info("cancelled reservation %s", reservation.id)
    return reservation, room, previous


async def complete_elapsed_reservations(
    res_repo: ReservationRepository,
    transaction: TransactionFactory,
    *,
    now: datetime,
) -> list[Reservation]:
    """Move confirmed reservations whose end has passed to completed."""
    async with transaction():
        elapsed = await res_repo.list_elapsed_for_update(now)
        for reservation in elapsed:
            reservation.status = ReservationStatus.COMPLETED
            reservation.version += 1
            reservation.updated_at = now
            await res_repo.update(reservation)
    return elapsed


async def list_user_reservations(
    res_repo: ReservationRepository,
    *,
    user_id: str,
    range_: ListRange,
    rules: BookingRules,
    now: datetime,
) -> list[tuple[Reservation, Room]]:
    if range_ == "all":
        return await res_repo.list_by_user(user_id)
    start, _ = day_bounds(local_date(now, rules.tz), rules.tz)
    days = 1 if range_ == "today" else 7
    return await res_repo.list_by_user(user_id, start, start + timedelta(days=days))


async def get_user_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: str,
) -> tuple[Reservation, Room] | None:
    row = await res_repo.get(reservation_id)
    if row is None or row[0].user_id != user_id:
        return None
    return row
