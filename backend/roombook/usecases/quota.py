from datetime import date

from ..domain.quota import QuotaStatus, evaluate_quota
from ..domain.repositories import ReservationRepository
from ..domain.services import BookingRules
from ..utils.time import week_bounds


async def compute_user_quota(
    res_repo: ReservationRepository,
    *,
    user_id: str,
    day: date,
    rules: BookingRules,
    exclude_id: int | None = None,
) -> QuotaStatus:
    """Daily count and weekly hours (Sunday-start week) as of `day`."""
    start, end = week_bounds(day, rules.tz)
    reservations = await res_repo.list_live_for_user(user_id, start, end)
    return evaluate_quota(
        day,
        reservations,
        daily_cap=rules.daily_booking_cap,
        weekly_cap=rules.weekly_hours_cap,
        tz=rules.tz,
        exclude_id=exclude_id,
    )
