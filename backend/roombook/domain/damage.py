from datetime import datetime
from typing import Sequence
from urllib.parse import urlparse

from ..models import DamageReportStatus, Reservation, ReservationStatus
from .errors import TimingError, ValidationError

DESCRIPTION_MIN_LENGTH = 20
DESCRIPTION_MAX_LENGTH = 500
MAX_PHOTOS = 5

_STATUS_ORDER = {
    DamageReportStatus.REPORTED: 0,
    DamageReportStatus.UNDER_REVIEW: 1,
    DamageReportStatus.RESOLVED: 2,
}


def normalize_description(description: str) -> str:
    text = description.strip()
    if not DESCRIPTION_MIN_LENGTH <= len(text) <= DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Description must be between {DESCRIPTION_MIN_LENGTH} and {DESCRIPTION_MAX_LENGTH} characters",
            rule="description_length",
            length=len(text),
        )
    return text


def validate_photos(photos: Sequence[str]) -> list[str]:
    if len(photos) > MAX_PHOTOS:
        raise ValidationError(f"Maximum {MAX_PHOTOS} photos allowed", rule="too_many_photos", limit=MAX_PHOTOS)
    for url in photos:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("Photos must be http(s) links", rule="photo_url", url=url)
    return list(photos)


def ensure_can_report(reservation: Reservation, *, now: datetime) -> None:
    """Damage can be reported once the booked session has begun or completed."""
    if reservation.status == ReservationStatus.CANCELLED:
        raise ValidationError("Cancelled bookings cannot carry damage reports", rule="reservation_cancelled")
    if reservation.status == ReservationStatus.CONFIRMED and reservation.starts_at > now:
        raise TimingError("Damage can only be reported once the booking has started", rule="not_started")


def validate_assessment(
    current: DamageReportStatus,
    target: DamageReportStatus,
    *,
    penalty: int | None,
) -> None:
    if current == DamageReportStatus.RESOLVED:
        raise ValidationError("Resolved reports are final", rule="report_resolved")
    if _STATUS_ORDER[target] < _STATUS_ORDER[current]:
        raise ValidationError(
            f"A report cannot go back from {current.value} to {target.value}",
            rule="invalid_transition",
            status_from=current.value,
            status_to=target.value,
        )
    if penalty is not None and penalty < 0:
        raise ValidationError("penalty must not be negative", rule="penalty")
