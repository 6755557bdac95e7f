import logging
from datetime import datetime
from typing import Sequence

from ..domain.damage import ensure_can_report, normalize_description, validate_assessment, validate_photos
from ..domain.errors import DamageReportNotFoundError, ForbiddenError, ReservationNotFoundError
from ..domain.repositories import DamageReportRepository, ReservationRepository, TransactionFactory
from ..models import DamageReport, DamageReportStatus, DamageSeverity

logger = logging.getLogger(__name__)


def _visible_to(report: DamageReport, user_id: str, *, is_assessor: bool) -> bool:
    return is_assessor or report.reporter_id == user_id


async def report_damage(
    res_repo: ReservationRepository,
    damage_repo: DamageReportRepository,
    transaction: TransactionFactory,
    *,
    reservation_id: int,
    reporter_id: str,
    description: str,
    severity: DamageSeverity = DamageSeverity.LOW,
    photos: Sequence[str] = (),
    now: datetime,
) -> DamageReport:
    """File a damage report against one of the reporter's own bookings."""
    text = normalize_description(description)
    links = validate_photos(photos)

    async with transaction():
        row = await res_repo.get(reservation_id)
        if row is None:
            raise ReservationNotFoundError("Booking not found", reservation_id=reservation_id)
        reservation, room = row
        if reservation.user_id != reporter_id:
            raise ForbiddenError("Unauthorized to report damage for this booking", rule="not_owner")
        ensure_can_report(reservation, now=now)

        report = DamageReport(
            reservation_id=reservation.id,
            room_id=room.id,
            reporter_id=reporter_id,
            description=text,
            severity=severity,
            photos=links,
            status=DamageReportStatus.REPORTED,
            created_at=now,
            updated_at=now,
        )
        report.room = room
        report = await damage_repo.add(report)

    logger.info("damage report %s filed for reservation %s", report.id, reservation_id)
    return report


async def list_damage_reports(
    damage_repo: DamageReportRepository,
    *,
    user_id: str,
    is_assessor: bool,
    room_id: int | None = None,
    status: DamageReportStatus | None = None,
) -> list[DamageReport]:
    # Reporters only ever see their own reports.
    return await damage_repo.list_reports(
        room_id=room_id,
        status=status,
        reporter_id=None if is_assessor else user_id,
    )


async def get_damage_report(
    damage_repo: DamageReportRepository,
    *,
    report_id: int,
    user_id: str,
    is_assessor: bool,
) -> DamageReport:
    report = await damage_repo.get(report_id)
    if report is None or not _visible_to(report, user_id, is_assessor=is_assessor):
        raise DamageReportNotFoundError("Damage report not found", report_id=report_id)
    return report


async def assess_damage_report(
    damage_repo: DamageReportRepository,
    transaction: TransactionFactory,
    *,
    report_id: int,
    assessor_id: str,
    is_assessor: bool,
    status: DamageReportStatus,
    penalty: int | None = None,
    now: datetime,
) -> tuple[DamageReport, DamageReportStatus]:
    """
    Move a report forward through reported -> under_review -> resolved.

    Returns the report and the status it had before.
    """
    if not is_assessor:
        raise ForbiddenError("Only assessors can review damage reports", rule="not_assessor")

    async with transaction():
        report = await damage_repo.get_for_update(report_id)
        if report is None:
            raise DamageReportNotFoundError("Damage report not found", report_id=report_id)
        previous = report.status
        validate_assessment(previous, status, penalty=penalty)

        report.status = status
        report.assessed_by = assessor_id
        if penalty is not None:
            report.penalty = penalty
        if status == DamageReportStatus.RESOLVED:
            report.assessed_at = now
        report.updated_at = now
        await damage_repo.update(report)

    logger.info("damage report %s moved %s -> %s", report.id, previous.value, status.value)
    return report, previous


async def delete_damage_report(
    damage_repo: DamageReportRepository,
    transaction: TransactionFactory,
    *,
    report_id: int,
    user_id: str,
    is_assessor: bool,
) -> DamageReport:
    """Assessors may delete any report; reporters only their own until review starts."""
    async with transaction():
        report = await damage_repo.get_for_update(report_id)
        if report is None or not _visible_to(report, user_id, is_assessor=is_assessor):
            raise DamageReportNotFoundError("Damage report not found", report_id=report_id)
        if not is_assessor and report.status != DamageReportStatus.REPORTED:
            raise ForbiddenError(
                "Reports under review can no longer be withdrawn",
                rule="report_locked",
                status=report.status.value,
            )
        await damage_repo.delete(report)

    logger.info("damage report %s deleted by %s", report_id, user_id)
    return report
