from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..deps import get_clock, get_current_user_id, get_session
from ..domain.errors import DomainError
from ..infrastructure.repositories import SqlAlchemyDamageReportRepository, SqlAlchemyReservationRepository
from ..models import DamageReportStatus
from ..schemas import DamageReportAssess, DamageReportCreate, DamageReportList, DamageReportRead
from ..usecases import damage_reports as damage_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.time import Clock
from .errors import to_http_exception

router = APIRouter(prefix="/damage-reports", tags=["damage-reports"])


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="failed to record audit log",
        ) from exc


@router.post("", response_model=DamageReportRead, status_code=status.HTTP_201_CREATED)
async def create_damage_report(
    payload: DamageReportCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> DamageReportRead:
    res_repo = SqlAlchemyReservationRepository(session)
    damage_repo = SqlAlchemyDamageReportRepository(session)
    try:
        report = await damage_usecase.report_damage(
            res_repo,
            damage_repo,
            session.begin,
            reservation_id=payload.reservation_id,
            reporter_id=user_id,
            description=payload.description,
            severity=payload.severity,
            photos=payload.photos,
            now=clock(),
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc

    _audit(
        action="damage_report.created",
        initiator="user",
        reservation_id=report.reservation_id,
        room_id=report.room_id,
        user_id=user_id,
        party_size=None,
        status_from=None,
        status_to=report.status,
        version=None,
        extra={"damage_report_id": report.id, "severity": report.severity.value},
    )
    return DamageReportRead.from_db(report, tz=settings.booking_rules().tz)


@router.get("", response_model=DamageReportList)
async def list_damage_reports(
    room_id: Optional[int] = Query(default=None, ge=1),
    status_: Optional[DamageReportStatus] = Query(default=None, alias="status"),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
) -> DamageReportList:
    damage_repo = SqlAlchemyDamageReportRepository(session)
    reports = await damage_usecase.list_damage_reports(
        damage_repo,
        user_id=user_id,
        is_assessor=user_id in settings.damage_assessors,
        room_id=room_id,
        status=status_,
    )
    tz = settings.booking_rules().tz
    return DamageReportList(total=len(reports), reports=[DamageReportRead.from_db(r, tz=tz) for r in reports])


@router.get("/{report_id}", response_model=DamageReportRead)
async def get_damage_report(
    report_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
) -> DamageReportRead:
    damage_repo = SqlAlchemyDamageReportRepository(session)
    try:
        report = await damage_usecase.get_damage_report(
            damage_repo,
            report_id=report_id,
            user_id=user_id,
            is_assessor=user_id in settings.damage_assessors,
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return DamageReportRead.from_db(report, tz=settings.booking_rules().tz)


@router.put("/{report_id}", response_model=DamageReportRead)
async def assess_damage_report(
    payload: DamageReportAssess,
    report_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> DamageReportRead:
    damage_repo = SqlAlchemyDamageReportRepository(session)
    try:
        report, status_from = await damage_usecase.assess_damage_report(
            damage_repo,
            session.begin,
            report_id=report_id,
            assessor_id=user_id,
            is_assessor=user_id in settings.damage_assessors,
            status=payload.status,
            penalty=payload.penalty,
            now=clock(),
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc

    _audit(
        action="damage_report.assessed",
        initiator="admin",
        reservation_id=report.reservation_id,
        room_id=report.room_id,
        user_id=user_id,
        party_size=None,
        status_from=status_from,
        status_to=report.status,
        version=None,
        extra={"damage_report_id": report.id, "penalty": report.penalty},
    )
    return DamageReportRead.from_db(report, tz=settings.booking_rules().tz)


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_damage_report(
    report_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
) -> Response:
    damage_repo = SqlAlchemyDamageReportRepository(session)
    is_assessor = user_id in settings.damage_assessors
    try:
        report = await damage_usecase.delete_damage_report(
            damage_repo,
            session.begin,
            report_id=report_id,
            user_id=user_id,
            is_assessor=is_assessor,
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc

    _audit(
        action="damage_report.deleted",
        initiator="admin" if is_assessor else "user",
        reservation_id=report.reservation_id,
        room_id=report.room_id,
        user_id=user_id,
        party_size=None,
        status_from=report.status,
        status_to=None,
        version=None,
        extra={"damage_report_id": report_id},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
