from datetime import date, datetime
from typing import Any, Literal, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..deps import get_clock, get_current_user_id, get_lock_registry, get_session
from ..domain.errors import DomainError
from ..infrastructure.locks import KeyedLockRegistry
from ..infrastructure.repositories import SqlAlchemyReservationRepository, SqlAlchemyRoomRepository
from ..infrastructure.transaction import with_retries
from ..models import ReservationStatus
from ..schemas import QuotaRead, ReservationCancel, ReservationCreate, ReservationList, ReservationRead, ReservationUpdate
from ..usecases import quota as quota_usecase
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.time import Clock, local_date, to_utc_naive
from .errors import to_http_exception

router = APIRouter(prefix="", tags=["reservations"])


def _to_utc(value: datetime, field: str) -> datetime:
    try:
        return to_utc_naive(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} must have timezone") from exc


def _extract_version(if_match: Optional[str], payload: Optional[Any]) -> Optional[int]:
    """If-Match wins over a body `version`; both are optional."""
    if if_match:
        raw = if_match.strip()
        if raw.startswith("W/"):
            raw = raw[2:]
        try:
            version = int(raw.strip('"'))
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid If-Match header") from exc
    else:
        version = getattr(payload, "version", None) if payload is not None else None
        if version is None:
            return None
    if version < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="version must be >= 1")
    return version


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="failed to record audit log",
        ) from exc


@router.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
    locks: KeyedLockRegistry = Depends(get_lock_registry),
) -> ReservationRead:
    starts_at = _to_utc(payload.starts_at, "starts_at")
    ends_at = _to_utc(payload.ends_at, "ends_at")
    room_repo = SqlAlchemyRoomRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    rules = settings.booking_rules()
    try:
        reservation, room = await with_retries(
            lambda: reservation_usecase.admit_booking(
                room_repo,
                res_repo,
                locks,
                session.begin,
                room_id=payload.room_id,
                user_id=user_id,
                starts_at=starts_at,
                ends_at=ends_at,
                purpose=payload.purpose,
                party_size=payload.party_size,
                rules=rules,
                default_hours=settings.default_hours(),
                now=clock(),
            ),
            attempts=settings.transaction_retries,
            backoff_seconds=settings.retry_backoff_seconds,
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc

    _audit(
        action="reservation.created",
        initiator="user",
        reservation_id=reservation.id,
        room_id=reservation.room_id,
        user_id=reservation.user_id,
        party_size=reservation.party_size,
        status_from=None,
        status_to=reservation.status,
        version=reservation.version,
        starts_at=reservation.starts_at,
        ends_at=reservation.ends_at,
    )
    return ReservationRead.from_db(reservation=reservation, room=room, tz=rules.tz)


@router.get("/me/reservations", response_model=ReservationList)
async def list_my_reservations(
    range_: Literal["today", "week", "all"] = Query(default="week", alias="range"),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> ReservationList:
    res_repo = SqlAlchemyReservationRepository(session)
    rules = settings.booking_rules()
    rows = await reservation_usecase.list_user_reservations(
        res_repo, user_id=user_id, range_=range_, rules=rules, now=clock()
    )
    return ReservationList(
        range=range_,
        total=len(rows),
        reservations=[ReservationRead.from_db(reservation=res, room=room, tz=rules.tz) for res, room in rows],
    )


@router.get("/me/reservations/{reservation_id}", response_model=ReservationRead)
async def get_my_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
) -> ReservationRead:
    res_repo = SqlAlchemyReservationRepository(session)
    row = await reservation_usecase.get_user_reservation(res_repo, reservation_id=reservation_id, user_id=user_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
    reservation, room = row
    return ReservationRead.from_db(reservation=reservation, room=room, tz=settings.booking_rules().tz)


@router.patch("/me/reservations/{reservation_id}", response_model=ReservationRead)
async def modify_reservation(
    payload: ReservationUpdate,
    reservation_id: int = Path(..., ge=1),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
    locks: KeyedLockRegistry = Depends(get_lock_registry),
) -> ReservationRead:
    version = _extract_version(if_match, payload)
    changes = payload.model_dump(exclude_unset=True, exclude={"version"})
    for field in ("starts_at", "ends_at"):
        if changes.get(field) is not None:
            changes[field] = _to_utc(changes[field], field)
        else:
            changes.pop(field, None)
    if changes.get("party_size", 0) is None:
        changes.pop("party_size")

    res_repo = SqlAlchemyReservationRepository(session)
    rules = settings.booking_rules()
    try:
        reservation, room, changed = await with_retries(
            lambda: reservation_usecase.modify_booking(
                res_repo,
                locks,
                session.begin,
                reservation_id=reservation_id,
                user_id=user_id,
                changes=changes,
                rules=rules,
                default_hours=settings.default_hours(),
                now=clock(),
                expected_version=version,
            ),
            attempts=settings.transaction_retries,
            backoff_seconds=settings.retry_backoff_seconds,
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc

    if changed:
        _audit(
            action="reservation.modified",
            initiator="user",
            reservation_id=reservation.id,
            room_id=reservation.room_id,
            user_id=reservation.user_id,
            party_size=reservation.party_size,
            status_from=reservation.status,
            status_to=reservation.status,
            version=reservation.version,
            starts_at=reservation.starts_at,
            ends_at=reservation.ends_at,
            extra={"changed_fields": sorted(changed)},
        )
    return ReservationRead.from_db(reservation=reservation, room=room, tz=rules.tz)


@router.post("/me/reservations/{reservation_id}/cancel", response_model=ReservationRead)
async def cancel_reservation(
    reservation_id: int = Path(..., ge=1),
    payload: Optional[ReservationCancel] = Body(default=None),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> ReservationRead:
    version = _extract_version(if_match, payload)
    res_repo = SqlAlchemyReservationRepository(session)
    rules = settings.booking_rules()
    try:
        updated, room, status_from = await reservation_usecase.cancel_booking(
            res_repo,
            session.begin,
            reservation_id=reservation_id,
            user_id=user_id,
            rules=rules,
            now=clock(),
            expected_version=version,
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc

    if status_from != ReservationStatus.CANCELLED:
        _audit(
            action="reservation.cancelled",
            initiator="user",
            reservation_id=updated.id,
            room_id=updated.room_id,
            user_id=updated.user_id,
            party_size=updated.party_size,
            status_from=status_from,
            status_to=updated.status,
            version=updated.version,
        )
    return ReservationRead.from_db(reservation=updated, room=room, tz=rules.tz)


@router.get("/me/quota", response_model=QuotaRead)
async def get_my_quota(
    day: Optional[date] = Query(default=None, alias="date"),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> QuotaRead:
    res_repo = SqlAlchemyReservationRepository(session)
    rules = settings.booking_rules()
    target = day or local_date(clock(), rules.tz)
    quota = await quota_usecase.compute_user_quota(res_repo, user_id=user_id, day=target, rules=rules)
    return QuotaRead.from_domain(quota)
