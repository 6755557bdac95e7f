from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..deps import get_clock, get_optional_user_id, get_session
from ..domain.errors import DomainError
from ..infrastructure.repositories import SqlAlchemyReservationRepository, SqlAlchemyRoomRepository
from ..schemas import HostelAvailabilityRead, RoomAvailabilityRead
from ..usecases import availability as availability_usecase
from ..utils.time import Clock, local_date
from .errors import to_http_exception

router = APIRouter(prefix="", tags=["availability"])


@router.get("/rooms/availability", response_model=List[RoomAvailabilityRead])
async def list_rooms_availability(
    day: Optional[date] = Query(default=None, alias="date", description="Local calendar day (defaults to today)"),
    hostel: Optional[str] = Query(default=None, description="Hostel code filter"),
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> list[RoomAvailabilityRead]:
    rules = settings.booking_rules()
    now = clock()
    target = day or local_date(now, rules.tz)
    rows = await availability_usecase.compute_rooms_availability(
        SqlAlchemyRoomRepository(session),
        SqlAlchemyReservationRepository(session),
        day=target,
        user_id=user_id,
        rules=rules,
        default_hours=settings.default_hours(),
        now=now,
        hostel_code=hostel,
    )
    return [RoomAvailabilityRead.from_domain(room=room, availability=avail, tz=rules.tz) for room, avail in rows]


@router.get("/rooms/{room_id}/availability", response_model=RoomAvailabilityRead)
async def get_room_availability(
    room_id: int = Path(..., ge=1),
    day: Optional[date] = Query(default=None, alias="date", description="Local calendar day (defaults to today)"),
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> RoomAvailabilityRead:
    rules = settings.booking_rules()
    now = clock()
    target = day or local_date(now, rules.tz)
    try:
        room, availability = await availability_usecase.compute_room_availability(
            SqlAlchemyRoomRepository(session),
            SqlAlchemyReservationRepository(session),
            room_id=room_id,
            day=target,
            user_id=user_id,
            rules=rules,
            default_hours=settings.default_hours(),
            now=now,
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return RoomAvailabilityRead.from_domain(room=room, availability=availability, tz=rules.tz)


@router.get("/hostels/availability", response_model=List[HostelAvailabilityRead])
async def list_hostels_availability(
    day: Optional[date] = Query(default=None, alias="date"),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> list[HostelAvailabilityRead]:
    rules = settings.booking_rules()
    now = clock()
    target = day or local_date(now, rules.tz)
    rows = await availability_usecase.compute_rooms_availability(
        SqlAlchemyRoomRepository(session),
        SqlAlchemyReservationRepository(session),
        day=target,
        user_id=None,
        rules=rules,
        default_hours=settings.default_hours(),
        now=now,
    )
    return [HostelAvailabilityRead.from_domain(summary, day=target) for summary in availability_usecase.summarize_hostels(rows)]
