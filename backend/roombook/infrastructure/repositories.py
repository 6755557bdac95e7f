from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple, cast

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..domain.repositories import DamageReportRepository, ReservationRepository, RoomRepository
from ..models import (
    DamageReport,
    DamageReportStatus,
    FairnessSnapshot,
    Hostel,
    Reservation,
    ReservationStatus,
    Room,
    RoomStatus,
    RoomType,
)


class SqlAlchemyRoomRepository(RoomRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, room_id: int) -> Room | None:
        stmt = select(Room).options(selectinload(Room.hostel)).where(Room.id == room_id)
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Room) else None

    async def get_for_update(self, room_id: int) -> Room | None:
        # Serialises every admission for the room until commit. Locked reads
        # overwrite whatever the identity map already holds for the row.
        stmt = (
            select(Room)
            .options(selectinload(Room.hostel))
            .where(Room.id == room_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Room) else None

    async def list_bookable(self, hostel_code: str | None = None) -> List[Room]:
        stmt = (
            select(Room)
            .join(Hostel, Room.hostel_id == Hostel.id)
            .options(selectinload(Room.hostel))
            .where(Room.type == RoomType.STUDY, Room.status == RoomStatus.ACTIVE)
            .order_by(Hostel.code, Room.name)
        )
        if hostel_code is not None:
            stmt = stmt.where(Hostel.code == hostel_code)
        return list((await self.session.scalars(stmt)).all())


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_live_for_room(self, room_id: int, start: datetime, end: datetime) -> List[Reservation]:
        stmt = (
            select(Reservation)
            .where(
                Reservation.room_id == room_id,
                Reservation.status != ReservationStatus.CANCELLED,
                Reservation.starts_at < end,
                Reservation.ends_at > start,
            )
            .order_by(Reservation.starts_at)
        )
        return list((await self.session.scalars(stmt)).all())

    async def find_conflict(
        self,
        room_id: int,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: int | None = None,
    ) -> Reservation | None:
        stmt = select(Reservation).where(
            Reservation.room_id == room_id,
            Reservation.status != ReservationStatus.CANCELLED,
            Reservation.starts_at < ends_at,
            Reservation.ends_at > starts_at,
        )
        if exclude_id is not None:
            stmt = stmt.where(Reservation.id != exclude_id)
        result = await self.session.scalar(stmt.limit(1))
        return result if isinstance(result, Reservation) else None

    async def list_live_for_user(self, user_id: str, start: datetime, end: datetime) -> List[Reservation]:
        stmt = select(Reservation).where(
            Reservation.user_id == user_id,
            Reservation.status != ReservationStatus.CANCELLED,
            Reservation.starts_at >= start,
            Reservation.starts_at < end,
        )
        return list((await self.session.scalars(stmt)).all())

    def _with_room(self) -> Select[Tuple[Reservation, Room]]:
        return (
            select(Reservation, Room)
            .join(Room, Reservation.room_id == Room.id)
            .options(selectinload(Room.hostel))
        )

    async def get(self, reservation_id: int) -> Optional[Tuple[Reservation, Room]]:
        stmt = self._with_room().where(Reservation.id == reservation_id)
        row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[Reservation, Room]], row)

    async def get_for_update(self, reservation_id: int) -> Optional[Tuple[Reservation, Room]]:
        stmt = (
            self._with_room()
            .where(Reservation.id == reservation_id)
            .with_for_update(of=Reservation)
            .execution_options(populate_existing=True)
        )
        row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[Reservation, Room]], row)

    async def create(
        self,
        *,
        room_id: int,
        user_id: str,
        starts_at: datetime,
        ends_at: datetime,
        party_size: int,
        purpose: str | None,
        status: ReservationStatus,
        now: datetime,
    ) -> Reservation:
        reservation = Reservation(
            room_id=room_id,
            user_id=user_id,
            starts_at=starts_at,
            ends_at=ends_at,
            status=status,
            live=status != ReservationStatus.CANCELLED or None,
            party_size=party_size,
            purpose=purpose,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def add_fairness_snapshot(
        self,
        *,
        reservation_id: int,
        user_id: str,
        daily_count: int,
        weekly_hours: float,
        now: datetime,
    ) -> FairnessSnapshot:
        snapshot = FairnessSnapshot(
            reservation_id=reservation_id,
            user_id=user_id,
            daily_count=daily_count,
            weekly_hours=weekly_hours,
            last_use_at=now,
            penalty_score=0,
            created_at=now,
        )
        self.session.add(snapshot)
        await self.session.flush()
        return snapshot

    async def update(self, reservation: Reservation) -> Reservation:
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def list_by_user(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> List[Tuple[Reservation, Room]]:
        stmt = self._with_room().where(Reservation.user_id == user_id)
        if start is not None:
            stmt = stmt.where(Reservation.starts_at >= start)
        if end is not None:
            stmt = stmt.where(Reservation.starts_at < end)
        rows = await self.session.execute(stmt.order_by(Reservation.starts_at.desc()))
        return cast(List[Tuple[Reservation, Room]], list(rows.all()))

    async def list_elapsed_for_update(self, now: datetime, limit: int = 500) -> List[Reservation]:
        stmt = (
            select(Reservation)
            .where(Reservation.status == ReservationStatus.CONFIRMED, Reservation.ends_at <= now)
            .order_by(Reservation.ends_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        return list((await self.session.scalars(stmt)).all())


class SqlAlchemyDamageReportRepository(DamageReportRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _with_room(self) -> Select[Tuple[DamageReport]]:
        return select(DamageReport).options(selectinload(DamageReport.room).selectinload(Room.hostel))

    async def add(self, report: DamageReport) -> DamageReport:
        self.session.add(report)
        await self.session.flush()
        return report

    async def get(self, report_id: int) -> DamageReport | None:
        result = await self.session.scalar(self._with_room().where(DamageReport.id == report_id))
        return result if isinstance(result, DamageReport) else None

    async def get_for_update(self, report_id: int) -> DamageReport | None:
        stmt = (
            self._with_room()
            .where(DamageReport.id == report_id)
            .with_for_update(of=DamageReport)
            .execution_options(populate_existing=True)
        )
        result = await self.session.scalar(stmt)
        return result if isinstance(result, DamageReport) else None

    async def list_reports(
        self,
        *,
        room_id: int | None = None,
        status: DamageReportStatus | None = None,
        reporter_id: str | None = None,
    ) -> List[DamageReport]:
        stmt = self._with_room()
        if room_id is not None:
            stmt = stmt.where(DamageReport.room_id == room_id)
        if status is not None:
            stmt = stmt.where(DamageReport.status == status)
        if reporter_id is not None:
            stmt = stmt.where(DamageReport.reporter_id == reporter_id)
        stmt = stmt.order_by(DamageReport.created_at.desc(), DamageReport.id.desc())
        return list((await self.session.scalars(stmt)).all())

    async def update(self, report: DamageReport) -> DamageReport:
        self.session.add(report)
        await self.session.flush()
        return report

    async def delete(self, report: DamageReport) -> None:
        await self.session.delete(report)
        await self.session.flush()
