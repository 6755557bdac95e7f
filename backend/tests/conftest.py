import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

import pytest
from roombook.domain.services import BookingRules
from roombook.domain.slots import OperatingHours
from roombook.infrastructure.locks import KeyedLockRegistry
from roombook.models import (
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

_MUTABLE_FIELDS = ("starts_at", "ends_at", "status", "live", "party_size", "purpose", "version", "updated_at")
_DAMAGE_FIELDS = ("status", "assessed_by", "assessed_at", "penalty", "updated_at")

SEED_TIME = datetime(2025, 1, 1, 0, 0)


class InMemoryStore:
    """Reservation store whose transactions roll back every change on error."""

    def __init__(self) -> None:
        self.hostels: dict[int, Hostel] = {}
        self.rooms: dict[int, Room] = {}
        self.reservations: dict[int, Reservation] = {}
        self.snapshots: list[FairnessSnapshot] = []
        self.damage_reports: dict[int, DamageReport] = {}
        self.commits = 0
        self.rollbacks = 0
        self._next_id = 1

    def next_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def add_hostel(self, hostel_id: int, code: str, name: str) -> Hostel:
        hostel = Hostel(id=hostel_id, code=code, name=name, created_at=SEED_TIME, updated_at=SEED_TIME)
        self.hostels[hostel_id] = hostel
        return hostel

    def add_room(
        self,
        room_id: int,
        hostel: Hostel,
        name: str,
        *,
        capacity: int = 4,
        type: RoomType = RoomType.STUDY,
        status: RoomStatus = RoomStatus.ACTIVE,
        **overrides: Any,
    ) -> Room:
        room = Room(
            id=room_id,
            hostel_id=hostel.id,
            name=name,
            type=type,
            status=status,
            capacity=capacity,
            created_at=SEED_TIME,
            updated_at=SEED_TIME,
            **overrides,
        )
        room.hostel = hostel
        self.rooms[room_id] = room
        return room

    def add_reservation(
        self,
        *,
        room_id: int,
        user_id: str,
        starts_at: datetime,
        ends_at: datetime,
        status: ReservationStatus = ReservationStatus.CONFIRMED,
        party_size: int = 1,
        version: int = 1,
    ) -> Reservation:
        reservation = Reservation(
            id=self.next_id(),
            room_id=room_id,
            user_id=user_id,
            starts_at=starts_at,
            ends_at=ends_at,
            status=status,
            live=status != ReservationStatus.CANCELLED or None,
            party_size=party_size,
            purpose=None,
            version=version,
            created_at=SEED_TIME,
            updated_at=SEED_TIME,
        )
        self.reservations[reservation.id] = reservation
        return reservation

    def live_reservations(self, room_id: Optional[int] = None) -> list[Reservation]:
        return [
            r
            for r in self.reservations.values()
            if r.status != ReservationStatus.CANCELLED and (room_id is None or r.room_id == room_id)
        ]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["InMemoryStore"]:
        saved = {rid: {f: getattr(r, f) for f in _MUTABLE_FIELDS} for rid, r in self.reservations.items()}
        snapshot_count = len(self.snapshots)
        reports = {rid: (r, {f: getattr(r, f) for f in _DAMAGE_FIELDS}) for rid, r in self.damage_reports.items()}
        try:
            yield self
        except BaseException:
            self.damage_reports = {}
            for rid, (report, fields) in reports.items():
                for name, value in fields.items():
                    setattr(report, name, value)
                self.damage_reports[rid] = report
            for rid in list(self.reservations):
                if rid not in saved:
                    del self.reservations[rid]
                    continue
                for name, value in saved[rid].items():
                    setattr(self.reservations[rid], name, value)
            del self.snapshots[snapshot_count:]
            self.rollbacks += 1
            raise
        self.commits += 1


class FakeRoomRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get(self, room_id: int) -> Room | None:
        return self.store.rooms.get(room_id)

    async def get_for_update(self, room_id: int) -> Room | None:
        await asyncio.sleep(0)
        return self.store.rooms.get(room_id)

    async def list_bookable(self, hostel_code: str | None = None) -> list[Room]:
        rooms = [
            room
            for room in self.store.rooms.values()
            if room.type == RoomType.STUDY
            and room.status == RoomStatus.ACTIVE
            and (hostel_code is None or room.hostel.code == hostel_code)
        ]
        return sorted(rooms, key=lambda room: (room.hostel.code, room.name))


class FakeReservationRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def list_live_for_room(self, room_id: int, start: datetime, end: datetime) -> list[Reservation]:
        return sorted(
            (r for r in self.store.live_reservations(room_id) if r.starts_at < end and r.ends_at > start),
            key=lambda r: r.starts_at,
        )

    async def find_conflict(
        self,
        room_id: int,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: int | None = None,
    ) -> Reservation | None:
        # Yield so that unserialised writers would interleave here.
        await asyncio.sleep(0)
        for r in self.store.live_reservations(room_id):
            if r.id != exclude_id and r.starts_at < ends_at and r.ends_at > starts_at:
                return r
        return None

    async def list_live_for_user(self, user_id: str, start: datetime, end: datetime) -> list[Reservation]:
        return [r for r in self.store.live_reservations() if r.user_id == user_id and start <= r.starts_at < end]

    async def get(self, reservation_id: int) -> tuple[Reservation, Room] | None:
        reservation = self.store.reservations.get(reservation_id)
        if reservation is None:
            return None
        return reservation, self.store.rooms[reservation.room_id]

    async def get_for_update(self, reservation_id: int) -> tuple[Reservation, Room] | None:
        await asyncio.sleep(0)
        return await self.get(reservation_id)

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
        await asyncio.sleep(0)
        reservation = Reservation(
            id=self.store.next_id(),
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
        self.store.reservations[reservation.id] = reservation
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
            id=len(self.store.snapshots) + 1,
            reservation_id=reservation_id,
            user_id=user_id,
            daily_count=daily_count,
            weekly_hours=weekly_hours,
            last_use_at=now,
            penalty_score=0,
            created_at=now,
        )
        self.store.snapshots.append(snapshot)
        return snapshot

    async def update(self, reservation: Reservation) -> Reservation:
        return reservation

    async def list_by_user(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[tuple[Reservation, Room]]:
        rows = [
            (r, self.store.rooms[r.room_id])
            for r in self.store.reservations.values()
            if r.user_id == user_id
            and (start is None or r.starts_at >= start)
            and (end is None or r.starts_at < end)
        ]
        return sorted(rows, key=lambda row: row[0].starts_at, reverse=True)

    async def list_elapsed_for_update(self, now: datetime, limit: int = 500) -> list[Reservation]:
        elapsed = [
            r for r in self.store.reservations.values() if r.status == ReservationStatus.CONFIRMED and r.ends_at <= now
        ]
        return sorted(elapsed, key=lambda r: r.ends_at)[:limit]


class FakeDamageReportRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def add(self, report: DamageReport) -> DamageReport:
        report.id = self.store.next_id()
        self.store.damage_reports[report.id] = report
        return report

    async def get(self, report_id: int) -> DamageReport | None:
        return self.store.damage_reports.get(report_id)

    async def get_for_update(self, report_id: int) -> DamageReport | None:
        await asyncio.sleep(0)
        return self.store.damage_reports.get(report_id)

    async def list_reports(
        self,
        *,
        room_id: int | None = None,
        status: DamageReportStatus | None = None,
        reporter_id: str | None = None,
    ) -> list[DamageReport]:
        reports = [
            r
            for r in self.store.damage_reports.values()
            if (room_id is None or r.room_id == room_id)
            and (status is None or r.status == status)
            and (reporter_id is None or r.reporter_id == reporter_id)
        ]
        return sorted(reports, key=lambda r: (r.created_at, r.id), reverse=True)

    async def update(self, report: DamageReport) -> DamageReport:
        return report

    async def delete(self, report: DamageReport) -> None:
        del self.store.damage_reports[report.id]


@pytest.fixture
def store() -> InMemoryStore:
    """Hostel H1 with study rooms R1/R2, an inventory room and a room under maintenance; hostel H2 with R5."""
    store = InMemoryStore()
    h1 = store.add_hostel(1, "H1", "North Hall")
    h2 = store.add_hostel(2, "H2", "South Hall")
    store.add_room(1, h1, "R1")
    store.add_room(2, h1, "R2")
    store.add_room(3, h1, "Storage", type=RoomType.INVENTORY)
    store.add_room(4, h1, "R4", status=RoomStatus.MAINTENANCE)
    store.add_room(5, h2, "R5", capacity=8, opens_at_hour=8, closes_at_hour=22)
    return store


@pytest.fixture
def room_repo(store: InMemoryStore) -> FakeRoomRepo:
    return FakeRoomRepo(store)


@pytest.fixture
def res_repo(store: InMemoryStore) -> FakeReservationRepo:
    return FakeReservationRepo(store)


@pytest.fixture
def damage_repo(store: InMemoryStore) -> FakeDamageReportRepo:
    return FakeDamageReportRepo(store)


@pytest.fixture
def locks() -> KeyedLockRegistry:
    return KeyedLockRegistry()


@pytest.fixture
def rules() -> BookingRules:
    return BookingRules(tz=timezone.utc)


@pytest.fixture
def hours() -> OperatingHours:
    return OperatingHours()


@pytest.fixture
def now() -> datetime:
    # Wednesday 2025-01-08 08:00 UTC; its week starts Sunday 2025-01-05.
    return datetime(2025, 1, 8, 8, 0)
