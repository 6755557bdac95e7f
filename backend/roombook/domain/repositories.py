from __future__ import annotations

from datetime import datetime
from typing import Any, AsyncContextManager, Callable, Protocol

from ..models import DamageReport, DamageReportStatus, FairnessSnapshot, Reservation, ReservationStatus, Room

# Opens one atomic unit of work, e.g. `AsyncSession.begin`.
TransactionFactory = Callable[[], AsyncContextManager[Any]]


class LockProvider(Protocol):
    def hold(self, *keys: str, timeout: float) -> AsyncContextManager[None]: ...


class RoomRepository(Protocol):
    async def get(self, room_id: int) -> Room | None: ...

    async def get_for_update(self, room_id: int) -> Room | None: ...

    async def list_bookable(self, hostel_code: str | None = None) -> list[Room]: ...


class ReservationRepository(Protocol):
    async def list_live_for_room(self, room_id: int, start: datetime, end: datetime) -> list[Reservation]: ...

    async def find_conflict(
        self,
        room_id: int,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: int | None = None,
    ) -> Reservation | None: ...

    async def list_live_for_user(self, user_id: str, start: datetime, end: datetime) -> list[Reservation]: ...

    async def get(self, reservation_id: int) -> tuple[Reservation, Room] | None: ...

    async def get_for_update(self, reservation_id: int) -> tuple[Reservation, Room] | None: ...

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
    ) -> Reservation: ...

    async def add_fairness_snapshot(
        self,
        *,
        reservation_id: int,
        user_id: str,
        daily_count: int,
        weekly_hours: float,
        now: datetime,
    ) -> FairnessSnapshot: ...

    async def update(self, reservation: Reservation) -> Reservation: ...

    async def list_by_user(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[tuple[Reservation, Room]]: ...

    async def list_elapsed_for_update(self, now: datetime, limit: int = 500) -> list[Reservation]: ...


class DamageReportRepository(Protocol):
    async def add(self, report: DamageReport) -> DamageReport: ...

    async def get(self, report_id: int) -> DamageReport | None: ...

    async def get_for_update(self, report_id: int) -> DamageReport | None: ...

    async def list_reports(
        self,
        *,
        room_id: int | None = None,
        status: DamageReportStatus | None = None,
        reporter_id: str | None = None,
    ) -> list[DamageReport]: ...

    async def update(self, report: DamageReport) -> DamageReport: ...

    async def delete(self, report: DamageReport) -> None: ...
