from datetime import date as date_type, datetime, tzinfo
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .domain.availability import RoomAvailability
from .domain.quota import QuotaStatus
from .domain.slots import TimeSlot
from .models import DamageReport, DamageReportStatus, DamageSeverity, Reservation, ReservationStatus, Room, RoomStatus
from .usecases.availability import HostelSummary
from .utils.time import utc_naive_to_local


class HostelRef(BaseModel):
    id: int
    name: str
    code: str


class RoomRef(BaseModel):
    id: int
    name: str
    capacity: int
    status: RoomStatus
    hostel: HostelRef

    @classmethod
    def from_db(cls, room: Room) -> "RoomRef":
        return cls(
            id=room.id,
            name=room.name,
            capacity=room.capacity,
            status=room.status,
            hostel=HostelRef(id=room.hostel.id, name=room.hostel.name, code=room.hostel.code),
        )


class SlotRead(BaseModel):
    slot_id: str
    starts_at: datetime
    ends_at: datetime
    date: date_type
    is_available: bool
    is_my_booking: bool
    reservation_id: Optional[int] = None
    status: Literal["free", "booked", "mine", "past"]

    @classmethod
    def from_domain(cls, slot: TimeSlot, *, tz: tzinfo) -> "SlotRead":
        return cls(
            slot_id=slot.slot_id,
            starts_at=utc_naive_to_local(slot.starts_at, tz),
            ends_at=utc_naive_to_local(slot.ends_at, tz),
            date=slot.day,
            is_available=slot.is_available,
            is_my_booking=slot.is_my_booking,
            reservation_id=slot.reservation_id,
            status=slot.status,  # type: ignore[arg-type]
        )


class RoomAvailabilityRead(BaseModel):
    room_id: int
    room: RoomRef
    date: date_type
    slots: list[SlotRead]
    total_slots: int
    available_slots: int
    availability_percentage: int

    @classmethod
    def from_domain(cls, *, room: Room, availability: RoomAvailability, tz: tzinfo) -> "RoomAvailabilityRead":
        return cls(
            room_id=room.id,
            room=RoomRef.from_db(room),
            date=availability.day,
            slots=[SlotRead.from_domain(slot, tz=tz) for slot in availability.slots],
            total_slots=availability.total_slots,
            available_slots=availability.available_slots,
            availability_percentage=availability.availability_percentage,
        )


class RoomSummaryRead(BaseModel):
    id: int
    name: str
    capacity: int
    available_slots: int
    total_slots: int


class HostelAvailabilityRead(BaseModel):
    id: int
    name: str
    code: str
    date: date_type
    active_rooms: int
    total_slots: int
    available_slots: int
    availability_percentage: int
    rooms: list[RoomSummaryRead]

    @classmethod
    def from_domain(cls, summary: HostelSummary, *, day: date_type) -> "HostelAvailabilityRead":
        return cls(
            id=summary.hostel.id,
            name=summary.hostel.name,
            code=summary.hostel.code,
            date=day,
            active_rooms=len(summary.rooms),
            total_slots=summary.total_slots,
            available_slots=summary.available_slots,
            availability_percentage=summary.availability_percentage,
            rooms=[
                RoomSummaryRead(
                    id=room.id,
                    name=room.name,
                    capacity=room.capacity,
                    available_slots=availability.available_slots,
                    total_slots=availability.total_slots,
                )
                for room, availability in summary.rooms
            ],
        )


class ReservationCreate(BaseModel):
    room_id: int = Field(ge=1)
    starts_at: datetime
    ends_at: datetime
    purpose: Optional[str] = Field(default=None, max_length=200)
    party_size: int = Field(default=1, ge=1)


class ReservationUpdate(BaseModel):
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    purpose: Optional[str] = Field(default=None, max_length=200)
    party_size: Optional[int] = Field(default=None, ge=1)
    version: Optional[int] = Field(default=None, ge=1)


class ReservationCancel(BaseModel):
    version: Optional[int] = Field(default=None, ge=1)


class ReservationRead(BaseModel):
    reservation_id: int
    room_id: int
    room: RoomRef
    user_id: str
    starts_at: datetime
    ends_at: datetime
    status: ReservationStatus
    party_size: int
    purpose: Optional[str]
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_db(cls, *, reservation: Reservation, room: Room, tz: tzinfo) -> "ReservationRead":
        return cls(
            reservation_id=reservation.id,
            room_id=reservation.room_id,
            room=RoomRef.from_db(room),
            user_id=reservation.user_id,
            starts_at=utc_naive_to_local(reservation.starts_at, tz),
            ends_at=utc_naive_to_local(reservation.ends_at, tz),
            status=reservation.status,
            party_size=reservation.party_size,
            purpose=reservation.purpose,
            version=reservation.version,
            created_at=utc_naive_to_local(reservation.created_at, tz),
            updated_at=utc_naive_to_local(reservation.updated_at, tz),
        )


class ReservationList(BaseModel):
    range: Literal["today", "week", "all"]
    total: int
    reservations: list[ReservationRead]


class QuotaRead(BaseModel):
    date: date_type
    daily_count: int
    daily_cap: int
    weekly_hours: float
    weekly_cap: float
    can_book: bool
    blocked_by: Optional[Literal["daily", "weekly"]] = None

    @classmethod
    def from_domain(cls, quota: QuotaStatus) -> "QuotaRead":
        return cls(
            date=quota.day,
            daily_count=quota.daily_count,
            daily_cap=quota.daily_cap,
            weekly_hours=quota.weekly_hours,
            weekly_cap=quota.weekly_cap,
            can_book=quota.can_book,
            blocked_by=quota.blocked_by,
        )


class DamageReportCreate(BaseModel):
    reservation_id: int = Field(ge=1)
    description: str
    severity: DamageSeverity = DamageSeverity.LOW
    photos: list[str] = Field(default_factory=list)


class DamageReportAssess(BaseModel):
    status: DamageReportStatus
    penalty: Optional[int] = Field(default=None, ge=0)


class DamageReportRead(BaseModel):
    report_id: int
    reservation_id: int
    room: RoomRef
    reporter_id: str
    description: str
    severity: DamageSeverity
    photos: list[str]
    status: DamageReportStatus
    assessed_by: Optional[str]
    assessed_at: Optional[datetime]
    penalty: Optional[int]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_db(cls, report: DamageReport, *, tz: tzinfo) -> "DamageReportRead":
        return cls(
            report_id=report.id,
            reservation_id=report.reservation_id,
            room=RoomRef.from_db(report.room),
            reporter_id=report.reporter_id,
            description=report.description,
            severity=report.severity,
            photos=list(report.photos or []),
            status=report.status,
            assessed_by=report.assessed_by,
            assessed_at=utc_naive_to_local(report.assessed_at, tz) if report.assessed_at else None,
            penalty=report.penalty,
            created_at=utc_naive_to_local(report.created_at, tz),
            updated_at=utc_naive_to_local(report.updated_at, tz),
        )


class DamageReportList(BaseModel):
    total: int
    reports: list[DamageReportRead]
