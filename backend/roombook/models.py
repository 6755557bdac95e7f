from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, Enum, Float, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, DateTime, Integer, String


# SQLite only autoincrements INTEGER primary keys.
_BigId = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


class RoomType(StrEnum):
    STUDY = "study"
    INVENTORY = "inventory"


class RoomStatus(StrEnum):
    ACTIVE = "active"
    BLOCKED = "blocked"
    MAINTENANCE = "maintenance"


class ReservationStatus(StrEnum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class DamageSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DamageReportStatus(StrEnum):
    REPORTED = "reported"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"


def _enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


class Hostel(Base):
    __tablename__ = "hostels"
    __table_args__ = (UniqueConstraint("code", name="uq_hostels_code"),)

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    rooms: Mapped[list["Room"]] = relationship(back_populates="hostel")


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (
        CheckConstraint("capacity >= 1", name="chk_rooms_capacity"),
        Index("idx_rooms_hostel", "hostel_id"),
        Index("idx_rooms_type_status", "type", "status"),
    )

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    hostel_id: Mapped[int] = mapped_column(ForeignKey("hostels.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[RoomType] = mapped_column(_enum(RoomType), nullable=False, default=RoomType.STUDY)
    status: Mapped[RoomStatus] = mapped_column(_enum(RoomStatus), nullable=False, default=RoomStatus.ACTIVE)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    amenities: Mapped[Optional[list[Any]]] = mapped_column(JSON, nullable=True)
    qr_tag: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # Null means the process-wide default.
    opens_at_hour: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    closes_at_hour: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    slot_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    hostel: Mapped["Hostel"] = relationship(back_populates="rooms")
    reservations: Mapped[list["Reservation"]] = relationship(back_populates="room")


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("starts_at < ends_at", name="chk_res_time"),
        CheckConstraint("party_size >= 1", name="chk_res_party_size"),
        # `live` is NULL once cancelled, so cancelled rows never collide.
        UniqueConstraint("room_id", "starts_at", "ends_at", "live", name="uq_res_room_window_live"),
        Index("idx_res_room_window", "room_id", "starts_at", "ends_at"),
        Index("idx_res_user_start", "user_id", "starts_at"),
    )

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        _enum(ReservationStatus),
        nullable=False,
        default=ReservationStatus.CONFIRMED,
    )
    live: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, default=True)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    purpose: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    room: Mapped["Room"] = relationship(back_populates="reservations")
    fairness_snapshot: Mapped[Optional["FairnessSnapshot"]] = relationship(back_populates="reservation")
    damage_reports: Mapped[list["DamageReport"]] = relationship(back_populates="reservation")


class FairnessSnapshot(Base):
    __tablename__ = "fairness_snapshots"
    __table_args__ = (
        UniqueConstraint("reservation_id", name="uq_fairness_reservation"),
        Index("idx_fairness_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    daily_count: Mapped[int] = mapped_column(Integer, nullable=False)
    weekly_hours: Mapped[float] = mapped_column(Float, nullable=False)
    last_use_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    penalty_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    reservation: Mapped["Reservation"] = relationship(back_populates="fairness_snapshot")


class DamageReport(Base):
    __tablename__ = "damage_reports"
    __table_args__ = (
        CheckConstraint("penalty IS NULL OR penalty >= 0", name="chk_damage_penalty"),
        Index("idx_damage_room_status", "room_id", "status"),
        Index("idx_damage_reporter", "reporter_id"),
    )

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id"), nullable=False)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id"), nullable=False)
    reporter_id: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    severity: Mapped[DamageSeverity] = mapped_column(
        _enum(DamageSeverity),
        nullable=False,
        default=DamageSeverity.LOW,
    )
    # Links to photos stored elsewhere.
    photos: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[DamageReportStatus] = mapped_column(
        _enum(DamageReportStatus),
        nullable=False,
        default=DamageReportStatus.REPORTED,
    )
    assessed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    assessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    penalty: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    reservation: Mapped["Reservation"] = relationship(back_populates="damage_reports")
    room: Mapped["Room"] = relationship()
