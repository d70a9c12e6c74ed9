from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, DateTime, Integer, String

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


class SlotStatus(StrEnum):
    AVAILABLE = "AVAILABLE"
    REQUESTED = "REQUESTED"
    FULL = "FULL"


class SlotDisplayStatus(StrEnum):
    """Diner-facing projection of a slot. Never persisted."""

    AVAILABLE = "AVAILABLE"
    FULL = "FULL"
    HELD = "HELD"
    # Reserved for a time-based booking cutoff; nothing computes it yet.
    CUTOFF = "CUTOFF"


class ReservationStatus(StrEnum):
    PENDING = "PENDING"
    HELD = "HELD"
    CONFIRMED = "CONFIRMED"
    SEATED = "SEATED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


ACTIVE_RESERVATION_STATUSES = frozenset(
    {
        ReservationStatus.PENDING,
        ReservationStatus.HELD,
        ReservationStatus.CONFIRMED,
        ReservationStatus.SEATED,
    }
)


def _status_enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
        length=16,
    )


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    reservations: Mapped[list["Reservation"]] = relationship(back_populates="user")


class Restaurant(Base):
    __tablename__ = "restaurants"
    __table_args__ = (UniqueConstraint("slug", name="uq_restaurants_slug"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    neighborhood: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    emoji: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    hero_image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    instagram_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    slots: Mapped[list["Slot"]] = relationship(back_populates="restaurant")


class Slot(Base):
    __tablename__ = "time_slots"
    __table_args__ = (
        CheckConstraint("party_size >= 1", name="chk_slots_party_size"),
        UniqueConstraint("restaurant_id", "date", "time", "party_size", name="uq_slots_tuple"),
        Index("idx_slots_date_time", "date", "time"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), nullable=False)
    # Calendar date as YYYY-MM-DD and wall-clock time as HH:MM, no timezone.
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    time: Mapped[str] = mapped_column(String(5), nullable=False)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[SlotStatus] = mapped_column(
        _status_enum(SlotStatus),
        nullable=False,
        default=SlotStatus.AVAILABLE,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    restaurant: Mapped["Restaurant"] = relationship(back_populates="slots")
    reservations: Mapped[list["Reservation"]] = relationship(back_populates="slot")


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("party_size >= 1", name="chk_res_party_size"),
        Index("idx_res_slot", "slot_id"),
        Index("idx_res_user", "user_id"),
        Index("idx_res_restaurant_status", "restaurant_id", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), nullable=False)
    slot_id: Mapped[int] = mapped_column(ForeignKey("time_slots.id"), nullable=False)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        _status_enum(ReservationStatus),
        nullable=False,
        default=ReservationStatus.PENDING,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    slot: Mapped["Slot"] = relationship(back_populates="reservations")
    user: Mapped["User"] = relationship(back_populates="reservations")
