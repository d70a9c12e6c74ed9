from datetime import datetime, timezone
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_serializer, model_validator

from .domain.services import format_time_12h
from .models import Reservation, ReservationStatus, Restaurant, Slot, SlotDisplayStatus, SlotStatus, User
from .usecases.availability import DayAvailability, RestaurantSlots


def _ser_utc(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc).isoformat()


class RestaurantSummary(BaseModel):
    id: int
    name: str
    slug: str
    neighborhood: Optional[str]
    emoji: Optional[str] = None
    hero_image_url: Optional[str]

    @classmethod
    def from_db(cls, *, restaurant: Restaurant) -> "RestaurantSummary":
        return cls(
            id=restaurant.id,
            name=restaurant.name,
            slug=restaurant.slug,
            neighborhood=restaurant.neighborhood,
            emoji=restaurant.emoji,
            hero_image_url=restaurant.hero_image_url,
        )


class RestaurantRead(RestaurantSummary):
    category: Optional[str]
    instagram_url: Optional[str]
    website: Optional[str]

    @classmethod
    def from_db(cls, *, restaurant: Restaurant) -> "RestaurantRead":
        return cls(
            id=restaurant.id,
            name=restaurant.name,
            slug=restaurant.slug,
            neighborhood=restaurant.neighborhood,
            emoji=restaurant.emoji,
            hero_image_url=restaurant.hero_image_url,
            category=restaurant.category,
            instagram_url=restaurant.instagram_url,
            website=restaurant.website,
        )


class RestaurantUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    neighborhood: Optional[str] = None
    category: Optional[str] = None
    emoji: Optional[str] = None
    instagram_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("instagram_url", "instagramUrl"))
    website: Optional[str] = None
    hero_image_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("hero_image_url", "heroImageUrl"))


class SlotSummary(BaseModel):
    slot_id: int
    date: str
    time: str
    party_size: int

    @field_serializer("time")
    def _ser_time(self, value: str) -> str:
        return format_time_12h(value)

    @classmethod
    def from_db(cls, *, slot: Slot) -> "SlotSummary":
        return cls(slot_id=slot.id, date=slot.date, time=slot.time, party_size=slot.party_size)


class RestaurantSlotsRead(BaseModel):
    restaurant: RestaurantSummary
    slots: list[SlotSummary]

    @classmethod
    def from_group(cls, group: RestaurantSlots) -> "RestaurantSlotsRead":
        return cls(
            restaurant=RestaurantSummary.from_db(restaurant=group.restaurant),
            slots=[SlotSummary.from_db(slot=slot) for slot in group.slots],
        )


class TonightRead(BaseModel):
    now: list[RestaurantSlotsRead]
    later: list[RestaurantSlotsRead]


class AvailableTodayRead(BaseModel):
    date: str
    restaurants: list[RestaurantSlotsRead]


class DayRead(BaseModel):
    date: str
    available_count: int
    picks: list[RestaurantSlotsRead]

    @classmethod
    def from_day(cls, day: DayAvailability) -> "DayRead":
        return cls(
            date=day.date,
            available_count=day.available_count,
            picks=[RestaurantSlotsRead.from_group(group) for group in day.picks],
        )


class WeekRead(BaseModel):
    days: list[DayRead]


class AvailabilitySlotRead(BaseModel):
    slot_id: int
    time: str
    party_size: int
    status: SlotDisplayStatus

    @field_serializer("time")
    def _ser_time(self, value: str) -> str:
        return format_time_12h(value)


class RestaurantAvailabilityRead(BaseModel):
    restaurant_id: int
    date: str
    party_size: int
    slots: list[AvailabilitySlotRead]


class ReservationCreate(BaseModel):
    restaurant_id: Optional[int] = Field(
        default=None, ge=1, validation_alias=AliasChoices("restaurant_id", "restaurantId")
    )
    restaurant_slug: Optional[str] = Field(
        default=None, min_length=1, validation_alias=AliasChoices("restaurant_slug", "restaurantSlug")
    )
    date: str
    time: str
    party_size: int = Field(ge=1, le=20, validation_alias=AliasChoices("party_size", "partySize"))

    @model_validator(mode="after")
    def _require_restaurant(self) -> "ReservationCreate":
        if self.restaurant_id is None and self.restaurant_slug is None:
            raise ValueError("restaurant_id or restaurant_slug is required")
        return self


class ReservationRead(BaseModel):
    reservation_id: int
    restaurant_id: int
    slot_id: int
    user_id: int
    party_size: int
    status: ReservationStatus
    version: int
    date: str
    time: str
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    restaurant: Optional[RestaurantSummary] = None

    @field_serializer("time")
    def _ser_time(self, value: str) -> str:
        return format_time_12h(value)

    @field_serializer("created_at", "confirmed_at", "expires_at")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return _ser_utc(dt)

    @classmethod
    def from_db(
        cls,
        *,
        reservation: Reservation,
        slot: Slot,
        restaurant: Optional[Restaurant] = None,
    ) -> "ReservationRead":
        return cls(
            reservation_id=reservation.id,
            restaurant_id=reservation.restaurant_id,
            slot_id=reservation.slot_id,
            user_id=reservation.user_id,
            party_size=reservation.party_size,
            status=reservation.status,
            version=reservation.version,
            date=slot.date,
            time=slot.time,
            created_at=reservation.created_at,
            confirmed_at=reservation.confirmed_at,
            expires_at=reservation.expires_at,
            restaurant=RestaurantSummary.from_db(restaurant=restaurant) if restaurant is not None else None,
        )


class StatusCountsRead(BaseModel):
    pending: int
    ongoing: int
    completed: int


class StatusUpdate(BaseModel):
    status: str = Field(min_length=1)


class TransitionRead(BaseModel):
    message: str
    reservation: ReservationRead


class BulkSlotCreate(BaseModel):
    date: str
    start: str
    end: str
    interval: int = Field(ge=1)
    capacity: int = Field(ge=1)


class BulkSlotResult(BaseModel):
    created: int


class AdminSlotRead(BaseModel):
    id: int
    date: str
    time: str
    display_time: str
    capacity: int
    status: SlotStatus
    booking_id: Optional[int] = None

    @classmethod
    def from_db(cls, *, slot: Slot, booking_id: Optional[int] = None) -> "AdminSlotRead":
        return cls(
            id=slot.id,
            date=slot.date,
            time=slot.time,
            display_time=format_time_12h(slot.time),
            capacity=slot.party_size,
            status=slot.status,
            booking_id=booking_id,
        )


class BookingUser(BaseModel):
    id: int
    name: Optional[str]
    email: str
    phone: Optional[str]


class BookingRead(BaseModel):
    id: int
    slot_id: int
    party_size: int
    status: ReservationStatus
    created_at: datetime
    date: str
    time: str
    user: BookingUser

    @field_serializer("created_at")
    def _ser_datetime(self, dt: datetime) -> Optional[str]:
        return _ser_utc(dt)

    @classmethod
    def from_db(cls, *, reservation: Reservation, slot: Slot, user: User) -> "BookingRead":
        return cls(
            id=reservation.id,
            slot_id=reservation.slot_id,
            party_size=reservation.party_size,
            status=reservation.status,
            created_at=reservation.created_at,
            date=slot.date,
            time=slot.time,
            user=BookingUser(id=user.id, name=user.name, email=user.email, phone=user.phone),
        )


class LiveStatusRead(BaseModel):
    pending: int
    confirmed: int
    completed: int


class BookingsRead(BaseModel):
    bookings: list[BookingRead]
    live_status: LiveStatusRead
