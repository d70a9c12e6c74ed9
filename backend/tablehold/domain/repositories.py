from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Protocol

from ..models import Reservation, ReservationStatus, Restaurant, Slot, SlotStatus, User


class RestaurantRepository(Protocol):
    async def get(self, restaurant_id: int) -> Restaurant | None: ...

    async def get_by_slug(self, slug: str) -> Restaurant | None: ...

    async def list_all(self) -> list[Restaurant]: ...

    async def update_profile(self, restaurant: Restaurant, fields: dict[str, Any]) -> Restaurant: ...


class SlotRepository(Protocol):
    async def insert_if_absent(
        self,
        *,
        restaurant_id: int,
        date: str,
        time: str,
        party_size: int,
    ) -> Slot: ...

    async def bulk_insert_ignore(
        self,
        *,
        restaurant_id: int,
        date: str,
        times: Iterable[str],
        party_size: int,
    ) -> int: ...

    async def get_for_update(self, slot_id: int) -> Slot | None: ...

    async def get_for_restaurant_for_update(self, slot_id: int, restaurant_id: int) -> Slot | None: ...

    async def set_status(
        self,
        slot: Slot,
        status: SlotStatus,
        *,
        expected: Iterable[SlotStatus] | None = None,
    ) -> bool: ...

    async def list_for_restaurant(
        self,
        restaurant_id: int,
        date: str,
        party_size: int | None = None,
    ) -> list[Slot]: ...

    async def list_available(
        self,
        *,
        date: str,
        party_size: int,
        time_from: str | None = None,
        time_before: str | None = None,
        limit: int | None = None,
    ) -> list[tuple[Slot, Restaurant]]: ...

    async def count_available(self, *, date: str, party_size: int) -> int: ...


class ReservationRepository(Protocol):
    async def create(
        self,
        *,
        user_id: int,
        restaurant_id: int,
        slot_id: int,
        party_size: int,
        status: ReservationStatus,
        expires_at: datetime | None = None,
    ) -> Reservation: ...

    async def get_for_user(self, reservation_id: int, user_id: int) -> tuple[Reservation, Slot] | None: ...

    async def get_for_user_for_update(self, reservation_id: int, user_id: int) -> tuple[Reservation, Slot] | None: ...

    async def get_for_restaurant_for_update(
        self,
        reservation_id: int,
        restaurant_id: int,
        status: ReservationStatus | None = None,
    ) -> tuple[Reservation, Slot] | None: ...

    async def transition(
        self,
        reservation: Reservation,
        status: ReservationStatus,
        *,
        expected: Iterable[ReservationStatus],
        confirmed_at: datetime | None = None,
        expires_at: datetime | None = None,
    ) -> bool: ...

    async def count_active_for_slot(self, slot_id: int) -> int: ...

    async def active_ids_by_slot(self, slot_ids: Iterable[int]) -> dict[int, int]: ...

    async def list_expired_holds(self, now: datetime) -> list[tuple[Reservation, Slot]]: ...

    async def list_upcoming_for_user(
        self,
        user_id: int,
        from_date: str,
    ) -> list[tuple[Reservation, Slot, Restaurant]]: ...

    async def count_by_status_for_user(self, user_id: int) -> dict[ReservationStatus, int]: ...

    async def list_upcoming_for_restaurant(
        self,
        restaurant_id: int,
        from_date: str,
    ) -> list[tuple[Reservation, Slot, User]]: ...

    async def count_by_status_for_restaurant(self, restaurant_id: int, date: str) -> dict[ReservationStatus, int]: ...
