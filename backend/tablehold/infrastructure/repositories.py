from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple, cast

from sqlalchemy import Insert, Select, func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import SlotUnavailableError
from ..domain.repositories import ReservationRepository, RestaurantRepository, SlotRepository
from ..models import (
    ACTIVE_RESERVATION_STATUSES,
    Reservation,
    ReservationStatus,
    Restaurant,
    Slot,
    SlotStatus,
    User,
)
from ..utils.time import utc_now_naive

_SLOT_KEY = ("restaurant_id", "date", "time", "party_size")


class SqlAlchemyRestaurantRepository(RestaurantRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, restaurant_id: int) -> Restaurant | None:
        return await self.session.get(Restaurant, restaurant_id)

    async def get_by_slug(self, slug: str) -> Restaurant | None:
        result = await self.session.scalar(select(Restaurant).where(Restaurant.slug == slug))
        return result if isinstance(result, Restaurant) else None

    async def list_all(self) -> List[Restaurant]:
        rows = await self.session.scalars(select(Restaurant).order_by(Restaurant.name, Restaurant.id))
        return list(rows.all())

    async def update_profile(self, restaurant: Restaurant, fields: dict[str, Any]) -> Restaurant:
        for key, value in fields.items():
            setattr(restaurant, key, value)
        restaurant.updated_at = utc_now_naive()
        self.session.add(restaurant)
        await self.session.flush()
        return restaurant


class SqlAlchemySlotRepository(SlotRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _insert_ignore(self) -> Insert:
        """INSERT that silently skips rows colliding with the unique slot tuple."""
        table = Slot.__table__
        dialect = self.session.get_bind().dialect.name
        if dialect == "mysql":
            return insert(table).prefix_with("IGNORE")
        if dialect == "postgresql":
            return pg_insert(table).on_conflict_do_nothing(index_elements=list(_SLOT_KEY))
        if dialect == "sqlite":
            return sqlite_insert(table).on_conflict_do_nothing(index_elements=list(_SLOT_KEY))
        raise RuntimeError(f"insert-or-ignore is not supported for dialect {dialect!r}")

    def _row(self, *, restaurant_id: int, date: str, time: str, party_size: int, now: datetime) -> dict[str, Any]:
        return {
            "restaurant_id": restaurant_id,
            "date": date,
            "time": time,
            "party_size": party_size,
            "status": SlotStatus.AVAILABLE,
            "created_at": now,
            "updated_at": now,
        }

    async def insert_if_absent(
        self,
        *,
        restaurant_id: int,
        date: str,
        time: str,
        party_size: int,
    ) -> Slot:
        row = self._row(
            restaurant_id=restaurant_id,
            date=date,
            time=time,
            party_size=party_size,
            now=utc_now_naive(),
        )
        await self.session.execute(self._insert_ignore().values(**row))
        # Locking read: sees a row committed by a concurrent insert after our snapshot was taken.
        stmt = (
            select(Slot)
            .where(
                Slot.restaurant_id == restaurant_id,
                Slot.date == date,
                Slot.time == time,
                Slot.party_size == party_size,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        slot = await self.session.scalar(stmt)
        if not isinstance(slot, Slot):
            raise SlotUnavailableError("slot is not available")
        return slot

    async def bulk_insert_ignore(
        self,
        *,
        restaurant_id: int,
        date: str,
        times: Iterable[str],
        party_size: int,
    ) -> int:
        now = utc_now_naive()
        rows = [
            self._row(restaurant_id=restaurant_id, date=date, time=time, party_size=party_size, now=now)
            for time in times
        ]
        if not rows:
            return 0
        result = await self.session.execute(self._insert_ignore().values(rows))
        return max(int(result.rowcount or 0), 0)

    async def get_for_update(self, slot_id: int) -> Slot | None:
        result = await self.session.scalar(select(Slot).where(Slot.id == slot_id).with_for_update())
        return result if isinstance(result, Slot) else None

    async def get_for_restaurant_for_update(self, slot_id: int, restaurant_id: int) -> Slot | None:
        stmt = select(Slot).where(Slot.id == slot_id, Slot.restaurant_id == restaurant_id).with_for_update()
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Slot) else None

    async def set_status(
        self,
        slot: Slot,
        status: SlotStatus,
        *,
        expected: Iterable[SlotStatus] | None = None,
    ) -> bool:
        stmt = (
            update(Slot)
            .where(Slot.id == slot.id)
            .values(status=status, updated_at=utc_now_naive())
            .execution_options(synchronize_session=False)
        )
        if expected is not None:
            stmt = stmt.where(Slot.status.in_(list(expected)))
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return False
        await self.session.refresh(slot)
        return True

    async def list_for_restaurant(
        self,
        restaurant_id: int,
        date: str,
        party_size: int | None = None,
    ) -> List[Slot]:
        stmt = (
            select(Slot)
            .where(Slot.restaurant_id == restaurant_id, Slot.date == date)
            .order_by(Slot.time, Slot.party_size, Slot.id)
        )
        if party_size is not None:
            stmt = stmt.where(Slot.party_size == party_size)
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def list_available(
        self,
        *,
        date: str,
        party_size: int,
        time_from: str | None = None,
        time_before: str | None = None,
        limit: int | None = None,
    ) -> List[Tuple[Slot, Restaurant]]:
        stmt: Select[Tuple[Slot, Restaurant]] = (
            select(Slot, Restaurant)
            .join(Restaurant, Slot.restaurant_id == Restaurant.id)
            .where(
                Slot.date == date,
                Slot.party_size == party_size,
                Slot.status == SlotStatus.AVAILABLE,
            )
            .order_by(Slot.time, Slot.id)
        )
        if time_from is not None:
            stmt = stmt.where(Slot.time >= time_from)
        if time_before is not None:
            stmt = stmt.where(Slot.time < time_before)
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = await self.session.execute(stmt)
        return cast(List[Tuple[Slot, Restaurant]], [tuple(row) for row in rows.all()])

    async def count_available(self, *, date: str, party_size: int) -> int:
        stmt = select(func.count(Slot.id)).where(
            Slot.date == date,
            Slot.party_size == party_size,
            Slot.status == SlotStatus.AVAILABLE,
        )
        return int(await self.session.scalar(stmt) or 0)


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self,
        *,
        user_id: int,
        restaurant_id: int,
        slot_id: int,
        party_size: int,
        status: ReservationStatus,
        expires_at: datetime | None = None,
    ) -> Reservation:
        now = utc_now_naive()
        reservation = Reservation(
            user_id=user_id,
            restaurant_id=restaurant_id,
            slot_id=slot_id,
            party_size=party_size,
            status=status,
            version=1,
            created_at=now,
            expires_at=expires_at,
            updated_at=now,
        )
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    def _with_slot(self) -> Select[Tuple[Reservation, Slot]]:
        return select(Reservation, Slot).join(Slot, Reservation.slot_id == Slot.id)

    async def get_for_user(self, reservation_id: int, user_id: int) -> Optional[Tuple[Reservation, Slot]]:
        stmt = self._with_slot().where(Reservation.id == reservation_id, Reservation.user_id == user_id)
        row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[Reservation, Slot]], row)

    async def get_for_user_for_update(self, reservation_id: int, user_id: int) -> Optional[Tuple[Reservation, Slot]]:
        stmt = (
            self._with_slot()
            .where(Reservation.id == reservation_id, Reservation.user_id == user_id)
            .with_for_update()
        )
        row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[Reservation, Slot]], row)

    async def get_for_restaurant_for_update(
        self,
        reservation_id: int,
        restaurant_id: int,
        status: ReservationStatus | None = None,
    ) -> Optional[Tuple[Reservation, Slot]]:
        stmt = (
            self._with_slot()
            .where(Reservation.id == reservation_id, Reservation.restaurant_id == restaurant_id)
            .with_for_update()
        )
        if status is not None:
            stmt = stmt.where(Reservation.status == status)
        row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[Reservation, Slot]], row)

    async def transition(
        self,
        reservation: Reservation,
        status: ReservationStatus,
        *,
        expected: Iterable[ReservationStatus],
        confirmed_at: datetime | None = None,
        expires_at: datetime | None = None,
    ) -> bool:
        values: dict[str, Any] = {
            "status": status,
            "version": Reservation.version + 1,
            "updated_at": utc_now_naive(),
        }
        if confirmed_at is not None:
            values["confirmed_at"] = confirmed_at
        if expires_at is not None:
            values["expires_at"] = expires_at
        stmt = (
            update(Reservation)
            .where(Reservation.id == reservation.id, Reservation.status.in_(list(expected)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return False
        await self.session.refresh(reservation)
        return True

    async def count_active_for_slot(self, slot_id: int) -> int:
        stmt = select(func.count(Reservation.id)).where(
            Reservation.slot_id == slot_id,
            Reservation.status.in_(list(ACTIVE_RESERVATION_STATUSES)),
        )
        return int(await self.session.scalar(stmt) or 0)

    async def active_ids_by_slot(self, slot_ids: Iterable[int]) -> dict[int, int]:
        ids = list(slot_ids)
        if not ids:
            return {}
        stmt = (
            select(Reservation.slot_id, Reservation.id)
            .where(
                Reservation.slot_id.in_(ids),
                Reservation.status.in_(list(ACTIVE_RESERVATION_STATUSES)),
            )
            .order_by(Reservation.created_at, Reservation.id)
        )
        found: dict[int, int] = {}
        for slot_id, reservation_id in (await self.session.execute(stmt)).all():
            found.setdefault(int(slot_id), int(reservation_id))
        return found

    async def list_expired_holds(self, now: datetime) -> List[Tuple[Reservation, Slot]]:
        stmt = (
            self._with_slot()
            .where(
                Reservation.status == ReservationStatus.HELD,
                Reservation.expires_at.is_not(None),
                Reservation.expires_at <= now,
            )
            .order_by(Reservation.id)
            .with_for_update()
        )
        rows = await self.session.execute(stmt)
        return cast(List[Tuple[Reservation, Slot]], [tuple(row) for row in rows.all()])

    async def list_upcoming_for_user(
        self,
        user_id: int,
        from_date: str,
    ) -> List[Tuple[Reservation, Slot, Restaurant]]:
        stmt = (
            select(Reservation, Slot, Restaurant)
            .join(Slot, Reservation.slot_id == Slot.id)
            .join(Restaurant, Reservation.restaurant_id == Restaurant.id)
            .where(Reservation.user_id == user_id, Slot.date >= from_date)
            .order_by(Reservation.created_at.desc(), Reservation.id.desc())
        )
        rows = await self.session.execute(stmt)
        return cast(List[Tuple[Reservation, Slot, Restaurant]], [tuple(row) for row in rows.all()])

    async def count_by_status_for_user(self, user_id: int) -> dict[ReservationStatus, int]:
        stmt = (
            select(Reservation.status, func.count(Reservation.id))
            .where(Reservation.user_id == user_id)
            .group_by(Reservation.status)
        )
        rows = await self.session.execute(stmt)
        return {ReservationStatus(status): int(count) for status, count in rows.all()}

    async def list_upcoming_for_restaurant(
        self,
        restaurant_id: int,
        from_date: str,
    ) -> List[Tuple[Reservation, Slot, User]]:
        stmt = (
            select(Reservation, Slot, User)
            .join(Slot, Reservation.slot_id == Slot.id)
            .join(User, Reservation.user_id == User.id)
            .where(
                Reservation.restaurant_id == restaurant_id,
                Reservation.status.in_(list(ACTIVE_RESERVATION_STATUSES)),
                Slot.date >= from_date,
            )
            .order_by(Slot.date, Slot.time, Reservation.id)
        )
        rows = await self.session.execute(stmt)
        return cast(List[Tuple[Reservation, Slot, User]], [tuple(row) for row in rows.all()])

    async def count_by_status_for_restaurant(self, restaurant_id: int, date: str) -> dict[ReservationStatus, int]:
        stmt = (
            select(Reservation.status, func.count(Reservation.id))
            .join(Slot, Reservation.slot_id == Slot.id)
            .where(Reservation.restaurant_id == restaurant_id, Slot.date == date)
            .group_by(Reservation.status)
        )
        rows = await self.session.execute(stmt)
        return {ReservationStatus(status): int(count) for status, count in rows.all()}
