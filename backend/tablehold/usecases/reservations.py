import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable

from ..domain.errors import (
    AlreadyProcessedError,
    ConflictError,
    HoldExpiredError,
    InvalidTransitionError,
    NotFoundError,
    SlotUnavailableError,
)
from ..domain.repositories import ReservationRepository, RestaurantRepository, SlotRepository
from ..domain.services import (
    SlotSnapshot,
    parse_reservation_status,
    parse_slot_status,
    slot_status_after,
    validate_booking,
)
from ..models import ACTIVE_RESERVATION_STATUSES, Reservation, ReservationStatus, Restaurant, Slot, SlotStatus, User
from ..utils.time import utc_now_naive
from .slots import allocate_slot

logger = logging.getLogger(__name__)

HOLDING = frozenset({ReservationStatus.PENDING, ReservationStatus.HELD})
CANCELLABLE_BY_DINER = frozenset({ReservationStatus.PENDING, ReservationStatus.HELD, ReservationStatus.CONFIRMED})
COMPLETABLE = frozenset({ReservationStatus.CONFIRMED, ReservationStatus.SEATED})


@dataclass(frozen=True)
class Transition:
    reservation: Reservation
    slot: Slot
    status_from: ReservationStatus | None
    # Expired holds reaped in the same transaction, for auditing.
    released: tuple["Transition", ...] = ()


@dataclass(frozen=True)
class SlotChange:
    slot: Slot
    status_from: SlotStatus


class ReservationLifecycle:
    """
    Every reservation/slot status change goes through here.

    Methods must be awaited inside the caller's transaction (`async with session.begin()`):
    the reservation update and the slot update are only atomic because they share it.
    Status changes are compare-and-swap updates against the status that was read, so a
    second request acting on the same reservation fails instead of double-applying.
    """

    def __init__(
        self,
        restaurant_repo: RestaurantRepository,
        slot_repo: SlotRepository,
        res_repo: ReservationRepository,
        *,
        hold_ttl: timedelta = timedelta(minutes=15),
        clock: Callable[[], datetime] = utc_now_naive,
    ) -> None:
        self.restaurant_repo = restaurant_repo
        self.slot_repo = slot_repo
        self.res_repo = res_repo
        self.hold_ttl = hold_ttl
        self.clock = clock

    # Diner transitions

    async def create(
        self,
        *,
        user_id: int,
        restaurant_id: int,
        date: str,
        time: str,
        party_size: int,
    ) -> Transition:
        return await self._book(
            user_id=user_id,
            restaurant_id=restaurant_id,
            date=date,
            time=time,
            party_size=party_size,
            status=ReservationStatus.PENDING,
            expires_at=None,
        )

    async def hold(
        self,
        *,
        user_id: int,
        restaurant_id: int,
        date: str,
        time: str,
        party_size: int,
    ) -> Transition:
        return await self._book(
            user_id=user_id,
            restaurant_id=restaurant_id,
            date=date,
            time=time,
            party_size=party_size,
            status=ReservationStatus.HELD,
            expires_at=self.clock() + self.hold_ttl,
        )

    async def confirm(self, *, reservation_id: int, user_id: int) -> Transition:
        row = await self.res_repo.get_for_user_for_update(reservation_id, user_id)
        if row is None:
            raise NotFoundError("reservation not found")
        reservation, slot = row
        if reservation.status != ReservationStatus.HELD:
            raise InvalidTransitionError(f"cannot confirm a reservation in status {reservation.status}")
        now = self.clock()
        if reservation.expires_at is not None and reservation.expires_at <= now:
            raise HoldExpiredError("hold has expired")
        return await self._apply(
            reservation,
            slot,
            ReservationStatus.CONFIRMED,
            slot_to=SlotStatus.FULL,
            confirmed_at=now,
        )

    async def cancel(self, *, reservation_id: int, user_id: int) -> Transition:
        row = await self.res_repo.get_for_user_for_update(reservation_id, user_id)
        if row is None:
            raise NotFoundError("reservation not found")
        reservation, slot = row
        # Idempotent: already cancelled returns as-is
        if reservation.status == ReservationStatus.CANCELLED:
            return Transition(reservation=reservation, slot=slot, status_from=reservation.status)
        if reservation.status not in CANCELLABLE_BY_DINER:
            raise InvalidTransitionError(f"cannot cancel a reservation in status {reservation.status}")
        return await self._apply(reservation, slot, ReservationStatus.CANCELLED, slot_to=SlotStatus.AVAILABLE)

    # Restaurant staff transitions

    async def accept(self, *, reservation_id: int, restaurant_id: int) -> Transition:
        reservation, slot = await self._pending_for_restaurant(reservation_id, restaurant_id)
        return await self._apply(
            reservation,
            slot,
            ReservationStatus.CONFIRMED,
            slot_to=SlotStatus.FULL,
            confirmed_at=self.clock(),
        )

    async def reject(self, *, reservation_id: int, restaurant_id: int) -> Transition:
        reservation, slot = await self._pending_for_restaurant(reservation_id, restaurant_id)
        return await self._apply(reservation, slot, ReservationStatus.CANCELLED, slot_to=SlotStatus.AVAILABLE)

    async def complete(self, *, reservation_id: int, restaurant_id: int) -> Transition:
        row = await self.res_repo.get_for_restaurant_for_update(reservation_id, restaurant_id)
        if row is None:
            raise NotFoundError("reservation not found")
        reservation, slot = row
        if reservation.status not in COMPLETABLE:
            raise InvalidTransitionError(f"cannot complete a reservation in status {reservation.status}")
        return await self._apply(reservation, slot, ReservationStatus.COMPLETED, slot_to=None)

    async def set_status(self, *, reservation_id: int, restaurant_id: int, status: str) -> Transition:
        target = parse_reservation_status(status)
        row = await self.res_repo.get_for_restaurant_for_update(reservation_id, restaurant_id)
        if row is None:
            raise NotFoundError("reservation not found")
        reservation, slot = row
        if target in ACTIVE_RESERVATION_STATUSES and reservation.status not in ACTIVE_RESERVATION_STATUSES:
            # Reviving a finished reservation has to win the slot back first.
            claim = SlotStatus.REQUESTED if target in HOLDING else SlotStatus.FULL
            if not await self.slot_repo.set_status(slot, claim, expected={SlotStatus.AVAILABLE}):
                raise SlotUnavailableError("slot is no longer available")
        now = self.clock()
        return await self._apply(
            reservation,
            slot,
            target,
            slot_to=slot_status_after(target),
            confirmed_at=now if target == ReservationStatus.CONFIRMED else None,
            expires_at=now + self.hold_ttl if target == ReservationStatus.HELD else None,
        )

    async def set_slot_status(self, *, slot_id: int, restaurant_id: int, status: str) -> SlotChange:
        target = parse_slot_status(status)
        slot = await self.slot_repo.get_for_restaurant_for_update(slot_id, restaurant_id)
        if slot is None:
            raise NotFoundError("slot not found")
        previous = slot.status
        if target == SlotStatus.AVAILABLE and await self.res_repo.count_active_for_slot(slot.id) > 0:
            raise ConflictError("slot has an active reservation")
        if not await self.slot_repo.set_status(slot, target, expected={previous}):
            raise AlreadyProcessedError("slot was modified concurrently")
        return SlotChange(slot=slot, status_from=previous)

    # System transitions

    async def release_expired_holds(self) -> list[Transition]:
        """Cancel HELD reservations past their expiry and free their slots."""
        released: list[Transition] = []
        for reservation, slot in await self.res_repo.list_expired_holds(self.clock()):
            if not await self.res_repo.transition(
                reservation,
                ReservationStatus.CANCELLED,
                expected={ReservationStatus.HELD},
            ):
                continue
            await self._release_slot(slot)
            released.append(Transition(reservation=reservation, slot=slot, status_from=ReservationStatus.HELD))
        if released:
            logger.info("released %d expired holds", len(released))
        return released

    # Internals

    async def _book(
        self,
        *,
        user_id: int,
        restaurant_id: int,
        date: str,
        time: str,
        party_size: int,
        status: ReservationStatus,
        expires_at: datetime | None,
    ) -> Transition:
        released = await self.release_expired_holds()
        slot = await allocate_slot(
            self.restaurant_repo,
            self.slot_repo,
            restaurant_id=restaurant_id,
            date=date,
            time=time,
            party_size=party_size,
        )
        snapshot = SlotSnapshot(
            status=slot.status,
            party_size=slot.party_size,
            active_reservations=await self.res_repo.count_active_for_slot(slot.id),
        )
        validate_booking(snapshot, party_size=party_size)
        if not await self.slot_repo.set_status(slot, SlotStatus.REQUESTED, expected={SlotStatus.AVAILABLE}):
            raise AlreadyProcessedError("slot was claimed by another reservation")
        reservation = await self.res_repo.create(
            user_id=user_id,
            restaurant_id=restaurant_id,
            slot_id=slot.id,
            party_size=party_size,
            status=status,
            expires_at=expires_at,
        )
        return Transition(reservation=reservation, slot=slot, status_from=None, released=tuple(released))

    async def _pending_for_restaurant(self, reservation_id: int, restaurant_id: int) -> tuple[Reservation, Slot]:
        row = await self.res_repo.get_for_restaurant_for_update(
            reservation_id,
            restaurant_id,
            status=ReservationStatus.PENDING,
        )
        if row is None:
            raise NotFoundError("reservation not found or already processed")
        return row

    async def _apply(
        self,
        reservation: Reservation,
        slot: Slot,
        target: ReservationStatus,
        *,
        slot_to: SlotStatus | None,
        confirmed_at: datetime | None = None,
        expires_at: datetime | None = None,
    ) -> Transition:
        status_from = reservation.status
        if not await self.res_repo.transition(
            reservation,
            target,
            expected={status_from},
            confirmed_at=confirmed_at,
            expires_at=expires_at,
        ):
            raise AlreadyProcessedError("reservation already processed")
        if slot_to == SlotStatus.AVAILABLE:
            await self._release_slot(slot)
        elif slot_to is not None:
            await self.slot_repo.set_status(slot, slot_to)
        logger.debug("reservation %s %s -> %s", reservation.id, status_from, target)
        return Transition(reservation=reservation, slot=slot, status_from=status_from)

    async def _release_slot(self, slot: Slot) -> None:
        # Another active reservation may still claim the slot; it stays booked then.
        if await self.res_repo.count_active_for_slot(slot.id) > 0:
            logger.info("slot %s still has an active reservation; not released", slot.id)
            return
        await self.slot_repo.set_status(slot, SlotStatus.AVAILABLE)


async def list_user_reservations(
    res_repo: ReservationRepository,
    *,
    user_id: int,
    today: str,
) -> list[tuple[Reservation, Slot, Restaurant]]:
    return await res_repo.list_upcoming_for_user(user_id, today)


async def get_user_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: int,
) -> tuple[Reservation, Slot] | None:
    return await res_repo.get_for_user(reservation_id, user_id)


def _count(counts: dict[ReservationStatus, int], statuses: Iterable[ReservationStatus]) -> int:
    return sum(counts.get(status, 0) for status in statuses)


async def user_status_counts(res_repo: ReservationRepository, *, user_id: int) -> dict[str, int]:
    counts = await res_repo.count_by_status_for_user(user_id)
    return {
        "pending": _count(counts, (ReservationStatus.PENDING, ReservationStatus.HELD)),
        "ongoing": _count(counts, (ReservationStatus.CONFIRMED,)),
        "completed": _count(counts, (ReservationStatus.SEATED, ReservationStatus.COMPLETED)),
    }


async def list_restaurant_bookings(
    res_repo: ReservationRepository,
    *,
    restaurant_id: int,
    today: str,
) -> tuple[list[tuple[Reservation, Slot, User]], dict[str, int]]:
    rows = await res_repo.list_upcoming_for_restaurant(restaurant_id, today)
    counts = await res_repo.count_by_status_for_restaurant(restaurant_id, today)
    live_status = {
        "pending": _count(counts, (ReservationStatus.PENDING, ReservationStatus.HELD)),
        "confirmed": _count(counts, (ReservationStatus.CONFIRMED, ReservationStatus.SEATED)),
        "completed": _count(counts, (ReservationStatus.COMPLETED,)),
    }
    return rows, live_status
