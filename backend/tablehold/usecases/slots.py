import logging
from dataclasses import dataclass

from ..domain.errors import InvalidInputError, NotFoundError
from ..domain.repositories import ReservationRepository, RestaurantRepository, SlotRepository
from ..domain.services import expand_slot_times, normalize_time, parse_date
from ..models import Slot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdminSlotView:
    slot: Slot
    booking_id: int | None


async def allocate_slot(
    restaurant_repo: RestaurantRepository,
    slot_repo: SlotRepository,
    *,
    restaurant_id: int,
    date: str,
    time: str,
    party_size: int,
) -> Slot:
    """
    Resolve (restaurant, date, time, party size) to exactly one slot row.
    An existing slot is returned untouched; otherwise a new AVAILABLE slot is inserted.
    """
    if party_size < 1:
        raise InvalidInputError("party_size must be >= 1")
    canonical_date = parse_date(date)
    canonical_time = normalize_time(time)
    if await restaurant_repo.get(restaurant_id) is None:
        raise NotFoundError("restaurant not found")
    return await slot_repo.insert_if_absent(
        restaurant_id=restaurant_id,
        date=canonical_date,
        time=canonical_time,
        party_size=party_size,
    )


async def bulk_create_slots(
    slot_repo: SlotRepository,
    *,
    restaurant_id: int,
    date: str,
    start: str,
    end: str,
    interval: int,
    capacity: int,
    max_slots: int = 500,
) -> int:
    if capacity < 1:
        raise InvalidInputError("capacity must be >= 1")
    canonical_date = parse_date(date)
    times = expand_slot_times(start, end, interval, max_slots=max_slots)
    created = await slot_repo.bulk_insert_ignore(
        restaurant_id=restaurant_id,
        date=canonical_date,
        times=times,
        party_size=capacity,
    )
    logger.info(
        "bulk slots restaurant=%s date=%s requested=%d created=%d",
        restaurant_id,
        canonical_date,
        len(times),
        created,
    )
    return created


async def list_restaurant_slots(
    slot_repo: SlotRepository,
    res_repo: ReservationRepository,
    *,
    restaurant_id: int,
    date: str,
) -> list[AdminSlotView]:
    slots = await slot_repo.list_for_restaurant(restaurant_id, parse_date(date))
    bookings = await res_repo.active_ids_by_slot(slot.id for slot in slots)
    return [AdminSlotView(slot=slot, booking_id=bookings.get(slot.id)) for slot in slots]
