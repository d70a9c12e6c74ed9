from dataclasses import dataclass, field
from datetime import date as date_cls, datetime, timedelta
from typing import Iterable

from ..domain.errors import InvalidInputError, NotFoundError
from ..domain.repositories import RestaurantRepository, SlotRepository
from ..domain.services import display_status, next_24_hours_window, parse_date
from ..models import Restaurant, Slot, SlotDisplayStatus

GROUPS_PER_PAGE = 6
WEEK_SLOTS_PER_DAY = 10
WEEK_PICKS_PER_DAY = 3
MAX_WEEK_DAYS = 31


@dataclass
class RestaurantSlots:
    restaurant: Restaurant
    slots: list[Slot] = field(default_factory=list)


@dataclass(frozen=True)
class TonightAvailability:
    now: list[RestaurantSlots]
    later: list[RestaurantSlots]


@dataclass(frozen=True)
class DayAvailability:
    date: str
    available_count: int
    picks: list[RestaurantSlots]


def group_by_restaurant(rows: Iterable[tuple[Slot, Restaurant]]) -> list[RestaurantSlots]:
    """Group slots under their restaurant, keeping the order restaurants first appear in."""
    groups: dict[int, RestaurantSlots] = {}
    for slot, restaurant in rows:
        group = groups.setdefault(restaurant.id, RestaurantSlots(restaurant=restaurant))
        group.slots.append(slot)
    return list(groups.values())


def _check_party_size(party_size: int) -> None:
    if party_size < 1:
        raise InvalidInputError("party_size must be >= 1")


async def tonight(slot_repo: SlotRepository, *, now: datetime, party_size: int) -> TonightAvailability:
    """
    Open slots over the next 24 hours: from the current hour to midnight, then from
    midnight up to the current hour tomorrow.
    """
    _check_party_size(party_size)
    today, tomorrow, hour = next_24_hours_window(now)
    rows = await slot_repo.list_available(date=today, party_size=party_size, time_from=hour)
    rows += await slot_repo.list_available(date=tomorrow, party_size=party_size, time_before=hour)
    groups = group_by_restaurant(rows)
    return TonightAvailability(
        now=groups[:GROUPS_PER_PAGE],
        later=groups[GROUPS_PER_PAGE : GROUPS_PER_PAGE * 2],
    )


async def available_today(
    slot_repo: SlotRepository,
    *,
    now: datetime,
    party_size: int,
) -> tuple[str, list[RestaurantSlots]]:
    _check_party_size(party_size)
    today, _, hour = next_24_hours_window(now)
    rows = await slot_repo.list_available(date=today, party_size=party_size, time_from=hour)
    return today, group_by_restaurant(rows)


async def week(
    slot_repo: SlotRepository,
    *,
    start: str,
    days: int,
    party_size: int,
) -> list[DayAvailability]:
    _check_party_size(party_size)
    if not 1 <= days <= MAX_WEEK_DAYS:
        raise InvalidInputError(f"days must be between 1 and {MAX_WEEK_DAYS}")
    first = date_cls.fromisoformat(parse_date(start))
    result: list[DayAvailability] = []
    for offset in range(days):
        day = (first + timedelta(days=offset)).isoformat()
        rows = await slot_repo.list_available(date=day, party_size=party_size, limit=WEEK_SLOTS_PER_DAY)
        result.append(
            DayAvailability(
                date=day,
                available_count=await slot_repo.count_available(date=day, party_size=party_size),
                picks=group_by_restaurant(rows)[:WEEK_PICKS_PER_DAY],
            )
        )
    return result


async def restaurant_availability(
    restaurant_repo: RestaurantRepository,
    slot_repo: SlotRepository,
    *,
    restaurant_id: int,
    date: str,
    party_size: int,
) -> tuple[Restaurant, list[tuple[Slot, SlotDisplayStatus]]]:
    _check_party_size(party_size)
    canonical_date = parse_date(date)
    restaurant = await restaurant_repo.get(restaurant_id)
    if restaurant is None:
        raise NotFoundError("restaurant not found")
    slots = await slot_repo.list_for_restaurant(restaurant_id, canonical_date, party_size)
    return restaurant, [(slot, display_status(slot.status)) for slot in slots]
