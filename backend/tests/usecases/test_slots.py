import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from tablehold.domain.errors import InvalidInputError, NotFoundError
from tablehold.infrastructure.repositories import (
    SqlAlchemyReservationRepository,
    SqlAlchemyRestaurantRepository,
    SqlAlchemySlotRepository,
)
from tablehold.models import Slot, SlotStatus
from tablehold.usecases.slots import allocate_slot, bulk_create_slots, list_restaurant_slots


async def _allocate(session: AsyncSession, restaurant_id: int, *, time: str = "19:30", party_size: int = 2) -> Slot:
    async with session.begin():
        return await allocate_slot(
            SqlAlchemyRestaurantRepository(session),
            SqlAlchemySlotRepository(session),
            restaurant_id=restaurant_id,
            date="2025-08-20",
            time=time,
            party_size=party_size,
        )


@pytest.mark.asyncio
async def test_allocate_slot_creates_available_slot(session, make_restaurant) -> None:
    restaurant = await make_restaurant()

    slot = await _allocate(session, restaurant.id)

    assert slot.id is not None
    assert slot.restaurant_id == restaurant.id
    assert (slot.date, slot.time, slot.party_size) == ("2025-08-20", "19:30", 2)
    assert slot.status == SlotStatus.AVAILABLE


@pytest.mark.asyncio
async def test_allocate_slot_returns_existing_row_untouched(session, make_restaurant) -> None:
    restaurant = await make_restaurant()
    first = await _allocate(session, restaurant.id)
    async with session.begin():
        await SqlAlchemySlotRepository(session).set_status(first, SlotStatus.REQUESTED)

    again = await _allocate(session, restaurant.id, time="7:30 PM")

    assert again.id == first.id
    assert again.status == SlotStatus.REQUESTED
    async with session.begin():
        count = await session.scalar(select(func.count(Slot.id)))
    assert count == 1


@pytest.mark.asyncio
async def test_allocate_slot_separates_party_sizes(session, make_restaurant) -> None:
    restaurant = await make_restaurant()

    two = await _allocate(session, restaurant.id, party_size=2)
    four = await _allocate(session, restaurant.id, party_size=4)

    assert two.id != four.id


@pytest.mark.asyncio
async def test_allocate_slot_unknown_restaurant(session) -> None:
    with pytest.raises(NotFoundError):
        await _allocate(session, 999)


@pytest.mark.asyncio
async def test_allocate_slot_rejects_bad_time(session, make_restaurant) -> None:
    restaurant = await make_restaurant()
    with pytest.raises(InvalidInputError):
        await _allocate(session, restaurant.id, time="7:30 XM")


@pytest.mark.asyncio
async def test_allocate_slot_rejects_zero_party(session, make_restaurant) -> None:
    restaurant = await make_restaurant()
    with pytest.raises(InvalidInputError):
        await _allocate(session, restaurant.id, party_size=0)


async def _bulk(session: AsyncSession, restaurant_id: int, *, end: str = "20:00", max_slots: int = 500) -> int:
    async with session.begin():
        return await bulk_create_slots(
            SqlAlchemySlotRepository(session),
            restaurant_id=restaurant_id,
            date="2025-08-21",
            start="18:00",
            end=end,
            interval=30,
            capacity=4,
            max_slots=max_slots,
        )


@pytest.mark.asyncio
async def test_bulk_create_slots_generates_interval_grid(session, make_restaurant) -> None:
    restaurant = await make_restaurant()

    created = await _bulk(session, restaurant.id)

    assert created == 4
    async with session.begin():
        slots = await SqlAlchemySlotRepository(session).list_for_restaurant(restaurant.id, "2025-08-21")
    assert [s.time for s in slots] == ["18:00", "18:30", "19:00", "19:30"]
    assert {s.status for s in slots} == {SlotStatus.AVAILABLE}
    assert {s.party_size for s in slots} == {4}


@pytest.mark.asyncio
async def test_bulk_create_slots_is_idempotent(session, make_restaurant) -> None:
    restaurant = await make_restaurant()
    assert await _bulk(session, restaurant.id) == 4

    assert await _bulk(session, restaurant.id) == 0
    assert await _bulk(session, restaurant.id, end="21:00") == 2


@pytest.mark.asyncio
async def test_bulk_create_slots_enforces_cap(session, make_restaurant) -> None:
    restaurant = await make_restaurant()
    with pytest.raises(InvalidInputError):
        await _bulk(session, restaurant.id, end="21:00", max_slots=5)


@pytest.mark.asyncio
async def test_list_restaurant_slots_reports_active_booking(session, make_restaurant, make_user, make_lifecycle) -> None:
    restaurant = await make_restaurant()
    user = await make_user()
    await _bulk(session, restaurant.id)
    lifecycle = make_lifecycle(session)
    async with session.begin():
        booked = await lifecycle.create(
            user_id=user.id,
            restaurant_id=restaurant.id,
            date="2025-08-21",
            time="18:30",
            party_size=4,
        )

    async with session.begin():
        views = await list_restaurant_slots(
            SqlAlchemySlotRepository(session),
            SqlAlchemyReservationRepository(session),
            restaurant_id=restaurant.id,
            date="2025-08-21",
        )

    by_time = {view.slot.time: view for view in views}
    assert by_time["18:30"].booking_id == booked.reservation.id
    assert by_time["18:30"].slot.status == SlotStatus.REQUESTED
    assert by_time["18:00"].booking_id is None
