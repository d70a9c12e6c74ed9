from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_current_restaurant_id, get_session, make_lifecycle
from ..domain.errors import DomainError
from ..infrastructure.repositories import (
    SqlAlchemyReservationRepository,
    SqlAlchemyRestaurantRepository,
    SqlAlchemySlotRepository,
)
from ..schemas import (
    AdminSlotRead,
    BookingRead,
    BookingsRead,
    BulkSlotCreate,
    BulkSlotResult,
    LiveStatusRead,
    ReservationRead,
    RestaurantRead,
    RestaurantUpdate,
    StatusUpdate,
    TransitionRead,
)
from ..usecases import reservations as reservation_usecase
from ..usecases import slots as slot_usecase
from ..utils.time import local_today
from .errors import http_error, record_event, record_transition

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(get_current_restaurant_id)])


@router.get("/restaurant", response_model=RestaurantRead)
async def get_restaurant_profile(
    session: AsyncSession = Depends(get_session),
    restaurant_id: int = Depends(get_current_restaurant_id),
) -> RestaurantRead:
    restaurant = await SqlAlchemyRestaurantRepository(session).get(restaurant_id)
    if restaurant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    return RestaurantRead.from_db(restaurant=restaurant)


@router.put("/restaurant", response_model=RestaurantRead)
async def update_restaurant_profile(
    payload: RestaurantUpdate,
    session: AsyncSession = Depends(get_session),
    restaurant_id: int = Depends(get_current_restaurant_id),
) -> RestaurantRead:
    repo = SqlAlchemyRestaurantRepository(session)
    async with session.begin():
        restaurant = await repo.get(restaurant_id)
        if restaurant is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
        restaurant = await repo.update_profile(restaurant, payload.model_dump(exclude_unset=True))
    return RestaurantRead.from_db(restaurant=restaurant)


@router.get("/slots", response_model=List[AdminSlotRead])
async def list_slots(
    date: str = Query(..., description="YYYY-MM-DD"),
    session: AsyncSession = Depends(get_session),
    restaurant_id: int = Depends(get_current_restaurant_id),
) -> list[AdminSlotRead]:
    try:
        views = await slot_usecase.list_restaurant_slots(
            SqlAlchemySlotRepository(session),
            SqlAlchemyReservationRepository(session),
            restaurant_id=restaurant_id,
            date=date,
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return [AdminSlotRead.from_db(slot=view.slot, booking_id=view.booking_id) for view in views]


@router.post("/slots/bulk", response_model=BulkSlotResult, status_code=status.HTTP_201_CREATED)
async def bulk_create_slots(
    payload: BulkSlotCreate,
    session: AsyncSession = Depends(get_session),
    restaurant_id: int = Depends(get_current_restaurant_id),
) -> BulkSlotResult:
    slot_repo = SqlAlchemySlotRepository(session)
    async with session.begin():
        try:
            created = await slot_usecase.bulk_create_slots(
                slot_repo,
                restaurant_id=restaurant_id,
                date=payload.date,
                start=payload.start,
                end=payload.end,
                interval=payload.interval,
                capacity=payload.capacity,
                max_slots=get_settings().max_bulk_slots,
            )
        except DomainError as exc:
            raise http_error(exc) from exc

    record_event(
        action="slots.bulk_created",
        initiator="restaurant",
        restaurant_id=restaurant_id,
        party_size=payload.capacity,
        extra={"date": payload.date, "start": payload.start, "end": payload.end, "created": created},
    )
    return BulkSlotResult(created=created)


@router.patch("/slots/{slot_id}", response_model=AdminSlotRead)
async def update_slot_status(
    payload: StatusUpdate,
    slot_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    restaurant_id: int = Depends(get_current_restaurant_id),
) -> AdminSlotRead:
    lifecycle = make_lifecycle(session)
    async with session.begin():
        try:
            change = await lifecycle.set_slot_status(slot_id=slot_id, restaurant_id=restaurant_id, status=payload.status)
        except DomainError as exc:
            raise http_error(exc) from exc

    record_event(
        action="slot.status_updated",
        initiator="restaurant",
        slot_id=change.slot.id,
        restaurant_id=restaurant_id,
        status_from=change.status_from,
        status_to=change.slot.status,
    )
    return AdminSlotRead.from_db(slot=change.slot)


@router.get("/bookings", response_model=BookingsRead)
async def list_bookings(
    session: AsyncSession = Depends(get_session),
    restaurant_id: int = Depends(get_current_restaurant_id),
) -> BookingsRead:
    rows, live_status = await reservation_usecase.list_restaurant_bookings(
        SqlAlchemyReservationRepository(session),
        restaurant_id=restaurant_id,
        today=local_today(get_settings().timezone),
    )
    return BookingsRead(
        bookings=[BookingRead.from_db(reservation=res, slot=slot, user=user) for res, slot, user in rows],
        live_status=LiveStatusRead(**live_status),
    )


@router.patch("/bookings/{reservation_id}", response_model=ReservationRead)
async def update_booking_status(
    payload: StatusUpdate,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    restaurant_id: int = Depends(get_current_restaurant_id),
) -> ReservationRead:
    lifecycle = make_lifecycle(session)
    async with session.begin():
        try:
            transition = await lifecycle.set_status(
                reservation_id=reservation_id,
                restaurant_id=restaurant_id,
                status=payload.status,
            )
        except DomainError as exc:
            raise http_error(exc) from exc

    record_transition("reservation.status_updated", "restaurant", transition)
    return ReservationRead.from_db(reservation=transition.reservation, slot=transition.slot)


@router.post("/bookings/{reservation_id}/accept", response_model=TransitionRead)
async def accept_booking(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    restaurant_id: int = Depends(get_current_restaurant_id),
) -> TransitionRead:
    lifecycle = make_lifecycle(session)
    async with session.begin():
        try:
            transition = await lifecycle.accept(reservation_id=reservation_id, restaurant_id=restaurant_id)
        except DomainError as exc:
            raise http_error(exc) from exc

    record_transition("reservation.accepted", "restaurant", transition)
    return TransitionRead(
        message="Booking accepted successfully",
        reservation=ReservationRead.from_db(reservation=transition.reservation, slot=transition.slot),
    )


@router.post("/bookings/{reservation_id}/reject", response_model=TransitionRead)
async def reject_booking(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    restaurant_id: int = Depends(get_current_restaurant_id),
) -> TransitionRead:
    lifecycle = make_lifecycle(session)
    async with session.begin():
        try:
            transition = await lifecycle.reject(reservation_id=reservation_id, restaurant_id=restaurant_id)
        except DomainError as exc:
            raise http_error(exc) from exc

    record_transition("reservation.rejected", "restaurant", transition)
    return TransitionRead(
        message="Booking rejected successfully",
        reservation=ReservationRead.from_db(reservation=transition.reservation, slot=transition.slot),
    )


@router.post("/bookings/{reservation_id}/complete", response_model=TransitionRead)
async def complete_booking(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    restaurant_id: int = Depends(get_current_restaurant_id),
) -> TransitionRead:
    lifecycle = make_lifecycle(session)
    async with session.begin():
        try:
            transition = await lifecycle.complete(reservation_id=reservation_id, restaurant_id=restaurant_id)
        except DomainError as exc:
            raise http_error(exc) from exc

    record_transition("reservation.completed", "restaurant", transition)
    return TransitionRead(
        message="Booking completed",
        reservation=ReservationRead.from_db(reservation=transition.reservation, slot=transition.slot),
    )
