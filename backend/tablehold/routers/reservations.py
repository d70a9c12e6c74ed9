from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_current_user_id, get_session, make_lifecycle
from ..domain.errors import DomainError
from ..infrastructure.repositories import SqlAlchemyReservationRepository
from ..schemas import ReservationCreate, ReservationRead, StatusCountsRead
from ..usecases import reservations as reservation_usecase
from ..usecases.reservations import ReservationLifecycle, Transition
from ..utils.time import local_today
from .errors import http_error, record_transition

router = APIRouter(prefix="/reservations", tags=["reservations"])


async def _resolve_restaurant_id(lifecycle: ReservationLifecycle, payload: ReservationCreate) -> int:
    if payload.restaurant_id is not None:
        return payload.restaurant_id
    restaurant = await lifecycle.restaurant_repo.get_by_slug(payload.restaurant_slug or "")
    if restaurant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    return restaurant.id


@router.get("", response_model=List[ReservationRead])
async def list_my_reservations(
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> list[ReservationRead]:
    res_repo = SqlAlchemyReservationRepository(session)
    rows = await reservation_usecase.list_user_reservations(
        res_repo,
        user_id=user_id,
        today=local_today(get_settings().timezone),
    )
    return [
        ReservationRead.from_db(reservation=res, slot=slot, restaurant=restaurant)
        for res, slot, restaurant in rows
    ]


@router.get("/status", response_model=StatusCountsRead)
async def my_reservation_status(
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> StatusCountsRead:
    res_repo = SqlAlchemyReservationRepository(session)
    counts = await reservation_usecase.user_status_counts(res_repo, user_id=user_id)
    return StatusCountsRead(**counts)


@router.get("/{reservation_id}", response_model=ReservationRead)
async def get_my_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    res_repo = SqlAlchemyReservationRepository(session)
    row = await reservation_usecase.get_user_reservation(res_repo, reservation_id=reservation_id, user_id=user_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
    reservation, slot = row
    return ReservationRead.from_db(reservation=reservation, slot=slot)


def _record_released(transition: Transition) -> None:
    for expired in transition.released:
        record_transition("reservation.expired", "system", expired)


async def _book(payload: ReservationCreate, session: AsyncSession, user_id: int, *, hold: bool) -> Transition:
    lifecycle = make_lifecycle(session)
    async with session.begin():
        restaurant_id = await _resolve_restaurant_id(lifecycle, payload)
        book = lifecycle.hold if hold else lifecycle.create
        try:
            return await book(
                user_id=user_id,
                restaurant_id=restaurant_id,
                date=payload.date,
                time=payload.time,
                party_size=payload.party_size,
            )
        except DomainError as exc:
            raise http_error(exc) from exc


@router.post("", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    transition = await _book(payload, session, user_id, hold=False)
    _record_released(transition)
    record_transition("reservation.created", "user", transition)
    return ReservationRead.from_db(reservation=transition.reservation, slot=transition.slot)


@router.post("/hold", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def hold_reservation(
    payload: ReservationCreate,
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    transition = await _book(payload, session, user_id, hold=True)
    _record_released(transition)
    record_transition("reservation.held", "user", transition)
    return ReservationRead.from_db(reservation=transition.reservation, slot=transition.slot)


@router.post("/{reservation_id}/confirm", response_model=ReservationRead)
async def confirm_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    lifecycle = make_lifecycle(session)
    async with session.begin():
        try:
            transition = await lifecycle.confirm(reservation_id=reservation_id, user_id=user_id)
        except DomainError as exc:
            raise http_error(exc) from exc

    record_transition("reservation.confirmed", "user", transition)
    return ReservationRead.from_db(reservation=transition.reservation, slot=transition.slot)


@router.post("/{reservation_id}/cancel", response_model=ReservationRead)
async def cancel_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    lifecycle = make_lifecycle(session)
    async with session.begin():
        try:
            transition = await lifecycle.cancel(reservation_id=reservation_id, user_id=user_id)
        except DomainError as exc:
            raise http_error(exc) from exc

    if transition.status_from != transition.reservation.status:
        record_transition("reservation.cancelled", "user", transition)
    return ReservationRead.from_db(reservation=transition.reservation, slot=transition.slot)
