from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_session, make_lifecycle
from ..domain.errors import DomainError
from ..infrastructure.repositories import SqlAlchemySlotRepository
from ..schemas import AvailableTodayRead, DayRead, RestaurantSlotsRead, TonightRead, WeekRead
from ..usecases import availability as availability_usecase
from ..utils.time import local_now
from .errors import http_error, record_transition

router = APIRouter(prefix="/discover", tags=["discover"])

DEFAULT_PARTY_SIZE = 2
DEFAULT_WEEK_DAYS = 7


def _party_size(party_size: Optional[int], party_size_camel: Optional[int]) -> int:
    if party_size is not None:
        return party_size
    if party_size_camel is not None:
        return party_size_camel
    return DEFAULT_PARTY_SIZE


async def release_expired_holds(session: AsyncSession) -> None:
    """Expired holds are reaped on read so availability never shows a stale hold as taken."""
    lifecycle = make_lifecycle(session)
    async with session.begin():
        released = await lifecycle.release_expired_holds()
    for transition in released:
        record_transition("reservation.expired", "system", transition)


@router.get("/tonight", response_model=TonightRead)
async def tonight(
    party_size: Optional[int] = Query(default=None, ge=1),
    partySize: Optional[int] = Query(default=None, ge=1),
    session: AsyncSession = Depends(get_session),
) -> TonightRead:
    await release_expired_holds(session)
    try:
        result = await availability_usecase.tonight(
            SqlAlchemySlotRepository(session),
            now=local_now(get_settings().timezone),
            party_size=_party_size(party_size, partySize),
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return TonightRead(
        now=[RestaurantSlotsRead.from_group(group) for group in result.now],
        later=[RestaurantSlotsRead.from_group(group) for group in result.later],
    )


@router.get("/available-today", response_model=AvailableTodayRead)
async def available_today(
    party_size: Optional[int] = Query(default=None, ge=1),
    partySize: Optional[int] = Query(default=None, ge=1),
    session: AsyncSession = Depends(get_session),
) -> AvailableTodayRead:
    await release_expired_holds(session)
    try:
        today, groups = await availability_usecase.available_today(
            SqlAlchemySlotRepository(session),
            now=local_now(get_settings().timezone),
            party_size=_party_size(party_size, partySize),
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return AvailableTodayRead(date=today, restaurants=[RestaurantSlotsRead.from_group(g) for g in groups])


@router.get("/week", response_model=WeekRead)
async def week(
    start: Optional[str] = Query(default=None, description="YYYY-MM-DD, defaults to today"),
    date: Optional[str] = Query(default=None, description="alias of start"),
    days: int = Query(default=DEFAULT_WEEK_DAYS),
    party_size: Optional[int] = Query(default=None, ge=1),
    partySize: Optional[int] = Query(default=None, ge=1),
    session: AsyncSession = Depends(get_session),
) -> WeekRead:
    await release_expired_holds(session)
    first = start or date or local_now(get_settings().timezone).date().isoformat()
    try:
        result = await availability_usecase.week(
            SqlAlchemySlotRepository(session),
            start=first,
            days=days,
            party_size=_party_size(party_size, partySize),
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return WeekRead(days=[DayRead.from_day(day) for day in result])
