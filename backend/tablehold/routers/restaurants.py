from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session
from ..domain.errors import DomainError
from ..domain.services import parse_date
from ..infrastructure.repositories import SqlAlchemyRestaurantRepository, SqlAlchemySlotRepository
from ..schemas import AvailabilitySlotRead, RestaurantAvailabilityRead, RestaurantRead
from ..usecases import availability as availability_usecase
from .discover import DEFAULT_PARTY_SIZE, release_expired_holds
from .errors import http_error

router = APIRouter(prefix="/restaurants", tags=["restaurants"])


@router.get("", response_model=List[RestaurantRead])
async def list_restaurants(session: AsyncSession = Depends(get_session)) -> list[RestaurantRead]:
    restaurants = await SqlAlchemyRestaurantRepository(session).list_all()
    return [RestaurantRead.from_db(restaurant=r) for r in restaurants]


@router.get("/{restaurant_id}/availability", response_model=RestaurantAvailabilityRead)
async def restaurant_availability(
    restaurant_id: int = Path(..., ge=1),
    date: str = Query(..., description="YYYY-MM-DD"),
    party_size: Optional[int] = Query(default=None, ge=1),
    partySize: Optional[int] = Query(default=None, ge=1),
    session: AsyncSession = Depends(get_session),
) -> RestaurantAvailabilityRead:
    size = party_size or partySize or DEFAULT_PARTY_SIZE
    await release_expired_holds(session)
    try:
        day = parse_date(date)
        restaurant, rows = await availability_usecase.restaurant_availability(
            SqlAlchemyRestaurantRepository(session),
            SqlAlchemySlotRepository(session),
            restaurant_id=restaurant_id,
            date=day,
            party_size=size,
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return RestaurantAvailabilityRead(
        restaurant_id=restaurant.id,
        date=day,
        party_size=size,
        slots=[
            AvailabilitySlotRead(slot_id=slot.id, time=slot.time, party_size=slot.party_size, status=display)
            for slot, display in rows
        ],
    )


@router.get("/{slug}", response_model=RestaurantRead)
async def get_restaurant(slug: str, session: AsyncSession = Depends(get_session)) -> RestaurantRead:
    restaurant = await SqlAlchemyRestaurantRepository(session).get_by_slug(slug)
    if restaurant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    return RestaurantRead.from_db(restaurant=restaurant)
