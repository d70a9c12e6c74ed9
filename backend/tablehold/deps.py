import logging
from datetime import timedelta
from typing import AsyncIterator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .infrastructure.repositories import (
    SqlAlchemyReservationRepository,
    SqlAlchemyRestaurantRepository,
    SqlAlchemySlotRepository,
)
from .models import Restaurant, User
from .usecases.reservations import ReservationLifecycle
from .utils.auth import TokenScope, decode_access_token, parse_bearer

logger = logging.getLogger(__name__)


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.sessionmaker() as session:
        yield session


def make_lifecycle(session: AsyncSession) -> ReservationLifecycle:
    settings = get_settings()
    return ReservationLifecycle(
        SqlAlchemyRestaurantRepository(session),
        SqlAlchemySlotRepository(session),
        SqlAlchemyReservationRepository(session),
        hold_ttl=timedelta(minutes=settings.hold_ttl_minutes),
    )


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _authenticate(
    authorization: str | None,
    session: AsyncSession,
    *,
    scope: TokenScope,
    model: type[User] | type[Restaurant],
) -> int:
    token = parse_bearer(authorization)
    if token is None:
        raise _unauthorized("bearer token required")
    settings = get_settings()
    try:
        subject_id = decode_access_token(
            token,
            secret=settings.auth_secret,
            algorithms=[settings.auth_algorithm],
            scope=scope,
        )
    except ValueError as exc:
        raise _unauthorized("invalid token") from exc

    try:
        found = await session.scalar(select(model.id).where(model.id == subject_id))
    except SQLAlchemyError as exc:
        logger.exception("%s lookup failed", scope)
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="failed to verify identity",
        ) from exc
    # End the implicit read transaction so handlers can open their own.
    await session.rollback()
    if found is None:
        raise _unauthorized(f"{scope} not found")
    return subject_id


async def get_current_user_id(
    authorization: str | None = Header(default=None),
    session: AsyncSession = Depends(get_session),
) -> int:
    return await _authenticate(authorization, session, scope="user", model=User)


async def get_current_restaurant_id(
    authorization: str | None = Header(default=None),
    session: AsyncSession = Depends(get_session),
) -> int:
    return await _authenticate(authorization, session, scope="restaurant", model=Restaurant)
