from datetime import datetime, timedelta
from typing import AsyncIterator, Awaitable, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from tablehold.infrastructure.repositories import (
    SqlAlchemyReservationRepository,
    SqlAlchemyRestaurantRepository,
    SqlAlchemySlotRepository,
)
from tablehold.models import Base, Restaurant, User
from tablehold.usecases.reservations import ReservationLifecycle

FIXED_NOW = datetime(2025, 8, 20, 12, 0, 0)


@pytest_asyncio.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(sessionmaker: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with sessionmaker() as session:
        yield session


@pytest.fixture
def make_restaurant(sessionmaker: async_sessionmaker[AsyncSession]) -> Callable[..., Awaitable[Restaurant]]:
    async def _make(name: str = "Naru Noodle Bar", slug: str | None = None, **extra: object) -> Restaurant:
        async with sessionmaker() as s, s.begin():
            restaurant = Restaurant(
                name=name,
                slug=slug or name.lower().replace(" ", "-"),
                neighborhood="Indiranagar",
                created_at=FIXED_NOW,
                updated_at=FIXED_NOW,
                **extra,
            )
            s.add(restaurant)
        return restaurant

    return _make


@pytest.fixture
def make_user(sessionmaker: async_sessionmaker[AsyncSession]) -> Callable[..., Awaitable[User]]:
    async def _make(email: str = "diner@example.com", name: str = "Asha") -> User:
        async with sessionmaker() as s, s.begin():
            user = User(email=email, name=name, phone="+91-555-0100", created_at=FIXED_NOW, updated_at=FIXED_NOW)
            s.add(user)
        return user

    return _make


@pytest.fixture
def make_lifecycle() -> Callable[..., ReservationLifecycle]:
    def _make(session: AsyncSession, *, now: datetime = FIXED_NOW) -> ReservationLifecycle:
        return ReservationLifecycle(
            SqlAlchemyRestaurantRepository(session),
            SqlAlchemySlotRepository(session),
            SqlAlchemyReservationRepository(session),
            hold_ttl=timedelta(minutes=15),
            clock=lambda: now,
        )

    return _make
