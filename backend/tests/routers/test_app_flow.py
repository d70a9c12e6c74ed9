from datetime import datetime

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from tablehold.config import Settings, get_settings
from tablehold.main import create_app
from tablehold.routers import discover
from tablehold.usecases.reservations import ReservationLifecycle
from tablehold.utils.auth import create_access_token

DAY = "2099-08-20"


@pytest.fixture(autouse=True)
def _auth_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTH_SECRET", "testsecret")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def client(sessionmaker):
    app = create_app(Settings(database_url="sqlite+aiosqlite://"))
    # ASGITransport does not run the lifespan; share the test database instead.
    app.state.sessionmaker = sessionmaker
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _auth(subject_id: int, scope: str = "user") -> dict[str, str]:
    token = create_access_token(subject_id=subject_id, secret="testsecret", scope=scope)  # type: ignore[arg-type]
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
async def test_health_sets_request_id(client) -> None:
    res = await client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}
    assert res.headers.get("X-Request-ID")


@pytest.mark.asyncio
async def test_booking_lifecycle_over_http(client, make_restaurant, make_user) -> None:
    restaurant = await make_restaurant()
    diner = await make_user()
    rival = await make_user(email="rival@example.com")
    body = {"restaurantId": restaurant.id, "date": DAY, "time": "7:30 PM", "partySize": 2}

    created = await client.post("/reservations", json=body, headers=_auth(diner.id))
    assert created.status_code == 201
    reservation = created.json()
    assert reservation["status"] == "PENDING"
    assert reservation["time"] == "7:30 PM"

    taken = await client.post("/reservations", json=body, headers=_auth(rival.id))
    assert taken.status_code == 409
    assert taken.json() == {"error": "slot is not available"}

    availability = await client.get(
        f"/restaurants/{restaurant.id}/availability", params={"date": DAY, "partySize": 2}
    )
    assert availability.status_code == 200
    assert [s["status"] for s in availability.json()["slots"]] == ["FULL"]

    staff = _auth(restaurant.id, "restaurant")
    accepted = await client.post(f"/admin/bookings/{reservation['reservation_id']}/accept", headers=staff)
    assert accepted.status_code == 200
    assert accepted.json()["message"] == "Booking accepted successfully"
    assert accepted.json()["reservation"]["status"] == "CONFIRMED"

    again = await client.post(f"/admin/bookings/{reservation['reservation_id']}/accept", headers=staff)
    assert again.status_code == 404

    slots = await client.get("/admin/slots", params={"date": DAY}, headers=staff)
    assert slots.status_code == 200
    assert slots.json()[0]["status"] == "FULL"
    assert slots.json()[0]["booking_id"] == reservation["reservation_id"]

    mine = await client.get("/reservations", headers=_auth(diner.id))
    assert [r["reservation_id"] for r in mine.json()] == [reservation["reservation_id"]]
    assert mine.json()[0]["restaurant"]["slug"] == restaurant.slug
    counts = await client.get("/reservations/status", headers=_auth(diner.id))
    assert counts.json() == {"pending": 0, "ongoing": 1, "completed": 0}

    cancelled = await client.post(f"/reservations/{reservation['reservation_id']}/cancel", headers=_auth(diner.id))
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "CANCELLED"

    availability = await client.get(f"/restaurants/{restaurant.id}/availability", params={"date": DAY})
    assert [s["status"] for s in availability.json()["slots"]] == ["AVAILABLE"]


@pytest.mark.asyncio
async def test_hold_and_confirm_over_http(client, make_restaurant, make_user) -> None:
    restaurant = await make_restaurant(slug="naru")
    diner = await make_user()
    body = {"restaurant_slug": "naru", "date": DAY, "time": "20:00", "party_size": 4}

    held = await client.post("/reservations/hold", json=body, headers=_auth(diner.id))
    assert held.status_code == 201
    assert held.json()["status"] == "HELD"
    assert held.json()["expires_at"] is not None

    confirmed = await client.post(f"/reservations/{held.json()['reservation_id']}/confirm", headers=_auth(diner.id))
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "CONFIRMED"

    twice = await client.post(f"/reservations/{held.json()['reservation_id']}/confirm", headers=_auth(diner.id))
    assert twice.status_code == 409
    assert restaurant.slug == "naru"


@pytest.mark.asyncio
async def test_other_diner_cannot_see_reservation(client, make_restaurant, make_user) -> None:
    restaurant = await make_restaurant()
    diner = await make_user()
    stranger = await make_user(email="stranger@example.com")
    body = {"restaurantId": restaurant.id, "date": DAY, "time": "19:00", "partySize": 2}
    created = (await client.post("/reservations", json=body, headers=_auth(diner.id))).json()

    res = await client.get(f"/reservations/{created['reservation_id']}", headers=_auth(stranger.id))
    assert res.status_code == 404
    res = await client.post(f"/reservations/{created['reservation_id']}/cancel", headers=_auth(stranger.id))
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_invalid_body_is_400_with_fields(client, make_user) -> None:
    diner = await make_user()
    res = await client.post("/reservations", json={"date": DAY, "time": "19:00"}, headers=_auth(diner.id))
    assert res.status_code == 400
    assert res.json()["error"] == "invalid request"
    assert res.json()["fields"]


@pytest.mark.asyncio
async def test_admin_bulk_and_bookings(client, make_restaurant, make_user) -> None:
    restaurant = await make_restaurant()
    diner = await make_user()
    staff = _auth(restaurant.id, "restaurant")
    bulk = {"date": DAY, "start": "18:00", "end": "20:00", "interval": 30, "capacity": 4}

    first = await client.post("/admin/slots/bulk", json=bulk, headers=staff)
    assert first.status_code == 201
    assert first.json() == {"created": 4}
    rerun = await client.post("/admin/slots/bulk", json=bulk, headers=staff)
    assert rerun.json() == {"created": 0}

    body = {"restaurantId": restaurant.id, "date": DAY, "time": "18:30", "partySize": 4}
    booked = (await client.post("/reservations", json=body, headers=_auth(diner.id))).json()

    bookings = await client.get("/admin/bookings", headers=staff)
    assert bookings.status_code == 200
    assert [b["id"] for b in bookings.json()["bookings"]] == [booked["reservation_id"]]
    assert bookings.json()["bookings"][0]["user"]["email"] == diner.email

    freed = await client.patch(f"/admin/slots/{booked['slot_id']}", json={"status": "AVAILABLE"}, headers=staff)
    assert freed.status_code == 409

    seated = await client.patch(
        f"/admin/bookings/{booked['reservation_id']}", json={"status": "confirmed"}, headers=staff
    )
    assert seated.status_code == 200
    assert seated.json()["status"] == "CONFIRMED"

    profile = await client.put("/admin/restaurant", json={"instagramUrl": "https://instagram.com/naru"}, headers=staff)
    assert profile.status_code == 200
    assert profile.json()["instagram_url"] == "https://instagram.com/naru"


@pytest.mark.asyncio
async def test_discover_tonight(client, make_restaurant, monkeypatch: pytest.MonkeyPatch) -> None:
    restaurant = await make_restaurant()
    staff = _auth(restaurant.id, "restaurant")
    bulk = {"date": DAY, "start": "21:00", "end": "23:30", "interval": 30, "capacity": 2}
    assert (await client.post("/admin/slots/bulk", json=bulk, headers=staff)).status_code == 201
    monkeypatch.setattr(discover, "local_now", lambda tz: datetime(2099, 8, 20, 22, 30))

    res = await client.get("/discover/tonight", params={"party_size": 2})

    assert res.status_code == 200
    groups = res.json()["now"]
    assert [g["restaurant"]["id"] for g in groups] == [restaurant.id]
    assert [s["time"] for s in groups[0]["slots"]] == ["10:00 PM", "10:30 PM", "11:00 PM"]
    assert res.json()["later"] == []

    week = await client.get("/discover/week", params={"start": DAY, "days": 2})
    assert [d["available_count"] for d in week.json()["days"]] == [5, 0]
    assert (await client.get("/discover/week", params={"days": 40})).status_code == 400


@pytest.mark.asyncio
async def test_restaurant_availability_echoes_canonical_date(client, make_restaurant) -> None:
    restaurant = await make_restaurant()

    res = await client.get(f"/restaurants/{restaurant.id}/availability", params={"date": "20990820"})

    assert res.status_code == 200
    assert res.json()["date"] == DAY


@pytest.mark.asyncio
async def test_store_failure_returns_json_500(sessionmaker, make_restaurant, make_user, monkeypatch) -> None:
    restaurant = await make_restaurant()
    diner = await make_user()

    async def broken_create(self, **kwargs):
        raise OperationalError("INSERT INTO reservations", {}, Exception("database is locked"))

    monkeypatch.setattr(ReservationLifecycle, "create", broken_create)
    app = create_app(Settings(database_url="sqlite+aiosqlite://"))
    app.state.sessionmaker = sessionmaker
    # The server error middleware re-raises after sending the response.
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    body = {"restaurantId": restaurant.id, "date": DAY, "time": "19:30", "partySize": 2}
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        res = await c.post("/reservations", json=body, headers=_auth(diner.id))

    assert res.status_code == 500
    assert res.headers["content-type"] == "application/json"
    assert res.json() == {"error": "internal server error"}
