"""Shared test configuration and fixtures for backend tests.

Key principles:
- No remote BASE_URL usage; all HTTP calls go through the local ASGI app.
- Each test gets its own in-memory Mongo database (mongomock-motor), so no
  server is needed and tests never share state.
- httpx.AsyncClient over ASGITransport is used for all HTTP tests.
- AnyIO is the single async runner (@pytest.mark.anyio).
"""

from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Optional

import os
import sys
from datetime import timedelta
from pathlib import Path
import uuid

import pytest
import httpx
from httpx import ASGITransport
from mongomock_motor import AsyncMongoMockClient

# Ensure backend root is on sys.path so that `server` module is importable
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("JWT_SECRET", "test_jwt_secret")

from server import app  # noqa: E402
from hotelbook.auth import (  # noqa: E402
    ROLE_ADMIN,
    ROLE_HOTEL,
    ROLE_SUPER_ADMIN,
    ROLE_USER,
    Actor,
    create_access_token,
)
from hotelbook.db import get_db  # noqa: E402
from hotelbook.utils import now_utc  # noqa: E402


HOTEL_ID = "hotel_sunrise"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio event loop."""

    return "asyncio"


@pytest.fixture(scope="function")
def test_db() -> Any:
    """Function-scoped isolated in-memory database."""

    client = AsyncMongoMockClient()
    return client[f"hotelbook_test_{uuid.uuid4().hex}"]


@pytest.fixture
def guest() -> Actor:
    return Actor(id="user_guest_1", role=ROLE_USER)


@pytest.fixture
def other_guest() -> Actor:
    return Actor(id="user_guest_2", role=ROLE_USER)


@pytest.fixture
def hotel_admin() -> Actor:
    return Actor(id="hotel_admin_1", role=ROLE_HOTEL)


@pytest.fixture
def other_hotel_admin() -> Actor:
    return Actor(id="hotel_admin_2", role=ROLE_ADMIN)


@pytest.fixture
def super_admin() -> Actor:
    return Actor(id="root_1", role=ROLE_SUPER_ADMIN)


def auth_headers(actor: Actor) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject=actor.id, role=actor.role)}"}


@pytest.fixture
def headers_for() -> Callable[[Actor], Dict[str, str]]:
    return auth_headers


@pytest.fixture
async def hotel(test_db: Any, hotel_admin: Actor) -> Dict[str, Any]:
    doc = {"_id": HOTEL_ID, "name": "Sunrise Residency", "city": "Goa", "hotelAdmin": hotel_admin.id}
    await test_db.hotels.insert_one(doc)
    return doc


@pytest.fixture
def make_booking(test_db: Any, guest: Actor, hotel_admin: Actor) -> Callable[..., Awaitable[str]]:
    """Insert a booking document directly and return its id as a string."""

    counter = {"n": 0}

    async def _make(
        status: str = "confirmed",
        *,
        user_id: Optional[str] = "__guest__",
        hotel_admin_id: Optional[str] = None,
        total_amount: float = 230.0,
        paid: bool = True,
        **extra: Any,
    ) -> str:
        counter["n"] += 1
        now = now_utc() + timedelta(seconds=counter["n"])
        doc: Dict[str, Any] = {
            "reference": f"BK{100000 + counter['n']}",
            "hotelId": HOTEL_ID,
            "roomId": "room_deluxe",
            "userId": guest.id if user_id == "__guest__" else user_id,
            "userEmail": "asha@example.com",
            "hotelAdmin": hotel_admin_id or hotel_admin.id,
            "checkIn": "2026-03-01",
            "checkOut": "2026-03-03",
            "nights": 2,
            "guests": 2,
            "unitPrice": 100.0,
            "totalPrice": 200.0,
            "taxesAndFees": total_amount - 200.0,
            "totalAmount": total_amount,
            "status": status,
            "guestInfo": [{"firstName": "Asha", "lastName": "Rao", "email": "asha@example.com"}],
            "hotelDetails": {"hotelId": HOTEL_ID, "name": "Sunrise Residency"},
            "roomDetails": {"roomId": "room_deluxe", "type": "Deluxe", "price": 100.0, "roomNumber": None},
            "createdAt": now,
            "updatedAt": now,
        }
        if paid:
            doc["paymentInfo"] = {
                "paymentId": f"pay_test{counter['n']}",
                "orderId": f"order_test{counter['n']}",
                "method": "card",
                "status": "completed",
                "lastFourDigits": "4242",
                "amount": total_amount,
            }
        doc.update(extra)
        res = await test_db.bookings.insert_one(doc)
        return str(res.inserted_id)

    return _make


@pytest.fixture(scope="function")
async def app_with_overrides(test_db: Any) -> AsyncGenerator[Any, None]:
    """FastAPI app instance whose get_db dependency points to test_db."""

    async def override_get_db():
        return test_db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield app
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def async_client(app_with_overrides: Any) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = ASGITransport(app=app_with_overrides)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
