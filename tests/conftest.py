import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

# point the app at a throwaway SQLite database before busbook is imported
_db_dir = tempfile.mkdtemp(prefix="busbook-test-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_db_dir) / 'busbook_test.db'}"
os.environ["BUS_CLEANUP_SCHEDULER_ENABLED"] = "false"
os.environ["SEAT_LOCK_TTL_SECONDS"] = "300"
os.environ["CONFIRM_REQUIRES_HOLDER"] = "false"

import busbook.models  # noqa: E402, F401
from busbook.db.base import Base  # noqa: E402
from busbook.db.session import engine  # noqa: E402
from busbook.main import app  # noqa: E402
from busbook.schemas.bus import BusCreate  # noqa: E402
from busbook.services import seat_map  # noqa: E402


FUTURE_DATE = "2099-12-31"


def _bus_payload(**overrides) -> dict:
    payload = {
        "busName": "Express 101",
        "source": "Pune",
        "destination": "Mumbai",
        "date": FUTURE_DATE,
        "departureTime": "08:00",
        "arrivalTime": "11:30",
        "price": 450.0,
        "totalSeats": 40,
    }
    payload.update(overrides)
    return payload


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock(monkeypatch):
    c = Clock(datetime(2030, 5, 1, 9, 0, tzinfo=timezone.utc))
    monkeypatch.setattr(seat_map, "_now", c)
    return c


@pytest.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    # pooled aiosqlite connections are bound to this test's event loop
    await engine.dispose()


@pytest.fixture
def make_bus(db):
    async def _make(**overrides):
        return await seat_map.seat_map_store.create_bus(BusCreate(**_bus_payload(**overrides)))

    return _make


@pytest.fixture
async def client(db):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def bus_payload():
    return _bus_payload
