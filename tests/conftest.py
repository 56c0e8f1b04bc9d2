import os

# must be set before app.db.session builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.db.session import Base
from app.models.user import User
from app.models.trip import Trip
from app.models.trip_buddy import TripBuddy
import app.models.expense  # noqa: F401
import app.models.expense_split  # noqa: F401


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def trip(db):
    """
    Trip 1 owned by alice; bob and carol accepted, dave still invited,
    erin unrelated. A second trip owned by erin exists for isolation checks.
    """
    now = datetime.now(timezone.utc)

    db.add_all([
        User(id=1, email="alice@example.com", full_name="Alice"),
        User(id=2, email="bob@example.com", full_name="Bob"),
        User(id=3, email="carol@example.com", full_name="Carol"),
        User(id=4, email="dave@example.com", full_name="Dave"),
        User(id=5, email="erin@example.com", full_name="Erin"),
    ])
    await db.flush()

    db.add_all([
        Trip(id=1, owner_id=1, name="Lisbon", budget=Decimal("1000.00"), currency="EUR"),
        Trip(id=2, owner_id=5, name="Oslo", budget=None, currency=None),
    ])
    await db.flush()

    db.add_all([
        TripBuddy(trip_id=1, user_id=2, role="editor", accepted_at=now),
        TripBuddy(trip_id=1, user_id=3, role="viewer", accepted_at=now),
        TripBuddy(trip_id=1, user_id=4, role="viewer", accepted_at=None),
    ])
    await db.commit()

    return SimpleNamespace(id=1, other_id=2, alice=1, bob=2, carol=3, dave=4, erin=5)
