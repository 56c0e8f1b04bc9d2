from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, union
from app.models.trip import Trip
from app.models.trip_buddy import TripBuddy
from app.models.user import User
from app.core.errors import NotFoundError

async def get_trip(db: AsyncSession, trip_id: int) -> Trip:
    res = await db.execute(select(Trip).where(Trip.id == trip_id))
    trip = res.scalar_one_or_none()

    if not trip:
        raise NotFoundError("Trip")

    return trip

def _participant_ids_q(trip_id: int):
    # owner + buddies who accepted their invitation
    return union(
        select(Trip.owner_id.label("user_id")).where(Trip.id == trip_id),
        select(TripBuddy.user_id.label("user_id")).where(
            TripBuddy.trip_id == trip_id,
            TripBuddy.accepted_at.is_not(None)
        )
    ).subquery()

async def list_active_participants(db: AsyncSession, trip_id: int) -> List[int]:
    sub = _participant_ids_q(trip_id)
    res = await db.execute(select(sub.c.user_id).order_by(sub.c.user_id))
    return [uid for (uid,) in res.all()]

async def list_participant_users(db: AsyncSession, trip_id: int) -> List[User]:
    sub = _participant_ids_q(trip_id)
    q = (
        select(User)
        .join(sub, sub.c.user_id == User.id)
        .order_by(User.id)
    )
    res = await db.execute(q)
    return list(res.scalars().all())

async def is_active_participant(db: AsyncSession, trip_id: int, user_id: int) -> bool:
    if user_id is None:
        return False
    return user_id in await list_active_participants(db, trip_id)
