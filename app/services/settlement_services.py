import logging
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload
from app.models.expense import Expense
from app.models.expense_split import ExpenseSplit
from app.core.errors import AuthorizationError, NotFoundError, PersistenceError
from app.services.participant_services import is_active_participant

logger = logging.getLogger(__name__)


async def _get_split_for_change(
    db: AsyncSession,
    split_id: int,
    user_id: int,
    verb: str,
    trip_id: Optional[int] = None
) -> ExpenseSplit:
    q = (
        select(ExpenseSplit, Expense.trip_id, Expense.payer_id)
        .join(Expense, Expense.id == ExpenseSplit.expense_id)
        .where(ExpenseSplit.id == split_id)
    )
    res = await db.execute(q)
    row = res.first()

    if not row or (trip_id is not None and row.trip_id != trip_id):
        raise NotFoundError("Expense split")

    split = row.ExpenseSplit

    if not await is_active_participant(db, row.trip_id, user_id):
        raise AuthorizationError("You do not have access to this expense")

    # debtor or creditor only
    if user_id not in (split.user_id, row.payer_id):
        raise AuthorizationError(f"Only the debtor or creditor can mark this as {verb}")

    return split


async def _set_settled(db: AsyncSession, split: ExpenseSplit, settled: bool):
    split_id = split.id
    try:
        split.settled = settled
        split.settled_at = datetime.now(timezone.utc) if settled else None
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Rolled back settlement change on split %s", split_id, exc_info=e)
        raise PersistenceError() from e

    q = (
        select(ExpenseSplit)
        .options(selectinload(ExpenseSplit.user))
        .where(ExpenseSplit.id == split_id)
        .execution_options(populate_existing=True)
    )
    res = await db.execute(q)
    return res.scalar_one()


async def mark_settled(db: AsyncSession, split_id: int, user_id: int, trip_id: Optional[int] = None) -> ExpenseSplit:
    split = await _get_split_for_change(db, split_id, user_id, "settled", trip_id)

    # settling twice only moves settled_at forward
    split = await _set_settled(db, split, True)
    logger.info("Split %s settled by user %s", split_id, user_id)
    return split


async def mark_unsettled(db: AsyncSession, split_id: int, user_id: int, trip_id: Optional[int] = None) -> ExpenseSplit:
    split = await _get_split_for_change(db, split_id, user_id, "unsettled", trip_id)

    split = await _set_settled(db, split, False)
    logger.info("Split %s unsettled by user %s", split_id, user_id)
    return split
