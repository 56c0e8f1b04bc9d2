from decimal import Decimal
from typing import Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from app.core.errors import AuthorizationError
from app.core.utils import qround, to_decimal, simplify_debts, DEFAULT_TOLERANCE, ZERO
from app.models.expense import Expense, ExpenseCategory
from app.services.participant_services import get_trip, list_participant_users

SETTLEMENT = ExpenseCategory.SETTLEMENT.value


def net_positions(participant_ids, expenses) -> Dict[int, Dict[str, Decimal]]:
    """
    Aggregates every expense of a trip into per-participant totals.

    Regular expenses credit the payer with total_paid and debit every split
    owner with total_owed, settled or not. Settlement expenses move money
    between participants instead: the payer gets settlements_paid and the
    split owners settlements_received. Sums stay unrounded here.
    """
    positions = {
        uid: {
            "total_paid": ZERO,
            "total_owed": ZERO,
            "settlements_paid": ZERO,
            "settlements_received": ZERO,
        }
        for uid in participant_ids
    }

    for expense in expenses:
        amount = to_decimal(expense.amount)
        is_settlement = expense.category == SETTLEMENT

        payer = positions.get(expense.payer_id)
        if payer is not None:
            payer["settlements_paid" if is_settlement else "total_paid"] += amount

        for split in expense.splits:
            owner = positions.get(split.user_id)
            # former participants drop out of the sheet
            if owner is None:
                continue
            owner["settlements_received" if is_settlement else "total_owed"] += to_decimal(split.amount)

    for p in positions.values():
        p["net_balance"] = (
            (p["total_paid"] - p["total_owed"]) +
            (p["settlements_paid"] - p["settlements_received"])
        )

    return positions


async def compute_balances(
    db: AsyncSession,
    trip_id: int,
    user_id: int,
    tolerance: Decimal = DEFAULT_TOLERANCE
):
    await get_trip(db, trip_id)

    users = await list_participant_users(db, trip_id)
    if user_id not in {u.id for u in users}:
        raise AuthorizationError("You do not have access to this trip")

    q = (
        select(Expense)
        .options(selectinload(Expense.splits))
        .where(Expense.trip_id == trip_id)
        .order_by(Expense.id)
    )
    res = await db.execute(q)
    expenses = res.scalars().all()

    positions = net_positions([u.id for u in users], expenses)

    participants = [
        {
            "id": u.id,
            "email": u.email,
            "full_name": u.full_name,
            **{key: qround(value) for key, value in positions[u.id].items()},
        }
        for u in users
    ]

    # Drop balances within the tolerance, one cent included
    net = {
        p["id"]: p["net_balance"]
        for p in participants
        if abs(p["net_balance"]) > tolerance
    }

    refs = {
        u.id: {"id": u.id, "email": u.email, "full_name": u.full_name}
        for u in users
    }

    return {
        "participants": participants,
        "debts": [
            {
                "from_user": refs[f],
                "to_user": refs[t],
                "amount": a
            }
            for f, t, a in simplify_debts(net)
        ]
    }
