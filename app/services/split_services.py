"""
Split allocation: turns split intents into concrete per-participant amounts.

An intent names a participant and either an explicit amount or a percentage
of the expense total. The resolved amounts must add up to the expense total
within a flat tolerance (one cent by default), whatever the number of
participants. Equal splits round every share on its own, so e.g. 100 split
three ways resolves to 33.33 each and sums to 99.99, which the tolerance
accepts.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.errors import ValidationError
from app.core.utils import qround, to_decimal, within_tolerance, DEFAULT_TOLERANCE, ZERO
from app.schemas.expense import SplitIntent
from app.services.participant_services import list_active_participants

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ResolvedSplit:
    user_id: int
    amount: Decimal
    percentage: Decimal | None = None


def resolve_splits(
    total: Decimal,
    intents: Sequence[SplitIntent],
    participant_ids: Iterable[int],
    tolerance: Decimal = DEFAULT_TOLERANCE
) -> List[ResolvedSplit]:
    total = to_decimal(total)
    participants = set(participant_ids)

    resolved: List[ResolvedSplit] = []
    seen = set()

    for intent in intents:
        if intent.user_id not in participants:
            raise ValidationError(f"User {intent.user_id} does not have access to this trip")

        if intent.user_id in seen:
            raise ValidationError(f"User {intent.user_id} appears more than once in splits")
        seen.add(intent.user_id)

        percentage = intent.percentage
        if percentage is not None and not (ZERO <= percentage <= HUNDRED):
            raise ValidationError("Split percentage must be between 0 and 100")

        amount = intent.amount
        if amount is None and percentage is not None:
            amount = total * percentage / HUNDRED

        if amount is None or amount <= 0:
            raise ValidationError("Each split must have a positive amount")

        amount = qround(amount)
        # 0.004 of anything is not a share
        if amount <= 0:
            raise ValidationError("Each split must have a positive amount")

        resolved.append(ResolvedSplit(
            user_id=intent.user_id,
            amount=amount,
            percentage=qround(percentage) if percentage is not None else None
        ))

    split_total = sum((s.amount for s in resolved), ZERO)

    if not within_tolerance(split_total, total, tolerance):
        raise ValidationError(
            f"Split amounts ({qround(split_total)}) must equal expense amount ({qround(total)})"
        )

    return resolved


def build_equal_splits(participant_ids: Sequence[int], total: Decimal) -> List[ResolvedSplit]:
    n = len(participant_ids)
    if n == 0:
        raise ValidationError("Trip has no participants to split between")

    total = to_decimal(total)
    share = qround(total / n)
    share_pct = qround(HUNDRED / n)

    return [
        ResolvedSplit(user_id=uid, amount=share, percentage=share_pct)
        for uid in participant_ids
    ]


async def allocate_splits(
    db: AsyncSession,
    trip_id: int,
    total: Decimal,
    intents: Sequence[SplitIntent],
    tolerance: Decimal = DEFAULT_TOLERANCE
) -> List[ResolvedSplit]:
    participants = await list_active_participants(db, trip_id)

    try:
        return resolve_splits(total, intents, participants, tolerance)
    except ValidationError as e:
        logger.info("Rejected splits for trip %s: %s", trip_id, e.message)
        raise


async def equal_split_intents(db: AsyncSession, trip_id: int, total: Decimal) -> List[SplitIntent]:
    participants = await list_active_participants(db, trip_id)

    return [
        SplitIntent(user_id=s.user_id, amount=s.amount, percentage=s.percentage)
        for s in build_equal_splits(participants, total)
    ]
