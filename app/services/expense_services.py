import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload
from app.models.expense import Expense, ExpenseCategory, VALID_CATEGORIES
from app.models.expense_split import ExpenseSplit
from app.models.trip import Trip
from app.core.config import settings
from app.core.errors import ValidationError, AuthorizationError, NotFoundError, PersistenceError
from app.core.utils import qround, to_decimal, within_tolerance, classify_budget, DEFAULT_TOLERANCE, DEFAULT_WARNING_PERCENT, ZERO
from app.schemas.expense import ExpenseCreate, ExpenseUpdate
from app.services.participant_services import get_trip, is_active_participant
from app.services.split_services import ResolvedSplit, allocate_splits, equal_split_intents

logger = logging.getLogger(__name__)

MAX_DESCRIPTION = 500

BUDGET_WARNINGS = {
    "exceeded": "You have exceeded your trip budget!",
    "warning": "You have used over {pct}% of your trip budget.",
}


def _validate_amount(amount) -> Decimal:
    # the checked value is the stored value
    amount = qround(to_decimal(amount)) if amount is not None else None
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be a positive number")
    return amount

def _validate_category(category):
    if category not in VALID_CATEGORIES:
        raise ValidationError(f"Invalid category. Must be one of: {', '.join(VALID_CATEGORIES)}")

def _clean_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    description = description.strip()
    if len(description) > MAX_DESCRIPTION:
        raise ValidationError(f"Description must be at most {MAX_DESCRIPTION} characters")
    return description or None

async def _require_access(db: AsyncSession, trip_id: int, user_id: int, what: str = "trip"):
    if not await is_active_participant(db, trip_id, user_id):
        raise AuthorizationError(f"You do not have access to this {what}")

def _split_rows(expense_id: int, splits: Sequence[ResolvedSplit]) -> List[ExpenseSplit]:
    return [
        ExpenseSplit(
            expense_id=expense_id,
            user_id=s.user_id,
            amount=s.amount,
            percentage=s.percentage,
            settled=False
        )
        for s in splits
    ]

def _with_people():
    return (
        selectinload(Expense.payer),
        selectinload(Expense.splits).selectinload(ExpenseSplit.user),
    )

async def _load_expense(db: AsyncSession, expense_id: int, trip_id: Optional[int] = None) -> Expense:
    q = (
        select(Expense)
        .options(*_with_people())
        .where(Expense.id == expense_id)
        .execution_options(populate_existing=True)
    )
    res = await db.execute(q)
    expense = res.scalar_one_or_none()

    # an expense addressed through another trip does not exist there
    if not expense or (trip_id is not None and expense.trip_id != trip_id):
        raise NotFoundError("Expense")

    return expense

async def _rollback(db: AsyncSession, action: str, exc: Exception):
    await db.rollback()
    logger.error("Rolled back %s", action, exc_info=exc)
    raise PersistenceError() from exc


async def create_expense(
    db: AsyncSession,
    trip_id: int,
    user_id: int,
    data: ExpenseCreate,
    tolerance: Decimal = DEFAULT_TOLERANCE
) -> Expense:
    trip = await get_trip(db, trip_id)
    await _require_access(db, trip_id, user_id)

    amount = _validate_amount(data.amount)
    _validate_category(data.category)

    if not data.expense_date:
        raise ValidationError("Expense date is required")

    description = _clean_description(data.description)

    payer_id = data.payer_id or user_id
    if not await is_active_participant(db, trip_id, payer_id):
        raise ValidationError("Payer does not have access to this trip")

    currency = data.currency or trip.currency or settings.DEFAULT_CURRENCY

    intents = data.splits
    if data.split_evenly:
        intents = await equal_split_intents(db, trip_id, amount)

    splits: List[ResolvedSplit] = []
    if intents:
        splits = await allocate_splits(db, trip_id, amount, intents, tolerance)

    # everything below is one transaction
    try:
        expense = Expense(
            trip_id=trip_id,
            payer_id=payer_id,
            activity_id=data.activity_id,
            amount=amount,
            currency=currency,
            category=data.category,
            description=description,
            expense_date=data.expense_date
        )
        db.add(expense)
        await db.flush()  # gives expense.id

        db.add_all(_split_rows(expense.id, splits))
        await db.flush()

        await db.commit()
    except SQLAlchemyError as e:
        await _rollback(db, f"expense creation on trip {trip_id}", e)

    logger.info("Created expense %s on trip %s (%s, %d splits)", expense.id, trip_id, amount, len(splits))
    return await _load_expense(db, expense.id)


async def get_expense(db: AsyncSession, expense_id: int, user_id: int, trip_id: Optional[int] = None) -> Expense:
    expense = await _load_expense(db, expense_id, trip_id)
    await _require_access(db, expense.trip_id, user_id, "expense")
    return expense


async def list_trip_expenses(
    db: AsyncSession,
    trip_id: int,
    user_id: int,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> List[Expense]:
    await get_trip(db, trip_id)
    await _require_access(db, trip_id, user_id)

    q = (
        select(Expense)
        .options(*_with_people())
        .where(Expense.trip_id == trip_id)
    )

    if category:
        q = q.where(Expense.category == category)
    if start_date:
        q = q.where(Expense.expense_date >= start_date)
    if end_date:
        q = q.where(Expense.expense_date <= end_date)

    q = q.order_by(Expense.expense_date.desc(), Expense.created_at.desc(), Expense.id.desc())

    res = await db.execute(q)
    return list(res.scalars().all())


async def _authorize_change(db: AsyncSession, expense: Expense, user_id: int, verb: str) -> Trip:
    await _require_access(db, expense.trip_id, user_id, "expense")

    trip = await get_trip(db, expense.trip_id)
    if expense.payer_id != user_id and trip.owner_id != user_id:
        raise AuthorizationError(f"Only the payer or trip owner can {verb} this expense")

    return trip


async def update_expense(
    db: AsyncSession,
    expense_id: int,
    user_id: int,
    data: ExpenseUpdate,
    tolerance: Decimal = DEFAULT_TOLERANCE,
    trip_id: Optional[int] = None
) -> Expense:
    expense = await _load_expense(db, expense_id, trip_id)
    await _authorize_change(db, expense, user_id, "update")

    fields = data.model_fields_set
    changes = {}

    if "amount" in fields:
        changes["amount"] = _validate_amount(data.amount)

    if "category" in fields:
        _validate_category(data.category)
        changes["category"] = data.category

    if "expense_date" in fields:
        if not data.expense_date:
            raise ValidationError("Expense date is required")
        changes["expense_date"] = data.expense_date

    if "currency" in fields and data.currency:
        changes["currency"] = data.currency

    if "description" in fields:
        changes["description"] = _clean_description(data.description)

    if "activity_id" in fields:
        changes["activity_id"] = data.activity_id

    amount = changes.get("amount", to_decimal(expense.amount))

    new_splits = None
    if data.splits:
        new_splits = await allocate_splits(db, expense.trip_id, amount, data.splits, tolerance)
    elif "amount" in changes and expense.splits:
        current = sum((to_decimal(s.amount) for s in expense.splits), ZERO)
        if not within_tolerance(current, amount, tolerance):
            raise ValidationError(
                f"Split amounts ({qround(current)}) must equal expense amount ({qround(amount)})"
            )

    try:
        for key, value in changes.items():
            setattr(expense, key, value)

        if new_splits is not None:
            # full replace, old split rows do not survive an edit
            await db.execute(
                delete(ExpenseSplit).where(ExpenseSplit.expense_id == expense_id)
            )
            db.expire(expense, ["splits"])
            db.add_all(_split_rows(expense_id, new_splits))

        await db.flush()
        await db.commit()
    except SQLAlchemyError as e:
        await _rollback(db, f"update of expense {expense_id}", e)

    logger.info(
        "Updated expense %s fields=%s splits_replaced=%s",
        expense_id, sorted(changes), new_splits is not None
    )
    return await _load_expense(db, expense_id)


async def delete_expense(db: AsyncSession, expense_id: int, user_id: int, trip_id: Optional[int] = None):
    expense = await _load_expense(db, expense_id, trip_id)
    await _authorize_change(db, expense, user_id, "delete")

    try:
        # splits go with it
        await db.delete(expense)
        await db.commit()
    except SQLAlchemyError as e:
        await _rollback(db, f"deletion of expense {expense_id}", e)

    logger.info("Deleted expense %s from trip %s", expense_id, expense.trip_id)
    return {"status": "deleted"}


async def get_summary(
    db: AsyncSession,
    trip_id: int,
    user_id: int,
    warning_percent: Decimal = DEFAULT_WARNING_PERCENT
):
    trip = await get_trip(db, trip_id)
    await _require_access(db, trip_id, user_id)

    not_settlement = Expense.category != ExpenseCategory.SETTLEMENT.value

    count_q = select(func.count(Expense.id)).where(Expense.trip_id == trip_id)
    expense_count = (await db.execute(count_q)).scalar() or 0

    cat_q = (
        select(Expense.category, func.coalesce(func.sum(Expense.amount), 0))
        .where(Expense.trip_id == trip_id, not_settlement)
        .group_by(Expense.category)
    )
    cat_rows = (await db.execute(cat_q)).all()

    by_category = [
        {"category": cat, "total": to_decimal(total)}
        for cat, total in cat_rows
    ]
    by_category.sort(key=lambda c: (-c["total"], c["category"]))

    total_spent = sum((c["total"] for c in by_category), ZERO)

    budget = to_decimal(trip.budget) if trip.budget is not None else None
    remaining = None
    percent_used = None
    if budget is not None:
        remaining = budget - total_spent
        if budget > 0:
            percent_used = total_spent / budget * 100

    status = classify_budget(percent_used, warning_percent)
    warning = BUDGET_WARNINGS.get(status)
    if warning:
        warning = warning.format(pct=warning_percent)

    return {
        "budget": qround(budget) if budget is not None else None,
        "currency": trip.currency or settings.DEFAULT_CURRENCY,
        "total_spent": qround(total_spent),
        "remaining": qround(remaining) if remaining is not None else None,
        "percent_used": qround(percent_used) if percent_used is not None else None,
        "expense_count": expense_count,
        "by_category": [
            {"category": c["category"], "total": qround(c["total"])}
            for c in by_category
        ],
        "budget_status": status,
        "budget_warning": warning,
    }
