from datetime import date
from decimal import Decimal

import pytest

from app.core.errors import AuthorizationError, NotFoundError
from app.models.expense_split import ExpenseSplit
from app.schemas.expense import ExpenseCreate, SplitIntent
from app.services.expense_services import create_expense
from app.services.settlement_services import mark_settled, mark_unsettled

pytestmark = pytest.mark.anyio


@pytest.fixture
async def dinner(db, trip):
    """Alice paid 90, split three ways."""
    return await create_expense(
        db, trip.id, trip.alice,
        ExpenseCreate(
            amount=Decimal("90"),
            category="food",
            expense_date=date(2026, 5, 2),
            splits=[
                SplitIntent(user_id=trip.alice, amount=Decimal("30")),
                SplitIntent(user_id=trip.bob, amount=Decimal("30")),
                SplitIntent(user_id=trip.carol, amount=Decimal("30")),
            ],
        ),
    )


def _split_of(expense, user_id):
    return next(s for s in expense.splits if s.user_id == user_id)


async def test_debtor_settles_and_unsettles(db, session_factory, trip, dinner):
    split_id = _split_of(dinner, trip.bob).id

    settled = await mark_settled(db, split_id, trip.bob)
    assert settled.settled is True
    assert settled.settled_at is not None

    unsettled = await mark_unsettled(db, split_id, trip.bob)
    assert unsettled.settled is False
    assert unsettled.settled_at is None

    async with session_factory() as fresh:
        stored = await fresh.get(ExpenseSplit, split_id)
        assert stored.settled is False
        assert stored.settled_at is None
        assert stored.amount == Decimal("30.00")


async def test_creditor_may_settle(db, trip, dinner):
    split = await mark_settled(db, _split_of(dinner, trip.carol).id, trip.alice)
    assert split.settled is True


async def test_settling_twice_is_allowed(db, trip, dinner):
    split_id = _split_of(dinner, trip.bob).id

    await mark_settled(db, split_id, trip.bob)
    again = await mark_settled(db, split_id, trip.bob)

    assert again.settled is True
    assert again.settled_at is not None


async def test_unsettling_an_open_split_is_harmless(db, trip, dinner):
    split = await mark_unsettled(db, _split_of(dinner, trip.bob).id, trip.bob)
    assert split.settled is False
    assert split.settled_at is None


async def test_toggle_touches_one_split_only(db, session_factory, trip, dinner):
    await mark_settled(db, _split_of(dinner, trip.bob).id, trip.bob)

    async with session_factory() as fresh:
        carol = await fresh.get(ExpenseSplit, _split_of(dinner, trip.carol).id)
        assert carol.settled is False


async def test_third_participant_cannot_toggle(db, trip, dinner):
    split_id = _split_of(dinner, trip.bob).id

    with pytest.raises(AuthorizationError) as exc:
        await mark_settled(db, split_id, trip.carol)
    assert "debtor or creditor" in exc.value.message

    with pytest.raises(AuthorizationError):
        await mark_unsettled(db, split_id, trip.carol)


async def test_outsider_cannot_toggle(db, trip, dinner):
    with pytest.raises(AuthorizationError):
        await mark_settled(db, _split_of(dinner, trip.bob).id, trip.erin)


async def test_missing_split(db, trip):
    with pytest.raises(NotFoundError) as exc:
        await mark_settled(db, 404, trip.alice)
    assert exc.value.message == "Expense split not found"


async def test_split_of_another_trip_is_not_found(db, trip, dinner):
    split_id = _split_of(dinner, trip.bob).id

    with pytest.raises(NotFoundError):
        await mark_settled(db, split_id, trip.bob, trip_id=trip.other_id)
    with pytest.raises(NotFoundError):
        await mark_unsettled(db, split_id, trip.bob, trip_id=trip.other_id)

    split = await mark_settled(db, split_id, trip.bob, trip_id=trip.id)
    assert split.settled is True
    assert split.user_email == "bob@example.com"
