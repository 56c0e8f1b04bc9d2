from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.core.errors import AuthorizationError, NotFoundError
from app.schemas.expense import ExpenseCreate, SplitIntent
from app.services.balance_services import compute_balances, net_positions
from app.services.expense_services import create_expense
from app.services.settlement_services import mark_settled


def _expense(payer_id, amount, splits, category="food"):
    return SimpleNamespace(
        payer_id=payer_id,
        amount=Decimal(amount),
        category=category,
        splits=[SimpleNamespace(user_id=u, amount=Decimal(a)) for u, a in splits],
    )


class TestNetPositions:

    def test_two_people_one_dinner(self):
        positions = net_positions([1, 2], [_expense(1, "100", [(1, "50"), (2, "50")])])

        assert positions[1]["total_paid"] == Decimal("100")
        assert positions[1]["total_owed"] == Decimal("50")
        assert positions[1]["net_balance"] == Decimal("50")
        assert positions[2]["total_paid"] == Decimal("0")
        assert positions[2]["total_owed"] == Decimal("50")
        assert positions[2]["net_balance"] == Decimal("-50")

    def test_settlement_brings_pair_to_zero(self):
        positions = net_positions([1, 2], [
            _expense(1, "100", [(1, "50"), (2, "50")]),
            _expense(2, "50", [(1, "50")], category="settlement"),
        ])

        assert positions[1]["total_paid"] == Decimal("100")
        assert positions[1]["settlements_received"] == Decimal("50")
        assert positions[2]["settlements_paid"] == Decimal("50")
        assert positions[2]["total_paid"] == Decimal("0")
        assert positions[1]["net_balance"] == Decimal("0")
        assert positions[2]["net_balance"] == Decimal("0")

    def test_accumulates_unrounded(self):
        expenses = [_expense(1, "0.01", [(2, "0.005")]) for _ in range(3)]
        positions = net_positions([1, 2], expenses)
        assert positions[2]["total_owed"] == Decimal("0.015")

    def test_non_participants_are_ignored(self):
        positions = net_positions([1], [_expense(9, "10", [(1, "5"), (9, "5")])])
        assert set(positions) == {1}
        assert positions[1]["net_balance"] == Decimal("-5")

    def test_net_balances_sum_to_zero(self):
        positions = net_positions([1, 2, 3], [
            _expense(1, "90", [(1, "30"), (2, "30"), (3, "30")]),
            _expense(2, "60", [(1, "20"), (2, "20"), (3, "20")]),
            _expense(3, "25", [(1, "25")], category="settlement"),
        ])
        assert sum(p["net_balance"] for p in positions.values()) == Decimal("0")


@pytest.mark.anyio
class TestComputeBalances:

    async def _add(self, db, trip, payer, amount, splits, category="food"):
        return await create_expense(
            db, trip.id, payer,
            ExpenseCreate(
                payer_id=payer,
                amount=Decimal(amount),
                category=category,
                expense_date=date(2026, 5, 1),
                splits=[SplitIntent(user_id=u, amount=Decimal(a)) for u, a in splits],
            ),
        )

    async def test_payer_and_debtor(self, db, trip):
        await self._add(db, trip, trip.alice, "100", [(trip.alice, "50"), (trip.bob, "50")])

        sheet = await compute_balances(db, trip.id, trip.bob)
        by_id = {p["id"]: p for p in sheet["participants"]}

        assert by_id[trip.alice]["total_paid"] == Decimal("100.00")
        assert by_id[trip.alice]["total_owed"] == Decimal("50.00")
        assert by_id[trip.alice]["net_balance"] == Decimal("50.00")
        assert by_id[trip.bob]["total_paid"] == Decimal("0.00")
        assert by_id[trip.bob]["total_owed"] == Decimal("50.00")
        assert by_id[trip.bob]["net_balance"] == Decimal("-50.00")
        assert by_id[trip.carol]["net_balance"] == Decimal("0.00")

        assert by_id[trip.alice]["email"] == "alice@example.com"
        assert by_id[trip.alice]["full_name"] == "Alice"

        assert sheet["debts"] == [{
            "from_user": {"id": trip.bob, "email": "bob@example.com", "full_name": "Bob"},
            "to_user": {"id": trip.alice, "email": "alice@example.com", "full_name": "Alice"},
            "amount": Decimal("50.00"),
        }]

    async def test_only_active_participants_are_listed(self, db, trip):
        sheet = await compute_balances(db, trip.id, trip.alice)
        assert [p["id"] for p in sheet["participants"]] == [trip.alice, trip.bob, trip.carol]

    async def test_settled_flag_does_not_change_totals(self, db, trip):
        expense = await self._add(db, trip, trip.alice, "100", [(trip.alice, "50"), (trip.bob, "50")])
        before = await compute_balances(db, trip.id, trip.alice)

        bob_split = next(s for s in expense.splits if s.user_id == trip.bob)
        await mark_settled(db, bob_split.id, trip.bob)

        after = await compute_balances(db, trip.id, trip.alice)
        assert after == before

    async def test_settlement_expense_clears_debt(self, db, trip):
        await self._add(db, trip, trip.alice, "100", [(trip.alice, "50"), (trip.bob, "50")])
        await self._add(db, trip, trip.bob, "50", [(trip.alice, "50")], category="settlement")

        sheet = await compute_balances(db, trip.id, trip.alice)
        by_id = {p["id"]: p for p in sheet["participants"]}

        assert by_id[trip.bob]["settlements_paid"] == Decimal("50.00")
        assert by_id[trip.alice]["settlements_received"] == Decimal("50.00")
        assert by_id[trip.alice]["net_balance"] == Decimal("0.00")
        assert by_id[trip.bob]["net_balance"] == Decimal("0.00")
        assert sheet["debts"] == []

    async def test_uneven_three_way_split_leaves_sub_tolerance_dust(self, db, trip):
        await self._add(
            db, trip, trip.alice, "100",
            [(trip.alice, "33.33"), (trip.bob, "33.33"), (trip.carol, "33.33")],
        )

        sheet = await compute_balances(db, trip.id, trip.alice)
        by_id = {p["id"]: p for p in sheet["participants"]}

        assert by_id[trip.alice]["net_balance"] == Decimal("66.67")
        assert [d["amount"] for d in sheet["debts"]] == [Decimal("33.33"), Decimal("33.33")]

    async def test_one_cent_balance_produces_no_debt(self, db, trip):
        await self._add(db, trip, trip.alice, "0.01", [(trip.bob, "0.01")])

        sheet = await compute_balances(db, trip.id, trip.alice)
        by_id = {p["id"]: p for p in sheet["participants"]}

        assert by_id[trip.alice]["net_balance"] == Decimal("0.01")
        assert by_id[trip.bob]["net_balance"] == Decimal("-0.01")
        assert sheet["debts"] == []

    async def test_two_cent_balance_produces_a_debt(self, db, trip):
        await self._add(db, trip, trip.alice, "0.02", [(trip.bob, "0.02")])

        sheet = await compute_balances(db, trip.id, trip.alice)
        assert [(d["from_user"]["id"], d["to_user"]["id"], d["amount"]) for d in sheet["debts"]] == [
            (trip.bob, trip.alice, Decimal("0.02")),
        ]

    async def test_reflects_latest_writes(self, db, trip):
        await self._add(db, trip, trip.alice, "100", [(trip.alice, "50"), (trip.bob, "50")])
        first = await compute_balances(db, trip.id, trip.alice)

        await self._add(db, trip, trip.bob, "40", [(trip.alice, "20"), (trip.bob, "20")])
        second = await compute_balances(db, trip.id, trip.alice)

        assert first != second
        by_id = {p["id"]: p for p in second["participants"]}
        assert by_id[trip.alice]["net_balance"] == Decimal("30.00")

    async def test_outsider_is_rejected(self, db, trip):
        with pytest.raises(AuthorizationError):
            await compute_balances(db, trip.id, trip.erin)

    async def test_unknown_trip(self, db, trip):
        with pytest.raises(NotFoundError):
            await compute_balances(db, 999, trip.alice)
