from pydantic import BaseModel
from typing import List
from decimal import Decimal

class ParticipantBalanceOut(BaseModel):
    id: int
    email: str | None = None
    full_name: str | None = None
    total_paid: Decimal
    total_owed: Decimal
    settlements_paid: Decimal
    settlements_received: Decimal
    net_balance: Decimal

class ParticipantRef(BaseModel):
    id: int
    email: str | None = None
    full_name: str | None = None

class DebtOut(BaseModel):
    from_user: ParticipantRef
    to_user: ParticipantRef
    amount: Decimal

class BalanceSheetOut(BaseModel):
    participants: List[ParticipantBalanceOut]
    debts: List[DebtOut]

class CategoryTotalOut(BaseModel):
    category: str
    total: Decimal

class ExpenseSummaryOut(BaseModel):
    budget: Decimal | None = None
    currency: str
    total_spent: Decimal
    remaining: Decimal | None = None
    percent_used: Decimal | None = None
    expense_count: int
    by_category: List[CategoryTotalOut]
    budget_status: str | None = None
    budget_warning: str | None = None
