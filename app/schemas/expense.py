from pydantic import BaseModel, ConfigDict
from typing import List
from datetime import date, datetime
from decimal import Decimal

class SplitIntent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: int
    amount: Decimal | None = None
    percentage: Decimal | None = None

class ExpenseCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    payer_id: int | None = None
    activity_id: int | None = None
    amount: Decimal
    currency: str | None = None
    category: str
    description: str | None = None
    expense_date: date | None = None
    splits: List[SplitIntent] = []
    split_evenly: bool = False

class ExpenseUpdate(BaseModel):
    """Partial update; fields left out are not touched."""
    model_config = ConfigDict(extra="forbid")

    amount: Decimal | None = None
    currency: str | None = None
    category: str | None = None
    description: str | None = None
    expense_date: date | None = None
    activity_id: int | None = None
    splits: List[SplitIntent] | None = None

class ExpenseSplitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    user_email: str | None = None
    user_name: str | None = None
    amount: Decimal
    percentage: Decimal | None = None
    settled: bool
    settled_at: datetime | None = None

class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    trip_id: int
    payer_id: int
    payer_email: str | None = None
    payer_name: str | None = None
    activity_id: int | None = None
    amount: Decimal
    currency: str
    category: str
    description: str | None = None
    expense_date: date
    created_at: datetime | None = None
    updated_at: datetime | None = None
    splits: List[ExpenseSplitOut] = []
