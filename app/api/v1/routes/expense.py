from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession
from app.db.session import get_db
from app.core.config import settings
from app.core.dependencies import get_current_user
from app.schemas.expense import ExpenseCreate, ExpenseUpdate, ExpenseOut, ExpenseSplitOut
from app.schemas.balances import ExpenseSummaryOut
from app.services.expense_services import create_expense, get_expense, list_trip_expenses, update_expense, delete_expense, get_summary
from app.services.settlement_services import mark_settled, mark_unsettled

router = APIRouter()

@router.post("/trips/{trip_id}/expenses", response_model=ExpenseOut, status_code=201)
async def add_expense(
    trip_id: int,
    data: ExpenseCreate,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user),
):
    return await create_expense(db, trip_id, current_user.id, data, tolerance=settings.SPLIT_TOLERANCE)

@router.get("/trips/{trip_id}/expenses", response_model=List[ExpenseOut])
async def trip_expenses(
    trip_id: int,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user),
):
    return await list_trip_expenses(
        db,
        trip_id,
        current_user.id,
        category=category,
        start_date=start_date,
        end_date=end_date
    )

@router.get("/trips/{trip_id}/expenses/summary", response_model=ExpenseSummaryOut)
async def expense_summary(
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user),
):
    return await get_summary(db, trip_id, current_user.id, warning_percent=settings.BUDGET_WARNING_PERCENT)

@router.post("/trips/{trip_id}/expenses/splits/{split_id}/settle", response_model=ExpenseSplitOut)
async def settle_split(
    trip_id: int,
    split_id: int,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user),
):
    return await mark_settled(db, split_id, current_user.id, trip_id=trip_id)

@router.post("/trips/{trip_id}/expenses/splits/{split_id}/unsettle", response_model=ExpenseSplitOut)
async def unsettle_split(
    trip_id: int,
    split_id: int,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user),
):
    return await mark_unsettled(db, split_id, current_user.id, trip_id=trip_id)

@router.get("/trips/{trip_id}/expenses/{expense_id}", response_model=ExpenseOut)
async def fetch(
    trip_id: int,
    expense_id: int,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user),
):
    return await get_expense(db, expense_id, current_user.id, trip_id=trip_id)

@router.patch("/trips/{trip_id}/expenses/{expense_id}", response_model=ExpenseOut)
async def edit(
    trip_id: int,
    expense_id: int,
    data: ExpenseUpdate,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user),
):
    return await update_expense(db, expense_id, current_user.id, data, tolerance=settings.SPLIT_TOLERANCE, trip_id=trip_id)

@router.delete("/trips/{trip_id}/expenses/{expense_id}", status_code=204)
async def del_expense(
    trip_id: int,
    expense_id: int,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user),
):
    await delete_expense(db, expense_id, current_user.id, trip_id=trip_id)
    return Response(status_code=204)
