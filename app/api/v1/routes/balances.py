from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.db.session import get_db
from app.core.config import settings
from app.core.dependencies import get_current_user
from app.schemas.balances import BalanceSheetOut
from app.services.balance_services import compute_balances

router = APIRouter()

@router.get("/trips/{trip_id}/expenses/balances", response_model=BalanceSheetOut)
async def trip_balances(
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user),
):
    return await compute_balances(db, trip_id, current_user.id, tolerance=settings.SPLIT_TOLERANCE)
