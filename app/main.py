from fastapi import FastAPI
from app.core.config import settings
from app.core.errors import register_error_handlers
from app.core.logging import setup_logging
from app.api.v1.routes.balances import router as balances_router
from app.api.v1.routes.expense import router as expense_router

setup_logging(settings.LOG_LEVEL)

app = FastAPI(title="Trip Ledger")
register_error_handlers(app)

@app.get("/")
async def root():
    return {"message": "Trip Ledger is live"}

# balances first, /expenses/{expense_id} would swallow it otherwise
app.include_router(balances_router, prefix="/api/v1")
app.include_router(expense_router, prefix="/api/v1")
