"""
Delivery Ledger: FastAPI application.

This is the entry point for the application.
Logging is configured and all routers are registered here.
"""

import logging

from fastapi import FastAPI

from delivery_ledger.config import get_settings
from delivery_ledger.api.health import router as health_router
from delivery_ledger.api.cashbox import router as cashbox_router
from delivery_ledger.api.orders import router as orders_router
from delivery_ledger.api.accounts import router as accounts_router
from delivery_ledger.api.payments import router as payments_router
from delivery_ledger.api.reports import router as reports_router

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Cashbox and accounting ledger for a delivery back-office",
    debug=settings.DEBUG,
)

# Register routers
app.include_router(health_router)
app.include_router(cashbox_router)
app.include_router(orders_router)
app.include_router(accounts_router)
app.include_router(payments_router)
app.include_router(reports_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
