import logging

from fastapi import FastAPI

from .config import settings
from .database import create_tables
from .logging_config import setup_logging
from .routers import accounts, bank_connect, import_statement, invoices, sync, transactions
from .services.open_banking import OpenBankingClient

setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(title=settings.PROJECT_NAME)


# Create database tables and the provider client on startup
@app.on_event("startup")
async def startup_event():
    create_tables()
    app.state.open_banking = OpenBankingClient.from_settings()
    logger.info("%s started", settings.PROJECT_NAME)


@app.on_event("shutdown")
async def shutdown_event():
    client = getattr(app.state, "open_banking", None)
    if client is not None:
        client.close()


# Include API routers
app.include_router(bank_connect.router, prefix=f"{settings.API_V1_STR}/bank", tags=["bank-connect"])
app.include_router(accounts.router, prefix=f"{settings.API_V1_STR}/bank/accounts", tags=["bank-accounts"])
app.include_router(sync.router, prefix=f"{settings.API_V1_STR}/bank/sync", tags=["bank-sync"])
app.include_router(import_statement.router, prefix=f"{settings.API_V1_STR}/bank/import", tags=["bank-import"])
app.include_router(transactions.router, prefix=f"{settings.API_V1_STR}/bank/transactions", tags=["bank-transactions"])
app.include_router(invoices.router, prefix=f"{settings.API_V1_STR}/invoices", tags=["invoices"])


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
