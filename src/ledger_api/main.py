"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from ledger_api import __version__
from ledger_api.container import build_container
from ledger_api.core.config import settings
from ledger_api.core.logging import configure_logging
from ledger_api.db.session import open_session
from ledger_api.routers import gmail_router, transactions_router, webhooks_router
from ledger_api.services.watch_service import WatchResyncScheduler

configure_logging(settings.log_level)


def renew_watch(user_id: str, topic_name: str | None, label_ids: list[str] | None) -> None:
    """Renew one user's Gmail watch in a fresh session."""
    db = open_session()
    container = build_container(db, settings)
    try:
        container.watch_service.start_watch(user_id, topic_name, label_ids)
    finally:
        container.close()
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await app.state.watch_scheduler.shutdown()


app = FastAPI(
    title="Ledger API",
    description="Bank notification ingestion and transaction ledger API",
    version=__version__,
    lifespan=lifespan,
)
app.state.watch_scheduler = WatchResyncScheduler(
    renew_watch, interval_seconds=settings.watch_resync_interval_seconds
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(webhooks_router, prefix="/webhooks/gmail", tags=["webhooks"])
app.include_router(gmail_router, prefix="/api/v1/gmail", tags=["gmail"])
app.include_router(transactions_router, prefix="/api/v1/transactions", tags=["transactions"])


def check_database_health() -> dict[str, str]:
    """Check database connectivity."""
    try:
        db = open_session()
        db.execute(text("SELECT 1"))
        db.close()
        return {"status": "connected"}
    except Exception as e:
        return {"status": "disconnected", "error": str(e)}


@app.get("/health")
async def health_check() -> dict[str, str | dict[str, str]]:
    """Health check endpoint with database status."""
    db_status = check_database_health()
    overall_status = "healthy" if db_status["status"] == "connected" else "degraded"
    return {
        "status": overall_status,
        "version": __version__,
        "database": db_status,
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Ledger API", "version": __version__}
