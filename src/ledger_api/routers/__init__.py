"""API routers."""

from ledger_api.routers.gmail import router as gmail_router
from ledger_api.routers.transactions import router as transactions_router
from ledger_api.routers.webhooks import router as webhooks_router

__all__ = ["gmail_router", "transactions_router", "webhooks_router"]
