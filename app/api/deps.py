"""
FastAPI dependencies (ledger store, settings)
"""
from fastapi import Request

from app.application.ledger import LedgerStore
from app.config import Settings, get_settings


def get_ledger(request: Request) -> LedgerStore:
    """
    Ledger store created by the application lifespan.

    Usage:
        @router.get("/api/budget")
        def list_entries(store: LedgerStore = Depends(get_ledger)):
            ...
    """
    return request.app.state.ledger


def get_app_settings() -> Settings:
    return get_settings()
