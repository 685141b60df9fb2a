# src/sheetchain/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import bridge_router, claims_router, transactions_router

__all__ = [
    "bridge_router",
    "claims_router",
    "transactions_router",
]
