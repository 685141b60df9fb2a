# src/sheetchain/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .bridge import router as bridge_router
from .claims import router as claims_router
from .transactions import router as transactions_router

__all__ = [
    "bridge_router",
    "claims_router",
    "transactions_router",
]
