# src/sheetchain/models/__init__.py
"""SQLAlchemy models for SheetChain."""

from .bridge_event import BridgeEvent
from .sheet_row import SheetRow

__all__ = ["BridgeEvent", "SheetRow"]
