# src/sheetchain/store/__init__.py
"""Tabular store contract and backend selection.

The ledger, claims and bridge tab all live in a spreadsheet-shaped store that
offers range reads, row appends and range updates with no transactional
guarantees across calls.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from sheetchain.core.errors import ConfigurationError, StoreUnavailable
from sheetchain.core.settings import Settings

logger = logging.getLogger(__name__)

BALANCES_TABLE = "Balances"
TRANSACTIONS_TABLE = "Transactions"
CLAIMS_TABLE = "Claims"
BRIDGE_TABLE = "Bridge"

BALANCES_HEADERS = ["Address", "Balance", "Nonce"]
TRANSACTIONS_HEADERS = [
    "Timestamp",
    "TxHash",
    "From",
    "To",
    "Value",
    "Nonce",
    "Status",
    "BlockNumber",
    "GasUsed",
    "GasPrice",
]
CLAIMS_HEADERS = [
    "ClaimId",
    "Address",
    "Amount",
    "Timestamp",
    "Status",
    "TransactionHash",
    "BlockNumber",
]
BRIDGE_HEADERS = [
    "Timestamp",
    "TxHash",
    "From",
    "Amount",
    "ToAddress",
    "DestChainId",
    "Status",
    "BlockNumber",
]

TABLES: dict[str, list[str]] = {
    BALANCES_TABLE: BALANCES_HEADERS,
    TRANSACTIONS_TABLE: TRANSACTIONS_HEADERS,
    CLAIMS_TABLE: CLAIMS_HEADERS,
    BRIDGE_TABLE: BRIDGE_HEADERS,
}


class TabularStore(Protocol):
    """Remote key-row store consumed by the ledger, claims and bridge tables."""

    def read_range(self, range_spec: str) -> list[list[str]]: ...

    def append_row(self, table: str, row: Sequence[str]) -> None: ...

    def update_range(self, range_spec: str, rows: Sequence[Sequence[str]]) -> None: ...

    def ensure_table(self, table: str, headers: Sequence[str]) -> None: ...

    def close(self) -> None: ...


def build_store(config: Settings) -> TabularStore:
    """Instantiate the backend selected by ``STORE_BACKEND``."""
    config.validate_store()

    if config.store_backend == "memory":
        from sheetchain.store.memory import MemoryTabularStore

        return MemoryTabularStore()

    if config.store_backend == "google":
        from sheetchain.store.google import GoogleSheetsStore, ServiceAccountCredentials

        if config.google_application_credentials:
            credentials = ServiceAccountCredentials.from_file(config.google_application_credentials)
        else:
            credentials = ServiceAccountCredentials.from_inline(
                config.google_service_account_email or "",
                config.google_private_key or "",
            )
        return GoogleSheetsStore(
            config.google_sheet_id or "",
            credentials,
            timeout_seconds=config.google_http_timeout_seconds,
        )

    if config.store_backend == "sql":
        from sheetchain.db.session import SessionLocal
        from sheetchain.store.sql import SqlTabularStore

        return SqlTabularStore(SessionLocal)

    raise ConfigurationError(f"Unknown store backend: {config.store_backend}")


def initialize_store(store: TabularStore) -> None:
    """Create every table with its header row; StoreUnavailable is fatal at startup."""
    for table, headers in TABLES.items():
        store.ensure_table(table, headers)
    logger.info("Tabular store initialized (%s)", ", ".join(TABLES))


__all__ = [
    "BALANCES_HEADERS",
    "BALANCES_TABLE",
    "BRIDGE_HEADERS",
    "BRIDGE_TABLE",
    "CLAIMS_HEADERS",
    "CLAIMS_TABLE",
    "TABLES",
    "TRANSACTIONS_HEADERS",
    "TRANSACTIONS_TABLE",
    "StoreUnavailable",
    "TabularStore",
    "build_store",
    "initialize_store",
]
