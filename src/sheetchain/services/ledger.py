"""Account ledger backed by the ``Balances`` table.

The backing store offers no compare-and-swap, so the ledger alone cannot keep
concurrent read-modify-write sequences consistent. Every mutating caller holds
the :class:`AddressLocks` entries of the addresses it touches for the whole
sequence.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass

from sheetchain.core.errors import ValidationError
from sheetchain.store import BALANCES_HEADERS, BALANCES_TABLE, TabularStore
from sheetchain.store.a1 import full_columns, row_range
from sheetchain.utils.address import normalize_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountRecord:
    """Balance and nonce of one address."""

    address: str
    balance: int = 0
    nonce: int = 0

    def to_row(self) -> list[str]:
        return [self.address, str(self.balance), str(self.nonce)]


class AddressLocks:
    """Hands out one lock per address.

    ``hold`` acquires the locks of several addresses in sorted order so two
    transfers touching the same pair can never deadlock.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, address: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(address)
            if lock is None:
                lock = self._locks[address] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, *addresses: str | None) -> Iterator[None]:
        keys = sorted({address.lower() for address in addresses if address})
        with ExitStack() as stack:
            for key in keys:
                stack.enter_context(self._lock_for(key))
            yield


def _parse_uint(value: str, field: str, address: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        logger.warning("Malformed %s %r for %s, reading as 0", field, value, address)
        return 0
    if parsed < 0:
        logger.warning("Negative %s %r for %s, reading as 0", field, value, address)
        return 0
    return parsed


class LedgerStore:
    """Address-keyed balance/nonce records in the tabular store."""

    def __init__(self, store: TabularStore) -> None:
        self.store = store
        self._range = full_columns(BALANCES_TABLE, len(BALANCES_HEADERS))

    def _find(self, address: str) -> tuple[int, list[str]] | None:
        """Return (row number, cells) for an address, skipping the header."""
        rows = self.store.read_range(self._range)
        for index, row in enumerate(rows[1:], start=2):
            if row and row[0].lower() == address:
                return index, row
        return None

    def get_account(self, address: str) -> AccountRecord:
        address = normalize_address(address)
        found = self._find(address)
        if found is None:
            return AccountRecord(address)
        _, row = found
        balance = _parse_uint(row[1] if len(row) > 1 else "0", "balance", address)
        nonce = _parse_uint(row[2] if len(row) > 2 else "0", "nonce", address)
        return AccountRecord(address, balance, nonce)

    def get_balance(self, address: str) -> int:
        return self.get_account(address).balance

    def get_nonce(self, address: str) -> int:
        return self.get_account(address).nonce

    def update_balance(self, address: str, new_balance: int, new_nonce: int) -> AccountRecord:
        """Write the account row, appending it on first credit.

        Callers must hold the address lock: this is a read followed by a write.
        """
        address = normalize_address(address)
        if new_balance < 0 or new_nonce < 0:
            raise ValidationError("Balance and nonce must be non-negative")
        record = AccountRecord(address, new_balance, new_nonce)
        found = self._find(address)
        if found is None:
            self.store.append_row(BALANCES_TABLE, record.to_row())
            logger.debug("Created account row for %s", address)
        else:
            row_number, _ = found
            self.store.update_range(
                row_range(BALANCES_TABLE, row_number, len(BALANCES_HEADERS)), [record.to_row()]
            )
        return record

