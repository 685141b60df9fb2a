"""Ledger reads and writes against the Balances table."""

import threading

import pytest

from sheetchain.core.errors import ValidationError
from sheetchain.services.ledger import AccountRecord, AddressLocks, LedgerStore
from sheetchain.store import BALANCES_TABLE
from sheetchain.store.memory import MemoryTabularStore
from tests.conftest import ALICE, BOB


def test_unknown_address_reads_zero(store: MemoryTabularStore) -> None:
    ledger = LedgerStore(store)
    assert ledger.get_account(ALICE) == AccountRecord(ALICE, 0, 0)


def test_update_appends_then_updates_in_place(store: MemoryTabularStore) -> None:
    ledger = LedgerStore(store)
    ledger.update_balance(ALICE, 100, 0)
    ledger.update_balance(ALICE, 70, 1)

    rows = store.read_range("Balances!A:C")
    assert rows[1:] == [[ALICE, "70", "1"]]
    assert ledger.get_balance(ALICE) == 70
    assert ledger.get_nonce(ALICE) == 1


def test_lookup_is_case_insensitive(store: MemoryTabularStore) -> None:
    ledger = LedgerStore(store)
    ledger.update_balance("0xABCDEFabcdef0123456789ABCDEFabcdef012345", 5, 0)
    assert ledger.get_balance("0xabcdefABCDEF0123456789abcdefABCDEF012345") == 5
    assert store.read_range("Balances!A2")[0] == ["0xabcdefabcdef0123456789abcdefabcdef012345"]


def test_negative_values_are_rejected(store: MemoryTabularStore) -> None:
    ledger = LedgerStore(store)
    with pytest.raises(ValidationError):
        ledger.update_balance(ALICE, -1, 0)
    assert store.read_range("Balances!A:C")[1:] == []


def test_invalid_address_is_rejected(store: MemoryTabularStore) -> None:
    with pytest.raises(ValidationError):
        LedgerStore(store).get_balance("0x1234")


def test_malformed_cells_read_as_zero(store: MemoryTabularStore) -> None:
    store.append_row(BALANCES_TABLE, [BOB, "not-a-number", "-3"])
    account = LedgerStore(store).get_account(BOB)
    assert account.balance == 0
    assert account.nonce == 0


def test_address_locks_serialize_holders() -> None:
    locks = AddressLocks()
    inside = []
    overlap = threading.Event()

    def worker(order: tuple[str, str]) -> None:
        with locks.hold(*order):
            if inside:
                overlap.set()
            inside.append(order)
            threading.Event().wait(0.01)
            inside.remove(order)

    threads = [
        threading.Thread(target=worker, args=((ALICE, BOB),)),
        threading.Thread(target=worker, args=((BOB, ALICE),)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert not overlap.is_set()
