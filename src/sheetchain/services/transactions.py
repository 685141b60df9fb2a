"""Transaction processing on top of the ledger.

Transfers are validated, applied to the ``Balances`` table under the address
locks of both parties, and recorded in the append-only ``Transactions`` table.
Block numbers are derived from the persisted transaction row count, so they
survive restarts and stay sequential inside one process.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import rlp
from eth_utils import keccak, to_bytes

from sheetchain.core.errors import InsufficientBalance, NonceMismatch, ValidationError
from sheetchain.services.ledger import AddressLocks, LedgerStore
from sheetchain.store import TRANSACTIONS_HEADERS, TRANSACTIONS_TABLE, TabularStore
from sheetchain.store.a1 import full_columns
from sheetchain.utils.address import ZERO_ADDRESS, is_address, normalize_address
from sheetchain.utils.hash import keccak_json, keccak_text

logger = logging.getLogger(__name__)

CONTRACT_CREATION = "Contract Creation"
DEFAULT_GAS_LIMIT = 21_000
MIN_GAS_LIMIT = 21_000
MAX_GAS_LIMIT = 10_000_000
EMPTY_BLOOM = "0x" + "0" * 512
ZERO_HASH = "0x" + "0" * 64


class TransactionStatus(str, Enum):
    """Values of the ``Status`` column."""

    SUCCESS = "Success"


def block_hash(number: int) -> str:
    """Synthetic block hash shared by receipts and block queries."""
    return keccak_text(str(number)) if number >= 0 else ZERO_HASH


def iso_timestamp(millis: int) -> str:
    moment = datetime.fromtimestamp(millis / 1000, tz=UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_timestamp(value: str) -> int:
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return 0
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return round(moment.timestamp() * 1000)


def _cell_int(row: list[str], index: int, default: int = 0) -> int:
    try:
        return int(row[index])
    except (IndexError, ValueError):
        return default


def creation_address(sender: str, nonce: int) -> str:
    """Address a contract created by ``sender`` at ``nonce`` would receive."""
    encoded = rlp.encode([to_bytes(hexstr=sender), nonce])
    return "0x" + keccak(encoded)[12:].hex()


@dataclass(frozen=True)
class TransactionRecord:
    """One row of the ``Transactions`` table."""

    hash: str
    from_address: str
    to_address: str | None
    value: int
    nonce: int
    status: str
    block_number: int
    gas_used: int
    gas_price: int
    timestamp_ms: int

    @property
    def succeeded(self) -> bool:
        return self.status == TransactionStatus.SUCCESS.value

    def to_row(self) -> list[str]:
        return [
            iso_timestamp(self.timestamp_ms),
            self.hash,
            self.from_address,
            self.to_address or CONTRACT_CREATION,
            str(self.value),
            str(self.nonce),
            self.status,
            str(self.block_number),
            str(self.gas_used),
            str(self.gas_price),
        ]

    @classmethod
    def from_row(cls, row: list[str]) -> TransactionRecord | None:
        if len(row) < 3 or not row[1]:
            return None
        to_cell = row[3] if len(row) > 3 else ""
        return cls(
            hash=row[1],
            from_address=row[2].lower(),
            to_address=None if to_cell in ("", CONTRACT_CREATION) else to_cell.lower(),
            value=_cell_int(row, 4),
            nonce=_cell_int(row, 5),
            status=row[6] if len(row) > 6 else TransactionStatus.SUCCESS.value,
            block_number=_cell_int(row, 7),
            gas_used=_cell_int(row, 8, DEFAULT_GAS_LIMIT),
            gas_price=_cell_int(row, 9),
            timestamp_ms=_parse_timestamp(row[0]),
        )

    def to_rpc(self) -> dict[str, Any]:
        """Render as an ``eth_getTransactionByHash`` result."""
        return {
            "hash": self.hash,
            "nonce": hex(self.nonce),
            "blockHash": block_hash(self.block_number),
            "blockNumber": hex(self.block_number),
            "transactionIndex": "0x0",
            "from": self.from_address,
            "to": self.to_address,
            "value": hex(self.value),
            "gas": hex(self.gas_used),
            "gasPrice": hex(self.gas_price),
            "input": "0x",
            "status": "0x1" if self.succeeded else "0x0",
        }

    def to_receipt(self) -> dict[str, Any]:
        """Render as an ``eth_getTransactionReceipt`` result."""
        contract_address = None
        if self.to_address is None and is_address(self.from_address):
            contract_address = creation_address(self.from_address, self.nonce)
        return {
            "transactionHash": self.hash,
            "transactionIndex": "0x0",
            "blockHash": block_hash(self.block_number),
            "blockNumber": hex(self.block_number),
            "from": self.from_address,
            "to": self.to_address,
            "gasUsed": hex(self.gas_used),
            "cumulativeGasUsed": hex(self.gas_used),
            "effectiveGasPrice": hex(self.gas_price),
            "contractAddress": contract_address,
            "logs": [],
            "logsBloom": EMPTY_BLOOM,
            "type": "0x0",
            "status": "0x1" if self.succeeded else "0x0",
        }


class TransactionValidator:
    """Stateless checks run before any ledger mutation."""

    def __init__(self, chain_id: int) -> None:
        self.chain_id = chain_id

    def validate_transfer(
        self,
        from_address: object,
        to_address: object,
        value: int,
        gas_limit: int,
        gas_price: int,
    ) -> None:
        errors = []
        if not is_address(from_address):
            errors.append("Invalid from address")
        if to_address is not None and not is_address(to_address):
            errors.append("Invalid to address")
        if value < 0:
            errors.append("Value cannot be negative")
        if gas_price < 0:
            errors.append("Gas price cannot be negative")
        if gas_limit < MIN_GAS_LIMIT:
            errors.append(f"Gas limit too low (minimum {MIN_GAS_LIMIT})")
        if gas_limit > MAX_GAS_LIMIT:
            errors.append(f"Gas limit too high (maximum {MAX_GAS_LIMIT})")
        if errors:
            raise ValidationError("; ".join(errors))

    def validate_chain_id(self, chain_id: int | None) -> None:
        # Pre-EIP-155 legacy transactions carry no chain id.
        if chain_id is not None and chain_id != self.chain_id:
            raise ValidationError(f"Invalid chain ID. Expected {self.chain_id}, got {chain_id}")

    @staticmethod
    def check_nonce(expected: int, supplied: int | None) -> None:
        if supplied is not None and supplied != expected:
            raise NonceMismatch(expected, supplied)


class TransactionProcessor:
    """Applies transfers and credits and records them as transactions."""

    def __init__(
        self,
        ledger: LedgerStore,
        store: TabularStore,
        *,
        chain_id: int,
        locks: AddressLocks | None = None,
        strict_nonces: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ledger = ledger
        self.store = store
        self.locks = locks or AddressLocks()
        self.validator = TransactionValidator(chain_id)
        self.strict_nonces = strict_nonces
        self._clock = clock
        self._append_lock = threading.Lock()
        self._range = full_columns(TRANSACTIONS_TABLE, len(TRANSACTIONS_HEADERS))

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def process_transaction(
        self,
        from_address: str,
        to_address: str | None,
        value: int,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        gas_price: int = 0,
        nonce: int | None = None,
    ) -> TransactionRecord:
        """Move ``value`` from ``from_address`` to ``to_address``.

        Args:
            from_address: Sender; debited ``value + gas_limit * gas_price``.
            to_address: Recipient, or None for a contract creation.
            value: Amount in wei.
            gas_limit: Recorded as gas used.
            gas_price: Wei per gas; the network charges nothing by default.
            nonce: Caller's nonce, compared only when strict nonces are on.

        Returns:
            The appended transaction record.

        Raises:
            ValidationError: Bad inputs or, in strict mode, a stale nonce.
            InsufficientBalance: Nothing is written in this case.
        """
        self.validator.validate_transfer(from_address, to_address, value, gas_limit, gas_price)
        sender = normalize_address(from_address, "from address")
        recipient = normalize_address(to_address, "to address") if to_address else None
        total_cost = value + gas_limit * gas_price

        with self.locks.hold(sender, recipient):
            account = self.ledger.get_account(sender)
            if self.strict_nonces:
                self.validator.check_nonce(account.nonce, nonce)
            if account.balance < total_cost:
                raise InsufficientBalance(total_cost, account.balance)

            if recipient is not None and recipient != sender:
                target = self.ledger.get_account(recipient)
                self.ledger.update_balance(recipient, target.balance + value, target.nonce)
                self.ledger.update_balance(sender, account.balance - total_cost, account.nonce + 1)
            else:
                refund = value if recipient == sender else 0
                self.ledger.update_balance(
                    sender, account.balance - total_cost + refund, account.nonce + 1
                )

            record = self._append(
                sender, recipient, value, account.nonce, gas_limit, gas_price, tx_hash=None
            )

        logger.info(
            "Transaction %s: %s -> %s value=%d block=%d",
            record.hash,
            sender,
            recipient or CONTRACT_CREATION,
            value,
            record.block_number,
        )
        return record

    def credit(
        self,
        address: str,
        amount: int,
        source: str = ZERO_ADDRESS,
        tx_hash: str | None = None,
        nonce: int = 0,
    ) -> TransactionRecord:
        """Mint-equivalent credit recorded as a transaction from ``source``."""
        if amount < 0:
            raise ValidationError("Credit amount cannot be negative")
        recipient = normalize_address(address)
        with self.locks.hold(recipient):
            account = self.ledger.get_account(recipient)
            self.ledger.update_balance(recipient, account.balance + amount, account.nonce)
            record = self._append(source.lower(), recipient, amount, nonce, 0, 0, tx_hash=tx_hash)
        logger.info("Credited %d to %s from %s (%s)", amount, recipient, source, record.hash)
        return record

    def _append(
        self,
        sender: str,
        recipient: str | None,
        value: int,
        nonce: int,
        gas_used: int,
        gas_price: int,
        tx_hash: str | None,
    ) -> TransactionRecord:
        with self._append_lock:
            timestamp_ms = self._now_ms()
            record = TransactionRecord(
                hash=tx_hash
                or keccak_json(
                    {
                        "from": sender,
                        "to": recipient,
                        "value": str(value),
                        "nonce": nonce,
                        "timestamp": timestamp_ms,
                    }
                ),
                from_address=sender,
                to_address=recipient,
                value=value,
                nonce=nonce,
                status=TransactionStatus.SUCCESS.value,
                block_number=self._row_count() + 1,
                gas_used=gas_used,
                gas_price=gas_price,
                timestamp_ms=timestamp_ms,
            )
            self.store.append_row(TRANSACTIONS_TABLE, record.to_row())
        return record

    def _rows(self) -> list[list[str]]:
        return self.store.read_range(self._range)[1:]

    def _row_count(self) -> int:
        return sum(1 for row in self._rows() if row)

    def _records(self) -> list[TransactionRecord]:
        records = []
        for row in self._rows():
            record = TransactionRecord.from_row(row)
            if record is None:
                logger.warning("Skipping malformed transaction row: %r", row)
                continue
            records.append(record)
        return records

    def latest_block_number(self) -> int:
        with self._append_lock:
            return self._row_count()

    def get_transaction(self, tx_hash: str) -> TransactionRecord | None:
        wanted = tx_hash.lower()
        for record in self._records():
            if record.hash.lower() == wanted:
                return record
        return None

    def transactions_by_address(self, address: str) -> list[TransactionRecord]:
        address = normalize_address(address)
        return [
            record
            for record in self._records()
            if address in (record.from_address, record.to_address)
        ]

    def transactions_in_block(self, block_number: int) -> list[TransactionRecord]:
        return [record for record in self._records() if record.block_number == block_number]
