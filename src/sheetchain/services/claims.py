"""Airdrop claims: one completed claim per address, capped in total.

Claims move ``pending -> completed`` exactly once. The ``Claims`` table is
written only by :class:`ClaimService`, which serializes its own operations so
the uniqueness and cap checks cannot interleave inside one process.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from sheetchain.core.errors import (
    AlreadyClaimed,
    ClaimCapReached,
    ClaimNotFound,
    ClaimNotPending,
    ValidationError,
)
from sheetchain.services.transactions import TransactionProcessor
from sheetchain.store import CLAIMS_HEADERS, CLAIMS_TABLE, TabularStore
from sheetchain.store.a1 import full_columns, row_range
from sheetchain.utils.address import normalize_address
from sheetchain.utils.hash import blake3_hexdigest

logger = logging.getLogger(__name__)


class ClaimStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ClaimRecord:
    """One row of the ``Claims`` table."""

    claim_id: str
    address: str
    amount: int
    timestamp_ms: int
    status: ClaimStatus
    transaction_hash: str | None = None
    block_number: int | None = None

    def to_row(self) -> list[str]:
        return [
            self.claim_id,
            self.address,
            str(self.amount),
            str(self.timestamp_ms),
            self.status.value,
            self.transaction_hash or "",
            "" if self.block_number is None else str(self.block_number),
        ]

    @classmethod
    def from_row(cls, row: list[str]) -> ClaimRecord | None:
        cells = row + [""] * (len(CLAIMS_HEADERS) - len(row))
        try:
            return cls(
                claim_id=cells[0],
                address=cells[1].lower(),
                amount=int(cells[2]),
                timestamp_ms=int(cells[3] or 0),
                status=ClaimStatus(cells[4]),
                transaction_hash=cells[5] or None,
                block_number=int(cells[6]) if cells[6] else None,
            )
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "claimId": self.claim_id,
            "address": self.address,
            "amount": str(self.amount),
            "timestamp": self.timestamp_ms,
            "status": self.status.value,
            "transactionHash": self.transaction_hash,
            "blockNumber": self.block_number,
        }


class ClaimService:
    """Claim state machine over the ``Claims`` table."""

    def __init__(
        self,
        store: TabularStore,
        processor: TransactionProcessor,
        *,
        claim_amount: int,
        max_claimants: int,
        contract_address: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.processor = processor
        self.claim_amount = claim_amount
        self.max_claimants = max_claimants
        self.contract_address = normalize_address(contract_address, "contract address")
        self._clock = clock
        self._lock = threading.RLock()
        self._range = full_columns(CLAIMS_TABLE, len(CLAIMS_HEADERS))

    def _indexed(self) -> list[tuple[int, ClaimRecord]]:
        """All parseable claims paired with their 1-based row number."""
        claims = []
        for row_number, row in enumerate(self.store.read_range(self._range)[1:], start=2):
            if not row:
                continue
            record = ClaimRecord.from_row(row)
            if record is None:
                logger.warning("Skipping malformed claim row %d: %r", row_number, row)
                continue
            claims.append((row_number, record))
        return claims

    def _ensure_claimable(self, address: str, claims: list[ClaimRecord]) -> None:
        completed = [claim for claim in claims if claim.status is ClaimStatus.COMPLETED]
        if any(claim.address == address for claim in completed):
            raise AlreadyClaimed(f"Address {address} has already claimed")
        if len(completed) >= self.max_claimants:
            raise ClaimCapReached(f"Maximum of {self.max_claimants} claimants reached")

    def create_claim(self, address: str, amount: int | None = None) -> ClaimRecord:
        """Insert a pending claim after the uniqueness and cap checks."""
        address = normalize_address(address)
        amount = self.claim_amount if amount is None else amount
        if amount <= 0:
            raise ValidationError("Valid amount is required")

        with self._lock:
            claims = [record for _, record in self._indexed()]
            self._ensure_claimable(address, claims)
            timestamp_ms = int(self._clock() * 1000)
            claim_id = blake3_hexdigest(f"{address}:{timestamp_ms}:{len(claims)}".encode())
            record = ClaimRecord(claim_id, address, amount, timestamp_ms, ClaimStatus.PENDING)
            self.store.append_row(CLAIMS_TABLE, record.to_row())

        logger.info("Created claim %s for %s", claim_id, address)
        return record

    def process_claim(self, claim_id: str, tx_hash: str | None = None) -> ClaimRecord:
        """Credit a pending claim and mark it completed."""
        with self._lock:
            indexed = self._indexed()
            found = next(((n, c) for n, c in indexed if c.claim_id == claim_id), None)
            if found is None:
                raise ClaimNotFound(f"Claim {claim_id} not found")
            row_number, record = found
            if record.status is not ClaimStatus.PENDING:
                raise ClaimNotPending(f"Claim {claim_id} is {record.status.value}")
            self._ensure_claimable(record.address, [claim for _, claim in indexed])

            transaction = self.processor.credit(
                record.address, record.amount, source=self.contract_address, tx_hash=tx_hash
            )
            completed = replace(
                record,
                status=ClaimStatus.COMPLETED,
                transaction_hash=transaction.hash,
                block_number=transaction.block_number,
            )
            self.store.update_range(
                row_range(CLAIMS_TABLE, row_number, len(CLAIMS_HEADERS)), [completed.to_row()]
            )

        logger.info("Completed claim %s for %s (%s)", claim_id, record.address, transaction.hash)
        return completed

    def claim(self, address: str) -> ClaimRecord:
        """Create and immediately process a claim for the configured amount."""
        with self._lock:
            pending = self.create_claim(address)
            return self.process_claim(pending.claim_id)

    def get_claim(self, claim_id: str) -> ClaimRecord | None:
        return next((c for _, c in self._indexed() if c.claim_id == claim_id), None)

    def claims_by_address(self, address: str) -> list[ClaimRecord]:
        address = normalize_address(address)
        return [claim for _, claim in self._indexed() if claim.address == address]

    def all_claims(self) -> list[ClaimRecord]:
        return [claim for _, claim in self._indexed()]

    def has_claimed(self, address: str) -> bool:
        return any(
            claim.status is ClaimStatus.COMPLETED for claim in self.claims_by_address(address)
        )

    def completed_count(self) -> int:
        return sum(1 for claim in self.all_claims() if claim.status is ClaimStatus.COMPLETED)

    def stats(self) -> dict[str, Any]:
        claims = self.all_claims()
        completed = sum(1 for claim in claims if claim.status is ClaimStatus.COMPLETED)
        return {
            "totalClaims": len(claims),
            "completedClaims": completed,
            "pendingClaims": len(claims) - completed,
            "maxClaimants": self.max_claimants,
            "remainingClaims": max(0, self.max_claimants - completed),
            "claimAmount": str(self.claim_amount),
        }
