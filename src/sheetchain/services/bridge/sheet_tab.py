"""The ``Bridge`` tab: rows written by the bridge-out path, polled by the relayer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sheetchain.services.bridge.records import (
    DESTINATION_CHAIN_IDS,
    BridgeEventRecord,
    Chain,
    is_valid_recipient,
    normalize_recipient,
)
from sheetchain.services.bridge.repository import BridgeEventRepository
from sheetchain.services.supervisor import wait_for_stop
from sheetchain.store import BRIDGE_HEADERS, BRIDGE_TABLE, TabularStore
from sheetchain.store.a1 import full_columns

logger = logging.getLogger(__name__)

BRIDGE_TAB_RANGE = full_columns(BRIDGE_TABLE, len(BRIDGE_HEADERS))


@dataclass(frozen=True)
class BridgeTabRow:
    """One data row of the Bridge tab; ``row_number`` is 1-based incl. header."""

    timestamp: str
    tx_hash: str
    from_address: str
    amount: str
    to_address: str
    dest_chain_id: str
    status: str
    block_number: str
    row_number: int = 0

    def to_row(self) -> list[str]:
        return [
            self.timestamp,
            self.tx_hash,
            self.from_address,
            self.amount,
            self.to_address,
            self.dest_chain_id,
            self.status,
            self.block_number,
        ]

    @classmethod
    def from_row(cls, row: list[str], row_number: int) -> BridgeTabRow:
        cells = row + [""] * (len(BRIDGE_HEADERS) - len(row))
        return cls(*cells[: len(BRIDGE_HEADERS)], row_number=row_number)

    def to_event(self) -> BridgeEventRecord | None:
        """Normalize into a pending sheet-sourced event, or None if unusable."""
        try:
            destination = DESTINATION_CHAIN_IDS[int(self.dest_chain_id)]
        except (KeyError, ValueError):
            logger.warning(
                "Bridge row %d has unknown destination chain %r, dropping",
                self.row_number,
                self.dest_chain_id,
            )
            return None
        if not self.amount.isdigit() or int(self.amount) == 0:
            logger.warning(
                "Bridge row %d has invalid amount %r, dropping", self.row_number, self.amount
            )
            return None
        if not is_valid_recipient(destination, self.to_address):
            logger.warning(
                "Bridge row %d has invalid %s recipient %r, dropping",
                self.row_number,
                destination.value,
                self.to_address,
            )
            return None
        return BridgeEventRecord(
            from_chain=Chain.SHEET,
            from_address=self.from_address.lower(),
            from_amount=self.amount,
            to_chain=destination,
            to_address=normalize_recipient(destination, self.to_address),
            to_amount=self.amount,
            signature=self.tx_hash,
        )


def read_bridge_tab(store: TabularStore) -> list[BridgeTabRow]:
    """Data rows of the Bridge tab, skipping the header and blank rows."""
    rows = store.read_range(BRIDGE_TAB_RANGE)
    return [
        BridgeTabRow.from_row(row, row_number)
        for row_number, row in enumerate(rows[1:], start=2)
        if row and row[0]
    ]


def append_bridge_row(store: TabularStore, row: BridgeTabRow) -> None:
    store.append_row(BRIDGE_TABLE, row.to_row())


class SheetBridgeMonitor:
    """Polls the Bridge tab and queues rows it has not seen before.

    Rows present at startup are not skipped: the repository deduplicates by
    signature, so rows written while the relayer was down are still settled.
    """

    def __init__(
        self,
        store: TabularStore,
        repository: BridgeEventRepository,
        poll_interval_seconds: float = 10.0,
    ) -> None:
        self.store = store
        self.repository = repository
        self.poll_interval_seconds = poll_interval_seconds
        self._seen: set[str] = set()

    def poll_once(self) -> int:
        """Read the tab once; return how many new events were queued."""
        inserted = 0
        for row in read_bridge_tab(self.store):
            if not row.tx_hash or row.tx_hash in self._seen:
                continue
            event = row.to_event()
            if event is not None and self.repository.insert_pending(event):
                inserted += 1
            self._seen.add(row.tx_hash)
        if inserted:
            logger.info("Queued %d new Bridge tab event(s)", inserted)
        return inserted

    async def run(self, stop: asyncio.Event) -> None:
        logger.info(
            "Starting Bridge tab monitor (polling every %.1f seconds)", self.poll_interval_seconds
        )
        while not stop.is_set():
            await asyncio.to_thread(self.poll_once)
            if await wait_for_stop(stop, self.poll_interval_seconds):
                break
