"""Transfer strategies and the (source, destination) routing table."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from sheetchain.core.errors import UnsupportedRoute
from sheetchain.services.bridge.records import Chain
from sheetchain.services.transactions import TransactionProcessor

logger = logging.getLogger(__name__)


class TransferGateway(Protocol):
    """Executes a destination-chain payout and returns its transaction id."""

    async def transfer(self, to_address: str, amount: int) -> str: ...


class LedgerCreditGateway:
    """Pays out on the local ledger with a mint-equivalent credit."""

    def __init__(self, processor: TransactionProcessor, escrow_address: str) -> None:
        self.processor = processor
        self.escrow_address = escrow_address

    async def transfer(self, to_address: str, amount: int) -> str:
        record = await asyncio.to_thread(
            self.processor.credit, to_address, amount, self.escrow_address
        )
        return record.hash


class TransferRouter:
    """Resolves a route to its gateway.

    ``sheet -> solana`` and ``sheet -> bsc`` pay out on the foreign chain;
    any route ending on the sheet is a ledger credit.
    """

    def __init__(
        self,
        *,
        sheet: TransferGateway | None = None,
        solana: TransferGateway | None = None,
        bsc: TransferGateway | None = None,
    ) -> None:
        self._routes: dict[tuple[Chain, Chain], TransferGateway] = {}
        if solana is not None:
            self._routes[(Chain.SHEET, Chain.SOLANA)] = solana
        if bsc is not None:
            self._routes[(Chain.SHEET, Chain.BSC)] = bsc
        if sheet is not None:
            for source in Chain:
                self._routes[(source, Chain.SHEET)] = sheet

    def resolve(self, from_chain: str, to_chain: str) -> TransferGateway:
        message = f"Unsupported transfer route: {from_chain} -> {to_chain}"
        try:
            route = (Chain(from_chain), Chain(to_chain))
        except ValueError as exc:
            raise UnsupportedRoute(message) from exc
        gateway = self._routes.get(route)
        if gateway is None:
            raise UnsupportedRoute(message)
        return gateway
