"""Settlement of pending bridge events.

Each tick takes the oldest pending events, pays each one out through its
route's gateway and records the outcome. A failed event stays failed until it
is resubmitted by hand.

The payout and the status write are separate steps: if the process dies
between them the event is still pending on restart and will be paid again.
Exactly-once payout needs a duplicate check on the destination side.
"""

from __future__ import annotations

import asyncio
import logging

from sheetchain.models import BridgeEvent
from sheetchain.services.bridge.gateways import TransferRouter
from sheetchain.services.bridge.repository import BridgeEventRepository
from sheetchain.services.supervisor import wait_for_stop

logger = logging.getLogger(__name__)


class SettlementWorker:
    def __init__(
        self,
        repository: BridgeEventRepository,
        router: TransferRouter,
        *,
        interval_seconds: float = 5.0,
        batch_size: int = 50,
    ) -> None:
        self.repository = repository
        self.router = router
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size

    async def _settle(self, event: BridgeEvent) -> bool:
        try:
            gateway = self.router.resolve(event.from_chain, event.to_chain)
            settlement_tx = await gateway.transfer(event.to_address, int(event.to_amount))
        except Exception as exc:  # any payout failure is terminal for the event
            logger.error(
                "Settlement of bridge event %d (%s -> %s) failed: %s",
                event.id,
                event.from_chain,
                event.to_chain,
                exc,
            )
            await asyncio.to_thread(self.repository.mark_failed, event.id, str(exc))
            return False

        await asyncio.to_thread(self.repository.mark_processed, event.id, settlement_tx)
        logger.info(
            "Settled bridge event %d: %s %s -> %s (%s)",
            event.id,
            event.to_amount,
            event.to_chain,
            event.to_address,
            settlement_tx,
        )
        return True

    async def run_once(self) -> int:
        """Settle one batch; return how many events were processed."""
        events = await asyncio.to_thread(self.repository.list_pending, self.batch_size)
        settled = 0
        for event in events:
            if await self._settle(event):
                settled += 1
        return settled

    async def run(self, stop: asyncio.Event) -> None:
        logger.info("Starting settlement worker (every %.1f seconds)", self.interval_seconds)
        while not stop.is_set():
            await self.run_once()
            if await wait_for_stop(stop, self.interval_seconds):
                break
