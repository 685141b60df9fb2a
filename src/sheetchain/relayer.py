# src/sheetchain/relayer.py
"""Entry point for the bridge relayer process.

Runs one supervised task per enabled capture source (the Bridge tab always,
Solana and BSC when configured) plus the settlement worker. SIGINT/SIGTERM set
the shared stop event; every task winds down and the clients are closed.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from sheetchain.core.errors import ConfigurationError, StoreUnavailable
from sheetchain.core.logging import configure_logging
from sheetchain.core.settings import Settings, settings
from sheetchain.db.session import SessionLocal, create_tables
from sheetchain.services.bridge.bsc import BscLockMonitor, BscReleaseGateway, make_web3
from sheetchain.services.bridge.gateways import LedgerCreditGateway, TransferRouter
from sheetchain.services.bridge.repository import BridgeEventRepository
from sheetchain.services.bridge.settlement import SettlementWorker
from sheetchain.services.bridge.sheet_tab import SheetBridgeMonitor
from sheetchain.services.bridge.solana import (
    SolanaLockMonitor,
    SolanaRpcClient,
    SolanaTransferGateway,
)
from sheetchain.services.ledger import AddressLocks, LedgerStore
from sheetchain.services.supervisor import RestartPolicy, Supervisor
from sheetchain.services.transactions import TransactionProcessor
from sheetchain.store import TabularStore, build_store, initialize_store

logger = logging.getLogger(__name__)

Target = Callable[[asyncio.Event], Awaitable[None]]


@dataclass
class BridgeRelayer:
    """Supervised relayer tasks sharing one stop event."""

    store: TabularStore
    tasks: dict[str, Target]
    policy: RestartPolicy
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)
    stop: asyncio.Event = field(default_factory=asyncio.Event)

    def supervisors(self) -> list[Supervisor]:
        return [
            Supervisor(name, target, self.policy, self.stop) for name, target in self.tasks.items()
        ]

    async def run(self) -> None:
        running = [
            asyncio.create_task(supervisor.run(), name=supervisor.name)
            for supervisor in self.supervisors()
        ]
        logger.info("Bridge relayer running: %s", ", ".join(self.tasks))
        try:
            await self.stop.wait()
        finally:
            self.stop.set()
            for task in running:
                task.cancel()
            await asyncio.gather(*running, return_exceptions=True)
            await self.close()

    async def close(self) -> None:
        for closer in self.closers:
            try:
                await closer()
            except Exception as exc:  # keep closing the remaining clients
                logger.warning("Error while closing relayer client: %s", exc)
        await asyncio.to_thread(self.store.close)
        logger.info("Bridge relayer stopped")


def build_relayer(
    config: Settings,
    *,
    store: TabularStore | None = None,
    repository: BridgeEventRepository | None = None,
) -> BridgeRelayer:
    """Wire capture monitors, transfer gateways and the settlement worker.

    Raises:
        ConfigurationError: if an enabled source is missing settings
        StoreUnavailable: if the tabular store cannot be initialized
    """
    config.validate_relayer()
    if store is None:
        store = build_store(config)
        initialize_store(store)
    if repository is None:
        repository = BridgeEventRepository(SessionLocal)

    processor = TransactionProcessor(
        LedgerStore(store),
        store,
        chain_id=config.chain_id,
        locks=AddressLocks(),
    )
    tasks: dict[str, Target] = {
        "bridge-tab-monitor": SheetBridgeMonitor(
            store, repository, config.bridge_poll_interval_seconds
        ).run,
    }
    closers: list[Callable[[], Awaitable[None]]] = []
    solana_gateway = None
    bsc_gateway = None

    if config.solana_enabled:
        client = SolanaRpcClient(
            config.solana_rpc_url, timeout_seconds=config.solana_http_timeout_seconds
        )
        solana_gateway = SolanaTransferGateway(
            config.solana_signer_url or "", config.solana_token_mint or ""
        )
        tasks["solana-monitor"] = SolanaLockMonitor(
            client,
            repository,
            config.solana_lock_program_id or "",
            config.solana_poll_interval_seconds,
        ).run
        closers += [client.aclose, solana_gateway.aclose]

    if config.bsc_enabled:
        w3 = make_web3(config.bsc_http_url)
        lock_address = config.bsc_token_lock_address or ""
        bsc_gateway = BscReleaseGateway(
            w3, lock_address, config.bsc_private_key or "", config.bsc_chain_id
        )
        tasks["bsc-monitor"] = BscLockMonitor(
            w3,
            repository,
            lock_address,
            start_block=config.bsc_start_block,
            poll_interval_seconds=config.bsc_poll_interval_seconds,
        ).run
        closers.append(w3.provider.disconnect)

    router = TransferRouter(
        sheet=LedgerCreditGateway(processor, config.bridge_contract_address),
        solana=solana_gateway,
        bsc=bsc_gateway,
    )
    tasks["settlement-worker"] = SettlementWorker(
        repository,
        router,
        interval_seconds=config.settlement_interval_seconds,
        batch_size=config.settlement_batch_size,
    ).run

    policy = RestartPolicy(
        base_delay=config.supervisor_base_delay_seconds,
        max_delay=config.supervisor_max_delay_seconds,
        reset_after=config.supervisor_reset_after_seconds,
    )
    return BridgeRelayer(store=store, tasks=tasks, policy=policy, closers=closers)


async def _serve(config: Settings) -> None:
    if config.auto_create_tables:
        await asyncio.to_thread(create_tables)
    relayer = await asyncio.to_thread(build_relayer, config)
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, relayer.stop.set)
    await relayer.run()


def main() -> None:
    configure_logging(settings.log_level)
    try:
        asyncio.run(_serve(settings))
    except (ConfigurationError, StoreUnavailable) as exc:
        logger.error("Relayer failed to start: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
