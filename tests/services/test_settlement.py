"""Settlement worker and transfer routing."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import base58
import pytest

from sheetchain.core.errors import TransferExecutionError, UnsupportedRoute
from sheetchain.services.bridge.gateways import LedgerCreditGateway, TransferRouter
from sheetchain.services.bridge.records import BridgeEventRecord, BridgeStatus, Chain
from sheetchain.services.bridge.repository import BridgeEventRepository
from sheetchain.services.bridge.settlement import SettlementWorker
from sheetchain.services.rpc import RpcNode
from tests.conftest import ALICE, BOB, BRIDGE_ADDRESS

SOLANA_RECIPIENT = base58.b58encode(bytes(range(32))).decode("ascii")


def _event(from_chain: Chain, to_chain: Chain, to_address: str, amount: str) -> BridgeEventRecord:
    return BridgeEventRecord(
        from_chain=from_chain,
        from_address=BOB,
        from_amount=amount,
        to_chain=to_chain,
        to_address=to_address,
        to_amount=amount,
        signature=f"{from_chain.value}-{to_chain.value}-{amount}",
    )


def test_router_covers_every_route_into_the_sheet() -> None:
    sheet, solana, bsc = AsyncMock(), AsyncMock(), AsyncMock()
    router = TransferRouter(sheet=sheet, solana=solana, bsc=bsc)

    for source in Chain:
        assert router.resolve(source.value, "sheet") is sheet
    assert router.resolve("sheet", "solana") is solana
    assert router.resolve("sheet", "bsc") is bsc


@pytest.mark.parametrize(("source", "target"), [("solana", "bsc"), ("bsc", "solana"), ("x", "y")])
def test_router_rejects_unknown_routes(source: str, target: str) -> None:
    router = TransferRouter(sheet=AsyncMock(), solana=AsyncMock(), bsc=AsyncMock())
    with pytest.raises(UnsupportedRoute):
        router.resolve(source, target)


def test_router_without_foreign_gateways() -> None:
    router = TransferRouter(sheet=AsyncMock())
    with pytest.raises(UnsupportedRoute):
        router.resolve("sheet", "bsc")


@pytest.mark.asyncio
async def test_ledger_credit_gateway(node: RpcNode) -> None:
    gateway = LedgerCreditGateway(node.processor, BRIDGE_ADDRESS)

    tx_hash = await gateway.transfer(ALICE, 250)

    assert node.ledger.get_balance(ALICE) == 250
    assert node.processor.get_transaction(tx_hash).from_address == BRIDGE_ADDRESS


@pytest.mark.asyncio
async def test_run_once_settles_each_route(
    node: RpcNode, repository: BridgeEventRepository
) -> None:
    solana = AsyncMock()
    solana.transfer.return_value = "solSig"
    router = TransferRouter(
        sheet=LedgerCreditGateway(node.processor, BRIDGE_ADDRESS), solana=solana
    )
    repository.insert_pending(_event(Chain.BSC, Chain.SHEET, ALICE, "40"))
    repository.insert_pending(_event(Chain.SHEET, Chain.SOLANA, SOLANA_RECIPIENT, "15"))

    worker = SettlementWorker(repository, router, batch_size=10)
    assert await worker.run_once() == 2

    assert node.ledger.get_balance(ALICE) == 40
    solana.transfer.assert_awaited_once_with(SOLANA_RECIPIENT, 15)
    processed = repository.list_events(BridgeStatus.PROCESSED)
    assert {event.settlement_tx for event in processed} >= {"solSig"}
    assert repository.list_pending() == []


@pytest.mark.asyncio
async def test_failures_are_terminal(repository: BridgeEventRepository) -> None:
    bsc = AsyncMock()
    bsc.transfer.side_effect = TransferExecutionError("BSC release reverted: 0xdead")
    router = TransferRouter(sheet=AsyncMock(), bsc=bsc)
    repository.insert_pending(_event(Chain.SHEET, Chain.BSC, ALICE, "1"))
    repository.insert_pending(_event(Chain.SHEET, Chain.SOLANA, SOLANA_RECIPIENT, "2"))

    worker = SettlementWorker(repository, router)
    assert await worker.run_once() == 0
    assert await worker.run_once() == 0

    failed = {event.to_chain: event.error for event in repository.list_events(BridgeStatus.FAILED)}
    assert failed["bsc"] == "BSC release reverted: 0xdead"
    assert "Unsupported transfer route" in failed["solana"]
    bsc.transfer.assert_awaited_once()


@pytest.mark.asyncio
async def test_batch_size_limits_each_tick(repository: BridgeEventRepository) -> None:
    sheet = AsyncMock()
    sheet.transfer.return_value = "0xok"
    for amount in ("1", "2", "3"):
        repository.insert_pending(_event(Chain.SOLANA, Chain.SHEET, ALICE, amount))

    worker = SettlementWorker(repository, TransferRouter(sheet=sheet), batch_size=2)
    assert await worker.run_once() == 2
    assert len(repository.list_pending()) == 1


@pytest.mark.asyncio
async def test_run_until_stopped(repository: BridgeEventRepository) -> None:
    sheet = AsyncMock()
    sheet.transfer.return_value = "0xok"
    repository.insert_pending(_event(Chain.SOLANA, Chain.SHEET, ALICE, "9"))
    worker = SettlementWorker(repository, TransferRouter(sheet=sheet), interval_seconds=10)
    stop = asyncio.Event()

    task = asyncio.create_task(worker.run(stop))
    await asyncio.sleep(0.05)
    stop.set()
    await asyncio.wait_for(task, timeout=2)

    sheet.transfer.assert_awaited_once_with(ALICE, 9)
