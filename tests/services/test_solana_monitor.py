"""Solana lock-program capture and the signer-service payout gateway."""

from __future__ import annotations

import base64
import json
from typing import Any
from unittest.mock import AsyncMock

import base58
import httpx
import pytest

from sheetchain.core.errors import TransferExecutionError
from sheetchain.services.bridge.records import BridgeEventRecord, Chain
from sheetchain.services.bridge.repository import BridgeEventRepository
from sheetchain.services.bridge.solana import (
    ANCHOR_ERROR_MARKER,
    PROGRAM_DATA_PREFIX,
    SIGNATURE_PAGE_SIZE,
    TOKENS_LOCKED_DISCRIMINATOR,
    SolanaLockMonitor,
    SolanaRpcClient,
    SolanaRpcError,
    SolanaTransferGateway,
    decode_tokens_locked,
    parse_tokens_locked,
)
from tests.conftest import ALICE, BOB

SENDER_KEY = bytes(range(32))
SENDER = base58.b58encode(SENDER_KEY).decode("ascii")
PROGRAM_ID = base58.b58encode(bytes(range(100, 132))).decode("ascii")


def _payload(amount: int, recipient: str) -> bytes:
    encoded = recipient.encode("utf-8")
    return (
        TOKENS_LOCKED_DISCRIMINATOR
        + SENDER_KEY
        + amount.to_bytes(8, "little")
        + len(encoded).to_bytes(4, "little")
        + encoded
    )


def _log(amount: int, recipient: str) -> str:
    return PROGRAM_DATA_PREFIX + base64.b64encode(_payload(amount, recipient)).decode("ascii")


def _transaction(*logs: str, err: Any = None) -> dict[str, Any]:
    return {"meta": {"err": err, "logMessages": ["Program log: Instruction: Lock", *logs]}}


def test_decode_tokens_locked() -> None:
    event = decode_tokens_locked(_payload(500, ALICE))
    assert event is not None
    assert event.sender == SENDER
    assert event.amount == 500
    assert event.recipient == ALICE


def test_decode_rejects_other_payloads() -> None:
    assert decode_tokens_locked(b"\x00" * 8 + _payload(1, ALICE)[8:]) is None
    assert decode_tokens_locked(_payload(1, ALICE)[:-3]) is None
    assert decode_tokens_locked(TOKENS_LOCKED_DISCRIMINATOR) is None


def test_parse_skips_unrelated_lines() -> None:
    logs = ["Program log: hello", PROGRAM_DATA_PREFIX + "%%%", _log(7, BOB)]
    assert [event.amount for event in parse_tokens_locked(logs)] == [7]


def _client(signatures: list[list[dict[str, Any]]], transactions: dict[str, Any]) -> AsyncMock:
    client = AsyncMock(spec=SolanaRpcClient)
    client.get_signatures_for_address.side_effect = signatures
    client.get_transaction.side_effect = lambda signature: transactions.get(signature)
    return client


@pytest.mark.asyncio
async def test_poll_queues_events_oldest_first(repository: BridgeEventRepository) -> None:
    client = _client(
        [[{"signature": "sig-new", "err": None}, {"signature": "sig-old", "err": None}], []],
        {
            "sig-old": _transaction(_log(10, ALICE)),
            "sig-new": _transaction(_log(20, BOB), _log(30, ALICE)),
        },
    )
    monitor = SolanaLockMonitor(client, repository, PROGRAM_ID)

    assert await monitor.poll_once() == 3
    assert await monitor.poll_once() == 0

    events = repository.list_pending()
    assert [e.signature for e in events] == ["sig-old", "sig-new", "sig-new#1"]
    assert [e.to_amount for e in events] == ["10", "20", "30"]
    assert all(e.from_address == SENDER for e in events)
    second_call = client.get_signatures_for_address.await_args_list[1]
    assert second_call.kwargs["until"] == "sig-new"


@pytest.mark.asyncio
async def test_failed_transactions_are_skipped(repository: BridgeEventRepository) -> None:
    client = _client(
        [
            [
                {"signature": "sig-err", "err": {"InstructionError": [0, "Custom"]}},
                {"signature": "sig-meta", "err": None},
                {"signature": "sig-anchor", "err": None},
                {"signature": "sig-bad-recipient", "err": None},
            ]
        ],
        {
            "sig-meta": _transaction(_log(1, ALICE), err={"Custom": 1}),
            "sig-anchor": _transaction(_log(2, ALICE), ANCHOR_ERROR_MARKER + ". Error Code: X"),
            "sig-bad-recipient": _transaction(_log(3, "nowhere")),
        },
    )
    monitor = SolanaLockMonitor(client, repository, PROGRAM_ID)

    assert await monitor.poll_once() == 0
    assert repository.list_pending() == []
    client.get_transaction.assert_any_await("sig-meta")
    assert "sig-err" not in [c.args[0] for c in client.get_transaction.await_args_list]


@pytest.mark.asyncio
async def test_unavailable_transaction_is_retried(repository: BridgeEventRepository) -> None:
    transactions: dict[str, Any] = {}
    client = _client(
        [[{"signature": "sig-1", "err": None}], [{"signature": "sig-1", "err": None}]],
        transactions,
    )
    monitor = SolanaLockMonitor(client, repository, PROGRAM_ID)

    assert await monitor.poll_once() == 0
    transactions["sig-1"] = _transaction(_log(5, ALICE))
    assert await monitor.poll_once() == 1
    assert client.get_signatures_for_address.await_args_list[1].kwargs["until"] is None


@pytest.mark.asyncio
async def test_rpc_client_raises_on_error_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["method"] == "getSignaturesForAddress"
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32005}})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = SolanaRpcClient("https://solana.test", http=http)
    with pytest.raises(SolanaRpcError, match="getSignaturesForAddress failed"):
        await client.get_signatures_for_address(PROGRAM_ID)
    await client.aclose()


@pytest.mark.asyncio
async def test_transfer_gateway_posts_to_signer() -> None:
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"signature": "5igSig"})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    gateway = SolanaTransferGateway("https://signer.test/", "MintAddr", http=http)

    assert await gateway.transfer(SENDER, 42) == "5igSig"
    assert seen["url"] == "https://signer.test/transfers"
    assert seen["body"] == {"mint": "MintAddr", "recipient": SENDER, "amount": "42"}
    await gateway.aclose()


@pytest.mark.asyncio
async def test_transfer_gateway_failures() -> None:
    http = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(500, json={}))
    )
    gateway = SolanaTransferGateway("https://signer.test", "MintAddr", http=http)

    with pytest.raises(TransferExecutionError):
        await gateway.transfer(SENDER, 1)
    with pytest.raises(TransferExecutionError):
        await gateway.transfer(ALICE, 1)
    await gateway.aclose()


class PagedSolanaRpc:
    """Signature history answered newest first with exclusive ``until``/``before`` bounds."""

    def __init__(self) -> None:
        self.signatures: list[str] = []
        self.transactions: dict[str, dict[str, Any]] = {}

    def lock(self, signature: str, amount: int) -> None:
        self.signatures.append(signature)
        self.transactions[signature] = _transaction(_log(amount, ALICE))

    async def get_signatures_for_address(
        self,
        address: str,
        *,
        until: str | None = None,
        before: str | None = None,
        limit: int = SIGNATURE_PAGE_SIZE,
    ) -> list[dict[str, Any]]:
        newest_first = self.signatures[::-1]
        if before is not None:
            newest_first = newest_first[newest_first.index(before) + 1 :]
        if until is not None:
            newest_first = newest_first[: newest_first.index(until)]
        return [{"signature": signature, "err": None} for signature in newest_first[:limit]]

    async def get_transaction(self, signature: str) -> dict[str, Any] | None:
        return self.transactions.get(signature)


@pytest.mark.asyncio
async def test_poll_pages_back_to_the_cursor(repository: BridgeEventRepository) -> None:
    solana = PagedSolanaRpc()
    solana.lock("sig-0", 1)
    monitor = SolanaLockMonitor(solana, repository, PROGRAM_ID)
    assert await monitor.poll_once() == 1

    for n in range(1, 151):
        solana.lock(f"sig-{n}", n + 1)

    assert await monitor.poll_once() == 150
    assert await monitor.poll_once() == 0
    events = repository.list_pending()
    assert len(events) == 151
    assert [e.signature for e in events[:2]] == ["sig-0", "sig-1"]
    assert events[-1].signature == "sig-150"


@pytest.mark.asyncio
async def test_partially_recorded_transaction_is_completed(
    repository: BridgeEventRepository,
) -> None:
    repository.insert_pending(
        BridgeEventRecord(
            from_chain=Chain.SOLANA,
            from_address=SENDER,
            from_amount="20",
            to_chain=Chain.SHEET,
            to_address=BOB,
            to_amount="20",
            signature="sig-multi",
        )
    )
    client = _client(
        [[{"signature": "sig-multi", "err": None}]],
        {"sig-multi": _transaction(_log(20, BOB), _log(30, ALICE))},
    )
    monitor = SolanaLockMonitor(client, repository, PROGRAM_ID)

    assert await monitor.poll_once() == 1
    events = repository.list_pending()
    assert [e.signature for e in events] == ["sig-multi", "sig-multi#1"]
    assert events[1].to_amount == "30"
