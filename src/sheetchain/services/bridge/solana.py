"""Solana side of the bridge: lock-program event capture and token payouts.

Events come from the Anchor ``lock`` program. Its ``TokensLocked`` event is
emitted as a base64 ``Program data:`` log line carrying an 8-byte
discriminator followed by the Borsh-encoded fields
``{sender: Pubkey, amount: u64, recipient: String}``.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

import base58
import httpx

from sheetchain.core.errors import SheetChainError, TransferExecutionError
from sheetchain.services.bridge.records import (
    BridgeEventRecord,
    Chain,
    is_valid_recipient,
    normalize_recipient,
)
from sheetchain.services.bridge.repository import BridgeEventRepository
from sheetchain.services.supervisor import wait_for_stop

logger = logging.getLogger(__name__)

PROGRAM_DATA_PREFIX = "Program data: "
ANCHOR_ERROR_MARKER = "Program log: AnchorError"
TOKENS_LOCKED_DISCRIMINATOR = hashlib.sha256(b"event:TokensLocked").digest()[:8]
SIGNATURE_PAGE_SIZE = 100


class SolanaRpcError(SheetChainError):
    """Raised when the Solana JSON-RPC endpoint answers with an error."""


@dataclass(frozen=True)
class TokensLocked:
    sender: str
    amount: int
    recipient: str


def decode_tokens_locked(payload: bytes) -> TokensLocked | None:
    """Decode one event payload; None for other events or truncated data."""
    if payload[:8] != TOKENS_LOCKED_DISCRIMINATOR or len(payload) < 52:
        return None
    sender = base58.b58encode(payload[8:40]).decode("ascii")
    amount = int.from_bytes(payload[40:48], "little")
    length = int.from_bytes(payload[48:52], "little")
    raw_recipient = payload[52 : 52 + length]
    if len(raw_recipient) != length:
        return None
    try:
        recipient = raw_recipient.decode("utf-8")
    except UnicodeDecodeError:
        return None
    return TokensLocked(sender=sender, amount=amount, recipient=recipient)


def parse_tokens_locked(log_messages: Iterable[str]) -> Iterator[TokensLocked]:
    for line in log_messages:
        if not line.startswith(PROGRAM_DATA_PREFIX):
            continue
        try:
            payload = base64.b64decode(line[len(PROGRAM_DATA_PREFIX) :], validate=True)
        except (binascii.Error, ValueError):
            continue
        event = decode_tokens_locked(payload)
        if event is not None:
            yield event


class SolanaRpcClient:
    """Minimal async JSON-RPC client for the Solana endpoints the bridge needs."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_seconds: float = 20.0,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))
        self._request_id = 0

    async def call(self, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        response = await self._http.post(
            self.rpc_url,
            json={"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params},
        )
        response.raise_for_status()
        payload = response.json()
        if payload.get("error"):
            raise SolanaRpcError(f"{method} failed: {payload['error']}")
        return payload.get("result")

    async def get_signatures_for_address(
        self,
        address: str,
        *,
        until: str | None = None,
        before: str | None = None,
        limit: int = SIGNATURE_PAGE_SIZE,
    ) -> list[dict[str, Any]]:
        """Signatures for ``address``, newest first, strictly between ``until`` and ``before``."""
        options: dict[str, Any] = {"limit": limit, "commitment": "confirmed"}
        if until:
            options["until"] = until
        if before:
            options["before"] = before
        return await self.call("getSignaturesForAddress", [address, options]) or []

    async def get_transaction(self, signature: str) -> dict[str, Any] | None:
        return await self.call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "json",
                    "commitment": "confirmed",
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )

    async def aclose(self) -> None:
        await self._http.aclose()


class SolanaLockMonitor:
    """Polls the lock program's signatures and queues ``solana -> sheet`` events."""

    def __init__(
        self,
        client: SolanaRpcClient,
        repository: BridgeEventRepository,
        program_id: str,
        poll_interval_seconds: float = 5.0,
    ) -> None:
        self.client = client
        self.repository = repository
        self.program_id = program_id
        self.poll_interval_seconds = poll_interval_seconds
        self._cursor: str | None = None

    def _records(self, signature: str, transaction: dict[str, Any]) -> list[BridgeEventRecord]:
        meta = transaction.get("meta") or {}
        if meta.get("err") is not None:
            return []
        logs = meta.get("logMessages") or []
        if any(ANCHOR_ERROR_MARKER in line for line in logs):
            return []

        records = []
        for index, event in enumerate(parse_tokens_locked(logs)):
            if not is_valid_recipient(Chain.SHEET, event.recipient):
                logger.warning(
                    "Invalid Sheet recipient %r in Solana transaction %s, dropping",
                    event.recipient,
                    signature,
                )
                continue
            amount = str(event.amount)
            records.append(
                BridgeEventRecord(
                    from_chain=Chain.SOLANA,
                    from_address=event.sender,
                    from_amount=amount,
                    to_chain=Chain.SHEET,
                    to_address=normalize_recipient(Chain.SHEET, event.recipient),
                    to_amount=amount,
                    signature=signature if index == 0 else f"{signature}#{index}",
                )
            )
        return records

    async def _new_signatures(self) -> list[dict[str, Any]]:
        """Every signature newer than the cursor, newest first.

        Without a cursor only the newest page is read, so a fresh start does
        not walk the program's whole history.
        """
        infos: list[dict[str, Any]] = []
        before = None
        while True:
            page = await self.client.get_signatures_for_address(
                self.program_id, until=self._cursor, before=before
            )
            infos.extend(page)
            if self._cursor is None or len(page) < SIGNATURE_PAGE_SIZE:
                return infos
            before = page[-1]["signature"]

    async def poll_once(self) -> int:
        """Process signatures newer than the cursor, oldest first."""
        infos = await self._new_signatures()
        inserted = 0
        for info in reversed(infos):
            signature = info["signature"]
            if info.get("err") is not None:
                self._cursor = signature
                continue
            transaction = await self.client.get_transaction(signature)
            if transaction is None:
                # Not yet visible at this commitment; retry from here next poll.
                logger.debug("Solana transaction %s not available yet", signature)
                return inserted
            for record in self._records(signature, transaction):
                logger.info(
                    "Solana lock: sender=%s amount=%s recipient=%s",
                    record.from_address,
                    record.from_amount,
                    record.to_address,
                )
                if await asyncio.to_thread(self.repository.insert_pending, record):
                    inserted += 1
            self._cursor = signature
        return inserted

    async def run(self, stop: asyncio.Event) -> None:
        logger.info("Starting Solana event monitor for program %s", self.program_id)
        while not stop.is_set():
            await self.poll_once()
            if await wait_for_stop(stop, self.poll_interval_seconds):
                break


class SolanaTransferGateway:
    """Pays out SPL tokens through an external signing service.

    The service holds the bridge authority keypair; it receives
    ``{mint, recipient, amount}`` and answers with the confirmed signature.
    """

    def __init__(
        self,
        signer_url: str,
        token_mint: str,
        *,
        timeout_seconds: float = 60.0,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.signer_url = signer_url.rstrip("/")
        self.token_mint = token_mint
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def transfer(self, to_address: str, amount: int) -> str:
        if not is_valid_recipient(Chain.SOLANA, to_address):
            raise TransferExecutionError(f"Invalid Solana address: {to_address}")
        try:
            response = await self._http.post(
                f"{self.signer_url}/transfers",
                json={"mint": self.token_mint, "recipient": to_address, "amount": str(amount)},
            )
            response.raise_for_status()
            signature = str(response.json()["signature"])
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise TransferExecutionError(f"Solana transfer failed: {exc}") from exc
        logger.info(
            "Solana transfer confirmed: %s -> %s (%d tokens)", signature, to_address, amount
        )
        return signature

    async def aclose(self) -> None:
        await self._http.aclose()
