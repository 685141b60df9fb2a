"""BSC side of the bridge: TokenLock log capture and ``release`` payouts."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from importlib import resources
from typing import Any

from eth_abi import decode as abi_decode
from eth_account import Account
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import Web3Exception

from sheetchain.core.errors import TransferExecutionError
from sheetchain.services.bridge.records import BridgeEventRecord, Chain, is_valid_recipient
from sheetchain.services.bridge.repository import BridgeEventRepository
from sheetchain.services.supervisor import wait_for_stop

logger = logging.getLogger(__name__)

TOKENS_LOCKED_TOPIC = "0x" + keccak(text="TokensLocked(address,address,uint256)").hex()
DEFAULT_BLOCK_RANGE = 2_000
RECEIPT_TIMEOUT_SECONDS = 120


def load_token_lock_abi() -> list[dict[str, Any]]:
    text = resources.files("sheetchain.abi").joinpath("token_lock.json").read_text("utf-8")
    return json.loads(text)


def make_web3(http_url: str) -> AsyncWeb3:
    return AsyncWeb3(AsyncHTTPProvider(http_url))


@dataclass(frozen=True)
class LockedLog:
    sender: str
    recipient: str
    amount: int
    transaction_hash: str
    log_index: int

    @property
    def signature(self) -> str:
        return f"{self.transaction_hash}:{self.log_index}"


def _topic_address(topic: Any) -> str:
    return "0x" + HexBytes(topic)[-20:].hex()


def decode_tokens_locked_log(log: Mapping[str, Any]) -> LockedLog | None:
    """Decode a ``TokensLocked`` log entry; None for anything else."""
    topics = list(log.get("topics") or [])
    if len(topics) != 3 or HexBytes(topics[0]) != HexBytes(TOKENS_LOCKED_TOPIC):
        return None
    (amount,) = abi_decode(["uint256"], bytes(HexBytes(log.get("data") or b"")))
    return LockedLog(
        sender=_topic_address(topics[1]),
        recipient=_topic_address(topics[2]),
        amount=amount,
        transaction_hash=HexBytes(log["transactionHash"]).to_0x_hex(),
        log_index=int(log.get("logIndex") or 0),
    )


class BscLockMonitor:
    """Scans TokenLock logs block range by block range; route ``bsc -> sheet``."""

    def __init__(
        self,
        w3: AsyncWeb3,
        repository: BridgeEventRepository,
        lock_address: str,
        *,
        start_block: int | None = None,
        poll_interval_seconds: float = 5.0,
        block_range: int = DEFAULT_BLOCK_RANGE,
    ) -> None:
        self.w3 = w3
        self.repository = repository
        self.lock_address = to_checksum_address(lock_address)
        self.poll_interval_seconds = poll_interval_seconds
        self.block_range = block_range
        self._next_block = start_block

    def _record(self, locked: LockedLog) -> BridgeEventRecord | None:
        if not is_valid_recipient(Chain.SHEET, locked.recipient):
            logger.warning(
                "Invalid Sheet recipient %r in BSC transaction %s, dropping",
                locked.recipient,
                locked.transaction_hash,
            )
            return None
        amount = str(locked.amount)
        return BridgeEventRecord(
            from_chain=Chain.BSC,
            from_address=locked.sender,
            from_amount=amount,
            to_chain=Chain.SHEET,
            to_address=locked.recipient,
            to_amount=amount,
            signature=locked.signature,
        )

    async def poll_once(self) -> int:
        latest = await self.w3.eth.block_number
        from_block = latest if self._next_block is None else self._next_block
        if from_block > latest:
            return 0
        to_block = min(latest, from_block + self.block_range - 1)
        logs = await self.w3.eth.get_logs(
            {
                "address": self.lock_address,
                "fromBlock": from_block,
                "toBlock": to_block,
                "topics": [TOKENS_LOCKED_TOPIC],
            }
        )
        inserted = 0
        for log in logs:
            locked = decode_tokens_locked_log(log)
            record = self._record(locked) if locked is not None else None
            if record is None:
                continue
            logger.info(
                "BSC lock: sender=%s amount=%s recipient=%s",
                record.from_address,
                record.from_amount,
                record.to_address,
            )
            if await asyncio.to_thread(self.repository.insert_pending, record):
                inserted += 1
        self._next_block = to_block + 1
        return inserted

    async def run(self, stop: asyncio.Event) -> None:
        logger.info("Starting BSC event monitor for %s", self.lock_address)
        while not stop.is_set():
            await self.poll_once()
            if await wait_for_stop(stop, self.poll_interval_seconds):
                break


class BscReleaseGateway:
    """Releases locked tokens on BSC by calling ``release(recipient, amount)``."""

    def __init__(
        self,
        w3: AsyncWeb3,
        lock_address: str,
        private_key: str,
        chain_id: int,
        *,
        receipt_timeout: float = RECEIPT_TIMEOUT_SECONDS,
    ) -> None:
        self.w3 = w3
        self.account = Account.from_key(private_key)
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self.contract = w3.eth.contract(
            address=to_checksum_address(lock_address), abi=load_token_lock_abi()
        )

    async def transfer(self, to_address: str, amount: int) -> str:
        if not is_valid_recipient(Chain.BSC, to_address):
            raise TransferExecutionError(f"Invalid BSC address: {to_address}")
        try:
            call = self.contract.functions.release(to_checksum_address(to_address), amount)
            transaction = await call.build_transaction(
                {
                    "from": self.account.address,
                    "nonce": await self.w3.eth.get_transaction_count(
                        self.account.address, "pending"
                    ),
                    "chainId": self.chain_id,
                    "gasPrice": await self.w3.eth.gas_price,
                }
            )
            signed = self.account.sign_transaction(transaction)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except (Web3Exception, ValueError, TimeoutError) as exc:
            raise TransferExecutionError(f"BSC transfer failed: {exc}") from exc

        hex_hash = HexBytes(tx_hash).to_0x_hex()
        if receipt["status"] == 0:
            raise TransferExecutionError(f"BSC release reverted: {hex_hash}")
        logger.info(
            "BSC transfer confirmed in block %d: %s -> %s (%d tokens)",
            receipt["blockNumber"],
            hex_hash,
            to_address,
            amount,
        )
        return hex_hash
