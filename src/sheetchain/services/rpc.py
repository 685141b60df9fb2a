"""JSON-RPC method dispatch and the RPC node's composition root.

Every request-scoped failure is turned into a JSON-RPC error object here; the
HTTP layer only deals with parse errors and the not-initialized state.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError

from sheetchain.core.errors import (
    MethodNotSupported,
    SheetChainError,
    StoreUnavailable,
    ValidationError,
)
from sheetchain.core.settings import Settings
from sheetchain.services.bridge.records import (
    DESTINATION_CHAIN_IDS,
    is_valid_recipient,
    normalize_recipient,
)
from sheetchain.services.bridge.sheet_tab import BridgeTabRow, append_bridge_row
from sheetchain.services.claims import ClaimService
from sheetchain.services.contracts import ContractSimulator
from sheetchain.services.ledger import AddressLocks, LedgerStore
from sheetchain.services.transactions import (
    EMPTY_BLOOM,
    ZERO_HASH,
    TransactionProcessor,
    TransactionRecord,
    block_hash,
    iso_timestamp,
)
from sheetchain.services.txdecode import (
    DecodedTransaction,
    decode_raw_transaction,
    from_call_object,
)
from sheetchain.store import TabularStore
from sheetchain.utils.abi import SELECTOR_HEX_LENGTH
from sheetchain.utils.address import ZERO_ADDRESS, parse_quantity

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
INTERNAL_ERROR = -32603
NOT_INITIALIZED = -32000

ESTIMATED_GAS = "0x5208"
BLOCK_GAS_LIMIT = "0x6691b7"
LATEST_TAGS = {"latest", "pending", "safe", "finalized"}


def rpc_error(code: int, message: str, request_id: Any = None) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "error": {"code": code, "message": message},
        "id": request_id,
    }


def rpc_result(result: Any, request_id: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "result": result, "id": request_id}


def _param(params: list[Any], index: int, name: str) -> Any:
    if index >= len(params) or params[index] is None:
        raise ValidationError(f"{name} is required")
    return params[index]


def build_block(
    number: int,
    transactions: list[TransactionRecord],
    *,
    full: bool = False,
    now: float | None = None,
) -> dict[str, Any]:
    """Synthetic block; one block per recorded transaction."""
    if transactions:
        timestamp = max(record.timestamp_ms for record in transactions) // 1000
    else:
        timestamp = int(now if now is not None else time.time())
    return {
        "number": hex(number),
        "hash": block_hash(number),
        "parentHash": block_hash(number - 1) if number > 0 else ZERO_HASH,
        "nonce": "0x" + "0" * 16,
        "sha3Uncles": ZERO_HASH,
        "logsBloom": EMPTY_BLOOM,
        "transactionsRoot": ZERO_HASH,
        "stateRoot": ZERO_HASH,
        "receiptsRoot": ZERO_HASH,
        "miner": ZERO_ADDRESS,
        "difficulty": "0x0",
        "totalDifficulty": "0x0",
        "extraData": "0x",
        "size": "0x0",
        "gasLimit": BLOCK_GAS_LIMIT,
        "gasUsed": hex(sum(record.gas_used for record in transactions)),
        "baseFeePerGas": "0x0",
        "timestamp": hex(timestamp),
        "transactions": [record.to_rpc() if full else record.hash for record in transactions],
        "uncles": [],
    }


class RpcDispatcher:
    """Routes JSON-RPC methods to the ledger, processor, claims and contracts."""

    def __init__(
        self,
        *,
        store: TabularStore,
        ledger: LedgerStore,
        processor: TransactionProcessor,
        claims: ClaimService,
        contracts: ContractSimulator,
        chain_id: int,
        client_version: str,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.processor = processor
        self.claims = claims
        self.contracts = contracts
        self.chain_id = chain_id
        self.client_version = client_version

        self._methods: dict[str, Callable[[list[Any]], Any]] = {
            "eth_chainId": lambda _p: hex(self.chain_id),
            "net_version": lambda _p: str(self.chain_id),
            "eth_getBalance": self._get_balance,
            "eth_getTransactionCount": self._get_transaction_count,
            "eth_sendRawTransaction": self._send_raw_transaction,
            "eth_sendTransaction": self._send_transaction,
            "eth_getTransactionByHash": self._get_transaction_by_hash,
            "eth_getTransactionReceipt": self._get_transaction_receipt,
            "eth_blockNumber": lambda _p: hex(self.processor.latest_block_number()),
            "eth_gasPrice": lambda _p: "0x0",
            "eth_estimateGas": lambda _p: ESTIMATED_GAS,
            "eth_call": self._call,
            "eth_getLogs": lambda _p: [],
            "eth_getCode": lambda _p: "0x",
            "eth_getStorageAt": lambda _p: "0x",
            "eth_accounts": lambda _p: [],
            "eth_sign": self._sign,
            "personal_sign": self._sign,
            "web3_clientVersion": lambda _p: self.client_version,
            "net_listening": lambda _p: True,
            "net_peerCount": lambda _p: "0x0",
            "eth_getBlockByNumber": self._get_block_by_number,
            "eth_getBlockByHash": self._get_block_by_hash,
            "sheet_createClaim": self._create_claim,
            "sheet_processClaim": self._process_claim,
            "sheet_getClaim": self._get_claim,
            "sheet_getClaimsByAddress": self._get_claims_by_address,
            "sheet_getAllClaims": lambda _p: [c.to_dict() for c in self.claims.all_claims()],
        }

    @property
    def methods(self) -> list[str]:
        return list(self._methods)

    def dispatch(self, method: str, params: list[Any]) -> Any:
        handler = self._methods.get(method)
        if handler is None:
            raise MethodNotSupported(method)
        return handler(params)

    def handle(self, request: Any) -> dict[str, Any]:
        """Answer one decoded JSON-RPC request object."""
        if not isinstance(request, dict):
            return rpc_error(INVALID_REQUEST, "Invalid Request")
        request_id = request.get("id")
        if request.get("jsonrpc") != JSONRPC_VERSION:
            return rpc_error(INVALID_REQUEST, "Invalid Request", request_id)
        method = request.get("method")
        if not isinstance(method, str):
            return rpc_error(INVALID_REQUEST, "Invalid Request", request_id)
        params = request.get("params") or []
        if not isinstance(params, list):
            params = [params]

        try:
            result = self.dispatch(method, params)
        except SheetChainError as exc:
            logger.warning("RPC error for method %s: %s", method, exc)
            return rpc_error(INTERNAL_ERROR, str(exc), request_id)
        except Exception as exc:  # the endpoint must always answer with JSON-RPC
            logger.exception("Unhandled RPC error for method %s", method)
            return rpc_error(INTERNAL_ERROR, str(exc) or type(exc).__name__, request_id)
        return rpc_result(result, request_id)

    # Accounts

    def _get_balance(self, params: list[Any]) -> str:
        return hex(self.ledger.get_balance(_param(params, 0, "Address")))

    def _get_transaction_count(self, params: list[Any]) -> str:
        return hex(self.ledger.get_nonce(_param(params, 0, "Address")))

    @staticmethod
    def _sign(_params: list[Any]) -> None:
        raise SheetChainError("Signing not supported in this simulation")

    # Sending

    def _send_raw_transaction(self, params: list[Any]) -> str:
        transaction = decode_raw_transaction(_param(params, 0, "Signed transaction"))
        self.processor.validator.validate_chain_id(transaction.chain_id)
        return self._submit(transaction)

    def _send_transaction(self, params: list[Any]) -> str:
        transaction = from_call_object(_param(params, 0, "Transaction"))
        self.processor.validator.validate_chain_id(transaction.chain_id)
        return self._submit(transaction)

    def _submit(self, transaction: DecodedTransaction) -> str:
        if self.contracts.is_claim(transaction.data):
            claim = self.claims.claim(transaction.sender)
            return claim.transaction_hash or ""
        if self.contracts.is_bridge_out(transaction.to, transaction.data):
            return self._bridge_out(transaction)
        record = self.processor.process_transaction(
            transaction.sender,
            transaction.to,
            transaction.value,
            gas_limit=transaction.gas_limit,
            gas_price=transaction.gas_price,
            nonce=transaction.nonce,
        )
        return record.hash

    def _bridge_out(self, transaction: DecodedTransaction) -> str:
        """Escrow ``value`` at the bridge address and queue a Bridge tab row."""
        try:
            dest_chain_id, recipient = abi_decode(
                ["uint256", "string"],
                bytes.fromhex(transaction.data[2 + SELECTOR_HEX_LENGTH :]),
            )
        except (DecodingError, ValueError) as exc:
            raise ValidationError(f"Invalid bridgeOut arguments: {exc}") from exc
        destination = DESTINATION_CHAIN_IDS.get(dest_chain_id)
        if destination is None:
            raise ValidationError(f"Unsupported destination chain id {dest_chain_id}")
        if not is_valid_recipient(destination, recipient):
            raise ValidationError(f"Invalid {destination.value} recipient: {recipient!r}")
        if transaction.value <= 0:
            raise ValidationError("Bridge amount must be positive")

        record = self.processor.process_transaction(
            transaction.sender,
            self.contracts.bridge_address,
            transaction.value,
            gas_limit=transaction.gas_limit,
            gas_price=transaction.gas_price,
            nonce=transaction.nonce,
        )
        try:
            append_bridge_row(
                self.store,
                BridgeTabRow(
                    timestamp=iso_timestamp(record.timestamp_ms),
                    tx_hash=record.hash,
                    from_address=record.from_address,
                    amount=str(record.value),
                    to_address=normalize_recipient(destination, recipient),
                    dest_chain_id=str(dest_chain_id),
                    status="pending",
                    block_number=str(record.block_number),
                ),
            )
        except StoreUnavailable:
            self._refund_escrow(record)
            raise
        logger.info(
            "Bridge out %s: %d to %s on %s",
            record.hash,
            record.value,
            recipient,
            destination.value,
        )
        return record.hash

    def _refund_escrow(self, record: TransactionRecord) -> None:
        """Return an escrowed bridge amount whose Bridge row was never written."""
        try:
            refund = self.processor.process_transaction(
                self.contracts.bridge_address, record.from_address, record.value
            )
        except SheetChainError:
            logger.exception(
                "Bridge out %s: %d escrowed for %s needs manual reconciliation",
                record.hash,
                record.value,
                record.from_address,
            )
            return
        logger.warning(
            "Bridge out %s refunded to %s by %s", record.hash, record.from_address, refund.hash
        )

    # Queries

    def _get_transaction_by_hash(self, params: list[Any]) -> dict[str, Any] | None:
        record = self.processor.get_transaction(_param(params, 0, "Transaction hash"))
        return record.to_rpc() if record else None

    def _get_transaction_receipt(self, params: list[Any]) -> dict[str, Any] | None:
        record = self.processor.get_transaction(_param(params, 0, "Transaction hash"))
        return record.to_receipt() if record else None

    def _call(self, params: list[Any]) -> str:
        call = _param(params, 0, "Call object")
        if not isinstance(call, dict):
            raise ValidationError("Call object must be a JSON object")
        return self.contracts.call(call.get("to"), call.get("data") or call.get("input"))

    def _block(self, number: int, full: bool) -> dict[str, Any] | None:
        latest = self.processor.latest_block_number()
        if number > latest:
            return None
        return build_block(number, self.processor.transactions_in_block(number), full=full)

    def _get_block_by_number(self, params: list[Any]) -> dict[str, Any] | None:
        tag = params[0] if params else "latest"
        full = bool(params[1]) if len(params) > 1 else False
        if tag in LATEST_TAGS:
            number = self.processor.latest_block_number()
        elif tag == "earliest":
            number = 0
        else:
            number = parse_quantity(tag, "block number")
        return self._block(number, full)

    def _get_block_by_hash(self, params: list[Any]) -> dict[str, Any] | None:
        wanted = str(_param(params, 0, "Block hash")).lower()
        full = bool(params[1]) if len(params) > 1 else False
        for number in range(self.processor.latest_block_number(), -1, -1):
            if block_hash(number) == wanted:
                return self._block(number, full)
        return None

    # Claims

    def _create_claim(self, params: list[Any]) -> dict[str, Any]:
        address = _param(params, 0, "Address")
        amount = parse_quantity(params[1], "amount") if len(params) > 1 else None
        return self.claims.create_claim(address, amount).to_dict()

    def _process_claim(self, params: list[Any]) -> dict[str, Any]:
        claim_id = _param(params, 0, "Claim ID")
        tx_hash = params[1] if len(params) > 1 else None
        return self.claims.process_claim(claim_id, tx_hash).to_dict()

    def _get_claim(self, params: list[Any]) -> dict[str, Any] | None:
        claim = self.claims.get_claim(_param(params, 0, "Claim ID"))
        return claim.to_dict() if claim else None

    def _get_claims_by_address(self, params: list[Any]) -> list[dict[str, Any]]:
        address = _param(params, 0, "Address")
        return [claim.to_dict() for claim in self.claims.claims_by_address(address)]


@dataclass
class RpcNode:
    """Everything the HTTP layer needs, built once at startup."""

    store: TabularStore
    ledger: LedgerStore
    processor: TransactionProcessor
    claims: ClaimService
    contracts: ContractSimulator
    dispatcher: RpcDispatcher
    chain_id: int
    network_name: str

    def close(self) -> None:
        self.store.close()


def build_node(store: TabularStore, config: Settings) -> RpcNode:
    ledger = LedgerStore(store)
    processor = TransactionProcessor(
        ledger,
        store,
        chain_id=config.chain_id,
        locks=AddressLocks(),
        strict_nonces=config.strict_nonces,
    )
    claims = ClaimService(
        store,
        processor,
        claim_amount=config.claim_amount_wei,
        max_claimants=config.max_claimants,
        contract_address=config.airdrop_contract_address,
    )
    contracts = ContractSimulator(
        claims,
        airdrop_address=config.airdrop_contract_address,
        bridge_address=config.bridge_contract_address,
        owner_address=config.airdrop_owner_address,
    )
    dispatcher = RpcDispatcher(
        store=store,
        ledger=ledger,
        processor=processor,
        claims=claims,
        contracts=contracts,
        chain_id=config.chain_id,
        client_version=config.client_version,
    )
    return RpcNode(
        store=store,
        ledger=ledger,
        processor=processor,
        claims=claims,
        contracts=contracts,
        dispatcher=dispatcher,
        chain_id=config.chain_id,
        network_name=config.network_name,
    )


__all__ = [
    "INTERNAL_ERROR",
    "INVALID_REQUEST",
    "NOT_INITIALIZED",
    "PARSE_ERROR",
    "RpcDispatcher",
    "RpcNode",
    "build_block",
    "build_node",
    "rpc_error",
    "rpc_result",
]
