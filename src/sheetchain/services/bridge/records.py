"""Normalized bridge event shape shared by every capture adapter."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import base58

from sheetchain.utils.address import is_address

SOLANA_PUBKEY_LENGTH = 32


class Chain(str, Enum):
    SHEET = "sheet"
    SOLANA = "solana"
    BSC = "bsc"


class BridgeStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


# ``DestChainId`` column of the Bridge tab.
DESTINATION_CHAIN_IDS: dict[int, Chain] = {
    0: Chain.SHEET,
    1: Chain.SOLANA,
    2: Chain.BSC,
}


def is_valid_recipient(chain: Chain, address: str) -> bool:
    """Check a recipient address against the destination chain's format."""
    if not address:
        return False
    if chain in (Chain.SHEET, Chain.BSC):
        return is_address(address)
    try:
        return len(base58.b58decode(address)) == SOLANA_PUBKEY_LENGTH
    except ValueError:
        return False


def normalize_recipient(chain: Chain, address: str) -> str:
    # Solana keys are case-sensitive base58.
    return address.lower() if chain in (Chain.SHEET, Chain.BSC) else address


@dataclass(frozen=True)
class BridgeEventRecord:
    """A lock observed on ``from_chain`` awaiting payout on ``to_chain``."""

    from_chain: Chain
    from_address: str
    from_amount: str
    to_chain: Chain
    to_address: str
    to_amount: str
    signature: str
    status: BridgeStatus = BridgeStatus.PENDING

    @property
    def route(self) -> tuple[Chain, Chain]:
        return self.from_chain, self.to_chain

    def to_columns(self) -> dict[str, Any]:
        return {
            "from_chain": self.from_chain.value,
            "from_address": self.from_address,
            "from_amount": self.from_amount,
            "to_chain": self.to_chain.value,
            "to_address": self.to_address,
            "to_amount": self.to_amount,
            "signature": self.signature,
            "status": self.status.value,
        }
