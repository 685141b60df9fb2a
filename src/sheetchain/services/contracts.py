"""Simulated contracts answering ``eth_call``.

Nothing is executed: each supported (contract address, selector) pair maps to
a :class:`SimulatedCall` member and every member has exactly one handler.
Unknown pairs answer with empty bytes, like a contract without that function.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from eth_utils import function_signature_to_4byte_selector

from sheetchain.services.claims import ClaimService
from sheetchain.utils.abi import (
    EMPTY_RESULT,
    SELECTOR_HEX_LENGTH,
    decode_address_argument,
    encode_address,
    encode_bool,
    encode_uint,
    selector_of,
)
from sheetchain.utils.address import normalize_address, validate_hex

logger = logging.getLogger(__name__)


class SimulatedCall(Enum):
    """Functions the simulated contracts implement, by canonical signature."""

    AIRDROP_AMOUNT = "AIRDROP_AMOUNT()"
    MAX_CLAIMANTS = "MAX_CLAIMANTS()"
    OWNER = "owner()"
    TOTAL_CLAIMANTS = "totalClaimants()"
    HAS_CLAIMED = "hasClaimed(address)"
    CLAIM = "claimAirdropEthWarsaw2025()"
    BRIDGE_OUT = "bridgeOut(uint256,string)"

    @property
    def selector(self) -> str:
        return "0x" + function_signature_to_4byte_selector(self.value).hex()


AIRDROP_CALLS = (
    SimulatedCall.AIRDROP_AMOUNT,
    SimulatedCall.MAX_CLAIMANTS,
    SimulatedCall.OWNER,
    SimulatedCall.TOTAL_CLAIMANTS,
    SimulatedCall.HAS_CLAIMED,
    SimulatedCall.CLAIM,
)
BRIDGE_CALLS = (SimulatedCall.BRIDGE_OUT,)


class ContractSimulator:
    """Static dispatch table for the airdrop and bridge contracts."""

    def __init__(
        self,
        claims: ClaimService,
        *,
        airdrop_address: str,
        bridge_address: str,
        owner_address: str,
    ) -> None:
        self.claims = claims
        self.airdrop_address = normalize_address(airdrop_address, "airdrop address")
        self.bridge_address = normalize_address(bridge_address, "bridge address")
        self.owner_address = normalize_address(owner_address, "owner address")

        self._table: dict[tuple[str, str], SimulatedCall] = {}
        for call in AIRDROP_CALLS:
            self._table[(self.airdrop_address, call.selector)] = call
        for call in BRIDGE_CALLS:
            self._table[(self.bridge_address, call.selector)] = call

        self._handlers: dict[SimulatedCall, Callable[[str], str]] = {
            SimulatedCall.AIRDROP_AMOUNT: lambda _data: encode_uint(self.claims.claim_amount),
            SimulatedCall.MAX_CLAIMANTS: lambda _data: encode_uint(self.claims.max_claimants),
            SimulatedCall.OWNER: lambda _data: encode_address(self.owner_address),
            SimulatedCall.TOTAL_CLAIMANTS: lambda _data: encode_uint(
                self.claims.completed_count()
            ),
            SimulatedCall.HAS_CLAIMED: self._has_claimed,
            SimulatedCall.CLAIM: lambda _data: encode_bool(True),
            SimulatedCall.BRIDGE_OUT: lambda _data: encode_bool(True),
        }
        unhandled = set(SimulatedCall) - set(self._handlers)
        if unhandled:
            names = ", ".join(sorted(call.name for call in unhandled))
            raise RuntimeError(f"Simulated calls without handlers: {names}")

    def _has_claimed(self, data: str) -> str:
        return encode_bool(self.claims.has_claimed(decode_address_argument(data)))

    def resolve(self, to: str | None, data: str | None) -> SimulatedCall | None:
        if not to or not data or len(data) < 2 + SELECTOR_HEX_LENGTH:
            return None
        return self._table.get((normalize_address(to, "to address"), selector_of(data)))

    def call(self, to: str | None, data: str | None) -> str:
        """Answer an ``eth_call``; unknown pairs give ``0x``."""
        if data:
            validate_hex(data, "data")
        simulated = self.resolve(to, data)
        if simulated is None:
            logger.debug("No simulated contract for %s %s", to, (data or "")[:10])
            return EMPTY_RESULT
        return self._handlers[simulated](data or "")

    def is_claim(self, data: str | None) -> bool:
        """True when call data invokes the airdrop claim, whatever the target."""
        if not data or len(data) < 2 + SELECTOR_HEX_LENGTH:
            return False
        return selector_of(data) == SimulatedCall.CLAIM.selector

    def is_bridge_out(self, to: str | None, data: str | None) -> bool:
        return self.resolve(to, data) is SimulatedCall.BRIDGE_OUT
