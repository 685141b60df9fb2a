"""Decoding of signed raw transactions and ``eth_sendTransaction`` call objects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import rlp
from eth_account import Account
from hexbytes import HexBytes
from rlp.exceptions import DecodingError

from sheetchain.core.errors import ValidationError
from sheetchain.utils.address import normalize_address, parse_quantity, validate_hex

LEGACY_TYPE = 0
ACCESS_LIST_TYPE = 1
DYNAMIC_FEE_TYPE = 2


@dataclass(frozen=True)
class DecodedTransaction:
    """Transfer fields common to every transaction envelope."""

    sender: str
    to: str | None
    value: int
    nonce: int | None
    gas_limit: int
    gas_price: int
    data: str
    chain_id: int | None = None
    tx_type: int = LEGACY_TYPE


def _int(field: bytes) -> int:
    return int.from_bytes(field, "big")


def _address(field: bytes) -> str | None:
    if not field:
        return None
    if len(field) != 20:
        raise ValidationError("Recipient is not a 20-byte address")
    return "0x" + field.hex()


def _fields(raw: bytes) -> dict[str, Any]:
    """Split the signed envelope into its payload fields."""
    if raw[0] >= 0xC0:
        nonce, gas_price, gas, to, value, data, v, _r, _s = rlp.decode(raw)
        v_int = _int(v)
        chain_id = (v_int - 35) // 2 if v_int >= 35 else None
        return {
            "tx_type": LEGACY_TYPE,
            "chain_id": chain_id,
            "nonce": _int(nonce),
            "gas_price": _int(gas_price),
            "gas": _int(gas),
            "to": to,
            "value": _int(value),
            "data": data,
        }
    if raw[0] == ACCESS_LIST_TYPE:
        chain_id, nonce, gas_price, gas, to, value, data, _access, _y, _r, _s = rlp.decode(raw[1:])
    elif raw[0] == DYNAMIC_FEE_TYPE:
        # maxFeePerGas stands in for the gas price.
        chain_id, nonce, _tip, gas_price, gas, to, value, data, _access, _y, _r, _s = rlp.decode(
            raw[1:]
        )
    else:
        raise ValidationError(f"Unsupported transaction type {raw[0]:#x}")
    return {
        "tx_type": raw[0],
        "chain_id": _int(chain_id),
        "nonce": _int(nonce),
        "gas_price": _int(gas_price),
        "gas": _int(gas),
        "to": to,
        "value": _int(value),
        "data": data,
    }


def decode_raw_transaction(raw_transaction: str) -> DecodedTransaction:
    """Decode a signed transaction and recover its sender.

    Raises:
        ValidationError: The payload is not valid hex, not a well-formed
            envelope, or carries an unrecoverable signature.
    """
    validate_hex(raw_transaction, "raw transaction")
    raw = bytes(HexBytes(raw_transaction))
    if not raw:
        raise ValidationError("Empty raw transaction")
    try:
        fields = _fields(raw)
    except (DecodingError, ValueError, TypeError) as exc:
        raise ValidationError(f"Failed to parse raw transaction: {exc}") from exc
    try:
        sender = Account.recover_transaction(raw)
    except Exception as exc:  # eth-account raises several unrelated types
        raise ValidationError(f"Failed to recover transaction sender: {exc}") from exc

    return DecodedTransaction(
        sender=sender.lower(),
        to=_address(fields["to"]),
        value=fields["value"],
        nonce=fields["nonce"],
        gas_limit=fields["gas"],
        gas_price=fields["gas_price"],
        data="0x" + bytes(fields["data"]).hex(),
        chain_id=fields["chain_id"],
        tx_type=fields["tx_type"],
    )


def from_call_object(call: object, *, default_gas: int = 21_000) -> DecodedTransaction:
    """Normalize an ``eth_sendTransaction`` object; ``from`` is required."""
    if not isinstance(call, dict):
        raise ValidationError("Transaction object must be a JSON object")
    if not call.get("from"):
        raise ValidationError("From address is required")
    to = call.get("to")
    data = call.get("data") or call.get("input") or "0x"
    validate_hex(data, "data")
    nonce = call.get("nonce")
    gas_price = call.get("gasPrice", call.get("maxFeePerGas"))
    chain_id = call.get("chainId")
    return DecodedTransaction(
        sender=normalize_address(call["from"], "from address"),
        to=normalize_address(to, "to address") if to else None,
        value=parse_quantity(call.get("value"), "value"),
        nonce=None if nonce is None else parse_quantity(nonce, "nonce"),
        gas_limit=parse_quantity(call["gas"], "gas") if call.get("gas") else default_gas,
        gas_price=parse_quantity(gas_price, "gasPrice"),
        data=data.lower(),
        chain_id=None if chain_id is None else parse_quantity(chain_id, "chainId"),
    )
