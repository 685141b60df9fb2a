"""32-byte ABI word helpers for the contract simulation layer."""

from __future__ import annotations

from sheetchain.core.errors import ValidationError
from sheetchain.utils.address import validate_hex

WORD_HEX_LENGTH = 64
SELECTOR_HEX_LENGTH = 8
EMPTY_RESULT = "0x"


def encode_uint(value: int) -> str:
    """Encode an unsigned integer as a single 0x-prefixed ABI word."""
    if value < 0:
        raise ValidationError("ABI uint cannot be negative")
    return "0x" + format(value, "064x")


def encode_bool(value: bool) -> str:
    return encode_uint(1 if value else 0)


def encode_address(address: str) -> str:
    """Left-pad a 20-byte address into an ABI word."""
    body = validate_hex(address, "address")[2:].lower()
    if len(body) != 40:
        raise ValidationError(f"Invalid address: {address!r}")
    return "0x" + body.rjust(WORD_HEX_LENGTH, "0")


def selector_of(data: str) -> str:
    """Return the lower-case 0x-prefixed 4-byte selector of call data."""
    validate_hex(data, "data")
    if len(data) < 2 + SELECTOR_HEX_LENGTH:
        raise ValidationError("Call data is shorter than a function selector")
    return data[: 2 + SELECTOR_HEX_LENGTH].lower()


def argument_word(data: str, index: int) -> str:
    """Return the hex body of the ``index``-th argument word after the selector."""
    validate_hex(data, "data")
    start = 2 + SELECTOR_HEX_LENGTH + index * WORD_HEX_LENGTH
    word = data[start : start + WORD_HEX_LENGTH]
    if len(word) != WORD_HEX_LENGTH:
        raise ValidationError(f"Call data is missing argument {index}")
    return word


def decode_address_argument(data: str, index: int = 0) -> str:
    """Decode an address argument word into a lower-case 0x address."""
    word = argument_word(data, index)
    if int(word[:24], 16) != 0:
        raise ValidationError("Address argument has dirty high bytes")
    return "0x" + word[24:].lower()
