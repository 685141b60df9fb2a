"""Address validation and normalization."""

from __future__ import annotations

import re

from sheetchain.core.errors import ValidationError

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")

ZERO_ADDRESS = "0x" + "0" * 40


def is_address(value: object) -> bool:
    """Return True for a 0x-prefixed 20-byte hex string (any case)."""
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def normalize_address(value: object, name: str = "address") -> str:
    """Return the lower-case form of an address or raise ValidationError."""
    if not is_address(value):
        raise ValidationError(f"Invalid {name}: {value!r}")
    return str(value).lower()


def validate_hex(value: object, name: str = "value") -> str:
    """Return the hex string unchanged or raise ValidationError."""
    if not isinstance(value, str) or not _HEX_RE.match(value):
        raise ValidationError(f"Invalid hex string for {name}")
    return value


def parse_quantity(value: object, name: str = "value") -> int:
    """Parse a JSON-RPC quantity given as hex string, decimal string or int."""
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {name}: {value!r}")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = int(value, 16) if value.lower().startswith("0x") else int(value)
        except ValueError as exc:
            raise ValidationError(f"Invalid {name}: {value!r}") from exc
    else:
        raise ValidationError(f"Invalid {name}: {value!r}")
    if parsed < 0:
        raise ValidationError(f"{name} cannot be negative")
    return parsed
