# src/sheetchain/utils/hash.py
"""Hashing helpers: Keccak for chain-facing identifiers, BLAKE3 for internal ids."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from blake3 import blake3
from eth_utils import keccak


def keccak_hex(data: bytes) -> str:
    """Return the 0x-prefixed Keccak-256 digest of the supplied bytes."""
    return "0x" + keccak(data).hex()


def keccak_text(text: str) -> str:
    """Return the 0x-prefixed Keccak-256 digest of a UTF-8 string."""
    return keccak_hex(text.encode("utf-8"))


def keccak_json(payload: Mapping[str, Any]) -> str:
    """Hash a mapping through its compact JSON form (insertion order preserved)."""
    return keccak_text(json.dumps(payload, separators=(",", ":")))


def blake3_hexdigest(data: bytes) -> str:
    """Return the hexadecimal digest of the supplied data."""
    return blake3(data).hexdigest()
