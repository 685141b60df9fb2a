"""Per-address transaction history."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, status
from starlette.concurrency import run_in_threadpool

from sheetchain.api.v1.dependencies import NodeDep
from sheetchain.core.errors import ValidationError
from sheetchain.utils.address import normalize_address

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get("/{address}")
async def get_transactions_for_address(node: NodeDep, address: str) -> dict[str, Any]:
    """Return transactions sent or received by ``address``, oldest first."""
    try:
        normalized = normalize_address(address)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    records = await run_in_threadpool(node.processor.transactions_by_address, normalized)
    return {
        "address": normalized,
        "count": len(records),
        "transactions": [record.to_rpc() for record in records],
    }
