"""Read-only airdrop claim endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, status
from starlette.concurrency import run_in_threadpool

from sheetchain.api.v1.dependencies import NodeDep
from sheetchain.core.errors import ValidationError
from sheetchain.services.claims import ClaimStatus
from sheetchain.utils.address import normalize_address

router = APIRouter(prefix="/claims", tags=["claims"])


@router.get("/stats")
async def get_claim_stats(node: NodeDep) -> dict[str, Any]:
    """Return claim counters and the remaining capacity of the airdrop."""
    return await run_in_threadpool(node.claims.stats)


@router.get("/{address}")
async def get_claims_for_address(node: NodeDep, address: str) -> dict[str, Any]:
    """Return every claim recorded for ``address``.

    Args:
        node: Running RPC node
        address: EVM address, any casing

    Returns:
        Dictionary with the normalized address, ``hasClaimed`` and the claims

    Raises:
        HTTPException: 400 if ``address`` is not a 20-byte hex address
    """
    try:
        normalized = normalize_address(address)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    claims = await run_in_threadpool(node.claims.claims_by_address, normalized)
    return {
        "address": normalized,
        "hasClaimed": any(claim.status is ClaimStatus.COMPLETED for claim in claims),
        "claims": [claim.to_dict() for claim in claims],
    }
