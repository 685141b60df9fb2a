"""Bridge queue inspection and manual resubmission."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from sheetchain.api.v1.dependencies import BridgeRepositoryDep
from sheetchain.models import BridgeEvent
from sheetchain.services.bridge.records import BridgeStatus

router = APIRouter(prefix="/bridge", tags=["bridge"])


def _serialize_event(event: BridgeEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "fromChain": event.from_chain,
        "fromAddress": event.from_address,
        "fromAmount": event.from_amount,
        "toChain": event.to_chain,
        "toAddress": event.to_address,
        "toAmount": event.to_amount,
        "signature": event.signature,
        "status": event.status,
        "settlementTx": event.settlement_tx,
        "error": event.error,
        "createdAt": event.created_at.isoformat() if event.created_at else None,
        "updatedAt": event.updated_at.isoformat() if event.updated_at else None,
    }


@router.get("/stats")
async def get_bridge_stats(repository: BridgeRepositoryDep) -> dict[str, Any]:
    """Return queue counters by status and by route."""
    return await run_in_threadpool(repository.stats)


@router.get("/events")
async def list_bridge_events(
    repository: BridgeRepositoryDep,
    status_filter: BridgeStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> list[dict[str, Any]]:
    """List bridge events, newest first, optionally filtered by status."""
    events = await run_in_threadpool(repository.list_events, status_filter, limit, offset)
    return [_serialize_event(event) for event in events]


@router.post("/events/{event_id}/resubmit")
async def resubmit_bridge_event(
    event_id: int, repository: BridgeRepositoryDep
) -> dict[str, Any]:
    """Move a failed event back to pending so the settlement worker retries it.

    Raises:
        HTTPException: 404 for an unknown event, 409 if the event is not failed
    """
    event = await run_in_threadpool(repository.get, event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bridge event not found")
    if not await run_in_threadpool(repository.resubmit, event_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Bridge event is {event.status}, only failed events can be resubmitted",
        )
    refreshed = await run_in_threadpool(repository.get, event_id)
    return _serialize_event(refreshed or event)
