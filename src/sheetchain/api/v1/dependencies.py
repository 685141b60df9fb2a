"""Shared API dependencies for the RPC node and the bridge queue."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from sheetchain.db.session import SessionLocal
from sheetchain.services.bridge.repository import BridgeEventRepository
from sheetchain.services.rpc import RpcNode


def get_node(request: Request) -> RpcNode:
    """Return the node built at startup.

    Raises:
        HTTPException: 503 while the tabular store is still being initialized
    """
    node: RpcNode | None = getattr(request.app.state, "node", None)
    if node is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Node not initialized",
        )
    return node


def get_bridge_repository() -> BridgeEventRepository:
    """Repository over the application database."""
    return BridgeEventRepository(SessionLocal)


# Type aliases for dependency injection
NodeDep = Annotated[RpcNode, Depends(get_node)]
BridgeRepositoryDep = Annotated[BridgeEventRepository, Depends(get_bridge_repository)]
