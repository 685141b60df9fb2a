# src/sheetchain/main.py
"""Main entry point for the SheetChain RPC node."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from sheetchain.api.v1 import bridge_router, claims_router, transactions_router
from sheetchain.core.logging import configure_logging
from sheetchain.core.settings import settings
from sheetchain.db.session import create_tables
from sheetchain.services.rpc import (
    INVALID_REQUEST,
    NOT_INITIALIZED,
    PARSE_ERROR,
    RpcNode,
    build_node,
    rpc_error,
)
from sheetchain.store import build_store, initialize_store

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="EVM-compatible JSON-RPC node backed by a tabular ledger",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(claims_router, prefix="/api/v1")
app.include_router(bridge_router, prefix="/api/v1")
app.include_router(transactions_router, prefix="/api/v1")

app.state.node = None


def _build_node() -> RpcNode:
    settings.validate_store()
    if settings.auto_create_tables:
        create_tables()
    store = build_store(settings)
    initialize_store(store)
    return build_node(store, settings)


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging(settings.log_level)
    node = await asyncio.to_thread(_build_node)
    app.state.node = node
    logger.info(
        "%s ready: chain id %d, store backend %s",
        settings.network_name,
        node.chain_id,
        settings.store_backend,
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    node: RpcNode | None = getattr(app.state, "node", None)
    if node:
        await asyncio.to_thread(node.close)
        app.state.node = None


def _answer(node: RpcNode, payload: Any) -> Any:
    if isinstance(payload, list):
        if not payload:
            return rpc_error(INVALID_REQUEST, "Invalid Request")
        return [node.dispatcher.handle(request) for request in payload]
    return node.dispatcher.handle(payload)


@app.post("/")
async def json_rpc(request: Request) -> JSONResponse:
    """JSON-RPC 2.0 endpoint; accepts single requests and batches."""
    body = await request.body()
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(
            rpc_error(PARSE_ERROR, "Parse error"), status_code=status.HTTP_400_BAD_REQUEST
        )

    node: RpcNode | None = request.app.state.node
    if node is None:
        request_id = payload.get("id") if isinstance(payload, dict) else None
        return JSONResponse(
            rpc_error(NOT_INITIALIZED, "Node not initialized", request_id),
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return JSONResponse(await run_in_threadpool(_answer, node, payload))


@app.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Health check endpoint; reports ``initializing`` until the store is ready."""
    node: RpcNode | None = request.app.state.node
    return {
        "status": "healthy" if node is not None else "initializing",
        "chainId": settings.chain_id,
        "networkName": settings.network_name,
    }


@app.get("/")
async def root(request: Request) -> dict[str, Any]:
    """Root endpoint with basic information about the node."""
    node: RpcNode | None = request.app.state.node
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "chainId": settings.chain_id,
        "networkName": settings.network_name,
        "rpcMethods": node.dispatcher.methods if node is not None else [],
        "docs": "/docs",
    }


def run() -> None:
    import uvicorn

    uvicorn.run(
        "sheetchain.main:app",
        host=settings.rpc_host,
        port=settings.rpc_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
