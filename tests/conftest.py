# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STORE_BACKEND"] = "memory"

from sheetchain.api.v1.dependencies import get_bridge_repository  # noqa: E402
from sheetchain.core.settings import Settings  # noqa: E402
from sheetchain.db.session import Base  # noqa: E402
from sheetchain.main import app as fastapi_app  # noqa: E402
from sheetchain.services.bridge.repository import BridgeEventRepository  # noqa: E402
from sheetchain.services.rpc import RpcNode, build_node  # noqa: E402
from sheetchain.store import initialize_store  # noqa: E402
from sheetchain.store.memory import MemoryTabularStore  # noqa: E402
from sheetchain.store.sql import SqlTabularStore  # noqa: E402

TEST_DB_URL = "sqlite://"

ALICE = "0x1111111111111111111111111111111111111111"
BOB = "0x2222222222222222222222222222222222222222"
CAROL = "0x3333333333333333333333333333333333333333"
AIRDROP_ADDRESS = "0x00000000000000000000000000000000000000a1"
BRIDGE_ADDRESS = "0x00000000000000000000000000000000000000b2"
OWNER_ADDRESS = "0x00000000000000000000000000000000000000c3"
CHAIN_ID = 12345
CLAIM_AMOUNT = 10**16


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[Callable[[], Session]]:
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    try:
        yield factory
    finally:
        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def test_settings() -> Settings:
    """Settings with fixed contract addresses and a small claim cap."""
    return Settings(
        store_backend="memory",
        chain_id=CHAIN_ID,
        network_name="SheetChain Test",
        airdrop_contract_address=AIRDROP_ADDRESS,
        bridge_contract_address=BRIDGE_ADDRESS,
        airdrop_owner_address=OWNER_ADDRESS,
        claim_amount_wei=CLAIM_AMOUNT,
        max_claimants=3,
    )


@pytest.fixture()
def store() -> MemoryTabularStore:
    memory = MemoryTabularStore()
    initialize_store(memory)
    return memory


@pytest.fixture()
def sql_store(session_factory: Callable[[], Session]) -> SqlTabularStore:
    return SqlTabularStore(session_factory)


@pytest.fixture()
def node(store: MemoryTabularStore, test_settings: Settings) -> RpcNode:
    return build_node(store, test_settings)


@pytest.fixture()
def fund(node: RpcNode) -> Callable[[str, int], None]:
    """Credit an address on the node's ledger."""

    def _fund(address: str, amount: int) -> None:
        node.processor.credit(address, amount)

    return _fund


@pytest.fixture()
def repository(session_factory: Callable[[], Session]) -> BridgeEventRepository:
    return BridgeEventRepository(session_factory)


@pytest.fixture()
def app(repository: BridgeEventRepository) -> Iterator[FastAPI]:
    fastapi_app.dependency_overrides[get_bridge_repository] = lambda: repository
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.pop(get_bridge_repository, None)


@pytest.fixture()
def client(app: FastAPI, node: RpcNode) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        app.state.node = node
        yield test_client


def rpc(client: TestClient, method: str, *params: object, request_id: int = 1) -> dict:
    """POST one JSON-RPC request and return the decoded response."""
    response = client.post(
        "/", json={"jsonrpc": "2.0", "method": method, "params": list(params), "id": request_id}
    )
    return response.json()
