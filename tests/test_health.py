# tests/test_health.py
from fastapi import status
from fastapi.testclient import TestClient

from sheetchain.services.rpc import RpcNode
from tests.conftest import CHAIN_ID


def test_health_reports_chain(client: TestClient) -> None:
    """Health endpoint reports the chain identity once the node is ready."""
    r = client.get("/health")
    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert data["status"] == "healthy"
    assert "chainId" in data and "networkName" in data


def test_health_while_initializing(client: TestClient) -> None:
    client.app.state.node = None
    r = client.get("/health")
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["status"] == "initializing"


def test_root_lists_rpc_methods(client: TestClient, node: RpcNode) -> None:
    r = client.get("/")
    assert r.status_code == status.HTTP_200_OK
    methods = r.json()["rpcMethods"]
    assert "eth_chainId" in methods
    assert "sheet_createClaim" in methods
    assert node.chain_id == CHAIN_ID
