"""Claim and bridge queue REST endpoints."""

from fastapi import status
from fastapi.testclient import TestClient

from sheetchain.services.bridge.records import BridgeEventRecord, Chain
from sheetchain.services.bridge.repository import BridgeEventRepository
from sheetchain.services.rpc import RpcNode
from tests.conftest import ALICE, BOB


def _record(signature: str, to_address: str = ALICE) -> BridgeEventRecord:
    return BridgeEventRecord(
        from_chain=Chain.BSC,
        from_address=BOB,
        from_amount="5",
        to_chain=Chain.SHEET,
        to_address=to_address,
        to_amount="5",
        signature=signature,
    )


def test_claim_stats(client: TestClient, node: RpcNode) -> None:
    node.claims.claim(ALICE)
    r = client.get("/api/v1/claims/stats")
    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert data["completedClaims"] == 1
    assert data["remainingClaims"] == 2


def test_claims_for_address(client: TestClient, node: RpcNode) -> None:
    node.claims.claim(ALICE)
    data = client.get(f"/api/v1/claims/{ALICE}").json()
    assert data["hasClaimed"] is True
    assert len(data["claims"]) == 1
    assert client.get(f"/api/v1/claims/{BOB}").json()["hasClaimed"] is False


def test_claims_for_bad_address(client: TestClient) -> None:
    r = client.get("/api/v1/claims/0x1234")
    assert r.status_code == status.HTTP_400_BAD_REQUEST


def test_bridge_stats_and_events(client: TestClient, repository: BridgeEventRepository) -> None:
    repository.insert_pending(_record("0xaa:0"))
    repository.insert_pending(_record("0xbb:0", BOB))
    failed_id = repository.list_pending()[1].id
    repository.mark_failed(failed_id, "boom")

    stats = client.get("/api/v1/bridge/stats").json()
    assert stats["total"] == 2
    assert stats["pending"] == 1
    assert stats["failed"] == 1
    assert stats["routes"] == {"bsc->sheet": 2}

    events = client.get("/api/v1/bridge/events", params={"status": "failed"}).json()
    assert [event["id"] for event in events] == [failed_id]
    assert events[0]["error"] == "boom"
    assert len(client.get("/api/v1/bridge/events").json()) == 2


def test_resubmit(client: TestClient, repository: BridgeEventRepository) -> None:
    repository.insert_pending(_record("0xcc:0"))
    event_id = repository.list_pending()[0].id

    conflict = client.post(f"/api/v1/bridge/events/{event_id}/resubmit")
    assert conflict.status_code == status.HTTP_409_CONFLICT

    repository.mark_failed(event_id, "rpc down")
    r = client.post(f"/api/v1/bridge/events/{event_id}/resubmit")
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["status"] == "pending"

    missing = client.post("/api/v1/bridge/events/999999/resubmit")
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_transactions_for_address(client: TestClient, node: RpcNode) -> None:
    node.processor.credit(ALICE, 50)
    sent = node.processor.process_transaction(ALICE, BOB, 20)

    data = client.get(f"/api/v1/transactions/{BOB}").json()
    assert data["address"] == BOB
    assert data["count"] == 1
    assert data["transactions"][0]["hash"] == sent.hash
    assert client.get(f"/api/v1/transactions/{ALICE}").json()["count"] == 2
    r = client.get("/api/v1/transactions/0x123")
    assert r.status_code == status.HTTP_400_BAD_REQUEST
