"""Airdrop claim state machine."""

import pytest

from sheetchain.core.errors import (
    AlreadyClaimed,
    ClaimCapReached,
    ClaimNotFound,
    ClaimNotPending,
    ValidationError,
)
from sheetchain.services.claims import ClaimRecord, ClaimStatus
from sheetchain.services.rpc import RpcNode
from tests.conftest import AIRDROP_ADDRESS, ALICE, BOB, CAROL, CLAIM_AMOUNT


def test_create_then_process(node: RpcNode) -> None:
    claims = node.claims
    pending = claims.create_claim(ALICE)
    assert pending.status is ClaimStatus.PENDING
    assert pending.amount == CLAIM_AMOUNT
    assert not claims.has_claimed(ALICE)

    completed = claims.process_claim(pending.claim_id)

    assert completed.status is ClaimStatus.COMPLETED
    assert completed.block_number == node.processor.latest_block_number()
    assert node.ledger.get_balance(ALICE) == CLAIM_AMOUNT
    credit = node.processor.get_transaction(completed.transaction_hash)
    assert credit.from_address == AIRDROP_ADDRESS
    assert claims.get_claim(pending.claim_id) == completed
    assert claims.has_claimed(ALICE)


def test_process_uses_supplied_transaction_hash(node: RpcNode) -> None:
    pending = node.claims.create_claim(ALICE, 5)
    tx_hash = "0x" + "ab" * 32
    completed = node.claims.process_claim(pending.claim_id, tx_hash)
    assert completed.transaction_hash == tx_hash
    assert node.ledger.get_balance(ALICE) == 5


def test_second_claim_is_rejected(node: RpcNode) -> None:
    node.claims.claim(ALICE)
    with pytest.raises(AlreadyClaimed):
        node.claims.claim(ALICE)
    with pytest.raises(AlreadyClaimed):
        node.claims.create_claim(ALICE)
    assert node.ledger.get_balance(ALICE) == CLAIM_AMOUNT


def test_two_pending_claims_pay_once(node: RpcNode) -> None:
    first = node.claims.create_claim(ALICE)
    second = node.claims.create_claim(ALICE)
    node.claims.process_claim(first.claim_id)
    with pytest.raises(AlreadyClaimed):
        node.claims.process_claim(second.claim_id)
    assert node.ledger.get_balance(ALICE) == CLAIM_AMOUNT


def test_cap_counts_completed_claims(node: RpcNode) -> None:
    for address in (ALICE, BOB, CAROL):
        node.claims.claim(address)
    with pytest.raises(ClaimCapReached):
        node.claims.claim("0x4444444444444444444444444444444444444444")
    assert node.claims.completed_count() == 3


def test_unknown_and_completed_claims(node: RpcNode) -> None:
    with pytest.raises(ClaimNotFound):
        node.claims.process_claim("missing")
    completed = node.claims.claim(ALICE)
    with pytest.raises(ClaimNotPending):
        node.claims.process_claim(completed.claim_id)


@pytest.mark.parametrize("amount", [0, -5])
def test_non_positive_amount_is_rejected(node: RpcNode, amount: int) -> None:
    with pytest.raises(ValidationError):
        node.claims.create_claim(ALICE, amount)


def test_stats(node: RpcNode) -> None:
    node.claims.claim(ALICE)
    node.claims.create_claim(BOB)
    assert node.claims.stats() == {
        "totalClaims": 2,
        "completedClaims": 1,
        "pendingClaims": 1,
        "maxClaimants": 3,
        "remainingClaims": 2,
        "claimAmount": str(CLAIM_AMOUNT),
    }


def test_claims_by_address_and_dict(node: RpcNode) -> None:
    record = node.claims.claim(ALICE)
    node.claims.claim(BOB)
    assert node.claims.claims_by_address(ALICE) == [record]
    as_dict = record.to_dict()
    assert as_dict["claimId"] == record.claim_id
    assert as_dict["amount"] == str(CLAIM_AMOUNT)
    assert as_dict["status"] == "completed"


def test_malformed_rows_are_ignored() -> None:
    assert ClaimRecord.from_row(["id", ALICE, "lots", "0", "pending"]) is None
    assert ClaimRecord.from_row(["id", ALICE, "1", "0", "weird"]) is None
