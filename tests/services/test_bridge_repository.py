"""Durable bridge event queue on ``bridge_events``."""

from sheetchain.services.bridge.records import BridgeEventRecord, BridgeStatus, Chain
from sheetchain.services.bridge.repository import ERROR_MESSAGE_LIMIT, BridgeEventRepository
from tests.conftest import ALICE, BOB

SOLANA_SENDER = "So11111111111111111111111111111111111111112"


def _record(signature: str, amount: str = "10", to_address: str = ALICE) -> BridgeEventRecord:
    return BridgeEventRecord(
        from_chain=Chain.SOLANA,
        from_address=SOLANA_SENDER,
        from_amount=amount,
        to_chain=Chain.SHEET,
        to_address=to_address,
        to_amount=amount,
        signature=signature,
    )


def test_insert_is_idempotent_by_signature(repository: BridgeEventRepository) -> None:
    assert repository.insert_pending(_record("sig-1"))
    assert not repository.insert_pending(_record("sig-1", amount="99"))
    (event,) = repository.list_pending()
    assert event.signature == "sig-1"
    assert event.to_amount == "10"


def test_insert_is_idempotent_by_route(repository: BridgeEventRepository) -> None:
    assert repository.insert_pending(_record("sig-1"))
    assert not repository.insert_pending(_record("sig-2"))
    assert len(repository.list_pending()) == 1


def test_pending_events_oldest_first(repository: BridgeEventRepository) -> None:
    for index in range(3):
        repository.insert_pending(_record(f"sig-{index}", amount=str(index + 1)))

    pending = repository.list_pending()
    assert [event.signature for event in pending] == ["sig-0", "sig-1", "sig-2"]
    assert len(repository.list_pending(limit=2)) == 2
    assert pending[0].status == BridgeStatus.PENDING.value


def test_transitions_only_leave_pending(repository: BridgeEventRepository) -> None:
    repository.insert_pending(_record("sig-1"))
    event_id = repository.list_pending()[0].id

    assert repository.mark_processed(event_id, "0xsettled")
    assert not repository.mark_failed(event_id, "late failure")
    assert not repository.mark_processed(event_id, "0xagain")

    event = repository.get(event_id)
    assert event.status == BridgeStatus.PROCESSED.value
    assert event.settlement_tx == "0xsettled"
    assert event.error is None


def test_failure_and_resubmit(repository: BridgeEventRepository) -> None:
    repository.insert_pending(_record("sig-1"))
    event_id = repository.list_pending()[0].id

    assert not repository.resubmit(event_id)
    assert repository.mark_failed(event_id, "x" * (ERROR_MESSAGE_LIMIT + 50))
    failed = repository.get(event_id)
    assert failed.status == BridgeStatus.FAILED.value
    assert len(failed.error) == ERROR_MESSAGE_LIMIT
    assert repository.list_pending() == []

    assert repository.resubmit(event_id)
    assert [event.id for event in repository.list_pending()] == [event_id]


def test_list_events_and_stats(repository: BridgeEventRepository) -> None:
    repository.insert_pending(_record("sig-1"))
    repository.insert_pending(_record("sig-2", to_address=BOB))
    first, second = repository.list_pending()
    repository.mark_processed(first.id, "0x01")

    assert [e.id for e in repository.list_events()] == [second.id, first.id]
    processed = repository.list_events(BridgeStatus.PROCESSED)
    assert [e.id for e in processed] == [first.id]
    assert repository.list_events(limit=1, offset=1)[0].id == first.id
    assert repository.stats() == {
        "total": 2,
        "pending": 1,
        "processed": 1,
        "failed": 0,
        "routes": {"solana->sheet": 2},
    }
