"""Durable pending-event store on the ``bridge_events`` table.

Capture adapters are the only inserters; the settlement worker (and the manual
resubmit endpoint) are the only writers of status transitions. Each method
runs in its own short session so it can be called through ``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sheetchain.models import BridgeEvent
from sheetchain.services.bridge.records import BridgeEventRecord, BridgeStatus

logger = logging.getLogger(__name__)

ERROR_MESSAGE_LIMIT = 2000


class BridgeEventRepository:
    """Idempotent inserts and guarded status transitions for bridge events."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def insert_pending(self, record: BridgeEventRecord) -> bool:
        """Store a new pending event.

        Returns:
            True when a row was inserted, False when the signature or the
            route tuple was already known.
        """
        with self._session_factory() as session:
            known = session.execute(
                select(BridgeEvent.id).where(BridgeEvent.signature == record.signature).limit(1)
            ).first()
            if known is not None:
                logger.debug("Bridge event already recorded for signature %s", record.signature)
                return False

            columns = record.to_columns()
            columns["status"] = BridgeStatus.PENDING.value
            session.add(BridgeEvent(**columns))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.debug("Bridge event duplicate ignored: %s", record.signature)
                return False

        logger.info(
            "Bridge event recorded: %s %s -> %s %s (%s)",
            record.from_chain.value,
            record.from_address,
            record.to_chain.value,
            record.to_address,
            record.signature,
        )
        return True

    def get(self, event_id: int) -> BridgeEvent | None:
        with self._session_factory() as session:
            return session.get(BridgeEvent, event_id)

    def list_pending(self, limit: int | None = None) -> list[BridgeEvent]:
        """Pending events, oldest first."""
        query = (
            select(BridgeEvent)
            .where(BridgeEvent.status == BridgeStatus.PENDING.value)
            .order_by(BridgeEvent.created_at, BridgeEvent.id)
        )
        if limit is not None:
            query = query.limit(limit)
        with self._session_factory() as session:
            return list(session.execute(query).scalars())

    def list_events(
        self, status: BridgeStatus | None = None, limit: int = 50, offset: int = 0
    ) -> list[BridgeEvent]:
        query = select(BridgeEvent).order_by(BridgeEvent.id.desc()).limit(limit).offset(offset)
        if status is not None:
            query = query.where(BridgeEvent.status == status.value)
        with self._session_factory() as session:
            return list(session.execute(query).scalars())

    def _transition(
        self, event_id: int, source: BridgeStatus, target: BridgeStatus, **values: Any
    ) -> bool:
        with self._session_factory() as session:
            result = session.execute(
                update(BridgeEvent)
                .where(BridgeEvent.id == event_id)
                .where(BridgeEvent.status == source.value)
                .values(status=target.value, updated_at=func.now(), **values)
            )
            session.commit()
        return result.rowcount == 1

    def mark_processed(self, event_id: int, settlement_tx: str | None) -> bool:
        return self._transition(
            event_id,
            BridgeStatus.PENDING,
            BridgeStatus.PROCESSED,
            settlement_tx=settlement_tx,
            error=None,
        )

    def mark_failed(self, event_id: int, error: str) -> bool:
        return self._transition(
            event_id, BridgeStatus.PENDING, BridgeStatus.FAILED, error=error[:ERROR_MESSAGE_LIMIT]
        )

    def resubmit(self, event_id: int) -> bool:
        """Move a failed event back to pending for another settlement attempt."""
        moved = self._transition(event_id, BridgeStatus.FAILED, BridgeStatus.PENDING)
        if moved:
            logger.info("Bridge event %d resubmitted", event_id)
        return moved

    def stats(self) -> dict[str, Any]:
        with self._session_factory() as session:
            by_status = dict(
                session.execute(
                    select(BridgeEvent.status, func.count()).group_by(BridgeEvent.status)
                ).all()
            )
            by_route = session.execute(
                select(BridgeEvent.from_chain, BridgeEvent.to_chain, func.count()).group_by(
                    BridgeEvent.from_chain, BridgeEvent.to_chain
                )
            ).all()
        return {
            "total": sum(by_status.values()),
            "pending": by_status.get(BridgeStatus.PENDING.value, 0),
            "processed": by_status.get(BridgeStatus.PROCESSED.value, 0),
            "failed": by_status.get(BridgeStatus.FAILED.value, 0),
            "routes": {f"{source}->{target}": count for source, target, count in by_route},
        }
