"""SQL-backed tabular store: spreadsheet rows kept in the ``sheet_rows`` table."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from sheetchain.core.errors import StoreUnavailable
from sheetchain.models import SheetRow
from sheetchain.store.a1 import merge_row, parse_range, slice_row

logger = logging.getLogger(__name__)

APPEND_ATTEMPTS = 3


def _load(cells: str) -> list[str]:
    try:
        values = json.loads(cells or "[]")
    except ValueError:
        logger.warning("Discarding undecodable sheet row payload")
        return []
    return [str(value) for value in values] if isinstance(values, list) else []


def _dump(cells: Sequence[str]) -> str:
    return json.dumps([str(value) for value in cells])


class SqlTabularStore:
    """Tabular store over SQLAlchemy.

    Every method runs in its own session and commits before returning, so the
    store offers the same per-call atomicity as the Google backend and nothing
    more. Appends retry when a concurrent writer claims the same row number.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def read_range(self, range_spec: str) -> list[list[str]]:
        cell_range = parse_range(range_spec)
        query = (
            select(SheetRow.row_number, SheetRow.cells)
            .where(SheetRow.sheet == cell_range.table)
            .where(SheetRow.row_number >= cell_range.first_row)
            .order_by(SheetRow.row_number)
        )
        if cell_range.last_row is not None:
            query = query.where(SheetRow.row_number <= cell_range.last_row)
        try:
            with self._session_factory() as session:
                stored = {number: _load(cells) for number, cells in session.execute(query)}
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Failed to read range {range_spec}: {exc}") from exc

        if not stored:
            return []
        rows = [
            slice_row(stored.get(number, []), cell_range)
            for number in range(cell_range.first_row, max(stored) + 1)
        ]
        while rows and not rows[-1]:
            rows.pop()
        return rows

    def append_row(self, table: str, row: Sequence[str]) -> None:
        for attempt in range(1, APPEND_ATTEMPTS + 1):
            try:
                with self._session_factory() as session:
                    last = session.execute(
                        select(func.max(SheetRow.row_number)).where(SheetRow.sheet == table)
                    ).scalar()
                    session.add(SheetRow(sheet=table, row_number=(last or 0) + 1, cells=_dump(row)))
                    session.commit()
                return
            except IntegrityError:
                logger.debug("Row number collision appending to %s (attempt %d)", table, attempt)
            except SQLAlchemyError as exc:
                raise StoreUnavailable(f"Failed to append row to {table}: {exc}") from exc
        raise StoreUnavailable(f"Failed to append row to {table}: concurrent writers")

    def update_range(self, range_spec: str, rows: Sequence[Sequence[str]]) -> None:
        cell_range = parse_range(range_spec)
        try:
            with self._session_factory() as session:
                for offset, values in enumerate(rows):
                    row_number = cell_range.first_row + offset
                    record = session.execute(
                        select(SheetRow)
                        .where(SheetRow.sheet == cell_range.table)
                        .where(SheetRow.row_number == row_number)
                    ).scalar_one_or_none()
                    if record is None:
                        record = SheetRow(sheet=cell_range.table, row_number=row_number)
                        session.add(record)
                        existing: list[str] = []
                    else:
                        existing = _load(record.cells)
                    record.cells = _dump(merge_row(existing, cell_range, [str(v) for v in values]))
                session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Failed to update range {range_spec}: {exc}") from exc

    def ensure_table(self, table: str, headers: Sequence[str]) -> None:
        try:
            with self._session_factory() as session:
                header = session.execute(
                    select(SheetRow).where(SheetRow.sheet == table).where(SheetRow.row_number == 1)
                ).scalar_one_or_none()
                if header is None:
                    session.add(SheetRow(sheet=table, row_number=1, cells=_dump(headers)))
                    session.commit()
                    logger.info("Created table: %s", table)
        except IntegrityError:
            logger.info("Table %s already exists", table)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Failed to ensure table {table}: {exc}") from exc

    def close(self) -> None:
        return None
