"""Process-local tabular store for development and tests."""

from __future__ import annotations

import threading
from collections.abc import Sequence

from sheetchain.store.a1 import merge_row, parse_range, slice_row


class MemoryTabularStore:
    """Each call is atomic; nothing spans calls, like the remote backends."""

    def __init__(self) -> None:
        self._tables: dict[str, list[list[str]]] = {}
        self._lock = threading.Lock()

    def read_range(self, range_spec: str) -> list[list[str]]:
        cell_range = parse_range(range_spec)
        with self._lock:
            rows = self._tables.get(cell_range.table, [])
            last = len(rows) if cell_range.last_row is None else min(len(rows), cell_range.last_row)
            selected = [
                slice_row(rows[index - 1], cell_range)
                for index in range(cell_range.first_row, last + 1)
            ]
        while selected and not selected[-1]:
            selected.pop()
        return selected

    def append_row(self, table: str, row: Sequence[str]) -> None:
        with self._lock:
            self._tables.setdefault(table, []).append([str(value) for value in row])

    def update_range(self, range_spec: str, rows: Sequence[Sequence[str]]) -> None:
        cell_range = parse_range(range_spec)
        with self._lock:
            table = self._tables.setdefault(cell_range.table, [])
            for offset, values in enumerate(rows):
                row_number = cell_range.first_row + offset
                while len(table) < row_number:
                    table.append([])
                table[row_number - 1] = merge_row(
                    table[row_number - 1], cell_range, [str(value) for value in values]
                )

    def ensure_table(self, table: str, headers: Sequence[str]) -> None:
        with self._lock:
            rows = self._tables.setdefault(table, [])
            if not rows:
                rows.append(list(headers))

    def close(self) -> None:
        return None
