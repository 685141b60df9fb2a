"""A1-notation range parsing for the tabular store (``Balances!A2:C2``)."""

from __future__ import annotations

import re
from dataclasses import dataclass

from sheetchain.core.errors import ValidationError

_RANGE_RE = re.compile(
    r"^(?P<table>[^!]+)!(?P<c1>[A-Z]+)(?P<r1>\d+)?(?::(?P<c2>[A-Z]+)(?P<r2>\d+)?)?$"
)


@dataclass(frozen=True)
class CellRange:
    """Parsed range. Columns are 0-based, rows 1-based and inclusive."""

    table: str
    first_column: int
    last_column: int
    first_row: int
    last_row: int | None

    @property
    def width(self) -> int:
        return self.last_column - self.first_column + 1


def column_index(letters: str) -> int:
    """``A`` → 0, ``Z`` → 25, ``AA`` → 26."""
    index = 0
    for char in letters:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def column_letter(index: int) -> str:
    """0 → ``A``; inverse of :func:`column_index`."""
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def parse_range(spec: str) -> CellRange:
    match = _RANGE_RE.match(spec.strip())
    if match is None:
        raise ValidationError(f"Invalid range: {spec!r}")
    first_column = column_index(match["c1"])
    last_column = column_index(match["c2"]) if match["c2"] else first_column
    first_row = int(match["r1"]) if match["r1"] else 1
    if match["c2"]:
        last_row = int(match["r2"]) if match["r2"] else None
    else:
        last_row = first_row if match["r1"] else None
    if last_column < first_column or (last_row is not None and last_row < first_row):
        raise ValidationError(f"Inverted range: {spec!r}")
    return CellRange(match["table"], first_column, last_column, first_row, last_row)


def full_columns(table: str, width: int) -> str:
    """Range covering every row of the first ``width`` columns."""
    return f"{table}!A:{column_letter(width - 1)}"


def row_range(table: str, row_number: int, width: int) -> str:
    """Range covering a single row of the first ``width`` columns."""
    return f"{table}!A{row_number}:{column_letter(width - 1)}{row_number}"


def slice_row(row: list[str], cell_range: CellRange) -> list[str]:
    """Cut a stored row down to the range's columns, trimming trailing blanks."""
    cells = list(row[cell_range.first_column : cell_range.last_column + 1])
    while cells and cells[-1] == "":
        cells.pop()
    return cells


def merge_row(existing: list[str], cell_range: CellRange, values: list[str]) -> list[str]:
    """Write ``values`` into ``existing`` starting at the range's first column."""
    merged = list(existing)
    end = cell_range.first_column + min(len(values), cell_range.width)
    if len(merged) < end:
        merged.extend([""] * (end - len(merged)))
    for offset, value in enumerate(values[: cell_range.width]):
        merged[cell_range.first_column + offset] = value
    return merged
