"""Shared shape for tabular adapters (delimited text and spreadsheets)."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from ...models import Institution
from ..utils import cell_text

HEADER_SCAN_ROWS: int = 10
HEADER_MIN_CELLS: int = 3


@dataclass(frozen=True, slots=True)
class RawTable:
    """Header row plus header-keyed records, as found in the file."""

    institution: Institution
    headers: tuple[str, ...]
    records: list[dict[str, Any]] = field(default_factory=list)
    header_row_index: int = 0
    card_number: str | None = None


def locate_header_row(rows: Iterable[Sequence[Any]]) -> int | None:
    """Index of the first row with at least three non-empty cells.

    Only the first :data:`HEADER_SCAN_ROWS` rows are considered, which skips
    the banner and account-metadata lines institutions put above the table.
    """

    for index, row in enumerate(rows):
        if index >= HEADER_SCAN_ROWS:
            break
        if sum(1 for cell in row if cell_text(cell)) >= HEADER_MIN_CELLS:
            return index
    return None


def rows_to_records(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> list[dict[str, Any]]:
    """Zip each row with ``headers``; tolerate short/long rows; drop blank rows.

    Cells under an empty header are ignored. When a header repeats, the first
    column keeps the name.
    """

    records: list[dict[str, Any]] = []
    for row in rows:
        if not any(cell_text(cell) for cell in row):
            continue
        record: dict[str, Any] = {}
        for header, cell in zip(headers, row, strict=False):
            if header and header not in record:
                record[header] = cell
        for header in headers:
            if header and header not in record:
                record[header] = ""
        records.append(record)
    return records


__all__ = [
    "HEADER_MIN_CELLS",
    "HEADER_SCAN_ROWS",
    "RawTable",
    "locate_header_row",
    "rows_to_records",
]
