"""Delimited-text (CSV, TSV) statement adapter.

Exports often start with a banner (bank name, account, card digits, period)
before the real header row. The header is the first of the first ten lines
with at least three non-empty cells; the card's last four digits are looked
for in the lines up to and including it.

The separator is not trusted blindly: every candidate is tried and the one
that exposes a header row earliest wins, with the caller's preference (file
extension, then institution default) breaking ties. A wrong separator can
still cut a data row into three cells (commas inside tab-separated amounts),
but only below the real header.
"""

from __future__ import annotations

import csv
import io

from ...logging_setup import get_logger
from ...models import Institution
from ..errors import StatementFormatError
from ..institutions import decode_bytes, extract_card_number_from_text, get_config
from .tabular import HEADER_SCAN_ROWS, RawTable, locate_header_row, rows_to_records

_logger = get_logger("statement_ledger.ingest.adapters.delimited")

CANDIDATE_DELIMITERS: tuple[str, ...] = (",", "\t", ";")


def _split_line(line: str, delimiter: str) -> list[str]:
    try:
        return next(csv.reader([line], delimiter=delimiter), [])
    except csv.Error:
        return line.split(delimiter)


def choose_delimiter(lines: list[str], preferred: str) -> tuple[str, int] | None:
    """Return ``(delimiter, header_index)`` or ``None`` when no candidate fits."""

    best: tuple[str, int] | None = None
    for delimiter in dict.fromkeys((preferred, *CANDIDATE_DELIMITERS)):
        head = [_split_line(line, delimiter) for line in lines[:HEADER_SCAN_ROWS]]
        index = locate_header_row(head)
        if index is not None and (best is None or index < best[1]):
            best = (delimiter, index)
    return best


def read_delimited(
    content: bytes, institution: Institution, *, delimiter: str | None = None
) -> RawTable:
    """Decode and split a delimited export into a :class:`RawTable`.

    ``delimiter`` is the preferred separator (the institution default when
    omitted); see :func:`choose_delimiter`. Raises :class:`StatementFormatError`
    when the file is empty or no header row can be located.
    """

    config = get_config(institution)
    text = decode_bytes(content, config.encoding)
    if not text.strip():
        raise StatementFormatError("file is empty or unreadable")

    lines = text.splitlines()
    chosen = choose_delimiter(lines, delimiter or config.delimiter)
    if chosen is None:
        raise StatementFormatError(
            f"no header row found in the first {HEADER_SCAN_ROWS} lines "
            f"(need at least 3 non-empty cells)"
        )
    separator, header_index = chosen

    card_number = extract_card_number_from_text(
        "\n".join(lines[: header_index + 1]), institution
    )

    body = io.StringIO("\n".join(lines[header_index:]))
    reader = csv.reader(body, delimiter=separator)
    try:
        headers = tuple(cell.strip() for cell in next(reader))
        rows = [[cell.strip() for cell in row] for row in reader]
    except csv.Error as e:
        raise StatementFormatError(f"malformed delimited text: {e}") from e

    _logger.debug(
        "read_delimited:header institution=%s delimiter=%r header_row=%d columns=%d rows=%d",
        institution,
        separator,
        header_index,
        len(headers),
        len(rows),
    )
    return RawTable(
        institution=institution,
        headers=headers,
        records=rows_to_records(headers, rows),
        header_row_index=header_index,
        card_number=card_number,
    )


__all__ = ["CANDIDATE_DELIMITERS", "choose_delimiter", "read_delimited"]
