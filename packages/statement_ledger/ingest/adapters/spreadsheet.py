"""Spreadsheet (``.xls``/``.xlsx``) statement adapter built on pandas.

The first sheet is read without a header so banner rows survive; the header
row is discovered the same way as for delimited text. Native date cells come
back as ``datetime`` values and are kept as such.
"""

from __future__ import annotations

import io
from typing import Any

import pandas as pd

from ...logging_setup import get_logger
from ...models import Institution
from ..errors import StatementFormatError
from ..institutions import detect_institution_in_text, extract_card_number_from_rows
from ..utils import cell_text
from .tabular import RawTable, locate_header_row, rows_to_records

_logger = get_logger("statement_ledger.ingest.adapters.spreadsheet")


def _plain(cell: Any) -> Any:
    if cell is None:
        return ""
    if isinstance(cell, pd.Timestamp):
        return "" if pd.isna(cell) else cell.to_pydatetime()
    try:
        if pd.isna(cell):
            return ""
    except (TypeError, ValueError):
        return cell
    return cell


def read_spreadsheet(content: bytes, institution: Institution | None) -> RawTable:
    """Read the first worksheet into a :class:`RawTable`.

    With ``institution=None`` the issuer is detected from the text of the
    banner and header cells (the raw workbook bytes are compressed or binary,
    so byte-level marker detection does not apply).

    Raises :class:`StatementFormatError` when the workbook cannot be opened,
    is empty, or has no recognizable header row.
    """

    try:
        frame = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, dtype=object)
    except Exception as e:  # noqa: BLE001 - engines raise a zoo of types for corrupt files
        raise StatementFormatError(f"unreadable spreadsheet: {e}") from e

    rows = [[_plain(cell) for cell in row] for row in frame.itertuples(index=False, name=None)]
    if not rows:
        raise StatementFormatError("file is empty or unreadable")

    header_index = locate_header_row(rows)
    if header_index is None:
        raise StatementFormatError("no header row found in the first 10 rows")

    if institution is None:
        banner = " ".join(cell_text(cell) for row in rows[: header_index + 1] for cell in row)
        institution = detect_institution_in_text(banner)

    headers = tuple(cell_text(cell) for cell in rows[header_index])
    card_number = extract_card_number_from_rows(rows, institution)

    _logger.debug(
        "read_spreadsheet:header institution=%s header_row=%d columns=%d rows=%d",
        institution,
        header_index,
        len(headers),
        len(rows) - header_index - 1,
    )
    return RawTable(
        institution=institution,
        headers=headers,
        records=rows_to_records(headers, rows[header_index + 1 :]),
        header_row_index=header_index,
        card_number=card_number,
    )


__all__ = ["read_spreadsheet"]
