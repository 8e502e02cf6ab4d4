"""Statement parsing entry point: bytes + filename → :class:`ParseResult`.

This is the ingestion boundary. File-level problems (wrong PDF, empty file,
missing columns) come back as a result with ``errors`` and no transactions;
row-level problems are counted in ``skipped_rows``. Nothing raises past
:func:`parse_statement`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import PurePath
from typing import Any, Literal

from ..logging_setup import get_logger
from ..models import Institution, ParsedTransaction, ParseResult
from .adapters.delimited import read_delimited
from .adapters.hapoalim_pdf import read_hapoalim_pdf
from .adapters.spreadsheet import read_spreadsheet
from .columns import SAMPLE_ROWS, DetectedColumns, MissingColumnsError, detect_columns
from .errors import StatementFormatError
from .institutions import detect_institution
from .normalizer import normalize_record

_logger = get_logger("statement_ledger.ingest.service")

# Above this share of skipped rows the column mapping is probably wrong.
SKIP_WARNING_RATIO: float = 0.5

_SPREADSHEET_SUFFIXES = frozenset({".xls", ".xlsx", ".xlsm"})
_PDF_COLUMNS = DetectedColumns(
    date="date", description="description", amount="amount", balance="balance"
)

type FileKind = Literal["pdf", "spreadsheet", "delimited"]


def detect_file_kind(content: bytes, filename: str) -> FileKind:
    """Classify by extension, then by magic bytes for unknown extensions."""

    suffix = PurePath(filename).suffix.lower()
    if suffix == ".pdf":
        return "pdf"
    if suffix in _SPREADSHEET_SUFFIXES:
        return "spreadsheet"
    if suffix in {".csv", ".txt", ".tsv"}:
        return "delimited"
    if content.startswith(b"%PDF"):
        return "pdf"
    if content.startswith(b"PK\x03\x04") or content.startswith(b"\xd0\xcf\x11\xe0"):
        return "spreadsheet"
    return "delimited"


def _failure(
    institution: Institution,
    message: str,
    *,
    card_number: str | None = None,
    row_count: int = 0,
) -> ParseResult:
    return ParseResult(
        institution=institution,
        card_number=card_number,
        row_count=row_count,
        skipped_rows=row_count,
        errors=(message,),
    )


def normalize_records(
    records: Sequence[Mapping[str, Any]],
    columns: DetectedColumns,
    institution: Institution,
    *,
    card_number: str | None,
    filename: str,
) -> ParseResult:
    """Run every record through the normalizer and assemble the result."""

    transactions: list[ParsedTransaction] = []
    errors: list[str] = []
    warnings: list[str] = []
    skipped = 0
    for i, record in enumerate(records):
        try:
            tx = normalize_record(record, columns, institution)
        except (ValueError, ArithmeticError) as e:
            errors.append(f"Row {i + 1}: {e}")
            skipped += 1
            continue
        if tx is None:
            skipped += 1
            continue
        transactions.append(tx)

    total = len(records)
    if total and skipped / total > SKIP_WARNING_RATIO:
        message = (
            f"{skipped} of {total} rows were skipped; the column mapping may not fit this file"
        )
        warnings.append(message)
        _logger.warning(
            "parse_statement:high_skip_ratio file=%s institution=%s skipped=%d total=%d",
            filename,
            institution,
            skipped,
            total,
        )
    if total and not transactions:
        errors.append(f"no transactions could be parsed from {total} rows")

    return ParseResult(
        institution=institution,
        transactions=tuple(transactions),
        card_number=card_number,
        row_count=total,
        skipped_rows=skipped,
        errors=tuple(errors),
        warnings=tuple(warnings),
    )


def _parse_pdf(content: bytes, filename: str) -> ParseResult:
    institution = Institution.BANK_HAPOALIM
    try:
        statement = read_hapoalim_pdf(content)
    except StatementFormatError as e:
        return _failure(institution, str(e))
    if not statement.records:
        return _failure(institution, "no transactions found in the PDF")
    return normalize_records(
        statement.records,
        _PDF_COLUMNS,
        institution,
        card_number=statement.account_number,
        filename=filename,
    )


def _parse_tabular(
    content: bytes, filename: str, kind: FileKind, institution: Institution | None
) -> ParseResult:
    try:
        if kind == "spreadsheet":
            table = read_spreadsheet(content, institution)
        else:
            if institution is None:
                institution = detect_institution(content, filename)
            delimiter = "\t" if PurePath(filename).suffix.lower() == ".tsv" else None
            table = read_delimited(content, institution, delimiter=delimiter)
    except StatementFormatError as e:
        return _failure(institution or Institution.OTHER, str(e))

    institution = table.institution

    if not table.records:
        return _failure(
            institution, "file is empty or has no readable rows", card_number=table.card_number
        )

    columns = detect_columns(table.headers, table.records[:SAMPLE_ROWS])
    missing = columns.missing_required()
    if missing:
        err = MissingColumnsError(missing, table.headers)
        _logger.warning(
            "parse_statement:missing_columns file=%s missing=%s headers=%s",
            filename,
            ",".join(err.missing),
            "|".join(err.headers),
        )
        return _failure(
            institution,
            str(err),
            card_number=table.card_number,
            row_count=len(table.records),
        )

    return normalize_records(
        table.records,
        columns,
        institution,
        card_number=table.card_number,
        filename=filename,
    )


def parse_statement(
    content: bytes,
    filename: str,
    *,
    institution: Institution | None = None,
) -> ParseResult:
    """Parse one statement export.

    Parameters
    ----------
    content:
        Raw file bytes.
    filename:
        Declared file name; its extension picks the format.
    institution:
        Force an institution instead of detecting it from the content.
        Ignored for PDFs, whose only supported layout is Bank Hapoalim.

    Returns
    -------
    ParseResult
        Never raises for malformed input.
    """

    kind = detect_file_kind(content, filename)
    resolved = institution or Institution.OTHER
    try:
        if kind == "pdf":
            result = _parse_pdf(content, filename)
        else:
            result = _parse_tabular(content, filename, kind, institution)
    except Exception as e:  # noqa: BLE001 - ingestion boundary
        _logger.exception("parse_statement:failed file=%s", filename)
        return _failure(resolved, f"failed to parse {filename}: {e}")

    _logger.info(
        "parse_statement:done file=%s kind=%s institution=%s card=%s rows=%d parsed=%d "
        "skipped=%d errors=%d",
        filename,
        kind,
        result.institution,
        result.card_number,
        result.row_count,
        result.success_count,
        result.skipped_rows,
        len(result.errors),
    )
    return result


__all__ = [
    "SKIP_WARNING_RATIO",
    "detect_file_kind",
    "normalize_records",
    "parse_statement",
]
