"""Bank Hapoalim account-statement PDF adapter.

The PDF text layer is extracted with pdfplumber and scanned with a single
compound pattern per movement row::

    DD/MM/YYYY <description> <amount>₪<balance>## <1|2>

where the trailing marker is ``1`` for credits and ``2`` for debits. Table
headers and total lines share the same shape and are skipped by keyword.
Rows repeated verbatim (the PDF layer sometimes emits a line twice) are kept
once per ``(date, description, amount)``.
"""

from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import pdfplumber

from ...logging_setup import get_logger
from ..errors import StatementFormatError
from ..utils import parse_amount

_logger = get_logger("statement_ledger.ingest.adapters.hapoalim_pdf")

_MARKERS: tuple[str, ...] = ("בנק הפועלים", "bankhapoalim", "תנועות בחשבון")

_ACCOUNT_RE = re.compile(r"(\d{6})\s*\d{3}\s*12")
_HOLDER_RE = re.compile(r"שם חשבון\s*([\u0590-\u05FF\s']+?)(?:תנועות|$)")
_ROW_RE = re.compile(
    r"(\d{2}/\d{2}/\d{4})"
    r"([\u0590-\u05FFa-zA-Z\s\-'\".,\d]+?)"
    r"([\d,]+\.\d{2})₪"
    r"([-\d,]+\.\d{2})##\s*\n?\s*"
    r"([12])"
)
_SKIP_WORDS: tuple[str, ...] = ("חובה", "זכות", "תאריך", "יתרה", 'סה"כ')
_HEADER_ONLY = "פעולה"

UNKNOWN_ACCOUNT = "unknown"
DEFAULT_HOLDER = "בנק הפועלים"


@dataclass(frozen=True, slots=True)
class PdfStatement:
    account_number: str
    holder_name: str
    records: list[dict[str, Any]] = field(default_factory=list)


def extract_pdf_text(content: bytes) -> str:
    """Concatenate the text layer of every page."""

    try:
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            return "\n".join(page.extract_text() or "" for page in pdf.pages)
    except Exception as e:  # noqa: BLE001 - pdfminer raises many unrelated types
        raise StatementFormatError(f"unreadable PDF: {e}") from e


def parse_statement_text(text: str) -> PdfStatement:
    """Parse the extracted text of a Hapoalim statement.

    Raises :class:`StatementFormatError` when the text lacks every Hapoalim
    marker, i.e. the PDF is some other document.
    """

    lowered = text.lower()
    if not any(marker in lowered for marker in _MARKERS):
        raise StatementFormatError(
            "not a Bank Hapoalim account statement (הקובץ אינו דף חשבון של בנק הפועלים)"
        )

    account_match = _ACCOUNT_RE.search(text)
    account_number = account_match.group(1) if account_match else UNKNOWN_ACCOUNT
    holder_match = _HOLDER_RE.search(text)
    holder_name = holder_match.group(1).strip() if holder_match else DEFAULT_HOLDER

    records: list[dict[str, Any]] = []
    seen: set[tuple[str, str, Decimal]] = set()
    for m in _ROW_RE.finditer(text):
        date_text, raw_description, amount_text, balance_text, indicator = m.groups()
        description = " ".join(raw_description.split())
        if description == _HEADER_ONLY or any(w in description for w in _SKIP_WORDS):
            continue
        amount = parse_amount(amount_text)
        if amount == 0:
            continue
        if indicator == "2":
            amount = -amount
        key = (date_text, description, amount)
        if key in seen:
            continue
        seen.add(key)
        records.append(
            {
                "date": date_text,
                "description": description,
                "amount": amount,
                "balance": parse_amount(balance_text),
            }
        )

    _logger.debug(
        "hapoalim_pdf:parsed account=%s rows=%d", account_number, len(records)
    )
    return PdfStatement(account_number=account_number, holder_name=holder_name, records=records)


def read_hapoalim_pdf(content: bytes) -> PdfStatement:
    return parse_statement_text(extract_pdf_text(content))


__all__ = [
    "DEFAULT_HOLDER",
    "PdfStatement",
    "UNKNOWN_ACCOUNT",
    "extract_pdf_text",
    "parse_statement_text",
    "read_hapoalim_pdf",
]
