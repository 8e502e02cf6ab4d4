"""Column detection for tabular statement exports.

Maps raw header names to semantic fields in two passes:

1. Header patterns. Each field owns an ordered list of case-insensitive
   regexes; fields are resolved in declaration order, each pattern scanned
   across the headers left to right. A header is claimed by at most one field.
2. Content shape. Only for date, amount and description when still missing:
   sample values are tested for date shape, numeric/currency shape, or long
   Hebrew text.

Thresholds are module constants so they can be tuned and tested at their
boundaries.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from ..logging_setup import get_logger
from .errors import StatementFormatError
from .utils import cell_text

_logger = get_logger("statement_ledger.ingest.columns")

# ---- Tunables ----------------------------------------------------------------

SAMPLE_ROWS: int = 10
CONTENT_MAJORITY: float = 0.5
DESCRIPTION_MIN_AVG_LENGTH: float = 5.0

# ---- Patterns ----------------------------------------------------------------


def _rx(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


_HEADER_PATTERNS: dict[str, tuple[re.Pattern[str], ...]] = {
    "date": _rx(
        r"תאריך\s*עסק",
        r"תאריך\s*הפעולה",
        r"תאריך\s*רכישה",
        r"^תאריך$",
        r"transaction\s*date",
        r"date",
    ),
    "description": _rx(
        r"שם\s*בית\s*(ה)?עסק",
        r"בית\s*עסק",
        r"תי?אור",
        r"פרטי?\s*(ה)?עסק",
        r"פרטי?\s*(ה)?פעולה",
        r"שם\s*העסק",
        r"description",
        r"merchant",
        r"details",
    ),
    "amount": _rx(
        r"סכום\s*חיוב",
        r"סכום\s*לחיוב",
        r"סכום\s*בש",
        r"סכום\s*₪",
        r"^סכום$",
        r"סה.*כ",
        r"amount",
        r"charge",
    ),
    "debit": _rx(r"חובה", r"debit", r"משיכה"),
    "credit": _rx(r"זכות", r"credit", r"הפקדה"),
    "balance": _rx(r"יתרה", r"balance"),
    "value_date": _rx(r"תאריך\s*חיוב", r"מועד\s*חיוב", r"תאריך\s*ערך", r"value\s*date"),
    "reference": _rx(r"אסמכת", r"reference", r"מספר\s*שובר", r"אישור"),
    "original_amount": _rx(r"סכום\s*עסק", r"סכום\s*מקור", r"original"),
    "currency": _rx(r"מטבע", r"currency"),
}

_DATE_SHAPES = (
    re.compile(r"^\d{1,2}[./-]\d{1,2}[./-]\d{2,4}$"),
    re.compile(r"^\d{4}[./-]\d{1,2}[./-]\d{1,2}$"),
)
_AMOUNT_SHAPES = (
    re.compile(r"^-?\d+\.?\d*$"),
    re.compile(r"^-?₪?\s*\d+\.?\d*$"),
    re.compile(r"^-?\d+\.?\d*\s*₪?$"),
)
_HEBREW_RE = re.compile(r"[\u0590-\u05FF]")

# User-facing labels for missing required fields.
_FIELD_LABELS: dict[str, str] = {
    "date": "date (תאריך)",
    "description": "description (תיאור/שם בית עסק)",
    "amount": "amount (סכום)",
}


@dataclass(frozen=True, slots=True)
class DetectedColumns:
    """Header name chosen for each semantic field (``None`` when absent)."""

    date: str | None = None
    description: str | None = None
    amount: str | None = None
    debit: str | None = None
    credit: str | None = None
    balance: str | None = None
    value_date: str | None = None
    reference: str | None = None
    original_amount: str | None = None
    currency: str | None = None

    @property
    def has_debit_credit(self) -> bool:
        return self.debit is not None and self.credit is not None

    def missing_required(self) -> list[str]:
        missing: list[str] = []
        if self.date is None:
            missing.append("date")
        if self.description is None:
            missing.append("description")
        if self.amount is None and not self.has_debit_credit:
            missing.append("amount")
        return missing


class MissingColumnsError(StatementFormatError):
    """Raised when a table lacks date, description, or any amount source."""

    def __init__(self, missing: Sequence[str], headers: Sequence[str]) -> None:
        self.missing = tuple(missing)
        self.headers = tuple(headers)
        labels = ", ".join(_FIELD_LABELS.get(m, m) for m in self.missing)
        super().__init__(f"required columns not found: {labels}")


# ---- Content-shape predicates ------------------------------------------------


def _looks_like_date(value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    s = cell_text(value)
    return any(p.match(s) for p in _DATE_SHAPES)


def _looks_like_amount(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal)):
        return True
    s = cell_text(value).replace(",", "")
    return any(p.match(s) for p in _AMOUNT_SHAPES)


def _majority(values: Sequence[Any], predicate) -> bool:
    if not values:
        return False
    hits = sum(1 for v in values if predicate(v))
    return hits / len(values) >= CONTENT_MAJORITY


def _looks_like_description(values: Sequence[Any]) -> bool:
    texts = [cell_text(v) for v in values]
    if not texts:
        return False
    avg = sum(len(t) for t in texts) / len(texts)
    return avg > DESCRIPTION_MIN_AVG_LENGTH and any(_HEBREW_RE.search(t) for t in texts)


# ---- Public API --------------------------------------------------------------


def detect_columns(
    headers: Sequence[str], sample_rows: Sequence[Mapping[str, Any]]
) -> DetectedColumns:
    """Return the header chosen for each semantic field.

    ``sample_rows`` are header-keyed records; only the first
    :data:`SAMPLE_ROWS` are inspected.
    """

    clean_headers = [h for h in (cell_text(h) for h in headers) if h]
    claimed: set[str] = set()
    found: dict[str, str] = {}

    for field_name, patterns in _HEADER_PATTERNS.items():
        match = _first_header_match(clean_headers, patterns, claimed)
        if match is not None:
            found[field_name] = match
            claimed.add(match)

    if any(f not in found for f in ("date", "amount", "description")):
        _content_pass(clean_headers, sample_rows[:SAMPLE_ROWS], found, claimed)

    detected = DetectedColumns(**found)
    _logger.debug(
        "detect_columns:done %s",
        " ".join(f"{f.name}={getattr(detected, f.name)!r}" for f in fields(detected)),
    )
    return detected


def _first_header_match(
    headers: Sequence[str], patterns: Sequence[re.Pattern[str]], claimed: set[str]
) -> str | None:
    for pattern in patterns:
        for header in headers:
            if header not in claimed and pattern.search(header):
                return header
    return None


def _content_pass(
    headers: Sequence[str],
    samples: Sequence[Mapping[str, Any]],
    found: dict[str, str],
    claimed: set[str],
) -> None:
    for header in headers:
        if header in claimed:
            continue
        values = [row.get(header) for row in samples]
        values = [v for v in values if cell_text(v)]
        if not values:
            continue

        if "date" not in found and _majority(values, _looks_like_date):
            found["date"] = header
        elif (
            "amount" not in found
            and "debit" not in found
            and "credit" not in found
            and _majority(values, _looks_like_amount)
        ):
            found["amount"] = header
        elif "description" not in found and _looks_like_description(values):
            found["description"] = header
        else:
            continue
        claimed.add(header)


__all__ = [
    "CONTENT_MAJORITY",
    "DESCRIPTION_MIN_AVG_LENGTH",
    "DetectedColumns",
    "MissingColumnsError",
    "SAMPLE_ROWS",
    "detect_columns",
]
