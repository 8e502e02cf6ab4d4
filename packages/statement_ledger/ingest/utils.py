"""Cell-level helpers shared by the adapters and the normalizer.

Dates and amounts arrive either as native values (spreadsheets) or as text in
a handful of local formats. These helpers never raise on bad input: amounts
degrade to zero and dates to ``None``, and the caller decides whether that
rejects the row.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from dateutil import parser as date_parser

_CENTS = Decimal("0.01")

# Spreadsheet day serials (1900 date system, Lotus leap-year bug included).
_EXCEL_EPOCH = date(1899, 12, 30)
_SERIAL_MIN = 30000
_SERIAL_MAX = 60000

# Tried in order; strptime accepts single-digit day/month for %d/%m, which
# covers the D.M.YY and D/M/YYYY variants.
_DATE_FORMATS: tuple[str, ...] = (
    "%d.%m.%y",
    "%d.%m.%Y",
    "%d/%m/%y",
    "%d/%m/%Y",
    "%Y-%m-%d",
    "%d-%m-%Y",
)

_AMOUNT_STRIP_RE = re.compile(r"[()₪\s,]")
_SERIAL_RE = re.compile(r"^\d+(?:\.0+)?$")


def cell_text(value: Any) -> str:
    """Render a raw cell as trimmed text (``None``/NaN become ``""``)."""

    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def is_blank(value: Any) -> bool:
    return cell_text(value) == ""


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def parse_amount(value: Any) -> Decimal:
    """Parse a monetary cell into a 2-place ``Decimal``.

    Numbers pass through. Text is negative when wrapped in parentheses or when
    it carries a leading or trailing ``-``; the shekel sign, whitespace and
    thousands separators are dropped. Anything unparseable becomes ``0``.
    """

    if isinstance(value, bool) or value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal):
        return to_cents(value)
    if isinstance(value, int):
        return to_cents(Decimal(value))
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return Decimal("0.00")
        return to_cents(Decimal(str(value)))

    s = str(value).strip()
    if not s:
        return Decimal("0.00")
    # The sign is read after the currency mark and spaces go, so "₪ -50" stays negative.
    cleaned = _AMOUNT_STRIP_RE.sub("", s)
    negative = (
        (s.startswith("(") and s.endswith(")"))
        or cleaned.startswith("-")
        or cleaned.endswith("-")
    )
    cleaned = cleaned.removesuffix("-").lstrip("+-")
    try:
        d = Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0.00")
    if not d.is_finite():
        return Decimal("0.00")
    return to_cents(-abs(d) if negative else d)


def _from_serial(serial: float) -> date | None:
    if _SERIAL_MIN < serial < _SERIAL_MAX:
        return _EXCEL_EPOCH + timedelta(days=int(serial))
    return None


def parse_date(value: Any) -> date | None:
    """Parse a date cell; ``None`` when no interpretation succeeds.

    Order: native ``datetime``/``date`` values, spreadsheet serial numbers,
    the explicit day-first formats, then a day-first generic parse.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return _from_serial(float(value))

    s = str(value).strip()
    if not s:
        return None
    if _SERIAL_RE.match(s):
        return _from_serial(float(s))
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    try:
        return date_parser.parse(s, dayfirst=True).date()
    except (ValueError, OverflowError):
        return None


__all__ = [
    "cell_text",
    "is_blank",
    "parse_amount",
    "parse_date",
    "to_cents",
]
