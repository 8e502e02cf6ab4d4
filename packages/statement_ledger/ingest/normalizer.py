"""Record → :class:`ParsedTransaction` conversion.

Applies the per-institution sign convention and filters the rows that look
like transactions but are not: summary/total lines and, in bank feeds, the
card issuer's consolidated monthly charge (which would double-count every
underlying card purchase imported from the card statement itself).
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from ..models import Institution, ParsedTransaction
from .columns import DetectedColumns
from .utils import cell_text, parse_amount, parse_date

SUMMARY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'^סה"?כ'),
    re.compile(r'סה"?כ\s*(ל|ב)?חיוב'),
    re.compile(r"^total", re.IGNORECASE),
    re.compile(r"^subtotal", re.IGNORECASE),
)

# Compared against descriptions reduced to Hebrew letters and a-z only, so
# "מסטרקרד 1234" and "כרטיס אשראי" both collapse to a containing form.
CARD_BILL_KEYWORDS: tuple[str, ...] = (
    "מסטרקרד",
    "מסטרקארד",
    "מאסטרקארד",
    "mastercard",
    "ישראכרט",
    "isracard",
    "לאומיקארד",
    "leumicard",
    "מקס",
    "max",
    "ויזהכאל",
    "visa",
    "amex",
    "כרטיסאשראי",
    "חיובכרטיס",
)

LOCAL_CURRENCY_MARKS: frozenset[str] = frozenset({"ILS", 'ש"ח', "₪"})

_NON_LETTER_RE = re.compile(r"[^\u0590-\u05FFa-z]")


def is_summary_row(description: str) -> bool:
    return any(p.search(description) for p in SUMMARY_PATTERNS)


def is_consolidated_card_charge(
    description: str, amount: Decimal, institution: Institution
) -> bool:
    """True for a card issuer's aggregate debit inside a bank account feed."""

    if institution.is_credit_card or amount >= 0:
        return False
    squashed = _NON_LETTER_RE.sub("", description.lower())
    return any(keyword in squashed for keyword in CARD_BILL_KEYWORDS)


def _value(record: Mapping[str, Any], header: str | None) -> Any:
    if header is None:
        return None
    return record.get(header)


def resolve_amount(record: Mapping[str, Any], columns: DetectedColumns) -> Decimal | None:
    """Signed amount from debit/credit or the generic amount column."""

    if columns.has_debit_credit:
        debit = abs(parse_amount(_value(record, columns.debit)))
        credit = abs(parse_amount(_value(record, columns.credit)))
        amount = credit - debit
        if amount == 0 and columns.amount is not None:
            amount = parse_amount(_value(record, columns.amount))
        return amount
    if columns.amount is not None:
        return parse_amount(_value(record, columns.amount))
    return None


def normalize_record(
    record: Mapping[str, Any],
    columns: DetectedColumns,
    institution: Institution,
) -> ParsedTransaction | None:
    """Return a canonical transaction, or ``None`` when the row is not one."""

    tx_date = parse_date(_value(record, columns.date))
    if tx_date is None:
        return None

    description = cell_text(_value(record, columns.description))
    if not description or is_summary_row(description):
        return None

    amount = resolve_amount(record, columns)
    if amount is None:
        return None
    if institution.is_credit_card:
        # Card exports list charges as positive numbers.
        amount = -amount
    if amount == 0:
        return None
    if is_consolidated_card_charge(description, amount, institution):
        return None

    value_date = parse_date(_value(record, columns.value_date)) if columns.value_date else None
    reference = cell_text(_value(record, columns.reference)) or None

    original_amount: Decimal | None = None
    if columns.original_amount is not None:
        raw = abs(parse_amount(_value(record, columns.original_amount)))
        original_amount = raw if raw != 0 else None

    original_currency: str | None = None
    if columns.currency is not None:
        currency = cell_text(_value(record, columns.currency))
        if currency and currency not in LOCAL_CURRENCY_MARKS:
            original_currency = currency

    return ParsedTransaction(
        date=tx_date,
        description=description,
        amount=amount,
        value_date=value_date,
        reference=reference,
        original_amount=original_amount,
        original_currency=original_currency,
    )


__all__ = [
    "CARD_BILL_KEYWORDS",
    "LOCAL_CURRENCY_MARKS",
    "SUMMARY_PATTERNS",
    "is_consolidated_card_charge",
    "is_summary_row",
    "normalize_record",
    "resolve_amount",
]
