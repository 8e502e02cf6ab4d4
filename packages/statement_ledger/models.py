"""Data models shared across the ingestion and categorization layers.

Everything here is an immutable value object. Database rows live in the
``db`` library; these types are what the pure logic (parsers, resolver,
categorizers, recurring engine) consumes and produces.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Literal


class Institution(StrEnum):
    """Closed set of issuers whose statement layouts are recognized."""

    BANK_HAPOALIM = "BANK_HAPOALIM"
    BANK_LEUMI = "BANK_LEUMI"
    ISRACARD = "ISRACARD"
    LEUMI_CARD = "LEUMI_CARD"
    OTHER = "OTHER"

    @property
    def is_credit_card(self) -> bool:
        return self in (Institution.ISRACARD, Institution.LEUMI_CARD)


@dataclass(frozen=True, slots=True)
class ParsedTransaction:
    """Canonical transaction as produced by the parsers.

    ``amount`` is signed (expenses negative, income positive) and is the only
    source of truth for direction. ``original_amount`` is always absolute.
    """

    date: date
    description: str
    amount: Decimal
    value_date: date | None = None
    reference: str | None = None
    original_amount: Decimal | None = None
    original_currency: str | None = None


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Outcome of parsing one statement file.

    Unrecoverable file errors produce an instance with ``errors`` set and no
    transactions; row-level problems show up in ``skipped_rows`` and as
    ``"Row <n>: ..."`` entries in ``errors`` alongside parsed transactions.
    """

    institution: Institution
    transactions: tuple[ParsedTransaction, ...] = ()
    card_number: str | None = None
    row_count: int = 0
    skipped_rows: int = 0
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def success_count(self) -> int:
        return len(self.transactions)

    @property
    def failed(self) -> bool:
        """True when the file produced nothing importable."""

        return not self.transactions and bool(self.errors)


# ---------------------------------------------------------------------------
# Read-only snapshots handed to the categorizers
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class KeywordRule:
    keyword: str
    is_exact: bool = False
    priority: int = 0


@dataclass(frozen=True, slots=True)
class CategorySnapshot:
    id: int
    name: str
    alias_name: str | None = None
    keywords: tuple[KeywordRule, ...] = ()


type Categories = Sequence[CategorySnapshot]


# ---------------------------------------------------------------------------
# Stored-row views
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExistingTransaction:
    """What the duplicate resolver needs to know about an already-stored row."""

    id: int
    date: date
    amount: Decimal
    description: str
    reference: str | None = None
    sign_corrections: int = 0


@dataclass(frozen=True, slots=True)
class HistoryItem:
    """A stored row as seen by the recurring suggestion engine."""

    id: int
    date: date
    amount: Decimal
    description: str
    is_recurring: bool = False


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ImportResult:
    institution: Institution
    card_number: str | None
    account_id: int | None
    account_name: str | None
    row_count: int
    total: int
    imported: int = 0
    duplicates: int = 0
    corrected_existing: int = 0
    skipped_rows: int = 0
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


type SuggestionAction = Literal["add", "remove"]
type Direction = Literal["expense", "income"]


@dataclass(frozen=True, slots=True)
class RecurringSuggestion:
    """A proposed flip of ``is_recurring`` over an exact set of rows."""

    key: str
    action: SuggestionAction
    direction: Direction
    signature: str
    label: str
    transaction_ids: tuple[int, ...]
    last_date: date
    occurrences: int
    typical_amount: Decimal


@dataclass(frozen=True, slots=True)
class PropagationOutcome:
    """Result of a bounded bulk update over "similar" rows."""

    updated_ids: tuple[int, ...] = ()
    skipped_reason: str | None = None
    learned_keyword: str | None = None
    # Rows flipped by a learned recurring keyword beyond the explicit set.
    cascaded: int = 0


__all__ = [
    "Categories",
    "CategorySnapshot",
    "Direction",
    "ExistingTransaction",
    "HistoryItem",
    "ImportResult",
    "Institution",
    "KeywordRule",
    "ParseResult",
    "ParsedTransaction",
    "PropagationOutcome",
    "RecurringSuggestion",
    "SuggestionAction",
]
