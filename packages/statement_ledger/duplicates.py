"""Duplicate resolution for one import into one account.

The resolver is pure: it takes the account's stored rows (loaded once by the
caller) and the freshly parsed transactions, and returns a plan of what to
insert and which stored rows to repair. Writing the plan is the importer's
job.

Rules, per incoming transaction:

- A reference seen earlier in the same file is a duplicate.
- A reference matching a stored row is a duplicate. When the absolute
  amounts agree but the signs do not, the stored row was imported with the
  wrong sign and is queued for an in-place correction.
- Without a reference match, a content fingerprint over
  ``(date, amount, description)`` is compared against stored rows and rows
  already accepted from this file.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from .logging_setup import get_logger
from .models import ExistingTransaction, ParsedTransaction

_logger = get_logger("statement_ledger.duplicates")

# Upper bound on in-place sign repairs of a single stored row.
MAX_SIGN_CORRECTIONS: int = 3

_CENT = Decimal("0.01")


def content_fingerprint(tx_date: date, amount: Decimal, description: str) -> str:
    """Stable SHA-256 over the canonical ``(date, amount, description)`` triple.

    The amount is rendered with two decimals and the description trimmed, so
    ``Decimal("-50")`` and ``Decimal("-50.00")`` hash the same.
    """

    payload = {
        "date": tx_date.isoformat(),
        "amount": f"{Decimal(amount).quantize(_CENT):.2f}",
        "description": (description or "").strip(),
    }
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def _fingerprint_of(tx: ParsedTransaction | ExistingTransaction) -> str:
    return content_fingerprint(tx.date, tx.amount, tx.description)


def is_sign_flip(stored: Decimal, incoming: Decimal) -> bool:
    """Same magnitude, opposite sign."""

    return stored != 0 and abs(stored) == abs(incoming) and (stored < 0) != (incoming < 0)


@dataclass(frozen=True, slots=True)
class SignCorrection:
    """In-place repair of a stored row whose sign was wrong.

    Applying it overwrites amount, dates and description and returns the row
    to an untriaged state (no category, not auto-categorized, not recurring).
    """

    transaction_id: int
    amount: Decimal
    date: date
    value_date: date | None
    description: str
    corrections_so_far: int = 0


@dataclass(slots=True)
class ResolutionPlan:
    accepted: list[ParsedTransaction] = field(default_factory=list)
    corrections: list[SignCorrection] = field(default_factory=list)
    duplicates: int = 0
    # Sign flips left alone because the row hit MAX_SIGN_CORRECTIONS.
    capped: int = 0


class DuplicateResolver:
    """Resolve incoming transactions against one account's stored rows."""

    def __init__(
        self,
        existing: Iterable[ExistingTransaction],
        *,
        max_corrections: int = MAX_SIGN_CORRECTIONS,
    ) -> None:
        self._max_corrections = max_corrections
        self._by_reference: dict[str, ExistingTransaction] = {}
        self._fingerprints: set[str] = set()
        for row in existing:
            ref = (row.reference or "").strip()
            if ref and ref not in self._by_reference:
                self._by_reference[ref] = row
            self._fingerprints.add(_fingerprint_of(row))

    def resolve(self, transactions: Iterable[ParsedTransaction]) -> ResolutionPlan:
        plan = ResolutionPlan()
        seen_refs: set[str] = set()
        corrected_ids: set[int] = set()

        for tx in transactions:
            ref = (tx.reference or "").strip()
            if ref:
                if ref in seen_refs:
                    plan.duplicates += 1
                    continue
                seen_refs.add(ref)
                stored = self._by_reference.get(ref)
                if stored is not None:
                    plan.duplicates += 1
                    if is_sign_flip(stored.amount, tx.amount) and stored.id not in corrected_ids:
                        self._queue_correction(plan, stored, tx)
                        corrected_ids.add(stored.id)
                    continue

            fingerprint = _fingerprint_of(tx)
            if fingerprint in self._fingerprints:
                plan.duplicates += 1
                continue
            self._fingerprints.add(fingerprint)
            plan.accepted.append(tx)

        return plan

    def _queue_correction(
        self, plan: ResolutionPlan, stored: ExistingTransaction, tx: ParsedTransaction
    ) -> None:
        if stored.sign_corrections >= self._max_corrections:
            plan.capped += 1
            _logger.warning(
                "resolve_duplicates:correction_capped tx_id=%d reference=%s corrections=%d",
                stored.id,
                stored.reference,
                stored.sign_corrections,
            )
            return
        plan.corrections.append(
            SignCorrection(
                transaction_id=stored.id,
                amount=tx.amount,
                date=tx.date,
                value_date=tx.value_date,
                description=tx.description,
                corrections_so_far=stored.sign_corrections,
            )
        )
        # The corrected row now carries the incoming content.
        self._fingerprints.add(_fingerprint_of(tx))


__all__ = [
    "DuplicateResolver",
    "MAX_SIGN_CORRECTIONS",
    "ResolutionPlan",
    "SignCorrection",
    "content_fingerprint",
    "is_sign_flip",
]
