"""Manual category/recurring actions and their bounded propagation.

A manual change to one transaction can spread to "similar" rows:

- category changes go to rows of the same merchant and direction that have
  a different category;
- recurring changes go to identical rows (same category, description and
  amount) and/or the merchant family (same category, direction, merchant).

Propagation is bounded by a limit. When the match set is larger, nothing
beyond the source row is changed and the outcome carries the reason.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from decimal import Decimal

from sqlalchemy.orm import Session

from db.models.ledger import SlTransaction

from .keywords import RecurringKeywordMatcher
from .logging_setup import get_logger
from .merchants import merchant_signature, same_merchant
from .models import PropagationOutcome
from .persistence import SqlCategoryStore, SqlRecurringKeywordStore, SqlTransactionStore

_logger = get_logger("statement_ledger.bulk")

DEFAULT_PROPAGATION_LIMIT: int = 200


class TransactionNotFoundError(LookupError):
    def __init__(self, tx_id: int) -> None:
        super().__init__(f"transaction {tx_id} not found")
        self.tx_id = tx_id


class CategoryNotFoundError(LookupError):
    def __init__(self, category_id: int) -> None:
        super().__init__(f"category {category_id} not found")
        self.category_id = category_id


def normalize_ids(ids: Iterable[int | str]) -> list[int]:
    """Trim, drop blanks and de-duplicate ids, keeping first-seen order.

    Raises ``ValueError`` for a non-numeric id or when nothing is left.
    """

    out: dict[int, None] = {}
    for raw in ids:
        if isinstance(raw, str):
            raw = raw.strip()
            if not raw:
                continue
            try:
                value = int(raw)
            except ValueError as e:
                raise ValueError(f"invalid transaction id: {raw!r}") from e
        else:
            value = int(raw)
        out.setdefault(value, None)
    if not out:
        raise ValueError("no transaction ids provided")
    return list(out)


def _is_expense(amount: Decimal) -> bool:
    return amount < 0


def same_merchant_ids(
    store: SqlTransactionStore,
    source: SlTransaction,
    *,
    category_id: int | None = None,
    other_category: bool = False,
) -> list[int]:
    """Ids of non-excluded rows with the source's merchant and direction.

    ``other_category=False`` keeps rows whose category equals ``category_id``;
    ``other_category=True`` keeps rows whose category differs from it.
    """

    ids: list[int] = []
    for row in store.active(expenses=_is_expense(source.amount)):
        if row.id == source.id:
            continue
        if (row.category_id != category_id) is not other_category:
            continue
        if same_merchant(source.description, row.description):
            ids.append(row.id)
    return ids


def propagate(
    store: SqlTransactionStore,
    ids: list[int],
    *,
    limit: int,
    reason_label: str,
    **fields: object,
) -> PropagationOutcome:
    """Apply ``fields`` to ``ids`` unless there are more than ``limit`` of them."""

    if not ids:
        return PropagationOutcome()
    if len(ids) > limit:
        reason = f"{len(ids)} {reason_label} exceed the propagation limit of {limit}"
        _logger.warning(
            "propagate:skipped matches=%d limit=%d label=%s", len(ids), limit, reason_label
        )
        return PropagationOutcome(skipped_reason=reason)
    store.update_many(ids, **fields)
    return PropagationOutcome(updated_ids=tuple(ids))


def learn_keyword(session: Session, category_id: int, description: str) -> str | None:
    """Store the merchant signature of ``description`` as a category keyword.

    Returns the keyword when it was new, else ``None``.
    """

    keyword = merchant_signature(description)
    if keyword is None:
        return None
    if SqlCategoryStore(session).add_keyword(category_id, keyword):
        return keyword.lower()
    return None


def _load(store: SqlTransactionStore, tx_id: int) -> SlTransaction:
    tx = store.get(tx_id)
    if tx is None:
        raise TransactionNotFoundError(tx_id)
    return tx


def set_transaction_category(
    session: Session,
    tx_id: int,
    category_id: int | None,
    *,
    apply_to_similar: bool = True,
    learn: bool = False,
    propagation_limit: int = DEFAULT_PROPAGATION_LIMIT,
) -> PropagationOutcome:
    """Manually categorize one transaction (``None`` clears the category)."""

    store = SqlTransactionStore(session)
    tx = _load(store, tx_id)
    if category_id is not None and SqlCategoryStore(session).get(category_id) is None:
        raise CategoryNotFoundError(category_id)

    store.update_one(tx.id, category_id=category_id, is_auto_categorized=False)

    outcome = PropagationOutcome()
    if apply_to_similar:
        ids = same_merchant_ids(store, tx, category_id=category_id, other_category=True)
        outcome = propagate(
            store,
            ids,
            limit=propagation_limit,
            reason_label="similar transactions",
            category_id=category_id,
            is_auto_categorized=False,
        )

    learned = None
    if learn and category_id is not None:
        learned = learn_keyword(session, category_id, tx.description)

    _logger.info(
        "set_category:done tx_id=%d category_id=%s similar=%d skipped=%s learned=%s",
        tx.id,
        category_id,
        len(outcome.updated_ids),
        outcome.skipped_reason is not None,
        learned,
    )
    return replace(outcome, learned_keyword=learned)


def _identical_ids(store: SqlTransactionStore, source: SlTransaction) -> list[int]:
    description = source.description.casefold()
    return [
        row.id
        for row in store.active()
        if row.id != source.id
        and row.category_id == source.category_id
        and row.amount == source.amount
        and row.description.casefold() == description
    ]


def _cascade_recurring(
    store: SqlTransactionStore, source: SlTransaction, keyword: str, *, limit: int
) -> tuple[int, str | None]:
    matcher = RecurringKeywordMatcher([keyword])
    ids = [
        row.id
        for row in store.active()
        if row.id != source.id and not row.is_recurring and matcher.matches(row.description)
    ]
    outcome = propagate(
        store, ids, limit=limit, reason_label="keyword matches", is_recurring=True
    )
    return len(outcome.updated_ids), outcome.skipped_reason


def set_transaction_recurring(
    session: Session,
    tx_id: int,
    is_recurring: bool,
    *,
    apply_to_identical: bool = False,
    apply_to_merchant_family: bool = False,
    learn: bool = False,
    propagation_limit: int = DEFAULT_PROPAGATION_LIMIT,
) -> PropagationOutcome:
    """Flip ``is_recurring`` on one transaction and optionally its relatives.

    With ``learn``, turning on stores the merchant signature as a recurring
    keyword and marks every other non-recurring row containing it; turning
    off forgets the keyword.
    """

    store = SqlTransactionStore(session)
    tx = _load(store, tx_id)
    store.update_one(tx.id, is_recurring=is_recurring)

    targets: dict[int, None] = {}
    if apply_to_identical:
        targets.update(dict.fromkeys(_identical_ids(store, tx)))
    if apply_to_merchant_family:
        family = same_merchant_ids(store, tx, category_id=tx.category_id)
        targets.update(dict.fromkeys(family))
    outcome = propagate(
        store,
        list(targets),
        limit=propagation_limit,
        reason_label="related transactions",
        is_recurring=is_recurring,
    )

    learned: str | None = None
    cascaded = 0
    if learn:
        keyword = merchant_signature(tx.description)
        if keyword is not None:
            keywords = SqlRecurringKeywordStore(session)
            if is_recurring:
                keywords.upsert(keyword)
                learned = keyword.lower()
                cascaded, cascade_skip = _cascade_recurring(
                    store, tx, learned, limit=propagation_limit
                )
                if cascade_skip and outcome.skipped_reason is None:
                    outcome = replace(outcome, skipped_reason=cascade_skip)
            else:
                keywords.delete(keyword)

    _logger.info(
        "set_recurring:done tx_id=%d is_recurring=%s related=%d cascaded=%d learned=%s",
        tx.id,
        is_recurring,
        len(outcome.updated_ids),
        cascaded,
        learned,
    )
    return replace(outcome, learned_keyword=learned, cascaded=cascaded)


def bulk_set_category(session: Session, ids: Iterable[int | str], category_id: int | None) -> int:
    """Set a manual category on many rows; excluded rows are left alone."""

    id_list = normalize_ids(ids)
    if category_id is not None and SqlCategoryStore(session).get(category_id) is None:
        raise CategoryNotFoundError(category_id)
    return SqlTransactionStore(session).update_many(
        id_list, skip_excluded=True, category_id=category_id, is_auto_categorized=False
    )


def bulk_set_recurring(session: Session, ids: Iterable[int | str], is_recurring: bool) -> int:
    id_list = normalize_ids(ids)
    return SqlTransactionStore(session).update_many(
        id_list, skip_excluded=True, is_recurring=bool(is_recurring)
    )


__all__ = [
    "CategoryNotFoundError",
    "DEFAULT_PROPAGATION_LIMIT",
    "TransactionNotFoundError",
    "bulk_set_category",
    "bulk_set_recurring",
    "learn_keyword",
    "normalize_ids",
    "propagate",
    "same_merchant_ids",
    "set_transaction_category",
    "set_transaction_recurring",
]
