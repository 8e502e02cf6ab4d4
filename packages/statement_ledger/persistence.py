# ruff: noqa: I001
"""SQL implementations of the store verbs the ledger core works against.

The pure modules (resolver, categorizers, recurring engine) never see a
query. They receive snapshots built here and hand back plans that the
callers apply through these stores. Every store wraps a caller-owned
``Session``; committing is the caller's responsibility (normally
:func:`db.client.session_scope`).
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models.ledger import (
    SlCategory,
    SlCategoryKeyword,
    SlRecurringKeyword,
    SlSetting,
    SlTransaction,
)

from .duplicates import SignCorrection
from .logging_setup import get_logger
from .models import CategorySnapshot, ExistingTransaction, HistoryItem, KeywordRule

_logger = get_logger("statement_ledger.persistence")

# Rows per multi-VALUES insert; keeps SQLite under its bound-parameter limit.
INSERT_CHUNK_SIZE: int = 500

API_KEY_SETTING: str = "categorization_api_key"
API_KEY_ENV: str = "OPENAI_API_KEY"


def _chunks[T](items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class SqlTransactionStore:
    """Transaction verbs: find, insert in batch, update one, update many."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def find_existing(self, account_id: int) -> list[ExistingTransaction]:
        stmt = (
            select(
                SlTransaction.id,
                SlTransaction.date,
                SlTransaction.amount,
                SlTransaction.description,
                SlTransaction.reference,
                SlTransaction.sign_corrections,
            )
            .where(SlTransaction.account_id == account_id)
            .order_by(SlTransaction.id)
        )
        return [
            ExistingTransaction(
                id=row.id,
                date=row.date,
                amount=Decimal(row.amount),
                description=row.description,
                reference=row.reference,
                sign_corrections=row.sign_corrections or 0,
            )
            for row in self._session.execute(stmt)
        ]

    def insert_batch(self, payloads: Sequence[Mapping[str, Any]]) -> int:
        """Insert rows, silently skipping any that violate the content constraint.

        Returns the number of rows actually written. On PostgreSQL and SQLite
        a conflicting row is dropped by ``ON CONFLICT DO NOTHING``; other
        dialects get a plain insert and surface the ``IntegrityError``.
        """

        if not payloads:
            return 0
        dialect = self._session.get_bind().dialect.name
        inserted = 0
        for chunk in _chunks(list(payloads), INSERT_CHUNK_SIZE):
            rows = [dict(p) for p in chunk]
            if dialect == "postgresql":
                stmt = (
                    pg_insert(SlTransaction)
                    .values(rows)
                    .on_conflict_do_nothing(constraint="uq_sl_transactions_content")
                    .returning(SlTransaction.id)
                )
            elif dialect == "sqlite":
                stmt = (
                    sqlite_insert(SlTransaction)
                    .values(rows)
                    .on_conflict_do_nothing()
                    .returning(SlTransaction.id)
                )
            else:
                self._session.execute(insert(SlTransaction), rows)
                inserted += len(rows)
                continue
            inserted += len(self._session.execute(stmt).scalars().all())
        skipped = len(payloads) - inserted
        if skipped:
            _logger.info("insert_batch:conflicts_skipped count=%d", skipped)
        return inserted

    def update_one(self, tx_id: int, **fields: Any) -> bool:
        if not fields:
            return False
        result = self._session.execute(
            update(SlTransaction).where(SlTransaction.id == tx_id).values(**fields)
        )
        return bool(result.rowcount)

    def update_many(
        self, ids: Iterable[int], *, skip_excluded: bool = False, **fields: Any
    ) -> int:
        id_list = sorted(set(ids))
        if not id_list or not fields:
            return 0
        total = 0
        for chunk in _chunks(id_list, INSERT_CHUNK_SIZE):
            stmt = update(SlTransaction).where(SlTransaction.id.in_(chunk))
            if skip_excluded:
                stmt = stmt.where(SlTransaction.is_excluded.is_(False))
            result = self._session.execute(stmt.values(**fields))
            total += result.rowcount or 0
        return total

    def apply_correction(self, correction: SignCorrection) -> bool:
        """Overwrite a stored row with corrected content and reset its triage state.

        Runs in a savepoint; when the corrected content collides with another
        stored row the correction is dropped and ``False`` returned.
        """

        try:
            with self._session.begin_nested():
                self._session.execute(
                    update(SlTransaction)
                    .where(SlTransaction.id == correction.transaction_id)
                    .values(
                        amount=correction.amount,
                        date=correction.date,
                        value_date=correction.value_date,
                        description=correction.description,
                        category_id=None,
                        is_auto_categorized=False,
                        is_recurring=False,
                        sign_corrections=SlTransaction.sign_corrections + 1,
                    )
                )
        except IntegrityError:
            _logger.warning(
                "apply_correction:conflict tx_id=%d amount=%s",
                correction.transaction_id,
                correction.amount,
            )
            return False
        return True

    def get(self, tx_id: int) -> SlTransaction | None:
        return self._session.get(SlTransaction, tx_id)

    def get_many(self, ids: Iterable[int]) -> list[SlTransaction]:
        id_list = sorted(set(ids))
        if not id_list:
            return []
        stmt = select(SlTransaction).where(SlTransaction.id.in_(id_list)).order_by(SlTransaction.id)
        return list(self._session.scalars(stmt))

    def uncategorized(self, limit: int) -> list[SlTransaction]:
        """Oldest ``limit`` rows with no category that are not excluded."""

        stmt = (
            select(SlTransaction)
            .where(SlTransaction.category_id.is_(None))
            .where(SlTransaction.is_excluded.is_(False))
            .order_by(SlTransaction.date, SlTransaction.id)
            .limit(limit)
        )
        return list(self._session.scalars(stmt))

    def active(self, *, expenses: bool | None = None) -> list[SlTransaction]:
        """Non-excluded rows, optionally restricted to one direction."""

        stmt = select(SlTransaction).where(SlTransaction.is_excluded.is_(False))
        if expenses is True:
            stmt = stmt.where(SlTransaction.amount < 0)
        elif expenses is False:
            stmt = stmt.where(SlTransaction.amount > 0)
        return list(self._session.scalars(stmt.order_by(SlTransaction.id)))

    def history(self) -> list[HistoryItem]:
        stmt = (
            select(
                SlTransaction.id,
                SlTransaction.date,
                SlTransaction.amount,
                SlTransaction.description,
                SlTransaction.is_recurring,
            )
            .where(SlTransaction.is_excluded.is_(False))
            .order_by(SlTransaction.date, SlTransaction.id)
        )
        return [
            HistoryItem(
                id=row.id,
                date=row.date,
                amount=Decimal(row.amount),
                description=row.description,
                is_recurring=bool(row.is_recurring),
            )
            for row in self._session.execute(stmt)
        ]


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class SqlCategoryStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list_categories(self) -> list[CategorySnapshot]:
        """Snapshot of every category with its keywords.

        Categories come in display order; keywords by descending priority,
        then insertion order.
        """

        categories = list(
            self._session.scalars(select(SlCategory).order_by(SlCategory.sort_order, SlCategory.id))
        )
        rules: dict[int, list[KeywordRule]] = {c.id: [] for c in categories}
        kw_stmt = select(SlCategoryKeyword).order_by(
            SlCategoryKeyword.priority.desc(), SlCategoryKeyword.id
        )
        for kw in self._session.scalars(kw_stmt):
            rules.setdefault(kw.category_id, []).append(
                KeywordRule(keyword=kw.keyword, is_exact=bool(kw.is_exact), priority=kw.priority)
            )
        return [
            CategorySnapshot(
                id=c.id,
                name=c.name,
                alias_name=c.alias_name,
                keywords=tuple(rules.get(c.id, ())),
            )
            for c in categories
        ]

    def get(self, category_id: int) -> SlCategory | None:
        return self._session.get(SlCategory, category_id)

    def by_name(self, name: str) -> SlCategory | None:
        stmt = select(SlCategory).where(SlCategory.name == name)
        return self._session.scalars(stmt).first()

    def add_keyword(
        self,
        category_id: int,
        keyword: str,
        *,
        is_exact: bool = False,
        priority: int = 0,
    ) -> bool:
        """Attach ``keyword`` (lower-cased) to a category; ``False`` if already there."""

        kw = keyword.strip().lower()
        if not kw:
            return False
        exists = self._session.execute(
            select(SlCategoryKeyword.id)
            .where(SlCategoryKeyword.category_id == category_id)
            .where(SlCategoryKeyword.keyword == kw)
        ).first()
        if exists is not None:
            return False
        try:
            with self._session.begin_nested():
                self._session.add(
                    SlCategoryKeyword(
                        category_id=category_id, keyword=kw, is_exact=is_exact, priority=priority
                    )
                )
        except IntegrityError:
            return False
        return True


# ---------------------------------------------------------------------------
# Recurring keywords
# ---------------------------------------------------------------------------


class SqlRecurringKeywordStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list_keywords(self) -> list[str]:
        stmt = select(SlRecurringKeyword.keyword).order_by(SlRecurringKeyword.id)
        return list(self._session.scalars(stmt))

    def upsert(self, keyword: str) -> bool:
        """Store ``keyword`` (lower-cased); ``True`` when it was new."""

        kw = keyword.strip().lower()
        if not kw:
            return False
        exists = self._session.execute(
            select(SlRecurringKeyword.id).where(SlRecurringKeyword.keyword == kw)
        ).first()
        if exists is not None:
            return False
        try:
            with self._session.begin_nested():
                self._session.add(SlRecurringKeyword(keyword=kw))
        except IntegrityError:
            return False
        return True

    def delete(self, keyword: str) -> bool:
        kw = keyword.strip().lower()
        result = self._session.execute(
            delete(SlRecurringKeyword).where(SlRecurringKeyword.keyword == kw)
        )
        return bool(result.rowcount)


# ---------------------------------------------------------------------------
# Settings and credentials
# ---------------------------------------------------------------------------


def get_setting(session: Session, key: str) -> str | None:
    row = session.get(SlSetting, key)
    return row.value if row is not None else None


def set_setting(session: Session, key: str, value: str | None) -> None:
    """Write a setting row; ``None`` deletes it."""

    row = session.get(SlSetting, key)
    if value is None:
        if row is not None:
            session.delete(row)
        return
    if row is None:
        session.add(SlSetting(key=key, value=value))
    else:
        row.value = value
    session.flush()


def get_categorization_api_key(session: Session | None = None) -> str | None:
    """Credential for the external categorizer.

    A stored ``categorization_api_key`` setting wins; ``OPENAI_API_KEY`` from
    the environment is the fallback.
    """

    if session is not None:
        stored = (get_setting(session, API_KEY_SETTING) or "").strip()
        if stored:
            return stored
    env = (os.getenv(API_KEY_ENV) or "").strip()
    return env or None


__all__ = [
    "API_KEY_ENV",
    "API_KEY_SETTING",
    "SqlCategoryStore",
    "SqlRecurringKeywordStore",
    "SqlTransactionStore",
    "get_categorization_api_key",
    "get_setting",
    "set_setting",
]
