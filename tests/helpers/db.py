"""DB helpers for tests: bootstrap a temporary SQLite ledger and insert rows."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from pathlib import Path

from db import Base
from db.client import get_engine, session_scope
from db.models.ledger import (
    SlAccount,
    SlCategory,
    SlCategoryKeyword,
    SlRecurringKeyword,
    SlTransaction,
)
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from statement_ledger.ingest.seed_categories import DEFAULT_SEED_FILE, load_seed, seed_categories


def bootstrap_sqlite_db(db_file: Path) -> str:
    """Create a SQLite database file, initialize the schema, and return the URL.

    A file-backed database lets several connections (and the import worker
    threads) share state; in-memory SQLite is per-connection.
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)
    Base.metadata.create_all(bind=engine)
    return url


def seed_taxonomy_from_json(*, database_url: str, json_path: Path = DEFAULT_SEED_FILE) -> None:
    with session_scope(database_url=database_url) as session:
        seed_categories(session, load_seed(json_path))


def add_category(
    session: Session,
    name: str,
    *,
    alias_name: str | None = None,
    kind: str = "expense",
    keywords: Iterable[str] = (),
) -> int:
    order = session.scalar(select(func.count()).select_from(SlCategory)) or 0
    category = SlCategory(name=name, alias_name=alias_name, kind=kind, sort_order=order + 1)
    session.add(category)
    session.flush()
    for keyword in keywords:
        session.add(SlCategoryKeyword(category_id=category.id, keyword=keyword.lower()))
    session.flush()
    return category.id


def add_recurring_keyword(session: Session, keyword: str) -> None:
    session.add(SlRecurringKeyword(keyword=keyword.lower()))
    session.flush()


def add_account(
    session: Session,
    *,
    institution: str = "OTHER",
    card_number: str | None = None,
    name: str = "Test account",
) -> int:
    account = SlAccount(name=name, institution=institution, card_number=card_number)
    session.add(account)
    session.flush()
    return account.id


def add_transaction(
    session: Session,
    account_id: int,
    *,
    on: date,
    amount: str | Decimal,
    description: str,
    reference: str | None = None,
    category_id: int | None = None,
    is_recurring: bool = False,
    is_excluded: bool = False,
) -> int:
    tx = SlTransaction(
        account_id=account_id,
        date=on,
        amount=Decimal(amount),
        description=description,
        reference=reference,
        category_id=category_id,
        is_auto_categorized=False,
        is_recurring=is_recurring,
        is_excluded=is_excluded,
        sign_corrections=0,
    )
    session.add(tx)
    session.flush()
    return tx.id


def all_transactions(database_url: str) -> list[SlTransaction]:
    """Every stored transaction, detached, ordered by id."""

    with session_scope(database_url=database_url) as session:
        return list(session.scalars(select(SlTransaction).order_by(SlTransaction.id)))
