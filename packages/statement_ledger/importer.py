"""Statement import: parse a file and write its new transactions to one account.

Flow for one file
-----------------
1. :func:`~statement_ledger.ingest.parse_statement` turns bytes into
   transactions. A file that yields nothing stops here and no account is
   touched.
2. The target account is found (or created) by ``(institution, card)``.
3. The account's stored rows are loaded once and handed to the
   :class:`~statement_ledger.duplicates.DuplicateResolver`.
4. Accepted rows are keyword-categorized and recurring-matched against
   read-only snapshots, inserted in one batch, then queued sign corrections
   are applied.

:func:`import_files` runs several files in parallel, one session per file.
The ``(account, date, amount, description)`` unique constraint stays the
final arbiter when two workers race on the same account.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.client import session_scope
from db.models.ledger import SlAccount

from .duplicates import DuplicateResolver
from .ingest import parse_statement
from .keywords import KeywordCategorizer, RecurringKeywordMatcher
from .logging_setup import get_logger
from .models import Categories, ImportResult, Institution, ParsedTransaction
from .persistence import SqlCategoryStore, SqlRecurringKeywordStore, SqlTransactionStore
from .pmap import p_map

_logger = get_logger("statement_ledger.importer")

DEFAULT_ACCOUNT_NAMES: dict[Institution, str] = {
    Institution.BANK_HAPOALIM: "בנק הפועלים",
    Institution.BANK_LEUMI: "בנק לאומי",
    Institution.ISRACARD: "ישראכרט",
    Institution.LEUMI_CARD: "לאומי קארד",
    Institution.OTHER: "חשבון אחר",
}

DEFAULT_IMPORT_CONCURRENCY: int = 4


def default_account_name(institution: Institution, card_number: str | None = None) -> str:
    base = DEFAULT_ACCOUNT_NAMES.get(institution, DEFAULT_ACCOUNT_NAMES[Institution.OTHER])
    return f"{base} - {card_number}" if card_number else base


def _find_account(
    session: Session, institution: Institution, card_number: str | None
) -> SlAccount | None:
    stmt = select(SlAccount).where(SlAccount.institution == institution.value)
    if card_number is None:
        stmt = stmt.where(SlAccount.card_number.is_(None))
    else:
        stmt = stmt.where(SlAccount.card_number == card_number)
    return session.scalars(stmt.order_by(SlAccount.id)).first()


def get_or_create_account(
    session: Session,
    institution: Institution,
    card_number: str | None,
    *,
    name: str | None = None,
) -> SlAccount:
    """Return the account for ``(institution, card_number)``.

    When the file reveals a card number and the institution only has a
    card-less account so far, that account is adopted: it gets the card
    number and the name ``"<base> - <card>"``.

    The write runs in a savepoint. When a parallel import committed the same
    account first, the unique constraints reject the write and the winner's
    row is returned instead.
    """

    account = _find_account(session, institution, card_number)
    if account is not None:
        return account

    cardless = _find_account(session, institution, None) if card_number else None
    try:
        with session.begin_nested():
            if cardless is not None:
                cardless.card_number = card_number
                cardless.name = default_account_name(institution, card_number)
                session.flush()
                account, event = cardless, "account_upgraded"
            else:
                account = SlAccount(
                    name=name or default_account_name(institution, card_number),
                    institution=institution.value,
                    card_number=card_number,
                )
                session.add(account)
                session.flush()
                event = "account_created"
    except IntegrityError:
        existing = _find_account(session, institution, card_number)
        if existing is None:
            raise
        _logger.info(
            "import:account_raced account_id=%d institution=%s card=%s",
            existing.id,
            institution,
            card_number,
        )
        return existing

    _logger.info(
        "import:%s account_id=%d institution=%s card=%s",
        event,
        account.id,
        institution,
        card_number,
    )
    return account


def _payload(
    tx: ParsedTransaction,
    account_id: int,
    categorizer: KeywordCategorizer,
    recurring: RecurringKeywordMatcher,
) -> dict[str, Any]:
    category = categorizer.match(tx.description)
    return {
        "account_id": account_id,
        "date": tx.date,
        "value_date": tx.value_date,
        "amount": tx.amount,
        "description": tx.description,
        "reference": tx.reference,
        "original_amount": tx.original_amount,
        "original_currency": tx.original_currency,
        "category_id": category.id if category is not None else None,
        "is_auto_categorized": category is not None,
        "is_recurring": recurring.matches(tx.description),
    }


def import_statement(
    session: Session,
    content: bytes,
    filename: str,
    *,
    institution: Institution | None = None,
    categories: Categories | None = None,
    recurring_keywords: Iterable[str] | None = None,
    account_name: str | None = None,
) -> ImportResult:
    """Import one statement file into the ledger.

    Parameters
    ----------
    session:
        Caller-owned session; the caller commits.
    content, filename:
        Raw file bytes and the declared file name.
    institution:
        Force the institution instead of detecting it.
    categories, recurring_keywords:
        Snapshots for import-time matching; loaded from the stores when omitted.
    account_name:
        Name for a newly created account (default: per-institution name).

    Returns
    -------
    ImportResult
        ``imported + duplicates == total`` for a successful import.
    """

    parsed = parse_statement(content, filename, institution=institution)
    if not parsed.transactions:
        errors = parsed.errors or ("no transactions found",)
        return ImportResult(
            institution=parsed.institution,
            card_number=parsed.card_number,
            account_id=None,
            account_name=None,
            row_count=parsed.row_count,
            total=0,
            skipped_rows=parsed.skipped_rows,
            errors=tuple(errors),
            warnings=parsed.warnings,
        )

    account = get_or_create_account(
        session, parsed.institution, parsed.card_number, name=account_name
    )
    tx_store = SqlTransactionStore(session)

    resolver = DuplicateResolver(tx_store.find_existing(account.id))
    plan = resolver.resolve(parsed.transactions)

    if categories is None:
        categories = SqlCategoryStore(session).list_categories()
    if recurring_keywords is None:
        recurring_keywords = SqlRecurringKeywordStore(session).list_keywords()
    categorizer = KeywordCategorizer(categories)
    recurring = RecurringKeywordMatcher(recurring_keywords)

    payloads = [_payload(tx, account.id, categorizer, recurring) for tx in plan.accepted]
    imported = tx_store.insert_batch(payloads)
    # Rows the database rejected were inserted by a concurrent import.
    raced = len(payloads) - imported

    corrected = 0
    for correction in plan.corrections:
        if tx_store.apply_correction(correction):
            corrected += 1

    total = len(parsed.transactions)
    duplicates = plan.duplicates + raced
    _logger.info(
        "import:done file=%s account_id=%d total=%d imported=%d duplicates=%d "
        "corrected_existing=%d correction_capped=%d",
        filename,
        account.id,
        total,
        imported,
        duplicates,
        corrected,
        plan.capped,
    )
    return ImportResult(
        institution=parsed.institution,
        card_number=parsed.card_number,
        account_id=account.id,
        account_name=account.name,
        row_count=parsed.row_count,
        total=total,
        imported=imported,
        duplicates=duplicates,
        corrected_existing=corrected,
        skipped_rows=parsed.skipped_rows,
        errors=parsed.errors,
        warnings=parsed.warnings,
    )


def _read_failure(path: Path, error: OSError) -> ImportResult:
    return ImportResult(
        institution=Institution.OTHER,
        card_number=None,
        account_id=None,
        account_name=None,
        row_count=0,
        total=0,
        errors=(f"cannot read {path}: {error.strerror or error}",),
    )


def import_files(
    paths: Sequence[Path],
    *,
    database_url: str | None = None,
    institution: Institution | None = None,
    concurrency: int = DEFAULT_IMPORT_CONCURRENCY,
) -> list[tuple[Path, ImportResult]]:
    """Import several files in parallel, each in its own transaction.

    Unreadable files produce a failed :class:`ImportResult`. Database errors
    are not caught; when several workers fail they surface together as an
    ``ExceptionGroup``.
    """

    def _one(path: Path) -> tuple[Path, ImportResult]:
        try:
            content = path.read_bytes()
        except OSError as e:
            return path, _read_failure(path, e)
        with session_scope(database_url=database_url) as session:
            return path, import_statement(
                session, content, path.name, institution=institution
            )

    return p_map(paths, _one, concurrency=concurrency, stop_on_error=False)


__all__ = [
    "DEFAULT_ACCOUNT_NAMES",
    "default_account_name",
    "get_or_create_account",
    "import_files",
    "import_statement",
]
