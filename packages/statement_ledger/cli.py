# ruff: noqa: I001
"""CLI for the ``statement_ledger`` package.

Each subcommand delegates to a ``cmd_*`` handler that returns a process exit
code; handlers print ``Error: ...`` to stderr and return ``1`` on failure.
The root callback loads a local ``.env`` (without overriding the process
environment) and configures logging before any command runs.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from sqlalchemy.orm import Session
from typer.models import ArgumentInfo, OptionInfo

from .config import load_settings
from .logging_setup import configure_logging
from .models import Institution


def _err(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _parse_institution(value: str | None) -> Institution | None:
    if value is None:
        return None
    try:
        return Institution(value.strip().upper())
    except ValueError as e:
        choices = ", ".join(i.value for i in Institution)
        raise ValueError(f"unknown institution {value!r} (expected one of: {choices})") from e


# ---- Command handlers --------------------------------------------------------


def cmd_init_db(*, database_url: str | None) -> int:
    from db import metadata
    from db.client import get_engine

    try:
        metadata.create_all(get_engine(database_url=database_url))
    except Exception as e:
        return _err(f"failed to create tables: {e}")
    print("Database tables are ready.")
    return 0


def cmd_seed_categories(*, database_url: str | None, file: Path | None) -> int:
    from db.client import session_scope
    from .ingest.seed_categories import DEFAULT_SEED_FILE, load_seed, seed_categories

    try:
        data = load_seed(file or DEFAULT_SEED_FILE)
    except (OSError, ValueError) as e:
        return _err(f"cannot load seed file: {e}")
    try:
        with session_scope(database_url=database_url) as session:
            created, keywords = seed_categories(session, data)
    except Exception as e:
        return _err(f"seeding failed: {e}")
    print(f"Seeded {len(data)} categories ({created} new, {keywords} new keywords).")
    return 0


def cmd_parse(path: Path, *, institution: str | None) -> int:
    from .ingest import parse_statement

    try:
        forced = _parse_institution(institution)
        content = path.read_bytes()
    except ValueError as e:
        return _err(str(e))
    except OSError as e:
        return _err(f"cannot read {path}: {e.strerror or e}")

    result = parse_statement(content, path.name, institution=forced)
    print(
        f"institution={result.institution} card={result.card_number or '-'} "
        f"rows={result.row_count} parsed={result.success_count} skipped={result.skipped_rows}"
    )
    for tx in result.transactions:
        print(f"{tx.date.isoformat()}\t{tx.amount:.2f}\t{tx.description}")
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    for error in result.errors:
        print(f"Error: {error}", file=sys.stderr)
    return 1 if result.failed else 0


def cmd_import(
    paths: list[Path],
    *,
    database_url: str | None,
    institution: str | None,
    concurrency: int | None,
) -> int:
    from .importer import import_files

    try:
        forced = _parse_institution(institution)
        settings = load_settings()
    except ValueError as e:
        return _err(str(e))

    workers = concurrency or settings.import_concurrency
    try:
        results = import_files(
            paths,
            database_url=database_url,
            institution=forced,
            concurrency=max(1, min(workers, len(paths))),
        )
    except ExceptionGroup as eg:
        for e in eg.exceptions:
            _err(f"import failed: {e}")
        return 1
    except Exception as e:
        return _err(f"import failed: {e}")

    exit_code = 0
    for path, result in results:
        print(
            f"{path.name}: institution={result.institution} card={result.card_number or '-'} "
            f"imported={result.imported} duplicates={result.duplicates} "
            f"correctedExisting={result.corrected_existing} skipped={result.skipped_rows} "
            f"errors={len(result.errors)}"
        )
        for warning in result.warnings:
            print(f"Warning: {path.name}: {warning}", file=sys.stderr)
        for error in result.errors:
            print(f"Error: {path.name}: {error}", file=sys.stderr)
        if result.account_id is None:
            exit_code = 1
    return exit_code


def cmd_auto_categorize(*, database_url: str | None, limit: int | None) -> int:
    from db.client import session_scope
    from .categorize import auto_categorize
    from .persistence import get_categorization_api_key

    try:
        settings = load_settings()
        with session_scope(database_url=database_url) as session:
            result = auto_categorize(
                session,
                api_key=get_categorization_api_key(session),
                limit=limit or settings.auto_categorize_limit,
                chunk_size=settings.categorize_chunk_size,
                model=settings.categorize_model,
            )
    except Exception as e:
        return _err(f"auto-categorize failed: {e}")
    print(
        f"categorized={result.categorized} total={result.total} "
        f"newKeywords={result.new_keywords}"
    )
    return 0


def cmd_recategorize(tx_id: int, *, database_url: str | None) -> int:
    from db.client import session_scope
    from .bulk import TransactionNotFoundError
    from .categorize import recategorize_transaction
    from .persistence import get_categorization_api_key

    try:
        settings = load_settings()
        with session_scope(database_url=database_url) as session:
            result = recategorize_transaction(
                session,
                tx_id,
                api_key=get_categorization_api_key(session),
                propagation_limit=settings.propagation_limit,
                model=settings.categorize_model,
            )
    except TransactionNotFoundError as e:
        return _err(str(e))
    except Exception as e:
        return _err(f"recategorize failed: {e}")

    if result.category is None:
        print("No matching category found for this transaction.")
        return 0
    print(
        f"category={result.category.name} changed={result.changed} "
        f"updatedSimilar={len(result.updated_similar)}"
    )
    if result.skipped_reason:
        print(f"Warning: propagation skipped: {result.skipped_reason}", file=sys.stderr)
    return 0


def _resolve_category_id(session: Session, value: str) -> int | None:
    from .categories import find_category_by_name
    from .persistence import SqlCategoryStore

    text = value.strip()
    if text.lower() in {"none", "-"}:
        return None
    if text.isdigit():
        return int(text)
    category = find_category_by_name(SqlCategoryStore(session).list_categories(), text)
    if category is None:
        raise LookupError(f"no category matches {value!r}")
    return category.id


def cmd_set_category(
    tx_id: int,
    category: str,
    *,
    database_url: str | None,
    apply_to_similar: bool,
    learn: bool,
) -> int:
    from db.client import session_scope
    from .bulk import set_transaction_category

    try:
        settings = load_settings()
        with session_scope(database_url=database_url) as session:
            category_id = _resolve_category_id(session, category)
            outcome = set_transaction_category(
                session,
                tx_id,
                category_id,
                apply_to_similar=apply_to_similar,
                learn=learn,
                propagation_limit=settings.propagation_limit,
            )
    except LookupError as e:
        return _err(str(e))
    except Exception as e:
        return _err(f"set-category failed: {e}")
    print(
        f"updatedSimilar={len(outcome.updated_ids)} "
        f"keywordAdded={outcome.learned_keyword or '-'}"
    )
    if outcome.skipped_reason:
        print(f"Warning: propagation skipped: {outcome.skipped_reason}", file=sys.stderr)
    return 0


def cmd_set_recurring(
    tx_id: int,
    is_recurring: bool,
    *,
    database_url: str | None,
    apply_to_identical: bool,
    apply_to_merchant_family: bool,
    learn: bool,
) -> int:
    from db.client import session_scope
    from .bulk import set_transaction_recurring

    try:
        settings = load_settings()
        with session_scope(database_url=database_url) as session:
            outcome = set_transaction_recurring(
                session,
                tx_id,
                is_recurring,
                apply_to_identical=apply_to_identical,
                apply_to_merchant_family=apply_to_merchant_family,
                learn=learn,
                propagation_limit=settings.propagation_limit,
            )
    except LookupError as e:
        return _err(str(e))
    except Exception as e:
        return _err(f"set-recurring failed: {e}")
    print(
        f"isRecurring={is_recurring} updatedRelated={len(outcome.updated_ids)} "
        f"updatedByKeyword={outcome.cascaded} keywordAdded={outcome.learned_keyword or '-'}"
    )
    if outcome.skipped_reason:
        print(f"Warning: propagation skipped: {outcome.skipped_reason}", file=sys.stderr)
    return 0


def cmd_recurring_suggestions(*, database_url: str | None, limit: int | None) -> int:
    from db.client import session_scope
    from .recurring import MAX_SUGGESTIONS, recurring_suggestions

    try:
        with session_scope(database_url=database_url) as session:
            suggestions = recurring_suggestions(session, limit=limit or MAX_SUGGESTIONS)
    except Exception as e:
        return _err(f"recurring-suggestions failed: {e}")
    if not suggestions:
        print("No recurring suggestions.")
        return 0
    for s in suggestions:
        ids = ",".join(str(i) for i in s.transaction_ids)
        print(
            f"{s.key}\t{s.label}\tlast={s.last_date.isoformat()} "
            f"occurrences={s.occurrences} typical={s.typical_amount:.2f}\tids={ids}"
        )
    return 0


def cmd_apply_suggestion(key: str, *, database_url: str | None) -> int:
    from db.client import session_scope
    from .recurring import apply_suggestion

    try:
        with session_scope(database_url=database_url) as session:
            suggestion, updated = apply_suggestion(session, key.strip())
    except LookupError as e:
        return _err(str(e))
    except Exception as e:
        return _err(f"apply-suggestion failed: {e}")
    print(f"{suggestion.action} applied to {updated} transactions ({suggestion.label}).")
    return 0


def cmd_snooze(key: str, *, database_url: str | None, days: float | None, clear: bool) -> int:
    from db.client import session_scope
    from .snooze import DEFAULT_SNOOZE_DAYS, SettingsSnoozeStore

    try:
        with session_scope(database_url=database_url) as session:
            store = SettingsSnoozeStore(session)
            if clear:
                store.clear(key)
                print(f"Snooze cleared for {key.strip()}.")
            else:
                expiry = store.snooze(key, DEFAULT_SNOOZE_DAYS if days is None else days)
                print(f"{key.strip()} snoozed until {expiry}.")
    except ValueError as e:
        return _err(str(e))
    except Exception as e:
        return _err(f"snooze failed: {e}")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import Israeli bank and credit-card statements into a ledger, categorize "
        "them and manage recurring payments. Loads a local .env before running."
    ),
)

# Module-level parameter objects shared through ``Annotated`` (ruff B008 forbids
# calls in parameter defaults). Inside ``Annotated`` the first positional is an
# option name, not a default.
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
INSTITUTION_OPTION: OptionInfo = typer.Option(
    "--institution",
    help="Force the institution (BANK_HAPOALIM, BANK_LEUMI, ISRACARD, LEUMI_CARD, OTHER).",
)
STATEMENT_PATHS_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Statement files (.csv, .xls, .xlsx, .pdf).",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports unreadable files per file
)


@app.command("init-db")
def init_db_cmd(database_url: Annotated[str | None, DATABASE_URL_OPTION] = None) -> None:
    """Create all tables from the ORM metadata."""

    raise typer.Exit(cmd_init_db(database_url=database_url))


@app.command("seed-categories")
def seed_categories_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    file: Path | None = typer.Option(None, "--file", help="Seed JSON (default: bundled)."),
) -> None:
    """Upsert the bundled category taxonomy and starter keywords."""

    raise typer.Exit(cmd_seed_categories(database_url=database_url, file=file))


@app.command("import")
def import_cmd(
    paths: Annotated[list[Path], STATEMENT_PATHS_ARGUMENT],
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    institution: Annotated[str | None, INSTITUTION_OPTION] = None,
    concurrency: int | None = typer.Option(
        None, "--concurrency", min=1, help="Files imported in parallel."
    ),
) -> None:
    """Import statement files; prints one summary line per file."""

    raise typer.Exit(
        cmd_import(
            paths, database_url=database_url, institution=institution, concurrency=concurrency
        )
    )


@app.command("parse")
def parse_cmd(
    path: Path = typer.Argument(..., dir_okay=False, help="Statement file to parse."),
    institution: Annotated[str | None, INSTITUTION_OPTION] = None,
) -> None:
    """Parse a statement without touching the database."""

    raise typer.Exit(cmd_parse(path, institution=institution))


@app.command("auto-categorize")
def auto_categorize_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    limit: int | None = typer.Option(None, "--limit", min=1, help="Rows per run."),
) -> None:
    """Categorize the oldest uncategorized transactions."""

    raise typer.Exit(cmd_auto_categorize(database_url=database_url, limit=limit))


@app.command("recategorize")
def recategorize_cmd(
    tx_id: int = typer.Argument(..., help="Transaction id."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Re-check one transaction and spread the result to the same merchant."""

    raise typer.Exit(cmd_recategorize(tx_id, database_url=database_url))


@app.command("set-category")
def set_category_cmd(
    tx_id: int = typer.Argument(..., help="Transaction id."),
    category: str = typer.Argument(..., help="Category id or name ('none' clears)."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    apply_to_similar: bool = typer.Option(
        True, "--apply-to-similar/--no-apply-to-similar", help="Also update same-merchant rows."
    ),
    learn: bool = typer.Option(
        False, "--learn/--no-learn", help="Learn the merchant as a category keyword."
    ),
) -> None:
    """Manually set a transaction's category."""

    raise typer.Exit(
        cmd_set_category(
            tx_id,
            category,
            database_url=database_url,
            apply_to_similar=apply_to_similar,
            learn=learn,
        )
    )


@app.command("set-recurring")
def set_recurring_cmd(
    tx_id: int = typer.Argument(..., help="Transaction id."),
    is_recurring: bool = typer.Option(..., "--on/--off", help="Mark or unmark as recurring."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    apply_to_identical: bool = typer.Option(False, "--apply-to-identical"),
    apply_to_merchant_family: bool = typer.Option(False, "--apply-to-merchant-family"),
    learn: bool = typer.Option(False, "--learn", help="Learn (or forget) the merchant keyword."),
) -> None:
    """Mark a transaction as recurring (or not)."""

    raise typer.Exit(
        cmd_set_recurring(
            tx_id,
            is_recurring,
            database_url=database_url,
            apply_to_identical=apply_to_identical,
            apply_to_merchant_family=apply_to_merchant_family,
            learn=learn,
        )
    )


@app.command("recurring-suggestions")
def recurring_suggestions_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    limit: int | None = typer.Option(None, "--limit", min=1),
) -> None:
    """List current recurring add/remove suggestions."""

    raise typer.Exit(cmd_recurring_suggestions(database_url=database_url, limit=limit))


@app.command("apply-suggestion")
def apply_suggestion_cmd(
    key: str = typer.Argument(..., help="Suggestion key, e.g. add:expense:netflix"),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Apply a recurring suggestion to its transactions."""

    raise typer.Exit(cmd_apply_suggestion(key, database_url=database_url))


@app.command("snooze")
def snooze_cmd(
    key: str = typer.Argument(..., help="Suggestion key."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    days: float | None = typer.Option(None, "--days", help="Days to snooze (1-365)."),
) -> None:
    """Hide a recurring suggestion for a while."""

    raise typer.Exit(cmd_snooze(key, database_url=database_url, days=days, clear=False))


@app.command("unsnooze")
def unsnooze_cmd(
    key: str = typer.Argument(..., help="Suggestion key."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Remove a snooze."""

    raise typer.Exit(cmd_snooze(key, database_url=database_url, days=None, clear=True))


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    log_level: str | None = typer.Option(
        None, "--log-level", help="Override STATEMENT_LEDGER_LOG_LEVEL."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    try:
        configure_logging(log_level)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level") from e

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    app()
