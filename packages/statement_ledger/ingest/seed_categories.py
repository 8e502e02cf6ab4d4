from __future__ import annotations

# Seeder for the Hebrew category set and its starter keywords.
#
# Usage (example):
#   uv run python -m statement_ledger.ingest.seed_categories \
#     --database-url sqlite:///ledger.db
#
# Re-runnable: categories are matched by name (alias, kind and order are
# refreshed) and keywords by (category, keyword); nothing is deleted, so
# keywords learned from categorizations survive a reseed.
import argparse
import json
from pathlib import Path
from typing import Any

from db.client import session_scope
from db.models.ledger import SlCategory
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..logging_setup import configure_logging, get_logger
from ..persistence import SqlCategoryStore

_logger = get_logger("statement_ledger.ingest.seed_categories")

DEFAULT_SEED_FILE = Path(__file__).parent / "seeds" / "categories.v1.json"
_KINDS = frozenset({"expense", "income", "transfer"})


def load_seed(path: Path = DEFAULT_SEED_FILE) -> list[dict[str, Any]]:
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError("Seed JSON must be a list of categories")
    for entry in data:
        if not isinstance(entry, dict) or not str(entry.get("name") or "").strip():
            raise ValueError(f"Seed entry without a name: {entry!r}")
        if entry.get("kind", "expense") not in _KINDS:
            raise ValueError(f"Seed entry {entry['name']!r} has unknown kind {entry['kind']!r}")
    return data


def seed_categories(session: Session, data: list[dict[str, Any]]) -> tuple[int, int]:
    """Upsert ``data`` into the taxonomy; returns ``(new_categories, new_keywords)``."""

    store = SqlCategoryStore(session)
    created = 0
    keywords_added = 0
    for order, entry in enumerate(data, start=1):
        name = str(entry["name"]).strip()
        row = session.scalars(select(SlCategory).where(SlCategory.name == name)).first()
        if row is None:
            row = SlCategory(name=name)
            session.add(row)
            created += 1
        row.alias_name = entry.get("alias_name") or None
        row.kind = entry.get("kind", "expense")
        row.sort_order = order
        session.flush()
        for keyword in entry.get("keywords") or []:
            if store.add_keyword(row.id, str(keyword)):
                keywords_added += 1

    _logger.info(
        "seed_categories:done categories=%d new_categories=%d new_keywords=%d",
        len(data),
        created,
        keywords_added,
    )
    return created, keywords_added


def main() -> None:
    configure_logging()
    parser = argparse.ArgumentParser(description="Seed the category taxonomy")
    parser.add_argument("--database-url", dest="database_url", default=None)
    parser.add_argument("--file", dest="file", type=Path, default=DEFAULT_SEED_FILE)
    args = parser.parse_args()
    data = load_seed(args.file)
    with session_scope(database_url=args.database_url) as session:
        seed_categories(session, data)


if __name__ == "__main__":
    main()
