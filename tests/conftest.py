"""Pytest configuration for test isolation.

The suite runs from a plain checkout, so the workspace source roots are put
on ``sys.path`` here. Every test starts with the ledger's environment
variables cleared (a developer's ``DATABASE_URL`` or ``OPENAI_API_KEY`` must
never leak into a test), and tests that need a database get their own SQLite
file through the ``db_url`` fixture. The shared engine in ``db.client`` is
process-wide, so it is disposed around each such test.
"""

# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_SRC_DIRS = (_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT)
sys.path[:0] = [str(p) for p in _SRC_DIRS if str(p) not in sys.path]

from db.client import dispose_engine
from tests.helpers.db import bootstrap_sqlite_db

_LEDGER_ENV_VARS: tuple[str, ...] = (
    "DATABASE_URL",
    "OPENAI_API_KEY",
    "SL_CATEGORIZE_MODEL",
    "SL_CATEGORIZE_CHUNK_SIZE",
    "SL_AUTO_CATEGORIZE_LIMIT",
    "SL_PROPAGATION_LIMIT",
    "SL_IMPORT_CONCURRENCY",
    "STATEMENT_LEDGER_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _LEDGER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_url(tmp_path: Path) -> Iterator[str]:
    """URL of a fresh, schema-initialized SQLite ledger for one test."""

    dispose_engine()
    url = bootstrap_sqlite_db(tmp_path / "ledger.db")
    try:
        yield url
    finally:
        dispose_engine()
