from __future__ import annotations

import pytest

from statement_ledger.config import load_settings


def test_defaults():
    settings = load_settings()

    assert settings.database_url is None
    assert settings.categorize_model == "gpt-5-mini"
    assert settings.categorize_chunk_size == 40
    assert settings.auto_categorize_limit == 100
    assert settings.propagation_limit == 200
    assert settings.import_concurrency == 4


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///ledger.db")
    monkeypatch.setenv("SL_CATEGORIZE_MODEL", "gpt-test")
    monkeypatch.setenv("SL_CATEGORIZE_CHUNK_SIZE", " 10 ")
    monkeypatch.setenv("SL_IMPORT_CONCURRENCY", "")

    settings = load_settings()

    assert settings.database_url == "sqlite:///ledger.db"
    assert settings.categorize_model == "gpt-test"
    assert settings.categorize_chunk_size == 10
    assert settings.import_concurrency == 4


@pytest.mark.parametrize(
    ("value", "message"), [("ten", "must be an integer"), ("0", "must be >= 1")]
)
def test_invalid_integers(monkeypatch: pytest.MonkeyPatch, value: str, message: str):
    monkeypatch.setenv("SL_PROPAGATION_LIMIT", value)
    with pytest.raises(ValueError, match=message):
        load_settings()
