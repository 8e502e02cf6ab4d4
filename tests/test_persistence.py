from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from db.client import session_scope

from statement_ledger.persistence import (
    API_KEY_SETTING,
    SqlCategoryStore,
    SqlTransactionStore,
    get_categorization_api_key,
    get_setting,
    set_setting,
)
from tests.helpers.db import add_account, add_category, all_transactions


def test_api_key_precedence(db_url: str, monkeypatch: pytest.MonkeyPatch):
    assert get_categorization_api_key() is None
    monkeypatch.setenv("OPENAI_API_KEY", " sk-env ")
    assert get_categorization_api_key() == "sk-env"

    with session_scope(database_url=db_url) as session:
        assert get_categorization_api_key(session) == "sk-env"
        set_setting(session, API_KEY_SETTING, "sk-stored")
        assert get_categorization_api_key(session) == "sk-stored"
        set_setting(session, API_KEY_SETTING, "   ")
        assert get_categorization_api_key(session) == "sk-env"


def test_set_setting_none_deletes(db_url: str):
    with session_scope(database_url=db_url) as session:
        set_setting(session, "theme", "dark")
        set_setting(session, "theme", "light")
    with session_scope(database_url=db_url) as session:
        assert get_setting(session, "theme") == "light"
        set_setting(session, "theme", None)
    with session_scope(database_url=db_url) as session:
        assert get_setting(session, "theme") is None


def test_insert_batch_skips_content_conflicts(db_url: str):
    with session_scope(database_url=db_url) as session:
        account = add_account(session)

    def row(description: str) -> dict:
        return {
            "account_id": account,
            "date": date(2024, 3, 1),
            "amount": Decimal("-18.00"),
            "description": description,
            "is_auto_categorized": False,
            "is_recurring": False,
            "is_excluded": False,
            "sign_corrections": 0,
        }

    with session_scope(database_url=db_url) as session:
        store = SqlTransactionStore(session)
        assert store.insert_batch([row("ארומה"), row("ארומה שונה")]) == 2
        assert store.insert_batch([row("ארומה"), row("קפה נטו")]) == 1
        assert store.insert_batch([]) == 0

    assert [t.description for t in all_transactions(db_url)] == ["ארומה", "ארומה שונה", "קפה נטו"]


def test_keywords_listed_by_priority(db_url: str):
    with session_scope(database_url=db_url) as session:
        category_id = add_category(session, "בריאות")
        store = SqlCategoryStore(session)
        assert store.add_keyword(category_id, "Pharm")
        assert store.add_keyword(category_id, "סופר פארם", priority=5)
        assert not store.add_keyword(category_id, "pharm")
        assert not store.add_keyword(category_id, "  ")

        [snapshot] = store.list_categories()
    assert [(k.keyword, k.priority) for k in snapshot.keywords] == [
        ("סופר פארם", 5),
        ("pharm", 0),
    ]
