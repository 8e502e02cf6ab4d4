from __future__ import annotations

from datetime import date

import pytest
from db.client import session_scope

from statement_ledger.bulk import (
    CategoryNotFoundError,
    TransactionNotFoundError,
    bulk_set_category,
    bulk_set_recurring,
    normalize_ids,
    set_transaction_category,
    set_transaction_recurring,
)
from statement_ledger.persistence import SqlCategoryStore, SqlRecurringKeywordStore
from tests.helpers.db import add_account, add_category, add_transaction, all_transactions


def test_normalize_ids():
    assert normalize_ids([" 3", "1", 3, "", "1"]) == [3, 1]
    with pytest.raises(ValueError, match="invalid transaction id"):
        normalize_ids(["12", "x"])
    with pytest.raises(ValueError, match="no transaction ids"):
        normalize_ids(["  "])


@pytest.fixture()
def supermart(db_url: str) -> dict[str, int]:
    with session_scope(database_url=db_url) as session:
        groceries = add_category(session, "מכולת")
        digital = add_category(session, "דיגיטל")
        account = add_account(session)

        def tx(day: int, amount: str, description: str, **kw) -> int:
            return add_transaction(
                session,
                account,
                on=date(2024, 3, day),
                amount=amount,
                description=description,
                **kw,
            )

        return {
            "groceries": groceries,
            "digital": digital,
            "source": tx(1, "-50", "SUPERMART 00123"),
            "similar": tx(2, "-70", "SUPERMART 00456", category_id=digital),
            "income": tx(3, "20", "SUPERMART 00789"),
            "other": tx(4, "-10", "OTHER SHOP"),
            "excluded": tx(5, "-5", "SUPERMART 00999", is_excluded=True),
        }


def test_set_category_spreads_to_same_merchant_and_learns(db_url: str, supermart):
    with session_scope(database_url=db_url) as session:
        outcome = set_transaction_category(
            session, supermart["source"], supermart["groceries"], learn=True
        )
        keywords = SqlCategoryStore(session).list_categories()[0].keywords

    assert outcome.updated_ids == (supermart["similar"],)
    assert outcome.skipped_reason is None
    assert outcome.learned_keyword == "supermart"
    assert [k.keyword for k in keywords] == ["supermart"]

    rows = {t.id: t for t in all_transactions(db_url)}
    assert rows[supermart["source"]].category_id == supermart["groceries"]
    assert rows[supermart["source"]].is_auto_categorized is False
    assert rows[supermart["similar"]].category_id == supermart["groceries"]
    assert rows[supermart["income"]].category_id is None
    assert rows[supermart["other"]].category_id is None
    assert rows[supermart["excluded"]].category_id is None


def test_set_category_bounded_propagation(db_url: str, supermart):
    with session_scope(database_url=db_url) as session:
        add_transaction(
            session,
            add_account(session, name="second"),
            on=date(2024, 4, 1),
            amount="-30",
            description="SUPERMART 00111",
        )
    with session_scope(database_url=db_url) as session:
        outcome = set_transaction_category(
            session, supermart["source"], supermart["groceries"], propagation_limit=1
        )

    assert outcome.updated_ids == ()
    assert outcome.skipped_reason == (
        "2 similar transactions exceed the propagation limit of 1"
    )
    rows = {t.id: t for t in all_transactions(db_url)}
    assert rows[supermart["source"]].category_id == supermart["groceries"]
    assert rows[supermart["similar"]].category_id == supermart["digital"]


def test_set_category_only_the_source_and_clearing(db_url: str, supermart):
    with session_scope(database_url=db_url) as session:
        outcome = set_transaction_category(
            session, supermart["source"], supermart["groceries"], apply_to_similar=False
        )
        assert outcome.updated_ids == ()
        set_transaction_category(session, supermart["source"], None, apply_to_similar=False)

    rows = {t.id: t for t in all_transactions(db_url)}
    assert rows[supermart["source"]].category_id is None
    assert rows[supermart["similar"]].category_id == supermart["digital"]


def test_set_category_lookup_errors(db_url: str, supermart):
    with session_scope(database_url=db_url) as session:
        with pytest.raises(TransactionNotFoundError):
            set_transaction_category(session, 9999, supermart["groceries"])
        with pytest.raises(CategoryNotFoundError):
            set_transaction_category(session, supermart["source"], 9999)


@pytest.fixture()
def subscriptions(db_url: str) -> dict[str, int]:
    with session_scope(database_url=db_url) as session:
        account = add_account(session)
        return {
            "march": add_transaction(
                session, account, on=date(2024, 3, 1), amount="-49.90", description="NETFLIX"
            ),
            "april": add_transaction(
                session, account, on=date(2024, 4, 1), amount="-49.90", description="netflix"
            ),
            "may": add_transaction(
                session, account, on=date(2024, 5, 1), amount="-59.90", description="NETFLIX"
            ),
        }


def test_set_recurring_on_identical_rows(db_url: str, subscriptions):
    with session_scope(database_url=db_url) as session:
        outcome = set_transaction_recurring(
            session, subscriptions["march"], True, apply_to_identical=True
        )

    assert outcome.updated_ids == (subscriptions["april"],)
    rows = {t.id: t for t in all_transactions(db_url)}
    assert rows[subscriptions["march"]].is_recurring is True
    assert rows[subscriptions["april"]].is_recurring is True
    assert rows[subscriptions["may"]].is_recurring is False


def test_set_recurring_on_merchant_family(db_url: str, subscriptions):
    with session_scope(database_url=db_url) as session:
        outcome = set_transaction_recurring(
            session, subscriptions["march"], True, apply_to_merchant_family=True
        )

    assert sorted(outcome.updated_ids) == sorted([subscriptions["april"], subscriptions["may"]])
    assert all(t.is_recurring for t in all_transactions(db_url))


def test_learned_recurring_keyword_cascades_and_is_forgotten(db_url: str):
    with session_scope(database_url=db_url) as session:
        account = add_account(session)
        source = add_transaction(
            session, account, on=date(2024, 3, 1), amount="-20", description="SPOTIFY P1234"
        )
        add_transaction(
            session, account, on=date(2024, 4, 1), amount="-20", description="SPOTIFY STOCKHOLM"
        )
        add_transaction(
            session, account, on=date(2024, 4, 5), amount="-35", description="YES TV"
        )

    with session_scope(database_url=db_url) as session:
        outcome = set_transaction_recurring(session, source, True, learn=True)
        assert SqlRecurringKeywordStore(session).list_keywords() == ["spotify"]

    assert outcome.learned_keyword == "spotify"
    assert outcome.cascaded == 1
    flags = {t.description: t.is_recurring for t in all_transactions(db_url)}
    assert flags == {"SPOTIFY P1234": True, "SPOTIFY STOCKHOLM": True, "YES TV": False}

    with session_scope(database_url=db_url) as session:
        set_transaction_recurring(session, source, False, learn=True)
        assert SqlRecurringKeywordStore(session).list_keywords() == []


def test_bulk_actions_skip_excluded_rows(db_url: str, supermart):
    ids = [supermart["source"], str(supermart["other"]), supermart["excluded"]]
    with session_scope(database_url=db_url) as session:
        assert bulk_set_category(session, ids, supermart["groceries"]) == 2
        assert bulk_set_recurring(session, ids, True) == 2
        with pytest.raises(CategoryNotFoundError):
            bulk_set_category(session, ids, 9999)

    rows = {t.id: t for t in all_transactions(db_url)}
    assert rows[supermart["other"]].category_id == supermart["groceries"]
    assert rows[supermart["other"]].is_recurring is True
    assert rows[supermart["excluded"]].category_id is None
    assert rows[supermart["excluded"]].is_recurring is False
