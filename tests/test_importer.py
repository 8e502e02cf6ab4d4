from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest
from db.client import session_scope
from db.models.ledger import SlAccount, SlTransaction
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from statement_ledger import importer
from statement_ledger.importer import (
    default_account_name,
    get_or_create_account,
    import_files,
    import_statement,
)
from statement_ledger.models import Institution
from tests.helpers.db import (
    add_account,
    add_category,
    add_recurring_keyword,
    all_transactions,
)


def _csv(*rows: str) -> bytes:
    header = "תאריך,תיאור,סכום,אסמכתא"
    return "\n".join((header, *rows)).encode("utf-8") + b"\n"


MARCH = _csv(
    "01/03/2024,שופרסל דיל,-120.50,A1",
    "05/03/2024,נטפליקס,-49.90,A2",
    "10/03/2024,משכורת,12000.00,A3",
)


def _import(db_url: str, content: bytes, filename: str = "march.csv"):
    with session_scope(database_url=db_url) as session:
        return import_statement(session, content, filename)


def test_import_creates_account_and_applies_keywords(db_url: str):
    with session_scope(database_url=db_url) as session:
        groceries = add_category(session, "מכולת", alias_name="Groceries", keywords=["שופרסל"])
        add_recurring_keyword(session, "נטפליקס")

    result = _import(db_url, MARCH)

    assert result.institution is Institution.OTHER
    assert (result.total, result.imported, result.duplicates) == (3, 3, 0)
    assert result.account_name == default_account_name(Institution.OTHER)
    assert result.errors == ()

    rows = {t.description: t for t in all_transactions(db_url)}
    assert rows["שופרסל דיל"].category_id == groceries
    assert rows["שופרסל דיל"].is_auto_categorized is True
    assert rows["נטפליקס"].is_recurring is True
    assert rows["משכורת"].category_id is None
    assert rows["משכורת"].amount == Decimal("12000.00")


def test_reimport_is_idempotent(db_url: str):
    first = _import(db_url, MARCH)
    second = _import(db_url, MARCH, "march-again.csv")

    assert first.imported == 3
    assert (second.imported, second.duplicates, second.total) == (0, 3, 3)
    assert second.account_id == first.account_id
    assert len(all_transactions(db_url)) == 3


def test_reimport_repairs_a_flipped_sign(db_url: str):
    wrong = _csv(
        "01/03/2024,שופרסל דיל,-120.50,A1",
        "05/03/2024,נטפליקס,49.90,A2",
        "10/03/2024,משכורת,12000.00,A3",
    )
    _import(db_url, wrong)
    with session_scope(database_url=db_url) as session:
        cat = add_category(session, "דיגיטל")
    # Triage state on the bad row is reset by the repair.
    netflix_id = next(t.id for t in all_transactions(db_url) if t.description == "נטפליקס")
    with session_scope(database_url=db_url) as session:
        session.get(SlTransaction, netflix_id).category_id = cat

    result = _import(db_url, MARCH)

    assert result.corrected_existing == 1
    assert (result.imported, result.duplicates) == (0, 3)
    rows = {t.description: t for t in all_transactions(db_url)}
    assert len(rows) == 3
    assert rows["נטפליקס"].amount == Decimal("-49.90")
    assert rows["נטפליקס"].sign_corrections == 1
    assert rows["נטפליקס"].category_id is None

    # A third identical import has nothing left to repair.
    again = _import(db_url, MARCH)
    assert again.corrected_existing == 0


def test_unparseable_file_touches_no_account(db_url: str):
    result = _import(db_url, b"foo,bar,baz\nx,y,z\n", "weird.csv")

    assert result.account_id is None
    assert result.errors
    with session_scope(database_url=db_url) as session:
        assert session.scalar(select(func.count()).select_from(SlAccount)) == 0


def test_cardless_account_is_upgraded_when_card_appears(db_url: str):
    with session_scope(database_url=db_url) as session:
        cardless = get_or_create_account(session, Institution.ISRACARD, None)
        assert cardless.name == "ישראכרט"
        upgraded = get_or_create_account(session, Institution.ISRACARD, "1234")
        assert upgraded.id == cardless.id
        assert upgraded.card_number == "1234"
        assert upgraded.name == "ישראכרט - 1234"

        # A second card of the same issuer gets its own account.
        other = get_or_create_account(session, Institution.ISRACARD, "9999")
        assert other.id != cardless.id


def test_import_files_preserves_order_and_reports_unreadable(db_url: str, tmp_path: Path):
    march = tmp_path / "march.csv"
    march.write_bytes(MARCH)
    april = tmp_path / "april.csv"
    april.write_bytes(_csv("01/04/2024,ארומה,-18.00,B1"))
    missing = tmp_path / "missing.csv"

    results = import_files([march, missing, april], database_url=db_url, concurrency=1)

    assert [p.name for p, _ in results] == ["march.csv", "missing.csv", "april.csv"]
    by_name = {p.name: r for p, r in results}
    assert by_name["march.csv"].imported == 3
    assert by_name["april.csv"].imported == 1
    assert by_name["april.csv"].account_id == by_name["march.csv"].account_id
    assert by_name["missing.csv"].account_id is None
    assert by_name["missing.csv"].errors[0].startswith("cannot read")


def test_default_account_names():
    assert default_account_name(Institution.LEUMI_CARD, "4321") == "לאומי קארד - 4321"
    assert default_account_name(Institution.BANK_HAPOALIM) == "בנק הפועלים"
    assert default_account_name(Institution.OTHER) == "חשבון אחר"


def _card_csv(*rows: str) -> bytes:
    lines = (
        "לאומי קארד - דף חשבון",
        "כרטיס מסטרקארד המסתיים ב 4321",
        "תאריך עסקה,שם בית העסק,סכום עסקה,סכום חיוב,הערות",
        *rows,
    )
    return "\n".join(lines).encode("utf-8") + b"\n"


def _account_count(db_url: str) -> int:
    with session_scope(database_url=db_url) as session:
        return session.scalar(select(func.count()).select_from(SlAccount))


@pytest.mark.parametrize(
    ("content", "card_number"),
    [
        (
            (
                _card_csv("05/03/2024,שופרסל דיל,120.50,120.50,"),
                _card_csv("05/04/2024,שופרסל דיל,98.00,98.00,"),
            ),
            "4321",
        ),
        ((_csv("01/03/2024,ארומה,-18.00,C1"), _csv("01/04/2024,ארומה,-21.00,C2")), None),
    ],
)
def test_parallel_imports_share_one_new_account(db_url: str, tmp_path: Path, content, card_number):
    paths = []
    for i, body in enumerate(content):
        path = tmp_path / f"statement-{i}.csv"
        path.write_bytes(body)
        paths.append(path)

    results = import_files(paths, database_url=db_url, concurrency=2)

    assert [r.imported for _, r in results] == [1, 1]
    assert results[0][1].account_id == results[1][1].account_id
    assert results[0][1].card_number == card_number
    assert _account_count(db_url) == 1


@pytest.mark.parametrize("card_number", ["4321", None])
def test_account_committed_by_a_parallel_import_is_reused(
    db_url: str, monkeypatch: pytest.MonkeyPatch, card_number: str | None
):
    with session_scope(database_url=db_url) as session:
        winner = add_account(session, institution="LEUMI_CARD", card_number=card_number)

    real_find = importer._find_account
    calls: list[str | None] = []

    def stale_first_lookup(session, institution, card):
        calls.append(card)
        if len(calls) == 1:
            return None
        return real_find(session, institution, card)

    monkeypatch.setattr(importer, "_find_account", stale_first_lookup)

    with session_scope(database_url=db_url) as session:
        account = get_or_create_account(session, Institution.LEUMI_CARD, card_number)
        assert account.id == winner

    assert _account_count(db_url) == 1


def test_one_cardless_account_per_institution(db_url: str):
    with pytest.raises(IntegrityError):
        with session_scope(database_url=db_url) as session:
            add_account(session, institution="ISRACARD")
            add_account(session, institution="ISRACARD")

    with session_scope(database_url=db_url) as session:
        add_account(session, institution="ISRACARD")
        add_account(session, institution="ISRACARD", card_number="1111")
        add_account(session, institution="LEUMI_CARD")
    assert _account_count(db_url) == 3
