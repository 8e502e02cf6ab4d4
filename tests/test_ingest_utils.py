from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from statement_ledger.ingest.institutions import (
    decode_bytes,
    detect_institution,
    extract_card_number_from_rows,
    extract_card_number_from_text,
)
from statement_ledger.ingest.utils import cell_text, parse_amount, parse_date
from statement_ledger.models import Institution


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1,234.50", Decimal("1234.50")),
        ("(50.00)", Decimal("-50.00")),
        ("50.00-", Decimal("-50.00")),
        ("-50", Decimal("-50.00")),
        ("₪ 12", Decimal("12.00")),
        ("₪ -50.00", Decimal("-50.00")),
        ("₪-50.00", Decimal("-50.00")),
        ("- 1,200.00 ₪", Decimal("-1200.00")),
        ("+75", Decimal("75.00")),
        (12.345, Decimal("12.35")),
        (7, Decimal("7.00")),
        ("abc", Decimal("0.00")),
        ("", Decimal("0.00")),
        (None, Decimal("0.00")),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("15/03/2024", date(2024, 3, 15)),
        ("5.3.24", date(2024, 3, 5)),
        ("15.03.2024", date(2024, 3, 15)),
        ("2024-03-15", date(2024, 3, 15)),
        ("15-03-2024", date(2024, 3, 15)),
        (45366, date(2024, 3, 15)),
        ("45366", date(2024, 3, 15)),
        (datetime(2024, 3, 15, 10, 30), date(2024, 3, 15)),
        (date(2024, 3, 15), date(2024, 3, 15)),
    ],
)
def test_parse_date_formats(raw, expected):
    assert parse_date(raw) == expected


@pytest.mark.parametrize("raw", ["", "not a date", None, 12, True])
def test_parse_date_rejects_garbage(raw):
    assert parse_date(raw) is None


def test_cell_text_renders_spreadsheet_values():
    assert cell_text(float("nan")) == ""
    assert cell_text(3.0) == "3"
    assert cell_text("  שופרסל  ") == "שופרסל"
    assert cell_text(None) == ""


def test_decode_bytes_falls_back_to_hebrew_codepage():
    text = "בנק הפועלים"
    assert decode_bytes(text.encode("cp1255")) == text
    # UTF-8 with a byte-order mark
    assert decode_bytes(("\ufeff" + text).encode("utf-8")) == text


@pytest.mark.parametrize(
    ("content", "expected"),
    [
        ("בנק הפועלים - תנועות בחשבון".encode("cp1255"), Institution.BANK_HAPOALIM),
        ("בנק לאומי לישראל".encode(), Institution.BANK_LEUMI),
        ("ישראכרט - פירוט חיובים".encode(), Institution.ISRACARD),
        ("לאומי קארד - דף חשבון".encode("cp1255"), Institution.LEUMI_CARD),
        (b"Date,Description,Amount", Institution.OTHER),
    ],
)
def test_detect_institution(content, expected):
    assert detect_institution(content, "statement.csv") is expected


def test_detect_institution_prefers_earlier_markers():
    # "מקס" alone would mean the card issuer; the bank marker wins.
    content = "בנק הפועלים חיוב מקס".encode()
    assert detect_institution(content) is Institution.BANK_HAPOALIM


def test_card_number_from_text_only_for_card_issuers():
    preamble = "לאומי קארד\nכרטיס מסטרקארד המסתיים ב 4321\n"
    assert extract_card_number_from_text(preamble, Institution.LEUMI_CARD) == "4321"
    assert extract_card_number_from_text(preamble, Institution.BANK_LEUMI) is None


def test_card_number_from_spreadsheet_cells():
    rows = [["ישראכרט", ""], ["כרטיס ויזה 5678", ""], ["תאריך", "סכום"]]
    assert extract_card_number_from_rows(rows, Institution.ISRACARD) == "5678"
    assert extract_card_number_from_rows([["nothing here"]], Institution.ISRACARD) is None
