from __future__ import annotations

from statement_ledger.ingest.columns import (
    CONTENT_MAJORITY,
    DESCRIPTION_MIN_AVG_LENGTH,
    MissingColumnsError,
    detect_columns,
)


def _rows(headers: list[str], *values: tuple) -> list[dict]:
    return [dict(zip(headers, row, strict=True)) for row in values]


def test_bank_headers_by_pattern():
    headers = ["תאריך", "תיאור", "סכום", "יתרה"]
    cols = detect_columns(headers, [])
    assert cols.date == "תאריך"
    assert cols.description == "תיאור"
    assert cols.amount == "סכום"
    assert cols.balance == "יתרה"
    assert cols.missing_required() == []


def test_card_headers_keep_billed_amount_and_original_amount_apart():
    headers = ["תאריך עסקה", "שם בית העסק", "סכום עסקה", "סכום חיוב", "מועד חיוב"]
    cols = detect_columns(headers, [])
    assert cols.date == "תאריך עסקה"
    assert cols.description == "שם בית העסק"
    assert cols.amount == "סכום חיוב"
    assert cols.original_amount == "סכום עסקה"
    assert cols.value_date == "מועד חיוב"


def test_debit_credit_pair_satisfies_amount():
    headers = ["תאריך", "תיאור הפעולה", "אסמכתא", "חובה", "זכות", "יתרה"]
    cols = detect_columns(headers, [])
    assert cols.amount is None
    assert (cols.debit, cols.credit) == ("חובה", "זכות")
    assert cols.reference == "אסמכתא"
    assert cols.has_debit_credit
    assert cols.missing_required() == []


def test_english_headers():
    cols = detect_columns(["Transaction Date", "Description", "Amount"], [])
    assert (cols.date, cols.description, cols.amount) == (
        "Transaction Date",
        "Description",
        "Amount",
    )


def test_content_pass_fills_unrecognized_headers():
    headers = ["col1", "col2", "col3"]
    samples = _rows(
        headers,
        ("01/02/2024", "שופרסל דיל תל אביב", "123.40"),
        ("02/02/2024", "ארומה רמת אביב", "₪ 18"),
        ("03/02/2024", "סונול צומת גלילות", "250"),
    )
    cols = detect_columns(headers, samples)
    assert (cols.date, cols.description, cols.amount) == ("col1", "col2", "col3")


def test_content_majority_boundary():
    assert CONTENT_MAJORITY == 0.5
    headers = ["a", "b", "c"]
    texts = ["שופרסל דיל", "ארומה רמת אביב", "סונול גלילות", "קסטרו עזריאלי"]
    amounts = ["10", "20", "30", "40"]

    # Exactly half of the sampled values look like dates: accepted.
    half = _rows(headers, *zip(["01/01/2024", "02/01/2024", "x", "y"], texts, amounts, strict=True))
    assert detect_columns(headers, half).date == "a"

    # One in four is below the majority: rejected.
    quarter = _rows(headers, *zip(["01/01/2024", "x", "y", "z"], texts, amounts, strict=True))
    cols = detect_columns(headers, quarter)
    assert cols.date is None
    assert "date" in cols.missing_required()


def test_description_needs_average_length_above_minimum():
    assert DESCRIPTION_MIN_AVG_LENGTH == 5.0
    headers = ["d", "t", "m"]
    dates = ["01/01/2024", "02/01/2024"]
    amounts = ["10", "20"]

    exactly_five = _rows(headers, *zip(dates, ["אבגדה", "הוזחט"], amounts, strict=True))
    assert detect_columns(headers, exactly_five).description is None

    six = _rows(headers, *zip(dates, ["אבגדהו", "הוזחטי"], amounts, strict=True))
    assert detect_columns(headers, six).description == "t"


def test_description_needs_hebrew_text():
    headers = ["d", "t", "m"]
    rows = _rows(headers, ("01/01/2024", "SOME LONG MERCHANT", "10"))
    assert detect_columns(headers, rows).description is None


def test_missing_columns_error_lists_fields():
    err = MissingColumnsError(["date", "amount"], ["foo", "bar"])
    assert "date (תאריך)" in str(err)
    assert "amount (סכום)" in str(err)
    assert err.headers == ("foo", "bar")


def test_merchant_name_header_with_unlabelled_numeric_column():
    headers = ["תאריך", "שם בית עסק", "Unnamed: 2"]
    # Short Latin names could never pass the content test for descriptions.
    merchants = ["KSP", "AM:PM", "BUG", "ZARA"]
    dates = ["01/03/2024", "02/03/2024", "03/03/2024", "04/03/2024"]

    half_numeric = _rows(
        headers, *zip(dates, merchants, ["120.50", "49.90", "n/a", "-"], strict=True)
    )
    cols = detect_columns(headers, half_numeric)
    assert cols.description == "שם בית עסק"
    assert cols.amount == "Unnamed: 2"
    assert (cols.debit, cols.credit) == (None, None)
    assert cols.missing_required() == []

    quarter_numeric = _rows(
        headers, *zip(dates, merchants, ["120.50", "n/a", "-", "?"], strict=True)
    )
    cols = detect_columns(headers, quarter_numeric)
    assert cols.description == "שם בית עסק"
    assert cols.amount is None
    assert cols.missing_required() == ["amount"]
