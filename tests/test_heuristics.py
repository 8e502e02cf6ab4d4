from __future__ import annotations

from statement_ledger.heuristics import identify_with_heuristics
from statement_ledger.models import CategorySnapshot, KeywordRule
from statement_ledger.prompting import build_instructions, build_user_content

CATEGORIES = (
    CategorySnapshot(
        id=1, name="מכולת", alias_name="Groceries", keywords=(KeywordRule("טיב טעם"),)
    ),
    CategorySnapshot(id=3, name="ביגוד והנעלה", alias_name="Clothing"),
    CategorySnapshot(id=4, name="בריאות", alias_name="Health"),
    CategorySnapshot(id=5, name="אלקטרוניקה", keywords=(KeywordRule("ksp"),)),
)


def test_well_known_merchants():
    result = identify_with_heuristics(
        ["שופרסל דיל", "סופר פארם רמת גן", "H&M TLV"], CATEGORIES
    )
    assert result == {
        "שופרסל דיל": "מכולת",
        "סופר פארם רמת גן": "בריאות",
        "H&M TLV": "ביגוד והנעלה",
    }


def test_keyword_fallback_and_its_switch():
    assert identify_with_heuristics(["טיב טעם רמת השרון"], CATEGORIES) == {
        "טיב טעם רמת השרון": "מכולת"
    }
    assert (
        identify_with_heuristics(
            ["טיב טעם רמת השרון"], CATEGORIES, include_keyword_fallback=False
        )
        == {}
    )


def test_unresolvable_pattern_skips_later_patterns():
    # "ksp" aliases name no stored category; only the learned keyword can help.
    categories = CATEGORIES[:3]
    assert identify_with_heuristics(["KSP"], categories) == {}
    assert identify_with_heuristics(["KSP"], CATEGORIES) == {"KSP": "אלקטרוניקה"}


def test_unknown_merchant_is_absent():
    assert identify_with_heuristics(["zzz unknown"], CATEGORIES) == {}


def test_user_content_numbers_descriptions():
    content = build_user_content(["שופרסל דיל", "NETFLIX"])
    assert content.startswith("תיאורי העסקאות:\n1. שופרסל דיל\n2. NETFLIX\n\n")


def test_instructions_list_categories_with_aliases():
    text = build_instructions(CATEGORIES)
    assert "הקטגוריות הזמינות הן: מכולת (Groceries), ביגוד והנעלה (Clothing)" in text
    assert text.count("אלקטרוניקה") == 1
