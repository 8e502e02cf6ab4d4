"""Offline categorization used when the external categorizer is unavailable.

Two stages per description: a curated table of well-known Israeli merchants
mapped to ordered category aliases, then (optionally) the learned keyword
rules. The output has the same ``{description: categoryName}`` shape as a
parsed categorizer reply.
"""

from __future__ import annotations

from collections.abc import Iterable

from .categories import find_category_by_aliases
from .keywords import KeywordCategorizer
from .models import Categories

_CLOTHING = ("ביגוד והנעלה", "ביגוד", "אופנה", "בגדים", "clothing")
_GROCERIES = ("מכולת", "סופר", "מזון", "קניות", "groceries")
_RESTAURANTS = ("מסעדות וקפה", "מסעדות", "אוכל", "בילוי", "restaurants")
_CAFE = ("מסעדות וקפה", "מסעדות", "קפה", "אוכל", "restaurants")
_FUEL = ("דלק", "תחבורה", "רכב", "fuel")
_RIDES = ("תחבורה", "רכב", "נסיעות", "transportation")
_PHARMACY = ("בריאות", "טיפוח אישי", "פארם", "health")
_HEALTH = ("בריאות", "רפואה", "health")
_ELECTRONICS = ("קניות כלליות", "קניות", "טכנולוגיה", "מחשבים", "shopping")
_FURNITURE = ("קניות כלליות", "בית", "ריהוט", "shopping")

# Merchant substring (matched case-insensitively) -> category aliases in
# preference order. Longer names come before their prefixes.
MERCHANT_PATTERNS: dict[str, tuple[str, ...]] = {
    "זארה": _CLOTHING,
    "zara": _CLOTHING,
    "h&m": _CLOTHING,
    "קסטרו": _CLOTHING,
    "castro": _CLOTHING,
    "גולף": _CLOTHING,
    "fox": _CLOTHING,
    "נייק": _CLOTHING,
    "אדידס": _CLOTHING,
    "טרמינל": _CLOTHING,
    "shein": _CLOTHING,
    "תמנון": _CLOTHING,
    "tamnun": _CLOTHING,
    "שופרסל": _GROCERIES,
    "shufersal": _GROCERIES,
    "רמי לוי": _GROCERIES,
    "ויקטורי": _GROCERIES,
    "יוחננוף": _GROCERIES,
    "אושר עד": _GROCERIES,
    "מגה": _GROCERIES,
    "מקדונלדס": _RESTAURANTS,
    "mcdonalds": _RESTAURANTS,
    "בורגר": _RESTAURANTS,
    "פיצה": _RESTAURANTS,
    "ארומה": _CAFE,
    "קפה": _CAFE,
    "סונול": _FUEL,
    "דלק": _FUEL,
    "פז": _FUEL,
    "יאנגו": _RIDES,
    "yango": _RIDES,
    "גט טקסי": _RIDES,
    "gett": _RIDES,
    "סופר פארם": _PHARMACY,
    "super-pharm": _PHARMACY,
    "מכבי": _HEALTH,
    "כללית": _HEALTH,
    "מאוחדת": _HEALTH,
    "ksp": _ELECTRONICS,
    "באג": _ELECTRONICS,
    "איקאה": _FURNITURE,
    "ikea": _FURNITURE,
}


def _ordered_patterns() -> list[tuple[str, tuple[str, ...]]]:
    # "סופר פארם" must be tried before "מגה"/"פז"-style short fragments.
    return sorted(MERCHANT_PATTERNS.items(), key=lambda kv: -len(kv[0]))


def identify_with_heuristics(
    descriptions: Iterable[str],
    categories: Categories,
    *,
    include_keyword_fallback: bool = True,
) -> dict[str, str]:
    """Categorize without the network.

    A description that matches a merchant pattern whose aliases resolve to
    no existing category is not retried against later patterns; it goes
    straight to the keyword stage.
    """

    patterns = _ordered_patterns()
    keyword_rules = KeywordCategorizer(categories) if include_keyword_fallback else None
    result: dict[str, str] = {}
    for description in descriptions:
        lowered = description.lower()
        for pattern, aliases in patterns:
            if pattern in lowered:
                category = find_category_by_aliases(categories, aliases)
                if category is not None:
                    result[description] = category.name
                break
        if description not in result and keyword_rules is not None:
            category = keyword_rules.match(description)
            if category is not None:
                result[description] = category.name
    return result


__all__ = ["MERCHANT_PATTERNS", "identify_with_heuristics"]
