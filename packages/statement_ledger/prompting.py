"""Prompt construction for description categorization.

The instructions are in Hebrew because both the descriptions and the
category names are; the model is asked for a bare JSON object keyed by the
exact description text, which :mod:`statement_ledger.categorization` parses.
"""

from __future__ import annotations

from collections.abc import Sequence

from .models import Categories

# Hints for merchants the model tends to misplace.
CLASSIFICATION_GUIDANCE: tuple[str, ...] = (
    '"תספורת", "מספרה", "ספר" = טיפוח אישי (או בריאות אם אין טיפוח)',
    '"תמנון" = ביגוד והנעלה',
    "חנות ספרים, ספרייה = חינוך",
    "מסעדות, קפה, אוכל מוכן = מסעדות וקפה",
    "סופרמרקט, מכולת = מכולת",
    "דלק, תדלוק = דלק (או תחבורה)",
    "נטפליקס, ספוטיפיי, אפליקציות = דיגיטל",
    "ביגוד, נעליים = ביגוד והנעלה",
)


def format_category_list(categories: Categories) -> str:
    parts: list[str] = []
    for c in categories:
        parts.append(f"{c.name} ({c.alias_name})" if c.alias_name else c.name)
    return ", ".join(parts)


def build_instructions(categories: Categories) -> str:
    """System instructions: role, allowed categories and guidance."""

    guidance = "\n".join(f"- {line}" for line in CLASSIFICATION_GUIDANCE)
    return (
        "אתה מומחה לזיהוי עסקים ישראליים וסיווגם לקטגוריות.\n\n"
        f"הקטגוריות הזמינות הן: {format_category_list(categories)}\n\n"
        "עבור כל תיאור עסקה, זהה את העסק וסווג אותו לקטגוריה המתאימה ביותר.\n\n"
        f"הנחיות:\n{guidance}\n\n"
        "החזר תשובה בפורמט JSON בלבד, ללא הסברים.\n"
        "תמיד נסה לסווג - עדיף לנחש קטגוריה קרובה מאשר לא לסווג בכלל."
    )


def build_user_content(descriptions: Sequence[str]) -> str:
    numbered = "\n".join(f"{i}. {d}" for i, d in enumerate(descriptions, start=1))
    return (
        f"תיאורי העסקאות:\n{numbered}\n\n"
        "החזר אובייקט JSON בפורמט:\n"
        "{\n"
        '  "תיאור העסקה המדויק כפי שמופיע למעלה": "שם הקטגוריה מהרשימה",\n'
        "  ...\n"
        "}\n\n"
        "חשוב: השתמש בתיאור המדויק כ-key, לא במספר."
    )


__all__ = [
    "CLASSIFICATION_GUIDANCE",
    "build_instructions",
    "build_user_content",
    "format_category_list",
]
