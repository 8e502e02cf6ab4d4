"""Resolve free-text category labels to concrete categories.

Labels come from the external categorizer or from the heuristic merchant
table and rarely match a stored name byte for byte. Resolution order:

1. exact name, or alias compared case-insensitively;
2. exact match after normalization (case, diacritics, punctuation);
3. normalized containment in either direction;
4. best token overlap, accepted at :data:`CATEGORY_MATCH_THRESHOLD` or above.
"""

from __future__ import annotations

from collections.abc import Iterable

from .categorization import token_overlap
from .merchants import normalize_text, tokenize
from .models import Categories, CategorySnapshot

CATEGORY_MATCH_THRESHOLD: float = 0.4


def _normalized_names(category: CategorySnapshot) -> list[str]:
    names = (normalize_text(category.name), normalize_text(category.alias_name))
    return [n for n in names if n]


def find_category_by_name(
    categories: Categories,
    label: str | None,
    *,
    threshold: float = CATEGORY_MATCH_THRESHOLD,
) -> CategorySnapshot | None:
    if not label or not label.strip():
        return None
    label = label.strip()
    lower = label.lower()

    for category in categories:
        if category.name == label or (category.alias_name or "").lower() == lower:
            return category

    target = normalize_text(label)
    if not target:
        return None
    for category in categories:
        if target in _normalized_names(category):
            return category
    for category in categories:
        if any(target in name or name in target for name in _normalized_names(category)):
            return category

    if not tokenize(label):
        return None
    best: CategorySnapshot | None = None
    best_score = 0.0
    for category in categories:
        score = token_overlap(label, f"{category.name} {category.alias_name or ''}")
        if score > best_score:
            best_score = score
            best = category
    return best if best_score >= threshold else None


def find_category_by_aliases(
    categories: Categories, aliases: Iterable[str]
) -> CategorySnapshot | None:
    """First category whose name or alias equals, contains or is contained
    in one of ``aliases``; aliases are tried in order."""

    for alias in (normalize_text(a) for a in aliases):
        if not alias:
            continue
        for category in categories:
            names = _normalized_names(category)
            if alias in names or any(alias in n or n in alias for n in names):
                return category
    return None


__all__ = [
    "CATEGORY_MATCH_THRESHOLD",
    "find_category_by_aliases",
    "find_category_by_name",
]
