"""Learned-keyword lookups run at import time.

Both matchers work on a read-only snapshot taken by the caller before an
import (or a categorization batch) and compare normalized text, so keyword
``"h&m"`` matches ``"H&M TLV"`` and ``"אושר עד"`` matches ``"אושר-עד 123"``.
"""

from __future__ import annotations

from collections.abc import Iterable

from .merchants import normalize_text
from .models import Categories, CategorySnapshot


class KeywordCategorizer:
    """First-match keyword lookup over a category snapshot.

    Rules are tried by descending priority and, within a priority, in the
    order the store returned them. An exact rule must equal the whole
    normalized description; any other rule is a substring test.
    """

    def __init__(self, categories: Categories) -> None:
        flat: list[tuple[int, str, bool, CategorySnapshot]] = []
        for category in categories:
            for rule in category.keywords:
                needle = normalize_text(rule.keyword)
                if needle:
                    flat.append((rule.priority, needle, rule.is_exact, category))
        # sorted() is stable, so store order survives within one priority.
        self._rules = sorted(flat, key=lambda r: -r[0])

    def __len__(self) -> int:
        return len(self._rules)

    def match(self, description: str | None) -> CategorySnapshot | None:
        haystack = normalize_text(description)
        if not haystack:
            return None
        for _priority, needle, is_exact, category in self._rules:
            if (haystack == needle) if is_exact else (needle in haystack):
                return category
        return None


class RecurringKeywordMatcher:
    """Marks a description recurring when any learned keyword occurs in it."""

    def __init__(self, keywords: Iterable[str]) -> None:
        self._needles = tuple(n for n in (normalize_text(k) for k in keywords) if n)

    def matches(self, description: str | None) -> bool:
        haystack = normalize_text(description)
        return bool(haystack) and any(n in haystack for n in self._needles)


__all__ = ["KeywordCategorizer", "RecurringKeywordMatcher"]
