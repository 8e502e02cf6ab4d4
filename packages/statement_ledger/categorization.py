"""Parsing and alignment of categorizer replies.

The external categorizer answers in free text that should contain a JSON
object ``{description: categoryLabel}``. The reply is untrusted: it may be
wrapped in code fences or prose, use typographic quotes, or echo the
description keys with cosmetic changes. This module turns such a reply into
a clean mapping and maps its keys back onto the descriptions that were asked
about.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import TypeAdapter, ValidationError

from .merchants import normalize_text, tokenize

# Minimum similarity for a reply key to stand in for a requested description.
DESCRIPTION_MATCH_THRESHOLD: float = 0.6

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "‘": "'", "’": "'"})

_REPLY = TypeAdapter(dict[str, Any])


def _try_parse(candidate: str) -> dict[str, str] | None:
    try:
        decoded = _REPLY.validate_json(candidate)
    except ValidationError:
        return None
    out: dict[str, str] = {}
    for key, value in decoded.items():
        if isinstance(value, str) and key.strip() and value.strip():
            out[key.strip()] = value.strip()
    return out


def parse_categorization_reply(text: str | None) -> dict[str, str]:
    """Extract ``{description: label}`` from a model reply.

    Attempts, in order: the whole reply without code fences, the outermost
    ``{...}`` span, and that span with smart quotes straightened. Entries
    whose key or value is not a non-empty string are dropped. Returns an
    empty dict when nothing parses.
    """

    if not text:
        return {}
    cleaned = _FENCE_RE.sub("", text).strip()

    direct = _try_parse(cleaned)
    if direct is not None:
        return direct

    match = _OBJECT_RE.search(cleaned)
    if match is None:
        return {}
    span = match.group(0)
    parsed = _try_parse(span)
    if parsed is not None:
        return parsed
    return _try_parse(span.translate(_SMART_QUOTES)) or {}


def token_overlap(a: str, b: str) -> float:
    """Shared tokens over the size of the larger token list."""

    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a or not tokens_b:
        return 0.0
    set_a = set(tokens_a)
    shared = sum(1 for t in tokens_b if t in set_a)
    return shared / max(len(tokens_a), len(tokens_b))


def _similarity(key: str, description: str) -> float:
    score = 0.0
    if key in description or description in key:
        score = min(len(key), len(description)) / max(len(key), len(description))
    return max(score, token_overlap(key, description))


def resolve_category_for_description(
    categorizations: Mapping[str, str],
    description: str,
    *,
    threshold: float = DESCRIPTION_MATCH_THRESHOLD,
) -> str | None:
    """Find the label the reply assigned to ``description``.

    Exact key, trimmed key and normalized key are tried first; otherwise the
    most similar normalized key wins when its score reaches ``threshold``.
    """

    for candidate in (description, description.strip()):
        label = categorizations.get(candidate)
        if label and label.strip():
            return label.strip()

    target = normalize_text(description)
    if not target:
        return None

    by_normalized: dict[str, str] = {}
    for key, value in categorizations.items():
        norm_key = normalize_text(key)
        if norm_key and value and norm_key not in by_normalized:
            by_normalized[norm_key] = value.strip()

    if target in by_normalized:
        return by_normalized[target] or None

    best_label: str | None = None
    best_score = 0.0
    for norm_key, label in by_normalized.items():
        score = _similarity(norm_key, target)
        if score > best_score:
            best_score = score
            best_label = label
    return best_label if best_score >= threshold else None


__all__ = [
    "DESCRIPTION_MATCH_THRESHOLD",
    "parse_categorization_reply",
    "resolve_category_for_description",
    "token_overlap",
]
