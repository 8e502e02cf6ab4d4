"""Description categorization: external classifier with heuristic fallback.

Public API:
    - :func:`identify_descriptions`: ``{description: label}`` for a batch
    - :func:`categorize_descriptions`: the same, resolved to categories
    - :func:`auto_categorize`: categorize the oldest uncategorized rows
    - :func:`recategorize_transaction`: re-check one row and spread the answer

The classifier is anything with the shape ``(descriptions, categories) ->
{description: label}``. The default, :class:`OpenAIClassifier`, calls the
OpenAI Responses API. Descriptions go out in chunks of bounded size; a chunk
whose call fails, or whose reply holds no usable keys, is categorized by
:func:`~statement_ledger.heuristics.identify_with_heuristics` instead. There
are no retries. No client is created and no environment is read at import
time.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from openai import OpenAI
from sqlalchemy.orm import Session

from . import prompting
from .bulk import (
    DEFAULT_PROPAGATION_LIMIT,
    TransactionNotFoundError,
    propagate,
    same_merchant_ids,
)
from .categories import find_category_by_name
from .categorization import parse_categorization_reply, resolve_category_for_description
from .heuristics import identify_with_heuristics
from .logging_setup import get_logger
from .merchants import merchant_signature
from .models import Categories, CategorySnapshot
from .persistence import SqlCategoryStore, SqlTransactionStore

# ---- Tunables (private) ------------------------------------------------------

_CHUNK_SIZE_DEFAULT: int = 40
_AUTO_LIMIT_DEFAULT: int = 100
_MODEL_DEFAULT: str = "gpt-5-mini"

_logger = get_logger("statement_ledger.categorize")

type Classifier = Callable[[Sequence[str], Categories], Mapping[str, str]]


def _extract_output_text(resp: Any) -> str:
    """Text of a Responses API result (``output_text``, else the first content part)."""

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                candidate = getattr(content[0], "text", None)
                if isinstance(candidate, str):
                    text = candidate
        except (AttributeError, IndexError, TypeError):
            text = None
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")
    return text


class OpenAIClassifier:
    """Classify descriptions with one Responses API call per invocation."""

    def __init__(self, api_key: str, *, model: str | None = None) -> None:
        self._api_key = api_key
        self._model = model or _MODEL_DEFAULT

    def __call__(self, descriptions: Sequence[str], categories: Categories) -> dict[str, str]:
        client = OpenAI(api_key=self._api_key)
        resp = client.responses.create(
            model=self._model,
            instructions=prompting.build_instructions(categories),
            input=prompting.build_user_content(descriptions),
        )
        return parse_categorization_reply(_extract_output_text(resp))


def _chunked(items: Sequence[str], size: int) -> list[Sequence[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def identify_descriptions(
    descriptions: Sequence[str],
    categories: Categories,
    *,
    api_key: str | None,
    classifier: Classifier | None = None,
    include_keyword_fallback: bool = True,
    chunk_size: int = _CHUNK_SIZE_DEFAULT,
    model: str | None = None,
) -> dict[str, str]:
    """Return ``{key: categoryLabel}`` for ``descriptions``.

    Keys from the classifier may differ cosmetically from the descriptions
    asked about; use :func:`resolve_category_for_description` to align them.
    With no ``api_key`` and no ``classifier`` only heuristics run.
    """

    unique = list(dict.fromkeys(d for d in descriptions if d and d.strip()))
    if not unique:
        return {}
    if classifier is None and api_key:
        classifier = OpenAIClassifier(api_key, model=model)
    if classifier is None:
        return identify_with_heuristics(
            unique, categories, include_keyword_fallback=include_keyword_fallback
        )

    result: dict[str, str] = {}
    for index, chunk in enumerate(_chunked(unique, max(1, chunk_size))):
        t0 = time.perf_counter()
        try:
            answer = dict(classifier(chunk, categories))
        except Exception as e:  # noqa: BLE001 - degrade to heuristics, never surface
            _logger.warning(
                "identify_descriptions:chunk_failed chunk=%d size=%d latency_ms=%.2f error=%s",
                index,
                len(chunk),
                (time.perf_counter() - t0) * 1000.0,
                e.__class__.__name__,
            )
            answer = {}
        if not answer:
            answer = identify_with_heuristics(
                chunk, categories, include_keyword_fallback=include_keyword_fallback
            )
            _logger.info(
                "identify_descriptions:chunk_heuristic chunk=%d size=%d matched=%d",
                index,
                len(chunk),
                len(answer),
            )
        else:
            _logger.info(
                "identify_descriptions:chunk_done chunk=%d size=%d labels=%d latency_ms=%.2f",
                index,
                len(chunk),
                len(answer),
                (time.perf_counter() - t0) * 1000.0,
            )
        result.update(answer)
    return result


def categorize_descriptions(
    descriptions: Sequence[str],
    categories: Categories,
    *,
    api_key: str | None,
    classifier: Classifier | None = None,
    include_keyword_fallback: bool = True,
    chunk_size: int = _CHUNK_SIZE_DEFAULT,
    model: str | None = None,
) -> dict[str, CategorySnapshot]:
    """Resolve each description to a concrete category; unresolved ones are absent."""

    labels = identify_descriptions(
        descriptions,
        categories,
        api_key=api_key,
        classifier=classifier,
        include_keyword_fallback=include_keyword_fallback,
        chunk_size=chunk_size,
        model=model,
    )
    out: dict[str, CategorySnapshot] = {}
    for description in dict.fromkeys(descriptions):
        label = resolve_category_for_description(labels, description)
        category = find_category_by_name(categories, label)
        if category is not None:
            out[description] = category
    return out


@dataclass(frozen=True, slots=True)
class AutoCategorizeResult:
    categorized: int
    total: int
    new_keywords: int


def auto_categorize(
    session: Session,
    *,
    api_key: str | None,
    limit: int = _AUTO_LIMIT_DEFAULT,
    classifier: Classifier | None = None,
    chunk_size: int = _CHUNK_SIZE_DEFAULT,
    model: str | None = None,
) -> AutoCategorizeResult:
    """Categorize the oldest ``limit`` uncategorized, non-excluded rows.

    Each categorized description also teaches its category one keyword (the
    merchant signature).
    """

    store = SqlTransactionStore(session)
    rows = store.uncategorized(limit)
    if not rows:
        return AutoCategorizeResult(categorized=0, total=0, new_keywords=0)

    categories = SqlCategoryStore(session).list_categories()
    assignments = categorize_descriptions(
        [r.description for r in rows],
        categories,
        api_key=api_key,
        classifier=classifier,
        chunk_size=chunk_size,
        model=model,
    )

    by_category: dict[int, list[int]] = {}
    to_learn: dict[tuple[int, str], None] = {}
    for row in rows:
        category = assignments.get(row.description)
        if category is None:
            continue
        by_category.setdefault(category.id, []).append(row.id)
        keyword = merchant_signature(row.description)
        if keyword:
            to_learn.setdefault((category.id, keyword), None)

    categorized = 0
    for category_id, ids in by_category.items():
        categorized += store.update_many(ids, category_id=category_id, is_auto_categorized=True)

    keyword_store = SqlCategoryStore(session)
    new_keywords = sum(1 for cid, kw in to_learn if keyword_store.add_keyword(cid, kw))

    _logger.info(
        "auto_categorize:done total=%d categorized=%d new_keywords=%d",
        len(rows),
        categorized,
        new_keywords,
    )
    return AutoCategorizeResult(
        categorized=categorized, total=len(rows), new_keywords=new_keywords
    )


@dataclass(frozen=True, slots=True)
class RecategorizeResult:
    category: CategorySnapshot | None
    # True when the row or any similar row changed category.
    changed: bool = False
    updated_similar: tuple[int, ...] = ()
    skipped_reason: str | None = None
    keyword_added: str | None = None


def recategorize_transaction(
    session: Session,
    tx_id: int,
    *,
    api_key: str | None,
    classifier: Classifier | None = None,
    propagation_limit: int = DEFAULT_PROPAGATION_LIMIT,
    model: str | None = None,
) -> RecategorizeResult:
    """Re-check one row without the learned-keyword fallback.

    A resolved category is written to the row (as auto-categorized) and to
    every same-merchant, same-direction row with a different category, within
    ``propagation_limit``.
    """

    store = SqlTransactionStore(session)
    tx = store.get(tx_id)
    if tx is None:
        raise TransactionNotFoundError(tx_id)

    categories = SqlCategoryStore(session).list_categories()
    assignment = categorize_descriptions(
        [tx.description],
        categories,
        api_key=api_key,
        classifier=classifier,
        include_keyword_fallback=False,
        model=model,
    )
    category = assignment.get(tx.description)
    if category is None:
        _logger.info("recategorize:no_match tx_id=%d", tx.id)
        return RecategorizeResult(category=None)

    changed = False
    if tx.category_id != category.id:
        store.update_one(tx.id, category_id=category.id, is_auto_categorized=True)
        changed = True

    ids = same_merchant_ids(store, tx, category_id=category.id, other_category=True)
    outcome = propagate(
        store,
        ids,
        limit=propagation_limit,
        reason_label="similar transactions",
        category_id=category.id,
        is_auto_categorized=True,
    )

    keyword = merchant_signature(tx.description)
    added = None
    if keyword and SqlCategoryStore(session).add_keyword(category.id, keyword):
        added = keyword.lower()

    _logger.info(
        "recategorize:done tx_id=%d category_id=%d similar=%d skipped=%s",
        tx.id,
        category.id,
        len(outcome.updated_ids),
        outcome.skipped_reason is not None,
    )
    return RecategorizeResult(
        category=category,
        changed=changed or bool(outcome.updated_ids),
        updated_similar=outcome.updated_ids,
        skipped_reason=outcome.skipped_reason,
        keyword_added=added,
    )


__all__ = [
    "AutoCategorizeResult",
    "Classifier",
    "OpenAIClassifier",
    "RecategorizeResult",
    "auto_categorize",
    "categorize_descriptions",
    "identify_descriptions",
    "recategorize_transaction",
]
