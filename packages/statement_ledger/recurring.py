"""On-demand recurring-payment suggestions.

Stored rows are grouped into clusters by merchant signature and direction
(expense or income). Each cluster is checked against two rules:

``add``
    The cluster's non-recurring rows fall in at least three calendar months,
    including a run of three consecutive months. Every amount is within
    :data:`AMOUNT_TOLERANCE` of the cluster median, and the last row is at
    most :data:`RECENT_ACTIVITY_DAYS` old.

``remove``
    The cluster's recurring rows have gone quiet for longer than
    ``max(REMOVE_MIN_SILENCE_DAYS, REMOVE_INTERVAL_FACTOR * typical
    interval)``, and no non-recurring row of the same cluster is newer.

Nothing is persisted. Acting on a suggestion is a bulk ``is_recurring``
update over its exact id set; dismissing one snoozes its key.
"""

from __future__ import annotations

import statistics
from collections.abc import Collection, Iterable
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from .bulk import bulk_set_recurring
from .logging_setup import get_logger
from .merchants import merchant_signature
from .models import Direction, HistoryItem, RecurringSuggestion, SuggestionAction
from .persistence import SqlTransactionStore
from .snooze import SettingsSnoozeStore

_logger = get_logger("statement_ledger.recurring")

MIN_PERIODS: int = 3
MIN_STREAK: int = 3
AMOUNT_TOLERANCE: Decimal = Decimal("10.00")
RECENT_ACTIVITY_DAYS: int = 45
REMOVE_MIN_SILENCE_DAYS: int = 60
REMOVE_INTERVAL_FACTOR: float = 1.8
DEFAULT_INTERVAL_DAYS: float = 30.0
MAX_SUGGESTIONS: int = 8

type ClusterKey = tuple[str, Direction]


def suggestion_key(action: SuggestionAction, direction: Direction, signature: str) -> str:
    return f"{action}:{direction}:{signature}"


def _month_index(d: date) -> int:
    return d.year * 12 + d.month - 1


def longest_streak(months: Iterable[int]) -> int:
    """Length of the longest run of consecutive month indexes."""

    ordered = sorted(set(months))
    best = run = 0
    previous: int | None = None
    for m in ordered:
        run = run + 1 if previous is not None and m == previous + 1 else 1
        best = max(best, run)
        previous = m
    return best


def typical_interval_days(dates: Iterable[date]) -> float:
    """Median gap in days between distinct dates; a month when under two dates."""

    ordered = sorted(set(dates))
    if len(ordered) < 2:
        return DEFAULT_INTERVAL_DAYS
    gaps = [(b - a).days for a, b in zip(ordered, ordered[1:], strict=False)]
    return float(statistics.median(gaps))


def cluster_history(history: Iterable[HistoryItem]) -> dict[ClusterKey, list[HistoryItem]]:
    clusters: dict[ClusterKey, list[HistoryItem]] = {}
    for item in history:
        if item.amount == 0:
            continue
        signature = merchant_signature(item.description)
        if signature is None:
            continue
        direction: Direction = "expense" if item.amount < 0 else "income"
        clusters.setdefault((signature, direction), []).append(item)
    return clusters


def _suggestion(
    action: SuggestionAction,
    direction: Direction,
    signature: str,
    items: list[HistoryItem],
) -> RecurringSuggestion:
    ordered = sorted(items, key=lambda i: (i.date, i.id))
    return RecurringSuggestion(
        key=suggestion_key(action, direction, signature),
        action=action,
        direction=direction,
        signature=signature,
        label=ordered[-1].description,
        transaction_ids=tuple(i.id for i in ordered),
        last_date=ordered[-1].date,
        occurrences=len(ordered),
        typical_amount=Decimal(statistics.median(abs(i.amount) for i in ordered)),
    )


def _propose_add(items: list[HistoryItem], today: date) -> bool:
    months = {_month_index(i.date) for i in items}
    if len(months) < MIN_PERIODS or longest_streak(months) < MIN_STREAK:
        return False
    median = statistics.median(abs(i.amount) for i in items)
    if any(abs(abs(i.amount) - median) > AMOUNT_TOLERANCE for i in items):
        return False
    last = max(i.date for i in items)
    return (today - last).days <= RECENT_ACTIVITY_DAYS


def _propose_remove(
    recurring: list[HistoryItem], others: list[HistoryItem], today: date
) -> bool:
    last = max(i.date for i in recurring)
    if any(i.date > last for i in others):
        return False
    threshold = max(
        float(REMOVE_MIN_SILENCE_DAYS),
        REMOVE_INTERVAL_FACTOR * typical_interval_days(i.date for i in recurring),
    )
    return (today - last).days > threshold


def build_suggestions(
    history: Iterable[HistoryItem],
    *,
    today: date,
    snoozed: Collection[str] = (),
    limit: int | None = MAX_SUGGESTIONS,
) -> list[RecurringSuggestion]:
    """Evaluate every cluster and return the most recent suggestions first.

    Snoozed keys are dropped before the ``limit`` cut.
    """

    suggestions: list[RecurringSuggestion] = []
    for (signature, direction), items in cluster_history(history).items():
        recurring = [i for i in items if i.is_recurring]
        others = [i for i in items if not i.is_recurring]
        if others and _propose_add(others, today):
            suggestions.append(_suggestion("add", direction, signature, others))
        if recurring and _propose_remove(recurring, others, today):
            suggestions.append(_suggestion("remove", direction, signature, recurring))

    suggestions.sort(key=lambda s: (-s.last_date.toordinal(), s.key))
    visible = [s for s in suggestions if s.key not in snoozed]
    return visible if limit is None else visible[:limit]


def recurring_suggestions(
    session: Session,
    *,
    today: date | None = None,
    limit: int | None = MAX_SUGGESTIONS,
    include_snoozed: bool = False,
) -> list[RecurringSuggestion]:
    history = SqlTransactionStore(session).history()
    snoozed = () if include_snoozed else SettingsSnoozeStore(session).get().keys()
    result = build_suggestions(
        history, today=today or date.today(), snoozed=snoozed, limit=limit
    )
    _logger.info(
        "recurring_suggestions:done history=%d suggestions=%d", len(history), len(result)
    )
    return result


def apply_suggestion(
    session: Session, key: str, *, today: date | None = None
) -> tuple[RecurringSuggestion, int]:
    """Recompute suggestions and apply the one with ``key``.

    Raises ``LookupError`` when no current suggestion has that key.
    """

    for suggestion in recurring_suggestions(
        session, today=today, limit=None, include_snoozed=True
    ):
        if suggestion.key == key:
            updated = bulk_set_recurring(
                session, suggestion.transaction_ids, suggestion.action == "add"
            )
            _logger.info("apply_suggestion:done key=%s updated=%d", key, updated)
            return suggestion, updated
    raise LookupError(f"no current recurring suggestion with key {key!r}")


__all__ = [
    "AMOUNT_TOLERANCE",
    "MAX_SUGGESTIONS",
    "RECENT_ACTIVITY_DAYS",
    "apply_suggestion",
    "build_suggestions",
    "cluster_history",
    "longest_streak",
    "recurring_suggestions",
    "suggestion_key",
    "typical_interval_days",
]
