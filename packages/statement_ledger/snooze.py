"""Time-boxed suppression of recurring suggestions.

Snoozes live in one settings row as a JSON object ``{suggestionKey:
isoExpiry}``. Reads drop entries that are malformed or already expired, and
every write stores the cleaned map back.
"""

from __future__ import annotations

import json
import math
from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .persistence import get_setting, set_setting

_logger = get_logger("statement_ledger.snooze")

SNOOZE_SETTING_KEY: str = "recurring_suggestion_snoozes_v1"
DEFAULT_SNOOZE_DAYS: int = 30
MIN_SNOOZE_DAYS: int = 1
MAX_SNOOZE_DAYS: int = 365
MIN_KEY_LENGTH: int = 3
MAX_KEY_LENGTH: int = 200

type SnoozeMap = dict[str, str]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _parse_expiry(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_suggestion_key(value: object) -> str | None:
    """Trimmed key when its length is within bounds, else ``None``."""

    if not isinstance(value, str):
        return None
    key = value.strip()
    if not MIN_KEY_LENGTH <= len(key) <= MAX_KEY_LENGTH:
        return None
    return key


def clamp_snooze_days(value: object) -> int:
    """Round to whole days within ``[MIN_SNOOZE_DAYS, MAX_SNOOZE_DAYS]``.

    Anything that is not a finite number falls back to the default.
    """

    try:
        days = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_SNOOZE_DAYS
    if not math.isfinite(days):
        return DEFAULT_SNOOZE_DAYS
    # Half-up, matching how the days are presented to users.
    rounded = math.floor(days + 0.5)
    return min(MAX_SNOOZE_DAYS, max(MIN_SNOOZE_DAYS, rounded))


def normalize_snoozes(raw: str | None, *, now: datetime | None = None) -> SnoozeMap:
    """Decode a stored map, keeping only valid keys with future expiries."""

    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if not isinstance(decoded, dict):
        return {}

    now = now or _utcnow()
    out: SnoozeMap = {}
    for key, expiry in decoded.items():
        if not isinstance(expiry, str) or parse_suggestion_key(key) != key:
            continue
        expires_at = _parse_expiry(expiry)
        if expires_at is None or expires_at <= now:
            continue
        out[key] = expires_at.astimezone(UTC).isoformat()
    return out


class SettingsSnoozeStore:
    """Snooze map backed by the ``sl_settings`` table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, *, now: datetime | None = None) -> SnoozeMap:
        return normalize_snoozes(get_setting(self._session, SNOOZE_SETTING_KEY), now=now)

    def set(self, key: str, expiry: str | None, *, now: datetime | None = None) -> SnoozeMap:
        """Set (or with ``None`` remove) one entry and store the cleaned map."""

        current = self.get(now=now)
        if expiry is None:
            current.pop(key, None)
        else:
            current[key] = expiry
        set_setting(self._session, SNOOZE_SETTING_KEY, json.dumps(current, ensure_ascii=False))
        return current

    def snooze(
        self,
        key: object,
        days: object = DEFAULT_SNOOZE_DAYS,
        *,
        now: datetime | None = None,
    ) -> str:
        """Suppress ``key`` for ``days`` (clamped); returns the ISO expiry."""

        valid = parse_suggestion_key(key)
        if valid is None:
            raise ValueError("invalid suggestion key")
        now = now or _utcnow()
        expiry = (now + timedelta(days=clamp_snooze_days(days))).astimezone(UTC).isoformat()
        self.set(valid, expiry, now=now)
        _logger.info("snooze:set key=%s expires=%s", valid, expiry)
        return expiry

    def clear(self, key: object, *, now: datetime | None = None) -> None:
        valid = parse_suggestion_key(key)
        if valid is None:
            raise ValueError("invalid suggestion key")
        self.set(valid, None, now=now)
        _logger.info("snooze:cleared key=%s", valid)


__all__ = [
    "DEFAULT_SNOOZE_DAYS",
    "MAX_SNOOZE_DAYS",
    "MIN_SNOOZE_DAYS",
    "SNOOZE_SETTING_KEY",
    "SettingsSnoozeStore",
    "SnoozeMap",
    "clamp_snooze_days",
    "normalize_snoozes",
    "parse_suggestion_key",
]
