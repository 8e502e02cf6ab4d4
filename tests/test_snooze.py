from __future__ import annotations

import json
import math
from datetime import UTC, datetime

import pytest
from db.client import session_scope

from statement_ledger.persistence import get_setting, set_setting
from statement_ledger.snooze import (
    SNOOZE_SETTING_KEY,
    SettingsSnoozeStore,
    clamp_snooze_days,
    normalize_snoozes,
    parse_suggestion_key,
)

NOW = datetime(2024, 7, 1, tzinfo=UTC)
KEY = "add:expense:netflix com"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (7, 7),
        (0, 1),
        (-5, 1),
        (0.4, 1),
        (1.5, 2),
        (2.5, 3),
        (400, 365),
        ("14", 14),
        ("abc", 30),
        (None, 30),
        (math.nan, 30),
        (math.inf, 30),
    ],
)
def test_clamp_snooze_days(value, expected):
    assert clamp_snooze_days(value) == expected


def test_parse_suggestion_key():
    assert parse_suggestion_key("  abc ") == "abc"
    assert parse_suggestion_key("ab") is None
    assert parse_suggestion_key("x" * 200) == "x" * 200
    assert parse_suggestion_key("x" * 201) is None
    assert parse_suggestion_key(5) is None


def test_normalize_snoozes_keeps_valid_future_entries():
    raw = json.dumps(
        {
            KEY: "2024-07-10T00:00:00+00:00",
            "remove:income:salary": "2024-06-01T00:00:00+00:00",
            "ab": "2024-08-01T00:00:00+00:00",
            " padded ": "2024-08-01T00:00:00+00:00",
            "add:expense:gym": 5,
            "add:expense:yes": "not a date",
            "add:expense:naive": "2024-07-02T00:00:00",
        }
    )
    assert normalize_snoozes(raw, now=NOW) == {
        KEY: "2024-07-10T00:00:00+00:00",
        "add:expense:naive": "2024-07-02T00:00:00+00:00",
    }


@pytest.mark.parametrize("raw", [None, "", "not json", "[1, 2]"])
def test_normalize_snoozes_garbage(raw):
    assert normalize_snoozes(raw, now=NOW) == {}


def test_store_round_trip(db_url: str):
    with session_scope(database_url=db_url) as session:
        store = SettingsSnoozeStore(session)
        expiry = store.snooze(KEY, 7, now=NOW)

        assert expiry == "2024-07-08T00:00:00+00:00"
        assert store.get(now=NOW) == {KEY: expiry}
        assert json.loads(get_setting(session, SNOOZE_SETTING_KEY)) == {KEY: expiry}

        store.clear(KEY, now=NOW)
        assert store.get(now=NOW) == {}


def test_writes_drop_expired_entries(db_url: str):
    with session_scope(database_url=db_url) as session:
        set_setting(
            session,
            SNOOZE_SETTING_KEY,
            json.dumps({"add:expense:old": "2024-01-01T00:00:00+00:00"}),
        )
        SettingsSnoozeStore(session).snooze(KEY, 1000, now=NOW)

        stored = json.loads(get_setting(session, SNOOZE_SETTING_KEY))
    assert stored == {KEY: "2025-07-01T00:00:00+00:00"}


def test_invalid_keys_are_rejected(db_url: str):
    with session_scope(database_url=db_url) as session:
        store = SettingsSnoozeStore(session)
        with pytest.raises(ValueError, match="invalid suggestion key"):
            store.snooze("ab", now=NOW)
        with pytest.raises(ValueError, match="invalid suggestion key"):
            store.clear(None, now=NOW)
