"""Tests for per-term history across places."""

import asyncio

from conftest import HOUR_START as T, JAPAN, TOKYO
from xtrend.domain import HOUR
from xtrend.services.history import DEFAULT_SORT_ORDER, get_term_history


def test_history_oldest_first_with_place_names(store):
    (term_id,) = store.seed_capture(JAPAN.woeid, T, ["A"])
    store.seed_capture(TOKYO.woeid, T - HOUR, ["B", "A"])
    store.seed_capture(JAPAN.woeid, T - 30 * HOUR, ["A"])

    result = asyncio.run(get_term_history(store, term_id, hours=24, now=T))

    assert result.term.term_text == "A"
    assert [(p.captured_at, p.woeid, p.position) for p in result.history] == [
        (T - HOUR, TOKYO.woeid, 2),
        (T, JAPAN.woeid, 1),
    ]
    assert [p.place_name for p in result.history] == ["東京", "日本"]
    assert [p.sort_order for p in result.history] == [2, 1]


def test_history_for_unknown_place_uses_defaults(store):
    (term_id,) = store.seed_capture(999, T, ["A"])

    result = asyncio.run(get_term_history(store, term_id, now=T))

    point = result.history[0]
    assert point.place_name == ""
    assert point.sort_order == DEFAULT_SORT_ORDER


def test_history_unknown_term(store):
    assert asyncio.run(get_term_history(store, 12345, now=T)) is None


def test_history_empty_when_term_not_recent(store):
    (term_id,) = store.seed_capture(JAPAN.woeid, T - 48 * HOUR, ["A"])

    result = asyncio.run(get_term_history(store, term_id, hours=24, now=T))
    assert result.history == []
