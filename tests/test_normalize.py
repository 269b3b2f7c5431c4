"""Tests for term normalization and list deduplication."""

from xtrend.domain import SnapshotRow
from xtrend.services.normalize import dedupe_by_name, dedupe_by_term, normalize_term


def test_normalize_full_width_and_whitespace():
    """Full-width letters fold, outer space trims, inner space collapses."""
    assert normalize_term("  #ＡＩ　トレンド  ") == "#ai トレンド"


def test_normalize_keeps_hash_prefix():
    assert normalize_term("#AI") == "#ai"
    assert normalize_term("AI") == "ai"
    assert normalize_term("#AI") != normalize_term("AI")


def test_normalize_is_idempotent():
    for text in ["  #ＡＩ　トレンド  ", "Hello\t\nWorld", "ﾃｽﾄ", "already normal"]:
        once = normalize_term(text)
        assert normalize_term(once) == once


def test_normalize_collapses_mixed_whitespace():
    assert normalize_term("a \t\n  b") == "a b"


def test_dedupe_by_name_first_wins_case_insensitive():
    items = ["A", "a", "B"]
    assert dedupe_by_name(items, lambda s: s) == ["A", "B"]


def test_dedupe_by_name_drops_empty_names():
    items = ["", "x", "X", ""]
    assert dedupe_by_name(items, lambda s: s) == ["x"]


def test_dedupe_by_term_keeps_lowest_position():
    captured_at = None
    rows = [
        SnapshotRow(captured_at, 5, 1, None, "AI"),
        SnapshotRow(captured_at, 2, 1, None, "ai"),
        SnapshotRow(captured_at, 3, 2, None, "B"),
    ]
    result = dedupe_by_term(rows, lambda r: r.term_id, lambda r: r.position)
    assert [(r.term_id, r.position) for r in result] == [(1, 2), (2, 3)]
