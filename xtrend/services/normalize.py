"""Term normalization and list deduplication.

normalize_term is the single source of the term_norm lookup key:
NFKC -> trim -> collapse whitespace -> lowercase. A leading '#' is kept,
so "#AI" and "AI" remain distinct terms.
"""

import re
import unicodedata
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_term(text: str) -> str:
    """Normalize term text for deduplication.

    Example: "  #ＡＩ　トレンド  " -> "#ai トレンド"
    """
    text = unicodedata.normalize("NFKC", text)
    text = _WHITESPACE_RE.sub(" ", text.strip())
    return text.lower()


def dedupe_by_name(items: Iterable[T], name: Callable[[T], str]) -> list[T]:
    """Drop items whose name repeats case-insensitively; first one wins.

    The upstream API sometimes returns the same trend at several ranks.
    Items with an empty name are dropped.
    """
    seen: set[str] = set()
    out: list[T] = []
    for item in items:
        key = (name(item) or "").lower()
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def dedupe_by_term(rows: Iterable[T], term_id: Callable[[T], int], position: Callable[[T], int]) -> list[T]:
    """Collapse repeated term_ids within one capture, keeping the lowest position.

    Result is ordered by position.
    """
    best: dict[int, T] = {}
    for row in rows:
        tid = term_id(row)
        current = best.get(tid)
        if current is None or position(row) < position(current):
            best[tid] = row
    return sorted(best.values(), key=position)
