"""Shared fixtures: a three-place in-memory store and a fixed clock."""

from datetime import datetime, timezone

import pytest

from xtrend.domain import Place
from xtrend.store import InMemorySnapshotStore

JAPAN = Place(woeid=23424856, slug="jp", name_ja="日本", country_code="JP", name_en="Japan", sort_order=1)
TOKYO = Place(woeid=1118370, slug="tokyo", name_ja="東京", country_code="JP", name_en="Tokyo", sort_order=2)
OSAKA = Place(woeid=15015370, slug="osaka", name_ja="大阪", country_code="JP", name_en="Osaka", sort_order=3)

NOW = datetime(2026, 1, 5, 9, 42, 17, tzinfo=timezone.utc)
HOUR_START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return InMemorySnapshotStore([JAPAN, TOKYO, OSAKA])
