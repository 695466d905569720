from datetime import datetime, timezone

import pytest

from amen_ranking import ScoringEngine


@pytest.fixture
def engine() -> ScoringEngine:
    return ScoringEngine()


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
