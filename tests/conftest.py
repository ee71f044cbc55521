"""
Pytest configuration and fixtures.
"""
import pytest
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fragment_recall.core.schemas import Fragment
from fragment_recall.search.decision_log import DecisionLog
from fragment_recall.search.fragment_index import FragmentIndex


# Wednesday
NOW = datetime(2024, 6, 12, 10, 30)


class FixedClock:
    """Callable clock that tests can move."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def fragment_index(tmp_path):
    return FragmentIndex(tmp_path / "fragments.db")


@pytest.fixture
def decision_log(tmp_path):
    return DecisionLog(tmp_path / "decisions.db")


@pytest.fixture
def make_fragment():
    """Factory for fragments created "now" unless told otherwise."""
    def _make(fragment_id: str = "f1", **fields) -> Fragment:
        fields.setdefault("created_at", NOW)
        return Fragment(id=fragment_id, **fields)
    return _make


@pytest.fixture
def sample_fragments(make_fragment):
    """A small mixed corpus."""
    return [
        make_fragment(
            "budget",
            title="Quarterly budget review",
            message="Review the Q3 budget with finance",
            type="meeting",
            tags=["work", "finance"],
            metadata={"session_id": "s1", "people": ["alice"]},
        ),
        make_fragment(
            "todo",
            title="Send budget",
            message="Email the spreadsheet to bob",
            type="todo",
            tags=["work", "urgent"],
            parsed_entities={"emails": ["bob@example.com"], "urls": ["https://sheets.example.com"]},
        ),
        make_fragment(
            "holiday",
            title="Holiday plans",
            message="Book flights and hotel",
            type="note",
            tags=["personal"],
            parsed_entities={"code_snippets": ["print('hi')"]},
        ),
    ]
