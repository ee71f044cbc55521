"""
Unit tests for hybrid search ranking.
"""
import pytest
from datetime import timedelta, timezone

from fragment_recall.core.config import RankingConfig, RankingWeights
from fragment_recall.search.ranking import SearchRanker


@pytest.fixture
def ranker(clock):
    return SearchRanker(clock=clock)


class TestBaseline:
    """Score of a bare fragment and the effect of single signals."""

    def test_bare_fragment_created_today(self, ranker, make_fragment):
        # recency 30 + default type 2 + importance base 2.5
        assert ranker.score(make_fragment(), "", None) == 34.5

    def test_relevance_weight(self, ranker, make_fragment):
        assert ranker.score(make_fragment(relevance=0.5), "", None) == 54.5

    @pytest.mark.parametrize("days,expected", [
        (0, 1.0),
        (3, 0.8),
        (7, 0.8),
        (30, 0.5),
        (31, 0.3),
        (90, 0.3),
        (200, 0.1),
        (365, 0.1),
        (400, 0.05),
    ])
    def test_recency_steps(self, ranker, make_fragment, now, days, expected):
        fragment = make_fragment(created_at=now - timedelta(days=days))
        assert ranker.recency_score(fragment, now) == expected

    def test_same_day_hours_count_as_today(self, ranker, make_fragment, now):
        fragment = make_fragment(created_at=now - timedelta(hours=20))
        assert ranker.recency_score(fragment, now) == 1.0

    def test_mixed_timezones_do_not_fail(self, ranker, make_fragment, now):
        fragment = make_fragment(created_at=now.replace(tzinfo=timezone.utc))
        assert ranker.score(fragment, "anything") == 34.5


class TestMatchSignals:
    """Tag, title, entity and session signals."""

    def test_tag_match_fraction(self, ranker, make_fragment):
        fragment = make_fragment(tags=["Work", "home"])
        assert ranker.score(fragment, "work", None) == 42.0

    def test_tag_match_needs_words(self, ranker, make_fragment):
        assert ranker.tag_score(make_fragment(tags=["work"]), []) == 0.0

    def test_exact_title_match(self, ranker, make_fragment):
        fragment = make_fragment(title="Meeting Notes")
        assert ranker.score(fragment, "meeting notes", None) == 44.5

    def test_partial_title_match(self, ranker, make_fragment):
        fragment = make_fragment(title="Meeting agenda")
        assert ranker.score(fragment, "meeting notes", None) == 38.5

    def test_entity_match(self, ranker, make_fragment):
        fragment = make_fragment(parsed_entities={
            "people": ["Alice Smith"],
            "emails": ["alice@example.com"],
            "urls": ["https://example.org"],
        })
        # person 0.3 + email 0.2
        assert ranker.score(fragment, "alice", None) == 37.0

    def test_entity_match_capped(self, ranker, make_fragment):
        fragment = make_fragment(parsed_entities={"people": ["Al A", "Al B", "Al C", "Al D"]})
        assert ranker.entity_score(fragment, ["al"]) == 1.0

    def test_session_affinity(self, ranker, make_fragment):
        fragment = make_fragment(metadata={"session_id": "s1"})

        assert ranker.score(fragment, "", "s1") == 44.5
        assert ranker.score(fragment, "", "s2") == 34.5
        assert ranker.score(fragment, "", None) == 34.5


class TestWeighting:
    """Type and importance weighting."""

    @pytest.mark.parametrize("fragment_type,expected", [
        ("idea", 36.5),
        ("insight", 36.5),
        ("todo", 36.0),
        ("meeting", 36.0),
        ("contact", 35.5),
        ("note", 35.0),
        ("log", 34.5),
    ])
    def test_type_weights(self, ranker, make_fragment, fragment_type, expected):
        assert ranker.score(make_fragment(type=fragment_type), "", None) == expected

    def test_importance_and_confidence(self, ranker, make_fragment):
        fragment = make_fragment(importance=100, confidence=100)
        assert ranker.importance_score(fragment) == pytest.approx(1.0)
        assert ranker.score(fragment, "", None) == 37.0

    def test_pinned_boost_capped(self, ranker, make_fragment):
        assert ranker.importance_score(make_fragment(pinned=True)) == pytest.approx(0.8)
        assert ranker.importance_score(make_fragment(pinned=True, importance=100)) == 1.0

    def test_custom_config(self, clock, make_fragment):
        config = RankingConfig(type_weights={"note": 1.0})
        ranker = SearchRanker(config=config, clock=clock)

        assert ranker.score(make_fragment(type="note"), "", None) == 37.5

    def test_config_is_immutable(self, ranker):
        with pytest.raises(Exception):
            ranker.config.default_type_weight = 1.0


class TestBounds:
    """Score bounds and determinism."""

    def test_score_clamped_to_100(self, ranker, make_fragment):
        fragment = make_fragment(
            title="Meeting Notes",
            type="idea",
            tags=["meeting"],
            metadata={"session_id": "s1"},
            parsed_entities={"people": ["Notes A", "Notes B", "Notes C", "Notes D"]},
            importance=100,
            pinned=True,
            relevance=1.0,
        )
        assert ranker.score(fragment, "meeting notes", "s1") == 100.0

    def test_zero_weights_give_zero(self, clock, make_fragment):
        weights = RankingWeights(
            relevance=0, recency=0, tags=0, session=0,
            type=0, title=0, entities=0, importance=0,
        )
        ranker = SearchRanker(config=RankingConfig(weights=weights), clock=clock)
        assert ranker.score(make_fragment(), "x") == 0.0

    def test_deterministic(self, ranker, make_fragment):
        fragment = make_fragment(title="Budget", tags=["work"], relevance=0.37)
        scores = {ranker.score(fragment, "budget work", "s1") for _ in range(5)}
        assert len(scores) == 1

    def test_two_decimal_rounding(self, ranker, make_fragment):
        score = ranker.score(make_fragment(relevance=0.123456), "", None)
        assert score == round(score, 2)

    def test_explain_matches_score(self, ranker, make_fragment):
        fragment = make_fragment(title="Budget", relevance=0.5)
        explanation = ranker.explain(fragment, "budget")

        assert set(explanation["signals"]) == {
            "relevance", "recency", "tags", "session",
            "type", "title", "entities", "importance",
        }
        assert explanation["score"] == ranker.score(fragment, "budget")
        assert explanation["weighted"]["relevance"] == 20.0
