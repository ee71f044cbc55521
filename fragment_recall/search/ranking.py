"""
Hybrid ranking for fragment search results.

Combines eight signals into one bounded score:
- Base relevance from the retrieval layer
- Recency step decay
- Tag, title and entity matches against the query words
- Session affinity, fragment type and importance/confidence

Scoring is a pure function of its inputs and never fails; a signal that
is missing simply contributes nothing.
"""
import logging
from datetime import datetime
from typing import Callable

from ..core.config import RankingConfig
from ..core.schemas import Fragment

logger = logging.getLogger(__name__)

MAX_SCORE = 100.0


def _query_words(search_terms: str) -> list[str]:
    return search_terms.lower().split()


def _age_in_days(now: datetime, created_at: datetime) -> int:
    """Whole days between two instants, tolerant of naive/aware mixes."""
    if (now.tzinfo is None) != (created_at.tzinfo is None):
        created_at = created_at.replace(tzinfo=now.tzinfo)
    return abs(now - created_at).days


def _any_word_in(text: str, words: list[str]) -> bool:
    text = text.lower()
    return any(word in text for word in words)


class SearchRanker:
    """
    Multi-factor scorer for search candidates.

    Weights and lookup tables come from an immutable RankingConfig owned
    by the instance. Scores are rounded to 2 decimals and kept in [0, 100].
    """

    def __init__(
        self,
        config: RankingConfig | None = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize ranker.

        Args:
            config: Weights, recency steps and type weights
            clock: Source of "now" for recency scoring
        """
        self.config = config or RankingConfig()
        self.clock = clock

    def score(
        self,
        fragment: Fragment,
        search_terms: str,
        session_id: str | None = None,
        now: datetime | None = None
    ) -> float:
        """
        Score a fragment for a query.

        Args:
            fragment: Candidate fragment (relevance set by retrieval, if any)
            search_terms: Free text left after filter extraction
            session_id: Current session, for the session affinity boost
            now: Reference time; defaults to the ranker's clock

        Returns:
            Composite score in [0, 100]
        """
        subscores = self.subscores(fragment, search_terms, session_id, now)
        weights = self.config.weights.model_dump()

        total = sum(weights[name] * value for name, value in subscores.items())
        total = round(min(MAX_SCORE, max(0.0, total)), 2)

        logger.debug(f"Scored fragment {fragment.id}: {total}")
        return total

    __call__ = score

    def subscores(
        self,
        fragment: Fragment,
        search_terms: str,
        session_id: str | None = None,
        now: datetime | None = None
    ) -> dict[str, float]:
        """Unweighted signal values keyed by weight name."""
        words = _query_words(search_terms)
        return {
            "relevance": fragment.relevance or 0.0,
            "recency": self.recency_score(fragment, now or self.clock()),
            "tags": self.tag_score(fragment, words),
            "session": self.session_score(fragment, session_id),
            "type": self.type_score(fragment),
            "title": self.title_score(fragment, search_terms, words),
            "entities": self.entity_score(fragment, words),
            "importance": self.importance_score(fragment),
        }

    def explain(
        self,
        fragment: Fragment,
        search_terms: str,
        session_id: str | None = None,
        now: datetime | None = None
    ) -> dict:
        """Break a score down into raw and weighted signal values."""
        subscores = self.subscores(fragment, search_terms, session_id, now)
        weights = self.config.weights.model_dump()
        return {
            "signals": subscores,
            "weighted": {name: round(weights[name] * value, 4) for name, value in subscores.items()},
            "score": self.score(fragment, search_terms, session_id, now),
        }

    # --------------------------------------------------------
    # Signals
    # --------------------------------------------------------

    def recency_score(self, fragment: Fragment, now: datetime) -> float:
        days = _age_in_days(now, fragment.created_at)
        for max_days, value in self.config.recency_steps:
            if days <= max_days:
                return value
        return self.config.recency_floor

    def tag_score(self, fragment: Fragment, words: list[str]) -> float:
        if not fragment.tags or not words:
            return 0.0
        matched = sum(1 for tag in fragment.tags if _any_word_in(tag, words))
        return min(1.0, matched / max(1, len(fragment.tags)))

    def session_score(self, fragment: Fragment, session_id: str | None) -> float:
        if not session_id:
            return 0.0
        return 1.0 if fragment.metadata.get("session_id") == session_id else 0.0

    def type_score(self, fragment: Fragment) -> float:
        return self.config.type_weights.get(fragment.type or "", self.config.default_type_weight)

    def title_score(self, fragment: Fragment, search_terms: str, words: list[str]) -> float:
        if not fragment.title:
            return 0.0

        title = fragment.title.lower()
        if search_terms.lower() == title:
            return 1.0

        matched = sum(1 for word in words if word in title)
        return min(1.0, matched / max(1, len(words)) * 0.8)

    def entity_score(self, fragment: Fragment, words: list[str]) -> float:
        if not words:
            return 0.0

        entities = fragment.parsed_entities
        score = 0.0
        score += 0.3 * sum(1 for person in entities.people if _any_word_in(person, words))
        score += 0.2 * sum(1 for email in entities.emails if _any_word_in(email, words))
        score += 0.2 * sum(1 for url in entities.urls if _any_word_in(url, words))
        return min(1.0, score)

    def importance_score(self, fragment: Fragment) -> float:
        # Uncapped unless pinned
        score = 0.5
        if fragment.importance:
            score += fragment.importance / 100 * 0.3
        if fragment.confidence:
            score += fragment.confidence / 100 * 0.2
        if fragment.pinned:
            score = min(1.0, score + 0.3)
        return score
