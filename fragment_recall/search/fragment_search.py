"""
Fragment search combining grammar parsing, retrieval and hybrid ranking.

Provides:
- Query grammar → retrieval request translation
- Candidate over-fetch (limit × multiplier) for reranking
- Stable ordering by hybrid score
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable

from ..core.config import get_settings
from ..core.interfaces import FragmentRepository
from ..core.schemas import Fragment, ParsedQuery
from .grammar import SearchGrammarParser
from .ranking import SearchRanker

logger = logging.getLogger(__name__)


def _parse_day(value: str | None, label: str) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        logger.warning(f"Ignoring malformed {label} date filter: {value}")
        return None


@dataclass
class CandidateQuery:
    """Retrieval request handed to the fragment repository."""
    search_terms: str = ""
    fragment_type: str | None = None
    tags: list[str] = field(default_factory=list)
    mentions: list[str] = field(default_factory=list)
    has_link: bool = False
    has_code: bool = False
    session_id: str | None = None
    created_before: date | None = None  # exclusive
    created_after: date | None = None  # exclusive
    vault: str | None = None
    project_id: str | None = None
    limit: int = 40

    @classmethod
    def from_parsed(
        cls,
        parsed: ParsedQuery,
        vault: str | None = None,
        project_id: str | None = None,
        limit: int = 40
    ) -> "CandidateQuery":
        """Build a retrieval request from a parsed query."""
        has_values = parsed.values("has")
        return cls(
            search_terms=parsed.search_terms,
            fragment_type=parsed.first("type"),
            tags=list(dict.fromkeys(parsed.values("tag"))),
            mentions=list(dict.fromkeys(parsed.values("mention"))),
            has_link="link" in has_values,
            has_code="code" in has_values,
            session_id=parsed.first("session"),
            created_before=_parse_day(parsed.first("date", "before"), "before"),
            created_after=_parse_day(parsed.first("date", "after"), "after"),
            vault=vault,
            project_id=project_id,
            limit=limit,
        )

    def terms(self) -> list[str]:
        return self.search_terms.split()


@dataclass
class RankedFragment:
    """A search hit with its hybrid score."""
    fragment: Fragment
    search_score: float
    relevance: float | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.fragment.id,
            "title": self.fragment.title,
            "type": self.fragment.type,
            "tags": self.fragment.tags,
            "created_at": self.fragment.created_at.isoformat(),
            "search_score": self.search_score,
            "relevance": self.relevance,
        }


class FragmentSearch:
    """
    Search execution over a fragment repository.

    Strategy:
    1. Parse the query grammar into filters + free text
    2. Fetch up to limit × candidate_multiplier matching fragments
    3. Score every candidate with the hybrid ranker
    4. Sort by score (stable, so ties keep retrieval order) and truncate
    """

    def __init__(
        self,
        repository: FragmentRepository,
        parser: SearchGrammarParser | None = None,
        ranker: SearchRanker | None = None,
        default_limit: int | None = None,
        candidate_multiplier: int | None = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize fragment search.

        Args:
            repository: Candidate source (filtering + base relevance)
            parser: Query grammar parser
            ranker: Hybrid ranker (default weights from settings)
            default_limit: Results returned when no limit is given (default from settings)
            candidate_multiplier: Candidates fetched per result slot (default from settings)
            clock: Source of "now", shared by parser and ranker defaults
        """
        settings = get_settings()

        self.repository = repository
        self.parser = parser or SearchGrammarParser(clock=clock)
        self.ranker = ranker or SearchRanker(config=settings.ranking.to_config(), clock=clock)
        self.default_limit = default_limit if default_limit is not None else settings.search.default_limit
        if candidate_multiplier is None:
            candidate_multiplier = settings.search.candidate_multiplier
        self.candidate_multiplier = max(1, candidate_multiplier)
        self.clock = clock

        logger.info(
            f"FragmentSearch initialized "
            f"(limit={self.default_limit}, candidates={self.candidate_multiplier}x)"
        )

    def search(
        self,
        query: str,
        vault: str | None = None,
        project_id: str | None = None,
        session_id: str | None = None,
        limit: int | None = None
    ) -> list[RankedFragment]:
        """
        Run a ranked search.

        Args:
            query: Raw query, grammar tokens allowed
            vault: Restrict to one vault
            project_id: Restrict to one project
            session_id: Current session, boosts fragments captured in it
            limit: Maximum results

        Returns:
            List of RankedFragment sorted by search_score, highest first
        """
        start_time = time.time()
        limit = self.default_limit if limit is None else limit
        if limit <= 0:
            return []

        parsed = self.parser.parse(query)
        request = CandidateQuery.from_parsed(
            parsed,
            vault=vault,
            project_id=project_id,
            limit=limit * self.candidate_multiplier
        )

        # Retrieval errors propagate to the caller
        candidates = self.repository.find_candidates(request)
        if not candidates:
            logger.debug(f"No candidates for query {query!r}")
            return []

        now = self.clock()
        ranked = [
            RankedFragment(
                fragment=fragment,
                search_score=self.ranker.score(fragment, parsed.search_terms, session_id, now=now),
                relevance=fragment.relevance
            )
            for fragment in candidates
        ]
        ranked.sort(key=lambda r: r.search_score, reverse=True)
        results = ranked[:limit]

        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(
            f"Search {query!r}: {len(candidates)} candidates → {len(results)} results "
            f"in {elapsed_ms:.1f}ms"
        )
        return results

    __call__ = search
