"""
Search module - Query grammar, hybrid ranking, retrieval and recall analytics.

Provides:
- SearchGrammarParser: Filter tokens + residual search terms
- SearchRanker: Weighted multi-signal scoring
- FragmentIndex: SQLite fragment repository
- FragmentSearch: Parse → retrieve → rank pipeline
- DecisionLog / RecallDecisionLogger: Search interaction logging
- RecallPatternAnalyzer: Reports and recommendations from decision history
"""
from .grammar import SearchGrammarParser
from .ranking import SearchRanker
from .fragment_search import FragmentSearch, CandidateQuery, RankedFragment
from .fragment_index import FragmentIndex
from .decision_log import DecisionLog, RecallDecisionLogger, apply_selection
from .recall_patterns import RecallPatternAnalyzer

__all__ = [
    "SearchGrammarParser",
    "SearchRanker",
    "FragmentSearch",
    "CandidateQuery",
    "RankedFragment",
    "FragmentIndex",
    "DecisionLog",
    "RecallDecisionLogger",
    "apply_selection",
    "RecallPatternAnalyzer",
]
