"""
Core module - Configuration, schemas, and storage interfaces.
"""
from .config import (
    Settings,
    get_settings,
    RankingConfig,
    RankingWeights,
    GrammarCatalog,
)
from .interfaces import FragmentRepository, DecisionStore
from .schemas import (
    Fragment,
    ParsedEntities,
    SelectionStats,
    PositionStats,
    SearchFilter,
    Suggestion,
    AutocompleteEntry,
    ParsedQuery,
    RecallAction,
    DecisionContext,
    RecallDecision,
)

__all__ = [
    "Settings",
    "get_settings",
    "RankingConfig",
    "RankingWeights",
    "GrammarCatalog",
    "FragmentRepository",
    "DecisionStore",
    "Fragment",
    "ParsedEntities",
    "SelectionStats",
    "PositionStats",
    "SearchFilter",
    "Suggestion",
    "AutocompleteEntry",
    "ParsedQuery",
    "RecallAction",
    "DecisionContext",
    "RecallDecision",
]
