"""
Storage capabilities consumed by the search core.

The core never owns fragment storage or indexing; it reads candidates
through a FragmentRepository and appends decisions to a DecisionStore.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from .schemas import Fragment, RecallDecision, SelectionStats

if TYPE_CHECKING:
    from ..search.fragment_search import CandidateQuery


SelectionStatsUpdater = Callable[[SelectionStats], SelectionStats]


class FragmentRepository(ABC):
    @abstractmethod
    def find_candidates(self, query: CandidateQuery) -> list[Fragment]:
        """Return fragments matching every filter, with base relevance set."""
        raise NotImplementedError

    @abstractmethod
    def update_selection_stats(self, fragment_id: str, updater: SelectionStatsUpdater) -> SelectionStats:
        """Atomically read, transform and write a fragment's selection stats."""
        raise NotImplementedError


class DecisionStore(ABC):
    @abstractmethod
    def insert(self, decision: RecallDecision) -> None:
        raise NotImplementedError

    @abstractmethod
    def query_by_time_range(self, since: datetime, user_id: str | None = None) -> list[RecallDecision]:
        raise NotImplementedError
