"""
Pydantic schemas for searchable fragments and recall decisions.

These schemas define the items the search core reads, the structured
form of a parsed query, and the append-only record of a search interaction.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Literal
from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================
# Fragments (searchable items)
# ============================================================

class ParsedEntities(BaseModel):
    """Entities extracted from a fragment's text by the enrichment pipeline."""
    people: list[str] = Field(default_factory=list)
    urls: list[str] = Field(default_factory=list)
    emails: list[str] = Field(default_factory=list)
    code_snippets: list[str] = Field(default_factory=list)
    references: list[str] = Field(default_factory=list)
    hashtags: list[str] = Field(default_factory=list)
    dates: list[str] = Field(default_factory=list)
    phones: list[str] = Field(default_factory=list)


class PositionStats(BaseModel):
    """Running click-position statistics (1-based positions)."""
    total_clicks: int = Field(default=0, ge=0)
    average_position: float = Field(default=0.0, ge=0.0)


class SelectionStats(BaseModel):
    """Feedback counters, the only fragment field the search core writes."""
    total_selections: int = Field(default=0, ge=0)
    last_selected_at: datetime | None = None
    search_patterns: dict[str, int] = Field(
        default_factory=dict, description="search terms -> selection count"
    )
    filter_usage: dict[str, int] = Field(
        default_factory=dict, description="filter type -> selection count"
    )
    position_stats: PositionStats = Field(default_factory=PositionStats)


class Fragment(BaseModel):
    """A unit of captured knowledge (note, todo, idea, ...)."""
    id: str
    title: str | None = None
    message: str = ""
    tags: list[str] = Field(default_factory=list)
    type: str | None = Field(None, description="Categorical type, e.g. 'todo'")
    parsed_entities: ParsedEntities = Field(default_factory=ParsedEntities)
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form; session_id, people, links and urls are read by search"
    )
    importance: int | None = Field(None, ge=0, le=100)
    confidence: int | None = Field(None, ge=0, le=100)
    pinned: bool = False
    vault: str | None = None
    project_id: str | None = None
    created_at: datetime
    selection_stats: SelectionStats = Field(default_factory=SelectionStats)

    # Set by the repository at retrieval time, never persisted
    relevance: float | None = Field(None, ge=0.0, le=1.0, exclude=True)


# ============================================================
# Parsed query
# ============================================================

FilterType = Literal["type", "tag", "mention", "has", "session", "date"]


class SearchFilter(BaseModel):
    """A structured predicate extracted from the raw query."""
    type: FilterType
    value: str
    display: str
    operator: Literal["before", "after"] | None = None
    removable: bool = True


class Suggestion(BaseModel):
    """A filter the user might add to the current query."""
    type: str = "filter"
    text: str
    description: str
    category: str


class AutocompleteEntry(BaseModel):
    """A catalog entry offered while typing."""
    type: str
    value: str
    display: str
    category: str


class ParsedQuery(BaseModel):
    """Structured filters plus residual free text."""
    original_query: str
    search_terms: str = ""
    filters: list[SearchFilter] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)
    autocomplete: list[AutocompleteEntry] = Field(default_factory=list)

    def filter_types(self) -> list[str]:
        """Distinct filter types, in first-seen order."""
        return list(dict.fromkeys(f.type for f in self.filters))

    def values(self, filter_type: str) -> list[str]:
        return [f.value for f in self.filters if f.type == filter_type]

    def first(self, filter_type: str, operator: str | None = None) -> str | None:
        for f in self.filters:
            if f.type == filter_type and (operator is None or f.operator == operator):
                return f.value
        return None


# ============================================================
# Recall decisions
# ============================================================

class RecallAction(str, Enum):
    """What the user did with a result list."""
    SELECT = "select"
    DISMISS = "dismiss"


class DecisionContext(BaseModel):
    """Derived context stored alongside each decision."""
    model_config = ConfigDict(frozen=True)

    parsed_query: ParsedQuery
    total_results: int = Field(..., ge=0)
    result_ids: list[str] = Field(default_factory=list)
    click_depth: int | None = Field(None, ge=1)
    clicked_in_top_n: dict[str, bool] | None = None
    search_terms: str = ""
    filter_types: list[str] = Field(default_factory=list)
    session_id: str | None = None
    user_id: str | None = None


class RecallDecision(BaseModel):
    """One logged search interaction. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str | None = None
    query: str
    parsed_query: ParsedQuery
    total_results: int = Field(..., ge=0)
    selected_fragment_id: str | None = None
    selected_index: int | None = Field(None, ge=0)
    action: RecallAction
    context: DecisionContext
    decided_at: datetime

    @model_validator(mode="after")
    def _check_selection(self) -> "RecallDecision":
        if self.selected_index is not None:
            if self.action != RecallAction.SELECT:
                raise ValueError("selected_index is only allowed on select decisions")
            if self.selected_index >= self.total_results:
                raise ValueError(
                    f"selected_index {self.selected_index} out of range "
                    f"for {self.total_results} results"
                )
        return self
