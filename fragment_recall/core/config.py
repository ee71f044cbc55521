"""
Central configuration management for fragment recall.

Loads settings from environment variables and provides typed access.
Ranking and grammar lookup tables are exposed as frozen models so each
component instance owns an immutable copy.
"""
from pathlib import Path
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ============================================================
# Immutable component configuration
# ============================================================

DEFAULT_TYPE_WEIGHTS = {
    "note": 0.5,
    "todo": 0.7,
    "task": 0.7,
    "insight": 0.8,
    "question": 0.6,
    "meeting": 0.7,
    "contact": 0.6,
    "link": 0.5,
    "idea": 0.8,
}

# (max age in days, recency subscore), checked in order
DEFAULT_RECENCY_STEPS = (
    (0, 1.0),
    (7, 0.8),
    (30, 0.5),
    (90, 0.3),
    (365, 0.1),
)


class RankingWeights(BaseModel):
    """Points each subscore contributes at full strength (sum to 120, the total is clamped)."""
    model_config = ConfigDict(frozen=True)

    relevance: float = 40.0
    recency: float = 30.0
    tags: float = 15.0
    session: float = 10.0
    type: float = 5.0
    title: float = 10.0
    entities: float = 5.0
    importance: float = 5.0


class RankingConfig(BaseModel):
    """Lookup tables for the hybrid ranking scorer."""
    model_config = ConfigDict(frozen=True)

    weights: RankingWeights = Field(default_factory=RankingWeights)
    recency_steps: tuple[tuple[int, float], ...] = DEFAULT_RECENCY_STEPS
    recency_floor: float = 0.05
    type_weights: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_TYPE_WEIGHTS))
    default_type_weight: float = 0.4


class GrammarCatalog(BaseModel):
    """Autocomplete and suggestion catalog for the query grammar."""
    model_config = ConfigDict(frozen=True)

    types: tuple[str, ...] = ("note", "todo", "task", "meeting", "idea", "question", "insight")
    has_values: tuple[tuple[str, str], ...] = (
        ("link", "Has Links"),
        ("code", "Has Code Snippets"),
    )
    suggested_type: str = "todo"
    suggested_tag: str = "urgent"
    suggested_recent_days: int = 7


# ============================================================
# Environment settings
# ============================================================

class RankingSettings(BaseSettings):
    """Signal weights for the hybrid ranking formula."""
    model_config = SettingsConfigDict(populate_by_name=True)

    relevance: float = Field(default=40.0, alias="RECALL_WEIGHT_RELEVANCE")
    recency: float = Field(default=30.0, alias="RECALL_WEIGHT_RECENCY")
    tags: float = Field(default=15.0, alias="RECALL_WEIGHT_TAGS")
    session: float = Field(default=10.0, alias="RECALL_WEIGHT_SESSION")
    type: float = Field(default=5.0, alias="RECALL_WEIGHT_TYPE")
    title: float = Field(default=10.0, alias="RECALL_WEIGHT_TITLE")
    entities: float = Field(default=5.0, alias="RECALL_WEIGHT_ENTITIES")
    importance: float = Field(default=5.0, alias="RECALL_WEIGHT_IMPORTANCE")

    def to_config(self) -> RankingConfig:
        """Freeze the configured weights into a ranking config."""
        return RankingConfig(weights=RankingWeights(
            relevance=self.relevance,
            recency=self.recency,
            tags=self.tags,
            session=self.session,
            type=self.type,
            title=self.title,
            entities=self.entities,
            importance=self.importance,
        ))


class SearchSettings(BaseSettings):
    """Search execution configuration."""
    model_config = SettingsConfigDict(populate_by_name=True)

    default_limit: int = Field(default=20, alias="RECALL_SEARCH_LIMIT")
    candidate_multiplier: int = Field(default=2, alias="RECALL_CANDIDATE_MULTIPLIER")


class AnalysisSettings(BaseSettings):
    """Thresholds used by the recall pattern analyzer."""
    model_config = SettingsConfigDict(populate_by_name=True)

    days_past: int = Field(default=30, alias="RECALL_ANALYSIS_DAYS")
    low_success_rate: float = Field(default=60.0, alias="RECALL_LOW_SUCCESS_RATE")
    ranking_position_threshold: float = Field(default=3.0, alias="RECALL_POSITION_THRESHOLD")
    failed_query_dismissals: int = Field(default=3, alias="RECALL_FAILED_QUERY_DISMISSALS")
    min_query_occurrences: int = Field(default=3, alias="RECALL_MIN_QUERY_OCCURRENCES")
    suppress_when_empty: bool = Field(
        default=True,
        alias="RECALL_SUPPRESS_EMPTY_RECOMMENDATIONS",
        description="Skip the search_quality recommendation when there are no searches"
    )


class PathSettings(BaseSettings):
    """Path configuration."""
    model_config = SettingsConfigDict(populate_by_name=True)

    fragment_db: Path = Field(default=Path("data/fragments.db"), alias="RECALL_FRAGMENT_DB")
    decision_db: Path = Field(default=Path("data/recall_decisions.db"), alias="RECALL_DECISION_DB")

    def resolve(self, base_dir: Path) -> "PathSettings":
        """Resolve relative paths against base directory."""
        return PathSettings(
            fragment_db=base_dir / self.fragment_db,
            decision_db=base_dir / self.decision_db
        )


class Settings(BaseSettings):
    """Main settings aggregator."""
    ranking: RankingSettings = Field(default_factory=RankingSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    paths: PathSettings = Field(default_factory=PathSettings)

    # Project root
    project_root: Path = Field(default_factory=lambda: Path(__file__).parent.parent.parent)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience function
def load_dotenv_if_exists():
    """Load .env file from the project root if it exists."""
    from dotenv import load_dotenv
    env_path = Path(__file__).parent.parent.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path)
