"""
Recall decision logging.

Provides:
- DecisionLog: append-only SQLite store of search interactions
- RecallDecisionLogger: records select/dismiss decisions and feeds
  selection counters back into the fragment repository
"""
import json
import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable

from ..core.interfaces import DecisionStore, FragmentRepository
from ..core.schemas import (
    DecisionContext,
    Fragment,
    ParsedQuery,
    PositionStats,
    RecallAction,
    RecallDecision,
    SelectionStats,
)
from .grammar import SearchGrammarParser

logger = logging.getLogger(__name__)

TOP_N = (1, 3, 5, 10)


class DecisionLog(DecisionStore):
    """
    SQLite-based append-only decision store.

    Decisions are inserted once and never updated or deleted.
    """

    def __init__(self, db_path: str | Path = "data/recall_decisions.db"):
        """
        Initialize decision log.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_db()
        logger.info(f"DecisionLog initialized at {self.db_path}")

    def _init_db(self):
        """Create tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS recall_decisions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    query TEXT,
                    parsed_query TEXT,  -- JSON
                    total_results INTEGER,
                    selected_fragment_id TEXT,
                    selected_index INTEGER,
                    action TEXT,
                    context TEXT,  -- JSON
                    decided_at TEXT
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_decision_time ON recall_decisions(decided_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_decision_user ON recall_decisions(user_id, decided_at)"
            )

            conn.commit()

    def insert(self, decision: RecallDecision):
        """Append a decision."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO recall_decisions
                (id, user_id, query, parsed_query, total_results, selected_fragment_id,
                 selected_index, action, context, decided_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                decision.id,
                decision.user_id,
                decision.query,
                decision.parsed_query.model_dump_json(),
                decision.total_results,
                decision.selected_fragment_id,
                decision.selected_index,
                decision.action.value,
                decision.context.model_dump_json(),
                decision.decided_at.isoformat()
            ))
            conn.commit()

    def query_by_time_range(
        self,
        since: datetime,
        user_id: str | None = None
    ) -> list[RecallDecision]:
        """Get decisions made at or after ``since``, oldest first."""
        sql = "SELECT * FROM recall_decisions WHERE decided_at >= ?"
        params: list = [since.isoformat()]
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        sql += " ORDER BY decided_at ASC, rowid ASC"

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            return [self._row_to_decision(row) for row in conn.execute(sql, params)]

    def get_decision(self, decision_id: str) -> RecallDecision | None:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT * FROM recall_decisions WHERE id = ?",
                (decision_id,)
            ).fetchone()
            return self._row_to_decision(row) if row else None

    def count(self) -> int:
        with sqlite3.connect(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM recall_decisions").fetchone()[0]

    @staticmethod
    def _row_to_decision(row: sqlite3.Row) -> RecallDecision:
        return RecallDecision(
            id=row["id"],
            user_id=row["user_id"],
            query=row["query"] or "",
            parsed_query=json.loads(row["parsed_query"] or "{}"),
            total_results=row["total_results"] or 0,
            selected_fragment_id=row["selected_fragment_id"],
            selected_index=row["selected_index"],
            action=row["action"],
            context=json.loads(row["context"] or "{}"),
            decided_at=row["decided_at"]
        )


def apply_selection(
    stats: SelectionStats,
    parsed: ParsedQuery,
    click_depth: int | None,
    selected_at: datetime
) -> SelectionStats:
    """
    Fold one selection into a fragment's counters.

    The running average position uses the incremental mean
    ``(old × (n - 1) + x) / n`` with n the post-increment click count.
    """
    search_patterns = dict(stats.search_patterns)
    if parsed.search_terms:
        search_patterns[parsed.search_terms] = search_patterns.get(parsed.search_terms, 0) + 1

    filter_usage = dict(stats.filter_usage)
    for filter_type in parsed.filter_types():
        filter_usage[filter_type] = filter_usage.get(filter_type, 0) + 1

    position = stats.position_stats
    if click_depth is not None:
        clicks = position.total_clicks + 1
        average = (position.average_position * (clicks - 1) + click_depth) / clicks
        position = PositionStats(total_clicks=clicks, average_position=average)

    return SelectionStats(
        total_selections=stats.total_selections + 1,
        last_selected_at=selected_at,
        search_patterns=search_patterns,
        filter_usage=filter_usage,
        position_stats=position,
    )


class RecallDecisionLogger:
    """
    Records what users do with search results.

    Every call appends one immutable decision. Selections also update the
    chosen fragment's selection stats; a failed update is logged and does
    not undo the decision.
    """

    def __init__(
        self,
        store: DecisionStore,
        repository: FragmentRepository | None = None,
        parser: SearchGrammarParser | None = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize decision logger.

        Args:
            store: Append-only decision store
            repository: Fragment repository for selection counters
            parser: Query grammar parser used to annotate decisions
            clock: Source of decided_at timestamps
        """
        self.store = store
        self.repository = repository
        self.parser = parser or SearchGrammarParser(clock=clock)
        self.clock = clock

    def record(
        self,
        query: str,
        result_ids: list[str],
        selected_fragment: Fragment | str | None = None,
        selected_index: int | None = None,
        action: RecallAction | str = RecallAction.SELECT,
        user_id: str | None = None,
        session_id: str | None = None
    ) -> RecallDecision:
        """
        Log a search interaction.

        Args:
            query: Raw query the results were produced for
            result_ids: Ids of the results shown, in display order
            selected_fragment: Fragment (or its id) the user picked
            selected_index: 0-based position of the pick
            action: "select" or "dismiss"
            user_id: Acting user, if known
            session_id: Session the search happened in

        Returns:
            The stored RecallDecision
        """
        try:
            action = RecallAction(action)
        except ValueError:
            raise ValueError(
                f"Unknown action: {action}. Must be one of {[a.value for a in RecallAction]}"
            ) from None

        if action == RecallAction.SELECT and selected_fragment is None and selected_index is None:
            raise ValueError("select requires selected_fragment or selected_index")

        total_results = len(result_ids)
        self._validate_index(selected_index, total_results, action)

        parsed = self.parser.parse(query)
        decided_at = self.clock()

        click_depth = None
        clicked_in_top_n = None
        if selected_index is not None:
            click_depth = selected_index + 1
            clicked_in_top_n = {f"top_{n}": click_depth <= n for n in TOP_N}

        fragment_id = selected_fragment.id if isinstance(selected_fragment, Fragment) else selected_fragment

        decision = RecallDecision(
            id=uuid.uuid4().hex,
            user_id=user_id,
            query=query,
            parsed_query=parsed,
            total_results=total_results,
            selected_fragment_id=fragment_id,
            selected_index=selected_index,
            action=action,
            context=DecisionContext(
                parsed_query=parsed,
                total_results=total_results,
                result_ids=list(result_ids),
                click_depth=click_depth,
                clicked_in_top_n=clicked_in_top_n,
                search_terms=parsed.search_terms,
                filter_types=parsed.filter_types(),
                session_id=session_id,
                user_id=user_id,
            ),
            decided_at=decided_at,
        )

        self.store.insert(decision)
        logger.debug(f"Recorded {action.value} decision {decision.id} for query {query!r}")

        if action == RecallAction.SELECT and fragment_id is not None:
            self._update_selection_stats(fragment_id, parsed, click_depth, decided_at)

        return decision

    __call__ = record

    @staticmethod
    def _validate_index(selected_index: int | None, total_results: int, action: RecallAction):
        if selected_index is None:
            return
        if action != RecallAction.SELECT:
            raise ValueError(f"selected_index is only valid for select, got action {action.value}")
        if selected_index < 0:
            raise ValueError(f"selected_index must be >= 0, got {selected_index}")
        if selected_index >= total_results:
            raise ValueError(
                f"selected_index {selected_index} out of range for {total_results} results"
            )

    def _update_selection_stats(
        self,
        fragment_id: str,
        parsed: ParsedQuery,
        click_depth: int | None,
        selected_at: datetime
    ):
        if self.repository is None:
            return

        try:
            self.repository.update_selection_stats(
                fragment_id,
                lambda stats: apply_selection(stats, parsed, click_depth, selected_at)
            )
        except Exception as e:
            logger.warning(
                f"Selection stats update failed for fragment {fragment_id}: {e}",
                exc_info=True
            )
