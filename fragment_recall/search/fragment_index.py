"""
Fragment index on SQLite for candidate retrieval and feedback counters.

Provides:
- Keyword matching with a term-coverage relevance score
- Structured filters (type, tags, mentions, links, code, session, dates)
- Serialized read-modify-write of per-fragment selection stats
"""
import json
import logging
import sqlite3
import threading
from pathlib import Path

from ..core.interfaces import FragmentRepository, SelectionStatsUpdater
from ..core.schemas import Fragment, SelectionStats
from .fragment_search import CandidateQuery

logger = logging.getLogger(__name__)

MIN_RELEVANCE = 0.1

# JSON arrays that make a fragment count as "has:link"
LINK_FIELDS = (
    ("metadata", "$.urls"),
    ("parsed_entities", "$.urls"),
    ("metadata", "$.links"),
    ("parsed_entities", "$.references"),
)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class FragmentIndex(FragmentRepository):
    """
    SQLite-backed fragment repository.

    Features:
    - Keyword matching over title and message, every term required
    - JSON1 containment and existence filters
    - Selection stats updated inside an immediate transaction
    """

    def __init__(self, db_path: str | Path = "data/fragments.db"):
        """
        Initialize fragment index.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._stats_lock = threading.Lock()

        self._init_db()
        logger.info(f"FragmentIndex initialized at {self.db_path}")

    def _init_db(self):
        """Create tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS fragments (
                    id TEXT PRIMARY KEY,
                    title TEXT,
                    message TEXT,
                    tags TEXT,  -- JSON array
                    type TEXT,
                    parsed_entities TEXT,  -- JSON object
                    metadata TEXT,  -- JSON object
                    importance INTEGER,
                    confidence INTEGER,
                    pinned INTEGER DEFAULT 0,
                    vault TEXT,
                    project_id TEXT,
                    created_at TEXT,
                    selection_stats TEXT  -- JSON object
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_fragment_type ON fragments(type)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_fragment_created ON fragments(created_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_fragment_vault ON fragments(vault, project_id)")

            conn.commit()

    # --------------------------------------------------------
    # Storage
    # --------------------------------------------------------

    def add_fragment(self, fragment: Fragment):
        """Add or replace a fragment."""
        data = fragment.model_dump(mode="json")

        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                INSERT OR REPLACE INTO fragments
                (id, title, message, tags, type, parsed_entities, metadata,
                 importance, confidence, pinned, vault, project_id, created_at, selection_stats)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                fragment.id,
                fragment.title,
                fragment.message,
                json.dumps(data["tags"]),
                fragment.type,
                json.dumps(data["parsed_entities"]),
                json.dumps(data["metadata"]),
                fragment.importance,
                fragment.confidence,
                int(fragment.pinned),
                fragment.vault,
                fragment.project_id,
                fragment.created_at.isoformat(),
                json.dumps(data["selection_stats"])
            ))
            conn.commit()

        logger.debug(f"Indexed fragment: {fragment.id}")

    def add_fragments(self, fragments: list[Fragment]):
        """Add multiple fragments."""
        for fragment in fragments:
            self.add_fragment(fragment)
        logger.info(f"Indexed {len(fragments)} fragments")

    def remove_fragment(self, fragment_id: str):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM fragments WHERE id = ?", (fragment_id,))
            conn.commit()

    def get_fragment(self, fragment_id: str) -> Fragment | None:
        """Get a fragment by id."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT * FROM fragments WHERE id = ?",
                (fragment_id,)
            ).fetchone()

            return self._row_to_fragment(row) if row else None

    def count(self) -> int:
        with sqlite3.connect(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM fragments").fetchone()[0]

    def clear(self):
        """Remove all fragments."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM fragments")
            conn.commit()
        logger.warning("Fragment index cleared")

    # --------------------------------------------------------
    # Retrieval
    # --------------------------------------------------------

    def find_candidates(self, query: CandidateQuery) -> list[Fragment]:
        """
        Find fragments matching a retrieval request.

        Args:
            query: Filters, free text and candidate limit

        Returns:
            Matching fragments, newest first, with relevance set when
            the request has search terms
        """
        sql = "SELECT f.* FROM fragments f WHERE 1=1"
        params: list = []

        terms = query.terms()
        if terms:
            # Every term must appear in title or message
            term_conditions = " AND ".join(
                "(f.title LIKE ? ESCAPE '\\' OR f.message LIKE ? ESCAPE '\\')" for _ in terms
            )
            sql += f" AND ({term_conditions})"
            for term in terms:
                like = f"%{_escape_like(term)}%"
                params.extend([like, like])

        if query.fragment_type:
            sql += " AND f.type = ?"
            params.append(query.fragment_type)

        if query.vault:
            sql += " AND f.vault = ?"
            params.append(query.vault)

        if query.project_id:
            sql += " AND f.project_id = ?"
            params.append(query.project_id)

        for tag in query.tags:
            sql += " AND EXISTS (SELECT 1 FROM json_each(f.tags) WHERE value = ?)"
            params.append(tag)

        for mention in query.mentions:
            sql += """ AND (
                EXISTS (SELECT 1 FROM json_each(f.metadata, '$.people') WHERE value = ?)
                OR EXISTS (SELECT 1 FROM json_each(f.parsed_entities, '$.people') WHERE value = ?)
            )"""
            params.extend([mention, mention])

        if query.has_link:
            link_conditions = " OR ".join(
                f"COALESCE(json_array_length(f.{column}, '{path}'), 0) > 0"
                for column, path in LINK_FIELDS
            )
            sql += f" AND ({link_conditions})"

        if query.has_code:
            sql += " AND COALESCE(json_array_length(f.parsed_entities, '$.code_snippets'), 0) > 0"

        if query.session_id:
            sql += " AND json_extract(f.metadata, '$.session_id') = ?"
            params.append(query.session_id)

        if query.created_before:
            sql += " AND substr(f.created_at, 1, 10) < ?"
            params.append(query.created_before.isoformat())

        if query.created_after:
            sql += " AND substr(f.created_at, 1, 10) > ?"
            params.append(query.created_after.isoformat())

        sql += " ORDER BY f.created_at DESC, f.id ASC LIMIT ?"
        params.append(max(0, query.limit))

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            fragments = [self._row_to_fragment(row) for row in conn.execute(sql, params)]

        if terms:
            fragments = [
                f.model_copy(update={"relevance": self._term_coverage(f, terms)})
                for f in fragments
            ]

        logger.debug(f"find_candidates returned {len(fragments)} fragments")
        return fragments

    @staticmethod
    def _term_coverage(fragment: Fragment, terms: list[str]) -> float:
        """Share of query terms found in title or message, floored at MIN_RELEVANCE."""
        haystacks = [(fragment.title or "").lower(), fragment.message.lower()]
        lowered = [t.lower() for t in terms]
        matches = sum(1 for term in lowered if any(term in text for text in haystacks))
        return max(MIN_RELEVANCE, min(1.0, matches / max(1, len(lowered))))

    # --------------------------------------------------------
    # Feedback counters
    # --------------------------------------------------------

    def update_selection_stats(
        self,
        fragment_id: str,
        updater: SelectionStatsUpdater
    ) -> SelectionStats:
        """
        Apply ``updater`` to a fragment's selection stats atomically.

        The read and write share one BEGIN IMMEDIATE transaction, so
        concurrent writers on the same database queue instead of losing
        updates.
        """
        with self._stats_lock:
            conn = sqlite3.connect(self.db_path, isolation_level=None)
            try:
                conn.execute("BEGIN IMMEDIATE")
                row = conn.execute(
                    "SELECT selection_stats FROM fragments WHERE id = ?",
                    (fragment_id,)
                ).fetchone()
                if row is None:
                    raise ValueError(f"Unknown fragment: {fragment_id}")

                current = SelectionStats.model_validate(json.loads(row[0] or "{}"))
                updated = updater(current)

                conn.execute(
                    "UPDATE fragments SET selection_stats = ? WHERE id = ?",
                    (json.dumps(updated.model_dump(mode="json")), fragment_id)
                )
                conn.execute("COMMIT")
            except Exception:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            finally:
                conn.close()

        return updated

    # --------------------------------------------------------
    # Utilities
    # --------------------------------------------------------

    @staticmethod
    def _row_to_fragment(row: sqlite3.Row) -> Fragment:
        return Fragment(
            id=row["id"],
            title=row["title"],
            message=row["message"] or "",
            tags=json.loads(row["tags"] or "[]"),
            type=row["type"],
            parsed_entities=json.loads(row["parsed_entities"] or "{}"),
            metadata=json.loads(row["metadata"] or "{}"),
            importance=row["importance"],
            confidence=row["confidence"],
            pinned=bool(row["pinned"]),
            vault=row["vault"],
            project_id=row["project_id"],
            created_at=row["created_at"],
            selection_stats=json.loads(row["selection_stats"] or "{}"),
        )
