"""
Fragment Recall - Hybrid search and recall analytics for captured knowledge

Search core of a personal knowledge-capture system:
- Query grammar: type:, #tag, @mention, has:, in:session(), before:/after:
- Hybrid ranking: relevance, recency decay, tag/title/entity matches,
  session affinity, type and importance weighting
- Recall decision logging with per-fragment selection feedback
- Pattern analysis with rule-based tuning recommendations

Modules:
    core        - Configuration, schemas, storage interfaces
    search      - Grammar parser, ranker, SQLite index, search, logging, analytics
"""

__version__ = "1.0.0"
