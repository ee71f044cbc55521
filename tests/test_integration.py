"""
Fragment Recall: Integration Tests

Tests the modules together to verify:
1. Package imports and configuration defaults
2. Search over a real SQLite fragment index
3. Decision logging feeding selection stats back into fragments
4. Pattern analysis over the logged decisions

Run:
    python tests/test_integration.py           # All tests
    python tests/test_integration.py -v        # Verbose
"""
import os
import shutil
import sys
import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

NOW = datetime(2024, 6, 12, 10, 30)


def fixed_clock():
    return NOW


# ============================================================
# 1. Core Module Tests
# ============================================================

class TestCoreImports(unittest.TestCase):
    """Test that core modules import and default correctly."""

    def test_import_package(self):
        import fragment_recall
        from fragment_recall.search import (
            SearchGrammarParser, SearchRanker, FragmentSearch,
            FragmentIndex, DecisionLog, RecallDecisionLogger,
            RecallPatternAnalyzer,
        )
        self.assertEqual(fragment_recall.__version__, "1.0.0")

    def test_settings_defaults(self):
        from fragment_recall.core.config import Settings
        s = Settings()
        self.assertEqual(s.search.default_limit, 20)
        self.assertEqual(s.search.candidate_multiplier, 2)
        self.assertEqual(s.analysis.days_past, 30)
        self.assertTrue(s.analysis.suppress_when_empty)

    def test_ranking_settings_to_config(self):
        from fragment_recall.core.config import RankingConfig, RankingSettings
        config = RankingSettings().to_config()
        self.assertEqual(config, RankingConfig())
        self.assertEqual(config.weights.relevance, 40.0)

    def test_env_override(self):
        from fragment_recall.core.config import SearchSettings
        with patch.dict(os.environ, {"RECALL_SEARCH_LIMIT": "5"}):
            self.assertEqual(SearchSettings().default_limit, 5)


# ============================================================
# 2. End-to-end Recall Loop
# ============================================================

class TestRecallLoop(unittest.TestCase):
    """Search, record decisions and analyze them against real databases."""

    def setUp(self):
        from fragment_recall.core.schemas import Fragment
        from fragment_recall.search import (
            DecisionLog, FragmentIndex, FragmentSearch,
            RecallDecisionLogger, RecallPatternAnalyzer,
        )

        self.tmp = tempfile.mkdtemp()
        self.index = FragmentIndex(Path(self.tmp) / "fragments.db")
        self.log = DecisionLog(Path(self.tmp) / "decisions.db")
        self.search = FragmentSearch(self.index, clock=fixed_clock)
        self.recall = RecallDecisionLogger(self.log, self.index, clock=fixed_clock)
        self.analyzer = RecallPatternAnalyzer(self.log, clock=fixed_clock)

        self.index.add_fragments([
            Fragment(
                id="standup",
                title="Standup notes",
                message="Discussed the release plan",
                type="meeting",
                tags=["work"],
                created_at=NOW - timedelta(days=2),
            ),
            Fragment(
                id="release",
                title="Release checklist",
                message="Tag the release and write notes",
                type="todo",
                tags=["work", "urgent"],
                created_at=NOW,
            ),
            Fragment(
                id="recipe",
                title="Pasta recipe",
                message="Garlic, oil, chili",
                type="note",
                tags=["personal"],
                created_at=NOW - timedelta(days=200),
            ),
        ])

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_search_ranks_filtered_results(self):
        results = self.search.search("#work release")

        ids = [r.fragment.id for r in results]
        self.assertEqual(ids, ["release", "standup"])
        self.assertGreater(results[0].search_score, results[1].search_score)
        for r in results:
            self.assertGreaterEqual(r.search_score, 0)
            self.assertLessEqual(r.search_score, 100)

    def test_select_updates_fragment_stats(self):
        query = "#work release"
        results = self.search.search(query)
        ids = [r.fragment.id for r in results]

        self.recall.record(query, ids, results[1].fragment, 1, "select", user_id="u1")

        stats = self.index.get_fragment("standup").selection_stats
        self.assertEqual(stats.total_selections, 1)
        self.assertEqual(stats.search_patterns, {"release": 1})
        self.assertEqual(stats.filter_usage, {"tag": 1})
        self.assertEqual(stats.position_stats.average_position, 2)
        self.assertEqual(stats.last_selected_at, NOW)

    def test_dismiss_leaves_fragments_untouched(self):
        results = self.search.search("pasta")
        self.recall.record("pasta", [r.fragment.id for r in results], action="dismiss")

        self.assertEqual(self.index.get_fragment("recipe").selection_stats.total_selections, 0)
        self.assertEqual(self.log.count(), 1)

    def test_analyze_logged_history(self):
        for _ in range(3):
            results = self.search.search("release")
            self.recall.record("release", [r.fragment.id for r in results], results[0].fragment, 0)
        self.recall.record("pasta", ["recipe"], action="dismiss")

        report = self.analyzer.analyze()

        self.assertEqual(report["summary"]["total_searches"], 4)
        self.assertEqual(report["summary"]["success_rate"], 75.0)
        self.assertEqual(report["selection_metrics"]["average_click_position"], 1.0)
        self.assertEqual(report["query_patterns"]["most_frequent_queries"], {"release": 3, "pasta": 1})
        self.assertEqual(report["recommendations"], [])
        self.assertEqual(self.index.get_fragment("release").selection_stats.total_selections, 3)


if __name__ == "__main__":
    unittest.main()
