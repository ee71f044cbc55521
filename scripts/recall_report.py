"""
Recall pattern report - CLI tool.

Summarizes how search results were used over a time window.

Usage:
    python scripts/recall_report.py
    python scripts/recall_report.py --days 7 --user 42
    python scripts/recall_report.py --json
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import argparse
import json
import logging

from fragment_recall.core.config import get_settings, load_dotenv_if_exists
from fragment_recall.search.decision_log import DecisionLog
from fragment_recall.search.recall_patterns import RecallPatternAnalyzer


def main():
    parser = argparse.ArgumentParser(description="Analyze recall decisions")
    parser.add_argument("--days", type=int, default=None, help="Window size in days")
    parser.add_argument("--user", default=None, help="Only this user's decisions")
    parser.add_argument("--db", default=None, help="Decision database path")
    parser.add_argument("--json", action="store_true", help="Print the raw report as JSON")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)
    load_dotenv_if_exists()
    settings = get_settings()

    paths = settings.paths.resolve(settings.project_root)
    store = DecisionLog(args.db or paths.decision_db)
    analyzer = RecallPatternAnalyzer(store, settings=settings.analysis)
    report = analyzer.analyze(user_id=args.user, days_past=args.days)

    if args.json:
        print(json.dumps(report, indent=2, default=str))
        return

    summary = report["summary"]
    print("\n📈 Recall Summary\n" + "="*60)
    print(f"  Searches:        {summary['total_searches']}")
    print(f"  Selections:      {summary['successful_selections']}")
    print(f"  Dismissals:      {summary['dismissals']}")
    print(f"  Success rate:    {summary['success_rate']:5.1f}%")
    print(f"  Avg results:     {summary['average_results_per_search']}")

    metrics = report["selection_metrics"]
    print("\n🎯 Selection Metrics\n" + "="*60)
    print(f"  Avg click position: {metrics['average_click_position']}")
    for label, info in metrics["top_n_performance"].items():
        print(f"  {label:7s}: {info['count']:4d} ({info['percentage']:5.1f}%)")

    patterns = report["query_patterns"]
    print("\n🔎 Frequent Queries\n" + "="*60)
    if not patterns["most_frequent_queries"]:
        print("  No searches in this window.")
    for query, count in patterns["most_frequent_queries"].items():
        print(f"  {count:4d}  {query}")

    print("\n💡 Recommendations\n" + "="*60)
    if not report["recommendations"]:
        print("✅ Nothing to flag!")
    for rec in report["recommendations"]:
        icon = "❗" if rec["priority"] == "high" else "⚠️"
        print(f"  {icon} [{rec['type']}] {rec['message']}")


if __name__ == "__main__":
    main()
