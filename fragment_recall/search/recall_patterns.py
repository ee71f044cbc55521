"""
Recall pattern analysis over logged search decisions.

Provides:
- Success rate and result-count summary
- Frequent, successful and failed queries
- Click position metrics and filter usage
- Time-of-day / day-of-week usage and rule-based recommendations

Recommendations are informational; nothing here changes ranking weights.
"""
import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Callable

from ..core.config import AnalysisSettings
from ..core.interfaces import DecisionStore
from ..core.schemas import RecallAction, RecallDecision

logger = logging.getLogger(__name__)

TOP_N = (1, 3, 5, 10)


def _rate(part: int, total: int, digits: int) -> float:
    return round(part / total * 100, digits) if total > 0 else 0


def _click_position(decision: RecallDecision) -> int | None:
    if decision.action != RecallAction.SELECT or decision.selected_index is None:
        return None
    return decision.selected_index + 1


class RecallPatternAnalyzer:
    """
    Batch analytics over the decision history.

    Reads the window once and derives every report section from that
    snapshot. Runs off the live search path; reads may lag concurrent
    logging.
    """

    def __init__(
        self,
        store: DecisionStore,
        settings: AnalysisSettings | None = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize analyzer.

        Args:
            store: Decision store to read from
            settings: Report thresholds
            clock: Source of "now" for the analysis window
        """
        self.store = store
        self.settings = settings or AnalysisSettings()
        self.clock = clock

    def analyze(self, user_id: str | None = None, days_past: int | None = None) -> dict:
        """
        Build a recall report.

        Args:
            user_id: Only include this user's decisions
            days_past: Window size in days (default from settings)

        Returns:
            Report dict with summary, query_patterns, selection_metrics,
            filter_usage, performance_insights and recommendations
        """
        days = self.settings.days_past if days_past is None else days_past
        since = self.clock() - timedelta(days=days)
        decisions = self.store.query_by_time_range(since, user_id)

        logger.info(f"Analyzing {len(decisions)} recall decisions from the last {days} days")

        summary = self._summary(decisions)
        selection_metrics = self._selection_metrics(decisions)

        return {
            "summary": summary,
            "query_patterns": self._query_patterns(decisions),
            "selection_metrics": selection_metrics,
            "filter_usage": self._filter_usage(decisions),
            "performance_insights": self._performance_insights(decisions),
            "recommendations": self._recommendations(decisions, summary, selection_metrics),
        }

    __call__ = analyze

    # --------------------------------------------------------
    # Sections
    # --------------------------------------------------------

    def _summary(self, decisions: list[RecallDecision]) -> dict:
        total = len(decisions)
        selections = sum(1 for d in decisions if d.action == RecallAction.SELECT)
        dismissals = sum(1 for d in decisions if d.action == RecallAction.DISMISS)
        average_results = (
            round(sum(d.total_results for d in decisions) / total, 1) if total else 0
        )

        return {
            "total_searches": total,
            "successful_selections": selections,
            "dismissals": dismissals,
            "success_rate": _rate(selections, total, 2),
            "average_results_per_search": average_results,
        }

    def _query_patterns(self, decisions: list[RecallDecision]) -> dict:
        frequency = Counter(d.query for d in decisions)

        outcomes: dict[str, dict] = defaultdict(lambda: {"total": 0, "selected": 0})
        for d in decisions:
            outcomes[d.query]["total"] += 1
            if d.action == RecallAction.SELECT:
                outcomes[d.query]["selected"] += 1

        successful = [
            (query, {**stats, "success_rate": _rate(stats["selected"], stats["total"], 2)})
            for query, stats in outcomes.items()
            if stats["total"] >= self.settings.min_query_occurrences
        ]
        successful.sort(key=lambda item: item[1]["success_rate"], reverse=True)

        terms = Counter(
            term
            for d in decisions
            for term in d.parsed_query.search_terms.lower().split()
        )

        return {
            "most_frequent_queries": dict(frequency.most_common(10)),
            "most_successful_queries": dict(successful[:10]),
            "common_search_terms": dict(terms.most_common(20)),
        }

    def _selection_metrics(self, decisions: list[RecallDecision]) -> dict:
        positions = [p for p in map(_click_position, decisions) if p is not None]

        if not positions:
            return {
                "average_click_position": 0,
                "click_distribution": {},
                "top_n_performance": {},
            }

        total = len(positions)
        top_n = {}
        for n in TOP_N:
            count = sum(1 for p in positions if p <= n)
            top_n[f"top_{n}"] = {"count": count, "percentage": _rate(count, total, 1)}

        return {
            "average_click_position": round(sum(positions) / total, 2),
            "click_distribution": dict(sorted(Counter(positions).items())),
            "top_n_performance": top_n,
        }

    def _filter_usage(self, decisions: list[RecallDecision]) -> dict:
        usage: Counter = Counter()
        selected: Counter = Counter()

        for d in decisions:
            for f in d.parsed_query.filters:
                usage[f.type] += 1
                if d.action == RecallAction.SELECT:
                    selected[f.type] += 1

        return {
            "usage_frequency": dict(usage),
            "success_rates": {
                filter_type: {
                    "total": count,
                    "selected": selected[filter_type],
                    "success_rate": _rate(selected[filter_type], count, 1),
                }
                for filter_type, count in usage.items()
            },
        }

    def _performance_insights(self, decisions: list[RecallDecision]) -> dict:
        hourly = Counter(d.decided_at.hour for d in decisions)
        daily = Counter(d.decided_at.isoweekday() for d in decisions)  # 1=Monday
        lengths = [len(d.query) for d in decisions]

        return {
            "hourly_usage_pattern": dict(sorted(hourly.items())),
            "daily_usage_pattern": dict(sorted(daily.items())),
            "query_length_stats": {
                "average": round(sum(lengths) / len(lengths), 1) if lengths else 0,
                "min": min(lengths, default=0),
                "max": max(lengths, default=0),
            },
        }

    def _recommendations(
        self,
        decisions: list[RecallDecision],
        summary: dict,
        selection_metrics: dict
    ) -> list[dict]:
        recommendations = []

        skip_quality = summary["total_searches"] == 0 and self.settings.suppress_when_empty
        if not skip_quality and summary["success_rate"] < self.settings.low_success_rate:
            recommendations.append({
                "type": "search_quality",
                "message": "Search success rate is low. Consider improving result ranking or query parsing.",
                "priority": "high",
            })

        if selection_metrics["click_distribution"]:
            if selection_metrics["average_click_position"] > self.settings.ranking_position_threshold:
                recommendations.append({
                    "type": "ranking",
                    "message": (
                        f"Users typically select results beyond position "
                        f"{self.settings.ranking_position_threshold:g}. "
                        f"Consider improving ranking algorithm."
                    ),
                    "priority": "medium",
                })

        dismissed = Counter(d.query for d in decisions if d.action == RecallAction.DISMISS)
        failed = [q for q, count in dismissed.items() if count >= self.settings.failed_query_dismissals]
        if failed:
            recommendations.append({
                "type": "failed_queries",
                "message": "Several queries consistently fail. Review: " + ", ".join(failed[:3]),
                "priority": "medium",
                "queries": failed[:3],
            })

        return recommendations
