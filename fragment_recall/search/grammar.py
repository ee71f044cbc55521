"""
Search grammar parser.

Turns a raw query such as ``type:todo #work @alice has:link after:2024-01-01 notes``
into structured filters plus the remaining free text.

Provides:
- Order-independent filter extraction (type, tag, mention, has, session, date)
- Residual search terms with every filter token removed
- Filter suggestions and an autocomplete catalog

Parsing never fails: text that is not a recognized token is kept as
search terms.
"""
import logging
import re
from calendar import monthrange
from datetime import date, datetime, timedelta
from typing import Callable

from ..core.config import GrammarCatalog
from ..core.schemas import AutocompleteEntry, ParsedQuery, SearchFilter, Suggestion

logger = logging.getLogger(__name__)


TYPE_PATTERN = re.compile(r"type:(\w+)")
TAG_PATTERN = re.compile(r"#([\w-]+)")
MENTION_PATTERN = re.compile(r"@([\w.-]+)")
SESSION_PATTERN = re.compile(r"in:session\(([^)]+)\)")
BEFORE_PATTERN = re.compile(r"before:(\d{4}-\d{2}-\d{2})")
AFTER_PATTERN = re.compile(r"after:(\d{4}-\d{2}-\d{2})")

# Everything removed from the query to produce search terms
FILTER_TOKEN_PATTERNS = (
    TYPE_PATTERN,
    TAG_PATTERN,
    MENTION_PATTERN,
    re.compile(r"has:link"),
    re.compile(r"has:code"),
    SESSION_PATTERN,
    BEFORE_PATTERN,
    AFTER_PATTERN,
)

WHITESPACE = re.compile(r"\s+")


def _months_back(day: date, months: int) -> date:
    """Same day-of-month ``months`` earlier, clamped to the month's length."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    return day.replace(year=year, month=month, day=min(day.day, monthrange(year, month)[1]))


class SearchGrammarParser:
    """
    Parser for the recall query grammar.

    Each extractor scans the original query on its own, so one filter kind
    can never hide another. Search terms come from a separate removal pass.
    """

    def __init__(
        self,
        catalog: GrammarCatalog | None = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize parser.

        Args:
            catalog: Suggestion and autocomplete catalog
            clock: Source of "now" for date suggestions and shortcuts
        """
        self.catalog = catalog or GrammarCatalog()
        self.clock = clock

    def parse(self, query: str) -> ParsedQuery:
        """
        Parse a raw query.

        Args:
            query: Raw user query, any text

        Returns:
            ParsedQuery with filters, search terms, suggestions and autocomplete
        """
        logger.debug(f"Parsing query: {query!r}")

        filters: list[SearchFilter] = []
        filters.extend(self._type_filter(query))
        filters.extend(self._tag_filters(query))
        filters.extend(self._mention_filters(query))
        filters.extend(self._has_filters(query))
        filters.extend(self._session_filter(query))
        filters.extend(self._date_filters(query))

        today = self.clock().date()

        return ParsedQuery(
            original_query=query,
            search_terms=self.strip_filters(query),
            filters=filters,
            suggestions=self._suggestions(filters, today),
            autocomplete=self._autocomplete(today),
        )

    __call__ = parse

    # --------------------------------------------------------
    # Extraction
    # --------------------------------------------------------

    def _type_filter(self, query: str) -> list[SearchFilter]:
        match = TYPE_PATTERN.search(query)
        if not match:
            return []
        value = match.group(1)
        return [SearchFilter(type="type", value=value, display=f"Type: {value}")]

    def _tag_filters(self, query: str) -> list[SearchFilter]:
        return [
            SearchFilter(type="tag", value=tag, display=f"#{tag}")
            for tag in TAG_PATTERN.findall(query)
        ]

    def _mention_filters(self, query: str) -> list[SearchFilter]:
        return [
            SearchFilter(type="mention", value=mention, display=f"@{mention}")
            for mention in MENTION_PATTERN.findall(query)
        ]

    def _has_filters(self, query: str) -> list[SearchFilter]:
        filters = []
        if "has:link" in query:
            filters.append(SearchFilter(type="has", value="link", display="Has: Links"))
        if "has:code" in query:
            filters.append(SearchFilter(type="has", value="code", display="Has: Code"))
        return filters

    def _session_filter(self, query: str) -> list[SearchFilter]:
        match = SESSION_PATTERN.search(query)
        if not match:
            return []
        session_id = match.group(1)
        return [SearchFilter(type="session", value=session_id, display=f"Session: {session_id}")]

    def _date_filters(self, query: str) -> list[SearchFilter]:
        filters = []
        for operator, pattern in (("before", BEFORE_PATTERN), ("after", AFTER_PATTERN)):
            match = pattern.search(query)
            if match:
                value = match.group(1)
                filters.append(SearchFilter(
                    type="date",
                    value=value,
                    display=f"{operator.capitalize()}: {value}",
                    operator=operator,
                ))
        return filters

    @staticmethod
    def strip_filters(query: str) -> str:
        """
        Remove every filter token and normalize whitespace.

        Removal repeats until nothing changes, so deleting one token
        cannot leave a newly formed token behind.
        """
        previous = None
        text = query
        while text != previous:
            previous = text
            for pattern in FILTER_TOKEN_PATTERNS:
                text = pattern.sub("", text)
        return WHITESPACE.sub(" ", text).strip()

    # --------------------------------------------------------
    # Suggestions & autocomplete
    # --------------------------------------------------------

    def _suggestions(self, filters: list[SearchFilter], today: date) -> list[Suggestion]:
        present = {f.type for f in filters}
        suggestions = []

        if "type" not in present:
            suggestions.append(Suggestion(
                text=f"type:{self.catalog.suggested_type}",
                description="Filter by fragment type",
                category="filters",
            ))

        if "date" not in present:
            since = today - timedelta(days=self.catalog.suggested_recent_days)
            suggestions.append(Suggestion(
                text=f"after:{since.isoformat()}",
                description="Show recent fragments",
                category="filters",
            ))

        suggestions.append(Suggestion(
            text=f"#{self.catalog.suggested_tag}",
            description=f"Filter by {self.catalog.suggested_tag} tag",
            category="tags",
        ))
        suggestions.append(Suggestion(
            text="has:link",
            description="Show fragments with links",
            category="filters",
        ))
        return suggestions

    def _autocomplete(self, today: date) -> list[AutocompleteEntry]:
        entries = [
            AutocompleteEntry(
                type="type",
                value=f"type:{fragment_type}",
                display=fragment_type.capitalize(),
                category="Types",
            )
            for fragment_type in self.catalog.types
        ]

        entries.extend(
            AutocompleteEntry(type="has", value=f"has:{key}", display=display, category="Content")
            for key, display in self.catalog.has_values
        )

        shortcuts = {
            "today": today,
            "yesterday": today - timedelta(days=1),
            "week": today - timedelta(weeks=1),
            "month": _months_back(today, 1),
        }
        entries.extend(
            AutocompleteEntry(
                type="date",
                value=f"after:{day.isoformat()}",
                display=f"After {label}",
                category="Dates",
            )
            for label, day in shortcuts.items()
        )
        return entries
