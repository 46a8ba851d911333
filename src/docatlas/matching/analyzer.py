"""Query complexity analysis and routing."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Tuple

ANALYTICAL_KEYWORDS = (
    "total", "sum", "calculate", "how much", "how many",
    "average", "mean", "median", "highest", "lowest",
    "top", "bottom", "rank", "compare", "difference",
    "trend", "growth", "decline", "change", "rate", "analyze",
)

EXPLANATORY_KEYWORDS = (
    "why", "how", "explain", "what is", "what are",
    "describe", "tell me about", "summarize", "overview",
    "understand", "meaning", "definition", "purpose",
)

TEMPORAL_KEYWORDS = (
    "when", "timeline", "history", "progression",
    "next month", "last year", "recent", "upcoming",
    "expire", "due", "deadline", "schedule",
)

RELATIONSHIP_KEYWORDS = (
    "who", "which", "whose", "related", "connected",
    "between", "among", "with", "involving", "party",
    "relationship", "structure", "hierarchy",
)

SIMPLE_PATTERNS = (
    re.compile(r"^(find|show|get|list)\s+(all\s+)?([\w\s]+)$", re.IGNORECASE),
    re.compile(r"^([\w\s]+)\s+(document|agreement|contract|template)s?$", re.IGNORECASE),
    re.compile(r"^templates?$", re.IGNORECASE),
    re.compile(r"^([\w\s]+)'s\s+(document|file|agreement)s?$", re.IGNORECASE),
)

_SIMPLE_DATE_FILTERS = (
    re.compile(r"from\s+\d{4}", re.IGNORECASE),
    re.compile(
        r"in\s+(january|february|march|april|may|june|july|august|september|october|november|december)",
        re.IGNORECASE,
    ),
    re.compile(r"signed\s+(on|in)\s+", re.IGNORECASE),
    re.compile(r"dated\s+", re.IGNORECASE),
)

_SIMPLE_RELATIONSHIPS = (
    re.compile(r"^who\s+(signed|created|wrote)\s+", re.IGNORECASE),
    re.compile(r"^whose\s+\w+\s+is\s+", re.IGNORECASE),
    re.compile(r"^which\s+\w+\s+(has|contains)\s+", re.IGNORECASE),
)

MULTI_CONDITION_INDICATORS = (
    " and ", " or ", " but ", " except ", " excluding ",
    " with ", " without ", " also ", " plus ",
)

_QUESTION_START = re.compile(r"^(what|who|when|where|why|how)\b", re.IGNORECASE)
_ANALYSIS_VERBS = re.compile(r"\b(calculate|total|sum|average|analy[sz]e)\b", re.IGNORECASE)
_SEARCH_START = re.compile(r"^(show|list|find|get)\b", re.IGNORECASE)

LONG_QUERY_WORDS = 10


class QueryIntent(str, Enum):
    SEARCH = "search"
    QUESTION = "question"
    ANALYSIS = "analysis"


class SearchPath(str, Enum):
    FAST = "fast"
    EXTERNAL_SEMANTIC = "external-semantic"
    HYBRID = "hybrid"


class FallbackStrategy(str, Enum):
    NONE = "none"
    SEMANTIC = "semantic"
    REFINE = "refine"


@dataclass(frozen=True, slots=True)
class QueryComplexity:
    is_complex: bool
    reason: str
    confidence: float
    suggested_path: SearchPath
    intent: QueryIntent = QueryIntent.SEARCH


def _contains_any(query: str, keywords: Iterable[str]) -> bool:
    return any(re.search(rf"\b{re.escape(keyword)}\b", query) for keyword in keywords)


class QueryAnalyzer:
    """Pattern-based classifier that picks a resolution path for a query.

    Every signal is evaluated independently. Any complex signal routes the
    query to ``hybrid`` so that both deterministic matching and the semantic
    collaborator get a chance; the confidence is the strongest signal's.
    """

    def classify(self, query: str) -> QueryComplexity:
        lowered = " ".join((query or "").lower().split())
        intent, _ = self.detect_intent(lowered)
        if not lowered:
            return QueryComplexity(False, "Empty query", 0.6, SearchPath.FAST, intent)

        signals: List[Tuple[float, str]] = []
        if lowered.endswith("?") or _QUESTION_START.search(lowered):
            signals.append((0.9, "Query is phrased as a question"))
        if _contains_any(lowered, ANALYTICAL_KEYWORDS):
            signals.append((0.95, "Query requires calculation or analysis"))
        if _contains_any(lowered, EXPLANATORY_KEYWORDS):
            signals.append((0.9, "Query requires explanation or summary"))
        if _contains_any(lowered, TEMPORAL_KEYWORDS) and not self._is_simple_date_filter(lowered):
            signals.append((0.85, "Query requires temporal analysis"))
        if _contains_any(lowered, RELATIONSHIP_KEYWORDS) and self._is_complex_relationship(lowered):
            signals.append((0.8, "Query involves complex relationships"))
        if self._has_multiple_conditions(lowered):
            signals.append((0.75, "Query has multiple conditions"))

        if signals:
            confidence, reason = max(signals, key=lambda signal: signal[0])
            return QueryComplexity(True, reason, confidence, SearchPath.HYBRID, intent)

        if len(lowered.split()) > LONG_QUERY_WORDS:
            return QueryComplexity(
                True, "Long natural language query", 0.7, SearchPath.EXTERNAL_SEMANTIC, intent
            )

        if any(pattern.search(lowered) for pattern in SIMPLE_PATTERNS):
            return QueryComplexity(
                False, "Simple document request pattern detected", 0.9, SearchPath.FAST, intent
            )

        return QueryComplexity(False, "No complex patterns detected", 0.6, SearchPath.FAST, intent)

    @staticmethod
    def detect_intent(query: str) -> Tuple[QueryIntent, float]:
        text = (query or "").strip()
        if text.endswith("?") or _QUESTION_START.search(text):
            return QueryIntent.QUESTION, 0.9
        if _ANALYSIS_VERBS.search(text):
            return QueryIntent.ANALYSIS, 0.85
        if _SEARCH_START.search(text):
            return QueryIntent.SEARCH, 0.9
        return QueryIntent.SEARCH, 0.6

    @staticmethod
    def fallback_strategy(result_count: int, complexity: QueryComplexity) -> FallbackStrategy:
        """Recommend what to do after a fast-path search returned ``result_count`` hits."""
        # Zero hits on a low-confidence classification often means a misspelling.
        if result_count == 0 and complexity.confidence < 0.8:
            return FallbackStrategy.SEMANTIC
        if result_count < 3 and not complexity.is_complex:
            return FallbackStrategy.SEMANTIC
        if result_count > 20:
            return FallbackStrategy.REFINE
        return FallbackStrategy.NONE

    @staticmethod
    def _is_simple_date_filter(query: str) -> bool:
        return any(pattern.search(query) for pattern in _SIMPLE_DATE_FILTERS)

    @staticmethod
    def _is_complex_relationship(query: str) -> bool:
        return not any(pattern.search(query) for pattern in _SIMPLE_RELATIONSHIPS)

    @staticmethod
    def _has_multiple_conditions(query: str) -> bool:
        return sum(1 for indicator in MULTI_CONDITION_INDICATORS if indicator in query) >= 2
