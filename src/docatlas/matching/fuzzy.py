"""Deterministic fuzzy string matching.

Scores a free-text query against a structured field. Rules are tried in a
fixed priority order and the first one that applies wins:

1. exact equality
2. field contains the query
3. query contains the field (field longer than three characters)
4. word-level partial match
5. whole-string edit distance
6. sliding-window edit distance over the field
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Sequence

from docatlas.matching.synonyms import ABBREVIATIONS


class MatchType(str, Enum):
    EXACT = "exact"
    CONTAINS = "contains"
    PARTIAL = "partial"
    FUZZY = "fuzzy"
    ABBREVIATION = "abbreviation"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class MatchResult:
    score: float
    match_type: MatchType
    matched_span: Optional[str] = None


NO_MATCH = MatchResult(score=0.0, match_type=MatchType.NONE)


@dataclass(slots=True)
class FieldMatch:
    """Best field of a multi-field comparison."""

    best_field: Optional[str]
    best_score: float
    all_scores: Dict[str, MatchResult] = field(default_factory=dict)


def levenshtein_distance(first: str, second: str) -> int:
    """Classic dynamic-programming edit distance."""
    m, n = len(first), len(second)
    if m == 0:
        return n
    if n == 0:
        return m

    matrix = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(m + 1):
        matrix[i][0] = i
    for j in range(n + 1):
        matrix[0][j] = j

    for i in range(1, m + 1):
        for j in range(1, n + 1):
            cost = 0 if first[i - 1] == second[j - 1] else 1
            matrix[i][j] = min(
                matrix[i - 1][j] + 1,  # deletion
                matrix[i][j - 1] + 1,  # insertion
                matrix[i - 1][j - 1] + cost,  # substitution
            )
    return matrix[m][n]


class FuzzyMatcher:
    """Scores queries against fields with typo and abbreviation tolerance."""

    def __init__(
        self,
        abbreviations: Mapping[str, Sequence[str]] | None = None,
        *,
        max_edit_distance: int = 2,
        min_score: float = 0.3,
    ) -> None:
        self.abbreviations = ABBREVIATIONS if abbreviations is None else abbreviations
        self.max_edit_distance = max_edit_distance
        self.min_score = min_score

    def match(
        self,
        query: str,
        value: str,
        *,
        case_sensitive: bool = False,
        max_edit_distance: int | None = None,
        min_score: float | None = None,
    ) -> MatchResult:
        max_distance = self.max_edit_distance if max_edit_distance is None else max_edit_distance
        threshold = self.min_score if min_score is None else min_score

        norm_query = query if case_sensitive else query.lower()
        norm_value = value if case_sensitive else value.lower()

        if norm_value == norm_query:
            return MatchResult(score=1.0, match_type=MatchType.EXACT)
        if not norm_query or not norm_value:
            return NO_MATCH

        position = norm_value.find(norm_query)
        if position >= 0:
            score = 0.8 + 0.2 * (len(norm_query) / len(norm_value))
            return MatchResult(
                score=min(score, 0.95),
                match_type=MatchType.CONTAINS,
                matched_span=value[position : position + len(norm_query)],
            )

        if len(norm_value) > 3 and norm_value in norm_query:
            return MatchResult(score=0.7, match_type=MatchType.PARTIAL)

        word_match = self._word_level_match(norm_query, norm_value)
        if word_match.score > 0:
            return word_match

        distance = levenshtein_distance(norm_query, norm_value)
        if distance <= max_distance:
            score = 1 - distance / max(len(norm_query), len(norm_value))
            if score >= threshold:
                return MatchResult(score=max(0.4, score * 0.8), match_type=MatchType.FUZZY)

        window_match = self._sliding_window_match(norm_query, norm_value, max_distance)
        if window_match.score > threshold:
            return window_match

        return NO_MATCH

    def _word_level_match(self, query: str, value: str) -> MatchResult:
        query_words = query.split()
        value_words = value.split()
        if not query_words or not value_words:
            return NO_MATCH

        total = 0.0
        matched = 0
        for q_word in query_words:
            best = 0.0
            for v_word in value_words:
                if v_word == q_word:
                    best = 1.0
                    break
                if q_word in v_word or v_word in q_word:
                    best = max(best, 0.7)
                elif levenshtein_distance(q_word, v_word) <= 1:
                    best = max(best, 0.5)
            if best > 0:
                matched += 1
                total += best

        if not matched:
            return NO_MATCH
        # Unmatched query words count as zero in the average.
        return MatchResult(score=(total / len(query_words)) * 0.9, match_type=MatchType.PARTIAL)

    @staticmethod
    def _sliding_window_match(query: str, value: str, max_distance: int) -> MatchResult:
        width = len(query)
        if width > len(value):
            return NO_MATCH

        best_score = 0.0
        best_span = ""
        for start in range(len(value) - width + 1):
            window = value[start : start + width]
            distance = levenshtein_distance(query, window)
            if distance <= max_distance:
                score = 1 - distance / width
                if score > best_score:
                    best_score = score
                    best_span = window

        if best_score <= 0:
            return NO_MATCH
        return MatchResult(score=best_score * 0.7, match_type=MatchType.FUZZY, matched_span=best_span)

    def match_with_abbreviation(self, query: str, value: str) -> MatchResult:
        """Like :meth:`match` but also tries registered abbreviation expansions."""
        result = self.match(query, value)
        if result.score >= 0.8:
            return result

        for expansion in self.abbreviations.get(query.lower().strip(), ()):
            candidate = self.match(expansion, value)
            if candidate.score > result.score:
                result = MatchResult(candidate.score, MatchType.ABBREVIATION, candidate.matched_span)

        value_lower = value.lower()
        for abbreviation, expansions in self.abbreviations.items():
            if not re.search(rf"\b{re.escape(abbreviation)}\b", value_lower):
                continue
            for expansion in expansions:
                candidate = self.match(query, expansion)
                if candidate.score > result.score:
                    result = MatchResult(candidate.score, MatchType.ABBREVIATION, candidate.matched_span)
        return result

    def match_multiple_fields(
        self,
        query: str,
        fields: Mapping[str, str],
        weights: Mapping[str, float] | None = None,
    ) -> FieldMatch:
        """Score every non-empty field and report the best weighted one."""
        result = FieldMatch(best_field=None, best_score=0.0)
        for name, value in fields.items():
            if not value:
                continue
            match = self.match(query, value)
            weight = (weights or {}).get(name, 1.0)
            result.all_scores[name] = match
            weighted = match.score * weight
            if weighted > result.best_score:
                result.best_score = weighted
                result.best_field = name
        return result

