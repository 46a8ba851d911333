"""Turns raw query text into a :class:`ParsedQuery`."""

from __future__ import annotations

import logging
import re
from typing import Dict, Optional

from docatlas.matching.analyzer import QueryAnalyzer
from docatlas.matching.synonyms import SynonymExpander
from docatlas.models import ExecutionStatus
from docatlas.search.types import DateRange, ParsedQuery, QueryFilters

LOGGER = logging.getLogger(__name__)

_STATUS_TOKEN = re.compile(r"\bstatus:([\w-]+)", re.IGNORECASE)
_CATEGORY_TOKEN = re.compile(r"\bcategory:([\w-]+)", re.IGNORECASE)

STATUS_ALIASES: Dict[str, ExecutionStatus] = {
    "signed": ExecutionStatus.EXECUTED,
    "executed": ExecutionStatus.EXECUTED,
    "unsigned": ExecutionStatus.NOT_EXECUTED,
    "draft": ExecutionStatus.NOT_EXECUTED,
    "not_executed": ExecutionStatus.NOT_EXECUTED,
    "partial": ExecutionStatus.PARTIALLY_EXECUTED,
    "partially_executed": ExecutionStatus.PARTIALLY_EXECUTED,
    "template": ExecutionStatus.TEMPLATE,
    "templates": ExecutionStatus.TEMPLATE,
}


class QueryParser:
    """Extracts filter tokens and phrases, then classifies and expands the rest."""

    def __init__(
        self,
        analyzer: Optional[QueryAnalyzer] = None,
        expander: Optional[SynonymExpander] = None,
    ) -> None:
        self.analyzer = analyzer or QueryAnalyzer()
        self.expander = expander or SynonymExpander()

    def parse(self, query: str, *, expand: bool = True) -> ParsedQuery:
        original = query or ""
        normalized = " ".join(original.lower().split())
        filters = QueryFilters()

        for match in _STATUS_TOKEN.finditer(original):
            alias = match.group(1).lower().replace("-", "_")
            status = STATUS_ALIASES.get(alias)
            if status is None:
                LOGGER.debug("Ignoring unknown status filter %r", match.group(1))
            elif status not in filters.status:
                filters.status.append(status)
        for match in _CATEGORY_TOKEN.finditer(original):
            category = match.group(1)
            if category.lower() not in (existing.lower() for existing in filters.category):
                filters.category.append(category)

        without_tokens = _CATEGORY_TOKEN.sub(" ", _STATUS_TOKEN.sub(" ", original))
        filters.value = self.expander.parse_value_comparison(without_tokens)
        window = self.expander.relative_date_range(without_tokens)
        if window is not None:
            start, end = window
            filters.date_range = DateRange(start=start.date(), end=end.date())

        residual = self.expander.strip_filter_phrases(without_tokens)
        if not residual:
            expanded = []
        elif expand:
            expanded = self.expander.expand_query(residual)
        else:
            expanded = [residual]

        intent, intent_confidence = self.analyzer.detect_intent(normalized)
        return ParsedQuery(
            original=original,
            normalized=normalized,
            residual=residual,
            expanded=expanded,
            filters=filters,
            intent=intent,
            intent_confidence=intent_confidence,
            complexity=self.analyzer.classify(original),
        )


def parse_query(query: str, *, expand: bool = True) -> ParsedQuery:
    return QueryParser().parse(query, expand=expand)
