"""Tests for query parsing."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from docatlas.matching.analyzer import QueryIntent
from docatlas.matching.synonyms import SynonymExpander
from docatlas.models import ExecutionStatus
from docatlas.search.parser import QueryParser, parse_query
from docatlas.search.types import DateRange

NOW = datetime(2024, 6, 15, 10, 30)


@pytest.fixture
def parser() -> QueryParser:
    return QueryParser(expander=SynonymExpander(clock=lambda: NOW))


class TestFilterTokens:
    """Tests for status: and category: tokens."""

    def test_status_token(self, parser: QueryParser) -> None:
        """Should turn status:template into a filter and keep the rest as text."""
        parsed = parser.parse("status:template employment")

        assert parsed.filters.status == [ExecutionStatus.TEMPLATE]
        assert parsed.residual == "employment"
        assert parsed.expanded[0] == "employment"
        assert "offer letter" in parsed.expanded

    def test_status_aliases_dedupe(self, parser: QueryParser) -> None:
        """Should map aliases onto one status value."""
        parsed = parser.parse("status:signed STATUS:Executed safe")

        assert parsed.filters.status == [ExecutionStatus.EXECUTED]
        assert parsed.residual == "safe"

    def test_unknown_status_ignored(self, parser: QueryParser) -> None:
        """Should drop an unrecognized status value."""
        parsed = parser.parse("status:bogus nda")

        assert parsed.filters.status == []
        assert parsed.residual == "nda"

    def test_category_token(self, parser: QueryParser) -> None:
        """Should collect category filters case-insensitively."""
        parsed = parser.parse("category:Finance_and_Investment category:finance_and_investment safe")

        assert parsed.filters.category == ["Finance_and_Investment"]
        assert parsed.residual == "safe"

    def test_filter_only_query(self, parser: QueryParser) -> None:
        """Should leave no free text for a filter-only query."""
        parsed = parser.parse("status:executed")

        assert parsed.residual == ""
        assert parsed.expanded == []
        assert not parsed.filters.is_empty()


class TestFilterPhrases:
    """Tests for value and date phrases."""

    def test_value_comparison(self, parser: QueryParser) -> None:
        """Should parse a value comparison and strip it from the text."""
        parsed = parser.parse("safes over $50k")

        assert parsed.filters.value is not None
        assert parsed.filters.value.operator == ">"
        assert parsed.filters.value.value == 50000.0
        assert parsed.residual == "safes"

    def test_past_window(self, parser: QueryParser) -> None:
        """Should turn 'last 30 days' into a date range ending today."""
        parsed = parser.parse("contracts signed last 30 days")

        assert parsed.filters.date_range == DateRange(start=date(2024, 5, 16), end=date(2024, 6, 15))
        assert parsed.residual == "contracts signed"

    def test_future_window(self, parser: QueryParser) -> None:
        """Should turn 'next 3 months' into a range starting today."""
        parsed = parser.parse("leases expiring next 3 months")

        assert parsed.filters.date_range == DateRange(start=date(2024, 6, 15), end=date(2024, 9, 15))
        assert parsed.residual == "leases expiring"


class TestParse:
    """Tests for expansion and classification."""

    def test_no_expansion(self, parser: QueryParser) -> None:
        """Should keep the residual as the only variant."""
        parsed = parser.parse("nda", expand=False)

        assert parsed.expanded == ["nda"]

    def test_question_intent(self, parser: QueryParser) -> None:
        """Should carry the detected intent and classification."""
        parsed = parser.parse("What is our EIN?")

        assert parsed.intent is QueryIntent.QUESTION
        assert parsed.complexity.intent is QueryIntent.QUESTION
        assert parsed.normalized == "what is our ein?"

    def test_empty_query(self, parser: QueryParser) -> None:
        """Should parse empty input without error."""
        parsed = parser.parse("")

        assert parsed.expanded == []
        assert parsed.filters.is_empty()

    def test_module_function(self) -> None:
        """Should parse with default collaborators."""
        parsed = parse_query("status:draft offer letter")

        assert parsed.filters.status == [ExecutionStatus.NOT_EXECUTED]
        assert parsed.residual == "offer letter"
