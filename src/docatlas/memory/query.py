"""Direct-fact lookups over the generated memory files."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Pattern, Tuple

from docatlas.memory.aggregator import MEMORY_FILE_SUFFIX
from docatlas.memory.formatting import LAST_UPDATED_PREFIX, split_sources
from docatlas.utils.text import keywords

LOGGER = logging.getLogger(__name__)

MAX_LINES = 10
MAX_SOURCES = 5

# First matching trigger wins: (pattern, category file stem, search term).
# A term of None searches for each keyword of the question in turn.
TRIGGERS: Tuple[Tuple[Pattern[str], str, Optional[str]], ...] = (
    (re.compile(r"\bein\b|\btax id\b"), "company_info", "ein"),
    (re.compile(r"\baddress\b|\blocation\b|\bheadquarters\b"), "company_info", "address"),
    (re.compile(r"\brevenue\b|\bsales\b|\bincome\b"), "revenue_and_sales", "revenue"),
    (re.compile(r"\binvestors?\b|\binvested\b|\bfunding\b"), "financial_summary", "invest"),
    (re.compile(r"\bcapital\b|\braised\b"), "financial_summary", "capital"),
    (re.compile(r"\btotals?\b"), "financial_summary", "total"),
    (re.compile(r"\bsafes?\b"), "financial_summary", "safe"),
    (re.compile(r"\bemployees?\b"), "people_directory", "employees"),
    (re.compile(r"\bwho\b"), "people_directory", None),
)

FALLBACK_CATEGORIES = ("company_info", "people_directory", "financial_summary", "revenue_and_sales")

_SOURCE_PATTERNS = (
    re.compile(r"\[Source: ([^\]]+)\]"),
    re.compile(r"\(Source: (.+)\)\s*$"),
)


@dataclass(slots=True)
class MemoryAnswer:
    answer: str
    sources: List[str] = field(default_factory=list)
    category: Optional[str] = None


class MemoryQueryEngine:
    """Answers point questions by line retrieval from memory category files."""

    def __init__(self, memory_dir: Path) -> None:
        self.memory_dir = Path(memory_dir)

    def query(self, text: str) -> Optional[MemoryAnswer]:
        lowered = " ".join((text or "").lower().split())
        if not lowered:
            return None

        for pattern, category, term in TRIGGERS:
            if pattern.search(lowered):
                for candidate in [term] if term else keywords(lowered):
                    answer = self.find_in_category(category, candidate)
                    if answer is not None:
                        return answer
                LOGGER.debug("Trigger %r matched but %s had no %r lines", pattern.pattern, category, term)
                break

        terms = [lowered]
        stripped = " ".join(keywords(lowered))
        if stripped and stripped != lowered:
            terms.append(stripped)
        for term in terms:
            for category in FALLBACK_CATEGORIES:
                answer = self.find_in_category(category, term)
                if answer is not None:
                    return answer
        return None

    def find_in_category(self, category: str, term: str) -> Optional[MemoryAnswer]:
        """Collect lines mentioning ``term``; a matching header pulls in its whole section."""
        path = self.memory_dir / f"{category}{MEMORY_FILE_SUFFIX}"
        if not path.exists():
            return None
        needle = term.lower()

        matches: List[str] = []
        sources: List[str] = []
        in_matching_section = False

        for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
            if line.startswith("## "):
                in_matching_section = needle in line.lower()
                if in_matching_section:
                    matches.append(line)
                continue
            if line.startswith("# ") or line.startswith(LAST_UPDATED_PREFIX) or not line.strip():
                continue
            if in_matching_section or needle in line.lower():
                matches.append(line)
                for source in _line_sources(line):
                    if source not in sources:
                        sources.append(source)

        if not matches:
            return None
        return MemoryAnswer(
            answer="\n".join(matches[:MAX_LINES]),
            sources=sources[:MAX_SOURCES],
            category=category,
        )


def _line_sources(line: str) -> List[str]:
    for pattern in _SOURCE_PATTERNS:
        match = pattern.search(line)
        if match:
            return split_sources(match.group(1))
    return []
