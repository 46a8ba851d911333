"""Result and option types shared by the search layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path
from typing import List, Optional

from docatlas.matching.analyzer import QueryComplexity, QueryIntent, SearchPath
from docatlas.matching.synonyms import ValueComparison
from docatlas.models import DocumentMetadataRecord, ExecutionStatus


class ResultMatchType(str, Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    SEMANTIC = "semantic"
    METADATA = "metadata"


@dataclass(frozen=True, slots=True)
class DateRange:
    start: Optional[date] = None
    end: Optional[date] = None

    def contains(self, value: date) -> bool:
        if self.start is not None and value < self.start:
            return False
        if self.end is not None and value > self.end:
            return False
        return True


@dataclass(slots=True)
class QueryFilters:
    status: List[ExecutionStatus] = field(default_factory=list)
    category: List[str] = field(default_factory=list)
    date_range: Optional[DateRange] = None
    value: Optional[ValueComparison] = None

    def is_empty(self) -> bool:
        return not (self.status or self.category or self.date_range or self.value)


@dataclass(slots=True)
class ParsedQuery:
    original: str
    normalized: str
    # Free text left once filter tokens and phrases are removed.
    residual: str
    expanded: List[str]
    filters: QueryFilters
    intent: QueryIntent
    intent_confidence: float
    complexity: QueryComplexity


@dataclass(slots=True)
class SearchDocumentResult:
    path: Path
    filename: str
    relevance: float
    match_type: ResultMatchType
    reason: str
    field: Optional[str] = None
    matched_text: Optional[str] = None
    metadata: Optional[DocumentMetadataRecord] = None


@dataclass(slots=True)
class SourceAttribution:
    document: str
    excerpt: str = ""
    memory_file: Optional[str] = None
    section: Optional[str] = None
    confidence: float = 0.0


@dataclass(slots=True)
class SearchAnswer:
    text: str
    confidence: float
    sources: List[SourceAttribution] = field(default_factory=list)


@dataclass(slots=True)
class MemorySearchResult:
    source: str
    section: str
    content: str
    relevance: float
    related_documents: List[str] = field(default_factory=list)


@dataclass(slots=True)
class RelatedInfo:
    facts: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    alternative_queries: List[str] = field(default_factory=list)


@dataclass(slots=True)
class SearchPerformance:
    total_time_ms: float = 0.0
    search_time_ms: float = 0.0
    items_scanned: int = 0


@dataclass(slots=True)
class UnifiedSearchResult:
    query: str
    search_path: SearchPath
    documents: List[SearchDocumentResult] = field(default_factory=list)
    answer: Optional[SearchAnswer] = None
    memory_results: List[MemorySearchResult] = field(default_factory=list)
    related: RelatedInfo = field(default_factory=RelatedInfo)
    performance: SearchPerformance = field(default_factory=SearchPerformance)
    error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SearchOptions:
    force_path: Optional[SearchPath] = None
    fuzzy_threshold: Optional[float] = None
    expand_synonyms: bool = True
    include_templates: bool = True
    max_results: Optional[int] = None
    use_cache: bool = False
    timeout: Optional[float] = None
    # Passed through to the semantic collaborator.
    include_metadata: bool = True
    max_metadata_files: int = 50


@dataclass(slots=True)
class DocumentLookup:
    document: SearchDocumentResult
    fuzzy_match: bool = False
