"""Interface of the external semantic search collaborator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Protocol, runtime_checkable

from docatlas.search.types import SourceAttribution


@dataclass(frozen=True, slots=True)
class SemanticSearchOptions:
    include_metadata: bool = True
    max_metadata_files: int = 50
    context_window: int = 8000


@dataclass(slots=True)
class SemanticDocument:
    path: str
    relevance: float
    reason: str = ""


@dataclass(slots=True)
class SemanticSearchResponse:
    answer: str
    confidence: float
    sources: List[SourceAttribution] = field(default_factory=list)
    related_documents: List[SemanticDocument] = field(default_factory=list)


@runtime_checkable
class SemanticSearchProvider(Protocol):
    """Opaque AI-backed search. Timeouts are applied by the caller."""

    async def search(self, query: str, options: SemanticSearchOptions) -> SemanticSearchResponse:
        ...
