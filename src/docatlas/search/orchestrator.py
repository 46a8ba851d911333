"""Unified search entry point: fast metadata matching, semantic delegation and memory answers."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from docatlas.config import AppConfig
from docatlas.errors import SemanticSearchUnavailable
from docatlas.index.metadata_store import MetadataStore, StoreStatistics
from docatlas.matching.analyzer import FallbackStrategy, SearchPath
from docatlas.matching.fuzzy import FuzzyMatcher, MatchType
from docatlas.memory.formatting import parse_monetary_value
from docatlas.memory.query import MemoryAnswer, MemoryQueryEngine
from docatlas.models import DocumentMetadataRecord, ExecutionStatus
from docatlas.search.parser import QueryParser
from docatlas.search.semantic import SemanticSearchOptions, SemanticSearchProvider
from docatlas.search.types import (
    DocumentLookup,
    MemorySearchResult,
    ParsedQuery,
    QueryFilters,
    RelatedInfo,
    ResultMatchType,
    SearchAnswer,
    SearchDocumentResult,
    SearchOptions,
    SearchPerformance,
    SourceAttribution,
    UnifiedSearchResult,
)

LOGGER = logging.getLogger(__name__)

FIELD_WEIGHTS: Dict[str, float] = {
    "filename": 1.0,
    "document_type": 0.9,
    "signers": 0.8,
    "parties": 0.8,
    "category": 0.7,
}

GENERIC_SUGGESTIONS = ("Try rephrasing your query", "Check for typos")
STRICT_LOOKUP_THRESHOLD = 0.9
LOOSE_LOOKUP_THRESHOLD = 0.6
MAX_CACHE_ENTRIES = 128


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def document_fields(record: DocumentMetadataRecord) -> Dict[str, str]:
    """Searchable text per field for one record."""
    return {
        "filename": record.filename,
        "document_type": record.document_type or "",
        "signers": " ".join(record.signer_names()),
        "parties": " ".join(record.party_names()),
        "category": (record.category or "").replace("_", " "),
    }


def record_amount(record: DocumentMetadataRecord, field: str) -> Optional[float]:
    """Amount used by value filters; the contract value backs every field."""
    candidates = []
    if field != "contract_value":
        candidates.extend((record.critical_facts.get(field), record.financial_terms.get(field)))
    candidates.append(record.contract_value)
    for raw in candidates:
        if raw is None or isinstance(raw, bool):
            continue
        amount = parse_monetary_value(raw)
        if amount:
            return amount
    return None


def passes_filters(
    record: DocumentMetadataRecord, filters: QueryFilters, *, include_templates: bool = True
) -> bool:
    if filters.status:
        if record.status not in filters.status:
            return False
    elif not include_templates and record.status is ExecutionStatus.TEMPLATE:
        return False

    if filters.category:
        category = (record.category or "").lower()
        if not any(wanted.lower() in category for wanted in filters.category):
            return False

    if filters.date_range is not None:
        document_date = record.document_date
        if document_date is None or not filters.date_range.contains(document_date):
            return False

    if filters.value is not None:
        amount = record_amount(record, filters.value.field)
        if amount is None or not filters.value.accepts(amount):
            return False

    return True


def merge_documents(
    *groups: Sequence[SearchDocumentResult], limit: Optional[int] = None
) -> List[SearchDocumentResult]:
    """Merge by path keeping the higher relevance, then sort by relevance."""
    merged: Dict[str, SearchDocumentResult] = {}
    for group in groups:
        for document in group:
            key = str(document.path)
            current = merged.get(key)
            if current is None or document.relevance > current.relevance:
                merged[key] = document
    ordered = sorted(merged.values(), key=lambda document: -document.relevance)
    return ordered if limit is None else ordered[:limit]


class SearchOrchestrator:
    """Routes queries to the fast, semantic or hybrid path and assembles one result.

    The orchestrator owns its result cache. Entries expire after
    ``config.cache_ttl_seconds`` and the oldest are evicted past
    ``MAX_CACHE_ENTRIES``. Nothing escapes :meth:`search`: failures come
    back as an empty result with ``error`` set.
    """

    def __init__(
        self,
        store: MetadataStore,
        memory: MemoryQueryEngine,
        *,
        parser: Optional[QueryParser] = None,
        matcher: Optional[FuzzyMatcher] = None,
        semantic: Optional[SemanticSearchProvider] = None,
        config: Optional[AppConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.memory = memory
        self.parser = parser or QueryParser()
        self.matcher = matcher or FuzzyMatcher()
        self.semantic = semantic
        self.config = config or AppConfig()
        self._clock = clock
        self._cache: Dict[Tuple[str, SearchOptions], Tuple[UnifiedSearchResult, float]] = {}

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> UnifiedSearchResult:
        options = options or SearchOptions()
        start = time.perf_counter()
        cache_key = (query, options)
        cached = self._cached(cache_key) if options.use_cache else None
        if cached is not None:
            LOGGER.debug("Cache hit for %r", query)
            return replace(
                cached,
                documents=list(cached.documents),
                memory_results=list(cached.memory_results),
                performance=replace(cached.performance, total_time_ms=_elapsed_ms(start)),
            )

        try:
            result = await self._search(query, options)
        except Exception as exc:
            LOGGER.exception("Search failed for %r", query)
            result = UnifiedSearchResult(
                query=query,
                search_path=options.force_path or SearchPath.FAST,
                related=RelatedInfo(suggestions=list(GENERIC_SUGGESTIONS)),
                error=str(exc) or exc.__class__.__name__,
            )
            result.performance.total_time_ms = _elapsed_ms(start)
            return result

        result.performance.total_time_ms = _elapsed_ms(start)
        LOGGER.info(
            "Query %r via %s: %d documents in %.1fms",
            query,
            result.search_path.value,
            len(result.documents),
            result.performance.total_time_ms,
        )
        if options.use_cache:
            self._store_cached(cache_key, result)
        return result

    def _cached(self, key: Tuple[str, SearchOptions]) -> Optional[UnifiedSearchResult]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        result, created_at = entry
        if self._clock() - created_at >= self.config.cache_ttl_seconds:
            del self._cache[key]
            return None
        return result

    def _store_cached(self, key: Tuple[str, SearchOptions], result: UnifiedSearchResult) -> None:
        self._cache.pop(key, None)
        snapshot = replace(result, documents=list(result.documents), memory_results=list(result.memory_results))
        self._cache[key] = (snapshot, self._clock())
        while len(self._cache) > MAX_CACHE_ENTRIES:
            del self._cache[next(iter(self._cache))]

    def clear_cache(self) -> None:
        self._cache.clear()
        self.store.invalidate()

    async def get_document_by_filename(self, filename: str) -> Optional[DocumentLookup]:
        """Best document for ``filename``: a strict match first, then a loose one."""
        needle = filename.strip()
        if not needle:
            return None
        for threshold, fuzzy in ((STRICT_LOOKUP_THRESHOLD, False), (LOOSE_LOOKUP_THRESHOLD, True)):
            document = await asyncio.to_thread(self._lookup, needle, threshold)
            if document is not None:
                return DocumentLookup(document=document, fuzzy_match=fuzzy)
        return None

    def _lookup(self, filename: str, threshold: float) -> Optional[SearchDocumentResult]:
        best: Optional[SearchDocumentResult] = None
        for record in self.store.records().values():
            match = self.matcher.match(filename, record.filename)
            if match.score < threshold or (best is not None and match.score <= best.relevance):
                continue
            best = SearchDocumentResult(
                path=record.path,
                filename=record.filename,
                relevance=match.score,
                match_type=ResultMatchType.EXACT if match.match_type is MatchType.EXACT else ResultMatchType.FUZZY,
                reason=f"{match.match_type.value} filename match",
                field="filename",
                matched_text=match.matched_span or record.filename,
                metadata=record,
            )
        return best

    def document_statistics(self) -> StoreStatistics:
        return self.store.statistics()

    async def _search(self, query: str, options: SearchOptions) -> UnifiedSearchResult:
        parsed = self.parser.parse(query, expand=options.expand_synonyms)
        path = options.force_path or parsed.complexity.suggested_path
        if path is SearchPath.EXTERNAL_SEMANTIC and options.force_path is None and self.semantic is None:
            LOGGER.debug("No semantic search configured; answering %r from metadata", query)
            path = SearchPath.FAST

        matched = 0
        if path is SearchPath.EXTERNAL_SEMANTIC:
            result = await self._semantic_search(parsed, options)
        elif path is SearchPath.HYBRID:
            result = await self._hybrid_search(parsed, options)
        else:
            result, matched = await self._fast_search(parsed, options)
            if not result.documents and self.semantic is not None:
                LOGGER.info("No metadata matches for %r; retrying with semantic search", query)
                try:
                    result = await self._semantic_search(parsed, options)
                except SemanticSearchUnavailable as exc:
                    LOGGER.warning("Semantic fallback failed: %s", exc)

        await self._attach_memory(result, parsed.original)
        self._add_suggestions(result, parsed, matched)
        return result

    async def _fast_search(
        self, parsed: ParsedQuery, options: SearchOptions
    ) -> Tuple[UnifiedSearchResult, int]:
        start = time.perf_counter()
        documents, matched, scanned = await asyncio.to_thread(self._scan, parsed, options)
        result = UnifiedSearchResult(
            query=parsed.original,
            search_path=SearchPath.FAST,
            documents=documents,
            performance=SearchPerformance(search_time_ms=_elapsed_ms(start), items_scanned=scanned),
        )
        return result, matched

    def _scan(
        self, parsed: ParsedQuery, options: SearchOptions
    ) -> Tuple[List[SearchDocumentResult], int, int]:
        """Score every record against every query variant. Runs off the event loop."""
        snapshot = list(self.store.records().values())
        threshold = self.config.fuzzy_threshold if options.fuzzy_threshold is None else options.fuzzy_threshold
        limit = options.max_results or self.config.max_results

        candidates: List[SearchDocumentResult] = []
        for record in snapshot:
            if not passes_filters(record, parsed.filters, include_templates=options.include_templates):
                continue
            if not parsed.expanded:
                # Filter-only query: every surviving record is a hit.
                if not parsed.filters.is_empty():
                    candidates.append(
                        SearchDocumentResult(
                            path=record.path,
                            filename=record.filename,
                            relevance=1.0,
                            match_type=ResultMatchType.METADATA,
                            reason="Matches all filters",
                            metadata=record,
                        )
                    )
                continue
            document = self._best_match(record, parsed.expanded)
            if document is not None and document.relevance >= threshold:
                candidates.append(document)

        if not candidates:
            return [], 0, len(snapshot)
        scores = np.array([document.relevance for document in candidates], dtype=float)
        order = np.argsort(-scores, kind="stable")[:limit]
        return [candidates[index] for index in order], len(candidates), len(snapshot)

    def _best_match(
        self, record: DocumentMetadataRecord, variants: Sequence[str]
    ) -> Optional[SearchDocumentResult]:
        fields = document_fields(record)
        best: Optional[SearchDocumentResult] = None
        for variant in variants:
            field_match = self.matcher.match_multiple_fields(variant, fields, FIELD_WEIGHTS)
            if field_match.best_field is None:
                continue
            score = min(field_match.best_score, 1.0)
            if best is not None and score <= best.relevance:
                continue
            match = field_match.all_scores[field_match.best_field]
            if match.match_type is MatchType.EXACT:
                match_type = ResultMatchType.EXACT
            elif field_match.best_field != "filename":
                match_type = ResultMatchType.METADATA
            else:
                match_type = ResultMatchType.FUZZY
            best = SearchDocumentResult(
                path=record.path,
                filename=record.filename,
                relevance=score,
                match_type=match_type,
                reason=f"{match.match_type.value} match on {field_match.best_field.replace('_', ' ')} for '{variant}'",
                field=field_match.best_field,
                matched_text=match.matched_span or fields[field_match.best_field],
                metadata=record,
            )
        return best

    async def _semantic_search(self, parsed: ParsedQuery, options: SearchOptions) -> UnifiedSearchResult:
        if self.semantic is None:
            raise SemanticSearchUnavailable("Semantic search is not configured")
        timeout = options.timeout or self.config.semantic_timeout
        start = time.perf_counter()
        request = SemanticSearchOptions(
            include_metadata=options.include_metadata,
            max_metadata_files=options.max_metadata_files,
        )
        try:
            response = await asyncio.wait_for(self.semantic.search(parsed.original, request), timeout)
        except asyncio.TimeoutError as exc:
            raise SemanticSearchUnavailable(f"Semantic search timed out after {timeout:g}s") from exc
        except SemanticSearchUnavailable:
            raise
        except Exception as exc:
            raise SemanticSearchUnavailable(f"Semantic search failed: {exc}") from exc

        documents = [
            SearchDocumentResult(
                path=Path(related.path),
                filename=Path(related.path).name,
                relevance=max(0.0, min(float(related.relevance), 1.0)),
                match_type=ResultMatchType.SEMANTIC,
                reason=related.reason or "Semantic match",
            )
            for related in response.related_documents
        ]
        answer = None
        if response.answer:
            answer = SearchAnswer(
                text=response.answer, confidence=response.confidence, sources=list(response.sources)
            )
        return UnifiedSearchResult(
            query=parsed.original,
            search_path=SearchPath.EXTERNAL_SEMANTIC,
            documents=merge_documents(documents, limit=options.max_results or self.config.max_results),
            answer=answer,
            performance=SearchPerformance(search_time_ms=_elapsed_ms(start)),
        )

    async def _hybrid_search(self, parsed: ParsedQuery, options: SearchOptions) -> UnifiedSearchResult:
        start = time.perf_counter()
        (fast, _), semantic = await asyncio.gather(
            self._fast_search(parsed, options),
            self._semantic_or_none(parsed, options),
        )
        limit = options.max_results or self.config.max_results
        if semantic is None:
            documents = fast.documents
            answer = None
        else:
            documents = merge_documents(fast.documents, semantic.documents, limit=limit)
            answer = semantic.answer
        return UnifiedSearchResult(
            query=parsed.original,
            search_path=SearchPath.HYBRID,
            documents=documents,
            answer=answer,
            performance=SearchPerformance(
                search_time_ms=_elapsed_ms(start), items_scanned=fast.performance.items_scanned
            ),
        )

    async def _semantic_or_none(
        self, parsed: ParsedQuery, options: SearchOptions
    ) -> Optional[UnifiedSearchResult]:
        if self.semantic is None:
            return None
        try:
            return await self._semantic_search(parsed, options)
        except SemanticSearchUnavailable as exc:
            LOGGER.warning("Hybrid search continuing with metadata results only: %s", exc)
            return None

    async def _attach_memory(self, result: UnifiedSearchResult, query: str) -> None:
        try:
            memory_answer: Optional[MemoryAnswer] = await asyncio.to_thread(self.memory.query, query)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Memory lookup failed: %s", exc)
            return
        if memory_answer is None:
            return

        category = memory_answer.category or ""
        result.memory_results.insert(
            0,
            MemorySearchResult(
                source=category,
                section=category.replace("_", " ").title(),
                content=memory_answer.answer,
                relevance=1.0,
                related_documents=list(memory_answer.sources),
            ),
        )
        if result.answer is None:
            result.answer = SearchAnswer(
                text=memory_answer.answer,
                confidence=1.0,
                sources=[
                    SourceAttribution(document=source, memory_file=category, confidence=1.0)
                    for source in memory_answer.sources
                ],
            )
        result.related.facts = [line.lstrip("- ") for line in memory_answer.answer.splitlines()[:3]]

    def _add_suggestions(self, result: UnifiedSearchResult, parsed: ParsedQuery, matched: int) -> None:
        related = result.related
        related.alternative_queries = [
            variant for variant in parsed.expanded[1:4] if variant != parsed.residual
        ]
        strategy = self.parser.analyzer.fallback_strategy(matched, parsed.complexity)
        if strategy is FallbackStrategy.REFINE:
            related.suggestions.append("Add a status: or category: filter to narrow the results")

        if result.documents or result.answer is not None:
            return
        related.suggestions.extend(GENERIC_SUGGESTIONS)
        if not parsed.filters.is_empty():
            related.suggestions.append("Remove some filters to broaden the search")
        if parsed.expanded:
            related.suggestions.append("Use fewer or more general keywords")
