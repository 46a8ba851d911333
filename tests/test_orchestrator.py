"""Tests for the search orchestrator."""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from docatlas.index.metadata_store import MetadataStore
from docatlas.matching.analyzer import SearchPath
from docatlas.memory.aggregator import MemoryAggregator
from docatlas.memory.query import MemoryQueryEngine
from docatlas.models import ExecutionStatus
from docatlas.search.orchestrator import (
    GENERIC_SUGGESTIONS,
    SearchOrchestrator,
    merge_documents,
    passes_filters,
)
from docatlas.search.parser import parse_query
from docatlas.search.semantic import SemanticDocument, SemanticSearchResponse
from docatlas.search.types import ResultMatchType, SearchDocumentResult, SearchOptions


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_orchestrator(root: Path, semantic=None, clock=None) -> SearchOrchestrator:
    if clock is None:
        return SearchOrchestrator(MetadataStore(root), MemoryQueryEngine(root / "memory"), semantic=semantic)
    store = MetadataStore(root, ttl_seconds=300, clock=clock)
    return SearchOrchestrator(store, MemoryQueryEngine(root / "memory"), semantic=semantic, clock=clock)


def make_provider(**kwargs) -> MagicMock:
    provider = MagicMock()
    provider.search = AsyncMock(**kwargs)
    return provider


class SlowProvider:
    async def search(self, query, options):
        await asyncio.sleep(5)


@pytest.fixture
def orchestrator(sample_tree: Path) -> SearchOrchestrator:
    return make_orchestrator(sample_tree)


class TestFilters:
    """Tests for passes_filters and merge_documents."""

    def test_value_filter(self, sample_tree: Path) -> None:
        """Should compare against the parsed contract value."""
        records = MetadataStore(sample_tree).records()
        filters = parse_query("safes over $20k").filters

        kept = sorted(record.filename for record in records.values() if passes_filters(record, filters))

        assert kept == ["SAFE - Jane Doe.pdf"]

    def test_templates_excluded_without_status_filter(self, sample_tree: Path) -> None:
        """Should drop templates when asked, unless a status filter is given."""
        records = list(MetadataStore(sample_tree).records().values())
        template = next(record for record in records if record.status is ExecutionStatus.TEMPLATE)

        assert not passes_filters(template, parse_query("employment").filters, include_templates=False)
        assert passes_filters(template, parse_query("status:template").filters, include_templates=False)

    def test_merge_keeps_higher_relevance(self) -> None:
        """Should keep one result per path with the better score."""
        low = SearchDocumentResult(Path("/a.pdf"), "a.pdf", 0.4, ResultMatchType.FUZZY, "fuzzy")
        high = SearchDocumentResult(Path("/a.pdf"), "a.pdf", 0.9, ResultMatchType.SEMANTIC, "semantic")
        other = SearchDocumentResult(Path("/b.pdf"), "b.pdf", 0.6, ResultMatchType.EXACT, "exact")

        merged = merge_documents([low, other], [high])

        assert merged == [high, other]
        assert merge_documents([low, other], [high], limit=1) == [high]


class TestFastPath:
    """Tests for metadata-only searches."""

    async def test_status_filter_query(self, orchestrator: SearchOrchestrator) -> None:
        """Should return only templates for a status:template query."""
        result = await orchestrator.search("status:template employment")

        assert result.search_path is SearchPath.FAST
        assert [document.filename for document in result.documents] == [
            "Employment Agreement - Template.docx"
        ]
        assert result.documents[0].relevance >= 0.5
        assert result.related.alternative_queries == [
            "offer letter",
            "employment agreement",
            "contractor agreement",
        ]
        assert result.error is None

    async def test_filter_only_query(self, orchestrator: SearchOrchestrator) -> None:
        """Should list every document passing the filters."""
        result = await orchestrator.search("status:executed")

        assert len(result.documents) == 4
        assert all(document.relevance == 1.0 for document in result.documents)
        assert all(document.match_type is ResultMatchType.METADATA for document in result.documents)
        assert result.performance.items_scanned == 5

    async def test_exclude_templates(self, orchestrator: SearchOrchestrator) -> None:
        """Should rank the executed agreement first and omit the template."""
        result = await orchestrator.search("employment agreement", SearchOptions(include_templates=False))

        assert result.documents[0].filename == "Employment Agreement - John Smith.pdf"
        assert all(document.metadata.status is not ExecutionStatus.TEMPLATE for document in result.documents)

    async def test_max_results(self, orchestrator: SearchOrchestrator) -> None:
        """Should cap the number of returned documents."""
        result = await orchestrator.search("status:executed", SearchOptions(max_results=2))

        assert len(result.documents) == 2

    async def test_no_match_suggestions(self, orchestrator: SearchOrchestrator) -> None:
        """Should return an empty result with suggestions when nothing matches."""
        result = await orchestrator.search("zzqx")

        assert result.documents == []
        assert result.answer is None
        assert result.error is None
        assert result.related.suggestions[:2] == list(GENERIC_SUGGESTIONS)
        assert "Use fewer or more general keywords" in result.related.suggestions

    async def test_no_match_with_filters(self, orchestrator: SearchOrchestrator) -> None:
        """Should suggest relaxing filters."""
        result = await orchestrator.search("status:template zzqx")

        assert "Remove some filters to broaden the search" in result.related.suggestions

    async def test_long_query_without_semantic(self, orchestrator: SearchOrchestrator) -> None:
        """Should answer a long query from metadata when no semantic search exists."""
        query = "employment agreement template for engineering staff members located in the springfield office"

        result = await orchestrator.search(query)

        assert result.search_path is SearchPath.FAST
        assert result.error is None


class TestSemanticPaths:
    """Tests for semantic delegation and hybrid merging."""

    async def test_hybrid_merges_semantic_results(self, sample_tree: Path) -> None:
        """Should merge both sources keeping the higher score per document."""
        side_letter = sample_tree / "Finance_and_Investment" / "Side Letter - Jane Doe.pdf"
        provider = make_provider(
            return_value=SemanticSearchResponse(
                answer="Jane Doe invested $35,000",
                confidence=0.8,
                related_documents=[
                    SemanticDocument(path=str(side_letter), relevance=0.99, reason="Mentions Jane Doe"),
                    SemanticDocument(path="/elsewhere/Deck.pdf", relevance=1.7),
                ],
            )
        )
        orchestrator = make_orchestrator(sample_tree, semantic=provider)

        result = await orchestrator.search("safe with jane doe")

        assert result.search_path is SearchPath.HYBRID
        assert [document.filename for document in result.documents[:3]] == [
            "Deck.pdf",
            "Side Letter - Jane Doe.pdf",
            "SAFE - Jane Doe.pdf",
        ]
        assert result.documents[0].relevance == 1.0
        assert result.documents[1].match_type is ResultMatchType.SEMANTIC
        assert result.answer is not None
        assert result.answer.text == "Jane Doe invested $35,000"
        provider.search.assert_awaited_once()

    async def test_hybrid_survives_semantic_failure(self, sample_tree: Path) -> None:
        """Should keep the metadata results when semantic search raises."""
        provider = make_provider(side_effect=RuntimeError("service down"))
        orchestrator = make_orchestrator(sample_tree, semantic=provider)

        result = await orchestrator.search("safe with jane doe")

        assert result.error is None
        assert result.documents[0].filename == "SAFE - Jane Doe.pdf"
        assert all(document.match_type is not ResultMatchType.SEMANTIC for document in result.documents)

    async def test_hybrid_survives_semantic_timeout(self, sample_tree: Path) -> None:
        """Should give up on a slow semantic search."""

        orchestrator = make_orchestrator(sample_tree, semantic=SlowProvider())

        result = await orchestrator.search("safe with jane doe", SearchOptions(timeout=0.05))

        assert result.error is None
        assert result.documents[0].filename == "SAFE - Jane Doe.pdf"

    async def test_hybrid_runs_both_searches_concurrently(self, sample_tree: Path) -> None:
        """Should run the metadata scan and the semantic call at the same time."""
        scan_started = threading.Event()
        semantic_started = threading.Event()
        seen = {}

        class WaitingProvider:
            async def search(self, query, options):
                semantic_started.set()
                for _ in range(200):
                    if scan_started.is_set():
                        break
                    await asyncio.sleep(0.01)
                seen["semantic saw scan"] = scan_started.is_set()
                return SemanticSearchResponse(answer="", confidence=0.0)

        orchestrator = make_orchestrator(sample_tree, semantic=WaitingProvider())
        original_scan = orchestrator._scan

        def waiting_scan(parsed, options):
            scan_started.set()
            seen["scan saw semantic"] = semantic_started.wait(timeout=2)
            return original_scan(parsed, options)

        with patch.object(orchestrator, "_scan", side_effect=waiting_scan):
            result = await orchestrator.search("safe with jane doe")

        assert result.search_path is SearchPath.HYBRID
        assert seen == {"scan saw semantic": True, "semantic saw scan": True}
        assert result.documents[0].filename == "SAFE - Jane Doe.pdf"

    async def test_zero_fast_results_retry_semantic(self, sample_tree: Path) -> None:
        """Should fall back to semantic search when metadata finds nothing."""
        provider = make_provider(
            return_value=SemanticSearchResponse(
                answer="",
                confidence=0.5,
                related_documents=[SemanticDocument(path="/elsewhere/Board Minutes.pdf", relevance=0.7)],
            )
        )
        orchestrator = make_orchestrator(sample_tree, semantic=provider)

        result = await orchestrator.search("zzqx")

        assert result.search_path is SearchPath.EXTERNAL_SEMANTIC
        assert [document.filename for document in result.documents] == ["Board Minutes.pdf"]
        assert result.answer is None

    async def test_forced_semantic_without_provider(self, orchestrator: SearchOrchestrator) -> None:
        """Should report an error instead of raising."""
        result = await orchestrator.search(
            "employment", SearchOptions(force_path=SearchPath.EXTERNAL_SEMANTIC)
        )

        assert result.search_path is SearchPath.EXTERNAL_SEMANTIC
        assert result.error == "Semantic search is not configured"
        assert result.documents == []
        assert result.related.suggestions == list(GENERIC_SUGGESTIONS)


class TestMemoryAndErrors:
    """Tests for memory answers, error capture and caching."""

    async def test_memory_answer_attached(self, sample_tree: Path) -> None:
        """Should answer a direct question from the memory files."""
        store = MetadataStore(sample_tree)
        MemoryAggregator(store, sample_tree / "memory").refresh_all()
        orchestrator = SearchOrchestrator(store, MemoryQueryEngine(sample_tree / "memory"))

        result = await orchestrator.search("What is our EIN?")

        assert result.answer is not None
        assert "12-3456789" in result.answer.text
        assert result.answer.confidence == 1.0
        assert result.answer.sources[0].document == "Certificate of Incorporation.pdf"
        assert result.memory_results[0].source == "company_info"
        assert result.related.facts[0].startswith("EIN: 12-3456789")

    async def test_undecodable_memory_file_keeps_documents(self, sample_tree: Path) -> None:
        """Should keep document hits when a memory file has invalid UTF-8 bytes."""
        memory_dir = sample_tree / "memory"
        memory_dir.mkdir()
        (memory_dir / "people_directory.md").write_bytes(b"# People\n\n## Employees\n- John Smith \xff\n")
        orchestrator = make_orchestrator(sample_tree)

        result = await orchestrator.search("status:executed")

        assert result.error is None
        assert len(result.documents) == 4

    async def test_exception_becomes_error_result(self, orchestrator: SearchOrchestrator) -> None:
        """Should never raise out of search."""
        with patch.object(orchestrator.parser, "parse", side_effect=RuntimeError("boom")):
            result = await orchestrator.search("employment")

        assert result.error == "boom"
        assert result.documents == []
        assert result.related.suggestions == list(GENERIC_SUGGESTIONS)

    async def test_cache_within_window(self, sample_tree: Path, make_sidecar) -> None:
        """Should serve cached copies until the cache window ends."""
        clock = FakeClock()
        orchestrator = make_orchestrator(sample_tree, clock=clock)
        options = SearchOptions(use_cache=True)
        first = await orchestrator.search("status:executed", options)
        make_sidecar("Other/Lease.pdf", {"status": "executed", "category": "Other"})
        clock.now = 299

        cached = await orchestrator.search("status:executed", options)
        cached.documents.clear()
        again = await orchestrator.search("status:executed", options)

        assert len(first.documents) == 4
        assert len(again.documents) == 4
        assert orchestrator.store.scan_count == 1

    async def test_cache_expires(self, sample_tree: Path, make_sidecar) -> None:
        """Should recompute results once the cache window has passed."""
        clock = FakeClock()
        orchestrator = make_orchestrator(sample_tree, clock=clock)
        options = SearchOptions(use_cache=True)
        first = await orchestrator.search("status:executed", options)
        make_sidecar("Other/Lease.pdf", {"status": "executed", "category": "Other"})
        clock.now = 10_300

        fresh = await orchestrator.search("status:executed", options)

        assert len(first.documents) == 4
        assert len(fresh.documents) == 5

    async def test_clear_cache(self, orchestrator: SearchOrchestrator, make_sidecar) -> None:
        """Should drop cached results and rescan after clear_cache."""
        options = SearchOptions(use_cache=True)
        first = await orchestrator.search("status:executed", options)
        make_sidecar("Other/Lease.pdf", {"status": "executed", "category": "Other"})

        orchestrator.clear_cache()
        fresh = await orchestrator.search("status:executed", options)

        assert len(first.documents) == 4
        assert len(fresh.documents) == 5

    async def test_cache_evicts_oldest(self, orchestrator: SearchOrchestrator) -> None:
        """Should keep at most MAX_CACHE_ENTRIES results."""
        options = SearchOptions(use_cache=True)
        with patch("docatlas.search.orchestrator.MAX_CACHE_ENTRIES", 2):
            for query in ("status:executed", "status:template", "employment"):
                await orchestrator.search(query, options)

        assert [query for query, _ in orchestrator._cache] == ["status:template", "employment"]


class TestLookups:
    """Tests for filename lookup and statistics."""

    async def test_exact_filename(self, orchestrator: SearchOrchestrator) -> None:
        """Should find an exact filename without flagging it as fuzzy."""
        found = await orchestrator.get_document_by_filename("SAFE - Jane Doe.pdf")

        assert found is not None
        assert found.fuzzy_match is False
        assert found.document.relevance == 1.0
        assert found.document.match_type is ResultMatchType.EXACT

    async def test_fuzzy_filename(self, orchestrator: SearchOrchestrator) -> None:
        """Should fall back to the looser threshold for a misspelling."""
        found = await orchestrator.get_document_by_filename("certificate of incorporaton.pdf")

        assert found is not None
        assert found.fuzzy_match is True
        assert found.document.filename == "Certificate of Incorporation.pdf"

    async def test_missing_filename(self, orchestrator: SearchOrchestrator) -> None:
        """Should return None when nothing is close."""
        assert await orchestrator.get_document_by_filename("zzqx") is None
        assert await orchestrator.get_document_by_filename("  ") is None

    def test_statistics(self, orchestrator: SearchOrchestrator) -> None:
        """Should expose the store statistics."""
        assert orchestrator.document_statistics().total_documents == 5
