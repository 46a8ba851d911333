"""Constructs the long-lived components shared by the CLI and the web app."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from docatlas.config import AppConfig
from docatlas.index.metadata_store import MetadataStore
from docatlas.matching.fuzzy import FuzzyMatcher
from docatlas.memory.aggregator import MemoryAggregator
from docatlas.memory.query import MemoryQueryEngine
from docatlas.search.orchestrator import SearchOrchestrator
from docatlas.search.parser import QueryParser
from docatlas.search.semantic import SemanticSearchProvider


@dataclass(slots=True)
class Services:
    config: AppConfig
    root: Path
    store: MetadataStore
    aggregator: MemoryAggregator
    memory: MemoryQueryEngine
    orchestrator: SearchOrchestrator


def build_services(
    config: Optional[AppConfig] = None,
    *,
    base_dir: Optional[Path] = None,
    semantic: Optional[SemanticSearchProvider] = None,
) -> Services:
    config = config or AppConfig()
    root = config.resolve_root(base_dir if base_dir is not None else Path.cwd())
    memory_dir = root / config.memory_dir_name

    store = MetadataStore(root, suffix=config.sidecar_suffix, ttl_seconds=config.cache_ttl_seconds)
    memory = MemoryQueryEngine(memory_dir)
    orchestrator = SearchOrchestrator(
        store,
        memory,
        parser=QueryParser(),
        matcher=FuzzyMatcher(),
        semantic=semantic,
        config=config,
    )
    return Services(
        config=config,
        root=root,
        store=store,
        aggregator=MemoryAggregator(store, memory_dir, company_names=config.company_names),
        memory=memory,
        orchestrator=orchestrator,
    )
