"""FastAPI application exposing DocAtlas search and memory."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List

from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from docatlas.config import AppConfig
from docatlas.matching.analyzer import SearchPath
from docatlas.search.types import SearchOptions
from docatlas.services import Services, build_services

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="DocAtlas", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class SearchPayload(BaseModel):
    query: str
    max_results: int = 10
    path: SearchPath | None = None
    fuzzy_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    expand_synonyms: bool = True
    include_templates: bool = True
    use_cache: bool = True


class MemoryQueryPayload(BaseModel):
    question: str


class MemoryRefreshPayload(BaseModel):
    document: str | None = None


def get_services() -> Services:
    services = getattr(app.state, "services", None)
    if services is None:
        services = build_services(AppConfig())
        app.state.services = services
    return services


def _require_root(services: Services) -> None:
    if not services.root.is_dir():
        raise HTTPException(status_code=404, detail=f"Document root not found at {services.root}")


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.post("/search")
async def search_documents(payload: SearchPayload) -> dict[str, Any]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    services = get_services()
    _require_root(services)
    options = SearchOptions(
        force_path=payload.path,
        fuzzy_threshold=payload.fuzzy_threshold,
        expand_synonyms=payload.expand_synonyms,
        include_templates=payload.include_templates,
        max_results=max(1, min(payload.max_results, 50)),
        use_cache=payload.use_cache,
    )
    result = await services.orchestrator.search(query, options)
    return {"result": jsonable_encoder(result)}


@app.post("/memory/query")
async def query_memory(payload: MemoryQueryPayload) -> dict[str, Any]:
    question = payload.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="Empty question")

    services = get_services()
    answer = await asyncio.to_thread(services.memory.query, question)
    if answer is None:
        return {"answer": None, "sources": [], "category": None}
    return {"answer": answer.answer, "sources": answer.sources, "category": answer.category}


@app.post("/memory/refresh")
async def refresh_memory(payload: MemoryRefreshPayload | None = None) -> dict[str, Any]:
    services = get_services()
    _require_root(services)

    document = payload.document if payload is not None else None
    if document:
        categories: List[str] = await asyncio.to_thread(services.aggregator.update_for_document, document)
    else:
        written = await asyncio.to_thread(services.aggregator.refresh_all)
        categories = list(written)
    services.orchestrator.clear_cache()
    LOGGER.info("Regenerated memory categories: %s", ", ".join(categories))
    return {"status": "ok", "categories": categories}


@app.get("/documents/stats")
async def document_stats() -> dict[str, Any]:
    services = get_services()
    statistics = await asyncio.to_thread(services.orchestrator.document_statistics)
    return {
        "total_documents": statistics.total_documents,
        "by_status": statistics.by_status,
        "by_category": statistics.by_category,
        "by_folder": statistics.by_folder,
        "top_signers": statistics.top_signers,
        "template_count": statistics.template_count,
        "recently_executed": [
            {
                "path": str(record.path),
                "filename": record.filename,
                "date": record.document_date.isoformat() if record.document_date else None,
            }
            for record in statistics.recently_executed
        ],
    }


@app.get("/documents/lookup")
async def lookup_document(filename: str = "") -> dict[str, Any]:
    if not filename.strip():
        raise HTTPException(status_code=400, detail="Empty filename")

    services = get_services()
    lookup = await services.orchestrator.get_document_by_filename(filename)
    if lookup is None:
        raise HTTPException(status_code=404, detail=f"No document matching {filename}")
    return {"document": jsonable_encoder(lookup.document), "fuzzy_match": lookup.fuzzy_match}
