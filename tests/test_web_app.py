"""Tests for the FastAPI web application."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from docatlas.config import ROOT_ENV_VAR, AppConfig
from docatlas.services import build_services
from docatlas.web.app import app, get_services


@pytest.fixture
def client(sample_tree: Path) -> TestClient:
    app.state.services = build_services(AppConfig(root_path=sample_tree))
    return TestClient(app)


class TestServices:
    """Tests for lazy service construction."""

    def test_builds_from_environment(self, sample_tree: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Builds services for the configured root on first use."""
        monkeypatch.setenv(ROOT_ENV_VAR, str(sample_tree))
        app.state.services = None

        services = get_services()

        assert services.root == sample_tree
        assert get_services() is services


class TestSearchEndpoint:
    """Tests for POST /search endpoint."""

    def test_search_empty_query(self, client: TestClient) -> None:
        """Returns 400 for empty query."""
        response = client.post("/search", json={"query": "   "})
        assert response.status_code == 400
        assert "Empty query" in response.json()["detail"]

    def test_search_invalid_threshold(self, client: TestClient) -> None:
        """Rejects a threshold outside [0, 1]."""
        response = client.post("/search", json={"query": "nda", "fuzzy_threshold": 2})
        assert response.status_code == 422

    def test_search_root_not_found(self, tmp_path: Path) -> None:
        """Returns 404 when the document root doesn't exist."""
        app.state.services = build_services(AppConfig(root_path=tmp_path / "missing"))
        response = TestClient(app).post("/search", json={"query": "nda"})
        assert response.status_code == 404
        assert "Document root not found" in response.json()["detail"]

    def test_search_success(self, client: TestClient) -> None:
        """Returns search results on success."""
        response = client.post("/search", json={"query": "status:template employment"})
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["search_path"] == "fast"
        assert result["error"] is None
        assert [document["filename"] for document in result["documents"]] == [
            "Employment Agreement - Template.docx"
        ]
        assert result["documents"][0]["metadata"]["status"] == "template"

    def test_search_no_results(self, client: TestClient) -> None:
        """Returns suggestions when nothing matches."""
        response = client.post("/search", json={"query": "zzqx"})
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["documents"] == []
        assert "Try rephrasing your query" in result["related"]["suggestions"]


class TestMemoryEndpoints:
    """Tests for the memory endpoints."""

    def test_query_empty_question(self, client: TestClient) -> None:
        """Returns 400 for an empty question."""
        response = client.post("/memory/query", json={"question": ""})
        assert response.status_code == 400
        assert "Empty question" in response.json()["detail"]

    def test_query_before_refresh(self, client: TestClient) -> None:
        """Returns an empty answer when no memory exists."""
        response = client.post("/memory/query", json={"question": "What is our EIN?"})
        assert response.status_code == 200
        assert response.json() == {"answer": None, "sources": [], "category": None}

    def test_refresh_then_query(self, client: TestClient) -> None:
        """Regenerates memory and answers from it."""
        refresh = client.post("/memory/refresh", json={})
        assert refresh.status_code == 200
        assert refresh.json()["status"] == "ok"
        assert len(refresh.json()["categories"]) == 15

        response = client.post("/memory/query", json={"question": "What is our EIN?"})
        data = response.json()
        assert "12-3456789" in data["answer"]
        assert data["category"] == "company_info"
        assert data["sources"] == ["Certificate of Incorporation.pdf"]

    def test_refresh_single_document(self, client: TestClient, sample_tree: Path) -> None:
        """Updates only the categories a document affects."""
        document = sample_tree / "People_and_Employment" / "Employment Agreement - John Smith.pdf"
        response = client.post("/memory/refresh", json={"document": str(document)})
        assert response.status_code == 200
        categories = response.json()["categories"]
        assert "people_directory" in categories
        assert "financial_summary" not in categories


class TestDocumentEndpoints:
    """Tests for document statistics and lookup."""

    def test_stats(self, client: TestClient) -> None:
        """Returns counts and recent executions."""
        response = client.get("/documents/stats")
        assert response.status_code == 200
        data = response.json()
        assert data["total_documents"] == 5
        assert data["by_status"] == {"executed": 4, "template": 1}
        assert data["recently_executed"][0]["filename"] == "Side Letter - Jane Doe.pdf"
        assert data["recently_executed"][0]["date"] == "2024-05-10"

    def test_lookup_exact(self, client: TestClient) -> None:
        """Finds a document by its exact filename."""
        response = client.get("/documents/lookup", params={"filename": "SAFE - Jane Doe.pdf"})
        assert response.status_code == 200
        data = response.json()
        assert data["fuzzy_match"] is False
        assert data["document"]["filename"] == "SAFE - Jane Doe.pdf"

    def test_lookup_empty(self, client: TestClient) -> None:
        """Returns 400 for an empty filename."""
        response = client.get("/documents/lookup", params={"filename": " "})
        assert response.status_code == 400

    def test_lookup_not_found(self, client: TestClient) -> None:
        """Returns 404 when nothing is close."""
        response = client.get("/documents/lookup", params={"filename": "zzqx"})
        assert response.status_code == 404
        assert "No document matching" in response.json()["detail"]
