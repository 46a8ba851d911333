"""Shared fixtures for building organized document trees."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

from docatlas.config import SIDECAR_SUFFIX


SidecarFactory = Callable[..., Path]


@pytest.fixture
def make_sidecar(tmp_path: Path) -> SidecarFactory:
    """Write ``<document><suffix>`` JSON under ``tmp_path`` and return the document path."""

    def factory(relative: str, data: Dict[str, Any], *, touch_document: bool = True) -> Path:
        document = tmp_path / relative
        document.parent.mkdir(parents=True, exist_ok=True)
        if touch_document:
            document.write_bytes(b"%PDF-1.4 placeholder")
        sidecar = document.with_name(document.name + SIDECAR_SUFFIX)
        sidecar.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return document

    return factory


@pytest.fixture
def sample_tree(make_sidecar: SidecarFactory, tmp_path: Path) -> Path:
    """A small organized tree covering investments, employment and templates."""
    make_sidecar(
        "Finance_and_Investment/SAFE - Jane Doe.pdf",
        {
            "status": "executed",
            "category": "Finance_and_Investment",
            "document_type": "SAFE Agreement",
            "signers": [{"name": "Jane Doe", "date_signed": "2024-03-01"}],
            "fully_executed_date": "2024-03-01",
            "primary_parties": [{"name": "Jane Doe", "role": "Investor"}],
            "contract_value": "$25,000",
        },
    )
    make_sidecar(
        "Finance_and_Investment/Side Letter - Jane Doe.pdf",
        {
            "status": "executed",
            "category": "Finance_and_Investment",
            "document_type": "Investment Agreement",
            "signers": [{"name": "Jane Doe", "date_signed": "2024-05-10"}],
            "fully_executed_date": "2024-05-10",
            "primary_parties": [{"name": "Jane Doe", "role": "Investor"}],
            "contract_value": "$10,000",
        },
    )
    make_sidecar(
        "People_and_Employment/Employment Agreement - Template.docx",
        {
            "status": "template",
            "category": "People_and_Employment",
            "document_type": "Employment Agreement",
            "signers": [],
            "fully_executed_date": None,
        },
    )
    make_sidecar(
        "People_and_Employment/Employment Agreement - John Smith.pdf",
        {
            "status": "executed",
            "category": "People_and_Employment",
            "document_type": "Employment Agreement",
            "signers": [{"name": "John Smith", "date_signed": "2024-01-15"}],
            "fully_executed_date": "2024-01-15",
            "primary_parties": [{"name": "John Smith", "role": "Employee", "title": "Engineer"}],
        },
    )
    make_sidecar(
        "Corporate_and_Governance/Certificate of Incorporation.pdf",
        {
            "status": "executed",
            "category": "Corporate_and_Governance",
            "document_type": "Certificate of Incorporation",
            "signers": [],
            "fully_executed_date": "2023-06-01",
            "critical_facts": {"ein": "12-3456789", "address": "1 Main St, Springfield"},
        },
    )
    return tmp_path
