"""Regenerates memory category files from the metadata index."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from docatlas.index.metadata_store import MetadataStore
from docatlas.memory.extractors import EXTRACTORS, ExtractionContext
from docatlas.memory.formatting import parse_category, render_category
from docatlas.models import DocumentMetadataRecord, ExecutionStatus, MemoryCategory

LOGGER = logging.getLogger(__name__)

MEMORY_FILE_SUFFIX = ".md"
CATEGORY_NAMES = tuple(EXTRACTORS)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def categories_for(record: DocumentMetadataRecord) -> List[str]:
    """Categories that must be regenerated after ``record`` changes.

    The document index is always included. Documents carrying business
    context, key terms, obligations or financial terms also refresh the
    summaries that quote that content, whatever their category.
    """
    selected: List[str] = []

    def select(*names: str) -> None:
        for name in names:
            if name not in selected:
                selected.append(name)

    category = record.category or ""
    document_type = record.document_type or ""
    folders = " ".join(record.path.parent.parts)

    if record.status is ExecutionStatus.TEMPLATE:
        select("templates_inventory")
    select("document_index")

    if (
        "Investment" in category
        or "Finance" in category
        or "SAFE" in document_type
        or "Investment" in document_type
    ):
        select("financial_summary", "investors_and_cap_table", "people_directory")
    elif (
        "Employment" in category
        or "Employment" in document_type
        or "Offer Letter" in document_type
    ):
        select("people_directory", "equity_and_options")
    elif "Corporate" in category or "Governance" in category:
        select("company_info", "legal_entities")
    elif (
        "Sales" in category
        or "Customer" in category
        or "Revenue" in category
        or "Sales_and_Revenue" in folders
    ):
        select("revenue_and_sales", "contracts_summary")
    elif "Vendor" in category or "Operations" in category or "Operations_and_Vendors" in folders:
        select("vendors_and_suppliers", "contracts_summary")
    elif "Partnership" in category or "Marketing" in category:
        select("partnerships_and_channels")
    elif "Technology" in category or "IP" in category.split("_"):
        select("intellectual_property")
    elif "Risk" in category or "Compliance" in category:
        select("compliance_and_risk")
    elif record.signers:
        select("people_directory")

    if record.effective_date or record.expiration_date or record.fully_executed_date:
        select("key_dates_timeline")

    if record.status in (ExecutionStatus.EXECUTED, ExecutionStatus.PARTIALLY_EXECUTED):
        select("contracts_summary")

    if record.business_context or record.key_terms or record.obligations or record.financial_terms:
        if record.financial_terms or record.contract_value:
            select("financial_summary")
        if record.business_context and ("Agreement" in category or "Agreement" in document_type):
            select("revenue_and_sales")
        select("contracts_summary")

    return selected


class MemoryAggregator:
    """Builds memory categories from metadata and writes them as text files.

    :meth:`aggregate` is pure given the clock. The file-writing operations
    always rescan the store first and run under a lock, so two
    regenerations never interleave.
    """

    def __init__(
        self,
        store: MetadataStore,
        memory_dir: Path,
        *,
        company_names: Sequence[str] = (),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.memory_dir = Path(memory_dir)
        self.company_names = tuple(company_names)
        self.clock = clock
        self._lock = threading.Lock()

    def category_path(self, name: str) -> Path:
        return self.memory_dir / f"{name}{MEMORY_FILE_SUFFIX}"

    def aggregate(
        self,
        records: Iterable[DocumentMetadataRecord],
        names: Optional[Iterable[str]] = None,
    ) -> Dict[str, MemoryCategory]:
        ordered = sorted(records, key=lambda record: str(record.path))
        context = ExtractionContext(now=self.clock(), company_names=self.company_names)
        selected = CATEGORY_NAMES if names is None else tuple(names)
        categories: Dict[str, MemoryCategory] = {}
        for name in selected:
            if name not in EXTRACTORS:
                raise KeyError(f"Unknown memory category: {name}")
            categories[name] = EXTRACTORS[name](ordered, context)
        return categories

    def render(self, records: Iterable[DocumentMetadataRecord]) -> Dict[str, str]:
        return {name: render_category(category) for name, category in self.aggregate(records).items()}

    def refresh_all(self) -> Dict[str, Path]:
        """Rescan every sidecar and rewrite every category file."""
        with self._lock:
            return self._write(self.store.refresh(), CATEGORY_NAMES)

    def update_for_document(self, path: Path | str) -> List[str]:
        """Regenerate the categories affected by one document.

        The whole tree is rescanned and the affected categories are rebuilt
        from scratch; nothing is patched in place.
        """
        with self._lock:
            records = self.store.refresh()
            record = self.store.get(path)
            if record is None:
                LOGGER.warning("No metadata found for %s; refreshing all memory files", path)
                names: Sequence[str] = CATEGORY_NAMES
            else:
                names = categories_for(record)
            LOGGER.info("Updating memory for %s: %s", Path(path).name, ", ".join(names))
            self._write(records, names)
            return list(names)

    def load_category(self, name: str) -> Optional[MemoryCategory]:
        path = self.category_path(name)
        if not path.exists():
            return None
        return parse_category(path.read_text(encoding="utf-8"))

    def _write(
        self, records: Mapping[Path, DocumentMetadataRecord], names: Sequence[str]
    ) -> Dict[str, Path]:
        start = time.perf_counter()
        categories = self.aggregate(records.values(), names)

        self.memory_dir.mkdir(parents=True, exist_ok=True)
        written: Dict[str, Path] = {}
        for name, category in categories.items():
            path = self.category_path(name)
            path.write_text(render_category(category), encoding="utf-8")
            written[name] = path
            LOGGER.debug("Wrote %s", path)

        LOGGER.info(
            "Regenerated %d memory files from %d documents in %.2fs",
            len(written),
            len(records),
            time.perf_counter() - start,
        )
        return written
