"""In-memory index of document metadata sidecars."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional

from docatlas.config import SIDECAR_SUFFIX
from docatlas.errors import MetadataError
from docatlas.models import DocumentMetadataRecord, ExecutionStatus
from docatlas.utils.files import document_path_for, iter_sidecar_paths, sidecar_path_for

LOGGER = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


@dataclass(slots=True)
class StoreStatistics:
    total_documents: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    by_category: Dict[str, int] = field(default_factory=dict)
    by_folder: Dict[str, int] = field(default_factory=dict)
    top_signers: Dict[str, int] = field(default_factory=dict)
    template_count: int = 0
    recently_executed: List[DocumentMetadataRecord] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class _Snapshot:
    records: Mapping[Path, DocumentMetadataRecord]
    loaded_at: float


def read_sidecar(sidecar: Path, *, suffix: str = SIDECAR_SUFFIX) -> DocumentMetadataRecord:
    """Load one sidecar, raising :class:`MetadataError` if it is unusable."""
    try:
        data = json.loads(Path(sidecar).read_text(encoding="utf-8"))
    except OSError as exc:
        raise MetadataError(sidecar, f"unreadable ({exc})") from exc
    except UnicodeDecodeError as exc:
        raise MetadataError(sidecar, "not valid UTF-8") from exc
    except json.JSONDecodeError as exc:
        raise MetadataError(sidecar, f"malformed JSON ({exc.msg} at line {exc.lineno})") from exc
    if not isinstance(data, dict):
        raise MetadataError(sidecar, "top-level value is not an object")
    return DocumentMetadataRecord.from_dict(data, document_path_for(Path(sidecar), suffix=suffix))


def write_sidecar(record: DocumentMetadataRecord, *, suffix: str = SIDECAR_SUFFIX) -> Path:
    sidecar = sidecar_path_for(record.path, suffix=suffix)
    sidecar.write_text(json.dumps(record.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    return sidecar


class MetadataStore:
    """Scans a document tree for sidecars and serves the records from a cache.

    The cache goes stale after ``ttl_seconds``; the next reader rescans. A
    rescan in flight is shared: concurrent stale readers wait on the lock and
    then reuse the snapshot the first reader produced.
    """

    def __init__(
        self,
        root: Path,
        *,
        suffix: str = SIDECAR_SUFFIX,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.root = Path(root)
        self.suffix = suffix
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: Optional[_Snapshot] = None
        self.scan_count = 0

    def scan(self, root: Path | None = None) -> Dict[Path, DocumentMetadataRecord]:
        """Walk ``root`` and load every sidecar, skipping the ones that fail."""
        base = Path(root) if root is not None else self.root
        records: Dict[Path, DocumentMetadataRecord] = {}
        if not base.is_dir():
            LOGGER.warning("Document root %s does not exist or is not a directory", base)
            return records

        for sidecar in iter_sidecar_paths([base], suffix=self.suffix):
            try:
                record = read_sidecar(sidecar, suffix=self.suffix)
            except MetadataError as exc:
                LOGGER.warning("Skipping %s", exc)
                continue
            records[record.path] = record
        LOGGER.debug("Loaded %d metadata records from %s", len(records), base)
        return records

    def records(self) -> Mapping[Path, DocumentMetadataRecord]:
        """Current snapshot of all records keyed by document path."""
        snapshot = self._snapshot
        if snapshot is not None and not self._is_stale(snapshot):
            return snapshot.records

        with self._lock:
            snapshot = self._snapshot
            if snapshot is not None and not self._is_stale(snapshot):
                return snapshot.records
            records = self.scan()
            self.scan_count += 1
            self._snapshot = _Snapshot(records=MappingProxyType(records), loaded_at=self._clock())
            return self._snapshot.records

    def invalidate(self) -> None:
        with self._lock:
            self._snapshot = None

    def refresh(self) -> Mapping[Path, DocumentMetadataRecord]:
        self.invalidate()
        return self.records()

    def get(self, path: Path | str) -> Optional[DocumentMetadataRecord]:
        """Look up a record by document path or by its sidecar path."""
        target = Path(path)
        if target.name.endswith(self.suffix):
            target = document_path_for(target, suffix=self.suffix)
        records = self.records()
        if target in records:
            return records[target]
        resolved = target.resolve()
        for key, record in records.items():
            if key.resolve() == resolved:
                return record
        return None

    def find_by_filename(self, filename: str) -> Optional[DocumentMetadataRecord]:
        needle = filename.strip().lower()
        if not needle:
            return None
        for record in self.records().values():
            name = record.filename.lower()
            if needle in name or Path(name).stem == needle:
                return record
        return None

    def write(self, record: DocumentMetadataRecord) -> Path:
        """Persist ``record`` to its sidecar and drop the cached snapshot."""
        sidecar = write_sidecar(record, suffix=self.suffix)
        self.invalidate()
        return sidecar

    def statistics(self, *, recent_limit: int = 10, signer_limit: int = 10) -> StoreStatistics:
        records = list(self.records().values())
        by_status: Counter[str] = Counter(record.status.value for record in records)
        by_category: Counter[str] = Counter(record.category for record in records)
        by_folder: Counter[str] = Counter()
        signers: Counter[str] = Counter()
        for record in records:
            folder = self._top_folder(record.path)
            if folder:
                by_folder[folder] += 1
            signers.update(record.signer_names())

        executed = [record for record in records if record.document_date is not None]
        executed.sort(key=lambda record: (record.document_date, str(record.path)), reverse=True)

        return StoreStatistics(
            total_documents=len(records),
            by_status=dict(sorted(by_status.items())),
            by_category=dict(sorted(by_category.items())),
            by_folder=dict(sorted(by_folder.items())),
            top_signers=dict(signers.most_common(signer_limit)),
            template_count=by_status.get(ExecutionStatus.TEMPLATE.value, 0),
            recently_executed=executed[:recent_limit],
        )

    def _is_stale(self, snapshot: _Snapshot) -> bool:
        return self._clock() - snapshot.loaded_at >= self.ttl_seconds

    def _top_folder(self, path: Path) -> Optional[str]:
        try:
            relative = path.relative_to(self.root)
        except ValueError:
            return None
        return relative.parts[0] if len(relative.parts) > 1 else None
