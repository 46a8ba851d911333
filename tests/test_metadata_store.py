"""Tests for the metadata sidecar store."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from docatlas.errors import MetadataError
from docatlas.index.metadata_store import MetadataStore, read_sidecar, write_sidecar
from docatlas.models import DocumentMetadataRecord, ExecutionStatus, Signer


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestReadWriteSidecar:
    """Tests for read_sidecar and write_sidecar."""

    def test_read_defaults_missing_fields(self, make_sidecar, tmp_path: Path) -> None:
        """Should default status, category and signers."""
        document = make_sidecar("Other/notes.pdf", {})

        record = read_sidecar(document.with_name("notes.pdf.metadata.json"))

        assert record.path == document
        assert record.filename == "notes.pdf"
        assert record.status is ExecutionStatus.NOT_EXECUTED
        assert record.category == "Other"
        assert record.signers == []
        assert record.fully_executed_date is None

    def test_read_malformed_json(self, tmp_path: Path) -> None:
        """Should raise MetadataError for invalid JSON."""
        sidecar = tmp_path / "broken.pdf.metadata.json"
        sidecar.write_text("{not json", encoding="utf-8")

        with pytest.raises(MetadataError) as exc_info:
            read_sidecar(sidecar)

        assert exc_info.value.path == sidecar

    def test_read_non_object(self, tmp_path: Path) -> None:
        """Should reject a JSON payload that is not an object."""
        sidecar = tmp_path / "list.pdf.metadata.json"
        sidecar.write_text("[1, 2, 3]", encoding="utf-8")

        with pytest.raises(MetadataError):
            read_sidecar(sidecar)

    def test_read_undecodable(self, tmp_path: Path) -> None:
        """Should raise MetadataError for bytes that are not UTF-8."""
        sidecar = tmp_path / "latin.pdf.metadata.json"
        sidecar.write_bytes(b"\xff\xfe{}")

        with pytest.raises(MetadataError, match="not valid UTF-8"):
            read_sidecar(sidecar)

    def test_write_then_read(self, tmp_path: Path) -> None:
        """Should persist a record next to its document."""
        record = DocumentMetadataRecord(
            path=tmp_path / "Offer Letter - Ann.pdf",
            filename="Offer Letter - Ann.pdf",
            status=ExecutionStatus.EXECUTED,
            category="People_and_Employment",
            signers=[Signer(name="Ann Lee", date_signed="2024-02-01")],
            fully_executed_date="2024-02-01",
        )

        sidecar = write_sidecar(record)

        assert sidecar.name == "Offer Letter - Ann.pdf.metadata.json"
        assert json.loads(sidecar.read_text(encoding="utf-8"))["status"] == "executed"
        assert read_sidecar(sidecar) == record


class TestScan:
    """Tests for MetadataStore.scan."""

    def test_scan_skips_malformed(self, sample_tree: Path, caplog: pytest.LogCaptureFixture) -> None:
        """Should log and skip a malformed sidecar without aborting."""
        (sample_tree / "Other").mkdir()
        (sample_tree / "Other" / "bad.pdf.metadata.json").write_text("{oops", encoding="utf-8")
        store = MetadataStore(sample_tree)

        with caplog.at_level(logging.WARNING):
            records = store.scan()

        assert len(records) == 5
        assert "bad.pdf.metadata.json" in caplog.text

    def test_scan_skips_undecodable(self, sample_tree: Path, caplog: pytest.LogCaptureFixture) -> None:
        """Should log and skip a sidecar that is not UTF-8."""
        (sample_tree / "Other").mkdir()
        (sample_tree / "Other" / "Broken.pdf.metadata.json").write_bytes(b'{"status": "executed", "notes": "\xff\xfe"}')
        store = MetadataStore(sample_tree)

        with caplog.at_level(logging.WARNING):
            records = store.scan()

        assert len(records) == 5
        assert "not valid UTF-8" in caplog.text

    def test_scan_missing_root(self, tmp_path: Path) -> None:
        """Should return nothing for a missing root."""
        store = MetadataStore(tmp_path / "missing")

        assert store.scan() == {}

    def test_keys_are_document_paths(self, sample_tree: Path) -> None:
        """Should key records by the document path, not the sidecar."""
        records = MetadataStore(sample_tree).scan()

        expected = sample_tree / "Finance_and_Investment" / "SAFE - Jane Doe.pdf"
        assert expected in records
        assert records[expected].contract_value == "$25,000"


class TestCache:
    """Tests for the cached snapshot."""

    def test_records_cached_within_window(self, sample_tree: Path) -> None:
        """Should not rescan before the staleness window ends."""
        clock = FakeClock()
        store = MetadataStore(sample_tree, ttl_seconds=300, clock=clock)

        store.records()
        clock.now = 299
        store.records()

        assert store.scan_count == 1

    def test_rescan_after_window(self, sample_tree: Path, make_sidecar) -> None:
        """Should pick up new sidecars once stale."""
        clock = FakeClock()
        store = MetadataStore(sample_tree, ttl_seconds=300, clock=clock)
        assert len(store.records()) == 5

        make_sidecar("Other/new.pdf", {"status": "draft"})
        assert len(store.records()) == 5
        clock.now = 300

        assert len(store.records()) == 6
        assert store.scan_count == 2

    def test_invalidate_forces_rescan(self, sample_tree: Path) -> None:
        """Should rescan on the next read after invalidate."""
        store = MetadataStore(sample_tree, clock=FakeClock())
        store.records()

        store.invalidate()
        store.records()

        assert store.scan_count == 2

    def test_snapshot_is_read_only(self, sample_tree: Path) -> None:
        """Should hand out an immutable mapping."""
        records = MetadataStore(sample_tree).records()

        with pytest.raises(TypeError):
            records[sample_tree / "x.pdf"] = None  # type: ignore[index]

    def test_single_flight(self, sample_tree: Path) -> None:
        """Should share one scan between concurrent stale readers."""
        store = MetadataStore(sample_tree)
        original_scan = store.scan
        started = threading.Event()
        release = threading.Event()

        def slow_scan(root=None):
            started.set()
            release.wait(timeout=5)
            return original_scan(root)

        results = []
        with patch.object(store, "scan", side_effect=slow_scan) as mock_scan:
            threads = [threading.Thread(target=lambda: results.append(store.records())) for _ in range(4)]
            threads[0].start()
            started.wait(timeout=5)
            for thread in threads[1:]:
                thread.start()
            release.set()
            for thread in threads:
                thread.join(timeout=5)

        assert mock_scan.call_count == 1
        assert store.scan_count == 1
        assert len(results) == 4
        assert all(result is results[0] for result in results)


class TestLookups:
    """Tests for get, find_by_filename, write and statistics."""

    def test_get_by_document_and_sidecar(self, sample_tree: Path) -> None:
        """Should find a record by document or sidecar path."""
        store = MetadataStore(sample_tree)
        document = sample_tree / "Finance_and_Investment" / "SAFE - Jane Doe.pdf"

        assert store.get(document) is not None
        assert store.get(str(document) + ".metadata.json") == store.get(document)
        assert store.get(sample_tree / "missing.pdf") is None

    def test_find_by_filename(self, sample_tree: Path) -> None:
        """Should match on a filename fragment."""
        record = MetadataStore(sample_tree).find_by_filename("john smith")

        assert record is not None
        assert record.filename == "Employment Agreement - John Smith.pdf"

    def test_write_invalidates(self, sample_tree: Path) -> None:
        """Should drop the snapshot after writing a sidecar."""
        store = MetadataStore(sample_tree, clock=FakeClock())
        record = DocumentMetadataRecord(path=sample_tree / "Other" / "memo.pdf", filename="memo.pdf")
        record.path.parent.mkdir(parents=True, exist_ok=True)
        store.records()

        store.write(record)

        assert store.get(record.path) == record
        assert store.scan_count == 2

    def test_statistics(self, sample_tree: Path) -> None:
        """Should count by status, category and folder."""
        stats = MetadataStore(sample_tree).statistics()

        assert stats.total_documents == 5
        assert stats.by_status == {"executed": 4, "template": 1}
        assert stats.template_count == 1
        assert stats.by_folder["Finance_and_Investment"] == 2
        assert stats.top_signers["Jane Doe"] == 2
        assert stats.recently_executed[0].filename == "Side Letter - Jane Doe.pdf"
        assert len(stats.recently_executed) == 4
