"""Utility helpers for working with metadata sidecar files."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator

from docatlas.config import SIDECAR_SUFFIX


def iter_sidecar_paths(inputs: Iterable[Path], *, suffix: str = SIDECAR_SUFFIX) -> Iterator[Path]:
    """Yield sidecar paths from input paths, descending into directories."""
    for item in inputs:
        if item.is_dir():
            yield from sorted(
                child for child in item.rglob(f"*{suffix}") if child.is_file()
            )
        elif item.is_file() and item.name.endswith(suffix):
            yield item


def document_path_for(sidecar: Path, *, suffix: str = SIDECAR_SUFFIX) -> Path:
    """Strip the sidecar suffix to get the path of the described document."""
    name = sidecar.name
    if not name.endswith(suffix):
        raise ValueError(f"{sidecar} is not a metadata sidecar")
    return sidecar.with_name(name[: -len(suffix)])


def sidecar_path_for(document: Path, *, suffix: str = SIDECAR_SUFFIX) -> Path:
    return document.with_name(document.name + suffix)
