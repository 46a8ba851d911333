"""Exceptions raised by DocAtlas components."""

from __future__ import annotations

from pathlib import Path


class DocAtlasError(Exception):
    """Base class for DocAtlas errors."""


class MetadataError(DocAtlasError):
    """A metadata sidecar could not be read or decoded."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Invalid metadata sidecar {path}: {reason}")
        self.path = path
        self.reason = reason


class SemanticSearchUnavailable(DocAtlasError):
    """The external semantic search collaborator is missing or failed."""
