"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

ROOT_ENV_VAR = "DOCATLAS_ROOT"
SIDECAR_SUFFIX = ".metadata.json"
MEMORY_DIR_NAME = "memory"


def _get_default_root_path() -> Path:
    """Get the default organized-documents root."""
    env_root = os.environ.get(ROOT_ENV_VAR)
    if env_root:
        return Path(env_root).expanduser()
    return Path("organized")


@dataclass(slots=True)
class AppConfig:
    root_path: Path | None = None
    sidecar_suffix: str = SIDECAR_SUFFIX
    memory_dir_name: str = MEMORY_DIR_NAME
    cache_ttl_seconds: float = 300.0
    fuzzy_threshold: float = 0.5
    max_results: int = 10
    semantic_timeout: float = 30.0
    # Names of our own organization; never reported as a counterparty.
    company_names: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.root_path is None:
            self.root_path = _get_default_root_path()
        self.company_names = tuple(self.company_names)

    def resolve_root(self, base_dir: Path | None = None) -> Path:
        if self.root_path is None:
            self.root_path = _get_default_root_path()
        if Path(self.root_path).is_absolute() or base_dir is None:
            return Path(self.root_path)
        return base_dir / self.root_path

    def memory_dir(self, base_dir: Path | None = None) -> Path:
        return self.resolve_root(base_dir) / self.memory_dir_name
