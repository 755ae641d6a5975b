"""Application configuration defaults."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from vaultfinder.embedding.ollama import DEFAULT_OLLAMA_MODEL, DEFAULT_OLLAMA_URL
from vaultfinder.embedding.openai import DEFAULT_OPENAI_MODEL
from vaultfinder.errors import ConfigurationError
from vaultfinder.ingestion.chunker import STRATEGIES

DEFAULT_LOCAL_MODEL = "sentence-transformers/all-mpnet-base-v2"
DEFAULT_OMNISEARCH_URL = "http://localhost:51361"

DEFAULT_PROVIDER_PRIORITY = ("smart-connections", "omnisearch", "internal")
EMBEDDING_PROVIDERS = ("ollama", "openai", "local")
DEFAULT_EXCLUDE_FOLDERS = (".obsidian", ".trash", "node_modules")

# Changing any of these requires a new embedding provider instance.
EMBEDDING_FIELDS = frozenset(
    {"embedding_provider", "ollama_url", "ollama_model", "openai_api_key", "openai_model", "local_model"}
)
# Fields the indexer reads while a run is in progress.
INDEXING_FIELDS = EMBEDDING_FIELDS | {"chunk_strategy", "chunk_size", "chunk_overlap", "exclude_folders"}


def _get_default_db_path() -> Path:
    """Get the default database path based on platform and execution context."""
    user_db = Path.home() / "Documents" / "VaultFinder" / "vaultfinder.db"

    if getattr(sys, "frozen", False):
        return user_db

    # When running from source, prefer local data/ if it exists
    local_db = Path("data/vaultfinder.db")
    if local_db.exists():
        return local_db

    return user_db


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    enable_rag: bool = True
    provider_priority: List[str] = field(default_factory=lambda: list(DEFAULT_PROVIDER_PRIORITY))

    embedding_provider: str = "ollama"
    ollama_url: str = DEFAULT_OLLAMA_URL
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    openai_api_key: str | None = field(
        default_factory=lambda: os.environ.get("OPENAI_API_KEY"), repr=False
    )
    openai_model: str = DEFAULT_OPENAI_MODEL
    local_model: str = DEFAULT_LOCAL_MODEL
    omnisearch_url: str = DEFAULT_OMNISEARCH_URL

    chunk_strategy: str = "heading"
    chunk_size: int = 512
    chunk_overlap: int = 50

    top_k: int = 5
    similarity_threshold: float = 0.7
    use_hybrid_search: bool = True

    exclude_folders: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_FOLDERS))

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        self.validate()

    def validate(self) -> None:
        if self.chunk_strategy not in STRATEGIES:
            raise ConfigurationError(f"Unknown chunk strategy: {self.chunk_strategy!r}")
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ConfigurationError("chunk_overlap must be in [0, chunk_size)")
        if self.embedding_provider not in EMBEDDING_PROVIDERS:
            raise ConfigurationError(f"Unknown embedding provider: {self.embedding_provider!r}")
        if self.top_k <= 0:
            raise ConfigurationError("top_k must be positive")

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
