"""Build the embedding provider selected by configuration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from vaultfinder.embedding.base import EmbeddingProvider
from vaultfinder.embedding.ollama import OllamaEmbeddingProvider
from vaultfinder.embedding.openai import OpenAIEmbeddingProvider

if TYPE_CHECKING:
    from vaultfinder.config import AppConfig

LOGGER = logging.getLogger(__name__)


def create_embedding_provider(config: "AppConfig") -> EmbeddingProvider:
    if config.embedding_provider == "openai":
        if config.openai_api_key:
            return OpenAIEmbeddingProvider(config.openai_api_key, config.openai_model)
        LOGGER.warning("OpenAI embeddings selected without an API key, using Ollama")
    elif config.embedding_provider == "local":
        # pulls in torch
        from vaultfinder.embedding.encoder import EmbeddingConfig, SentenceTransformerProvider

        return SentenceTransformerProvider(EmbeddingConfig(model_name=config.local_model))
    return OllamaEmbeddingProvider(config.ollama_url, config.ollama_model)
