"""Exceptions raised by VaultFinder."""

from __future__ import annotations


class VaultFinderError(Exception):
    """Base class for VaultFinder errors."""


class EmbeddingUnavailableError(VaultFinderError):
    """The embedding provider cannot be reached or lacks the configured model."""


class EmbeddingError(VaultFinderError):
    """An embedding request returned an unusable response."""


class ConfigurationError(VaultFinderError, ValueError):
    """Invalid or inconsistent configuration."""


class IndexingInProgressError(VaultFinderError):
    """A corpus indexing run is already active."""
