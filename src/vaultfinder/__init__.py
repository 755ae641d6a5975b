"""VaultFinder: local semantic retrieval over a notes vault."""
