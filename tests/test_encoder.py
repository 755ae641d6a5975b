"""Tests for the in-process sentence-transformers provider."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np

from vaultfinder.embedding.encoder import EmbeddingConfig, SentenceTransformerProvider


def _mock_model(dimension: int = 3) -> MagicMock:
    model = MagicMock()
    model.get_sentence_embedding_dimension.return_value = dimension
    model.encode.side_effect = lambda texts, **kwargs: np.ones((len(texts), dimension), dtype="float64")
    return model


class TestSentenceTransformerProvider:
    """Test SentenceTransformerProvider."""

    @patch("vaultfinder.embedding.encoder.SentenceTransformer")
    def test_model_loaded_lazily(self, mock_st: MagicMock) -> None:
        """Construction does not load the model."""
        provider = SentenceTransformerProvider(EmbeddingConfig(model_name="test/model"))
        mock_st.assert_not_called()
        assert provider.get_dimensions() == 768

    @patch("vaultfinder.embedding.encoder.SentenceTransformer")
    def test_is_available_loads_model_once(self, mock_st: MagicMock) -> None:
        """Availability loads the model and learns its dimension."""
        mock_st.return_value = _mock_model(dimension=4)
        provider = SentenceTransformerProvider(EmbeddingConfig(model_name="test/model"))

        assert provider.is_available()
        assert provider.is_available()
        mock_st.assert_called_once_with("test/model", backend="torch", device=None)
        assert provider.get_dimensions() == 4

    @patch("vaultfinder.embedding.encoder.SentenceTransformer")
    def test_load_failure_means_unavailable(self, mock_st: MagicMock) -> None:
        """A model that cannot load makes the provider unavailable."""
        mock_st.side_effect = OSError("model not found")
        provider = SentenceTransformerProvider()
        assert provider.is_available() is False

    @patch("vaultfinder.embedding.encoder.SentenceTransformer")
    def test_batch_embed(self, mock_st: MagicMock) -> None:
        """Vectors come back as float lists, normalized by the model."""
        model = _mock_model(dimension=3)
        mock_st.return_value = model
        provider = SentenceTransformerProvider(EmbeddingConfig(batch_size=8))

        vectors = provider.batch_embed(["a", "b"])

        assert vectors == [[1.0, 1.0, 1.0], [1.0, 1.0, 1.0]]
        kwargs = model.encode.call_args.kwargs
        assert kwargs["normalize_embeddings"] is True
        assert kwargs["batch_size"] == 8

    @patch("vaultfinder.embedding.encoder.SentenceTransformer")
    def test_encode_failure_gives_zero_vectors(self, mock_st: MagicMock) -> None:
        """Encoding errors degrade to zero vectors."""
        model = _mock_model(dimension=3)
        model.encode.side_effect = RuntimeError("out of memory")
        mock_st.return_value = model
        provider = SentenceTransformerProvider()

        vectors = provider.batch_embed(["a", "b"])

        assert vectors == [[0.0, 0.0, 0.0], [0.0, 0.0, 0.0]]
