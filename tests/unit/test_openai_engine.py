"""Unit tests for OpenAIEmbedder."""
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import openai
import pytest

from codebase_vector.core.errors import EmbeddingError
from codebase_vector.infrastructure.embeddings.openai_engine import OpenAIEmbedder


def embedding_response(*items):
    """Build a response whose data items carry (index, embedding)."""
    return SimpleNamespace(
        data=[SimpleNamespace(index=i, embedding=vector) for i, vector in items]
    )


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def embedder(client):
    return OpenAIEmbedder(model_name="text-embedding-3-small", client=client)


class TestOpenAIEmbedderInit:
    def test_builds_client_from_settings(self):
        with patch(
            "codebase_vector.infrastructure.embeddings.openai_engine.openai.OpenAI"
        ) as mock_openai:
            OpenAIEmbedder(api_key="sk-test", base_url="http://localhost:8080/v1", timeout=5.0)

            mock_openai.assert_called_once_with(
                api_key="sk-test",
                base_url="http://localhost:8080/v1",
                timeout=5.0,
                max_retries=2,
            )

    def test_missing_key_still_constructs(self):
        with patch(
            "codebase_vector.infrastructure.embeddings.openai_engine.openai.OpenAI"
        ) as mock_openai:
            OpenAIEmbedder()

            assert mock_openai.call_args.kwargs["base_url"] is None


class TestEmbedBatch:
    """Tests for the batched embeddings call."""

    def test_returns_float32_matrix(self, embedder, client):
        client.embeddings.create.return_value = embedding_response(
            (0, [0.1, 0.2]), (1, [0.3, 0.4])
        )

        result = embedder.embed_batch(["a", "b"])

        client.embeddings.create.assert_called_once_with(
            model="text-embedding-3-small", input=["a", "b"]
        )
        assert result.dtype == np.float32
        assert result.shape == (2, 2)

    def test_reorders_by_index(self, embedder, client):
        client.embeddings.create.return_value = embedding_response(
            (1, [0.0, 1.0]), (0, [1.0, 0.0])
        )

        result = embedder.embed_batch(["first", "second"])

        np.testing.assert_array_equal(result[0], [1.0, 0.0])
        np.testing.assert_array_equal(result[1], [0.0, 1.0])

    def test_empty_input_skips_request(self, embedder, client):
        result = embedder.embed_batch([])

        client.embeddings.create.assert_not_called()
        assert result.shape == (0, 0)

    def test_count_mismatch_raises(self, embedder, client):
        client.embeddings.create.return_value = embedding_response((0, [0.1, 0.2]))

        with pytest.raises(EmbeddingError, match="Expected 2 embeddings, got 1"):
            embedder.embed_batch(["a", "b"])

    def test_provider_error_wrapped(self, embedder, client):
        client.embeddings.create.side_effect = openai.OpenAIError("rate limited")

        with pytest.raises(EmbeddingError, match="rate limited"):
            embedder.embed_batch(["a"])


class TestEmbed:
    def test_returns_single_vector(self, embedder, client):
        client.embeddings.create.return_value = embedding_response((0, [0.5, 0.5, 0.0]))

        result = embedder.embed("parse config")

        assert result.shape == (3,)

    def test_empty_query_raises(self, embedder, client):
        with pytest.raises(ValueError, match="Query text cannot be empty"):
            embedder.embed("  \n")

        client.embeddings.create.assert_not_called()
