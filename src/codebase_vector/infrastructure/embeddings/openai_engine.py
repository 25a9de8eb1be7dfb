import numpy as np
import openai
from loguru import logger
from numpy.typing import NDArray

from codebase_vector.core.errors import EmbeddingError

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class OpenAIEmbedder:
    """
    Concrete implementation of IEmbedder over any OpenAI-compatible embeddings endpoint.
    The client enforces the per-request timeout and its own transport retries.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_EMBEDDING_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 2,
        client: openai.OpenAI | None = None,
    ) -> None:
        self._model_name = model_name
        if client is None:
            if not api_key:
                logger.warning("No API key configured for the embedding provider")
            if base_url:
                logger.info("Using custom embedding endpoint: {}", base_url)
            client = openai.OpenAI(
                api_key=api_key or "unset",
                base_url=base_url or None,
                timeout=timeout,
                max_retries=max_retries,
            )
        self.client = client

    def embed_batch(self, texts: list[str]) -> NDArray[np.float32]:
        if not texts:
            return np.empty((0, 0), dtype=np.float32)

        try:
            response = self.client.embeddings.create(model=self._model_name, input=texts)
        except openai.OpenAIError as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        # The API may return items out of order; `index` ties each back to its input
        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(data)}")
        return np.array([item.embedding for item in data], dtype=np.float32)

    def embed(self, text: str) -> NDArray[np.float32]:
        if not text.strip():
            raise ValueError("Query text cannot be empty.")

        vectors = self.embed_batch([text])
        if vectors.shape[0] == 0:
            raise EmbeddingError("No embeddings returned")
        return vectors[0]
