import threading
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from codebase_vector.core.errors import EmbeddingError

DEFAULT_BATCH_SIZE = 16


@dataclass
class _LoadedModel:
    """One model per name, shared by every embedder and indexing thread in the process."""

    model: Any
    tokenizer: Any
    lock: threading.Lock = field(default_factory=threading.Lock)


_MODEL_CACHE: dict[str, _LoadedModel] = {}
_CACHE_LOCK = threading.Lock()


def load(model_name: str) -> tuple[Any, Any]:
    """Loads an MLX model and tokenizer (Apple Silicon only)."""
    from mlx_embeddings.utils import load as mlx_load

    return mlx_load(model_name)


def _shared_model(model_name: str) -> _LoadedModel:
    with _CACHE_LOCK:
        loaded = _MODEL_CACHE.get(model_name)
        if loaded is None:
            logger.info("Loading MLX model: {}", model_name)
            loaded = _LoadedModel(*load(model_name))
            _MODEL_CACHE[model_name] = loaded
        else:
            logger.debug("Using cached MLX model: {}", model_name)
        return loaded


class MLXEmbedder:
    """
    IEmbedder running a local embedding model on Apple MLX.

    Code units of one file are embedded in sub-batches of ``batch_size`` so a
    large file does not pad every unit to its longest neighbour. Indexing
    threads share one model per name and take turns on its lock. A configured
    dimension of 0 adopts the width of the first vectors the model returns.
    """

    def __init__(
        self,
        model_name: str,
        max_token_length: int,
        dimension: int = 0,
        passage_prefix: str = "",
        query_prefix: str = "",
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._model_name = model_name
        self._max_token_length = max_token_length
        self._dimension = dimension
        self._passage_prefix = passage_prefix
        self._query_prefix = query_prefix
        self._batch_size = batch_size

        self._shared = _shared_model(model_name)
        self._dimension_lock = threading.Lock()

    @property
    def model(self) -> Any:
        return self._shared.model

    @property
    def tokenizer(self) -> Any:
        return self._shared.tokenizer

    @property
    def dimension(self) -> int:
        """Configured width, or the adopted one after the first vectors; 0 until then."""
        return self._dimension

    def _forward(self, texts: list[str]) -> NDArray[np.float32]:
        """Tokenizes and runs one sub-batch under the model's lock."""
        import mlx.core as mx

        with self._shared.lock:
            # The wrapped transformers tokenizer is the one that returns an attention_mask
            inputs = self.tokenizer._tokenizer(
                texts,
                padding=True,
                truncation=True,
                max_length=self._max_token_length,
                return_tensors="mlx",
            )
            if "attention_mask" in inputs:
                inputs["attention_mask"] = inputs["attention_mask"].astype(mx.float16)

            outputs = self.model(inputs["input_ids"], attention_mask=inputs.get("attention_mask"))
            if hasattr(outputs, "text_embeds"):
                embeds = outputs.text_embeds
            else:
                embeds = outputs["text_embeds"]
            # Materializes the lazy MLX array
            return np.array(embeds).astype(np.float32)

    def _check_width(self, vectors: NDArray[np.float32], expected_rows: int) -> None:
        if vectors.ndim != 2 or vectors.shape[0] != expected_rows:
            raise EmbeddingError(
                f"Model {self._model_name} returned shape {vectors.shape} "
                f"for {expected_rows} inputs"
            )
        width = int(vectors.shape[1])
        with self._dimension_lock:
            if not self._dimension:
                logger.info("Adopting embedding width {} from {}", width, self._model_name)
                self._dimension = width
            elif width != self._dimension:
                raise EmbeddingError(f"Expected width {self._dimension}, got {width}")

    def _embed(self, texts: list[str]) -> NDArray[np.float32]:
        batches: list[NDArray[np.float32]] = []
        for start in range(0, len(texts), self._batch_size):
            chunk = texts[start : start + self._batch_size]
            try:
                vectors = self._forward(chunk)
            except Exception as e:
                logger.error("Error embedding batch of {} texts: {}", len(chunk), e)
                raise EmbeddingError(f"MLX embedding failed: {e}") from e
            self._check_width(vectors, len(chunk))
            batches.append(vectors)
        return np.concatenate(batches)

    def embed_batch(self, texts: list[str]) -> NDArray[np.float32]:
        """Embeds the code-unit texts of one file, prepending the passage prefix."""
        if not texts:
            return np.empty((0, self._dimension), dtype=np.float32)
        return self._embed([f"{self._passage_prefix}{text}" for text in texts])

    def embed(self, text: str) -> NDArray[np.float32]:
        """Embeds a search query, prepending the query prefix for asymmetric models."""
        if not text.strip():
            raise ValueError("Query text cannot be empty.")
        return self._embed([f"{self._query_prefix}{text}"])[0]
