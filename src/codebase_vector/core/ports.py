from typing import Any, Protocol

import numpy as np
from numpy.typing import NDArray

from codebase_vector.core.models import ChunkPayload, CodeUnit, SearchHit, StoredPoint


class ICodeUnitExtractor(Protocol):
    """Protocol defining how a language-specific parser yields code units."""

    @property
    def language(self) -> str:
        """Returns the language name this extractor handles."""
        ...

    def extract(self, path: str, data: bytes) -> list[CodeUnit]:
        """Parses a file's bytes into structural units. Raises ExtractionError on failure."""
        ...


class IEmbedder(Protocol):
    """Protocol defining how an embedder should behave."""

    def embed_batch(self, texts: list[str]) -> NDArray[np.float32]:
        """Converts a batch of text strings into a (len(texts), dim) float32 NumPy array."""
        ...

    def embed(self, text: str) -> NDArray[np.float32]:
        """Converts a single string into a flat float32 NumPy array."""
        ...


class IPairClassifier(Protocol):
    """Protocol for an optional second opinion on a candidate duplicate pair."""

    def classify_pair(
        self, a: ChunkPayload, b: ChunkPayload, score: float
    ) -> tuple[bool, str]:
        """Returns (is_duplicate, reason). Raises ClassificationError on failure."""
        ...


class IStoreMapper(Protocol):
    def __init__(self, vector_dimension: int, **kwargs: Any) -> None: ...

    @property
    def schema(self) -> Any:
        """Returns the PyArrow schema for the table."""
        ...

    def to_record_batch(
        self, ids: list[int], payloads: list[ChunkPayload], vectors: NDArray[np.float32]
    ) -> Any:
        """Converts payloads and vectors into a PyArrow RecordBatch."""
        ...

    def from_row(self, row: dict[str, Any], with_vector: bool = True) -> StoredPoint:
        """Converts a stored row back into a StoredPoint."""
        ...


class IVectorStore(Protocol):
    """Protocol defining the vector store operations the indexer and analyzers need."""

    def ensure_collection(self, name: str, dimension: int) -> bool:
        """Creates the collection if missing, recreating it on a dimension mismatch.

        Returns True when the collection was created empty by this call.
        """
        ...

    def drop_collection(self, name: str) -> None:
        """Deletes a collection and all of its points."""
        ...

    def upsert(
        self,
        name: str,
        ids: list[int],
        payloads: list[ChunkPayload],
        vectors: NDArray[np.float32],
    ) -> None:
        """Inserts or replaces points keyed by their numeric id."""
        ...

    def delete_by_filter(self, name: str, conditions: dict[str, str]) -> None:
        """Deletes every point whose payload exactly matches all conditions."""
        ...

    def scroll(
        self, name: str, page_size: int, page_token: int | None = None
    ) -> tuple[list[StoredPoint], int | None]:
        """Returns one page of points with vectors and the token of the next page (None when done)."""
        ...

    def search(
        self, name: str, vector: NDArray[np.float32], limit: int = 10
    ) -> list[SearchHit]:
        """Returns the closest points by cosine similarity."""
        ...


class IIgnorePatternSource(Protocol):
    """Protocol for loading ignore-file patterns from a project root."""

    def load(self, root: str) -> list[str]: ...
