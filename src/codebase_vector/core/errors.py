class CodebaseVectorError(Exception):
    """Base class for all errors raised by codebase-vector."""


class InvalidPathError(CodebaseVectorError):
    """The project root does not exist or is not a directory."""


class WalkError(CodebaseVectorError):
    """The project root itself could not be enumerated."""


class ExtractionError(CodebaseVectorError):
    """A source file could not be turned into code units (per-file, non-fatal)."""


class EmbeddingError(CodebaseVectorError):
    """The embedding provider failed or returned unusable vectors (per-file, non-fatal)."""


class StoreError(CodebaseVectorError):
    """A vector store operation failed. Retried by the indexer before giving up on a file."""


class ClassificationError(CodebaseVectorError):
    """The pair classifier failed; the candidate pair is dropped."""


class StateError(CodebaseVectorError):
    """Hash-state could not be loaded or saved. Aborts the indexing run."""
