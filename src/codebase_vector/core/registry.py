from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from codebase_vector.core.ports import ICodeUnitExtractor
from codebase_vector.infrastructure.embeddings.mlx_engine import MLXEmbedder
from codebase_vector.infrastructure.embeddings.openai_engine import OpenAIEmbedder
from codebase_vector.infrastructure.extraction.go_extractor import GoExtractor
from codebase_vector.infrastructure.extraction.javascript_extractor import (
    JavaScriptExtractor,
    TypeScriptExtractor,
)
from codebase_vector.infrastructure.extraction.python_extractor import PythonExtractor


class ComponentRegistry:
    """Registry pattern to dynamically map string names to class implementations."""

    _embedders: dict[str, Any] = {
        "openai": OpenAIEmbedder,
        "mlx": MLXEmbedder,
    }

    _extractors: dict[str, type[ICodeUnitExtractor]] = {
        "go": GoExtractor,
        "python": PythonExtractor,
        "javascript": JavaScriptExtractor,
        "typescript": TypeScriptExtractor,
    }

    @classmethod
    def get_embedder(cls, name: str) -> Any:
        if name not in cls._embedders:
            raise ValueError(f"Unknown embedder provider: '{name}'")
        return cls._embedders[name]

    @classmethod
    def get_extractor(cls, language: str) -> type[ICodeUnitExtractor]:
        if language not in cls._extractors:
            raise ValueError(f"No extractor for language: '{language}'")
        return cls._extractors[language]

    @classmethod
    def build_extractors(cls, languages: list[str] | None = None) -> Mapping[str, ICodeUnitExtractor]:
        """Instantiates extractors once and freezes the language -> extractor mapping."""
        selected = languages if languages is not None else list(cls._extractors)
        return MappingProxyType({lang: cls.get_extractor(lang)() for lang in selected})
