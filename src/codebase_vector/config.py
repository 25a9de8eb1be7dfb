import os
from pathlib import Path
from typing import Literal

import yaml
from loguru import logger
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class EmbedderConfig(BaseModel):
    """Configuration of the embedding provider."""

    provider: Literal["openai", "mlx"] = "openai"
    model_name: str = "text-embedding-3-small"
    api_key: str | None = None
    base_url: str | None = None
    timeout: float = 60.0
    max_token_length: int = 8192
    # Code units per forward pass of a local model
    batch_size: int = 16
    # Only used by local models; remote providers report their own dimension
    dimension: int = 0

    # Task Prefixes for models like embeddinggemma
    passage_prefix: str = ""
    query_prefix: str = ""

    def resolved_api_key(self) -> str | None:
        return self.api_key or os.getenv("OPENAI_API_KEY")

    def resolved_base_url(self) -> str | None:
        return self.base_url or os.getenv("OPENAI_BASE_URL")


class ClassifierConfig(BaseModel):
    """Optional chat-completion classifier that confirms duplicate pairs."""

    enabled: bool = False
    model_name: str = "gpt-4o-mini"
    api_key: str | None = None
    base_url: str | None = None
    timeout: float = 60.0

    def resolved_api_key(self) -> str | None:
        return self.api_key or os.getenv("OPENAI_API_KEY")

    def resolved_base_url(self) -> str | None:
        return self.base_url or os.getenv("OPENAI_BASE_URL")


class Settings(BaseSettings):
    """Global configuration for the codebase-vector application."""

    # General System
    db_path: str = "~/.codebase/lancedb"
    state_dir: str = "~/.codebase"
    log_level: str = "INFO"
    log_serialize: bool = False

    # Indexing
    num_workers: int = 4
    store_max_retries: int = 3
    store_retry_backoff: float = 0.5
    retry_failed_files: bool = True
    watch_debounce_seconds: float = 2.0

    # Duplicate detection
    scroll_page_size: int = 100
    duplicate_threshold: float = 0.92

    embedder: EmbedderConfig = EmbedderConfig()
    classifier: ClassifierConfig = ClassifierConfig()

    model_config = SettingsConfigDict(
        env_prefix="CODEBASE_", env_file=".env", env_nested_delimiter="__", extra="ignore"
    )


def load_settings(config_file: str | None = None) -> Settings:
    """Loads base settings and overrides them from config.yaml."""
    base_settings = Settings()

    if config_file is None:
        config_file = os.getenv("CODEBASE_CONFIG_FILE", "config.yaml")

    yaml_path = Path(config_file)
    if yaml_path.exists():
        with open(yaml_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

            if not data:
                return base_settings

            # Override System configuration
            if "system" in data and isinstance(data["system"], dict):
                for key, value in data["system"].items():
                    if hasattr(base_settings, key):
                        setattr(base_settings, key, value)

            if "embedder" in data and isinstance(data["embedder"], dict):
                merged = base_settings.embedder.model_dump() | data["embedder"]
                base_settings.embedder = EmbedderConfig(**merged)

            if "classifier" in data and isinstance(data["classifier"], dict):
                merged = base_settings.classifier.model_dump() | data["classifier"]
                base_settings.classifier = ClassifierConfig(**merged)
    else:
        logger.warning("Configuration file '{}' not found, using defaults", yaml_path)

    return base_settings


# Global singleton instance
settings = load_settings()
