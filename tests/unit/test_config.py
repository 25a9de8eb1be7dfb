"""Unit tests for the configuration module."""

import os
import tempfile
from pathlib import Path

import pytest

from codebase_vector.config import ClassifierConfig, EmbedderConfig, Settings, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer credentials and overrides out of the tests."""
    for name in ("OPENAI_API_KEY", "OPENAI_BASE_URL", "CODEBASE_CONFIG_FILE", "CODEBASE_DB_PATH"):
        monkeypatch.delenv(name, raising=False)


class TestEmbedderConfig:
    """Tests for EmbedderConfig model."""

    def test_defaults(self):
        """Test that the default provider is the OpenAI-compatible endpoint."""
        config = EmbedderConfig()

        assert config.provider == "openai"
        assert config.model_name == "text-embedding-3-small"
        assert config.dimension == 0

    def test_unknown_provider_rejected(self):
        """Test that only registered providers are accepted."""
        with pytest.raises(ValueError):
            EmbedderConfig(provider="unknown")

    def test_api_key_falls_back_to_env(self, monkeypatch):
        """Test that OPENAI_API_KEY is used when no key is configured."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

        assert EmbedderConfig().resolved_api_key() == "sk-env"
        assert EmbedderConfig(api_key="sk-config").resolved_api_key() == "sk-config"

    def test_base_url_falls_back_to_env(self, monkeypatch):
        """Test that OPENAI_BASE_URL is used when no endpoint is configured."""
        monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:11434/v1")

        assert EmbedderConfig().resolved_base_url() == "http://localhost:11434/v1"
        assert ClassifierConfig().resolved_base_url() == "http://localhost:11434/v1"


class TestSettingsDefaults:
    """Tests for Settings default values."""

    def test_default_settings(self):
        """Test Settings with default values."""
        settings = Settings()

        assert settings.db_path == "~/.codebase/lancedb"
        assert settings.state_dir == "~/.codebase"
        assert settings.num_workers == 4
        assert settings.scroll_page_size == 100
        assert settings.store_max_retries == 3
        assert settings.retry_failed_files is True
        assert settings.duplicate_threshold == 0.92
        assert settings.classifier.enabled is False

    def test_settings_custom_values(self):
        """Test Settings with custom values."""
        settings = Settings(db_path="/custom/path", num_workers=8, duplicate_threshold=0.8)

        assert settings.db_path == "/custom/path"
        assert settings.num_workers == 8
        assert settings.duplicate_threshold == 0.8

    def test_settings_from_env(self, monkeypatch):
        """Test that CODEBASE_-prefixed variables override defaults."""
        monkeypatch.setenv("CODEBASE_DB_PATH", "/env/db")

        assert Settings().db_path == "/env/db"


class TestLoadSettings:
    """Tests for load_settings function."""

    def test_load_settings_with_no_config_file(self):
        """Test loading settings when config file doesn't exist."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            settings = load_settings(os.path.join(tmp_dir, "non_existent.yaml"))

            assert isinstance(settings, Settings)
            assert settings.db_path == "~/.codebase/lancedb"

    def test_load_settings_with_empty_config_file(self):
        """Test loading settings with empty config file."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "config.yaml")
            Path(config_path).write_text("")

            settings = load_settings(config_path)

            assert settings.state_dir == "~/.codebase"

    def test_load_settings_with_system_config(self):
        """Test loading settings with system configuration."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "config.yaml")
            Path(config_path).write_text(
                """
system:
  db_path: "./custom_db"
  num_workers: 2
  retry_failed_files: false
  unknown_key: "should_be_ignored"
"""
            )

            settings = load_settings(config_path)

            assert settings.db_path == "./custom_db"
            assert settings.num_workers == 2
            assert settings.retry_failed_files is False

    def test_load_settings_with_embedder_and_classifier(self):
        """Test that nested sections merge over the defaults."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "config.yaml")
            Path(config_path).write_text(
                """
embedder:
  provider: mlx
  model_name: "mlx-community/embeddinggemma-300m-bf16"
  dimension: 768
  query_prefix: "task: search result | query: "
classifier:
  enabled: true
"""
            )

            settings = load_settings(config_path)

            assert settings.embedder.provider == "mlx"
            assert settings.embedder.dimension == 768
            assert settings.embedder.query_prefix == "task: search result | query: "
            # Unspecified nested keys keep their defaults
            assert settings.embedder.timeout == 60.0
            assert settings.classifier.enabled is True
            assert settings.classifier.model_name == "gpt-4o-mini"

    def test_load_settings_from_env_var(self, monkeypatch):
        """Test loading settings from config file specified in env var."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "env_config.yaml")
            Path(config_path).write_text('system:\n  db_path: "./env_db"\n')

            monkeypatch.setenv("CODEBASE_CONFIG_FILE", config_path)

            assert load_settings().db_path == "./env_db"

    def test_load_settings_explicit_path_overrides_env(self, monkeypatch):
        """Test that explicit config_file parameter overrides env var."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            env_config = os.path.join(tmp_dir, "env.yaml")
            explicit_config = os.path.join(tmp_dir, "explicit.yaml")
            Path(env_config).write_text('system:\n  db_path: "./env_db"\n')
            Path(explicit_config).write_text('system:\n  db_path: "./explicit_db"\n')

            monkeypatch.setenv("CODEBASE_CONFIG_FILE", env_config)

            assert load_settings(explicit_config).db_path == "./explicit_db"

    def test_load_settings_with_null_data(self):
        """Test loading settings when yaml returns None."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "config.yaml")
            Path(config_path).write_text("# Just a comment")

            settings = load_settings(config_path)

            assert settings.db_path == "~/.codebase/lancedb"
