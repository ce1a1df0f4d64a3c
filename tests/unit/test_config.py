"""Unit tests for RagConfig, Settings and the YAML config loader."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from src.config.loader import _deep_merge, load_config
from src.config.settings import RagConfig, Settings
from src.utils.errors import ConfigurationError

_REPO_CONFIG = Path(__file__).resolve().parents[2] / "config" / "config.yaml"


def _settings(**overrides) -> Settings:
    defaults = {
        "openai_api_key": "",
        "anthropic_api_key": "",
        "ollama_base_url": "http://localhost:11434",
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


class TestRagConfig:
    def test_defaults(self) -> None:
        config = RagConfig()
        assert config.chunk_size_chars == 800
        assert config.overlap_chars == 100
        assert config.default_top_k == 5
        assert config.similarity_threshold == 0.75

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"chunk_size_chars": 0},
            {"overlap_chars": -1},
            {"chunk_size_chars": 100, "overlap_chars": 100},
            {"default_top_k": 0},
            {"similarity_threshold": 1.2},
        ],
    )
    def test_rejects_invalid_values(self, kwargs) -> None:
        with pytest.raises(ValidationError):
            RagConfig(**kwargs)

    def test_is_frozen(self) -> None:
        with pytest.raises(ValidationError):
            RagConfig().default_top_k = 9  # type: ignore[misc]


class TestSettings:
    def test_rag_config_from_env_fields(self) -> None:
        config = _settings(rag_chunk_size=400, rag_chunk_overlap=50, rag_top_k=3).rag_config()
        assert (config.chunk_size_chars, config.overlap_chars, config.default_top_k) == (400, 50, 3)

    def test_invalid_rag_settings_raise_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid RAG configuration"):
            _settings(rag_chunk_size=100, rag_chunk_overlap=200).rag_config()

    def test_environment_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("RAG_TOP_K", "8")
        monkeypatch.setenv("MAX_UPLOAD_BYTES", "2048")
        settings = Settings(_env_file=None)
        assert settings.rag_top_k == 8
        assert settings.max_upload_bytes == 2048

    def test_available_llm_providers_order(self) -> None:
        settings = _settings(openai_api_key="sk", anthropic_api_key="ak")
        assert settings.get_available_llm_providers() == ["anthropic", "openai", "ollama"]

    def test_no_keys_leaves_ollama(self) -> None:
        assert _settings().get_available_llm_providers() == ["ollama"]


class TestLoadConfig:
    def test_yaml_merged_with_settings(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "app:\n  name: salesbrain-rag\n"
            "upload:\n  allowed_content_types: [application/pdf]\n"
            "rag:\n  chunk_size_chars: 999\n"
        )

        config = load_config(str(path), settings=_settings(rag_chunk_size=600))

        assert config["app"]["name"] == "salesbrain-rag"
        assert config["app"]["env"] == "test"
        assert config["upload"]["allowed_content_types"] == ["application/pdf"]
        assert config["rag"]["chunk_size_chars"] == 600
        assert config["ingestion"]["max_upload_bytes"] == 10 * 1024 * 1024

    def test_missing_file_uses_settings_only(self, tmp_path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=_settings())
        assert config["rag"]["default_top_k"] == 5
        assert "upload" not in config

    def test_malformed_yaml_raises(self, tmp_path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("rag: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Cannot parse"):
            load_config(str(path), settings=_settings())

    def test_non_mapping_yaml_raises(self, tmp_path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(str(path), settings=_settings())

    def test_repo_config_file_loads(self) -> None:
        config = load_config(str(_REPO_CONFIG), settings=_settings())
        assert "application/pdf" in config["upload"]["allowed_content_types"]


def test_deep_merge_is_recursive() -> None:
    base = {"a": {"x": 1, "y": 2}, "b": 1}
    _deep_merge(base, {"a": {"y": 3}, "c": 4})
    assert base == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}
