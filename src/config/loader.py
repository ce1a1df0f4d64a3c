"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
#   1. config/config.yaml - static defaults checked into the repo
#   2. .env file         - local developer overrides (not committed)
#   3. Environment vars  - set at deploy time
#
# load_config() reads the YAML file first, then deep-merges the
# env-derived values on top, so a key set in the environment always wins.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path
from typing import Any

import yaml

from src.config.settings import Settings
from src.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict[str, Any]:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.  A missing file is not
            an error; the environment alone is then authoritative.
        settings: Pre-built Settings (tests pass one in); defaults to a
            fresh ``Settings()`` read from the environment.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the YAML file exists but cannot be parsed
            or does not contain a mapping at the top level.
    """
    config_path = Path(path)
    yaml_config: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(message=f"Cannot parse {config_path}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigurationError(message=f"{config_path} must contain a mapping at the top level")
        yaml_config = loaded

    settings = settings or Settings()
    rag = settings.rag_config()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "llm": {
            "available_providers": settings.get_available_llm_providers(),
            "temperature": settings.rag_answer_temperature,
            "max_tokens": settings.rag_answer_max_tokens,
        },
        "rag": {
            "chunk_size_chars": rag.chunk_size_chars,
            "overlap_chars": rag.overlap_chars,
            "default_top_k": rag.default_top_k,
            "similarity_threshold": rag.similarity_threshold,
        },
        "ingestion": {
            "max_upload_bytes": settings.max_upload_bytes,
            "max_concurrent": settings.max_concurrent_ingestions,
            "retry_attempts": settings.index_retry_attempts,
            "processing_timeout_minutes": settings.processing_timeout_minutes,
        },
        "storage": {
            "chromadb_persist_dir": settings.chromadb_persist_dir,
            "chromadb_collection": settings.chromadb_collection,
            "document_db_path": settings.document_db_path,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
