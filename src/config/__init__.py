"""Configuration module: exports Settings, RagConfig, load_config, and a module-level singleton."""

from src.config.loader import load_config
from src.config.settings import RagConfig, Settings

settings = Settings()

__all__ = ["RagConfig", "Settings", "load_config", "settings"]
