"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ─────────────────────────────────────────────────
#
# Settings are read from TWO sources (in priority order):
#
#   1. **Environment variables**: e.g. OPENAI_API_KEY=sk-abc123
#   2. **.env file**: key=value lines in the project root .env file
#
# Field `rag_chunk_size` maps to env var `RAG_CHUNK_SIZE`, and so on.
# Defaults apply when neither source defines a field.
#
# The retrieval/segmentation knobs are handed to services as a frozen
# RagConfig (see ``Settings.rag_config``) rather than read globally.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.utils.errors import ConfigurationError


class RagConfig(BaseModel):
    """Tuning values for segmentation and retrieval.

    Passed explicitly into :class:`~src.services.ingestion.segmenter.TextSegmenter`
    and :class:`~src.services.retrieval_service.RetrievalEngine` constructors.
    """

    model_config = ConfigDict(frozen=True)

    chunk_size_chars: int = Field(default=800, gt=0, description="Window size in characters.")
    overlap_chars: int = Field(default=100, ge=0, description="Characters shared by consecutive chunks.")
    default_top_k: int = Field(default=5, ge=1, description="Hits requested when the caller gives no top_k.")
    similarity_threshold: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        description="Minimum cosine similarity (1 - distance) for a hit to count.",
    )

    @model_validator(mode="after")
    def _overlap_below_window(self) -> "RagConfig":
        if self.overlap_chars >= self.chunk_size_chars:
            raise ValueError(
                f"overlap_chars ({self.overlap_chars}) must be smaller than "
                f"chunk_size_chars ({self.chunk_size_chars})"
            )
        return self


class Settings(BaseSettings):
    """Sales-brain application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === LLM / embedding providers ===
    # Empty string = "not configured"; provider selection in main.py skips
    # providers with empty keys and falls through to the next.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoints (TogetherAI, etc.)
    openai_text_model: str = ""
    openai_embedding_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    ollama_base_url: str = "http://localhost:11434"
    ollama_text_model: str = "llama3.1"

    # === Storage ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "sales_documents"
    document_db_path: str = "data/documents.db"

    # === RAG tuning ===
    rag_chunk_size: int = 800
    rag_chunk_overlap: int = 100
    rag_top_k: int = 5
    rag_similarity_threshold: float = 0.75
    rag_answer_max_tokens: int = 1500
    rag_answer_temperature: float = 0.2

    # === Ingestion ===
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MB
    max_concurrent_ingestions: int = 4
    index_retry_attempts: int = 3
    index_retry_initial_delay: float = 1.0  # seconds; doubles per attempt
    index_retry_max_delay: float = 10.0
    processing_timeout_minutes: int = 30

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    def rag_config(self) -> RagConfig:
        """Build the validated :class:`RagConfig` from the flat env fields.

        Raises
        ------
        ConfigurationError
            If the combination of values is invalid (e.g. overlap >= size).
        """
        try:
            return RagConfig(
                chunk_size_chars=self.rag_chunk_size,
                overlap_chars=self.rag_chunk_overlap,
                default_top_k=self.rag_top_k,
                similarity_threshold=self.rag_similarity_threshold,
            )
        except ValidationError as exc:
            raise ConfigurationError(message=f"Invalid RAG configuration: {exc}") from exc

    def get_available_llm_providers(self) -> list[str]:
        """Return LLM provider names that are configured, in selection order."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
