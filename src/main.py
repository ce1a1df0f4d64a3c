"""Sales-brain FastAPI application entry point.

Wires together providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.

``build_components`` is also used by the CLI (``python -m src.cli.ingest``)
so that both entry points pick the same providers; the embedding model in
particular must match the vectors already stored in ChromaDB.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.config.loader import load_config
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.providers.document_store.sqlite_document_store import SQLiteDocumentRepository
from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.ollama_provider import OllamaLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.vector_store.chromadb_provider import ChromaDBVectorIndex
from src.services.ingestion.chunk_indexer import ChunkIndexer
from src.services.ingestion.content_extractor import ContentExtractor
from src.services.ingestion.pipeline import IngestionPipeline
from src.services.ingestion.segmenter import TextSegmenter
from src.services.retrieval_service import RetrievalEngine
from src.utils.concurrency import BoundedTaskRunner
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Select the first configured LLM provider.

    Priority order: Anthropic -> OpenAI -> Ollama.
    """
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(settings=app_settings)
    if app_settings.openai_api_key:
        return OpenAILLMProvider(settings=app_settings)
    return OllamaLLMProvider(settings=app_settings)


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider.

    OpenAI (or an OpenAI-compatible endpoint) when a key is set, else
    nomic-embed-text via Ollama.
    """
    if app_settings.openai_api_key:
        return OpenAIEmbeddingProvider(settings=app_settings)
    provider = NomicEmbeddingProvider(settings=app_settings)
    if not provider.is_available():
        _logger.warning(
            "embedding_provider_unreachable",
            provider=provider.get_provider_name(),
            base_url=app_settings.ollama_base_url,
        )
    return provider


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    rag_config = app_settings.rag_config()

    llm = _build_llm_provider(app_settings)
    embedding_provider = _build_embedding_provider(app_settings)

    vector_index = ChromaDBVectorIndex(
        embedding_provider=embedding_provider,
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
    )
    repository = SQLiteDocumentRepository(db_path=app_settings.document_db_path)

    pipeline = IngestionPipeline(
        repository=repository,
        extractor=ContentExtractor(),
        segmenter=TextSegmenter(rag_config),
        indexer=ChunkIndexer(
            vector_index,
            retry_attempts=app_settings.index_retry_attempts,
            initial_delay=app_settings.index_retry_initial_delay,
            max_delay=app_settings.index_retry_max_delay,
        ),
        runner=BoundedTaskRunner(
            max_concurrent=app_settings.max_concurrent_ingestions,
            name="ingestion",
        ),
        processing_timeout_minutes=app_settings.processing_timeout_minutes,
    )
    engine = RetrievalEngine(
        vector_index=vector_index,
        llm=llm,
        config=rag_config,
        temperature=app_settings.rag_answer_temperature,
        max_tokens=app_settings.rag_answer_max_tokens,
    )

    return {
        "settings": app_settings,
        "llm": llm,
        "embedding_provider": embedding_provider,
        "vector_index": vector_index,
        "document_repository": repository,
        "ingestion_pipeline": pipeline,
        "retrieval_engine": engine,
        "provider_registry": {
            "llm": llm.get_provider_name(),
            "embedding": embedding_provider.get_provider_name(),
        },
    }


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    components: dict[str, Any] | None = None,
    app_config: dict[str, Any] | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    Tests pass pre-built *components* (fakes for the index and LLM) so
    nothing external is touched.
    """
    resolved_settings = app_settings or settings
    resolved_config = app_config if app_config is not None else config

    @asynccontextmanager
    async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
        built = components if components is not None else build_components(resolved_settings)
        for key, value in built.items():
            setattr(application.state, key, value)
        application.state.settings = built.get("settings", resolved_settings)
        application.state.config = resolved_config

        await built["document_repository"].initialize()
        pipeline: IngestionPipeline = built["ingestion_pipeline"]
        await pipeline.recover_interrupted()
        await pipeline.find_stale_documents()

        _logger.info(
            "app_startup",
            version=resolved_config.get("app", {}).get("version", "0.1.0"),
            environment=resolved_settings.app_env,
            providers=built.get("provider_registry", {}),
        )

        yield

        await pipeline.drain()
        _logger.info("app_shutdown", message="Ingestion tasks drained")

    application = FastAPI(
        title="Sales Brain RAG API",
        version=str(resolved_config.get("app", {}).get("version", "0.1.0")),
        description=(
            "Upload sales documents, track their ingestion, and ask questions "
            "answered from your own documents with cited evidence."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=resolved_settings.cors_origins)

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
