"""Wiki RAG FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and stores every component on ``app.state`` for the
route dependencies to pick up.

Also exposes :func:`build_components` so the CLI assembles exactly the same
object graph outside the web server.
"""

from __future__ import annotations

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
from src.config.components import AppConfig
from src.config.loader import load_app_config
from src.config.settings import Settings
from src.interfaces.content_source import IContentSource
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.task_registry import TaskRegistry
from src.providers.content.confluence_provider import ConfluenceContentSource
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.fragment_store.pgvector_store import PgVectorFragmentStore
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.services.ingestion.coordinator import IngestionCoordinator
from src.services.ingestion.embedding_batcher import EmbeddingBatcher
from src.services.ingestion.enricher import Enricher
from src.services.ingestion.normalizer import ContentNormalizer
from src.services.ingestion.segmenter import Segmenter
from src.services.retrieval.retrieval_engine import RetrievalEngine
from src.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(app_config: AppConfig) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Nothing here opens a network connection; the store connects lazily and
    content sources are built per caller token by ``content_source_factory``.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    # -- External clients --
    chunk_llm = OpenAILLMProvider(app_config.llm, model=app_config.llm.chunk_model)
    question_llm = OpenAILLMProvider(app_config.llm, model=app_config.llm.question_model)
    embedding_provider = OpenAIEmbeddingProvider(app_config.embedding)
    store = PgVectorFragmentStore(app_config.store)

    def content_source_factory(token: str | None = None) -> IContentSource:
        return ConfluenceContentSource(app_config.content_source, token=token)

    # -- Ingestion services --
    normalizer = ContentNormalizer(app_config.normalizer)
    segmenter = Segmenter(chunk_llm, app_config.segmenter)
    enricher = Enricher(question_llm, app_config.enricher)
    batcher = EmbeddingBatcher(embedding_provider, app_config.embedding_batcher)

    # -- Progress: the registry folds every event into its task records --
    tracker = ProgressTracker()
    task_registry = TaskRegistry(app_config.task_registry)
    tracker.subscribe(task_registry.handle_progress)

    coordinator = IngestionCoordinator(
        normalizer=normalizer,
        segmenter=segmenter,
        enricher=enricher,
        batcher=batcher,
        store=store,
        tracker=tracker,
        config=app_config.ingestion,
    )
    retrieval_engine = RetrievalEngine(batcher, store, app_config.retrieval)

    return {
        "app_config": app_config,
        "store": store,
        "tracker": tracker,
        "task_registry": task_registry,
        "coordinator": coordinator,
        "retrieval_engine": retrieval_engine,
        "content_source_factory": content_source_factory,
        "provider_names": {
            "chunk_llm": chunk_llm.get_provider_name(),
            "question_llm": question_llm.get_provider_name(),
            "embedding": embedding_provider.get_provider_name(),
            "fragment_store": store.get_provider_name(),
        },
    }


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    Components are assembled in the lifespan hook, so constructing the app
    (for example in tests that populate ``app.state`` themselves) has no
    side effects.
    """
    app_settings = settings or Settings()

    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        """Initialise all providers and services on startup, clean up on shutdown."""
        app_settings.validate_required()
        app_config = load_app_config(app_settings)
        configure_logging(
            log_level=app_settings.log_level,
            json_output=(app_settings.app_env == "production"),
            app_env=app_settings.app_env,
        )

        components = build_components(app_config)
        for key, value in components.items():
            setattr(application.state, key, value)

        await components["store"].initialize()

        _logger.info(
            "app_startup",
            version=_VERSION,
            environment=app_settings.app_env,
            **components["provider_names"],
        )

        yield

        await components["store"].close()
        _logger.info("app_shutdown", message="Fragment store closed")

    application = FastAPI(
        title="Wiki RAG API",
        version=_VERSION,
        description=(
            "Index wiki pages into question-enriched fragments with vector "
            "embeddings, then search them semantically."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    return application


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the API server with uvicorn."""
    settings = Settings()
    uvicorn.run(
        "src.main:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )


if __name__ == "__main__":
    main()
