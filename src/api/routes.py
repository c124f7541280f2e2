"""FastAPI API routes for the Wiki RAG service.

Provides REST endpoints for browsing the wiki, queueing pages for indexing,
polling indexing status, removing documents, and semantic search.  Service
dependencies are resolved from ``app.state`` via FastAPI's ``Depends`` using
the ``Annotated`` pattern.

Route map (all under ``/api/v1``)::

    GET    /health                 health check + store statistics
    GET    /spaces                 global wiki spaces          (bearer token)
    GET    /spaces/{key}/pages     root pages of a space       (bearer token)
    GET    /pages/{id}/children    child pages of a page       (bearer token)
    POST   /indexed                which candidate ids are stored
    POST   /index                  queue pages for indexing    (bearer token)
    POST   /index/descendants      queue roots + descendants   (bearer token)
    GET    /index/status           task counts + recent tasks
    DELETE /documents/{id}         remove a document's fragments
    POST   /search                 semantic search

Routes that reach the wiki build a content source from the caller's own
bearer token and close it when done.  Indexing runs as a background task
after the response is sent; its progress reaches the task registry through
the progress tracker.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request

from src.api.schemas import (
    DeleteDocumentResponse,
    HealthResponse,
    IndexDescendantsRequest,
    IndexedRequest,
    IndexedResponse,
    IndexRequest,
    IndexResponse,
    IndexStatusResponse,
    PagesResponse,
    SearchRequest,
    SearchResultItem,
    SearchResultsResponse,
    SpacesResponse,
)
from src.interfaces.content_source import IContentSource
from src.interfaces.fragment_store import IFragmentStore
from src.pipeline.task_registry import TaskRegistry
from src.services.ingestion.coordinator import IngestionCoordinator
from src.services.retrieval.retrieval_engine import RetrievalEngine
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

_VERSION = "0.1.0"

ContentSourceFactory = Callable[[str], IContentSource]

router = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Dependency injection helpers: resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_coordinator(request: Request) -> IngestionCoordinator:
    """Return the ingestion coordinator from application state."""
    return request.app.state.coordinator


def _get_retrieval_engine(request: Request) -> RetrievalEngine:
    """Return the retrieval engine from application state."""
    return request.app.state.retrieval_engine


def _get_store(request: Request) -> IFragmentStore:
    """Return the fragment store from application state."""
    return request.app.state.store


def _get_registry(request: Request) -> TaskRegistry:
    """Return the indexing task registry from application state."""
    return request.app.state.task_registry


def _get_source_factory(request: Request) -> ContentSourceFactory:
    """Return the callable that builds a content source for a token."""
    return request.app.state.content_source_factory


def _bearer_token(authorization: Annotated[str | None, Header()] = None) -> str:
    """Extract the caller's wiki token from ``Authorization: Bearer <token>``."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Expected a Bearer token")
    return token


CoordinatorDep = Annotated[IngestionCoordinator, Depends(_get_coordinator)]
RetrievalDep = Annotated[RetrievalEngine, Depends(_get_retrieval_engine)]
StoreDep = Annotated[IFragmentStore, Depends(_get_store)]
RegistryDep = Annotated[TaskRegistry, Depends(_get_registry)]
SourceFactoryDep = Annotated[ContentSourceFactory, Depends(_get_source_factory)]
TokenDep = Annotated[str, Depends(_bearer_token)]


# ---------------------------------------------------------------------------
# Background work
# ---------------------------------------------------------------------------


async def _run_indexing(
    coordinator: IngestionCoordinator,
    source_factory: ContentSourceFactory,
    token: str,
    document_ids: list[str],
) -> None:
    """Ingest *document_ids* with a content source bound to *token*."""
    source = source_factory(token)
    try:
        results = await coordinator.process_documents(document_ids, source)
    finally:
        await source.close()
    _logger.info(
        "background_indexing_complete",
        documents=len(results),
        failed=sum(1 for r in results if not r.success),
    )


def _queue_indexing(
    document_ids: list[str],
    registry: TaskRegistry,
    coordinator: IngestionCoordinator,
    source_factory: ContentSourceFactory,
    token: str,
    background_tasks: BackgroundTasks,
) -> IndexResponse:
    document_ids = list(dict.fromkeys(document_ids))
    tasks = [registry.submit(document_id) for document_id in document_ids]
    background_tasks.add_task(_run_indexing, coordinator, source_factory, token, document_ids)
    _logger.info("indexing_queued", documents=len(document_ids))
    return IndexResponse(queued=len(tasks), tasks=tasks)


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request, store: StoreDep) -> HealthResponse:
    """Return application health, version, and fragment store statistics."""
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_names", {}))

    try:
        stats = await store.get_stats()
        providers["store"] = True
        providers["fragments"] = stats.fragments
        providers["questions"] = stats.questions
        providers["documents"] = stats.documents
    except Exception as exc:  # noqa: BLE001
        _logger.warning("health_store_unavailable", error=str(exc))
        providers["store"] = False

    return HealthResponse(
        status="healthy" if providers["store"] else "degraded",
        version=_VERSION,
        providers=providers,
    )


# ---------------------------------------------------------------------------
# Browsing endpoints
# ---------------------------------------------------------------------------


@router.get("/spaces", response_model=SpacesResponse, summary="List global spaces")
async def list_spaces(token: TokenDep, source_factory: SourceFactoryDep) -> SpacesResponse:
    """List the global spaces visible to the caller."""
    source = source_factory(token)
    try:
        spaces = await source.list_spaces()
    finally:
        await source.close()
    return SpacesResponse(spaces=spaces)


@router.get(
    "/spaces/{space_key}/pages",
    response_model=PagesResponse,
    summary="List root pages of a space",
)
async def list_root_pages(
    space_key: str, token: TokenDep, source_factory: SourceFactoryDep
) -> PagesResponse:
    """List the top-level pages of *space_key*."""
    source = source_factory(token)
    try:
        pages = await source.list_root_pages(space_key)
    finally:
        await source.close()
    return PagesResponse(pages=pages)


@router.get(
    "/pages/{page_id}/children",
    response_model=PagesResponse,
    summary="List child pages",
)
async def list_children(
    page_id: str, token: TokenDep, source_factory: SourceFactoryDep
) -> PagesResponse:
    """List the direct children of *page_id*."""
    source = source_factory(token)
    try:
        pages = await source.list_children(page_id)
    finally:
        await source.close()
    return PagesResponse(pages=pages)


@router.post(
    "/indexed",
    response_model=IndexedResponse,
    summary="Which candidate documents are indexed",
)
async def indexed_documents(body: IndexedRequest, store: StoreDep) -> IndexedResponse:
    """Return the subset of *document_ids* with fragments in the store."""
    indexed = await store.list_indexed_document_ids(body.document_ids)
    return IndexedResponse(document_ids=indexed)


# ---------------------------------------------------------------------------
# Indexing endpoints
# ---------------------------------------------------------------------------


@router.post("/index", response_model=IndexResponse, status_code=202, summary="Index pages")
async def index_pages(
    body: IndexRequest,
    background_tasks: BackgroundTasks,
    token: TokenDep,
    registry: RegistryDep,
    coordinator: CoordinatorDep,
    source_factory: SourceFactoryDep,
) -> IndexResponse:
    """Queue pages for (re-)indexing and return their task records."""
    return _queue_indexing(
        body.page_ids, registry, coordinator, source_factory, token, background_tasks
    )


@router.post(
    "/index/descendants",
    response_model=IndexResponse,
    status_code=202,
    summary="Index pages and everything below them",
)
async def index_descendants(
    body: IndexDescendantsRequest,
    background_tasks: BackgroundTasks,
    token: TokenDep,
    registry: RegistryDep,
    coordinator: CoordinatorDep,
    source_factory: SourceFactoryDep,
) -> IndexResponse:
    """Expand each root to its descendants, then queue the whole set."""
    source = source_factory(token)
    try:
        document_ids = await coordinator.expand_roots(body.root_ids, source, body.max_depth)
    finally:
        await source.close()
    return _queue_indexing(
        document_ids, registry, coordinator, source_factory, token, background_tasks
    )


@router.get(
    "/index/status",
    response_model=IndexStatusResponse,
    summary="Indexing task status",
)
async def index_status(registry: RegistryDep) -> IndexStatusResponse:
    """Return task counts per status plus the most recent task records."""
    snapshot = registry.snapshot()
    return IndexStatusResponse(**snapshot.model_dump())


@router.delete(
    "/documents/{document_id}",
    response_model=DeleteDocumentResponse,
    summary="Remove a document from the index",
)
async def delete_document(document_id: str, store: StoreDep) -> DeleteDocumentResponse:
    """Delete every fragment (and, by cascade, question) of *document_id*."""
    deleted = await store.delete_by_document_id(document_id)
    return DeleteDocumentResponse(document_id=document_id, fragments_deleted=deleted)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


@router.post(
    "/search",
    response_model=SearchResultsResponse,
    summary="Semantic search over indexed fragments",
)
async def search(body: SearchRequest, engine: RetrievalDep) -> SearchResultsResponse:
    """Rank fragments by their closest question or fragment vector.

    ``threshold`` is a maximum cosine distance; omitted values fall back to
    the configured defaults.  Invalid values produce a 400.
    """
    response = await engine.search(body.query, threshold=body.threshold, limit=body.limit)
    return SearchResultsResponse(
        query=response.query,
        results=[
            SearchResultItem(
                fragment_id=hit.fragment_id,
                document_id=hit.document_id,
                matched_question=hit.matched_question,
                display_text=hit.display_text,
                distance=hit.distance,
                similarity=hit.similarity,
                source=hit.source.value,
            )
            for hit in response.results
        ],
        total_results=response.total_results,
        threshold=response.threshold,
        processing_time_ms=response.processing_time_ms,
        tokens_used=response.tokens_used,
        estimated_cost=response.estimated_cost,
    )
