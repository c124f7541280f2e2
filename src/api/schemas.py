"""Pydantic request/response schemas for the Wiki RAG API.

Defines the public contract of the REST endpoints: space and page browsing,
indexing requests and status, document removal, and semantic search.

Convention: request schemas end with "Request", response schemas end with
"Response".  Field(...) adds constraints and descriptions for the generated
OpenAPI docs.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from src.models.content import PageRef, Space
from src.models.pipeline import IndexingTask


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


# ---------------------------------------------------------------------------
# Browsing
# ---------------------------------------------------------------------------


class SpacesResponse(BaseModel):
    """Global spaces visible to the caller's token."""

    spaces: list[Space]


class PagesResponse(BaseModel):
    """Root pages of a space, or the children of a page."""

    pages: list[PageRef]


class IndexedRequest(BaseModel):
    """Candidate document ids to check against the store."""

    document_ids: list[str] = Field(default_factory=list, max_length=5000)


class IndexedResponse(BaseModel):
    """Subset of the candidate ids that already have fragments stored."""

    document_ids: list[str]


# ---------------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------------


class IndexRequest(BaseModel):
    """Pages to (re-)index."""

    page_ids: list[str] = Field(..., min_length=1)


class IndexDescendantsRequest(BaseModel):
    """Root pages to index together with everything below them."""

    root_ids: list[str] = Field(..., min_length=1)
    max_depth: int | None = Field(default=None, ge=1, le=50)


class IndexResponse(BaseModel):
    """Tasks created for an indexing request."""

    queued: int
    tasks: list[IndexingTask]


class IndexStatusResponse(BaseModel):
    """Counts per status plus the most recent task records."""

    queued: int
    processing: int
    completed: int
    errors: int
    total: int
    tasks: list[IndexingTask]


class DeleteDocumentResponse(BaseModel):
    """Outcome of removing one document's fragments."""

    document_id: str
    fragments_deleted: int


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class SearchRequest(BaseModel):
    """Semantic search request.

    ``threshold`` is a maximum cosine distance: lower values are stricter.
    Range checks happen in the retrieval engine so the error body matches
    the other domain errors.
    """

    query: str
    threshold: float | None = None
    limit: int | None = None


class SearchResultItem(BaseModel):
    """One ranked fragment in a search response."""

    fragment_id: int
    document_id: str
    matched_question: str | None = None
    display_text: str
    distance: float
    similarity: float
    source: str


class SearchResultsResponse(BaseModel):
    """Ranked fragments plus query metadata."""

    query: str
    results: list[SearchResultItem]
    total_results: int
    threshold: float
    processing_time_ms: int
    tokens_used: int = 0
    estimated_cost: float = 0.0
