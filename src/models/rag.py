"""Data models for segmentation, enrichment, embedding and retrieval.

Every stage of the ingestion pipeline returns a frozen result model that
carries its own token usage and estimated cost, so the coordinator can sum
them into a :class:`DocumentIngestionResult` without knowing how each stage
priced its calls.

Vectors are ``list[float] | None``: ``None`` marks an input whose embedding
request failed.  Such rows are stored with a NULL embedding and never match
a nearest-neighbor query.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Provider responses
# ---------------------------------------------------------------------------
class StructuredCompletion(BaseModel):
    """Parsed JSON object returned by a structured-output chat completion."""

    model_config = ConfigDict(frozen=True)

    data: dict[str, Any] = Field(description="Parsed JSON object from the model.")
    total_tokens: int = Field(default=0, ge=0)
    model: str = Field(default="")


class EmbeddingResponse(BaseModel):
    """Vectors for one embedding request, aligned with its inputs."""

    model_config = ConfigDict(frozen=True)

    vectors: list[list[float]]
    total_tokens: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Stage results
# ---------------------------------------------------------------------------
class SegmentationResult(BaseModel):
    """Ordered fragments produced from one document's cleaned markup."""

    model_config = ConfigDict(frozen=True)

    fragments: list[str] = Field(default_factory=list)
    tokens_used: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0.0)
    used_fallback: bool = Field(
        default=False, description="True when the deterministic splitter produced the fragments."
    )


class EnrichmentResult(BaseModel):
    """Questions generated for one fragment."""

    model_config = ConfigDict(frozen=True)

    questions: list[str] = Field(default_factory=list)
    tokens_used: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0.0)
    used_fallback: bool = Field(
        default=False, description="True when the fragment text stands in for its questions."
    )


class EmbeddingBatchResult(BaseModel):
    """Order-preserving vectors for a batch of texts.

    ``vectors[i]`` belongs to input ``i``; it is ``None`` exactly when ``i``
    is listed in ``failed_indices``.
    """

    model_config = ConfigDict(frozen=True)

    vectors: list[list[float] | None] = Field(default_factory=list)
    failed_indices: list[int] = Field(default_factory=list)
    tokens_used: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0.0)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------
class Collection(str, Enum):  # noqa: UP042
    """The two searchable row collections in the fragment store."""

    FRAGMENT = "fragment"
    QUESTION = "question"


class NeighborRow(BaseModel):
    """One row returned by a nearest-neighbor query."""

    model_config = ConfigDict(frozen=True)

    fragment_id: int
    document_id: str
    display_text: str
    distance: float = Field(ge=0.0, description="Cosine distance to the query; lower is closer.")
    source: Collection
    question: str | None = Field(default=None, description="Matched question text (question rows only).")


class RankedFragment(BaseModel):
    """A deduplicated search hit."""

    model_config = ConfigDict(frozen=True)

    fragment_id: int
    document_id: str
    matched_question: str | None = Field(
        default=None, description="Question that produced the best match, if any."
    )
    display_text: str
    distance: float = Field(ge=0.0)
    source: Collection

    @property
    def similarity(self) -> float:
        """Cosine similarity corresponding to :attr:`distance`."""
        return 1.0 - self.distance


class SearchResponse(BaseModel):
    """Ranked fragments for a query, with request accounting."""

    model_config = ConfigDict(frozen=True)

    query: str
    results: list[RankedFragment] = Field(default_factory=list)
    total_results: int = Field(default=0, ge=0)
    threshold: float = Field(description="Maximum cosine distance applied to both collections.")
    processing_time_ms: int = Field(default=0, ge=0)
    tokens_used: int = Field(default=0, ge=0)
    estimated_cost: float = Field(default=0.0, ge=0.0)


# ---------------------------------------------------------------------------
# Ingestion / store accounting
# ---------------------------------------------------------------------------
class DocumentIngestionResult(BaseModel):
    """Outcome of ingesting one document."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    success: bool
    fragments_saved: int = Field(default=0, ge=0)
    questions_saved: int = Field(default=0, ge=0)
    failed_fragment_embeddings: int = Field(default=0, ge=0)
    failed_question_embeddings: int = Field(default=0, ge=0)
    tokens_used: int = Field(default=0, ge=0)
    estimated_cost: float = Field(default=0.0, ge=0.0)
    elapsed_ms: int = Field(default=0, ge=0)
    error: str | None = None


class StoreStats(BaseModel):
    """Row counts reported by the fragment store."""

    model_config = ConfigDict(frozen=True)

    fragments: int = Field(default=0, ge=0)
    questions: int = Field(default=0, ge=0)
    documents: int = Field(default=0, ge=0)
    fragments_without_embedding: int = Field(default=0, ge=0)
    questions_without_embedding: int = Field(default=0, ge=0)
