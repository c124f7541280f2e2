"""Wiki RAG domain models -- re-exports all public model classes.

    - content.py  -- wiki spaces, page references and fetched page content
    - pipeline.py -- ingestion stages, progress events and task records
    - rag.py      -- stage results, neighbor rows and search responses
"""

from __future__ import annotations

from src.models.content import PageContent, PageRef, Space
from src.models.pipeline import (
    STAGE_PROGRESS,
    IndexingTask,
    IngestionStage,
    IngestionStatusSnapshot,
    ProgressEvent,
    TaskStatus,
)
from src.models.rag import (
    Collection,
    DocumentIngestionResult,
    EmbeddingBatchResult,
    EmbeddingResponse,
    EnrichmentResult,
    NeighborRow,
    RankedFragment,
    SearchResponse,
    SegmentationResult,
    StoreStats,
    StructuredCompletion,
)

__all__ = [
    "STAGE_PROGRESS",
    "Collection",
    "DocumentIngestionResult",
    "EmbeddingBatchResult",
    "EmbeddingResponse",
    "EnrichmentResult",
    "IndexingTask",
    "IngestionStage",
    "IngestionStatusSnapshot",
    "NeighborRow",
    "PageContent",
    "PageRef",
    "ProgressEvent",
    "RankedFragment",
    "SearchResponse",
    "SegmentationResult",
    "Space",
    "StoreStats",
    "StructuredCompletion",
    "TaskStatus",
]
