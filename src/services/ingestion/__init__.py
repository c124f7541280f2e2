"""Wiki page ingestion pipeline.

Stages: **normalize -> segment -> enrich -> embed -> store**.

1. **Normalize** (normalizer.py / ContentNormalizer) -- multi-pass HTML
   cleanup down to minimal semantic markup.
2. **Segment** (segmenter.py / Segmenter) -- LLM chunking into
   self-contained fragments, with a deterministic paragraph/sentence fallback.
3. **Enrich** (enricher.py / Enricher) -- LLM-generated retrieval questions
   per fragment, falling back to the fragment text.
4. **Embed** (embedding_batcher.py / EmbeddingBatcher) -- token-budgeted,
   order-preserving embedding requests with per-group failure isolation.
5. **Store** (via IFragmentStore) -- transactional replace of a document's
   fragments and questions.

IngestionCoordinator (coordinator.py) drives one or many documents through
all five stages and reports progress.
"""

from src.services.ingestion.coordinator import IngestionCoordinator
from src.services.ingestion.embedding_batcher import EmbeddingBatcher
from src.services.ingestion.enricher import Enricher
from src.services.ingestion.normalizer import ContentNormalizer
from src.services.ingestion.segmenter import Segmenter

__all__ = [
    "ContentNormalizer",
    "EmbeddingBatcher",
    "Enricher",
    "IngestionCoordinator",
    "Segmenter",
]
