"""Utility modules for the wiki RAG service.

- **errors** -- Domain-specific exception hierarchy rooted at WikiRagError.
- **concurrency** -- semaphore-throttled gather and staggered starts for
  fragment enrichment and document batches.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text** -- HTML-to-text flattening, token estimates and paragraph /
  sentence boundary detection.
"""

from src.utils.concurrency import staggered, throttled_gather
from src.utils.errors import (
    ConfigurationError,
    ContentSourceError,
    EmbeddingError,
    LLMError,
    ProviderUnavailableError,
    RateLimitError,
    SearchValidationError,
    StorageError,
    WikiRagError,
)
from src.utils.logging import configure_logging, get_logger
from src.utils.text import estimate_tokens, html_to_text, split_paragraphs, split_sentences

__all__ = [
    "ConfigurationError",
    "ContentSourceError",
    "EmbeddingError",
    "LLMError",
    "ProviderUnavailableError",
    "RateLimitError",
    "SearchValidationError",
    "StorageError",
    "WikiRagError",
    "configure_logging",
    "estimate_tokens",
    "get_logger",
    "html_to_text",
    "split_paragraphs",
    "split_sentences",
    "staggered",
    "throttled_gather",
]
