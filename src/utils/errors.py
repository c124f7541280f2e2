"""Custom exception hierarchy for the wiki RAG service.

All application exceptions inherit from :class:`WikiRagError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "confluence", "pgvector") caused the failure.

The hierarchy is organized by pipeline domain:

    WikiRagError  (base -- catch-all for any wiki RAG error)
    +-- ContentSourceError       (wiki REST API failures)
    +-- LLMError                 (any chat-completion call failure)
    +-- EmbeddingError           (embedding service failure)
    +-- StorageError             (fragment store read/write failure)
    +-- SearchValidationError    (rejected search parameters)
    +-- ConfigurationError       (startup / missing config)
    +-- RateLimitError           (provider rate-limit exceeded)
    +-- ProviderUnavailableError (external service down / unreachable)

Segmenter and Enricher absorb :class:`LLMError` through their fallback
policies; everything else that escapes a document's pipeline is turned into
that document's ``error`` stage by the ingestion coordinator.
"""


class WikiRagError(Exception):
    """Base exception for all wiki RAG errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# External service / provider errors
# ---------------------------------------------------------------------------

class ContentSourceError(WikiRagError):
    """Raised when the wiki REST API rejects a request or cannot be reached."""

    def __init__(
        self,
        message: str = "Content source request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(WikiRagError):
    """Raised when an LLM API call fails or returns an unparseable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(WikiRagError):
    """Raised when the embedding service fails for a request."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageError(WikiRagError):
    """Raised when a fragment store operation fails."""

    def __init__(
        self,
        message: str = "Fragment store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderUnavailableError(WikiRagError):
    """Raised when an external service or provider is unreachable."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(WikiRagError):
    """Raised when an API rate limit is exceeded.

    Callers may back off and resubmit the affected document.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration / request errors
# ---------------------------------------------------------------------------

class SearchValidationError(WikiRagError):
    """Raised when search parameters are rejected before any external call."""

    def __init__(
        self,
        message: str = "Invalid search request",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(WikiRagError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
