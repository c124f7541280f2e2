"""Abstract base class for text-embedding service providers.

Providers issue exactly one request per :meth:`IEmbeddingProvider.embed`
call.  Request packing, failure isolation and inter-request delays are the
job of :class:`~src.services.ingestion.embedding_batcher.EmbeddingBatcher`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import EmbeddingResponse


# Concrete implementations: OpenAIEmbeddingProvider
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> EmbeddingResponse:
        """Embed *texts* in a single request.

        Returns
        -------
        EmbeddingResponse
            Vectors positionally aligned with *texts*, each of length
            :meth:`get_dimension`, plus the request's token usage.

        Raises
        ------
        src.utils.errors.EmbeddingError
            If the request fails or returns the wrong number of vectors.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the fixed vector dimensionality of this deployment."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider has the credentials it needs."""
