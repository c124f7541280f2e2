"""Embedding provider implementations.

    - OpenAIEmbeddingProvider -- ``text-embedding-3-large`` shortened to the
      deployment's fixed dimensionality.
"""

from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
