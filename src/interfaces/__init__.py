"""Public interface definitions for all external service providers.

Every external service the wiki RAG pipeline talks to is accessed through
the abstract base classes defined in this package.  Concrete adapters
implement these interfaces and are injected at runtime (see
``src.main.build_components``), so services and tests never depend on a
specific SDK.

CONCRETE PROVIDER MAP:
    Interface            →  Concrete implementation (in src/providers/)
    ─────────────────────────────────────────────────────────────────
    ILLMProvider         →  OpenAILLMProvider
    IEmbeddingProvider   →  OpenAIEmbeddingProvider
    IContentSource       →  ConfluenceContentSource
    IFragmentStore       →  PgVectorFragmentStore

Re-exports
----------
ILLMProvider
    Structured (JSON-schema constrained) completion contract.
IEmbeddingProvider
    Text-embedding generation contract.
IContentSource
    Wiki browsing and page-content contract.
IFragmentStore, IFragmentWriter
    Fragment/question persistence, unit of work and nearest-neighbour search.
"""

from src.interfaces.content_source import IContentSource
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.fragment_store import IFragmentStore, IFragmentWriter
from src.interfaces.llm_provider import ILLMProvider

__all__ = [
    "IContentSource",
    "IEmbeddingProvider",
    "IFragmentStore",
    "IFragmentWriter",
    "ILLMProvider",
]
