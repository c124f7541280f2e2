"""Frozen configuration structs handed to each component's constructor.

One struct per component keeps every tunable explicit: nothing reads
settings at import time, and tests build components with whatever values
they need.  :class:`AppConfig` groups them for the entry points.
"""

from __future__ import annotations

from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict, Field


class NormalizerOptions(BaseModel):
    """Options for :class:`~src.services.ingestion.normalizer.ContentNormalizer`."""

    model_config = ConfigDict(frozen=True)

    keep_media: bool = Field(default=False, description="Keep img/picture/figure elements.")
    max_nesting_depth: int = Field(
        default=10, ge=1, description="Deepest element nesting kept before flattening to text."
    )
    link_target: str = Field(
        default="_blank", description="Navigation target annotation added to every hyperlink."
    )


class SegmenterConfig(BaseModel):
    """Tunables for fragment segmentation."""

    model_config = ConfigDict(frozen=True)

    chars_limit: int = Field(default=2000, ge=100, description="Maximum characters per fragment.")
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(default=16000, ge=1)
    price_per_million_tokens: float = Field(default=0.15, ge=0.0)


class EnricherConfig(BaseModel):
    """Tunables for question generation."""

    model_config = ConfigDict(frozen=True)

    min_questions: int = Field(default=3, ge=1)
    max_questions: int = Field(default=20, ge=1)
    chars_per_question: int = Field(
        default=100, ge=1, description="Fragment characters per requested question."
    )
    min_question_length: int = Field(default=10, ge=1)
    concurrency: int = Field(default=3, ge=1, description="Concurrent enrichment calls per document.")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1500, ge=1)
    price_per_million_tokens: float = Field(default=0.15, ge=0.0)


class EmbeddingBatcherConfig(BaseModel):
    """Tunables for token-budgeted embedding requests."""

    model_config = ConfigDict(frozen=True)

    max_tokens_per_request: int = Field(default=100_000, ge=1)
    max_items_per_request: int = Field(default=2048, ge=1)
    chars_per_token: int = Field(default=4, ge=1)
    inter_batch_delay_seconds: float = Field(default=1.0, ge=0.0)
    price_per_million_tokens: float = Field(default=0.13, ge=0.0)


class IngestionConfig(BaseModel):
    """Tunables for the per-document pipeline and multi-document driving."""

    model_config = ConfigDict(frozen=True)

    base_url: str = Field(
        default="https://wiki.example.com", description="Wiki base URL for provenance links."
    )
    batch_size: int = Field(default=100, ge=1)
    start_delay_seconds: float = Field(
        default=0.005, ge=0.0, description="Start offset per position within a batch."
    )
    document_concurrency: int = Field(default=10, ge=1)
    max_descendant_depth: int = Field(default=10, ge=1)


class RetrievalConfig(BaseModel):
    """Defaults for similarity search.

    ``default_threshold`` is a maximum cosine distance: rows farther than it
    from the query vector are discarded.
    """

    model_config = ConfigDict(frozen=True)

    default_threshold: float = Field(default=0.65, ge=0.0, le=1.0)
    default_limit: int = Field(default=10, ge=1, le=100)
    max_limit: int = Field(default=100, ge=1)


class TaskRegistryConfig(BaseModel):
    """Retention policy for ingestion task records."""

    model_config = ConfigDict(frozen=True)

    retention_limit: int = Field(default=500, ge=1)
    recent_limit: int = Field(default=20, ge=1)


class LLMConfig(BaseModel):
    """OpenAI chat-completion client settings."""

    model_config = ConfigDict(frozen=True)

    api_key: str = ""
    base_url: str = ""
    chunk_model: str = "gpt-4.1"
    question_model: str = "gpt-4.1"
    timeout_seconds: float = 120.0


class EmbeddingConfig(BaseModel):
    """OpenAI embeddings client settings."""

    model_config = ConfigDict(frozen=True)

    api_key: str = ""
    base_url: str = ""
    model: str = "text-embedding-3-large"
    dimensions: int = Field(default=1024, ge=1)
    max_input_chars: int = Field(default=8000, ge=1)


class ContentSourceConfig(BaseModel):
    """Wiki REST API client settings."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://wiki.example.com"
    token: str = ""
    ignore_ssl_errors: bool = False
    timeout_seconds: float = 30.0
    page_limit: int = 1000


class StoreConfig(BaseModel):
    """PostgreSQL connection and schema settings for the fragment store."""

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    database: str = "wiki_rag"
    schema_name: str = "wiki_rag"
    dimensions: int = Field(default=1024, ge=1)
    ivfflat_lists: int = Field(default=100, ge=1)
    pool_size: int = Field(default=10, ge=1)

    def url(self, database: str | None = None) -> str:
        """Return the asyncpg SQLAlchemy URL for *database* (default: configured one)."""
        return (
            f"postgresql+asyncpg://{quote_plus(self.user)}:{quote_plus(self.password)}"
            f"@{self.host}:{self.port}/{database or self.database}"
        )


class AppConfig(BaseModel):
    """Every component config, built once at process start."""

    model_config = ConfigDict(frozen=True)

    normalizer: NormalizerOptions = Field(default_factory=NormalizerOptions)
    segmenter: SegmenterConfig = Field(default_factory=SegmenterConfig)
    enricher: EnricherConfig = Field(default_factory=EnricherConfig)
    embedding_batcher: EmbeddingBatcherConfig = Field(default_factory=EmbeddingBatcherConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    task_registry: TaskRegistryConfig = Field(default_factory=TaskRegistryConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    content_source: ContentSourceConfig = Field(default_factory=ContentSourceConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
