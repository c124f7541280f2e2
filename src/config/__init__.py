"""Configuration module -- exports Settings, the component config structs and the loader."""

from src.config.components import (
    AppConfig,
    ContentSourceConfig,
    EmbeddingBatcherConfig,
    EmbeddingConfig,
    EnricherConfig,
    IngestionConfig,
    LLMConfig,
    NormalizerOptions,
    RetrievalConfig,
    SegmenterConfig,
    StoreConfig,
    TaskRegistryConfig,
)
from src.config.loader import load_app_config
from src.config.settings import Settings

__all__ = [
    "AppConfig",
    "ContentSourceConfig",
    "EmbeddingBatcherConfig",
    "EmbeddingConfig",
    "EnricherConfig",
    "IngestionConfig",
    "LLMConfig",
    "NormalizerOptions",
    "RetrievalConfig",
    "SegmenterConfig",
    "Settings",
    "StoreConfig",
    "TaskRegistryConfig",
    "load_app_config",
]
