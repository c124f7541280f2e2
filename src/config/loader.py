"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

1. ``config/config.yaml`` -- static component tunables checked into the repo
2. ``.env`` file          -- local developer overrides (not committed)
3. Environment variables  -- set at deploy time

:func:`load_app_config` reads the YAML file first, then deep-merges the
environment-derived values from :class:`~src.config.settings.Settings` on
top, and validates the result into a frozen :class:`AppConfig`.

The ``_deep_merge`` helper does recursive dict merging::

    base = {"enricher": {"min_questions": 3}}
    overrides = {"enricher": {"concurrency": 5}}
    result = {"enricher": {"min_questions": 3, "concurrency": 5}}
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from src.config.components import AppConfig
from src.config.settings import Settings
from src.utils.errors import ConfigurationError


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Return the parsed YAML mapping at *path*, or ``{}`` when the file is absent."""
    config_path = Path(path)
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(message=f"{config_path} must contain a mapping at the top level")
    return loaded


def settings_overrides(settings: Settings) -> dict[str, Any]:
    """Map deployment settings onto the :class:`AppConfig` sections they feed."""
    return {
        "ingestion": {
            "base_url": settings.confluence_base_url,
        },
        "llm": {
            "api_key": settings.openai_api_key,
            "base_url": settings.openai_base_url,
            "chunk_model": settings.model_for_chunks,
            "question_model": settings.model_for_questions,
        },
        "embedding": {
            "api_key": settings.openai_api_key,
            "base_url": settings.openai_base_url,
            "model": settings.openai_embedding_model,
            "dimensions": settings.embedding_dimensions,
        },
        "content_source": {
            "base_url": settings.confluence_base_url,
            "token": settings.confluence_token,
            "ignore_ssl_errors": settings.ignore_ssl_errors,
        },
        "store": {
            "host": settings.pghost,
            "port": settings.pgport,
            "user": settings.pguser,
            "password": settings.pgpassword,
            "database": settings.pgdatabase,
            "schema_name": settings.pgschema,
            "dimensions": settings.embedding_dimensions,
        },
    }


def load_app_config(settings: Settings | None = None, path: str | Path | None = None) -> AppConfig:
    """Build the :class:`AppConfig` from YAML defaults and environment settings.

    Args:
        settings: Deployment settings; read from the environment when omitted.
        path: YAML file path; defaults to ``settings.config_path``.

    Returns:
        A frozen, validated AppConfig.
    """
    settings = settings or Settings()
    merged = load_yaml_config(path or settings.config_path)
    _deep_merge(merged, settings_overrides(settings))
    try:
        return AppConfig.model_validate(merged)
    except ValueError as exc:
        raise ConfigurationError(message=f"Invalid configuration: {exc}") from exc


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
