"""Application settings loaded from environment variables via pydantic-settings.

Settings are read from two sources (in priority order):

1. **Environment variables** -- e.g. ``OPENAI_API_KEY=sk-abc123``
2. **.env file** -- key=value lines in the project root ``.env`` file

The mapping is automatic: field ``pghost`` maps to ``PGHOST``,
``model_for_chunks`` to ``MODEL_FOR_CHUNKS`` and so on.

Only the deployment environment lives here.  Component tunables (fragment
budget, question counts, concurrency caps, ...) are built into the frozen
structs of :mod:`src.config.components` by :func:`src.config.loader.load_app_config`.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.utils.errors import ConfigurationError


class Settings(BaseSettings):
    """Wiki RAG deployment settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Content source ===
    confluence_base_url: str = "https://wiki.example.com"
    confluence_token: str = ""  # CLI default; HTTP callers send their own bearer token
    ignore_ssl_errors: bool = False

    # === OpenAI ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs
    model_for_chunks: str = "gpt-4.1"
    model_for_questions: str = "gpt-4.1"
    openai_embedding_model: str = "text-embedding-3-large"
    embedding_dimensions: int = 1024

    # === PostgreSQL / pgvector ===
    pghost: str = "localhost"
    pgport: int = 5432
    pguser: str = "postgres"
    pgpassword: str = ""
    pgdatabase: str = "wiki_rag"
    pgschema: str = "wiki_rag"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    config_path: str = "config/config.yaml"

    def missing_required(self) -> list[str]:
        """Return the environment variable names of unset required settings."""
        missing: list[str] = []
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if not self.pgpassword:
            missing.append("PGPASSWORD")
        return missing

    def validate_required(self) -> None:
        """Raise :class:`ConfigurationError` naming every missing required variable."""
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(
                message=f"Missing required environment variables: {', '.join(missing)}"
            )
