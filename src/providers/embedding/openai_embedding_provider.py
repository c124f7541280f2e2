"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Requests ask for the deployment's fixed ``dimensions`` so every stored
vector matches the ``vector(N)`` column of the fragment store.
"""

from __future__ import annotations

import openai
import structlog

from src.config.components import EmbeddingConfig
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.rag import EmbeddingResponse
from src.utils.errors import EmbeddingError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

# Models that accept the ``dimensions`` request parameter.
_SHORTENABLE_MODELS = frozenset({"text-embedding-3-small", "text-embedding-3-large"})


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-large`` shortened to 1024 dimensions by default.
    Inputs longer than ``max_input_chars`` are truncated before sending.
    """

    def __init__(self, config: EmbeddingConfig) -> None:
        self._api_key = config.api_key

        client_kwargs: dict = {"api_key": self._api_key}
        if config.base_url:
            client_kwargs["base_url"] = config.base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = config.model
        self._dimension = config.dimensions
        self._max_input_chars = config.max_input_chars
        self._provider_label = (
            "openai-compatible_embedding" if config.base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> EmbeddingResponse:
        """Embed *texts* in one request, truncating over-long inputs."""
        if not texts:
            return EmbeddingResponse(vectors=[], total_tokens=0)

        inputs = [self._truncate(t) for t in texts]
        request: dict = {"input": inputs, "model": self._model, "encoding_format": "float"}
        if self._model in _SHORTENABLE_MODELS:
            request["dimensions"] = self._dimension

        try:
            response = await self._client.embeddings.create(**request)
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"{self._provider_label} rate limited: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if len(response.data) != len(inputs):
            raise EmbeddingError(
                message=f"Expected {len(inputs)} embeddings, got {len(response.data)}",
                provider_name=self.get_provider_name(),
            )

        # The API may return items out of order; ``index`` is authoritative.
        ordered = sorted(response.data, key=lambda item: item.index)
        tokens = response.usage.total_tokens if response.usage else 0
        logger.info(
            "openai_embedding_batch",
            model=self._model,
            provider=self._provider_label,
            batch_size=len(inputs),
            tokens=tokens,
        )
        return EmbeddingResponse(
            vectors=[list(item.embedding) for item in ordered],
            total_tokens=tokens,
        )

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    def _truncate(self, text: str) -> str:
        if len(text) <= self._max_input_chars:
            return text
        logger.debug(
            "truncating_embedding_input_chars",
            original_chars=len(text),
            truncated_chars=self._max_input_chars,
            model=self._model,
        )
        return text[: self._max_input_chars]
